"""
EC2 backed handlers: instances, security groups and volumes.

All three share EC2's tagging API; they differ in how they list and
delete resources.
"""

from datetime import datetime
from typing import Any, Dict, Iterator, Optional

from ..core.models import ResourceKind
from ..reapable.instance import Instance
from ..reapable.security_group import SecurityGroup
from ..reapable.volume import Volume
from .base import ResourceHandler


class EC2Handler(ResourceHandler):
    """Shared EC2 tagging."""

    service = "ec2"

    def tag(self, region: str, resource_id: str, key: str, value: str) -> bool:
        self.client(region).create_tags(
            Resources=[resource_id],
            Tags=[{"Key": key, "Value": value}],
        )
        self.logger.info(
            "Tagged resource",
            extra={"region": region, "resource_id": resource_id, "key": key, "value": value},
        )
        return True

    def untag(self, region: str, resource_id: str, key: str) -> bool:
        self.client(region).delete_tags(Resources=[resource_id], Tags=[{"Key": key}])
        self.logger.info(
            "Removed tag", extra={"region": region, "resource_id": resource_id, "key": key}
        )
        return True


class InstanceHandler(EC2Handler):
    """Handler for EC2 instances."""

    kind = ResourceKind.INSTANCE

    def list(self, region: str) -> Iterator[Dict[str, Any]]:
        paginator = self.client(region).get_paginator("describe_instances")
        for page in paginator.paginate():
            for reservation in page.get("Reservations", []):
                yield from reservation.get("Instances", [])

    def build(self, region: str, record: Dict[str, Any], now: Optional[datetime] = None) -> Instance:
        return Instance.from_api(
            region, record, self.state_tag, handler=self, now=now, scaler_tag=self.scaler_tag
        )

    def terminate(self, region: str, resource_id: str) -> bool:
        response = self.client(region).terminate_instances(InstanceIds=[resource_id])
        changes = response.get("TerminatingInstances", [])
        self.logger.info("Terminating instance", extra={"region": region, "resource_id": resource_id})
        return any(change.get("InstanceId") == resource_id for change in changes)

    def stop(self, region: str, resource_id: str, force: bool = False) -> bool:
        response = self.client(region).stop_instances(InstanceIds=[resource_id], Force=force)
        changes = response.get("StoppingInstances", [])
        self.logger.info(
            "Stopping instance",
            extra={"region": region, "resource_id": resource_id, "force": force},
        )
        return any(change.get("InstanceId") == resource_id for change in changes)

    def start(self, region: str, resource_id: str) -> bool:
        response = self.client(region).start_instances(InstanceIds=[resource_id])
        changes = response.get("StartingInstances", [])
        self.logger.info("Starting instance", extra={"region": region, "resource_id": resource_id})
        return any(change.get("InstanceId") == resource_id for change in changes)


class SecurityGroupHandler(EC2Handler):
    """Handler for EC2 security groups."""

    kind = ResourceKind.SECURITY_GROUP

    def list(self, region: str) -> Iterator[Dict[str, Any]]:
        paginator = self.client(region).get_paginator("describe_security_groups")
        for page in paginator.paginate():
            yield from page.get("SecurityGroups", [])

    def build(self, region: str, record: Dict[str, Any], now: Optional[datetime] = None) -> SecurityGroup:
        return SecurityGroup.from_api(region, record, self.state_tag, handler=self, now=now)

    def terminate(self, region: str, resource_id: str) -> bool:
        self.client(region).delete_security_group(GroupId=resource_id)
        self.logger.info("Deleted security group", extra={"region": region, "resource_id": resource_id})
        return True


class VolumeHandler(EC2Handler):
    """Handler for EBS volumes."""

    kind = ResourceKind.VOLUME

    def list(self, region: str) -> Iterator[Dict[str, Any]]:
        paginator = self.client(region).get_paginator("describe_volumes")
        for page in paginator.paginate():
            yield from page.get("Volumes", [])

    def build(self, region: str, record: Dict[str, Any], now: Optional[datetime] = None) -> Volume:
        return Volume.from_api(
            region,
            record,
            self.state_tag,
            handler=self,
            now=now,
            first_state_duration=self.config.states.first_state_duration,
        )

    def terminate(self, region: str, resource_id: str) -> bool:
        self.client(region).delete_volume(VolumeId=resource_id)
        self.logger.info("Deleted volume", extra={"region": region, "resource_id": resource_id})
        return True
