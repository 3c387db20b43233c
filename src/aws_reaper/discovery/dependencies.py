"""
Cross-resource dependency resolution.

Kinds are consumed strictly in order: stacks, autoscaling groups,
instances, security groups, volumes. Each stage reads the maps written by
the stages before it, so the order cannot change. The resolver only ever
sets flags to True; flags derived from tags at construction are kept.
Every resource is still returned so filters can reason about the flags.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from ..core.logger import setup_logger
from ..reapable.autoscaling import AutoScalingGroup
from ..reapable.base import Reapable
from ..reapable.cloudformation import Cloudformation
from ..reapable.instance import Instance
from ..reapable.security_group import SecurityGroup
from ..reapable.volume import Volume

logger = setup_logger(__name__)

RegionMap = Dict[str, Dict[str, bool]]


def _region_map() -> RegionMap:
    return defaultdict(dict)


@dataclass
class DependencyMaps:
    """``region -> id -> True`` maps built during one cycle."""
    dependency: RegionMap = field(default_factory=_region_map)
    is_in_cloudformation: RegionMap = field(default_factory=_region_map)
    instances_in_asg: RegionMap = field(default_factory=_region_map)

    @staticmethod
    def _any(mapping: RegionMap, region: str, *keys: str) -> bool:
        entries = mapping.get(region, {})
        return any(entries.get(key, False) for key in keys if key)

    def is_dependency(self, region: str, *keys: str) -> bool:
        return self._any(self.dependency, region, *keys)

    def in_cloudformation(self, region: str, *keys: str) -> bool:
        return self._any(self.is_in_cloudformation, region, *keys)

    def in_asg(self, region: str, *keys: str) -> bool:
        return self._any(self.instances_in_asg, region, *keys)


@dataclass
class ResolvedResources:
    """Resolver output, one list per kind, in stream order."""
    cloudformations: List[Cloudformation] = field(default_factory=list)
    autoscaling_groups: List[AutoScalingGroup] = field(default_factory=list)
    instances: List[Instance] = field(default_factory=list)
    security_groups: List[SecurityGroup] = field(default_factory=list)
    volumes: List[Volume] = field(default_factory=list)

    def all(self) -> List[Reapable]:
        return (
            list(self.cloudformations)
            + list(self.autoscaling_groups)
            + list(self.instances)
            + list(self.security_groups)
            + list(self.volumes)
        )


class DependencyResolver:
    """Marks resources that other resources depend on."""

    def __init__(self):
        self.maps = DependencyMaps()

    def resolve(
        self,
        cloudformations: Iterable[Cloudformation],
        asgs: Iterable[AutoScalingGroup],
        instances: Iterable[Instance],
        security_groups: Iterable[SecurityGroup],
        volumes: Iterable[Volume],
    ) -> ResolvedResources:
        """Drain the five streams in dependency order, flagging as it goes."""
        result = ResolvedResources()

        for stack in cloudformations:
            self._resolve_stack(stack)
            result.cloudformations.append(stack)

        for asg in asgs:
            self._resolve_asg(asg)
            result.autoscaling_groups.append(asg)

        for instance in instances:
            self._resolve_instance(instance)
            result.instances.append(instance)

        for group in security_groups:
            self._resolve_security_group(group)
            result.security_groups.append(group)

        for volume in volumes:
            self._resolve_volume(volume)
            result.volumes.append(volume)

        logger.info(
            "Resolved dependencies",
            extra={
                "cloudformations": len(result.cloudformations),
                "autoscaling_groups": len(result.autoscaling_groups),
                "instances": len(result.instances),
                "security_groups": len(result.security_groups),
                "volumes": len(result.volumes),
                "dependencies": sum(len(ids) for ids in self.maps.dependency.values()),
            },
        )
        return result

    def _resolve_stack(self, stack: Cloudformation) -> None:
        for physical_id in stack.resources:
            self.maps.is_in_cloudformation[stack.region][physical_id] = True
            self.maps.dependency[stack.region][physical_id] = True

    def _resolve_asg(self, asg: AutoScalingGroup) -> None:
        if self.maps.is_dependency(asg.region, asg.id, asg.name):
            asg.dependency = True
        if self.maps.in_cloudformation(asg.region, asg.id, asg.name):
            asg.is_in_cloudformation = True

        for instance_id in asg.instance_ids:
            self.maps.instances_in_asg[asg.region][instance_id] = True
            self.maps.dependency[asg.region][instance_id] = True
            # instances of a stack-owned group belong to the stack too
            if asg.is_in_cloudformation:
                self.maps.is_in_cloudformation[asg.region][instance_id] = True

    def _resolve_instance(self, instance: Instance) -> None:
        if self.maps.is_dependency(instance.region, instance.id):
            instance.dependency = True
        if self.maps.in_cloudformation(instance.region, instance.id):
            instance.is_in_cloudformation = True
        if self.maps.in_asg(instance.region, instance.id):
            instance.auto_scaled = True

        for group_id, group_name in instance.security_groups.items():
            self.maps.dependency[instance.region][group_id] = True
            if group_name:
                self.maps.dependency[instance.region][group_name] = True

    def _resolve_security_group(self, group: SecurityGroup) -> None:
        if self.maps.in_cloudformation(group.region, group.id):
            group.is_in_cloudformation = True
        if self.maps.is_dependency(group.region, group.id, group.group_name):
            group.dependency = True

    def _resolve_volume(self, volume: Volume) -> None:
        if self.maps.in_cloudformation(volume.region, volume.id):
            volume.is_in_cloudformation = True
        if self.maps.is_dependency(volume.region, volume.id) or volume.attached_instance_ids:
            volume.dependency = True
