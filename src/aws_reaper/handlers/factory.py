from typing import Any, Callable, Dict, Optional, Type

import boto3

from ..core.models import ReaperConfig, ResourceKind
from .autoscaling import AutoScalingGroupHandler
from .base import ResourceHandler
from .cloudformation import CloudformationHandler
from .ec2 import InstanceHandler, SecurityGroupHandler, VolumeHandler


# Handler registry mapping resource kinds to handler classes
HANDLER_REGISTRY: Dict[ResourceKind, Type[ResourceHandler]] = {
    ResourceKind.CLOUDFORMATION: CloudformationHandler,
    ResourceKind.AUTOSCALING_GROUP: AutoScalingGroupHandler,
    ResourceKind.INSTANCE: InstanceHandler,
    ResourceKind.SECURITY_GROUP: SecurityGroupHandler,
    ResourceKind.VOLUME: VolumeHandler,
}


def get_handler(
    kind: ResourceKind,
    config: ReaperConfig,
    client_factory: Callable[..., Any] = boto3.client,
) -> Optional[ResourceHandler]:
    """
    Factory function to get the handler for a resource kind.

    Args:
        kind: Resource kind (e.g. ResourceKind.INSTANCE or "instances")
        config: Reaper configuration
        client_factory: Builds boto3 clients

    Returns:
        ResourceHandler instance or None if no handler is registered

    Example:
        >>> handler = get_handler(ResourceKind.VOLUME, config)
        >>> volumes = list(handler.discover("us-east-1"))
    """
    try:
        handler_class = HANDLER_REGISTRY.get(ResourceKind(kind))
    except ValueError:
        return None

    if handler_class:
        return handler_class(config, client_factory=client_factory)

    return None


def get_handlers(
    config: ReaperConfig,
    client_factory: Callable[..., Any] = boto3.client,
) -> Dict[ResourceKind, ResourceHandler]:
    """One handler per registered kind, sharing ``client_factory``."""
    return {kind: get_handler(kind, config, client_factory) for kind in HANDLER_REGISTRY}


def register_handler(kind: ResourceKind, handler_class: Type[ResourceHandler]) -> None:
    """
    Register a handler class for a resource kind.

    Example:
        >>> register_handler(ResourceKind.VOLUME, CustomVolumeHandler)
    """
    HANDLER_REGISTRY[ResourceKind(kind)] = handler_class


def get_registered_handlers() -> Dict[ResourceKind, Type[ResourceHandler]]:
    """
    Get a copy of the current handler registry.

    Returns:
        Dictionary mapping resource kinds to handler classes
    """
    return HANDLER_REGISTRY.copy()
