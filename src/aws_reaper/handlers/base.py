"""
Abstract base class for resource handlers.

A handler is the provider side of one resource kind: it lists raw records
per region, builds typed reapables from them, and performs tag, untag and
delete calls through boto3. botocore errors propagate to the caller, which
decides whether they are fatal to the resource or the region.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

import boto3

from ..core.logger import setup_logger
from ..core.models import ReaperConfig, ResourceKind
from ..reapable.base import Reapable


@dataclass
class HandlerResult:
    """
    Outcome of a dispatched action.

    Attributes:
        success: Whether the operation succeeded
        action: The action performed ("terminate", "stop", ...)
        resource_kind: Kind of resource
        resource_id: Resource identifier
        message: Human-readable message describing the result
        error: Optional error message if the operation failed
    """
    success: bool
    action: str
    resource_kind: str
    resource_id: str
    message: str
    error: Optional[str] = None


class ResourceHandler(ABC):
    """
    Provider access for one resource kind.

    Subclasses must implement:
        - list(): Yield raw provider records for a region
        - build(): Turn one record into a Reapable
        - tag() / untag(): Write or remove a single tag
        - terminate(): Delete the resource
    """

    kind: ResourceKind
    service: str

    def __init__(self, config: ReaperConfig, client_factory: Callable[..., Any] = boto3.client):
        """
        Args:
            config: Reaper configuration (tag names, durations)
            client_factory: Builds boto3 clients, replaced in tests
        """
        self.config = config
        self._client_factory = client_factory
        self._clients: Dict[Tuple[str, str], Any] = {}
        self._clients_lock = threading.Lock()
        self.logger = setup_logger(f"aws_reaper.handlers.{self.kind.value}")

    @property
    def state_tag(self) -> str:
        return self.config.state_tag

    @property
    def whitelist_tag(self) -> str:
        return self.config.whitelist_tag

    @property
    def scaler_tag(self) -> str:
        return self.config.scaling.tag

    def client(self, region: str, service: Optional[str] = None):
        """Cached boto3 client for ``service`` (default: this handler's) in ``region``."""
        key = (service or self.service, region)
        with self._clients_lock:
            if key not in self._clients:
                self._clients[key] = self._client_factory(key[0], region_name=region)
            return self._clients[key]

    @abstractmethod
    def list(self, region: str) -> Iterator[Dict[str, Any]]:
        pass

    @abstractmethod
    def build(self, region: str, record: Dict[str, Any], now: Optional[datetime] = None) -> Reapable:
        pass

    @abstractmethod
    def tag(self, region: str, resource_id: str, key: str, value: str) -> bool:
        pass

    @abstractmethod
    def untag(self, region: str, resource_id: str, key: str) -> bool:
        pass

    @abstractmethod
    def terminate(self, region: str, resource_id: str) -> bool:
        pass

    def discover(self, region: str, now: Optional[datetime] = None) -> Iterator[Reapable]:
        """List and build every resource of this kind in ``region``."""
        for record in self.list(region):
            yield self.build(region, record, now)
