"""Unit tests for handlers/factory.py"""

from unittest.mock import MagicMock

import pytest

from aws_reaper.core.models import ReaperConfig, ResourceKind
from aws_reaper.handlers import factory
from aws_reaper.handlers.autoscaling import AutoScalingGroupHandler
from aws_reaper.handlers.base import ResourceHandler
from aws_reaper.handlers.ec2 import InstanceHandler, VolumeHandler


@pytest.fixture
def restore_registry():
    saved = factory.get_registered_handlers()
    yield
    factory.HANDLER_REGISTRY.clear()
    factory.HANDLER_REGISTRY.update(saved)


def test_get_handler_by_kind():
    handler = factory.get_handler(ResourceKind.INSTANCE, ReaperConfig(), client_factory=MagicMock())

    assert isinstance(handler, InstanceHandler)


def test_get_handler_by_kind_string():
    handler = factory.get_handler("autoscaling_groups", ReaperConfig(), client_factory=MagicMock())

    assert isinstance(handler, AutoScalingGroupHandler)


def test_get_handler_unknown_kind():
    assert factory.get_handler("lambdas", ReaperConfig()) is None


def test_get_handlers_covers_every_kind():
    handlers = factory.get_handlers(ReaperConfig(), client_factory=MagicMock())

    assert set(handlers) == set(ResourceKind)
    assert all(isinstance(h, ResourceHandler) for h in handlers.values())


def test_register_handler(restore_registry):
    class CustomVolumeHandler(VolumeHandler):
        pass

    factory.register_handler(ResourceKind.VOLUME, CustomVolumeHandler)

    handler = factory.get_handler(ResourceKind.VOLUME, ReaperConfig(), client_factory=MagicMock())
    assert isinstance(handler, CustomVolumeHandler)


def test_get_registered_handlers_is_a_copy():
    registered = factory.get_registered_handlers()
    registered.clear()

    assert factory.get_registered_handlers()
