from datetime import datetime, timedelta, timezone

import pytest

from aws_reaper.core.models import ReaperConfig, ResourceKind, ScalingConfig
from aws_reaper.events.autoscaler import Autoscaler
from aws_reaper.events.reporter import RecordingEventReporter

from tests.helpers import FakeHandler, client_error, make_instance

# 2024-06-03 is a Monday
EVENING = datetime(2024, 6, 3, 17, 30, tzinfo=timezone.utc)
MORNING = datetime(2024, 6, 4, 9, 30, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


@pytest.fixture
def handler():
    return FakeHandler(ResourceKind.INSTANCE, ReaperConfig())


def _scheduled(instance_id, handler, state_name="running"):
    return make_instance(
        instance_id,
        tags={"REAPER_AUTOSCALER": "0 17 * * 1-5,0 9 * * 1-5"},
        now=EVENING,
        handler=handler,
        state_name=state_name,
        scaler_tag="REAPER_AUTOSCALER",
    )


def test_scales_down_in_the_evening(handler):
    reporter = RecordingEventReporter()
    autoscaler = Autoscaler(ScalingConfig(enabled=True), dry_run=False, reporter=reporter)
    unscheduled = make_instance("i-plain", now=EVENING, handler=handler)

    summary = autoscaler.run([_scheduled("i-1", handler), unscheduled], EVENING - HOUR, EVENING)

    assert summary.scaled_down == ["i-1"]
    assert summary.scaled == 1
    assert handler.calls == [("stop", "us-east-1", "i-1", False)]
    assert reporter.statistics == [
        {"name": "reaper.reapables.scaled", "value": 1, "tags": ["action:down", "region:us-east-1"]}
    ]


def test_scales_up_in_the_morning(handler):
    autoscaler = Autoscaler(ScalingConfig(enabled=True), dry_run=False)

    summary = autoscaler.run([_scheduled("i-1", handler, state_name="stopped")], MORNING - HOUR, MORNING)

    assert summary.scaled_up == ["i-1"]
    assert handler.calls == [("start", "us-east-1", "i-1")]


def test_nothing_due(handler):
    autoscaler = Autoscaler(ScalingConfig(enabled=True), dry_run=False)
    noon = EVENING - timedelta(hours=5)

    summary = autoscaler.run([_scheduled("i-1", handler)], noon - HOUR, noon)

    assert summary.unchanged == 1
    assert handler.calls == []


def test_already_scaled_down_is_unchanged(handler):
    autoscaler = Autoscaler(ScalingConfig(enabled=True), dry_run=False)

    summary = autoscaler.run([_scheduled("i-1", handler, state_name="stopped")], EVENING - HOUR, EVENING)

    assert summary.unchanged == 1
    assert summary.scaled == 0


@pytest.mark.parametrize("enabled,dry_run", [(False, False), (True, True)])
def test_inactive(handler, enabled, dry_run):
    autoscaler = Autoscaler(ScalingConfig(enabled=enabled), dry_run=dry_run)

    summary = autoscaler.run([_scheduled("i-1", handler)], EVENING - HOUR, EVENING)

    assert summary.scaled == 0
    assert handler.calls == []


def test_provider_failure_is_collected(handler, monkeypatch):
    def boom(region, resource_id, force=False):
        raise client_error("IncorrectInstanceState", "StopInstances")

    monkeypatch.setattr(handler, "stop", boom)
    autoscaler = Autoscaler(ScalingConfig(enabled=True), dry_run=False)

    summary = autoscaler.run([_scheduled("i-1", handler), _scheduled("i-2", handler)], EVENING - HOUR, EVENING)

    assert summary.failed == ["i-1", "i-2"]
