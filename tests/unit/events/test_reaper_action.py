from datetime import timedelta

import pytest

from aws_reaper.core.models import ReaperActionConfig
from aws_reaper.events.reaper_action import ReaperActionRunner
from aws_reaper.events.reporter import RecordingEventReporter
from aws_reaper.state.state import ReaperState, StateEnum

from tests.helpers import FakeHandler, client_error, make_instance


@pytest.fixture
def handler(config):
    return FakeHandler("instances", config)


def _final(instance_id, handler, now, until):
    instance = make_instance(instance_id, now=now, handler=handler)
    instance.reaper_state = ReaperState(StateEnum.FINAL, until)
    return instance


def test_stops_due_final_resources(handler, now):
    reporter = RecordingEventReporter()
    runner = ReaperActionRunner(ReaperActionConfig(enabled=True, mode="Stop"), dry_run=False, reporter=reporter)
    due = _final("i-due", handler, now, now - timedelta(hours=1))
    later = _final("i-later", handler, now, now + timedelta(hours=1))
    third = make_instance("i-third", now=now, handler=handler)
    third.reaper_state = ReaperState(StateEnum.THIRD, now - timedelta(days=1))

    summary = runner.run([due, later, third], now)

    assert summary.acted == ["i-due"]
    assert summary.skipped == 2
    assert handler.calls == [("stop", "us-east-1", "i-due", False)]
    assert reporter.statistics[0]["name"] == "reaper.reapables.reaped"


def test_terminate_mode(handler, now):
    runner = ReaperActionRunner(ReaperActionConfig(enabled=True, mode="Terminate"), dry_run=False)

    runner.run([_final("i-1", handler, now, now)], now)

    assert handler.calls == [("terminate", "us-east-1", "i-1")]


@pytest.mark.parametrize("enabled,dry_run", [(False, False), (True, True)])
def test_inactive(handler, now, enabled, dry_run):
    runner = ReaperActionRunner(ReaperActionConfig(enabled=enabled), dry_run=dry_run)

    summary = runner.run([_final("i-1", handler, now, now)], now)

    assert not runner.active
    assert summary.acted == []
    assert handler.calls == []


def test_failures_are_collected(handler, now, monkeypatch):
    def boom(region, resource_id, force=False):
        raise client_error("IncorrectInstanceState", "StopInstances")

    monkeypatch.setattr(handler, "stop", boom)
    runner = ReaperActionRunner(ReaperActionConfig(enabled=True), dry_run=False)

    summary = runner.run([_final("i-1", handler, now, now), _final("i-2", handler, now, now)], now)

    assert summary.failed == ["i-1", "i-2"]
