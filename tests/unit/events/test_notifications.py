"""Unit tests for events/notifications.py"""

from unittest.mock import MagicMock

import pytest

from aws_reaper.core.models import ReaperConfig
from aws_reaper.events.notifications import (
    SINGLE_EVENT_TITLE,
    NotificationOrchestrator,
    pack_batches,
)
from aws_reaper.events.reporter import RecordingEventReporter
from aws_reaper.reapable.volume import Volume

from tests.helpers import make_instance


class TestPackBatches:

    def test_everything_fits_in_one(self):
        assert pack_batches(["a", "b", "c"], 100) == ["a\nb\nc"]

    def test_greedy_and_order_preserving(self):
        descriptions = ["aaaa", "bbbb", "cccc", "dd", "e"]

        batches = pack_batches(descriptions, 9)

        assert batches == ["aaaa\nbbbb", "cccc\ndd\ne"]
        assert "\n".join(batches).split("\n") == descriptions

    def test_bound_is_inclusive(self):
        assert pack_batches(["aaaa", "bbbb"], 9) == ["aaaa\nbbbb"]
        assert pack_batches(["aaaa", "bbbb"], 8) == ["aaaa", "bbbb"]

    def test_minimal_batch_count(self):
        descriptions = [f"resource-{n:03d}" for n in range(40)]
        max_size = 60

        batches = pack_batches(descriptions, max_size)

        assert all(len(b.encode("utf-8")) <= max_size for b in batches)
        # each adjacent pair could not have been merged
        for first, second in zip(batches, batches[1:]):
            head = second.split("\n")[0]
            assert len((first + "\n" + head).encode("utf-8")) > max_size

    def test_oversized_description_is_truncated(self):
        batches = pack_batches(["x" * 50, "short"], 20)

        assert batches == ["x" * 20, "short"]

    def test_byte_length_not_characters(self):
        batches = pack_batches(["é" * 3, "é" * 3], 12)

        assert batches == ["ééé", "ééé"]

    def test_empty(self):
        assert pack_batches([], 10) == []

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            pack_batches(["a"], 0)


@pytest.fixture
def notify_config():
    return ReaperConfig(
        dry_run=False,
        default_email_host="example.com",
        http={"api_url": "https://reaper.example.com", "token_secret": "s3cret"},
    )


@pytest.fixture
def reporter():
    return RecordingEventReporter()


def test_single_resource_event(notify_config, reporter, now):
    instance = make_instance("i-1", tags={"Owner": "alice"}, now=now)
    orchestrator = NotificationOrchestrator(notify_config, reporter)

    summary = orchestrator.notify([instance], now)

    assert summary.owners == 1
    assert summary.events == 1
    event = reporter.events[0]
    assert event["title"] == SINGLE_EVENT_TITLE
    assert event["fields"]["owner"] == "alice@example.com"
    assert event["fields"]["id"] == "i-1"
    assert event["fields"]["state"] == "Initial"
    assert "https://reaper.example.com/?action=terminate&token=" in event["text"]
    assert "action=force_stop" in event["text"]
    assert "action=delay_24h0m0s" in event["text"]


def test_volume_links_have_no_stop(notify_config, reporter):
    orchestrator = NotificationOrchestrator(notify_config, reporter)

    links = orchestrator.action_links(Volume(region="us-east-1", id="vol-1"))

    assert set(links) == {"delay_1d", "delay_3d", "delay_7d", "terminate", "whitelist"}


def test_several_resources_are_batched(notify_config, reporter, now):
    instances = [make_instance(f"i-{n}", tags={"Owner": "bob"}, now=now) for n in range(3)]
    orchestrator = NotificationOrchestrator(notify_config, reporter)

    summary = orchestrator.notify(instances, now)

    assert summary.events == 1
    event = reporter.events[0]
    assert event["title"] == "3 reapable resources discovered (1/1)"
    assert event["fields"] == {"owner": "bob@example.com"}
    assert event["text"].split("\n") == [i.description() for i in instances]


def test_batches_respect_max_size(notify_config, reporter, now):
    notify_config.notifications.max_batch_size = 200
    instances = [make_instance(f"i-{n}", tags={"Owner": "bob"}, now=now) for n in range(6)]
    orchestrator = NotificationOrchestrator(notify_config, reporter)

    summary = orchestrator.notify(instances, now)

    assert summary.events == len(reporter.events) > 1
    assert all(len(e["text"].encode("utf-8")) <= 200 for e in reporter.events)
    assert reporter.events[-1]["title"].endswith(f"({summary.events}/{summary.events})")


def test_unowned_resources_are_reported_not_dropped(reporter, now):
    config = ReaperConfig(dry_run=False)
    orchestrator = NotificationOrchestrator(config, reporter)

    summary = orchestrator.notify([make_instance("i-1", now=now)], now)

    assert summary.unowned == ["i-1"]
    assert reporter.events == []


def test_notifications_disabled(notify_config, reporter, now):
    notify_config.notifications.enabled = False
    orchestrator = NotificationOrchestrator(notify_config, reporter)

    summary = orchestrator.notify([make_instance("i-1", tags={"Owner": "alice"}, now=now)], now)

    assert summary.events == 0
    assert reporter.events == []


def test_transport_failure_is_counted(notify_config, now):
    reporter = MagicMock()
    reporter.new_event.side_effect = RuntimeError("smtp down")
    orchestrator = NotificationOrchestrator(notify_config, reporter)

    summary = orchestrator.notify(
        [make_instance("i-1", tags={"Owner": "alice"}, now=now),
         make_instance("i-2", tags={"Owner": "bob"}, now=now)],
        now,
    )

    assert summary.failed == 2


def test_dispatch_runs_in_background(notify_config, reporter, now):
    orchestrator = NotificationOrchestrator(notify_config, reporter)

    thread = orchestrator.dispatch([make_instance("i-1", tags={"Owner": "alice"}, now=now)], now)
    orchestrator.join(10)

    assert not thread.is_alive()
    assert len(reporter.events) == 1
