"""Unit tests for discovery/pipeline.py"""

import pytest

from aws_reaper.core.models import ReaperConfig, ResourceKind
from aws_reaper.discovery.pipeline import DiscoveryError, DiscoveryPipeline
from aws_reaper.events.reporter import RecordingEventReporter
from aws_reaper.reapable.volume import Volume
from aws_reaper.state.state import ReaperState, StateEnum

from tests.helpers import FakeHandler, make_instance

REGIONS = ["us-east-1", "eu-west-1"]


@pytest.fixture
def config():
    return ReaperConfig(
        regions=REGIONS,
        instances={
            "enabled": True,
            "filter_groups": {"tiny": [{"function": "InstanceType", "arguments": ["t2.micro"]}]},
        },
    )


def _statistics(reporter, name):
    return {
        tuple(s["tags"]): s["value"] for s in reporter.statistics if s["name"] == name
    }


def test_streams_every_region(config, now):
    handler = FakeHandler(ResourceKind.INSTANCE, config, {
        "us-east-1": [make_instance("i-1", now=now), make_instance("i-2", now=now)],
        "eu-west-1": [make_instance("i-3", region="eu-west-1", now=now)],
    })
    pipeline = DiscoveryPipeline({ResourceKind.INSTANCE: handler}, REGIONS, config, now=now)

    with pipeline.start() as streams:
        ids = sorted(instance.id for instance in streams.instances)

    assert ids == ["i-1", "i-2", "i-3"]


def test_kinds_without_handler_stream_nothing(config, now):
    pipeline = DiscoveryPipeline({}, REGIONS, config, now=now)

    with pipeline.start() as streams:
        assert list(streams.volumes) == []
        assert list(streams.cloudformations) == []


def test_failing_region_contributes_nothing(config, now):
    reporter = RecordingEventReporter()
    handler = FakeHandler(ResourceKind.INSTANCE, config, {
        "us-east-1": [make_instance("i-1", now=now)],
        "eu-west-1": [make_instance("i-partial", region="eu-west-1", now=now)],
    }, failing_regions=["eu-west-1"])
    pipeline = DiscoveryPipeline({ResourceKind.INSTANCE: handler}, REGIONS, config, reporter=reporter, now=now)

    with pipeline.start() as streams:
        ids = [instance.id for instance in streams.instances]

    assert ids == ["i-1"]
    assert _statistics(reporter, "reaper.instances.region_errors") == {("region:eu-west-1",): 1}


def test_statistics_per_region(config, now):
    reporter = RecordingEventReporter()
    spared = make_instance("i-2", now=now, tags={"REAPER_SPARE_ME": "true"})
    handler = FakeHandler(ResourceKind.INSTANCE, config, {
        "us-east-1": [make_instance("i-1", now=now), spared, make_instance("i-3", instance_type="m5.large", now=now)],
    })
    pipeline = DiscoveryPipeline({ResourceKind.INSTANCE: handler}, REGIONS, config, reporter=reporter, now=now)

    with pipeline.start() as streams:
        list(streams.instances)

    assert _statistics(reporter, "reaper.instances.total") == {("region:us-east-1",): 3.0, ("region:eu-west-1",): 0.0}
    assert _statistics(reporter, "reaper.instances.whitelistedCount")[("region:us-east-1",)] == 1.0
    assert _statistics(reporter, "reaper.instances.filtered")[("region:us-east-1",)] == 1.0
    assert _statistics(reporter, "reaper.instances.instancetype") == {
        ("region:us-east-1", "instancetype:m5.large"): 1.0,
        ("region:us-east-1", "instancetype:t2.micro"): 2.0,
    }


def test_idle_instances_left_out_of_type_and_whitelist_counts(config, now):
    reporter = RecordingEventReporter()
    handler = FakeHandler(ResourceKind.INSTANCE, config, {
        "us-east-1": [
            make_instance("i-1", now=now),
            make_instance("i-2", now=now, state_name="stopped", tags={"REAPER_SPARE_ME": "true"}),
            make_instance("i-3", now=now, state_name="terminated", instance_type="m5.large"),
        ],
    })
    pipeline = DiscoveryPipeline({ResourceKind.INSTANCE: handler}, REGIONS, config, reporter=reporter, now=now)

    with pipeline.start() as streams:
        list(streams.instances)

    assert _statistics(reporter, "reaper.instances.total")[("region:us-east-1",)] == 3.0
    assert _statistics(reporter, "reaper.instances.whitelistedCount")[("region:us-east-1",)] == 0.0
    assert _statistics(reporter, "reaper.instances.instancetype") == {
        ("region:us-east-1", "instancetype:t2.micro"): 1.0,
    }


def test_saved_states_override_tags(config, now):
    saved = ReaperState(StateEnum.THIRD, now)
    handler = FakeHandler(ResourceKind.INSTANCE, config, {"us-east-1": [make_instance("i-1", now=now)]})
    pipeline = DiscoveryPipeline(
        {ResourceKind.INSTANCE: handler}, REGIONS, config, saved_states={("us-east-1", "i-1"): saved}, now=now
    )

    with pipeline.start() as streams:
        instance = next(iter(streams.instances))

    assert instance.reaper_state == saved


def test_kinds_stream_independently(config, now):
    instances = FakeHandler(ResourceKind.INSTANCE, config, {"us-east-1": [make_instance("i-1", now=now)]})
    volumes = FakeHandler(ResourceKind.VOLUME, config, {"us-east-1": [Volume(region="us-east-1", id="vol-1")]})
    pipeline = DiscoveryPipeline(
        {ResourceKind.INSTANCE: instances, ResourceKind.VOLUME: volumes}, REGIONS, config, now=now
    )

    with pipeline.start() as streams:
        # volumes first: an unconsumed instance stream must not block them
        assert [v.id for v in streams.volumes] == ["vol-1"]
        assert [i.id for i in streams.instances] == ["i-1"]


def test_cannot_start_twice(config, now):
    pipeline = DiscoveryPipeline({}, REGIONS, config, now=now)
    pipeline.start()

    with pytest.raises(DiscoveryError):
        pipeline.start()

    pipeline.close()
