"""Unit tests for reapable/scaling.py"""

from datetime import datetime, timedelta, timezone

import pytest

from aws_reaper.reapable.scaling import ScaleAction, ScalingSchedule, ScheduleError, normalize_cron

WEEKNIGHTS = "0 17 * * 1-5,0 9 * * 1-5"


def _at(hour, minute=0, day=3):
    # 2024-06-03 is a Monday
    return datetime(2024, 6, day, hour, minute, tzinfo=timezone.utc)


class TestParse:

    def test_instance_tag(self):
        schedule = ScalingSchedule.parse(WEEKNIGHTS)

        assert schedule.scale_down == "0 17 * * 1-5"
        assert schedule.scale_up == "0 9 * * 1-5"
        assert schedule.tag_value() == WEEKNIGHTS

    def test_group_tag_with_sizes(self):
        schedule = ScalingSchedule.parse(WEEKNIGHTS + ",3,1", with_sizes=True)

        assert (schedule.previous_desired, schedule.previous_min) == (3, 1)
        assert schedule.tag_value(with_sizes=True) == WEEKNIGHTS + ",3,1"

    def test_group_tag_without_sizes(self):
        schedule = ScalingSchedule.parse(WEEKNIGHTS, with_sizes=True)

        assert schedule.tag_value(with_sizes=True) == WEEKNIGHTS + ",0,0"

    def test_leading_seconds_field_dropped(self):
        assert normalize_cron("0 0 17 * * 1-5") == "0 17 * * 1-5"

    @pytest.mark.parametrize("value,with_sizes", [
        ("0 17 * * *", False),
        (WEEKNIGHTS + ",3,1", False),
        (WEEKNIGHTS + ",three,1", True),
        ("not a cron,0 9 * * *", False),
        (",0 9 * * *", False),
    ])
    def test_rejects_malformed(self, value, with_sizes):
        with pytest.raises(ScheduleError):
            ScalingSchedule.parse(value, with_sizes)

    def test_from_tag_ignores_bad_values(self):
        assert ScalingSchedule.from_tag(None) is None
        assert ScalingSchedule.from_tag("garbage") is None
        assert ScalingSchedule.from_tag(WEEKNIGHTS) == ScalingSchedule("0 17 * * 1-5", "0 9 * * 1-5")


class TestDueAction:

    @pytest.fixture
    def schedule(self):
        return ScalingSchedule.parse(WEEKNIGHTS)

    def test_scale_down_fired(self, schedule):
        now = _at(17, 30)

        assert schedule.due_action(now - timedelta(hours=1), now) == ScaleAction.DOWN

    def test_scale_up_fired(self, schedule):
        now = _at(9, 30)

        assert schedule.due_action(now - timedelta(hours=1), now) == ScaleAction.UP

    def test_nothing_fired(self, schedule):
        now = _at(12)

        assert schedule.due_action(now - timedelta(hours=1), now) is None

    def test_later_firing_wins(self, schedule):
        assert schedule.due_action(_at(8), _at(18)) == ScaleAction.DOWN

    def test_weekend_is_quiet(self, schedule):
        saturday = _at(18, day=8)

        assert schedule.due_action(saturday - timedelta(hours=6), saturday) is None
