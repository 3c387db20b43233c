from unittest.mock import patch

import pytest

from aws_reaper.core.models import FilterMode
from aws_reaper.filters.engine import is_whitelisted, matches, matches_filters
from aws_reaper.filters.filter import Filter
from aws_reaper.reapable.base import Reapable

from tests.helpers import make_instance


@pytest.fixture
def instance(now):
    return make_instance(tags={"Owner": "alice", "Team": "infra"}, launched_hours_ago=40, now=now)


OLD = [Filter("LaunchTimeNotInTheLast", ("24h",))]
TINY = [Filter("InstanceType", ("t2.micro",)), Filter("Tagged", ("Owner",))]
BIG = [Filter("InstanceType", ("m5.24xlarge",))]


def test_group_is_a_conjunction(instance, now):
    assert matches(instance, TINY, now)
    assert not matches(instance, TINY + BIG, now)


def test_empty_group_matches(instance, now):
    assert matches(instance, [], now)


def test_any_mode(instance, now):
    groups = {"old": OLD, "big": BIG}

    assert matches_filters(instance, groups, mode=FilterMode.ANY, now=now)
    assert set(instance.matched_filter_groups) == {"old"}


def test_all_mode(instance, now):
    assert not matches_filters(instance, {"old": OLD, "big": BIG}, mode="all", now=now)
    assert instance.matched_filter_groups == {}

    assert matches_filters(instance, {"old": OLD, "tiny": TINY}, mode="all", now=now)
    assert set(instance.matched_filter_groups) == {"old", "tiny"}


@pytest.mark.parametrize("groups", [{}, {"empty": []}, {"a": [], "b": []}])
def test_no_filters_match_everything(instance, now, groups):
    assert matches_filters(instance, groups, now=now)


def test_whitelist_wins_over_matching_groups(instance, now):
    instance.tags["REAPER_SPARE_ME"] = "true"

    assert is_whitelisted(instance, "REAPER_SPARE_ME")
    assert not matches_filters(instance, {"old": OLD}, whitelist_tag="REAPER_SPARE_ME", now=now)
    assert not matches_filters(instance, {}, whitelist_tag="REAPER_SPARE_ME", now=now)


def test_whitelist_tag_value_is_irrelevant(instance):
    instance.tags["REAPER_SPARE_ME"] = ""

    assert is_whitelisted(instance, "REAPER_SPARE_ME")
    assert not is_whitelisted(instance, None)


def test_unknown_function_is_a_non_match(instance, now):
    assert not matches(instance, [Filter("NoSuchFilter", ())], now)


def test_bad_argument_is_a_non_match(instance, now):
    assert not matches(instance, [Filter("LaunchTimeInTheLast", ("soon",))], now)
    assert not matches(instance, [Filter("Tagged", ())], now)


def test_unexpected_predicate_error_is_a_non_match(instance, now):
    with patch("aws_reaper.filters.engine.FILTER_REGISTRY.lookup") as lookup:
        lookup.return_value = lambda resource, f, t: 1 / 0
        assert not matches(instance, [Filter("Tagged", ("Owner",))], now)


def test_unknown_kind_never_matches(now):
    resource = Reapable(region="us-east-1", id="x-1")

    assert not matches_filters(resource, {}, now=now)


def test_matched_groups_reset_between_evaluations(instance, now):
    matches_filters(instance, {"old": OLD}, now=now)
    assert instance.matched_filter_groups

    matches_filters(instance, {"big": BIG}, now=now)
    assert instance.matched_filter_groups == {}


def test_reapable_filter_uses_the_engine(instance, now):
    assert instance.filter(Filter("Tagged", ("Team",)), now)
    assert not instance.filter(Filter("Tagged", ("Cost",)), now)
