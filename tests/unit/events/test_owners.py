import pytest

from aws_reaper.events.owners import resolve_owner
from aws_reaper.reapable.base import UnownedError

from tests.helpers import make_instance


@pytest.mark.parametrize("owner_tag,expected", [
    ("alice@example.org", "alice@example.org"),
    ("Alice Smith <alice@example.org>", "alice@example.org"),
    ("alice", "alice@corp.example.com"),
])
def test_owner_tag(owner_tag, expected, now):
    instance = make_instance(tags={"Owner": owner_tag}, now=now)

    assert resolve_owner(instance, default_email_host="corp.example.com") == expected


def test_bare_name_without_host_uses_default_owner(now):
    instance = make_instance(tags={"Owner": "alice"}, now=now)

    assert resolve_owner(instance, default_owner="ops@example.org") == "ops@example.org"


def test_untagged_uses_default_owner(now):
    assert resolve_owner(make_instance(now=now), default_owner="ops@example.org") == "ops@example.org"


def test_unowned(now):
    with pytest.raises(UnownedError, match="i-0123456789abcdef0"):
        resolve_owner(make_instance(now=now))
