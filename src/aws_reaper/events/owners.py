"""Owner resolution for notifications."""
from email.utils import parseaddr
from typing import Optional

from ..reapable.base import UnownedError

OWNER_TAG = "Owner"


def resolve_owner(
    resource,
    default_owner: Optional[str] = None,
    default_email_host: Optional[str] = None,
) -> str:
    """
    Return the email address responsible for ``resource``.

    The ``Owner`` tag is used when it is an address; a bare name gets
    ``@default_email_host`` appended. Otherwise ``default_owner`` applies.

    Raises:
        UnownedError: If no owner can be resolved
    """
    owner = (resource.tags.get(OWNER_TAG) or "").strip()
    if owner:
        _, address = parseaddr(owner)
        if address and "@" in address:
            return address
        if default_email_host and "@" not in owner and " " not in owner:
            return f"{owner}@{default_email_host}"

    if default_owner:
        return default_owner

    raise UnownedError(f"{resource.description_tiny()} in {resource.region} has no owner")
