"""
Signed, expiring action tokens.

A token authorizes exactly one action on one resource without any server
side session. Layout::

    base64url(salt) "." base64url(payload) "." base64url(tag)

``payload`` is the job as compact JSON with sorted keys. The tag is
HMAC-SHA256 over ``salt`` followed by those payload bytes, keyed with
scrypt(secret, salt). Every segment must
be canonical base64url, so any single character change is rejected.
"""
import base64
import binascii
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional
from urllib.parse import urlencode

from ..core.durations import format_duration, parse_duration
from ..state.state import normalize_time, utcnow

SALT_SIZE = 16
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
KEY_LENGTH = 32
SEPARATOR = "."
EXPIRES_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
DEFAULT_LIFETIME = timedelta(hours=24)

_FIELDS = ("action", "expires", "extra", "id", "region")


class TokenError(Exception):
    """Base class for rejected tokens."""
    pass


class TokenMalformedError(TokenError):
    """The token cannot be decoded."""
    pass


class TokenTamperedError(TokenError):
    """The signature does not match the payload."""
    pass


class TokenExpiredError(TokenError):
    """The signature is valid but the job has expired."""

    def __init__(self, job: "Job"):
        super().__init__(f"token expired at {job.expires.strftime(EXPIRES_FORMAT)}")
        self.job = job


class JobAction(str, Enum):
    DELAY = "Delay"
    TERMINATE = "Terminate"
    STOP = "Stop"
    FORCE_STOP = "ForceStop"
    WHITELIST = "Whitelist"


@dataclass(frozen=True)
class Job:
    """
    A single pending action carried by a token.

    Attributes:
        action: What to do
        region: Resource region
        id: Resource id
        expires: Absolute expiry, whole-second UTC
        extra: Delay duration for DELAY jobs, whole seconds, None otherwise
    """
    action: JobAction
    region: str
    id: str
    expires: datetime
    extra: Optional[timedelta] = None

    def __post_init__(self):
        object.__setattr__(self, "action", JobAction(self.action))
        object.__setattr__(self, "expires", normalize_time(self.expires))
        if self.extra is not None:
            object.__setattr__(self, "extra", timedelta(seconds=int(self.extra.total_seconds())))
        if self.action == JobAction.DELAY:
            if self.extra is None:
                raise ValueError("delay jobs need a duration")
        elif self.extra is not None:
            raise ValueError(f"{self.action.value} jobs take no extra value")

    @classmethod
    def create(
        cls,
        action: JobAction,
        region: str,
        resource_id: str,
        extra: Optional[timedelta] = None,
        lifetime: timedelta = DEFAULT_LIFETIME,
        now: Optional[datetime] = None,
    ) -> "Job":
        return cls(action, region, resource_id, (now or utcnow()) + lifetime, extra)

    def expired(self, now: Optional[datetime] = None) -> bool:
        return normalize_time(now or utcnow()) > self.expires

    @property
    def link_action(self) -> str:
        """Value of the action query parameter for links carrying this job."""
        if self.action == JobAction.DELAY:
            return f"delay_{format_duration(self.extra)}"
        if self.action == JobAction.FORCE_STOP:
            return "force_stop"
        return self.action.value.lower()

    def fields(self) -> Dict[str, str]:
        return {
            "action": self.action.value,
            "expires": self.expires.strftime(EXPIRES_FORMAT),
            "extra": format_duration(self.extra) if self.extra is not None else "",
            "id": self.id,
            "region": self.region,
        }

    @classmethod
    def from_fields(cls, fields: Dict[str, str]) -> "Job":
        extra = fields["extra"]
        return cls(
            action=JobAction(fields["action"]),
            region=fields["region"],
            id=fields["id"],
            expires=datetime.strptime(fields["expires"], EXPIRES_FORMAT),
            extra=parse_duration(extra) if extra else None,
        )


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(segment: str) -> bytes:
    """Decode unpadded base64url, rejecting any non-canonical encoding."""
    try:
        padded = segment + "=" * (-len(segment) % 4)
        data = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError):
        raise TokenMalformedError("invalid base64 segment") from None
    if _b64encode(data) != segment:
        raise TokenMalformedError("non-canonical base64 segment")
    return data


def _derive_key(secret: str, salt: bytes) -> bytes:
    return hashlib.scrypt(
        secret.encode("utf-8"), salt=salt, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P, dklen=KEY_LENGTH
    )


def _sign(key: bytes, salt: bytes, payload: bytes) -> bytes:
    return hmac.new(key, salt + payload, hashlib.sha256).digest()


def _payload(fields: Dict[str, str]) -> bytes:
    return json.dumps(fields, sort_keys=True, separators=(",", ":")).encode("utf-8")


def tokenize(secret: str, job: Job) -> str:
    """Sign ``job`` with ``secret``."""
    if not secret:
        raise ValueError("token secret must not be empty")

    salt = secrets.token_bytes(SALT_SIZE)
    payload = _payload(job.fields())
    tag = _sign(_derive_key(secret, salt), salt, payload)
    return SEPARATOR.join((_b64encode(salt), _b64encode(payload), _b64encode(tag)))


def untokenize(secret: str, token: str, now: Optional[datetime] = None) -> Job:
    """
    Verify ``token`` and return its job.

    Raises:
        TokenMalformedError: The token cannot be decoded
        TokenTamperedError: The signature does not verify
        TokenExpiredError: The token is authentic but expired
    """
    if not secret:
        raise ValueError("token secret must not be empty")
    if not isinstance(token, str):
        raise TokenMalformedError("token must be a string")

    parts = token.split(SEPARATOR)
    if len(parts) != 3:
        raise TokenMalformedError("token must have three segments")

    salt, payload, tag = (_b64decode(part) for part in parts)
    if len(salt) != SALT_SIZE:
        raise TokenMalformedError("bad salt length")

    try:
        fields = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise TokenTamperedError("payload is not valid JSON") from None

    if (
        not isinstance(fields, dict)
        or tuple(sorted(fields)) != _FIELDS
        or not all(isinstance(value, str) for value in fields.values())
        or _payload(fields) != payload
    ):
        raise TokenTamperedError("payload is not a canonical job")

    expected = _sign(_derive_key(secret, salt), salt, payload)
    if not hmac.compare_digest(expected, tag):
        raise TokenTamperedError("signature mismatch")

    try:
        job = Job.from_fields(fields)
    except ValueError:
        raise TokenMalformedError("signed payload is not a valid job") from None

    if job.expired(now):
        raise TokenExpiredError(job)
    return job


def make_link(
    api_url: str,
    secret: str,
    action: JobAction,
    region: str,
    resource_id: str,
    extra: Optional[timedelta] = None,
    lifetime: timedelta = DEFAULT_LIFETIME,
    action_param: str = "action",
    token_param: str = "token",
) -> str:
    """Build ``<api_url>/?action=<action>&token=<token>`` for a fresh job."""
    if not api_url:
        raise ValueError("api_url must not be empty")

    job = Job.create(action, region, resource_id, extra=extra, lifetime=lifetime)
    query = urlencode({action_param: job.link_action, token_param: tokenize(secret, job)})
    base = api_url if api_url.endswith("/") else api_url + "/"
    return f"{base}?{query}"
