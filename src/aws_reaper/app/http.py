"""
Action link processing.

Turns the two query parameters of an action link into a dispatched action.
Routing and transport belong to the caller (API Gateway, a WSGI app);
``process_action`` only needs the parameters and the Reaper context.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional
from urllib.parse import unquote

from ..core.logger import setup_logger
from ..reapable.base import NotFoundError
from ..token.token import JobAction, TokenError, TokenExpiredError, untokenize
from .reaper import ActionError, Reaper

logger = setup_logger(__name__)


@dataclass
class ActionResponse:
    status: int
    body: str


def _param(params: Mapping[str, Any], name: str) -> str:
    value = params.get(name) if params else None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return value or ""


def process_action(
    params: Mapping[str, Any],
    reaper: Reaper,
    secret: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ActionResponse:
    """
    Verify the token in ``params`` and dispatch its job.

    Returns 400 for a missing, undecodable, forged or expired token and for
    an action that does not match the token, 404 when the resource is not
    registered, 500 when the provider call fails, 200 with the resource's
    new state description otherwise.
    """
    http = reaper.config.http
    secret = secret or http.token_secret

    raw_token = _param(params, http.token_param)
    if not raw_token:
        return ActionResponse(400, "Token Missing")
    raw_action = _param(params, http.action_param)
    if not raw_action:
        return ActionResponse(400, "Action Missing")

    try:
        token = unquote(raw_token, errors="strict")
        action = unquote(raw_action, errors="strict")
    except UnicodeDecodeError:
        return ActionResponse(400, "Invalid Token, could not decode data")

    try:
        job = untokenize(secret, token, now)
    except TokenExpiredError:
        return ActionResponse(400, "Token expired")
    except TokenError as e:
        logger.warning("Rejected action token", extra={"reason": type(e).__name__})
        return ActionResponse(400, "Invalid Token, Could not untokenize")

    if action != job.link_action:
        logger.warning("Action does not match token", extra={"action": action, "expected": job.link_action})
        return ActionResponse(400, "Action does not match token")

    logger.info(
        "Action request received",
        extra={"action": job.action.value, "region": job.region, "resource_id": job.id},
    )

    try:
        if job.action == JobAction.DELAY:
            result = reaper.delay(job.region, job.id, job.extra)
        elif job.action == JobAction.TERMINATE:
            result = reaper.terminate(job.region, job.id)
        elif job.action == JobAction.STOP:
            result = reaper.stop(job.region, job.id)
        elif job.action == JobAction.FORCE_STOP:
            result = reaper.force_stop(job.region, job.id)
        elif job.action == JobAction.WHITELIST:
            result = reaper.whitelist(job.region, job.id)
        else:
            logger.error("Unrecognized job action", extra={"action": job.action})
            return ActionResponse(500, "Unrecognized job token.")
    except NotFoundError as e:
        return ActionResponse(404, str(e))
    except ActionError as e:
        return ActionResponse(500, str(e))

    if not result.success:
        return ActionResponse(500, result.message)
    return ActionResponse(200, result.message)
