"""
AWS Lambda handlers for the reaper.

``handler`` runs one reap cycle, typically on an EventBridge schedule.
``action_handler`` serves action links behind API Gateway.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional

from ..core.config import get_config
from ..core.logger import setup_logger
from .http import process_action
from .reaper import Reaper

# Module logger
logger = setup_logger(__name__)

# Reused across warm invocations of the action handler
_action_reaper: Optional[Reaper] = None


def _request_id(context: Any) -> str:
    try:
        return getattr(context, "aws_request_id", "local-test")
    except Exception:
        return "unknown"


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler running one reap cycle.

    Args:
        event: Scheduled event (contents ignored)
        context: Lambda context object

    Returns:
        Dictionary with statusCode and a JSON body holding the cycle summary

    Example response:
        {
            "statusCode": 200,
            "body": "{
                \"summary\": {\"total\": 12, \"matched\": 3, \"advanced\": 2, ...},
                \"timestamp\": \"2024-12-17T10:30:00Z\",
                \"request_id\": \"abc-123\"
            }"
        }
    """
    request_id = _request_id(context)
    logger.info("Lambda invoked", extra={"request_id": request_id})

    try:
        config = get_config()
        reaper = Reaper(config)
        summary = reaper.run_cycle()
        # Lambda freezes the sandbox on return; flush notifications first
        reaper.close()

        logger.info("Lambda execution completed successfully", extra={"request_id": request_id, **summary})
        return {
            "statusCode": 200,
            "body": json.dumps(
                {"summary": summary, "timestamp": _timestamp(), "request_id": request_id},
                default=str,
            ),
        }

    except Exception as e:
        logger.error(
            "Lambda execution failed",
            extra={"error": str(e), "request_id": request_id},
            exc_info=True,
        )
        return _error_response(status_code=500, error=str(e), request_id=request_id)


def action_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for action links (API Gateway proxy integration).

    The registry is populated from discovery on a cold start.
    """
    global _action_reaper

    request_id = _request_id(context)
    params = (event or {}).get("queryStringParameters") or {}

    try:
        if _action_reaper is None:
            _action_reaper = Reaper(get_config())
        if len(_action_reaper.registry) == 0:
            _action_reaper.refresh()

        response = process_action(params, _action_reaper)
    except Exception as e:
        logger.error(
            "Action request failed",
            extra={"error": str(e), "request_id": request_id},
            exc_info=True,
        )
        return _error_response(status_code=500, error=str(e), request_id=request_id)

    logger.info(
        "Action request completed",
        extra={"status": response.status, "request_id": request_id},
    )
    return {
        "statusCode": response.status,
        "headers": {"Content-Type": "text/plain"},
        "body": response.body,
    }


def _error_response(status_code: int, error: str, request_id: str) -> Dict[str, Any]:
    """
    Create standardized error response.

    Args:
        status_code: HTTP status code
        error: Error message
        request_id: Lambda request ID

    Returns:
        Lambda response dictionary
    """
    return {
        "statusCode": status_code,
        "body": json.dumps({
            "error": error,
            "timestamp": _timestamp(),
            "request_id": request_id,
        }),
    }
