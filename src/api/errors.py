"""API Error Handling.

Maps the engine's ``DeploymentError`` family onto HTTP responses with a
standard envelope::

    {"error": {"code": "...", "message": "...", "timestamp": "...", "deployment_id": "..."}}
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi.responses import JSONResponse
from starlette.requests import Request

from src.deployment import DeploymentError, ErrorCode

logger = logging.getLogger(__name__)

ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.DEPLOYMENT_NOT_FOUND: 404,
    ErrorCode.INVALID_TRANSITION: 409,
    ErrorCode.NO_ROLLBACK_TARGET: 409,
    ErrorCode.ROLLBACK_FAILED: 409,
    ErrorCode.HEALTH_CHECK_TIMEOUT: 500,
    ErrorCode.PROVISIONING_FAILED: 500,
    ErrorCode.ROLLOUT_HALTED: 409,
    ErrorCode.ROLLOUT_ABORTED: 409,
}


def error_body(exc: DeploymentError) -> Dict[str, Any]:
    """Build the error envelope for ``exc``."""
    body: Dict[str, Any] = {
        "error": {
            "code": exc.error_code.value,
            "message": exc.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }
    if exc.deployment_id:
        body["error"]["deployment_id"] = exc.deployment_id
    return body


async def deployment_error_handler(request: Request, exc: DeploymentError) -> JSONResponse:
    status_code = ERROR_STATUS_MAP.get(exc.error_code, 500)
    if status_code >= 500:
        logger.error("API Error [%s] (%d): %s", exc.error_code.value, status_code, exc.message)
    else:
        logger.warning("API Error [%s] (%d): %s", exc.error_code.value, status_code, exc.message)
    return JSONResponse(status_code=status_code, content=error_body(exc))


def register_exception_handlers(app: Any) -> None:
    """Register the engine's exception handlers on a FastAPI application."""
    app.add_exception_handler(DeploymentError, deployment_error_handler)
