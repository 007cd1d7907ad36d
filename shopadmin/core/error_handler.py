"""
Error handling for the HTTP layer

Domain exceptions (ShopAdminError) are mapped to status codes from
EXCEPTION_STATUS_CODES and returned as structured JSON. Messages that look
like they carry driver/SQL internals are replaced with a generic message
outside DEBUG.
"""
import logging
from typing import Union

from fastapi import Request
from fastapi.responses import JSONResponse

from shopadmin.core.config import settings
from shopadmin.core.exceptions import ShopAdminError, status_code_for

logger = logging.getLogger(__name__)

# Patterns that indicate internal/sensitive error information
SENSITIVE_PATTERNS = [
    "password",
    "secret",
    "sqlalchemy",
    "asyncpg",
    "postgresql",
    "sqlite",
    "traceback",
    "redis://",
]


def is_sensitive_error(message: str) -> bool:
    message_lower = message.lower()
    return any(pattern in message_lower for pattern in SENSITIVE_PATTERNS)


def sanitize_error_message(error: Union[str, Exception]) -> str:
    """Sanitize an error message for safe client exposure."""
    message = error if isinstance(error, str) else str(error)

    if settings.DEBUG:
        return message

    if is_sensitive_error(message):
        return "An internal error occurred. Please try again later."

    if len(message) > 200:
        return message[:200] + "..."

    return message


async def shopadmin_error_handler(request: Request, exc: ShopAdminError) -> JSONResponse:
    status_code = status_code_for(exc)

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r} details={exc.details}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc.code}")

    content = {
        "error": exc.code,
        "message": sanitize_error_message(exc.message),
    }
    if status_code < 500 or settings.DEBUG:
        content["details"] = exc.details

    return JSONResponse(status_code=status_code, content=content)
