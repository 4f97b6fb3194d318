"""Translation of service outcomes into the uniform response envelope."""

import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from src.api.middleware.error_handler import APIError
from src.schemas.common import ApiResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def enveloped(operation: Awaitable[T], message: str = "Operation completed successfully") -> ApiResponse[Any]:
    """Await a service call and wrap its result.

    Business-rule failures (any :class:`APIError`) become ``success=False``
    with the error message and HTTP 200. Other exceptions propagate to the
    error middleware.

    Args:
        operation: The pending service coroutine.
        message: Message returned on success.

    Returns:
        ApiResponse: The envelope.
    """
    try:
        data = await operation
    except APIError as e:
        logger.warning(
            "Operation failed: %s - %s",
            e.error_type,
            e.message,
            extra={"status_code": e.status_code},
        )
        return ApiResponse.fail(e.message)

    return ApiResponse.ok(data, message)
