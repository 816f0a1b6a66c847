"""
Error tracking collaborator.

Exceptions and messages are written to the structured log under the
``error_tracking`` logger so they can be picked up by the log pipeline.
"""
from typing import Optional

import structlog

logger = structlog.get_logger("error_tracking")


def capture_exception(error: BaseException, context: Optional[dict] = None) -> None:
    logger.error(
        "exception_captured",
        error=str(error),
        error_type=type(error).__name__,
        context=context or {},
        exc_info=error,
    )


def capture_message(message: str, level: str = "info") -> None:
    if level == "error":
        logger.error("message_captured", message=message)
    elif level == "warning":
        logger.warning("message_captured", message=message)
    else:
        logger.info("message_captured", message=message)


def set_user(user: Optional[dict]) -> None:
    if user:
        structlog.contextvars.bind_contextvars(user_id=user.get("id"), user_email=user.get("email"))
    else:
        structlog.contextvars.unbind_contextvars("user_id", "user_email")
