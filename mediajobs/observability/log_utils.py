"""
Structured logging helpers.

Builds `extra=` dicts that are always safe to hand to the stdlib logger:
values are flattened to short strings and keys that collide with LogRecord
attributes (which make `Logger.makeRecord` raise KeyError) are prefixed.

Dependencies: logging (stdlib)
System role: Logging helper functions
"""

import logging
from typing import Any

# Attributes every LogRecord carries, plus the two the formatter adds
RESERVED_RECORD_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


def safe_log_value(value: Any, max_length: int = 500) -> str:
    """
    Render a value for log context without dumping large payloads.

    Collections are summarised by size, long strings are truncated.
    """
    try:
        if value is None:
            return "None"
        if isinstance(value, str):
            rendered = value
        elif isinstance(value, (list, tuple)):
            rendered = f"{type(value).__name__}({len(value)} items)"
        elif isinstance(value, dict):
            rendered = f"dict({len(value)} keys)"
        else:
            rendered = str(value)
    except Exception as e:
        return f"<unable to log: {type(e).__name__}>"

    if len(rendered) > max_length:
        return rendered[:max_length] + f"... (truncated, {len(rendered)} total)"
    return rendered


def safe_extra(**context: Any) -> dict[str, str]:
    """
    Context dict for `extra=`.

    Keys such as `filename` or `args` are renamed to `ctx_filename` /
    `ctx_args` instead of crashing the logging call.
    """
    return {
        (f"ctx_{key}" if key in RESERVED_RECORD_KEYS else key): safe_log_value(value)
        for key, value in context.items()
    }


def log_exception_with_context(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    **context: Any,
) -> None:
    """
    Log an error with its traceback, exception type/message and context.

    Args:
        logger: Logger instance
        message: Log message
        exc: Exception being reported
        **context: Extra fields (job_id, ...)
    """
    extra = safe_extra(**context)
    extra.update(error_type=type(exc).__name__, error_msg=str(exc))
    logger.error(message, exc_info=exc, extra=extra)
