"""
Utility functions for logging upstream failures, particularly httpx transport errors.
"""

import logging


def _safe_str(obj) -> str:
    # Exceptions from third-party transports may carry a broken __str__
    for convert in (str, repr):
        try:
            return convert(obj)
        except Exception:
            continue
    return f"<{type(obj).__name__} object (string conversion failed)>"


def _describe(exception: BaseException) -> str:
    # httpx transport errors are frequently raised with an empty message
    text = _safe_str(exception)
    return text if text else type(exception).__name__


def _cause_chain(exception: BaseException) -> list:
    chain = []
    seen = {id(exception)}
    current = exception.__cause__ or exception.__context__
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return chain


def format_exception_message(exception: BaseException) -> str:
    """
    Format an exception message, naming the underlying cause when the error wraps one.
    This function is designed to never throw exceptions itself.

    Args:
        exception: The exception to format

    Returns:
        A formatted string describing the exception
    """
    if exception is None:
        return "None"
    try:
        message = _describe(exception)
        causes = [
            _describe(cause)
            for cause in _cause_chain(exception)
            if _describe(cause) != message
        ]
        if causes:
            return f"{message} (caused by: {'; '.join(causes)})"
        return message
    except Exception:
        return f"<{type(exception).__name__} (formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its type and cause chain.
    This function is designed to never throw exceptions itself, even when dealing with
    broken exception objects or logger failures.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]", "[SVG-Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        if exception is None:
            logger.log(level, f"{safe_prefix} Exception: None")
            return
        message = (
            f"{safe_prefix} {type(exception).__name__}: "
            f"{format_exception_message(exception)}"
        )
        logger.log(level, message, exc_info=exception)
    except Exception:
        try:
            logger.log(level, f"{prefix} Exception (logging failed)")
        except Exception:
            # If even basic logging fails, give up silently
            pass
