"""
Logging utilities for safe logging in Lambda functions.

Inbound events carry webhook signatures, API tokens and whole scraped pages.
These helpers mask that data before it reaches CloudWatch Logs and give
operation outcomes a consistent structured shape.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Key substrings whose values are masked in logs.
# Substring matching is intentional: "signature" matches "x-firecrawl-signature",
# "token" matches "ai_search_api_token". Over-masking is acceptable.
DEFAULT_SENSITIVE_KEYS = frozenset(
    {
        "signature",  # Webhook HMAC signatures
        "secret",  # Webhook shared secrets
        "token",  # API tokens
        "authorization",  # Auth headers
        "api_key",  # Scraping service keys
        "apikey",
        "password",
        "credential",
        "body",  # Raw request bodies
        "markdown",  # Scraped page bodies
        "content",  # Content items and processed bodies
        "html",
    }
)

MAX_ERROR_LENGTH = 500


def mask_value(key: str, value: Any, sensitive_keys: frozenset[str] | None = None) -> Any:
    """
    Mask a value if its key indicates sensitive or bulky data.

    Args:
        key: The dictionary key or field name
        value: The value to potentially mask
        sensitive_keys: Set of key substrings to treat as sensitive

    Returns:
        Masked value if sensitive, original value otherwise
    """
    if sensitive_keys is None:
        sensitive_keys = DEFAULT_SENSITIVE_KEYS

    key_lower = key.lower()

    if any(s in key_lower for s in sensitive_keys):
        if isinstance(value, str):
            # Long values keep a short prefix and their length for debugging
            if len(value) > 20:
                return f"{value[:10]}...({len(value)} chars)"
            return "***"
        if isinstance(value, (list, dict)):
            return f"[{type(value).__name__}: masked]"
        return "***"

    if isinstance(value, dict):
        return {k: mask_value(k, v, sensitive_keys) for k, v in value.items()}

    if isinstance(value, list):
        return [mask_value(key, item, sensitive_keys) for item in value]

    return value


def safe_log_event(
    event: dict[str, Any],
    sensitive_keys: frozenset[str] | None = None,
) -> dict[str, Any]:
    """
    Return event with sensitive data masked for safe logging.

    Args:
        event: The Lambda event or dictionary to sanitize
        sensitive_keys: Optional set of key substrings to treat as sensitive

    Returns:
        A copy of the event with sensitive values masked

    Example:
        ```python
        def lambda_handler(event, context):
            logger.info(f"Webhook received: {safe_log_event(event)}")
        ```
    """
    if not isinstance(event, dict):
        return {"_raw": str(event)[:100]}

    if sensitive_keys is None:
        sensitive_keys = DEFAULT_SENSITIVE_KEYS

    try:
        return {k: mask_value(k, v, sensitive_keys) for k, v in event.items()}
    except Exception as e:
        # Never fall back to logging the raw event
        logger.warning(f"Failed to mask event: {e}")
        return {"_error": "Could not safely serialize event", "_keys": list(event.keys())[:10]}


def log_summary(
    operation: str,
    *,
    success: bool = True,
    duration_ms: float | None = None,
    item_count: int | None = None,
    error: str | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Create a structured log summary for an operation.

    Args:
        operation: Name of the operation (e.g., "discover_brand", "sweep")
        success: Whether the operation succeeded
        duration_ms: Optional duration in milliseconds
        item_count: Optional count of items processed
        error: Optional error message (truncated)
        **kwargs: Additional fields; primitives are kept, sequences become counts

    Returns:
        Dictionary suitable for structured logging

    Example:
        ```python
        logger.info(log_summary("upload_brand_content", item_count=5, brand_id=brand_id))
        ```
    """
    summary: dict[str, Any] = {
        "operation": operation,
        "success": success,
    }

    if duration_ms is not None:
        summary["duration_ms"] = round(duration_ms, 2)

    if item_count is not None:
        summary["item_count"] = item_count

    if error:
        summary["error"] = error[:MAX_ERROR_LENGTH]

    for key, value in kwargs.items():
        if isinstance(value, (str, int, float, bool)):
            summary[key] = value
        elif isinstance(value, (list, tuple)):
            summary[key] = len(value)

    return summary
