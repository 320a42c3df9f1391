"""
Search index synchronization.

Asks the managed AutoRAG instance to re-index the content bucket. The call
is best-effort: every failure is logged and reported as None.
"""

import logging
from typing import Any

import httpx

from tedix_common.constants import AI_SEARCH_API_URL, AI_SEARCH_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def trigger_ai_search_sync(
    account_id: str | None,
    instance: str | None,
    api_token: str | None,
    timeout: float = AI_SEARCH_TIMEOUT_SECONDS,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, Any] | None:
    """
    Trigger a sync of the search index.

    Args:
        account_id: Cloudflare account id
        instance: AutoRAG instance name
        api_token: API token
        timeout: Request timeout in seconds
        transport: Optional httpx transport

    Returns:
        Parsed response (``result.job_id`` holds the sync job), or None on failure
    """
    if not account_id or not instance or not api_token:
        logger.error("AI search sync skipped: account, instance or token not configured")
        return None

    url = f"{AI_SEARCH_API_URL}/accounts/{account_id}/autorag/rags/{instance}/sync"
    logger.info(f"Triggering AI search sync for instance {instance}")

    try:
        with httpx.Client(timeout=timeout, transport=transport) as client:
            response = client.patch(
                url,
                headers={
                    "Authorization": f"Bearer {api_token}",
                    "Content-Type": "application/json",
                },
            )
        if response.is_error:
            logger.error(f"AI search sync failed: {response.status_code} - {response.text[:200]}")
            return None
        result = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Error triggering AI search sync: {e}")
        return None

    job_id = (result.get("result") or {}).get("job_id") if isinstance(result, dict) else None
    logger.info(f"AI search sync triggered, job_id={job_id}")
    return result if isinstance(result, dict) else {"result": result}
