"""
Discovery Sweeper Lambda

Scheduled by an EventBridge rule (every minute). Polls extract jobs of
brands awaiting extraction, then finalizes brands that are both scraped and
extracted and triggers the AI search index sync.

Input event: EventBridge scheduled event (contents ignored)

Output:
{
    "extract": {"checked": 2, "completed": 1, ...},
    "finalize": {"checked": 1, "finalized": 1, ...}
}
"""

import logging
import os
from functools import partial

from tedix_common.ai_search import trigger_ai_search_sync
from tedix_common.config import PipelineConfig
from tedix_common.discovery.reconcile import run_sweep
from tedix_common.discovery.repository import BrandRepository
from tedix_common.firecrawl import FirecrawlClient

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))


def lambda_handler(event, context):
    """
    Main Lambda handler - runs one reconciliation sweep.
    """
    config = PipelineConfig.from_env()
    config.require("brands_table", "brand_urls_table", "firecrawl_api_key")

    logger.info(f"Discovery sweep triggered: {event.get('time') if isinstance(event, dict) else None}")

    if not config.ai_search_configured:
        logger.warning("AI search is not configured, syncs will be skipped")

    sync_trigger = partial(
        trigger_ai_search_sync,
        config.ai_search_account_id,
        config.ai_search_instance,
        config.ai_search_api_token,
    )

    try:
        repository = BrandRepository(config.brands_table, config.brand_urls_table)
        firecrawl = FirecrawlClient(config.firecrawl_api_key, base_url=config.firecrawl_api_url)
        return run_sweep(repository, firecrawl, sync_trigger)
    except Exception as e:
        logger.exception("Discovery sweep failed")
        return {"error": str(e)}
