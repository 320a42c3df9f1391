"""
Firecrawl Webhook Lambda

Receives signed batch scrape events through API Gateway and applies them to
brand and URL state. The raw body is verified before anything is parsed.

Input event (API Gateway proxy):
{
    "headers": {"X-Firecrawl-Signature": "sha256=<hex>"},
    "body": "{\"type\": \"batch_scrape.page\", \"id\": \"...\", ...}",
    "isBase64Encoded": false
}

Output:
{
    "statusCode": 200 | 401 | 500,
    "body": "OK"
}
"""

import base64
import logging
import os

from tedix_common.config import PipelineConfig
from tedix_common.discovery.repository import BrandRepository
from tedix_common.discovery.webhooks import process_webhook
from tedix_common.logging_utils import safe_log_event

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))


def _raw_body(event) -> bytes:
    """Request body exactly as sent (signatures cover these bytes)."""
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    return body.encode("utf-8")


def lambda_handler(event, context):
    """
    Main Lambda handler - verifies and processes one webhook delivery.
    """
    config = PipelineConfig.from_env()
    config.require("brands_table", "brand_urls_table", "content_bucket", "webhook_secret")

    logger.info(f"Webhook received: {safe_log_event(event)}")

    try:
        body = _raw_body(event)
        repository = BrandRepository(config.brands_table, config.brand_urls_table)
        response = process_webhook(
            body,
            event.get("headers") or {},
            config.webhook_secret,
            repository,
            config.content_bucket,
        )
    except Exception:
        logger.exception("Error handling webhook")
        return {"statusCode": 500, "headers": {"Content-Type": "text/plain"}, "body": "Internal server error"}

    return {
        "statusCode": response.status_code,
        "headers": {"Content-Type": "text/plain"},
        "body": response.body,
    }
