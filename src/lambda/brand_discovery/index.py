"""
Brand Discovery Lambda

Starts the brand discovery pipeline for a domain: brand extraction, URL
mapping and batch content scraping. All jobs run asynchronously; webhook
events and the discovery sweeper carry them to completion.

Input event (direct invocation or API Gateway proxy):
{
    "domain": "acme.io"
}

Output:
{
    "success": true,
    "brandId": "uuid",
    "status": "pending",
    "extractJobId": "...",
    "mapJobId": "map-...",
    "scrapeJobId": "...",
    "message": "...",
    "estimatedTime": "2-5 minutes",
    "brand": {...},
    "pipeline": {...}
}
"""

import json
import logging
import os

from tedix_common.config import PipelineConfig
from tedix_common.discovery.pipeline import discover_brand
from tedix_common.discovery.repository import BrandRepository
from tedix_common.exceptions import InvalidDomainError
from tedix_common.firecrawl import FirecrawlClient
from tedix_common.logging_utils import safe_log_event

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))


def _parse_request(event):
    """Return the request payload from a direct or API Gateway event."""
    if "body" not in event:
        return event

    body = event.get("body") or "{}"
    if isinstance(body, dict):
        return body
    return json.loads(body)


def _respond(event, status_code, payload):
    if "body" not in event:
        return payload
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(payload, default=str),
    }


def lambda_handler(event, context):
    """
    Main Lambda handler - starts brand discovery for one domain.
    """
    config = PipelineConfig.from_env()
    config.require("brands_table", "brand_urls_table", "firecrawl_api_key", "backend_url")

    logger.info(f"Brand discovery request: {safe_log_event(event)}")

    try:
        request = _parse_request(event)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Invalid request body: {e}")
        return _respond(event, 400, {"success": False, "error": "Invalid request body"})

    domain = request.get("domain") if isinstance(request, dict) else None
    if not domain or not isinstance(domain, str):
        return _respond(event, 400, {"success": False, "error": "domain is required"})

    try:
        repository = BrandRepository(config.brands_table, config.brand_urls_table)
        firecrawl = FirecrawlClient(config.firecrawl_api_key, base_url=config.firecrawl_api_url)

        result = discover_brand(domain, repository, firecrawl, config.webhook_url)
        return _respond(event, 200, result.to_dict())

    except InvalidDomainError as e:
        logger.warning(str(e))
        return _respond(event, 400, {"success": False, "error": str(e)})

    except Exception as e:
        logger.exception("Brand discovery failed")
        return _respond(
            event,
            500,
            {
                "success": False,
                "error": "Brand discovery pipeline failed",
                "details": str(e) or "Unknown error",
            },
        )
