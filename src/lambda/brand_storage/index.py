"""
Brand Storage Lambda

Maintenance operations on the brand content bucket.

Input event:
{
    "action": "upload" | "list" | "delete" | "cleanup" | "cleanup_all",
    ...action parameters...
}

Actions:
    upload       {"brandId", "domain", "content": [{"url", "title", "content", ...}]}
    list         {"prefix"?, "brandId"?, "limit"?}
    delete       {"brandId", "domain", "category"?}
    cleanup      {"brandsToKeep": ["<brand id or domain>", ...]}
    cleanup_all  {"confirm": true}

Output:
{
    "success": true,
    ...action result...
}
"""

import logging
import os

from tedix_common import storage
from tedix_common.config import PipelineConfig
from tedix_common.discovery.context import resolve_brand_context
from tedix_common.discovery.models import BrandContent, UrlCategory
from tedix_common.discovery.repository import BrandRepository
from tedix_common.discovery.urls import normalize_domain
from tedix_common.exceptions import InvalidDomainError
from tedix_common.logging_utils import log_summary, safe_log_event

logger = logging.getLogger()
logger.setLevel(os.environ.get("LOG_LEVEL", "INFO"))

DEFAULT_LIST_LIMIT = 100


def _error(message, details=None):
    response = {"success": False, "error": message}
    if details:
        response["details"] = details
    return response


def handle_upload(event, config):
    brand_id = event.get("brandId")
    domain = event.get("domain")
    items = event.get("content") or []
    if not brand_id or not domain:
        return _error("brandId and domain are required")

    content = [BrandContent.from_dict(item) for item in items if item.get("url")]
    results = storage.upload_brand_content(
        config.content_bucket,
        brand_id,
        normalize_domain(domain),
        content,
        overwrite=False,
    )

    successful = sum(1 for r in results if r.success)
    logger.info(
        log_summary("upload_brand_content", success=successful > 0, item_count=len(results), brand_id=brand_id)
    )
    return {
        "success": successful > 0,
        "summary": {"total": len(results), "successful": successful, "failed": len(results) - successful},
        "results": [r.to_dict() for r in results],
    }


def handle_list(event, config):
    limit = int(event.get("limit") or DEFAULT_LIST_LIMIT)
    prefix = event.get("prefix") or ""

    if event.get("brandId"):
        repository = BrandRepository(config.brands_table, config.brand_urls_table)
        brand_context = resolve_brand_context(repository, event["brandId"])
        if brand_context is None:
            return _error("Brand not found", event["brandId"])
        brand = brand_context.brand
        objects = storage.list_brand_content(
            config.content_bucket,
            brand.id,
            brand.primary_domain,
            category=event.get("category"),
            limit=limit,
        )
        prefix = storage.get_brand_prefix(brand.id, brand.primary_domain)
    else:
        objects = storage.list_objects(config.content_bucket, prefix, limit=limit)

    return {"success": True, "prefix": prefix, "count": len(objects), "objects": objects}


def handle_delete(event, config):
    brand_id = event.get("brandId")
    domain = event.get("domain")
    category = event.get("category")
    if not brand_id or not domain:
        return _error("brandId and domain are required")
    if category and category not in {c.value for c in UrlCategory}:
        return _error(f"Unknown category: {category}")

    deleted = storage.delete_brand_content(config.content_bucket, brand_id, normalize_domain(domain), category)
    return {"success": True, "deleted": deleted}


def handle_cleanup(event, config):
    keep = event.get("brandsToKeep")
    if not isinstance(keep, list):
        return _error("brandsToKeep list is required")

    result = storage.cleanup_brand_folders(config.content_bucket, keep)
    return {"success": True, "brandsKept": keep, **result}


def handle_cleanup_all(event, config):
    if event.get("confirm") is not True:
        return _error("cleanup_all requires confirm: true")

    result = storage.delete_all_content(config.content_bucket)
    if result["total"] == 0:
        return {"success": True, "message": "Bucket already empty", "deleted": 0, "total": 0}
    return {"success": True, "message": "Cleaned up entire bucket", **result}


ACTIONS = {
    "upload": handle_upload,
    "list": handle_list,
    "delete": handle_delete,
    "cleanup": handle_cleanup,
    "cleanup_all": handle_cleanup_all,
}


def lambda_handler(event, context):
    """
    Main Lambda handler - dispatches one storage action.
    """
    config = PipelineConfig.from_env()
    config.require("content_bucket")

    logger.info(f"Storage request: {safe_log_event(event)}")

    action = event.get("action")
    handler = ACTIONS.get(action)
    if handler is None:
        return _error(f"Unknown action: {action}")

    if action == "list" and event.get("brandId"):
        config.require("brands_table", "brand_urls_table")

    try:
        return handler(event, config)
    except InvalidDomainError as e:
        return _error(str(e))
    except Exception as e:
        logger.exception(f"Storage action {action} failed")
        return _error(f"{action} failed", str(e) or "Unknown error")
