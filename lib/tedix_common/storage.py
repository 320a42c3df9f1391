"""
Content store operations for scraped brand content.

Objects live in an S3-compatible bucket (AWS S3 or Cloudflare R2 via
STORAGE_ENDPOINT_URL) under a tenant-scoped key layout:

    brands/{brand_id}/{domain}/content/{category}/{filename}-{unix_millis}.md
"""

import json
import logging
import os
import re
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tedix_common.constants import (
    BRANDS_PREFIX,
    DELETE_BATCH_SIZE,
    UPLOAD_BATCH_DELAY_SECONDS,
    UPLOAD_BATCH_SIZE,
)
from tedix_common.discovery.models import BrandContent, UploadResult
from tedix_common.discovery.urls import classify_url

logger = logging.getLogger(__name__)

# Lazy-loaded client (initialized on first use)
_s3_client = None

_EXTENSION_RE = re.compile(r"\.[^/.]+$")
_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]+")
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)

# S3 user metadata must be ASCII
_NON_ASCII_RE = re.compile(r"[^\x20-\x7e]")
MAX_METADATA_VALUE_LENGTH = 256


def get_s3_client():
    """Get or create the object store client (honors STORAGE_ENDPOINT_URL)."""
    global _s3_client
    if _s3_client is None:
        endpoint_url = os.environ.get("STORAGE_ENDPOINT_URL") or None
        _s3_client = boto3.client("s3", endpoint_url=endpoint_url)
    return _s3_client


def _now_ms() -> int:
    return int(time.time() * 1000)


# ============================================================================
# Key derivation
# ============================================================================


def get_brand_prefix(brand_id: str, domain: str) -> str:
    """Tenant prefix for a brand's content: ``brands/{brand_id}/{domain}``."""
    normalized = _SCHEME_RE.sub("", domain).lower()
    if normalized.startswith("www."):
        normalized = normalized[4:]
    return f"{BRANDS_PREFIX}/{brand_id}/{normalized}"


def sanitize_filename(url: str, index: int) -> str:
    """
    Derive a filename from the URL's last path segment.

    The extension is stripped and non-alphanumeric runs become single hyphens.
    A URL without path segments yields ``index``; anything that sanitizes to
    nothing falls back to ``page-{index}``.
    """
    try:
        segments = [s for s in urlparse(url).path.split("/") if s]
    except ValueError:
        segments = []

    filename = segments[-1] if segments else "index"
    filename = _EXTENSION_RE.sub("", filename)
    filename = _NON_ALNUM_RE.sub("-", filename).strip("-")
    return filename or f"page-{index}"


def _content_key_prefix(brand_id: str, domain: str, url: str, index: int) -> str:
    """Everything of the key before the timestamp."""
    category, _ = classify_url(url)
    filename = sanitize_filename(url, index)
    return f"{get_brand_prefix(brand_id, domain)}/content/{category.value}/{filename}-"


def generate_content_key(
    brand_id: str,
    domain: str,
    url: str,
    index: int,
    timestamp_ms: int | None = None,
) -> str:
    """
    Build the storage key for a content item.

    Args:
        brand_id: Owning brand
        domain: Brand domain
        url: Source URL of the page
        index: Position of the item in its upload batch
        timestamp_ms: Unix millis (defaults to now)

    Returns:
        ``brands/{brand_id}/{domain}/content/{category}/{filename}-{timestamp}.md``
    """
    if timestamp_ms is None:
        timestamp_ms = _now_ms()
    return f"{_content_key_prefix(brand_id, domain, url, index)}{timestamp_ms}.md"


def find_existing_content_key(
    bucket: str,
    brand_id: str,
    domain: str,
    url: str,
    index: int,
    client=None,
) -> dict[str, Any] | None:
    """
    Find an object already stored for the same logical page.

    Returns:
        Dict with ``key`` and ``size`` of the newest match, or None
    """
    prefix = _content_key_prefix(brand_id, domain, url, index)
    pattern = re.compile(re.escape(prefix) + r"\d+\.md$")

    matches = [obj for obj in list_objects(bucket, prefix, client=client) if pattern.match(obj["key"])]
    if not matches:
        return None
    return max(matches, key=lambda obj: obj["key"])


# ============================================================================
# Document formatting
# ============================================================================


def format_as_markdown(item: BrandContent, index: int, extracted_at: str | None = None) -> str:
    """
    Render a content item as a self-describing markdown document.

    The document starts with a front-matter block (title, url, extracted_at,
    content_type, index, images) followed by the page body.
    """
    timestamp = extracted_at or datetime.now(UTC).isoformat()
    title = item.title or "Untitled"
    content_type = item.content_type or "page"
    images = item.images or []
    body = item.processed_content or item.content or "No content available"

    lines = [
        "---",
        f"title: {title}",
        f"url: {item.url}",
        f"extracted_at: {timestamp}",
        f"content_type: {content_type}",
        f"index: {index}",
        f"images: {json.dumps(images)}",
        "---",
        "",
        f"# {title}",
        "",
        f"**Source URL:** [{item.url}]({item.url})",
        f"**Extracted:** {timestamp}",
        f"**Content Type:** {content_type}",
    ]
    if images:
        lines.append(f"**Images Found:** {len(images)}")
        lines.append("")
        lines.append("## Images")
        lines.extend(f"![Image {i + 1}]({image})" for i, image in enumerate(images))

    lines.extend(["", "## Content", "", body, ""])
    return "\n".join(lines)


def _metadata_value(value: str) -> str:
    return _NON_ASCII_RE.sub("?", value)[:MAX_METADATA_VALUE_LENGTH]


# ============================================================================
# Upload
# ============================================================================


def _upload_single(
    client,
    bucket: str,
    brand_id: str,
    domain: str,
    item: BrandContent,
    index: int,
    overwrite: bool,
    generate_metadata: bool,
) -> UploadResult:
    try:
        existing = find_existing_content_key(bucket, brand_id, domain, item.url, index, client=client)

        if existing and not overwrite:
            return UploadResult(url=item.url, key=existing["key"], success=True, size=existing["size"])

        key = existing["key"] if existing else generate_content_key(brand_id, domain, item.url, index)
        body = format_as_markdown(item, index).encode("utf-8")

        put_kwargs: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": body,
            "ContentType": "text/markdown; charset=utf-8",
        }
        if generate_metadata:
            metadata = {
                "original-url": _metadata_value(item.url),
                "content-type": item.content_type or "page",
                "uploaded-at": datetime.now(UTC).isoformat(),
                "domain": domain,
            }
            if item.title:
                metadata["title"] = _metadata_value(item.title)
            put_kwargs["Metadata"] = metadata

        client.put_object(**put_kwargs)
        return UploadResult(url=item.url, key=key, success=True, size=len(body))

    except Exception as e:
        logger.error(f"Failed to upload {item.url}: {e}")
        return UploadResult(url=item.url, key="", success=False, error=str(e) or "Upload failed")


def upload_brand_content(
    bucket: str,
    brand_id: str,
    domain: str,
    items: list[BrandContent],
    overwrite: bool = False,
    generate_metadata: bool = True,
    client=None,
) -> list[UploadResult]:
    """
    Store content items for a brand.

    Items are uploaded in concurrent batches of UPLOAD_BATCH_SIZE with a short
    pause between batches. One item failing never aborts the others.

    Args:
        bucket: Content bucket
        brand_id: Owning brand
        domain: Brand domain
        items: Content to store
        overwrite: Rewrite content already stored for the same page
        generate_metadata: Attach object metadata (source URL, title, domain)
        client: Optional S3 client

    Returns:
        One UploadResult per item, in input order
    """
    if not items:
        logger.warning(f"No content provided for {domain}")
        return []

    client = client or get_s3_client()
    results: list[UploadResult] = []

    for start in range(0, len(items), UPLOAD_BATCH_SIZE):
        batch = items[start : start + UPLOAD_BATCH_SIZE]

        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            futures = [
                executor.submit(
                    _upload_single,
                    client,
                    bucket,
                    brand_id,
                    domain,
                    item,
                    start + offset,
                    overwrite,
                    generate_metadata,
                )
                for offset, item in enumerate(batch)
            ]

        for item, future in zip(batch, futures):
            try:
                results.append(future.result())
            except Exception as e:
                logger.error(f"Upload task failed for {item.url}: {e}")
                results.append(UploadResult(url=item.url, key="", success=False, error=str(e)))

        if start + UPLOAD_BATCH_SIZE < len(items):
            time.sleep(UPLOAD_BATCH_DELAY_SECONDS)

    successful = sum(1 for r in results if r.success)
    logger.info(f"Upload completed for {domain}: {successful}/{len(results)} successful")
    return results


# ============================================================================
# List / delete
# ============================================================================


def list_objects(bucket: str, prefix: str | None = None, limit: int | None = None, client=None) -> list[dict[str, Any]]:
    """
    List stored objects under a prefix.

    Returns:
        List of {"key", "size", "last_modified"} dicts; empty on backend error
    """
    client = client or get_s3_client()
    params: dict[str, Any] = {"Bucket": bucket}
    if prefix:
        params["Prefix"] = prefix

    objects: list[dict[str, Any]] = []
    try:
        paginator = client.get_paginator("list_objects_v2")
        for page in paginator.paginate(**params):
            for obj in page.get("Contents", []):
                last_modified = obj.get("LastModified")
                objects.append(
                    {
                        "key": obj["Key"],
                        "size": obj.get("Size", 0),
                        "last_modified": last_modified.isoformat() if last_modified else None,
                    }
                )
                if limit and len(objects) >= limit:
                    return objects
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to list objects with prefix {prefix}: {e}")
        return []

    return objects


def list_brand_content(
    bucket: str,
    brand_id: str,
    domain: str,
    category: str | None = None,
    limit: int | None = None,
    client=None,
) -> list[dict[str, Any]]:
    """List a brand's content objects, optionally for one category."""
    prefix = f"{get_brand_prefix(brand_id, domain)}/content/"
    if category:
        prefix = f"{prefix}{category}/"
    return list_objects(bucket, prefix, limit=limit, client=client)


def _delete_keys(bucket: str, keys: list[str], client) -> int:
    """Delete keys in batches; failed batches are logged and skipped."""
    deleted = 0
    for start in range(0, len(keys), DELETE_BATCH_SIZE):
        batch = keys[start : start + DELETE_BATCH_SIZE]
        try:
            response = client.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )
            errors = response.get("Errors", [])
            for error in errors:
                logger.error(f"Failed to delete {error.get('Key')}: {error.get('Message')}")
            deleted += len(batch) - len(errors)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete batch starting at {start}: {e}")
    return deleted


def delete_brand_content(
    bucket: str,
    brand_id: str,
    domain: str,
    category: str | None = None,
    client=None,
) -> int:
    """
    Delete a brand's content for one domain (optionally one category).

    Returns:
        Number of objects actually deleted
    """
    client = client or get_s3_client()
    objects = list_brand_content(bucket, brand_id, domain, category, client=client)
    if not objects:
        logger.info(f"No content found for deletion: {domain}")
        return 0

    deleted = _delete_keys(bucket, [obj["key"] for obj in objects], client)
    logger.info(f"Deleted {deleted}/{len(objects)} objects for {domain}")
    return deleted


def cleanup_brand_folders(bucket: str, keep: list[str], client=None) -> dict[str, Any]:
    """
    Delete every brand folder whose brand id or domain is not in ``keep``.

    Returns:
        Dict with deleted_folders, kept_folders, errors and a summary
    """
    client = client or get_s3_client()
    keep_set = {value.lower() for value in keep}

    folders: dict[str, list[str]] = {}
    for obj in list_objects(bucket, f"{BRANDS_PREFIX}/", client=client):
        parts = obj["key"].split("/")
        if len(parts) < 3:
            continue
        folder = "/".join(parts[:3])
        folders.setdefault(folder, []).append(obj["key"])

    deleted_folders = []
    kept_folders = []
    errors = []
    total_deleted = 0

    for folder, keys in sorted(folders.items()):
        _, brand_id, domain = folder.split("/")
        if brand_id.lower() in keep_set or domain.lower() in keep_set:
            kept_folders.append(folder)
            continue

        deleted = _delete_keys(bucket, keys, client)
        total_deleted += deleted
        if deleted == len(keys):
            deleted_folders.append(folder)
        else:
            errors.append(f"{folder}: deleted {deleted}/{len(keys)} objects")

    logger.info(f"Cleanup removed {len(deleted_folders)} brand folders ({total_deleted} objects)")
    return {
        "deleted_folders": deleted_folders,
        "kept_folders": kept_folders,
        "errors": errors,
        "summary": {
            "folders_deleted": len(deleted_folders),
            "folders_kept": len(kept_folders),
            "objects_deleted": total_deleted,
            "errors": len(errors),
        },
    }


def delete_all_content(bucket: str, client=None) -> dict[str, int]:
    """Delete every object in the bucket."""
    client = client or get_s3_client()
    keys = [obj["key"] for obj in list_objects(bucket, client=client)]
    deleted = _delete_keys(bucket, keys, client) if keys else 0
    logger.warning(f"Deleted {deleted}/{len(keys)} objects from {bucket}")
    return {"total": len(keys), "deleted": deleted}
