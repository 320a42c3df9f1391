"""
Batch scrape webhook processing.

Events arrive signed with ``X-Firecrawl-Signature: sha256=<hex hmac>`` over
the raw body. Once verified, each event advances brand or URL state:

    started    brand -> scraped, job id recorded
    page       URL scraped -> uploading -> uploaded/failed, content stored
    completed  URL tallies merged into metadata, brand -> scraped
    failed     brand -> failed, unfinished URLs -> failed

Delivery is at-least-once and unordered; every handler tolerates duplicates.
Anything recognized or not is acknowledged with 200 so the sender does not
retry forever. Only a bad signature (401) or an unexpected error (500) is not.
"""

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tedix_common.constants import PROCESSED_CONTENT_MAX_CHARS
from tedix_common.discovery.models import (
    BrandContent,
    DiscoveryStatus,
    FailureMetadata,
    ScrapeFinalizedMetadata,
    ScrapeStartedMetadata,
    ScrapeStatus,
    utc_now,
)
from tedix_common.discovery.repository import BrandRepository
from tedix_common.discovery.urls import classify_url
from tedix_common.exceptions import WebhookSignatureError
from tedix_common.storage import upload_brand_content

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Firecrawl-Signature"
SIGNATURE_ALGORITHM = "sha256"


class WebhookEventKind(str, Enum):
    """Logical event kinds; job-kind namespaces are stripped."""

    STARTED = "started"
    PAGE = "page"
    COMPLETED = "completed"
    FAILED = "failed"


def normalize_event_type(raw_type: str | None) -> WebhookEventKind | None:
    """
    Map a raw event type to its logical kind.

    ``completed``, ``crawl.completed`` and ``batch_scrape.completed`` all map
    to COMPLETED. Unknown types map to None.
    """
    if not raw_type:
        return None
    bare = raw_type.strip().lower().rsplit(".", 1)[-1]
    try:
        return WebhookEventKind(bare)
    except ValueError:
        return None


@dataclass
class WebhookEvent:
    """Parsed webhook body."""

    type: str
    id: str | None = None
    success: bool = True
    data: list[Any] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def kind(self) -> WebhookEventKind | None:
        return normalize_event_type(self.type)

    @property
    def brand_id(self) -> str | None:
        return self.metadata.get("brandId")

    @property
    def domain(self) -> str | None:
        return self.metadata.get("domain")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebhookEvent":
        if not isinstance(data, dict):
            raise ValueError("Webhook body must be a JSON object")
        items = data.get("data")
        return cls(
            type=str(data.get("type") or ""),
            id=data.get("id"),
            success=bool(data.get("success", True)),
            data=items if isinstance(items, list) else [],
            metadata=data.get("metadata") if isinstance(data.get("metadata"), dict) else {},
            error=data.get("error"),
        )


@dataclass
class WebhookResponse:
    """HTTP response returned to the webhook sender."""

    status_code: int
    body: str

    @classmethod
    def ok(cls) -> "WebhookResponse":
        return cls(200, "OK")


def verify_signature(body: bytes | str, signature: str | None, secret: str | None) -> None:
    """
    Verify the HMAC-SHA256 signature of a raw webhook body.

    Args:
        body: Raw request body, exactly as received
        signature: Header value, ``sha256=<hex>``
        secret: Shared webhook secret

    Raises:
        WebhookSignatureError: If the signature is missing, malformed or wrong
    """
    if not signature or not secret:
        raise WebhookSignatureError("Missing webhook signature or secret")

    algorithm, _, received = signature.strip().partition("=")
    if algorithm.lower() != SIGNATURE_ALGORITHM or not received:
        raise WebhookSignatureError("Malformed webhook signature")

    if isinstance(body, str):
        body = body.encode("utf-8")

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(received.strip().lower().encode("utf-8"), expected.encode("ascii")):
        raise WebhookSignatureError("Webhook signature mismatch")


def _header(headers: Mapping[str, str] | None, name: str) -> str | None:
    """Case-insensitive header lookup (API Gateway may lower-case names)."""
    if not headers:
        return None
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


# =============================================================================
# Event handlers
# =============================================================================


def handle_started(event: WebhookEvent, repository: BrandRepository) -> None:
    if not event.brand_id:
        logger.warning(f"Started event {event.id} has no brandId")
        return

    logger.info(f"Job {event.id} started for brand {event.brand_id}")
    repository.update_brand(
        event.brand_id,
        status=DiscoveryStatus.SCRAPED,
        metadata=ScrapeStartedMetadata(current_job_id=event.id).to_metadata(),
    )


def _brand_domain(brand_id: str, repository: BrandRepository) -> str | None:
    brand = repository.get_brand(brand_id)
    return brand.primary_domain if brand else None


def handle_page(event: WebhookEvent, repository: BrandRepository, bucket: str) -> None:
    """
    Record one scraped page and store its content.

    Only the first item of the event's data is processed. An item without a
    source URL is acknowledged without touching any state.
    """
    if not event.data:
        return

    page = event.data[0] if isinstance(event.data[0], dict) else {}
    page_metadata = page.get("metadata") if isinstance(page.get("metadata"), dict) else {}
    url = page_metadata.get("sourceURL") or page_metadata.get("url")
    brand_id = event.brand_id

    if not url:
        logger.warning("No URL found in page data")
        return
    if not brand_id:
        logger.warning(f"Page event for {url} has no brandId")
        return

    markdown = page.get("markdown") or ""
    logger.info(f"Page scraped: {url}")

    repository.update_url_status(
        brand_id,
        url,
        ScrapeStatus.SCRAPED,
        content_length=len(markdown),
        scraped_at=utc_now(),
    )

    domain = event.domain or _brand_domain(brand_id, repository)
    if not domain:
        logger.warning(f"No domain known for brand {brand_id}, not uploading {url}")
        repository.update_url_status(brand_id, url, ScrapeStatus.FAILED, error="Unknown brand domain")
        return

    try:
        repository.update_url_status(brand_id, url, ScrapeStatus.UPLOADING)

        category, _ = classify_url(url)
        content = BrandContent(
            url=url,
            title=page_metadata.get("title") or "Untitled",
            content=markdown,
            processed_content=markdown[:PROCESSED_CONTENT_MAX_CHARS],
            content_type=category.value,
            images=list(page.get("images") or []),
        )
        results = upload_brand_content(
            bucket,
            brand_id,
            domain,
            [content],
            overwrite=True,
            generate_metadata=True,
        )
        result = results[0] if results else None

        if result and result.success:
            repository.update_url_status(brand_id, url, ScrapeStatus.UPLOADED, content_length=result.size or 0)
            logger.info(f"Uploaded page content: {url}")
        else:
            error = result.error if result else "No upload result"
            repository.update_url_status(brand_id, url, ScrapeStatus.FAILED, error=error)
            logger.warning(f"Failed to upload page {url}: {error}")

    except Exception as e:
        logger.error(f"Error uploading page {url}: {e}")
        repository.update_url_status(brand_id, url, ScrapeStatus.FAILED, error=str(e))


def handle_completed(event: WebhookEvent, repository: BrandRepository) -> None:
    if not event.brand_id:
        logger.warning(f"Completed event {event.id} has no brandId")
        return

    counts = repository.count_urls_by_status(event.brand_id)
    finalized = ScrapeFinalizedMetadata(
        urls_scraped=counts.get(ScrapeStatus.SCRAPED.value, 0),
        urls_uploaded=counts.get(ScrapeStatus.UPLOADED.value, 0),
        urls_failed=counts.get(ScrapeStatus.FAILED.value, 0),
        total_urls=sum(counts.values()),
    )
    logger.info(f"Job {event.id} completed for brand {event.brand_id}: {finalized.to_metadata()}")

    repository.update_brand(
        event.brand_id,
        status=DiscoveryStatus.SCRAPED,
        metadata=finalized.to_metadata(),
    )


def handle_failed(event: WebhookEvent, repository: BrandRepository) -> None:
    if not event.brand_id:
        logger.warning(f"Failed event {event.id} has no brandId")
        return

    error = event.error or "Firecrawl job failed"
    logger.error(f"Job {event.id} failed for brand {event.brand_id}: {error}")

    repository.update_brand(
        event.brand_id,
        status=DiscoveryStatus.FAILED,
        metadata=FailureMetadata(error=error).to_metadata(),
    )
    failed = repository.fail_unfinished_urls(event.brand_id, error)
    logger.info(f"Marked {failed} unfinished URLs as failed for brand {event.brand_id}")


# =============================================================================
# Entry point
# =============================================================================


def process_webhook(
    body: bytes | str,
    headers: Mapping[str, str] | None,
    secret: str | None,
    repository: BrandRepository,
    bucket: str,
) -> WebhookResponse:
    """
    Verify and apply one webhook delivery.

    Args:
        body: Raw request body
        headers: Request headers
        secret: Shared webhook secret
        repository: Brand persistence
        bucket: Content bucket for page uploads

    Returns:
        WebhookResponse: 401 on a bad signature, 500 on an unexpected error,
        otherwise 200
    """
    try:
        verify_signature(body, _header(headers, SIGNATURE_HEADER), secret)
    except WebhookSignatureError as e:
        logger.error(f"Rejected webhook: {e}")
        return WebhookResponse(401, "Unauthorized")

    try:
        event = WebhookEvent.from_dict(json.loads(body))
        kind = event.kind
        logger.info(f"Verified webhook event {event.type} for job {event.id}")

        if kind == WebhookEventKind.STARTED:
            handle_started(event, repository)
        elif kind == WebhookEventKind.PAGE:
            handle_page(event, repository, bucket)
        elif kind == WebhookEventKind.COMPLETED:
            handle_completed(event, repository)
        elif kind == WebhookEventKind.FAILED:
            handle_failed(event, repository)
        else:
            logger.info(f"Unhandled event type: {event.type}")

        return WebhookResponse.ok()

    except Exception as e:
        logger.exception(f"Error processing webhook: {e}")
        return WebhookResponse(500, "Internal server error")
