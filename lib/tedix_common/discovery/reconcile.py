"""
Reconciliation sweep for brands stuck between pipeline stages.

Runs on a schedule and makes two passes, always in this order:

1. Extract completion: poll extract jobs directly, covering completion
   events that were missed or never sent.
2. Finalization: brands that are scraped and extracted get a search index
   sync and move to completed.

Finalization only selects brands with ``extracted_at`` set, so running the
extract pass first lets a brand finish within a single sweep. Brands that
fail a pass stay eligible and are retried on the next sweep.
"""

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any

from boto3.dynamodb.conditions import Attr, ConditionBase

from tedix_common.constants import (
    DEFAULT_INDUSTRY,
    EXTRACT_SWEEP_BATCH_SIZE,
    FINALIZE_SWEEP_BATCH_SIZE,
    SYNC_WAIT_SECONDS,
)
from tedix_common.discovery.models import (
    Brand,
    DiscoveryStatus,
    ExtractedMetadata,
    ExtractJobStatus,
    FailureMetadata,
    utc_now,
)
from tedix_common.discovery.repository import BrandRepository
from tedix_common.discovery.urls import brand_logo_url, placeholder_brand_name
from tedix_common.firecrawl import FirecrawlClient
from tedix_common.logging_utils import log_summary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrandSelection:
    """
    Eligibility predicate for a sweep pass.

    Attributes:
        name: Label used in logs
        statuses: Discovery statuses to select
        limit: Maximum brands per sweep
        order_by: Ascending ordering key (oldest first)
        extracted: Require extracted_at set (True), unset (False), or either (None)
        synced: Require ai_search_synced_at set (True), unset (False), or either (None)
        requires_extract_job: Require an extract job id in metadata
    """

    name: str
    statuses: tuple[DiscoveryStatus, ...]
    limit: int
    order_by: str
    extracted: bool | None = None
    synced: bool | None = None
    requires_extract_job: bool = False

    def condition(self) -> ConditionBase:
        """DynamoDB filter expression for this selection."""
        condition = Attr("discovery_status").is_in([s.value for s in self.statuses])
        if self.extracted is not None:
            attr = Attr("extracted_at")
            condition &= attr.exists() if self.extracted else attr.not_exists()
        if self.synced is not None:
            attr = Attr("ai_search_synced_at")
            condition &= attr.exists() if self.synced else attr.not_exists()
        if self.requires_extract_job:
            condition &= Attr("metadata.extract_job_id").exists()
        return condition

    def matches(self, brand: Brand) -> bool:
        """Same predicate evaluated on a loaded brand."""
        if brand.discovery_status not in self.statuses:
            return False
        if self.extracted is not None and (brand.extracted_at is not None) != self.extracted:
            return False
        if self.synced is not None and (brand.ai_search_synced_at is not None) != self.synced:
            return False
        if self.requires_extract_job and not brand.extract_job_id:
            return False
        return True


EXTRACT_COMPLETION_SELECTION = BrandSelection(
    name="extract_completion",
    statuses=(DiscoveryStatus.PENDING, DiscoveryStatus.SCRAPED),
    limit=EXTRACT_SWEEP_BATCH_SIZE,
    order_by="created_at",
    extracted=False,
    requires_extract_job=True,
)

FINALIZATION_SELECTION = BrandSelection(
    name="finalization",
    statuses=(DiscoveryStatus.MAPPED, DiscoveryStatus.SCRAPED),
    limit=FINALIZE_SWEEP_BATCH_SIZE,
    order_by="updated_at",
    extracted=True,
    synced=False,
)


def _apply_extract_result(brand: Brand, data: dict[str, Any], repository: BrandRepository) -> bool:
    domain = brand.primary_domain
    name = data.get("company_name") or placeholder_brand_name(domain)

    extracted = ExtractedMetadata(
        company_name=data.get("company_name"),
        industry=data.get("industry") or DEFAULT_INDUSTRY,
        description=data.get("description"),
        logo_url=data.get("logo_url"),
    )
    return repository.update_brand(
        brand.id,
        status=DiscoveryStatus.MAPPED,
        fields={
            "name": name,
            "description": data.get("description") or f"Official website and services from {name}.",
            "logo_url": data.get("logo_url") or brand_logo_url(brand),
            "extracted_at": utc_now(),
        },
        metadata=extracted.to_metadata(),
    )


def process_extract_jobs(
    repository: BrandRepository,
    firecrawl: FirecrawlClient,
    selection: BrandSelection = EXTRACT_COMPLETION_SELECTION,
) -> dict[str, int]:
    """
    Poll extract jobs of brands awaiting extraction and apply the results.

    completed -> brand fields filled in, status mapped, extracted_at stamped
    failed    -> status failed
    cancelled -> left untouched (the job may be retried externally)
    other     -> nothing this sweep

    Returns:
        Counts per outcome
    """
    counts = {
        "checked": 0,
        "completed": 0,
        "rejected": 0,
        "failed": 0,
        "cancelled": 0,
        "processing": 0,
        "errors": 0,
    }

    brands = repository.find_brands(selection)
    if not brands:
        logger.info("No pending extract jobs to process")
        return counts

    logger.info(f"Processing {len(brands)} pending extract jobs")

    for brand in brands:
        job_id = brand.extract_job_id
        domain = brand.primary_domain
        counts["checked"] += 1

        try:
            status = firecrawl.get_extract_status(job_id)
            logger.info(f"Extract job {job_id} for {domain}: {status.status}")

            if status.status == ExtractJobStatus.COMPLETED.value:
                if _apply_extract_result(brand, status.data or {}, repository):
                    counts["completed"] += 1
                else:
                    logger.warning(f"Extract result for {domain} not applied, status changed concurrently")
                    counts["rejected"] += 1
            elif status.status == ExtractJobStatus.FAILED.value:
                error = status.error or "Extract job failed"
                logger.error(f"Extract failed for {domain}: {error}")
                repository.update_brand(
                    brand.id,
                    status=DiscoveryStatus.FAILED,
                    metadata=FailureMetadata(error=error).to_metadata(),
                )
                counts["failed"] += 1
            elif status.status == ExtractJobStatus.CANCELLED.value:
                logger.warning(f"Extract cancelled for {domain}, keeping current status")
                counts["cancelled"] += 1
            else:
                counts["processing"] += 1

        except Exception as e:
            logger.error(f"Error processing extract for {domain}: {e}")
            counts["errors"] += 1

    return counts


def finalize_brands(
    repository: BrandRepository,
    sync_trigger: Callable[[], dict[str, Any] | None],
    selection: BrandSelection = FINALIZATION_SELECTION,
    sync_wait_seconds: float = SYNC_WAIT_SECONDS,
) -> dict[str, int]:
    """
    Mark extracted and scraped brands completed and trigger index syncs.

    Syncs run in the background and never block finalization; their outcome
    is only logged. The sweep waits at most ``sync_wait_seconds`` for them.

    Args:
        repository: Brand persistence
        sync_trigger: Callable triggering one index sync, returns None on failure
        selection: Eligibility predicate
        sync_wait_seconds: Upper bound on waiting for background syncs

    Returns:
        Counts per outcome
    """
    counts = {"checked": 0, "finalized": 0, "synced": 0, "sync_failed": 0, "errors": 0}

    brands = repository.find_brands(selection)
    if not brands:
        logger.info("No scraped brands to finalize")
        return counts

    logger.info(f"Finalizing {len(brands)} scraped brands")

    executor = ThreadPoolExecutor(max_workers=1)
    futures = {}
    try:
        for brand in brands:
            counts["checked"] += 1
            try:
                futures[executor.submit(sync_trigger)] = brand
                finalized = repository.update_brand(
                    brand.id,
                    status=DiscoveryStatus.COMPLETED,
                    fields={"ai_search_synced_at": utc_now()},
                )
                if finalized:
                    counts["finalized"] += 1
                    logger.info(f"Finalized brand {brand.name} ({brand.primary_domain})")
            except Exception as e:
                logger.error(f"Error finalizing brand {brand.name}: {e}")
                counts["errors"] += 1

        try:
            for future in as_completed(futures, timeout=sync_wait_seconds):
                brand = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.warning(f"AI search sync raised for {brand.name}: {e}")
                    result = None

                if result:
                    counts["synced"] += 1
                    job_id = (result.get("result") or {}).get("job_id")
                    logger.info(f"AI search sync triggered for {brand.name}, job_id={job_id}")
                else:
                    counts["sync_failed"] += 1
                    logger.warning(f"AI search sync failed for {brand.name}, brand finalized anyway")
        except TimeoutError:
            logger.warning(f"AI search syncs still running after {sync_wait_seconds}s, not waiting")
    finally:
        executor.shutdown(wait=False)

    return counts


def run_sweep(
    repository: BrandRepository,
    firecrawl: FirecrawlClient,
    sync_trigger: Callable[[], dict[str, Any] | None],
) -> dict[str, dict[str, int]]:
    """Run the extract-completion pass, then the finalization pass."""
    start_time = time.time()

    extract_counts = process_extract_jobs(repository, firecrawl)
    finalize_counts = finalize_brands(repository, sync_trigger)

    logger.info(
        log_summary(
            "discovery_sweep",
            duration_ms=(time.time() - start_time) * 1000,
            item_count=extract_counts["checked"] + finalize_counts["checked"],
            extracted=extract_counts["completed"],
            finalized=finalize_counts["finalized"],
        )
    )
    return {"extract": extract_counts, "finalize": finalize_counts}
