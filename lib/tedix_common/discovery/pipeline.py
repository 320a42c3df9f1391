"""
Brand discovery orchestration.

Starts the three asynchronous jobs for a domain and records their handles:

1. Extract brand information (completion picked up by the sweep)
2. Map site URLs, classify them and upsert BrandUrl rows
3. Batch scrape every stored URL (progress arrives through webhooks)

Every step returns immediately; nothing here waits on a job to finish.
"""

import logging
import time
import uuid
from dataclasses import dataclass

from tedix_common.constants import DEFAULT_URL_PRIORITY, ESTIMATED_PIPELINE_TIME, MAP_URL_LIMIT
from tedix_common.discovery.models import (
    Brand,
    BrandUrl,
    DiscoveryResult,
    DiscoveryStatus,
    FailureMetadata,
    PipelineJobsMetadata,
    PipelineStartedMetadata,
)
from tedix_common.discovery.repository import BrandRepository
from tedix_common.discovery.urls import (
    categorize_urls,
    default_logo_url,
    generate_brand_slug,
    normalize_domain,
    placeholder_brand_name,
)
from tedix_common.firecrawl import FirecrawlClient
from tedix_common.logging_utils import log_summary

logger = logging.getLogger(__name__)

PLACEHOLDER_INDUSTRY = "Analyzing..."


@dataclass
class MappingResult:
    map_job_id: str | None = None
    urls_found: int = 0
    error: str | None = None


@dataclass
class BatchScrapeResult:
    batch_scrape_job_id: str | None = None
    urls_selected: int = 0
    error: str | None = None


@dataclass
class BrandPipelineResult:
    """Outcome of the map + batch scrape sub-pipeline."""

    map_job_id: str | None = None
    batch_scrape_job_id: str | None = None
    error: str | None = None


def start_mapping(
    brand_id: str,
    domain: str,
    firecrawl: FirecrawlClient,
    repository: BrandRepository,
) -> MappingResult:
    """
    Map a site and store every discovered URL for the brand.

    URLs are upserted on (brand_id, url), so mapping the same site twice
    never duplicates rows.
    """
    base_url = f"https://{domain}"
    logger.info(f"Starting website mapping for {base_url}")

    try:
        links = firecrawl.map_site(base_url, limit=MAP_URL_LIMIT, include_subdomains=True)
        if not links:
            logger.error(f"No URLs discovered for {base_url}")
            return MappingResult(error="No URLs discovered during mapping")

        urls_to_store = []
        for category, classified in categorize_urls(links).items():
            for link in classified:
                urls_to_store.append(
                    BrandUrl(
                        brand_id=brand_id,
                        url=link.url,
                        title=link.title or link.url.rstrip("/").split("/")[-1] or "Page",
                        description=link.description,
                        category=category,
                        priority=link.priority or DEFAULT_URL_PRIORITY,
                        discovered_via="map",
                        metadata={"domain": domain, "map_job_result": True},
                    )
                )

        repository.upsert_brand_urls(brand_id, urls_to_store)
        logger.info(f"Stored {len(urls_to_store)} URLs for brand {brand_id}")
        return MappingResult(map_job_id=f"map-{int(time.time() * 1000)}", urls_found=len(links))

    except Exception as e:
        logger.error(f"Mapping failed for {domain}: {e}")
        return MappingResult(error=str(e) or "Mapping failed")


def start_batch_scrape(
    brand_id: str,
    domain: str,
    urls: list[str],
    webhook_url: str,
    firecrawl: FirecrawlClient,
) -> BatchScrapeResult:
    """Start a batch scrape reporting back to ``webhook_url``."""
    logger.info(f"Starting batch scrape for {len(urls)} URLs of {domain}")

    try:
        job_id = firecrawl.start_batch_scrape(
            urls,
            webhook_url=webhook_url,
            metadata={"brandId": brand_id, "domain": domain, "step": "batch_scrape"},
        )
    except Exception as e:
        logger.error(f"Batch scrape failed to start for {domain}: {e}")
        return BatchScrapeResult(error=str(e) or "Batch scrape failed")

    return BatchScrapeResult(batch_scrape_job_id=job_id, urls_selected=len(urls))


def start_brand_pipeline(
    brand_id: str,
    domain: str,
    webhook_url: str,
    firecrawl: FirecrawlClient,
    repository: BrandRepository,
) -> BrandPipelineResult:
    """
    Run mapping, then start scraping every stored URL of the brand.

    Scraping is never started when mapping fails. The stored URL set, not
    just this run's mapping output, is what gets scraped.
    """
    mapping = start_mapping(brand_id, domain, firecrawl, repository)
    if mapping.error:
        return BrandPipelineResult(error=mapping.error)

    try:
        stored_urls = [u.url for u in repository.get_brand_urls(brand_id)]
    except Exception as e:
        logger.error(f"Failed to read stored URLs for brand {brand_id}: {e}")
        return BrandPipelineResult(map_job_id=mapping.map_job_id, error=str(e))

    if not stored_urls:
        return BrandPipelineResult(map_job_id=mapping.map_job_id, error="No URLs available for scraping")

    scrape = start_batch_scrape(brand_id, domain, stored_urls, webhook_url, firecrawl)
    if scrape.error:
        return BrandPipelineResult(map_job_id=mapping.map_job_id, error=scrape.error)

    logger.info(
        f"Pipeline started for {domain}: {mapping.urls_found} URLs mapped, "
        f"{scrape.urls_selected} queued for scraping"
    )
    return BrandPipelineResult(
        map_job_id=mapping.map_job_id,
        batch_scrape_job_id=scrape.batch_scrape_job_id,
    )


def discover_brand(
    domain: str,
    repository: BrandRepository,
    firecrawl: FirecrawlClient,
    webhook_url: str,
) -> DiscoveryResult:
    """
    Start brand discovery for a domain.

    Args:
        domain: Domain or URL as given by the caller
        repository: Brand persistence
        firecrawl: Scraping service client
        webhook_url: Callback URL for batch scrape events

    Returns:
        DiscoveryResult; ``success`` is False with ``error``/``details`` on failure

    Raises:
        InvalidDomainError: If the domain cannot be normalized
    """
    domain = normalize_domain(domain)
    start_time = time.time()
    logger.info(f"Starting brand discovery for {domain}")

    try:
        brand = repository.get_brand_by_domain(domain)
        if brand:
            logger.info(f"Resetting existing brand {brand.id} to pending")
            repository.update_brand(
                brand.id,
                status=DiscoveryStatus.PENDING,
                metadata=PipelineStartedMetadata().to_metadata(),
                force_status=True,
            )

        try:
            extract_job_id = firecrawl.start_extract(domain)
        except Exception as e:
            logger.error(f"Failed to start brand extraction for {domain}: {e}")
            return DiscoveryResult(
                success=False,
                error="Failed to start brand extraction",
                details=str(e),
                brand_id=brand.id if brand else None,
            )

        started = PipelineStartedMetadata(extract_job_id=extract_job_id)
        if brand is None:
            name = placeholder_brand_name(domain)
            started.industry = PLACEHOLDER_INDUSTRY
            brand = repository.create_brand(
                Brand(
                    id=str(uuid.uuid4()),
                    name=name,
                    slug=generate_brand_slug(name),
                    primary_domain=domain,
                    description=f"Extracting brand information from {domain}...",
                    logo_url=default_logo_url(domain),
                    discovery_status=DiscoveryStatus.PENDING,
                    metadata=started.to_metadata(),
                )
            )
        else:
            repository.update_brand(
                brand.id,
                status=DiscoveryStatus.PENDING,
                metadata=started.to_metadata(),
                force_status=True,
            )
            brand = repository.get_brand(brand.id) or brand

        pipeline = start_brand_pipeline(brand.id, domain, webhook_url, firecrawl, repository)

        if pipeline.error:
            logger.error(f"Failed to start pipeline for {domain}: {pipeline.error}")
            repository.update_brand(
                brand.id,
                status=DiscoveryStatus.FAILED,
                metadata=FailureMetadata(error=pipeline.error).to_metadata(),
            )
            return DiscoveryResult(
                success=False,
                brand_id=brand.id,
                status=DiscoveryStatus.FAILED.value,
                extract_job_id=extract_job_id,
                map_job_id=pipeline.map_job_id,
                error="Failed to start URL mapping and scraping pipeline",
                details=pipeline.error,
            )

        repository.update_brand(
            brand.id,
            metadata=PipelineJobsMetadata(
                map_job_id=pipeline.map_job_id,
                scrape_job_id=pipeline.batch_scrape_job_id,
            ).to_metadata(),
        )

        logger.info(
            log_summary(
                "discover_brand",
                duration_ms=(time.time() - start_time) * 1000,
                brand_id=brand.id,
                domain=domain,
                extract_job_id=extract_job_id,
            )
        )
        return DiscoveryResult(
            success=True,
            brand_id=brand.id,
            status=DiscoveryStatus.PENDING.value,
            extract_job_id=extract_job_id,
            map_job_id=pipeline.map_job_id,
            scrape_job_id=pipeline.batch_scrape_job_id,
            message=(
                f"Complete brand discovery pipeline started for {brand.name}. "
                "Processing extract, mapping, and content scraping..."
            ),
            estimated_time=ESTIMATED_PIPELINE_TIME,
            brand=brand,
        )

    except Exception as e:
        logger.exception(f"Brand discovery failed for {domain}")
        return DiscoveryResult(
            success=False,
            error="Brand discovery pipeline failed",
            details=str(e) or "Unknown error",
        )
