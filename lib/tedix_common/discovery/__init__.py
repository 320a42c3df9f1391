"""
Brand discovery module.

Turns a domain into categorized, stored brand content through asynchronous
external jobs.

Architecture:
- URLs: Domain normalization and URL classification (pure, no I/O)
- Repository: Brand and BrandUrl persistence in DynamoDB
- Pipeline: Starts the extract, map and batch scrape jobs
- Webhooks: Applies signed scrape events as they arrive
- Reconcile: Scheduled sweep that polls extract jobs and finalizes brands
"""

from tedix_common.discovery.models import (
    Brand,
    BrandContent,
    BrandUrl,
    DiscoveryResult,
    DiscoveryStatus,
    ScrapeStatus,
    UploadResult,
    UrlCategory,
)

__all__ = [
    "Brand",
    "BrandContent",
    "BrandUrl",
    "DiscoveryResult",
    "DiscoveryStatus",
    "ScrapeStatus",
    "UploadResult",
    "UrlCategory",
]
