"""
Data models for the brand discovery pipeline.

Brands and their URLs flow through the pipeline as:
discover (extract + map + batch scrape) -> webhook events -> sweep -> completed
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string (the stored timestamp format)."""
    return datetime.now(UTC).isoformat()


class DiscoveryStatus(str, Enum):
    """Lifecycle status of a brand."""

    PENDING = "pending"
    MAPPED = "mapped"
    SCRAPED = "scraped"
    COMPLETED = "completed"
    FAILED = "failed"


# Statuses a brand may be in before moving to the key status.
# PENDING is absent: resetting to pending is an explicit re-discovery.
ALLOWED_PREDECESSORS: dict[DiscoveryStatus, tuple[DiscoveryStatus, ...]] = {
    DiscoveryStatus.MAPPED: (
        DiscoveryStatus.PENDING,
        DiscoveryStatus.MAPPED,
        DiscoveryStatus.SCRAPED,
    ),
    DiscoveryStatus.SCRAPED: (
        DiscoveryStatus.PENDING,
        DiscoveryStatus.MAPPED,
        DiscoveryStatus.SCRAPED,
    ),
    DiscoveryStatus.COMPLETED: (
        DiscoveryStatus.MAPPED,
        DiscoveryStatus.SCRAPED,
        DiscoveryStatus.COMPLETED,
    ),
    DiscoveryStatus.FAILED: (
        DiscoveryStatus.PENDING,
        DiscoveryStatus.MAPPED,
        DiscoveryStatus.SCRAPED,
        DiscoveryStatus.FAILED,
    ),
}


class UrlCategory(str, Enum):
    """Content taxonomy for discovered URLs."""

    INFO = "info"  # Company info, about, contact, homepage
    BLOG = "blog"  # News, articles, press
    DOCS = "docs"  # Documentation, help, support
    SHOP = "shop"  # Ecommerce, products, pricing
    OTHER = "other"


class ScrapeStatus(str, Enum):
    """Scrape/upload progress of a single BrandUrl."""

    PENDING = "pending"
    SCRAPING = "scraping"
    UPLOADING = "uploading"
    SCRAPED = "scraped"
    UPLOADED = "uploaded"
    FAILED = "failed"


# URL statuses that a failed batch job leaves dangling
UNFINISHED_SCRAPE_STATUSES = (ScrapeStatus.PENDING, ScrapeStatus.SCRAPING)


class ExtractJobStatus(str, Enum):
    """Status domain of the external extraction job."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def _to_int(value: Any, default: int = 0) -> int:
    """DynamoDB returns numbers as Decimal."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return int(value)
    return int(value)


def _plain(value: Any) -> Any:
    """Convert DynamoDB Decimals inside nested metadata to ints/floats."""
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


# =============================================================================
# Typed metadata records
# =============================================================================


@dataclass
class MetadataRecord:
    """
    Base for the typed metadata written at each lifecycle stage.

    Records are merged into Brand.metadata key by key; fields left as None
    are not written, so existing keys survive every merge.
    """

    def to_metadata(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class PipelineStartedMetadata(MetadataRecord):
    """Written when a discovery run starts (and again once the extract job is known)."""

    pipeline_started_at: str = field(default_factory=utc_now)
    worker_processed: bool = True
    extract_job_id: str | None = None
    industry: str | None = None


@dataclass
class PipelineJobsMetadata(MetadataRecord):
    """Job handles of the map and batch scrape steps."""

    map_job_id: str | None = None
    scrape_job_id: str | None = None


@dataclass
class ScrapeStartedMetadata(MetadataRecord):
    """Written on a batch scrape 'started' event."""

    current_job_id: str | None = None
    job_started_at: str = field(default_factory=utc_now)


@dataclass
class ScrapeFinalizedMetadata(MetadataRecord):
    """Written on a batch scrape 'completed' event."""

    urls_scraped: int = 0
    urls_uploaded: int = 0
    urls_failed: int = 0
    total_urls: int = 0
    scrape_completed_at: str = field(default_factory=utc_now)


@dataclass
class ExtractedMetadata(MetadataRecord):
    """Brand fields returned by the extraction job."""

    company_name: str | None = None
    industry: str | None = None
    description: str | None = None
    logo_url: str | None = None
    cron_processed: bool = True


@dataclass
class FailureMetadata(MetadataRecord):
    """Written whenever a brand moves to failed."""

    error: str = "Unknown error"
    failed_at: str = field(default_factory=utc_now)


# =============================================================================
# Records
# =============================================================================


@dataclass
class Brand:
    """
    Identity record for a discovered brand.

    Attributes:
        id: Opaque unique key (UUID)
        name: Display name (placeholder until extraction completes)
        slug: URL-safe name
        primary_domain: Normalized domain, unique across brands
        description: Short description
        logo_url: Logo image URL
        discovery_status: Lifecycle status
        metadata: Job handles, timestamps and extracted fields
        extracted_at: Set when extraction results were applied
        ai_search_synced_at: Set when the brand was finalized
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    id: str
    name: str
    slug: str
    primary_domain: str
    description: str | None = None
    logo_url: str | None = None
    discovery_status: DiscoveryStatus = DiscoveryStatus.PENDING
    metadata: dict[str, Any] = field(default_factory=dict)
    extracted_at: str | None = None
    ai_search_synced_at: str | None = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def extract_job_id(self) -> str | None:
        return self.metadata.get("extract_job_id")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for DynamoDB storage (unset optionals are omitted)."""
        data = {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "primary_domain": self.primary_domain,
            "discovery_status": DiscoveryStatus(self.discovery_status).value,
            "metadata": self.metadata,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

        if self.description is not None:
            data["description"] = self.description
        if self.logo_url is not None:
            data["logo_url"] = self.logo_url
        if self.extracted_at is not None:
            data["extracted_at"] = self.extracted_at
        if self.ai_search_synced_at is not None:
            data["ai_search_synced_at"] = self.ai_search_synced_at

        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Brand":
        """Create Brand from DynamoDB record."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            slug=data.get("slug", ""),
            primary_domain=data.get("primary_domain", ""),
            description=data.get("description"),
            logo_url=data.get("logo_url"),
            discovery_status=DiscoveryStatus(data.get("discovery_status", "pending")),
            metadata=_plain(data.get("metadata") or {}),
            extracted_at=data.get("extracted_at"),
            ai_search_synced_at=data.get("ai_search_synced_at"),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
        )


@dataclass
class BrandUrl:
    """
    One discovered URL under a brand.

    (brand_id, url) is unique; re-discovery updates the existing record.
    """

    brand_id: str
    url: str
    title: str | None = None
    description: str | None = None
    category: UrlCategory = UrlCategory.OTHER
    priority: int = 0
    discovered_via: str = "map"
    scrape_status: ScrapeStatus = ScrapeStatus.PENDING
    content_length: int | None = None
    scraped_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BrandUrl":
        """Create BrandUrl from DynamoDB record."""
        content_length = data.get("content_length")
        return cls(
            brand_id=data["brand_id"],
            url=data["url"],
            title=data.get("title"),
            description=data.get("description"),
            category=UrlCategory(data.get("category", "other")),
            priority=_to_int(data.get("priority")),
            discovered_via=data.get("discovered_via", "map"),
            scrape_status=ScrapeStatus(data.get("scrape_status", "pending")),
            content_length=_to_int(content_length) if content_length is not None else None,
            scraped_at=data.get("scraped_at"),
            metadata=_plain(data.get("metadata") or {}),
            id=data.get("id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class BrandContent:
    """A page of content ready for the content store."""

    url: str
    title: str
    content: str
    processed_content: str | None = None
    content_type: str | None = None
    images: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BrandContent":
        """Create BrandContent from an API payload (camelCase or snake_case)."""
        return cls(
            url=data["url"],
            title=data.get("title") or "Untitled",
            content=data.get("content") or "",
            processed_content=data.get("processed_content") or data.get("processedContent"),
            content_type=data.get("content_type") or data.get("contentType"),
            images=list(data.get("images") or []),
        )


@dataclass
class UploadResult:
    """Outcome of storing one content item."""

    url: str
    key: str
    success: bool
    size: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {"url": self.url, "key": self.key, "success": self.success}
        if self.size is not None:
            data["size"] = self.size
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class DiscoveryResult:
    """
    Result of a discovery trigger.

    Serialized with camelCase keys for the HTTP layer.
    """

    success: bool
    status: str = DiscoveryStatus.PENDING.value
    brand_id: str | None = None
    extract_job_id: str | None = None
    map_job_id: str | None = None
    scrape_job_id: str | None = None
    message: str | None = None
    estimated_time: str | None = None
    error: str | None = None
    details: str | None = None
    brand: Brand | None = None

    def pipeline_summary(self) -> dict[str, dict[str, str | None]]:
        """Per-stage job handles and whether each stage is running."""
        return {
            "extract": {"jobId": self.extract_job_id, "status": "processing"},
            "map": {
                "jobId": self.map_job_id,
                "status": "processing" if self.map_job_id else "pending",
            },
            "scrape": {
                "jobId": self.scrape_job_id,
                "status": "processing" if self.scrape_job_id else "pending",
            },
        }

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            data: dict[str, Any] = {"success": False, "error": self.error or "Unknown error"}
            if self.details:
                data["details"] = self.details
            if self.brand_id:
                data["brandId"] = self.brand_id
            return data

        return {
            "success": True,
            "brandId": self.brand_id,
            "status": self.status,
            "extractJobId": self.extract_job_id,
            "mapJobId": self.map_job_id,
            "scrapeJobId": self.scrape_job_id,
            "message": self.message,
            "estimatedTime": self.estimated_time,
            "brand": self.brand.to_dict() if self.brand else None,
            "pipeline": self.pipeline_summary(),
        }
