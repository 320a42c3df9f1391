"""
DynamoDB persistence for brands and brand URLs.

Tables:
    brands      partition key ``id``; GSI ``PrimaryDomainIndex`` on ``primary_domain``
    brand_urls  partition key ``brand_id``, sort key ``url``

Metadata merges are field-level ``SET metadata.#key`` updates, so writers
never clobber keys they did not name. Status changes are conditional on the
current status being an allowed predecessor; a rejected transition is
logged and reported as False.
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Protocol

import boto3
from boto3.dynamodb.conditions import ConditionBase, Key
from botocore.exceptions import ClientError

from tedix_common.discovery.models import (
    ALLOWED_PREDECESSORS,
    UNFINISHED_SCRAPE_STATUSES,
    Brand,
    BrandUrl,
    DiscoveryStatus,
    ScrapeStatus,
)

logger = logging.getLogger(__name__)

PRIMARY_DOMAIN_INDEX = "PrimaryDomainIndex"


class Selection(Protocol):
    """A brand selection query (see reconcile.BrandSelection)."""

    name: str
    limit: int
    order_by: str

    def condition(self) -> ConditionBase: ...

    def matches(self, brand: Brand) -> bool: ...


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class BrandRepository:
    """Reads and writes Brand and BrandUrl records."""

    def __init__(
        self,
        brands_table: str,
        brand_urls_table: str,
        region_name: str | None = None,
        dynamodb=None,
    ):
        """
        Initialize the repository.

        Args:
            brands_table: Name of the brands table
            brand_urls_table: Name of the brand URLs table
            region_name: Optional AWS region name
            dynamodb: Optional boto3 DynamoDB resource
        """
        self.dynamodb = dynamodb or boto3.resource("dynamodb", region_name=region_name)
        self.brands = self.dynamodb.Table(brands_table)
        self.brand_urls = self.dynamodb.Table(brand_urls_table)

    # =========================================================================
    # Brands
    # =========================================================================

    def get_brand(self, brand_id: str) -> Brand | None:
        response = self.brands.get_item(Key={"id": brand_id})
        item = response.get("Item")
        return Brand.from_dict(item) if item else None

    def get_brand_by_domain(self, domain: str) -> Brand | None:
        """
        Look up a brand by its normalized primary domain.

        Returns the oldest record if the index unexpectedly holds several.
        """
        items = []
        query_kwargs: dict[str, Any] = {
            "IndexName": PRIMARY_DOMAIN_INDEX,
            "KeyConditionExpression": Key("primary_domain").eq(domain),
        }
        while True:
            response = self.brands.query(**query_kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        if not items:
            return None

        brands = sorted((Brand.from_dict(item) for item in items), key=lambda b: b.created_at)
        if len(brands) > 1:
            logger.warning(f"Found {len(brands)} brands for domain {domain}, using {brands[0].id}")
        return brands[0]

    def create_brand(self, brand: Brand) -> Brand:
        """Insert a new brand; fails if the id is already taken."""
        self.brands.put_item(
            Item=brand.to_dict(),
            ConditionExpression="attribute_not_exists(#id)",
            ExpressionAttributeNames={"#id": "id"},
        )
        logger.info(f"Created brand {brand.id} for {brand.primary_domain}")
        return brand

    def update_brand(
        self,
        brand_id: str,
        *,
        status: DiscoveryStatus | None = None,
        fields: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        force_status: bool = False,
    ) -> bool:
        """
        Update a brand in a single conditional write.

        Args:
            brand_id: Brand to update
            status: New discovery status (checked against allowed predecessors)
            fields: Top-level attributes to set; None values are removed
            metadata: Keys merged into the metadata map, others untouched
            force_status: Skip the predecessor check (explicit re-discovery reset)

        Returns:
            True if written, False if the brand is missing or the status
            transition was rejected
        """
        names: dict[str, str] = {"#id": "id", "#updated_at": "updated_at"}
        values: dict[str, Any] = {":updated_at": _now()}
        set_parts = ["#updated_at = :updated_at"]
        remove_parts = []
        condition = "attribute_exists(#id)"

        for i, (field_name, value) in enumerate((fields or {}).items()):
            names[f"#f{i}"] = field_name
            if value is None:
                remove_parts.append(f"#f{i}")
            else:
                values[f":f{i}"] = value
                set_parts.append(f"#f{i} = :f{i}")

        if metadata:
            names["#metadata"] = "metadata"
            for i, (key, value) in enumerate(metadata.items()):
                names[f"#m{i}"] = key
                values[f":m{i}"] = value
                set_parts.append(f"#metadata.#m{i} = :m{i}")

        if status is not None:
            status = DiscoveryStatus(status)
            names["#status"] = "discovery_status"
            values[":status"] = status.value
            set_parts.append("#status = :status")

            if not force_status:
                allowed = ALLOWED_PREDECESSORS.get(status, ())
                if not allowed:
                    logger.warning(f"Rejected {status.value} for brand {brand_id}: only allowed as a forced reset")
                    return False
                placeholders = []
                for i, previous in enumerate(allowed):
                    values[f":p{i}"] = previous.value
                    placeholders.append(f":p{i}")
                condition += f" AND #status IN ({', '.join(placeholders)})"

        update_expression = "SET " + ", ".join(set_parts)
        if remove_parts:
            update_expression += " REMOVE " + ", ".join(remove_parts)

        try:
            self.brands.update_item(
                Key={"id": brand_id},
                UpdateExpression=update_expression,
                ConditionExpression=condition,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                target = status.value if status is not None else "update"
                logger.warning(f"Rejected {target} for brand {brand_id}: missing brand or status not eligible")
                return False
            raise

        return True

    def find_brands(self, selection: Selection) -> list[Brand]:
        """
        Run a brand selection query.

        Scans with the selection's filter, then orders ascending by the
        selection's ordering key and applies its limit.
        """
        scan_kwargs: dict[str, Any] = {"FilterExpression": selection.condition()}
        items = []
        while True:
            response = self.brands.scan(**scan_kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        brands = [b for b in (Brand.from_dict(item) for item in items) if selection.matches(b)]
        brands.sort(key=lambda b: getattr(b, selection.order_by) or "")
        return brands[: selection.limit]

    # =========================================================================
    # Brand URLs
    # =========================================================================

    def upsert_brand_urls(self, brand_id: str, urls: list[BrandUrl]) -> int:
        """
        Insert or refresh discovered URLs for a brand.

        (brand_id, url) is the table key, so repeated discovery updates the
        same row. Discovery fields are overwritten; id, created_at and
        scrape progress are kept.

        Returns:
            Number of URLs written
        """
        now = _now()
        for brand_url in urls:
            names = {
                "#id": "id",
                "#created_at": "created_at",
                "#updated_at": "updated_at",
                "#scrape_status": "scrape_status",
                "#category": "category",
                "#priority": "priority",
                "#discovered_via": "discovered_via",
                "#metadata": "metadata",
            }
            values: dict[str, Any] = {
                ":id": brand_url.id or str(uuid.uuid4()),
                ":now": now,
                ":pending": ScrapeStatus(brand_url.scrape_status).value,
                ":category": brand_url.category.value,
                ":priority": int(brand_url.priority),
                ":discovered_via": brand_url.discovered_via,
                ":metadata": brand_url.metadata,
            }
            set_parts = [
                "#id = if_not_exists(#id, :id)",
                "#created_at = if_not_exists(#created_at, :now)",
                "#scrape_status = if_not_exists(#scrape_status, :pending)",
                "#updated_at = :now",
                "#category = :category",
                "#priority = :priority",
                "#discovered_via = :discovered_via",
                "#metadata = :metadata",
            ]
            if brand_url.title is not None:
                names["#title"] = "title"
                values[":title"] = brand_url.title
                set_parts.append("#title = :title")
            if brand_url.description is not None:
                names["#description"] = "description"
                values[":description"] = brand_url.description
                set_parts.append("#description = :description")

            self.brand_urls.update_item(
                Key={"brand_id": brand_id, "url": brand_url.url},
                UpdateExpression="SET " + ", ".join(set_parts),
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )

        logger.info(f"Upserted {len(urls)} URLs for brand {brand_id}")
        return len(urls)

    def get_brand_urls(self, brand_id: str) -> list[BrandUrl]:
        """All URLs of a brand, highest priority first."""
        query_kwargs: dict[str, Any] = {"KeyConditionExpression": Key("brand_id").eq(brand_id)}
        items = []
        while True:
            response = self.brand_urls.query(**query_kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        urls = [BrandUrl.from_dict(item) for item in items]
        urls.sort(key=lambda u: u.priority, reverse=True)
        return urls

    def update_url_status(
        self,
        brand_id: str,
        url: str,
        status: ScrapeStatus,
        *,
        content_length: int | None = None,
        scraped_at: str | None = None,
        error: str | None = None,
        only_from: tuple[ScrapeStatus, ...] | None = None,
    ) -> bool:
        """
        Set the scrape status of an existing BrandUrl.

        Args:
            brand_id: Owning brand
            url: URL (sort key)
            status: New scrape status
            content_length: Optional content length to record
            scraped_at: Optional scrape timestamp to record
            error: Optional error note stored in the row metadata
            only_from: Only update when the current status is one of these

        Returns:
            True if updated, False if no such row (or status not eligible)
        """
        names = {"#brand_id": "brand_id", "#scrape_status": "scrape_status", "#updated_at": "updated_at"}
        values: dict[str, Any] = {":status": ScrapeStatus(status).value, ":now": _now()}
        set_parts = ["#scrape_status = :status", "#updated_at = :now"]
        condition = "attribute_exists(#brand_id)"

        if content_length is not None:
            names["#content_length"] = "content_length"
            values[":content_length"] = int(content_length)
            set_parts.append("#content_length = :content_length")
        if scraped_at is not None:
            names["#scraped_at"] = "scraped_at"
            values[":scraped_at"] = scraped_at
            set_parts.append("#scraped_at = :scraped_at")
        if error is not None:
            names["#metadata"] = "metadata"
            names["#error"] = "error"
            values[":error"] = error
            set_parts.append("#metadata.#error = :error")
        if only_from:
            placeholders = []
            for i, previous in enumerate(only_from):
                values[f":p{i}"] = ScrapeStatus(previous).value
                placeholders.append(f":p{i}")
            condition += f" AND #scrape_status IN ({', '.join(placeholders)})"

        try:
            self.brand_urls.update_item(
                Key={"brand_id": brand_id, "url": url},
                UpdateExpression="SET " + ", ".join(set_parts),
                ConditionExpression=condition,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                logger.warning(f"No eligible URL row for {url} (brand {brand_id})")
                return False
            raise

        return True

    def fail_unfinished_urls(self, brand_id: str, error: str) -> int:
        """
        Mark every pending/scraping URL of a brand as failed.

        Returns:
            Number of URLs transitioned
        """
        failed = 0
        for brand_url in self.get_brand_urls(brand_id):
            if brand_url.scrape_status not in UNFINISHED_SCRAPE_STATUSES:
                continue
            if self.update_url_status(
                brand_id,
                brand_url.url,
                ScrapeStatus.FAILED,
                error=error,
                only_from=UNFINISHED_SCRAPE_STATUSES,
            ):
                failed += 1
        return failed

    def count_urls_by_status(self, brand_id: str) -> dict[str, int]:
        """Tally a brand's URLs by scrape status (every status present, zero if unused)."""
        counts = {status.value: 0 for status in ScrapeStatus}
        for brand_url in self.get_brand_urls(brand_id):
            counts[ScrapeStatus(brand_url.scrape_status).value] += 1
        return counts
