"""
Brand context for requests scoped to one brand.

The context is resolved once per request and passed explicitly to whatever
needs it; nothing is kept in module state between invocations.
"""

import logging
import re
from dataclasses import dataclass

from botocore.exceptions import BotoCoreError, ClientError

from tedix_common.discovery.models import Brand
from tedix_common.discovery.repository import BrandRepository

logger = logging.getLogger(__name__)

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class BrandContext:
    """Brand a request is scoped to; ``is_global`` means no brand scoping."""

    brand: Brand | None
    is_global: bool

    @property
    def brand_id(self) -> str | None:
        return self.brand.id if self.brand else None


GLOBAL_CONTEXT = BrandContext(brand=None, is_global=True)


def is_valid_brand_id(brand_id: str) -> bool:
    return bool(UUID_RE.match(brand_id or ""))


def resolve_brand_context(repository: BrandRepository, brand_id: str | None) -> BrandContext | None:
    """
    Resolve the brand context for a request.

    Args:
        repository: Brand persistence
        brand_id: Requested brand id, or None for global mode

    Returns:
        GLOBAL_CONTEXT when no id is given, a brand-scoped context when the
        brand exists, None when the id is malformed, unknown or cannot be loaded
    """
    if not brand_id:
        logger.info("Global mode (no brandId)")
        return GLOBAL_CONTEXT

    if not is_valid_brand_id(brand_id):
        logger.warning(f"Invalid brandId format: {brand_id}")
        return None

    try:
        brand = repository.get_brand(brand_id)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to load brand {brand_id}: {e}")
        return None

    if brand is None:
        logger.warning(f"Brand not found: {brand_id}")
        return None

    logger.info(f"Loaded brand context: {brand.name} ({brand.id})")
    return BrandContext(brand=brand, is_global=False)
