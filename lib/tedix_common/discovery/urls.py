"""
URL normalization and classification for brand discovery.

Pure functions only: these run on both the webhook hot path and the bulk
mapping path, so nothing here performs I/O.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote, urlparse

from tedix_common.constants import LOGO_SERVICE_URL, MAX_URLS_PER_CATEGORY
from tedix_common.discovery.models import Brand, UrlCategory
from tedix_common.exceptions import InvalidDomainError

logger = logging.getLogger(__name__)

SUBDOMAIN_SCORE = 100
PATH_SCORE = 50
TITLE_SCORE = 25
HOMEPAGE_BONUS = 30

# Checked in this order; a later category wins only with a strictly higher score
CATEGORY_PATTERNS: dict[UrlCategory, dict[str, tuple[str, ...]]] = {
    UrlCategory.INFO: {
        "subdomains": ("main", "corporate", "about"),
        "paths": (
            "about",
            "company",
            "team",
            "careers",
            "contact",
            "investors",
            "leadership",
            "mission",
            "values",
            "home",
        ),
        "titles": ("about us", "our team", "careers", "contact us", "leadership", "company", "home"),
    },
    UrlCategory.BLOG: {
        "subdomains": ("blog", "news", "media", "press", "stories"),
        "paths": (
            "blog",
            "news",
            "articles",
            "updates",
            "press",
            "media",
            "stories",
            "insights",
            "newsroom",
        ),
        "titles": ("blog", "news", "article", "press", "update", "story"),
    },
    UrlCategory.DOCS: {
        "subdomains": ("docs", "help", "support", "api", "developer", "dev"),
        "paths": (
            "docs",
            "documentation",
            "help",
            "support",
            "guide",
            "api",
            "reference",
            "tutorial",
            "manual",
            "faq",
        ),
        "titles": ("documentation", "help", "guide", "api", "reference", "tutorial", "support"),
    },
    UrlCategory.SHOP: {
        "subdomains": ("shop", "store", "buy", "checkout", "cart", "marketplace"),
        "paths": (
            "shop",
            "store",
            "buy",
            "cart",
            "checkout",
            "products",
            "catalog",
            "marketplace",
            "order",
            "pricing",
            "plans",
            "purchase",
        ),
        "titles": ("shop", "store", "buy", "product", "catalog", "marketplace", "pricing"),
    },
}

# Output order of select_top_urls: info and commerce content first
SELECTION_ORDER = (
    UrlCategory.INFO,
    UrlCategory.SHOP,
    UrlCategory.DOCS,
    UrlCategory.BLOG,
    UrlCategory.OTHER,
)

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_domain(value: str) -> str:
    """
    Canonicalize user input into a bare domain.

    Strips scheme, credentials, leading ``www.``, path, query, fragment and
    port, then lower-cases. ``normalize_domain(normalize_domain(x))`` equals
    ``normalize_domain(x)``.

    Args:
        value: Domain or URL as typed by a user

    Returns:
        Normalized domain, e.g. ``example.com``

    Raises:
        InvalidDomainError: If nothing usable remains or the host has no dot
    """
    if not value or not isinstance(value, str):
        raise InvalidDomainError(str(value))

    host = unquote(value).strip()
    host = _SCHEME_RE.sub("", host)
    host = re.split(r"[/?#]", host, maxsplit=1)[0]
    host = host.rsplit("@", 1)[-1]
    host = host.split(":", 1)[0]
    host = host.strip().lower().rstrip(".")
    while host.startswith("www."):
        host = host[4:]

    if not host or "." not in host or any(c.isspace() for c in host):
        raise InvalidDomainError(value)

    logger.debug(f"Normalized domain: {value!r} -> {host!r}")
    return host


def _subdomain_labels(hostname: str) -> list[str]:
    """Labels left of the registered domain, ignoring a leading www."""
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname.split(".")[:-2]


def classify_url(url: str, title: str | None = None) -> tuple[UrlCategory, int]:
    """
    Classify a URL into the content taxonomy.

    Each category scores subdomain (100), path keyword (50) and title keyword
    (25) matches; info also gets a homepage bonus (30). The strictly highest
    score wins and ties keep the earlier category (info, blog, docs, shop).

    Args:
        url: Absolute URL
        title: Optional page title

    Returns:
        Tuple of (category, score); (OTHER, 0) when nothing matches or the
        URL cannot be parsed
    """
    try:
        parsed = urlparse(url)
        hostname = (parsed.hostname or "").lower()
    except (ValueError, AttributeError, TypeError):
        return UrlCategory.OTHER, 0

    if not hostname:
        return UrlCategory.OTHER, 0

    path = (parsed.path or "/").lower()
    title_lower = (title or "").lower()
    labels = _subdomain_labels(hostname)

    category = UrlCategory.OTHER
    best = 0

    for name, patterns in CATEGORY_PATTERNS.items():
        score = 0
        if any(label in patterns["subdomains"] for label in labels):
            score += SUBDOMAIN_SCORE
        if any(f"/{keyword}" in path for keyword in patterns["paths"]):
            score += PATH_SCORE
        if title_lower and any(keyword in title_lower for keyword in patterns["titles"]):
            score += TITLE_SCORE
        if name == UrlCategory.INFO and path in ("/", "/home"):
            score += HOMEPAGE_BONUS

        if score > best:
            category = name
            best = score

    return category, best


@dataclass
class ClassifiedLink:
    """A mapped link with its category and relevance score."""

    url: str
    category: UrlCategory
    priority: int
    title: str | None = None
    description: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def categorize_urls(links: list[dict[str, Any]]) -> dict[UrlCategory, list[ClassifiedLink]]:
    """
    Group mapped links by category.

    Args:
        links: Dicts with ``url`` and optional ``title``/``description``

    Returns:
        Dict with a (possibly empty) list for every category
    """
    categorized: dict[UrlCategory, list[ClassifiedLink]] = {c: [] for c in UrlCategory}

    for link in links:
        url = link.get("url")
        if not url:
            continue
        category, score = classify_url(url, link.get("title"))
        categorized[category].append(
            ClassifiedLink(
                url=url,
                category=category,
                priority=score,
                title=link.get("title"),
                description=link.get("description"),
            )
        )

    return categorized


def select_top_urls(
    categorized: dict[UrlCategory, list[Any]],
    max_per_category: int = MAX_URLS_PER_CATEGORY,
) -> list[Any]:
    """
    Take the top-scoring items of each category.

    Works with anything exposing a ``priority`` attribute (ClassifiedLink, BrandUrl).

    Args:
        categorized: Items grouped by category
        max_per_category: Items kept per category

    Returns:
        Items in category order info, shop, docs, blog, other; each category
        sorted by descending priority
    """
    selected = []
    for category in SELECTION_ORDER:
        items = categorized.get(category) or []
        ranked = sorted(items, key=lambda item: item.priority or 0, reverse=True)
        selected.extend(ranked[:max_per_category])
        if ranked:
            logger.debug(
                f"{category.value}: selected {min(len(ranked), max_per_category)}/{len(ranked)} URLs"
            )
    return selected


# =============================================================================
# Brand helpers
# =============================================================================


def generate_brand_slug(name_or_domain: str) -> str:
    """Lower-case, non-alphanumeric runs collapsed to single hyphens, trimmed."""
    return _NON_ALNUM_RE.sub("-", name_or_domain.lower()).strip("-")


def placeholder_brand_name(domain: str) -> str:
    """Capitalized first label of the domain (``acme.io`` -> ``Acme``)."""
    first = domain.split(".")[0]
    return first[:1].upper() + first[1:]


def default_logo_url(domain: str) -> str:
    return f"{LOGO_SERVICE_URL}/{domain}"


def brand_logo_url(brand: Brand) -> str:
    """Best available logo: brand field, then extracted metadata, then the logo service."""
    if brand.logo_url and brand.logo_url != brand.primary_domain:
        return brand.logo_url

    metadata_logo = brand.metadata.get("logo_url")
    if metadata_logo and metadata_logo != brand.primary_domain:
        return metadata_logo

    return default_logo_url(brand.primary_domain)
