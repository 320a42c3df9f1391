"""Configuration for the brand discovery Lambdas.

Every setting comes from the function's environment. Entry points build a
PipelineConfig once per invocation and call ``require`` for the settings they
depend on, so a misconfigured deployment fails before any external call is made.

Usage:
    config = PipelineConfig.from_env()
    config.require("brands_table", "firecrawl_api_key")
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from tedix_common.constants import DEFAULT_FIRECRAWL_API_URL, WEBHOOK_PATH

logger = logging.getLogger(__name__)

# Field name -> environment variable
ENV_VARS = {
    "brands_table": "BRANDS_TABLE",
    "brand_urls_table": "BRAND_URLS_TABLE",
    "content_bucket": "CONTENT_BUCKET",
    "storage_endpoint_url": "STORAGE_ENDPOINT_URL",
    "firecrawl_api_key": "FIRECRAWL_API_KEY",
    "firecrawl_api_url": "FIRECRAWL_API_URL",
    "webhook_secret": "FIRECRAWL_WEBHOOK_SECRET",
    "backend_url": "BACKEND_URL",
    "ai_search_account_id": "AI_SEARCH_ACCOUNT_ID",
    "ai_search_instance": "AI_SEARCH_INSTANCE",
    "ai_search_api_token": "AI_SEARCH_API_TOKEN",
}


@dataclass(frozen=True)
class PipelineConfig:
    """
    Effective configuration for one invocation.

    Attributes:
        brands_table: DynamoDB table holding Brand records
        brand_urls_table: DynamoDB table holding BrandUrl records
        content_bucket: Object store bucket for scraped content
        storage_endpoint_url: Custom S3-compatible endpoint (None for AWS S3)
        firecrawl_api_key: Scraping service API key
        firecrawl_api_url: Scraping service base URL
        webhook_secret: Shared secret used to sign inbound webhooks
        backend_url: Public base URL of this backend (webhook callbacks)
        ai_search_account_id: Search index account
        ai_search_instance: Search index instance name
        ai_search_api_token: Search index API token
    """

    brands_table: str | None = None
    brand_urls_table: str | None = None
    content_bucket: str | None = None
    storage_endpoint_url: str | None = None
    firecrawl_api_key: str | None = None
    firecrawl_api_url: str = DEFAULT_FIRECRAWL_API_URL
    webhook_secret: str | None = None
    backend_url: str | None = None
    ai_search_account_id: str | None = None
    ai_search_instance: str | None = None
    ai_search_api_token: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PipelineConfig":
        """Build configuration from environment variables (empty values count as unset)."""
        environ = os.environ if environ is None else environ
        values = {}
        for field_name, env_name in ENV_VARS.items():
            value = (environ.get(env_name) or "").strip()
            if value:
                values[field_name] = value
        return cls(**values)

    def require(self, *field_names: str) -> None:
        """
        Ensure the given settings are present.

        Raises:
            ValueError: Naming the first missing environment variable
        """
        for field_name in field_names:
            if not getattr(self, field_name):
                raise ValueError(f"{ENV_VARS[field_name]} environment variable required")

    @property
    def webhook_url(self) -> str | None:
        """Callback URL registered with batch scrape jobs."""
        if not self.backend_url:
            return None
        return f"{self.backend_url.rstrip('/')}{WEBHOOK_PATH}"

    @property
    def ai_search_configured(self) -> bool:
        """True when every search index setting is present."""
        return bool(self.ai_search_account_id and self.ai_search_instance and self.ai_search_api_token)
