"""
Client for the Firecrawl scraping service (REST API v2).

Covers the four calls the discovery pipeline needs: start an extract job,
poll it, map a site, and start a batch scrape with a webhook. Calls are
never retried here; retry is the reconciliation sweep's job.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from tedix_common.constants import (
    DEFAULT_FIRECRAWL_API_URL,
    FIRECRAWL_TIMEOUT_SECONDS,
    MAP_URL_LIMIT,
    SCRAPE_PAGE_TIMEOUT_MS,
)
from tedix_common.exceptions import FirecrawlError

logger = logging.getLogger(__name__)

BRAND_EXTRACT_SCHEMA = {
    "type": "object",
    "properties": {
        "company_name": {
            "type": "string",
            "description": "The official company or brand name",
        },
        "description": {
            "type": "string",
            "description": "A brief description of what the company does",
        },
        "industry": {
            "type": "string",
            "description": "The industry or sector the company operates in",
        },
        "logo_url": {
            "type": "string",
            "description": "URL to the company logo image",
        },
    },
    "required": ["company_name", "description"],
}

BRAND_EXTRACT_PROMPT = (
    "Extract comprehensive brand information including company name, description, industry, and logo URL."
)

WEBHOOK_EVENTS = ["page", "completed", "failed"]


@dataclass
class ExtractStatus:
    """Status of an extract job."""

    status: str
    data: dict[str, Any] | None = None
    error: str | None = None


class FirecrawlClient:
    """Thin synchronous wrapper over the Firecrawl v2 endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_FIRECRAWL_API_URL,
        timeout: float = FIRECRAWL_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Firecrawl API key
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = client.request(method, path, json=payload, headers=headers)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            raise FirecrawlError(f"{method} {path} failed with HTTP {status}: {detail}", status_code=status) from e
        except httpx.TimeoutException as e:
            raise FirecrawlError(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise FirecrawlError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise FirecrawlError(f"{method} {path} returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise FirecrawlError(f"{method} {path} returned an unexpected payload")
        return body

    def start_extract(self, domain: str) -> str:
        """
        Start an async brand extraction job.

        Returns:
            Extract job id

        Raises:
            FirecrawlError: If the job was not accepted
        """
        url = domain if domain.startswith("http") else f"https://{domain}"
        body = self._request(
            "POST",
            "/v2/extract",
            {
                "urls": [url],
                "prompt": BRAND_EXTRACT_PROMPT,
                "schema": BRAND_EXTRACT_SCHEMA,
                "ignoreInvalidURLs": True,
            },
        )
        job_id = body.get("id")
        if not body.get("success", True) or not job_id:
            raise FirecrawlError(body.get("error") or "Extract job was not started")

        logger.info(f"Started extract job {job_id} for {domain}")
        return job_id

    def get_extract_status(self, job_id: str) -> ExtractStatus:
        """Poll an extract job."""
        body = self._request("GET", f"/v2/extract/{job_id}")
        data = body.get("data")
        return ExtractStatus(
            status=body.get("status") or ("failed" if body.get("success") is False else "processing"),
            data=data if isinstance(data, dict) else None,
            error=body.get("error"),
        )

    def map_site(self, url: str, limit: int = MAP_URL_LIMIT, include_subdomains: bool = True) -> list[dict[str, Any]]:
        """
        Discover URLs of a site.

        Returns:
            List of {"url", "title", "description"} dicts
        """
        body = self._request(
            "POST",
            "/v2/map",
            {
                "url": url,
                "limit": limit,
                "sitemap": "include",
                "includeSubdomains": include_subdomains,
            },
        )

        links = []
        for link in body.get("links") or []:
            if isinstance(link, str):
                links.append({"url": link})
            elif isinstance(link, dict) and link.get("url"):
                links.append(link)
        return links

    def start_batch_scrape(self, urls: list[str], webhook_url: str, metadata: dict[str, Any]) -> str:
        """
        Start an async batch scrape that reports progress to a webhook.

        Args:
            urls: Pages to scrape
            webhook_url: Callback receiving page/completed/failed events
            metadata: Echoed back in every webhook event

        Returns:
            Batch scrape job id
        """
        body = self._request(
            "POST",
            "/v2/batch/scrape",
            {
                "urls": urls,
                "formats": ["markdown", "images"],
                "onlyMainContent": True,
                "timeout": SCRAPE_PAGE_TIMEOUT_MS,
                "blockAds": True,
                "removeBase64Images": True,
                "ignoreInvalidURLs": True,
                "webhook": {
                    "url": webhook_url,
                    "metadata": metadata,
                    "events": WEBHOOK_EVENTS,
                },
            },
        )
        job_id = body.get("id")
        if not body.get("success", True) or not job_id:
            raise FirecrawlError(body.get("error") or "Failed to start batch scrape")

        logger.info(f"Started batch scrape {job_id} for {len(urls)} URLs")
        return job_id


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body)[:200]
    return str(body)[:200]
