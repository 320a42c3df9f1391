"""
Custom exceptions for the brand discovery pipeline.
"""


class DiscoveryError(Exception):
    """Base exception for brand discovery errors."""


class InvalidDomainError(DiscoveryError, ValueError):
    """Input could not be normalized into a usable domain."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid domain format: {value}")


class FirecrawlError(DiscoveryError):
    """Scraping service rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class WebhookSignatureError(DiscoveryError):
    """Inbound webhook signature is missing or does not match."""
