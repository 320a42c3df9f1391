"""Unit tests for logging utilities."""

from tedix_common.logging_utils import log_summary, mask_value, safe_log_event


class TestMaskValue:
    """Tests for mask_value."""

    def test_short_secret_fully_masked(self):
        assert mask_value("webhook_secret", "abc") == "***"

    def test_long_value_keeps_prefix_and_length(self):
        value = "sha256=" + "a" * 64

        assert mask_value("X-Firecrawl-Signature", value) == f"{value[:10]}...({len(value)} chars)"

    def test_collections_masked(self):
        assert mask_value("content", [{"url": "x"}]) == "[list: masked]"

    def test_nested_dicts(self):
        masked = mask_value("headers", {"Authorization": "Bearer x", "Host": "api.test"})

        assert masked == {"Authorization": "***", "Host": "api.test"}

    def test_non_sensitive_passthrough(self):
        assert mask_value("domain", "acme.io") == "acme.io"
        assert mask_value("count", 3) == 3


class TestSafeLogEvent:
    """Tests for safe_log_event."""

    def test_masks_webhook_event(self):
        event = {
            "headers": {"x-firecrawl-signature": "sha256=" + "f" * 64},
            "body": '{"type": "page"}',
            "isBase64Encoded": False,
        }

        safe = safe_log_event(event)

        assert safe["body"] == "***"
        assert safe["headers"]["x-firecrawl-signature"].endswith("(71 chars)")
        assert safe["isBase64Encoded"] is False
        # original untouched
        assert event["body"] == '{"type": "page"}'

    def test_non_dict(self):
        assert safe_log_event("raw") == {"_raw": "raw"}


class TestLogSummary:
    """Tests for log_summary."""

    def test_fields(self):
        summary = log_summary(
            "discover_brand",
            duration_ms=12.3456,
            item_count=4,
            brand_id="b1",
            urls=["a", "b"],
            ignored={"x": 1},
        )

        assert summary == {
            "operation": "discover_brand",
            "success": True,
            "duration_ms": 12.35,
            "item_count": 4,
            "brand_id": "b1",
            "urls": 2,
        }

    def test_error_truncated(self):
        summary = log_summary("sweep", success=False, error="x" * 600)

        assert summary["success"] is False
        assert len(summary["error"]) == 500
