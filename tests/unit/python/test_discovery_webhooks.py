"""Unit tests for batch scrape webhook processing."""

import hashlib
import hmac
import json
from unittest.mock import MagicMock, patch

import pytest

from tedix_common.discovery import webhooks
from tedix_common.discovery.models import Brand, BrandUrl, DiscoveryStatus, ScrapeStatus, UploadResult
from tedix_common.discovery.webhooks import (
    WebhookEventKind,
    normalize_event_type,
    process_webhook,
    verify_signature,
)
from tedix_common.exceptions import WebhookSignatureError

SECRET = "whsec-test"
BRAND_ID = "3f1c2a9e-1b2c-4d5e-8f90-123456789abc"
PAGE_URL = "https://acme.io/about"


def _sign(body, secret=SECRET):
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _deliver(payload, repository, bucket="bucket", secret=SECRET):
    body = json.dumps(payload).encode("utf-8")
    headers = {"x-firecrawl-signature": _sign(body, secret)}
    return process_webhook(body, headers, SECRET, repository, bucket)


def _page_event(url=PAGE_URL, markdown="# About Acme\n\nWe make things."):
    return {
        "type": "batch_scrape.page",
        "id": "job-1",
        "success": True,
        "data": [{"markdown": markdown, "metadata": {"sourceURL": url, "title": "About"}}],
        "metadata": {"brandId": BRAND_ID, "domain": "acme.io"},
    }


@pytest.fixture
def brand(repository):
    repository.create_brand(
        Brand(id=BRAND_ID, name="Acme", slug="acme", primary_domain="acme.io", metadata={"extract_job_id": "ext-1"})
    )
    repository.upsert_brand_urls(
        BRAND_ID,
        [
            BrandUrl(brand_id=BRAND_ID, url=PAGE_URL, priority=50),
            BrandUrl(brand_id=BRAND_ID, url="https://acme.io/blog/a", priority=50),
            BrandUrl(brand_id=BRAND_ID, url="https://acme.io/shop", priority=50),
        ],
    )
    return repository.get_brand(BRAND_ID)


class TestSignature:
    """Tests for verify_signature and signature handling."""

    def test_valid_signature(self):
        body = b'{"type": "completed"}'
        verify_signature(body, _sign(body), SECRET)

    def test_string_body(self):
        body = '{"type": "completed"}'
        verify_signature(body, _sign(body.encode()), SECRET)

    @pytest.mark.parametrize(
        "signature",
        [None, "", "sha256=", "md5=abc", "sha256=deadbeef", "nonsense", "sha256=\u00e9\u00e9"],
    )
    def test_bad_signatures(self, signature):
        with pytest.raises(WebhookSignatureError):
            verify_signature(b"{}", signature, SECRET)

    def test_missing_secret(self):
        with pytest.raises(WebhookSignatureError):
            verify_signature(b"{}", _sign(b"{}"), None)

    def test_rejected_delivery_changes_nothing(self):
        repository = MagicMock()
        body = json.dumps({"type": "failed", "metadata": {"brandId": BRAND_ID}}).encode()

        response = process_webhook(body, {"X-Firecrawl-Signature": _sign(body, "wrong")}, SECRET, repository, "b")

        assert response.status_code == 401
        assert response.body == "Unauthorized"
        assert repository.mock_calls == []

    def test_tampered_body_rejected(self):
        repository = MagicMock()
        body = b'{"type": "failed"}'
        signature = _sign(body)

        response = process_webhook(b'{"type": "completed"}', {"X-Firecrawl-Signature": signature}, SECRET, repository, "b")

        assert response.status_code == 401
        assert repository.mock_calls == []

    def test_non_ascii_signature_unauthorized(self):
        repository = MagicMock()
        body = b'{"type": "failed"}'

        response = process_webhook(body, {"X-Firecrawl-Signature": "sha256=\u00e9\u00e9"}, SECRET, repository, "b")

        assert response.status_code == 401
        assert repository.mock_calls == []


class TestNormalizeEventType:
    """Tests for normalize_event_type."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("completed", WebhookEventKind.COMPLETED),
            ("crawl.completed", WebhookEventKind.COMPLETED),
            ("batch_scrape.completed", WebhookEventKind.COMPLETED),
            ("batch_scrape.page", WebhookEventKind.PAGE),
            ("crawl.started", WebhookEventKind.STARTED),
            ("FAILED", WebhookEventKind.FAILED),
            ("extract.unknown", None),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_event_type(raw) == expected


class TestPageEvents:
    """Tests for page event handling."""

    def test_page_uploaded(self, brand, repository, aws_resources):
        response = _deliver(_page_event(), repository, bucket=aws_resources["bucket"])

        assert response.status_code == 200
        url = next(u for u in repository.get_brand_urls(BRAND_ID) if u.url == PAGE_URL)
        assert url.scrape_status == ScrapeStatus.UPLOADED
        assert url.scraped_at is not None

        listed = aws_resources["s3"].list_objects_v2(
            Bucket=aws_resources["bucket"], Prefix=f"brands/{BRAND_ID}/acme.io/content/info/about-"
        )
        assert listed["KeyCount"] == 1
        stored = listed["Contents"][0]
        assert url.content_length == stored["Size"]

        body = aws_resources["s3"].get_object(Bucket=aws_resources["bucket"], Key=stored["Key"])["Body"].read()
        assert b"We make things." in body

    def test_duplicate_page_event_keeps_single_object(self, brand, repository, aws_resources):
        bucket = aws_resources["bucket"]

        _deliver(_page_event(markdown="first"), repository, bucket=bucket)
        _deliver(_page_event(markdown="second"), repository, bucket=bucket)

        listed = aws_resources["s3"].list_objects_v2(Bucket=bucket, Prefix=f"brands/{BRAND_ID}/")
        assert listed["KeyCount"] == 1
        body = aws_resources["s3"].get_object(Bucket=bucket, Key=listed["Contents"][0]["Key"])["Body"].read()
        assert b"second" in body

    def test_domain_falls_back_to_brand(self, brand, repository, aws_resources):
        event = _page_event()
        del event["metadata"]["domain"]

        response = _deliver(event, repository, bucket=aws_resources["bucket"])

        assert response.status_code == 200
        listed = aws_resources["s3"].list_objects_v2(Bucket=aws_resources["bucket"], Prefix=f"brands/{BRAND_ID}/")
        assert {o["Key"].split("/")[2] for o in listed["Contents"]} == {"acme.io"}

    def test_unknown_domain_marks_url_failed(self):
        repository = MagicMock()
        repository.get_brand.return_value = None
        event = _page_event()
        del event["metadata"]["domain"]

        with patch.object(webhooks, "upload_brand_content") as upload:
            response = _deliver(event, repository)

        assert response.status_code == 200
        upload.assert_not_called()
        last = repository.update_url_status.call_args
        assert last.args[2] == ScrapeStatus.FAILED
        assert last.kwargs["error"] == "Unknown brand domain"

    @pytest.mark.parametrize("metadata", ["https://acme.io/about", ["https://acme.io/about"]])
    def test_non_dict_page_metadata_acknowledged(self, metadata):
        repository = MagicMock()
        event = _page_event()
        event["data"] = [{"markdown": "x", "metadata": metadata}]

        assert _deliver(event, repository).status_code == 200
        repository.update_url_status.assert_not_called()

    def test_page_without_source_url(self):
        repository = MagicMock()
        event = _page_event()
        event["data"] = [{"markdown": "x", "metadata": {}}]

        with patch.object(webhooks, "upload_brand_content") as upload:
            response = _deliver(event, repository)

        assert response.status_code == 200
        repository.update_url_status.assert_not_called()
        upload.assert_not_called()

    def test_page_without_data(self):
        repository = MagicMock()
        event = _page_event()
        event["data"] = []

        assert _deliver(event, repository).status_code == 200
        assert repository.mock_calls == []

    def test_upload_failure_marks_url_failed(self):
        repository = MagicMock()
        failed = UploadResult(url=PAGE_URL, key="", success=False, error="bucket unavailable")

        with patch.object(webhooks, "upload_brand_content", return_value=[failed]):
            response = _deliver(_page_event(), repository)

        assert response.status_code == 200
        statuses = [c.args[2] for c in repository.update_url_status.call_args_list]
        assert statuses == [ScrapeStatus.SCRAPED, ScrapeStatus.UPLOADING, ScrapeStatus.FAILED]
        assert repository.update_url_status.call_args.kwargs["error"] == "bucket unavailable"

    def test_upload_exception_marks_url_failed(self):
        repository = MagicMock()

        with patch.object(webhooks, "upload_brand_content", side_effect=RuntimeError("boom")):
            response = _deliver(_page_event(), repository)

        assert response.status_code == 200
        last = repository.update_url_status.call_args
        assert last.args[2] == ScrapeStatus.FAILED
        assert last.kwargs["error"] == "boom"

    def test_upload_content_shape(self):
        repository = MagicMock()
        ok = UploadResult(url=PAGE_URL, key="k", success=True, size=10)
        markdown = "x" * 6000

        with patch.object(webhooks, "upload_brand_content", return_value=[ok]) as upload:
            _deliver(_page_event(markdown=markdown), repository, bucket="content")

        args, kwargs = upload.call_args
        assert args[:3] == ("content", BRAND_ID, "acme.io")
        item = args[3][0]
        assert item.url == PAGE_URL
        assert item.title == "About"
        assert item.content == markdown
        assert len(item.processed_content) == 5000
        assert item.content_type == "info"
        assert kwargs["overwrite"] is True


class TestLifecycleEvents:
    """Tests for started, completed and failed events."""

    def test_started(self, brand, repository):
        response = _deliver({"type": "batch_scrape.started", "id": "job-1", "metadata": {"brandId": BRAND_ID}}, repository)

        assert response.status_code == 200
        updated = repository.get_brand(BRAND_ID)
        assert updated.discovery_status == DiscoveryStatus.SCRAPED
        assert updated.metadata["current_job_id"] == "job-1"
        assert updated.metadata["extract_job_id"] == "ext-1"

    def test_completed_records_tallies(self, brand, repository):
        repository.update_url_status(BRAND_ID, PAGE_URL, ScrapeStatus.UPLOADED)
        repository.update_url_status(BRAND_ID, "https://acme.io/shop", ScrapeStatus.FAILED)

        response = _deliver(
            {"type": "batch_scrape.completed", "id": "job-1", "metadata": {"brandId": BRAND_ID}}, repository
        )

        assert response.status_code == 200
        updated = repository.get_brand(BRAND_ID)
        assert updated.discovery_status == DiscoveryStatus.SCRAPED
        assert updated.metadata["urls_uploaded"] == 1
        assert updated.metadata["urls_failed"] == 1
        assert updated.metadata["urls_scraped"] == 0
        assert updated.metadata["total_urls"] == 3
        assert "scrape_completed_at" in updated.metadata

    def test_completed_after_completion_is_ignored(self, brand, repository):
        repository.update_brand(BRAND_ID, status=DiscoveryStatus.MAPPED)
        repository.update_brand(BRAND_ID, status=DiscoveryStatus.COMPLETED)

        response = _deliver({"type": "completed", "metadata": {"brandId": BRAND_ID}}, repository)

        assert response.status_code == 200
        assert repository.get_brand(BRAND_ID).discovery_status == DiscoveryStatus.COMPLETED

    def test_failed(self, brand, repository):
        repository.update_url_status(BRAND_ID, PAGE_URL, ScrapeStatus.UPLOADED)

        response = _deliver(
            {
                "type": "batch_scrape.failed",
                "id": "job-1",
                "error": "Credits exhausted",
                "metadata": {"brandId": BRAND_ID},
            },
            repository,
        )

        assert response.status_code == 200
        updated = repository.get_brand(BRAND_ID)
        assert updated.discovery_status == DiscoveryStatus.FAILED
        assert updated.metadata["error"] == "Credits exhausted"

        statuses = {u.url: u.scrape_status for u in repository.get_brand_urls(BRAND_ID)}
        assert statuses[PAGE_URL] == ScrapeStatus.UPLOADED
        assert statuses["https://acme.io/blog/a"] == ScrapeStatus.FAILED
        assert statuses["https://acme.io/shop"] == ScrapeStatus.FAILED

    def test_failed_default_error(self):
        repository = MagicMock()

        _deliver({"type": "failed", "metadata": {"brandId": BRAND_ID}}, repository)

        metadata = repository.update_brand.call_args.kwargs["metadata"]
        assert metadata["error"] == "Firecrawl job failed"
        repository.fail_unfinished_urls.assert_called_once_with(BRAND_ID, "Firecrawl job failed")

    def test_event_without_brand_id(self):
        repository = MagicMock()

        response = _deliver({"type": "completed", "id": "job-1"}, repository)

        assert response.status_code == 200
        repository.update_brand.assert_not_called()


class TestProcessWebhook:
    """Tests for process_webhook dispatch and error handling."""

    def test_unknown_type_acknowledged(self):
        repository = MagicMock()

        response = _deliver({"type": "crawl.mystery", "metadata": {"brandId": BRAND_ID}}, repository)

        assert (response.status_code, response.body) == (200, "OK")
        assert repository.mock_calls == []

    def test_invalid_json_is_server_error(self):
        body = b"not json"

        response = process_webhook(body, {"X-Firecrawl-Signature": _sign(body)}, SECRET, MagicMock(), "b")

        assert response.status_code == 500
        assert response.body == "Internal server error"

    def test_handler_error_is_server_error(self):
        repository = MagicMock()
        repository.update_brand.side_effect = RuntimeError("throttled")

        response = _deliver({"type": "started", "metadata": {"brandId": BRAND_ID}}, repository)

        assert response.status_code == 500
