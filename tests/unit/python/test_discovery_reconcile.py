"""Unit tests for the reconciliation sweep."""

from unittest.mock import MagicMock

import pytest

from tedix_common.discovery.models import Brand, DiscoveryStatus
from tedix_common.discovery.reconcile import (
    EXTRACT_COMPLETION_SELECTION,
    FINALIZATION_SELECTION,
    finalize_brands,
    process_extract_jobs,
    run_sweep,
)
from tedix_common.exceptions import FirecrawlError
from tedix_common.firecrawl import ExtractStatus

SYNC_OK = {"success": True, "result": {"job_id": "sync-1"}}


def _create(repository, brand_id, status, domain=None, **kwargs):
    repository.create_brand(
        Brand(
            id=brand_id,
            name=brand_id.title(),
            slug=brand_id,
            primary_domain=domain or f"{brand_id}.io",
            discovery_status=status,
            **kwargs,
        )
    )


@pytest.fixture
def firecrawl():
    return MagicMock()


class TestSelections:
    """Tests for the sweep selection predicates."""

    def test_extract_selection(self, repository):
        _create(repository, "waiting", DiscoveryStatus.PENDING, metadata={"extract_job_id": "e1"})
        _create(repository, "scraping", DiscoveryStatus.SCRAPED, metadata={"extract_job_id": "e2"})
        _create(repository, "nojob", DiscoveryStatus.PENDING)
        _create(
            repository,
            "extracted",
            DiscoveryStatus.SCRAPED,
            metadata={"extract_job_id": "e3"},
            extracted_at="2025-01-01T00:00:00+00:00",
        )
        _create(repository, "mapped", DiscoveryStatus.MAPPED, metadata={"extract_job_id": "e4"})

        selected = {b.id for b in repository.find_brands(EXTRACT_COMPLETION_SELECTION)}

        assert selected == {"waiting", "scraping"}

    def test_finalization_excludes_unextracted(self, repository):
        _create(repository, "ready", DiscoveryStatus.SCRAPED, extracted_at="2025-01-01T00:00:00+00:00")
        _create(repository, "mapped", DiscoveryStatus.MAPPED, extracted_at="2025-01-01T00:00:00+00:00")
        _create(repository, "notextracted", DiscoveryStatus.SCRAPED)
        _create(
            repository,
            "synced",
            DiscoveryStatus.SCRAPED,
            extracted_at="2025-01-01T00:00:00+00:00",
            ai_search_synced_at="2025-01-02T00:00:00+00:00",
        )
        _create(repository, "failed", DiscoveryStatus.FAILED, extracted_at="2025-01-01T00:00:00+00:00")

        selected = {b.id for b in repository.find_brands(FINALIZATION_SELECTION)}

        assert selected == {"ready", "mapped"}

    def test_matches_agrees_with_condition(self):
        brand = Brand(id="b", name="B", slug="b", primary_domain="b.io", discovery_status=DiscoveryStatus.SCRAPED)

        assert not FINALIZATION_SELECTION.matches(brand)
        brand.extracted_at = "2025-01-01T00:00:00+00:00"
        assert FINALIZATION_SELECTION.matches(brand)
        assert not EXTRACT_COMPLETION_SELECTION.matches(brand)


class TestProcessExtractJobs:
    """Tests for process_extract_jobs."""

    def test_completed_job_applies_brand_fields(self, repository, firecrawl):
        _create(repository, "acme", DiscoveryStatus.PENDING, metadata={"extract_job_id": "e1", "note": "keep"})
        firecrawl.get_extract_status.return_value = ExtractStatus(
            status="completed",
            data={"company_name": "Acme Corp", "description": "Makes anvils", "logo_url": "https://acme.io/logo.png"},
        )

        counts = process_extract_jobs(repository, firecrawl)

        assert counts["checked"] == 1
        assert counts["completed"] == 1
        brand = repository.get_brand("acme")
        assert brand.name == "Acme Corp"
        assert brand.description == "Makes anvils"
        assert brand.logo_url == "https://acme.io/logo.png"
        assert brand.discovery_status == DiscoveryStatus.MAPPED
        assert brand.extracted_at is not None
        assert brand.metadata["company_name"] == "Acme Corp"
        assert brand.metadata["industry"] == "Technology"
        assert brand.metadata["note"] == "keep"

    def test_completed_without_data_uses_fallbacks(self, repository, firecrawl):
        _create(repository, "acme", DiscoveryStatus.PENDING, metadata={"extract_job_id": "e1"})
        firecrawl.get_extract_status.return_value = ExtractStatus(status="completed", data=None)

        process_extract_jobs(repository, firecrawl)

        brand = repository.get_brand("acme")
        assert brand.name == "Acme"
        assert brand.description == "Official website and services from Acme."
        assert brand.logo_url == "https://logo.clearbit.com/acme.io"

    def test_completed_without_logo_keeps_brand_logo(self, repository, firecrawl):
        _create(
            repository,
            "acme",
            DiscoveryStatus.PENDING,
            logo_url="https://cdn.acme.io/logo.svg",
            metadata={"extract_job_id": "e1"},
        )
        firecrawl.get_extract_status.return_value = ExtractStatus(status="completed", data={"company_name": "Acme"})

        process_extract_jobs(repository, firecrawl)

        assert repository.get_brand("acme").logo_url == "https://cdn.acme.io/logo.svg"

    def test_rejected_update_not_counted_completed(self, firecrawl):
        brand = Brand(
            id="acme",
            name="Acme",
            slug="acme",
            primary_domain="acme.io",
            metadata={"extract_job_id": "e1"},
        )
        repository = MagicMock()
        repository.find_brands.return_value = [brand]
        repository.update_brand.return_value = False
        firecrawl.get_extract_status.return_value = ExtractStatus(status="completed", data={"company_name": "Acme"})

        counts = process_extract_jobs(repository, firecrawl)

        assert counts["completed"] == 0
        assert counts["rejected"] == 1

    def test_scraped_brand_becomes_finalizable(self, repository, firecrawl):
        _create(repository, "acme", DiscoveryStatus.SCRAPED, metadata={"extract_job_id": "e1"})
        firecrawl.get_extract_status.return_value = ExtractStatus(status="completed", data={"company_name": "Acme"})

        process_extract_jobs(repository, firecrawl)

        brand = repository.get_brand("acme")
        assert brand.extracted_at is not None
        assert [b.id for b in repository.find_brands(FINALIZATION_SELECTION)] == ["acme"]

    def test_failed_job(self, repository, firecrawl):
        _create(repository, "acme", DiscoveryStatus.PENDING, metadata={"extract_job_id": "e1"})
        firecrawl.get_extract_status.return_value = ExtractStatus(status="failed", error="Site unreachable")

        counts = process_extract_jobs(repository, firecrawl)

        assert counts["failed"] == 1
        brand = repository.get_brand("acme")
        assert brand.discovery_status == DiscoveryStatus.FAILED
        assert brand.metadata["error"] == "Site unreachable"

    def test_cancelled_job_left_untouched(self, repository, firecrawl):
        _create(repository, "acme", DiscoveryStatus.PENDING, metadata={"extract_job_id": "e1"})
        firecrawl.get_extract_status.return_value = ExtractStatus(status="cancelled")

        counts = process_extract_jobs(repository, firecrawl)

        assert counts["cancelled"] == 1
        brand = repository.get_brand("acme")
        assert brand.discovery_status == DiscoveryStatus.PENDING
        assert brand.extracted_at is None

    def test_processing_job_waits(self, repository, firecrawl):
        _create(repository, "acme", DiscoveryStatus.PENDING, metadata={"extract_job_id": "e1"})
        firecrawl.get_extract_status.return_value = ExtractStatus(status="processing")

        counts = process_extract_jobs(repository, firecrawl)

        assert counts["processing"] == 1
        assert repository.get_brand("acme").discovery_status == DiscoveryStatus.PENDING

    def test_one_error_does_not_stop_the_batch(self, repository, firecrawl):
        _create(repository, "aaa", DiscoveryStatus.PENDING, metadata={"extract_job_id": "bad"}, created_at="2025-01-01")
        _create(repository, "bbb", DiscoveryStatus.PENDING, metadata={"extract_job_id": "good"}, created_at="2025-01-02")

        def status(job_id):
            if job_id == "bad":
                raise FirecrawlError("HTTP 500", status_code=500)
            return ExtractStatus(status="completed", data={"company_name": "Bbb Co"})

        firecrawl.get_extract_status.side_effect = status

        counts = process_extract_jobs(repository, firecrawl)

        assert counts == {
            "checked": 2,
            "completed": 1,
            "rejected": 0,
            "failed": 0,
            "cancelled": 0,
            "processing": 0,
            "errors": 1,
        }
        assert repository.get_brand("aaa").extracted_at is None
        assert repository.get_brand("bbb").name == "Bbb Co"

    def test_nothing_to_do(self, repository, firecrawl):
        counts = process_extract_jobs(repository, firecrawl)

        assert counts["checked"] == 0
        firecrawl.get_extract_status.assert_not_called()


class TestFinalizeBrands:
    """Tests for finalize_brands."""

    def test_finalizes_and_syncs(self, repository):
        _create(repository, "acme", DiscoveryStatus.SCRAPED, extracted_at="2025-01-01T00:00:00+00:00")
        sync = MagicMock(return_value=SYNC_OK)

        counts = finalize_brands(repository, sync)

        assert counts["finalized"] == 1
        assert counts["synced"] == 1
        sync.assert_called_once_with()
        brand = repository.get_brand("acme")
        assert brand.discovery_status == DiscoveryStatus.COMPLETED
        assert brand.ai_search_synced_at is not None

    def test_sync_failure_still_completes(self, repository):
        _create(repository, "acme", DiscoveryStatus.SCRAPED, extracted_at="2025-01-01T00:00:00+00:00")

        counts = finalize_brands(repository, MagicMock(return_value=None))

        assert counts["finalized"] == 1
        assert counts["sync_failed"] == 1
        assert repository.get_brand("acme").discovery_status == DiscoveryStatus.COMPLETED

    def test_sync_exception_still_completes(self, repository):
        _create(repository, "acme", DiscoveryStatus.MAPPED, extracted_at="2025-01-01T00:00:00+00:00")

        counts = finalize_brands(repository, MagicMock(side_effect=RuntimeError("network")))

        assert counts["finalized"] == 1
        assert counts["sync_failed"] == 1
        assert repository.get_brand("acme").discovery_status == DiscoveryStatus.COMPLETED

    def test_update_error_counted(self):
        brand = Brand(
            id="acme",
            name="Acme",
            slug="acme",
            primary_domain="acme.io",
            discovery_status=DiscoveryStatus.SCRAPED,
            extracted_at="2025-01-01T00:00:00+00:00",
        )
        repository = MagicMock()
        repository.find_brands.return_value = [brand]
        repository.update_brand.side_effect = RuntimeError("throttled")

        counts = finalize_brands(repository, MagicMock(return_value=SYNC_OK))

        assert counts["errors"] == 1
        assert counts["finalized"] == 0

    def test_respects_batch_limit(self, repository):
        for i in range(7):
            _create(
                repository,
                f"brand{i}",
                DiscoveryStatus.SCRAPED,
                extracted_at="2025-01-01T00:00:00+00:00",
            )

        counts = finalize_brands(repository, MagicMock(return_value=SYNC_OK))

        assert counts["checked"] == 5
        assert len(repository.find_brands(FINALIZATION_SELECTION)) == 2


class TestRunSweep:
    """Tests for run_sweep."""

    def test_extracted_brand_completes_in_one_sweep(self, repository, firecrawl):
        _create(repository, "acme", DiscoveryStatus.SCRAPED, metadata={"extract_job_id": "e1"})
        firecrawl.get_extract_status.return_value = ExtractStatus(status="completed", data={"company_name": "Acme"})

        result = run_sweep(repository, firecrawl, MagicMock(return_value=SYNC_OK))

        assert result["extract"]["completed"] == 1
        assert result["finalize"]["finalized"] == 1
        assert repository.get_brand("acme").discovery_status == DiscoveryStatus.COMPLETED

    def test_second_sweep_is_a_no_op(self, repository, firecrawl):
        _create(repository, "acme", DiscoveryStatus.SCRAPED, metadata={"extract_job_id": "e1"})
        firecrawl.get_extract_status.return_value = ExtractStatus(status="completed", data={"company_name": "Acme"})
        sync = MagicMock(return_value=SYNC_OK)

        run_sweep(repository, firecrawl, sync)
        result = run_sweep(repository, firecrawl, sync)

        assert result["extract"]["checked"] == 0
        assert result["finalize"]["checked"] == 0
        assert sync.call_count == 1
