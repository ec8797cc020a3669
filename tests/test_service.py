"""Tests for the diagnostics service: lifecycle, caching, entitlements and failures."""

from datetime import timedelta

import pytest

from agent_audit.errors import EntitlementError
from agent_audit.models import AuditStatus, IndicatorCategory, IndicatorStatus, utcnow
from agent_audit.service import (
    DiagnosticOptions,
    DiagnosticsService,
    Entitlement,
    InMemoryReportStore,
    InMemorySiteDirectory,
    ReportCache,
    Site,
    StaticEntitlements,
)

from .conftest import html_page, json_ld_script

OWNER = "alice"
SITE_ID = "site-1"


def sitemap_with(*paths: str) -> str:
    entries = "".join(f"<url><loc>https://example.com{p}</loc></url>" for p in paths)
    return f'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</urlset>'


@pytest.fixture
def healthy_site(site):
    site.add_text("/robots.txt", "User-agent: *\nAllow: /\nSitemap: https://example.com/pages.xml\n")
    site.add_xml("/pages.xml", sitemap_with("/p0", "/p1", "/p2"))
    site.add_text("/llms.txt", "# Acme\n\n> Widgets for everyone.\n")
    site.add("/", html_page(
        title="Acme Widgets - Handmade widgets for home",
        description="Widgets",
        head=json_ld_script({"@context": "https://schema.org", "@type": "Organization",
                             "name": "Acme", "url": "https://example.com"}),
        body="<h1>Acme</h1>",
    ))
    for path in ("/p0", "/p1", "/p2"):
        site.add(path, html_page(title=f"Page {path}", body="<h1>Page</h1>"))
    return site


@pytest.fixture
def store():
    return InMemoryReportStore()


@pytest.fixture
def make_service(site, settings, store):
    def _make(entitlement=None, cache=None, store_override=None):
        chosen_store = store_override or store
        return DiagnosticsService(
            InMemorySiteDirectory((Site(id=SITE_ID, url="example.com", owner=OWNER),)),
            chosen_store,
            StaticEntitlements(entitlement or Entitlement(max_pages=5, extended_options=True)),
            settings=settings,
            cache=cache,
            transport=site.transport,
        )

    return _make


class TestRunDiagnostic:
    """Tests for run_diagnostic()."""

    @pytest.mark.asyncio
    async def test_completes_and_persists(self, healthy_site, make_service, store):
        result = await make_service().run_diagnostic(OWNER, SITE_ID)

        assert result.succeeded
        assert not result.cached
        assert result.report.site_url == "https://example.com"
        assert len(result.report.indicators) == 9
        assert result.report.indicators["llms_txt"].status is IndicatorStatus.PASS
        assert store.audits[result.audit_id].status is AuditStatus.COMPLETED
        assert store.reports[result.audit_id] is result.report

    @pytest.mark.asyncio
    async def test_fresh_report_is_served_from_cache(self, healthy_site, make_service):
        service = make_service()
        first = await service.run_diagnostic(OWNER, SITE_ID)
        requests_after_first = len(healthy_site.requests)

        second = await service.run_diagnostic(OWNER, SITE_ID)

        assert second.cached
        assert second.audit_id == first.audit_id
        assert second.report is first.report
        assert len(healthy_site.requests) == requests_after_first

    @pytest.mark.asyncio
    async def test_skip_cache_runs_a_new_audit(self, healthy_site, make_service):
        service = make_service()
        first = await service.run_diagnostic(OWNER, SITE_ID)

        second = await service.run_diagnostic(OWNER, SITE_ID, DiagnosticOptions(skip_cache=True))

        assert not second.cached
        assert second.audit_id != first.audit_id

    @pytest.mark.asyncio
    async def test_stale_report_is_not_reused(self, healthy_site, make_service, store):
        clock = {"now": utcnow()}
        service = make_service(cache=ReportCache(store, ttl=timedelta(hours=24), clock=lambda: clock["now"]))
        first = await service.run_diagnostic(OWNER, SITE_ID)

        clock["now"] += timedelta(hours=25)
        second = await service.run_diagnostic(OWNER, SITE_ID)

        assert not second.cached
        assert second.audit_id != first.audit_id

    @pytest.mark.asyncio
    async def test_unknown_site_is_rejected_before_any_fetch(self, healthy_site, make_service):
        result = await make_service().run_diagnostic("mallory", SITE_ID)

        assert result.status is AuditStatus.FAILED
        assert result.audit_id is None
        assert result.error == "Site not found or access denied"
        assert healthy_site.requests == []

    @pytest.mark.asyncio
    async def test_unreachable_site_fails(self, site, make_service, store):
        site.fail("/")

        result = await make_service().run_diagnostic(OWNER, SITE_ID)

        assert result.status is AuditStatus.FAILED
        assert result.error.startswith("No pages could be crawled")
        audit = store.audits[result.audit_id]
        assert audit.status is AuditStatus.FAILED
        assert audit.error_message == result.error
        assert store.reports == {}

    @pytest.mark.asyncio
    async def test_no_html_page_fails(self, site, make_service):
        result = await make_service().run_diagnostic(OWNER, SITE_ID)

        assert result.status is AuditStatus.FAILED
        assert result.error == "No crawled page returned HTML with status 200"

    @pytest.mark.asyncio
    async def test_store_failure_fails_the_audit(self, healthy_site, make_service):
        class BrokenStore(InMemoryReportStore):
            async def create(self, audit, report, pages=()):
                raise RuntimeError("disk full")

        broken = BrokenStore()
        result = await make_service(store_override=broken).run_diagnostic(OWNER, SITE_ID)

        assert result.status is AuditStatus.FAILED
        assert result.error == "disk full"
        assert broken.audits[result.audit_id].status is AuditStatus.FAILED

    @pytest.mark.asyncio
    async def test_failed_completion_save_leaves_audit_failed(self, healthy_site, make_service):
        class FlakyStore(InMemoryReportStore):
            async def save_audit(self, audit):
                if audit.status is AuditStatus.COMPLETED:
                    raise RuntimeError("connection reset")
                await super().save_audit(audit)

        flaky = FlakyStore()
        result = await make_service(store_override=flaky).run_diagnostic(OWNER, SITE_ID)

        assert result.status is AuditStatus.FAILED
        assert result.error == "connection reset"
        stored = flaky.audits[result.audit_id]
        assert stored.status is AuditStatus.FAILED
        assert stored.error_message == "connection reset"
        assert await flaky.find_latest_completed(SITE_ID) is None

    @pytest.mark.asyncio
    async def test_entitlement_caps_pages(self, healthy_site, make_service):
        service = make_service(entitlement=Entitlement(max_pages=2, extended_options=True))

        result = await service.run_diagnostic(
            OWNER, SITE_ID, DiagnosticOptions(include_sitemap=True, max_pages=10)
        )

        assert result.succeeded
        assert healthy_site.requested("/p0") == 1
        assert healthy_site.requested("/p1") == 0

    @pytest.mark.asyncio
    async def test_sitemap_crawl_needs_extended_options(self, healthy_site, make_service):
        service = make_service(entitlement=Entitlement(max_pages=5, extended_options=False))

        result = await service.run_diagnostic(OWNER, SITE_ID, DiagnosticOptions(include_sitemap=True))

        assert result.succeeded
        assert healthy_site.requested("/p0") == 0

    @pytest.mark.asyncio
    async def test_declared_profile_is_used(self, healthy_site, make_service):
        result = await make_service().run_diagnostic(
            OWNER, SITE_ID, DiagnosticOptions(skip_cache=True, declared_profile="kb_support")
        )

        assert result.report.profile_detection.profile == "kb_support"
        assert result.report.profile_detection.method == "declared"


class TestAnonymousDiagnostic:
    """Tests for run_anonymous_diagnostic()."""

    @pytest.mark.asyncio
    async def test_runs_without_persistence(self, healthy_site, make_service, store):
        result = await make_service().run_anonymous_diagnostic(
            "https://example.com", DiagnosticOptions(include_sitemap=True, max_pages=50)
        )

        assert result.succeeded
        assert result.audit_id.startswith("anonymous-")
        assert store.audits == {}
        assert store.reports == {}
        assert healthy_site.requested("/p0") == 0

    @pytest.mark.asyncio
    async def test_invalid_url(self, make_service):
        result = await make_service().run_anonymous_diagnostic("ftp://example.com")

        assert result.status is AuditStatus.FAILED
        assert result.error == "Only HTTP and HTTPS URLs are allowed"


class TestLatestDiagnostic:
    """Tests for get_latest_diagnostic()."""

    @pytest.mark.asyncio
    async def test_returns_latest_report(self, healthy_site, make_service):
        service = make_service()
        assert await service.get_latest_diagnostic(OWNER, SITE_ID) is None

        result = await service.run_diagnostic(OWNER, SITE_ID)

        assert await service.get_latest_diagnostic(OWNER, SITE_ID) is result.report

    @pytest.mark.asyncio
    async def test_hidden_from_other_owners(self, healthy_site, make_service):
        service = make_service()
        await service.run_diagnostic(OWNER, SITE_ID)

        assert await service.get_latest_diagnostic("mallory", SITE_ID) is None


class TestAuditDetails:
    """Tests for get_audit() and raw HTML retention."""

    @pytest.mark.asyncio
    async def test_returns_report_and_pages(self, healthy_site, make_service):
        service = make_service()
        result = await service.run_diagnostic(OWNER, SITE_ID, DiagnosticOptions(include_sitemap=True))

        details = await service.get_audit(OWNER, result.audit_id)

        assert details.audit.status is AuditStatus.COMPLETED
        assert details.report is result.report
        assert [p.url for p in details.pages] == [
            "https://example.com",
            "https://example.com/p0",
            "https://example.com/p1",
            "https://example.com/p2",
        ]
        assert all(len(p.indicators) == 9 for p in details.pages)
        assert all(p.raw_html is None for p in details.pages)
        assert details.pages[0].to_dict()["indicator_count"] == 9
        assert 0.0 <= details.pages[0].page_score <= 1.0

    @pytest.mark.asyncio
    async def test_hidden_from_other_owners(self, healthy_site, make_service):
        service = make_service()
        result = await service.run_diagnostic(OWNER, SITE_ID)

        assert await service.get_audit("mallory", result.audit_id) is None
        assert await service.get_audit(OWNER, "no-such-audit") is None

    @pytest.mark.asyncio
    async def test_failed_audit_has_no_report(self, site, make_service):
        site.fail("/")
        service = make_service()
        result = await service.run_diagnostic(OWNER, SITE_ID)

        details = await service.get_audit(OWNER, result.audit_id)

        assert details.audit.status is AuditStatus.FAILED
        assert details.audit.error_message == result.error
        assert details.report is None
        assert details.pages == ()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "retain_raw, store_raw_data, kept",
        [(True, True, True), (False, True, False), (True, False, False)],
    )
    async def test_raw_html_needs_entitlement_and_option(
        self, healthy_site, make_service, retain_raw, store_raw_data, kept
    ):
        service = make_service(entitlement=Entitlement(max_pages=5, retain_raw=retain_raw))
        result = await service.run_diagnostic(OWNER, SITE_ID, DiagnosticOptions(store_raw_data=store_raw_data))

        details = await service.get_audit(OWNER, result.audit_id)

        homepage = details.page("https://example.com")
        assert (homepage.raw_html is not None) is kept
        if kept:
            assert "<h1>Acme</h1>" in homepage.raw_html

    @pytest.mark.asyncio
    async def test_anonymous_runs_keep_nothing(self, healthy_site, make_service, store):
        service = make_service(entitlement=Entitlement(max_pages=5, retain_raw=True))
        result = await service.run_anonymous_diagnostic("example.com", DiagnosticOptions(store_raw_data=True))

        assert result.succeeded
        assert store.pages == {}


class TestPageIndicators:
    """Tests for get_page_indicators()."""

    @pytest.mark.asyncio
    async def test_heaviest_first(self, healthy_site, make_service):
        service = make_service()
        result = await service.run_diagnostic(OWNER, SITE_ID)

        indicators = await service.get_page_indicators(OWNER, result.audit_id, "https://example.com")

        assert len(indicators) == 9
        assert indicators[0].indicator_name == "mcp"
        assert indicators[-1].indicator_name == "robots_txt"

    @pytest.mark.asyncio
    async def test_filters_by_category_and_status(self, healthy_site, make_service):
        service = make_service()
        result = await service.run_diagnostic(OWNER, SITE_ID)

        seo = await service.get_page_indicators(
            OWNER, result.audit_id, "https://example.com", category=IndicatorCategory.SEO
        )
        passed = await service.get_page_indicators(
            OWNER, result.audit_id, "https://example.com", status=IndicatorStatus.PASS
        )

        assert [r.indicator_name for r in seo][0] == "seo_basic"
        assert {r.indicator_name for r in seo} == {"seo_basic", "canonical_urls", "xml_sitemap"}
        assert passed and all(r.status is IndicatorStatus.PASS for r in passed)
        assert "llms_txt" in {r.indicator_name for r in passed}

    @pytest.mark.asyncio
    async def test_unknown_page_or_audit(self, healthy_site, make_service):
        service = make_service()
        result = await service.run_diagnostic(OWNER, SITE_ID)

        assert await service.get_page_indicators(OWNER, result.audit_id, "https://example.com/nope") is None
        assert await service.get_page_indicators(OWNER, "no-such-audit", "https://example.com") is None

    @pytest.mark.asyncio
    async def test_requires_extended_options(self, healthy_site, make_service):
        service = make_service(entitlement=Entitlement(max_pages=5, extended_options=False))
        result = await service.run_diagnostic(OWNER, SITE_ID)

        with pytest.raises(EntitlementError):
            await service.get_page_indicators(OWNER, result.audit_id, "https://example.com")
