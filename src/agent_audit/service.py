"""Audit orchestration: crawl, scan, score, persist, with a lifecycle per run."""

from __future__ import annotations

import asyncio
import dataclasses
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from statistics import fmean
from typing import Any, Callable, Mapping, Protocol

import httpx
import structlog

from .aggregator import WeightsArg, aggregate
from .checks import ScanContext, ScannerRegistry, default_registry
from .config import Settings, get_settings
from .crawler import crawl_site
from .errors import CrawlError, EntitlementError, PolicyError, SiteNotFoundError
from .fetcher import SiteResources, build_client, validate_site_url
from .models import (
    Audit,
    AuditReport,
    AuditStatus,
    DiagnosticResult,
    FetchResult,
    IndicatorCategory,
    IndicatorStatus,
    PageMetadata,
    ScannerResult,
    utcnow,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Site:
    id: str
    url: str
    owner: str


@dataclass(frozen=True)
class Entitlement:
    """What the caller's plan allows; decided elsewhere."""
    max_pages: int
    extended_options: bool = False  # sitemap crawling, page-level indicators
    retain_raw: bool = False  # keep fetched HTML with the audit


@dataclass(frozen=True)
class StoredReport:
    audit: Audit
    report: AuditReport


@dataclass(frozen=True)
class PageRecord:
    """One scanned page of an audit and the indicators it produced."""
    url: str
    status_code: int
    load_time_ms: int
    title: str | None
    indicators: tuple[ScannerResult, ...]
    raw_html: str | None = None

    @classmethod
    def from_scan(cls, page: FetchResult, results: list[ScannerResult], keep_html: bool = False) -> PageRecord:
        return cls(
            url=page.url,
            status_code=page.status_code,
            load_time_ms=page.load_time_ms,
            title=page.title,
            indicators=tuple(results),
            raw_html=page.html if keep_html else None,
        )

    @property
    def page_score(self) -> float:
        """Mean score of the indicators that applied to this page."""
        scores = [r.score for r in self.indicators if r.status is not IndicatorStatus.NOT_APPLICABLE]
        return round(fmean(scores), 6) if scores else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "status_code": self.status_code,
            "load_time_ms": self.load_time_ms,
            "page_score": self.page_score,
            "indicator_count": len(self.indicators),
            "raw_html_retained": self.raw_html is not None,
        }


@dataclass(frozen=True)
class AuditDetails:
    """An audit with its report (once completed) and its scanned pages."""
    audit: Audit
    report: AuditReport | None = None
    pages: tuple[PageRecord, ...] = ()

    def page(self, url: str) -> PageRecord | None:
        return next((p for p in self.pages if p.url == url), None)


@dataclass
class DiagnosticOptions:
    skip_cache: bool = False
    include_sitemap: bool = False
    max_pages: int | None = None
    declared_profile: str | None = None
    weights: WeightsArg | None = None
    store_raw_data: bool = False


class SiteLookup(Protocol):
    async def get_site(self, site_id: str, owner: str) -> Site | None:
        ...


class ReportStore(Protocol):
    async def save_audit(self, audit: Audit) -> None:
        ...

    async def create(self, audit: Audit, report: AuditReport, pages: tuple[PageRecord, ...] = ()) -> None:
        ...

    async def get_audit(self, audit_id: str) -> AuditDetails | None:
        ...

    async def find_latest_completed(self, site_id: str, since: datetime | None = None) -> StoredReport | None:
        ...


class EntitlementResolver(Protocol):
    async def resolve(self, owner: str) -> Entitlement:
        ...


class InMemorySiteDirectory:
    def __init__(self, sites: tuple[Site, ...] = ()):
        self._sites = {site.id: site for site in sites}

    def add(self, site: Site) -> Site:
        self._sites[site.id] = site
        return site

    async def get_site(self, site_id: str, owner: str) -> Site | None:
        site = self._sites.get(site_id)
        if site is None or site.owner != owner:
            return None
        return site


class InMemoryReportStore:
    """Keeps audit snapshots and reports in dicts."""

    def __init__(self):
        self.audits: dict[str, Audit] = {}
        self.reports: dict[str, AuditReport] = {}
        self.pages: dict[str, tuple[PageRecord, ...]] = {}

    async def save_audit(self, audit: Audit) -> None:
        self.audits[audit.id] = dataclasses.replace(audit)

    async def create(self, audit: Audit, report: AuditReport, pages: tuple[PageRecord, ...] = ()) -> None:
        self.reports[audit.id] = report
        self.pages[audit.id] = tuple(pages)
        await self.save_audit(audit)

    async def get_audit(self, audit_id: str) -> AuditDetails | None:
        audit = self.audits.get(audit_id)
        if audit is None:
            return None
        report = self.reports.get(audit_id) if audit.status is AuditStatus.COMPLETED else None
        return AuditDetails(
            audit=dataclasses.replace(audit),
            report=report,
            pages=self.pages.get(audit_id, ()),
        )

    async def find_latest_completed(self, site_id: str, since: datetime | None = None) -> StoredReport | None:
        candidates = [
            audit for audit in self.audits.values()
            if audit.site_id == site_id
            and audit.status is AuditStatus.COMPLETED
            and audit.id in self.reports
            and (since is None or (audit.completed_at is not None and audit.completed_at >= since))
        ]
        if not candidates:
            return None
        latest = max(candidates, key=lambda a: a.completed_at)
        return StoredReport(audit=latest, report=self.reports[latest.id])


class StaticEntitlements:
    """Same entitlement for every owner, with optional per-owner overrides."""

    def __init__(self, default: Entitlement, overrides: Mapping[str, Entitlement] | None = None):
        self.default = default
        self.overrides = dict(overrides or {})

    async def resolve(self, owner: str) -> Entitlement:
        return self.overrides.get(owner, self.default)


class ReportCache:
    """Read-through view of the store limited to a freshness window."""

    def __init__(
        self,
        store: ReportStore,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    async def get(self, site_id: str) -> StoredReport | None:
        cached = await self.store.find_latest_completed(site_id, since=self.clock() - self.ttl)
        if cached is not None:
            logger.info("cache_hit", site_id=site_id, audit_id=cached.audit.id)
        return cached


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class DiagnosticsService:
    """Runs audits and owns every Audit state change.

    Scanners and the aggregator only ever see immutable inputs; the
    lifecycle ``pending -> crawling -> scanning -> scoring -> completed``
    (or ``failed``) is advanced here and nowhere else.
    """

    def __init__(
        self,
        sites: SiteLookup,
        store: ReportStore,
        entitlements: EntitlementResolver,
        *,
        settings: Settings | None = None,
        registry: ScannerRegistry | None = None,
        cache: ReportCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.sites = sites
        self.store = store
        self.entitlements = entitlements
        self.registry = registry or default_registry()
        self.cache = cache or ReportCache(store, ttl=timedelta(hours=self.settings.cache_ttl_hours))
        self.transport = transport

    async def run_diagnostic(
        self,
        owner: str,
        site_id: str,
        options: DiagnosticOptions | None = None,
    ) -> DiagnosticResult:
        """Audit a registered site, reusing a fresh completed audit unless told not to.

        Returns:
            DiagnosticResult; failures are reported, never raised
        """
        options = options or DiagnosticOptions()
        start = time.monotonic()
        log = logger.bind(owner=owner, site_id=site_id)

        try:
            site = await self.sites.get_site(site_id, owner)
            if site is None:
                raise SiteNotFoundError(site_id)
            site_url = validate_site_url(site.url)
        except PolicyError as e:
            log.warning("diagnostic_rejected", error=str(e))
            return DiagnosticResult(audit_id=None, status=AuditStatus.FAILED, error=str(e),
                                    duration_ms=_elapsed_ms(start))

        if not options.skip_cache:
            cached = await self.cache.get(site.id)
            if cached is not None:
                return DiagnosticResult(
                    audit_id=cached.audit.id,
                    status=AuditStatus.COMPLETED,
                    report=cached.report,
                    duration_ms=_elapsed_ms(start),
                    cached=True,
                )

        entitlement = await self.entitlements.resolve(owner)
        max_pages = min(options.max_pages or self.settings.default_max_pages, entitlement.max_pages)
        include_sitemap = options.include_sitemap and entitlement.extended_options
        retain_raw = options.store_raw_data and entitlement.retain_raw

        audit = Audit(id=uuid.uuid4().hex, owner=owner, site_id=site.id, site_url=site_url)
        await self.store.save_audit(audit)
        log = log.bind(audit_id=audit.id)
        log.info("audit_created", site_url=site_url, max_pages=max_pages, include_sitemap=include_sitemap,
                 retain_raw=retain_raw)

        return await self._execute(
            audit,
            start,
            log,
            max_pages=max_pages,
            include_sitemap=include_sitemap,
            timeout=self.settings.request_timeout,
            options=options,
            retain_raw=retain_raw,
            persist=True,
        )

    async def run_anonymous_diagnostic(
        self,
        url: str,
        options: DiagnosticOptions | None = None,
    ) -> DiagnosticResult:
        """Audit any public URL without persistence, caching or sitemap crawling."""
        options = options or DiagnosticOptions()
        start = time.monotonic()
        audit_id = f"anonymous-{uuid.uuid4().hex}"
        log = logger.bind(audit_id=audit_id, anonymous=True)

        try:
            site_url = validate_site_url(url)
        except PolicyError as e:
            log.warning("diagnostic_rejected", url=url, error=str(e))
            return DiagnosticResult(audit_id=audit_id, status=AuditStatus.FAILED, error=str(e),
                                    duration_ms=_elapsed_ms(start))

        cap = self.settings.anonymous_max_pages
        audit = Audit(id=audit_id, owner=None, site_id=None, site_url=site_url)
        log.info("audit_created", site_url=site_url, max_pages=cap)

        return await self._execute(
            audit,
            start,
            log,
            max_pages=min(options.max_pages or cap, cap),
            include_sitemap=False,
            timeout=self.settings.anonymous_timeout,
            options=options,
            retain_raw=False,
            persist=False,
        )

    async def get_latest_diagnostic(self, owner: str, site_id: str) -> AuditReport | None:
        """Most recent completed report for a site the owner can see, whatever its age."""
        site = await self.sites.get_site(site_id, owner)
        if site is None:
            return None
        stored = await self.store.find_latest_completed(site.id)
        return stored.report if stored else None

    async def get_audit(self, owner: str, audit_id: str) -> AuditDetails | None:
        """One audit of ``owner`` with its report and page summaries; ``None`` if not theirs."""
        details = await self.store.get_audit(audit_id)
        if details is None or details.audit.owner != owner:
            return None
        return details

    async def get_page_indicators(
        self,
        owner: str,
        audit_id: str,
        page_url: str,
        *,
        category: IndicatorCategory | None = None,
        status: IndicatorStatus | None = None,
    ) -> list[ScannerResult] | None:
        """Indicator results of one page of an audit, heaviest first.

        Raises:
            EntitlementError: the owner's plan has no extended options
        """
        entitlement = await self.entitlements.resolve(owner)
        if not entitlement.extended_options:
            raise EntitlementError("Page-level indicator details require extended options")

        details = await self.get_audit(owner, audit_id)
        page = details.page(page_url) if details else None
        if page is None:
            return None
        results = [
            r for r in page.indicators
            if (category is None or r.category is category) and (status is None or r.status is status)
        ]
        return sorted(results, key=lambda r: (-r.weight, r.status.value, r.indicator_name))

    async def _execute(
        self,
        audit: Audit,
        start: float,
        log,
        *,
        max_pages: int,
        include_sitemap: bool,
        timeout: float,
        options: DiagnosticOptions,
        retain_raw: bool,
        persist: bool,
    ) -> DiagnosticResult:
        try:
            report = await self._pipeline(
                audit,
                log,
                max_pages=max_pages,
                include_sitemap=include_sitemap,
                timeout=timeout,
                options=options,
                retain_raw=retain_raw,
                persist=persist,
            )
        except Exception as e:
            log.error("audit_failed", status=audit.status.value, error=str(e), exc_info=True)
            if not audit.status.is_terminal:
                audit.transition_to(AuditStatus.FAILED, error_message=str(e))
                if persist:
                    await self._save_failure(audit, log)
            return DiagnosticResult(
                audit_id=audit.id,
                status=AuditStatus.FAILED,
                error=str(e),
                duration_ms=_elapsed_ms(start),
            )

        duration_ms = _elapsed_ms(start)
        log.info("audit_completed", score=report.overall.score_0_100, duration_ms=duration_ms)
        return DiagnosticResult(
            audit_id=audit.id,
            status=AuditStatus.COMPLETED,
            report=report,
            duration_ms=duration_ms,
        )

    async def _save_failure(self, audit: Audit, log) -> None:
        try:
            await self.store.save_audit(audit)
        except Exception as e:
            log.error("audit_failure_not_saved", error=str(e), exc_info=True)

    async def _advance(self, audit: Audit, status: AuditStatus, log, persist: bool) -> None:
        # the live audit only moves once the store has accepted the new state
        staged = dataclasses.replace(audit)
        staged.transition_to(status)
        if persist:
            await self.store.save_audit(staged)
        log.info("audit_transition", previous=audit.status.value, status=status.value)
        audit.status = staged.status
        audit.completed_at = staged.completed_at

    async def _pipeline(
        self,
        audit: Audit,
        log,
        *,
        max_pages: int,
        include_sitemap: bool,
        timeout: float,
        options: DiagnosticOptions,
        retain_raw: bool,
        persist: bool,
    ) -> AuditReport:
        async with build_client(self.settings, timeout=timeout, transport=self.transport) as client:
            await self._advance(audit, AuditStatus.CRAWLING, log, persist)
            crawl = await crawl_site(
                audit.site_url,
                client,
                max_pages=max_pages,
                include_sitemap=include_sitemap,
                timeout=timeout,
                max_concurrent=self.settings.max_concurrent,
            )
            if not crawl.pages:
                raise CrawlError(f"No pages could be crawled: {'; '.join(crawl.errors) or 'site unreachable'}")
            pages = crawl.scannable_pages
            if not pages:
                raise CrawlError("No crawled page returned HTML with status 200")

            await self._advance(audit, AuditStatus.SCANNING, log, persist)
            resources = SiteResources(client, audit.site_url, timeout=min(timeout, self.settings.resource_timeout))
            if crawl.robots_fetch is not None:
                resources.seed(crawl.robots_fetch)
            page_results = await self._scan_pages(audit.site_url, pages, resources)
        records = tuple(PageRecord.from_scan(p, page_results[p.url], keep_html=retain_raw) for p in pages)

        await self._advance(audit, AuditStatus.SCORING, log, persist)
        report = aggregate(
            audit.site_url,
            page_results,
            declared_profile=options.declared_profile,
            weights=options.weights,
        )

        if persist:
            await self.store.create(audit, report, records)
        await self._advance(audit, AuditStatus.COMPLETED, log, persist)
        return report

    async def _scan_pages(
        self,
        site_url: str,
        pages: list[FetchResult],
        resources: SiteResources,
    ) -> dict[str, list[ScannerResult]]:
        async def scan(page: FetchResult) -> tuple[str, list[ScannerResult]]:
            context = ScanContext(
                site_url=site_url,
                resources=resources,
                page_url=page.url,
                page_html=page.html,
                page_metadata=PageMetadata.from_fetch(page),
            )
            return page.url, await self.registry.run_all(context)

        return dict(await asyncio.gather(*(scan(page) for page in pages)))
