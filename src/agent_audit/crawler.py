"""Bounded site crawl: robots.txt, homepage and sitemap-declared pages."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from urllib.parse import urldefrag, urlparse

import httpx
import structlog
from lxml import etree

from .fetcher import build_url, fetch, normalize_site_url, resolve_urls
from .models import FetchResult

logger = structlog.get_logger(__name__)

# Sitemap files fetched while discovering candidate pages
MAX_SITEMAPS = 5


@dataclass(frozen=True)
class RobotsTxt:
    found: bool
    content: str | None = None


@dataclass
class CrawlResult:
    site_url: str
    pages: list[FetchResult] = field(default_factory=list)
    robots_txt: RobotsTxt = field(default_factory=lambda: RobotsTxt(found=False))
    sitemap_urls: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0
    robots_fetch: FetchResult | None = None

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    @property
    def scannable_pages(self) -> list[FetchResult]:
        return [p for p in self.pages if p.is_html_page]


def extract_sitemap_directives(robots_content: str) -> list[str]:
    """Collect ``Sitemap:`` lines from robots.txt, in file order."""
    urls: list[str] = []
    for line in robots_content.splitlines():
        line = line.strip()
        if line.lower().startswith("sitemap:"):
            url = line[len("sitemap:"):].strip()
            if url and url not in urls:
                urls.append(url)
    return urls


def parse_sitemap_locs(content: str) -> tuple[list[str], list[str]]:
    """Split a sitemap document into (page URLs, nested sitemap URLs).

    Unparseable documents yield nothing.
    """
    try:
        root = etree.fromstring(content.encode("utf-8"), parser=etree.XMLParser(recover=False, resolve_entities=False))
    except etree.XMLSyntaxError:
        return [], []

    locs = [
        (el.text or "").strip()
        for el in root.iter()
        if isinstance(el.tag, str) and etree.QName(el).localname == "loc"
    ]
    locs = [loc for loc in locs if loc]
    if etree.QName(root).localname == "sitemapindex":
        return [], locs
    return locs, []


def _same_host(url: str, host: str) -> bool:
    try:
        return urlparse(url).netloc == host
    except ValueError:
        return False


def _canonical_page_url(url: str) -> str:
    url, _ = urldefrag(url)
    return url.rstrip("/") or url


async def _discover_from_sitemaps(
    client: httpx.AsyncClient,
    sitemap_urls: list[str],
    host: str,
    timeout: float,
) -> list[str]:
    discovered: list[str] = []
    # (url, nested) pairs; only top-level sitemap indexes are expanded
    queue = [(url, False) for url in sitemap_urls]
    seen = set(sitemap_urls)
    fetched = 0

    while queue and fetched < MAX_SITEMAPS:
        sitemap_url, is_nested = queue.pop(0)
        fetched += 1
        result = await fetch(client, sitemap_url, timeout=timeout)
        if not result.found or not result.html:
            logger.debug("sitemap_unavailable", url=sitemap_url, status=result.status_code, error=result.error)
            continue

        pages, nested = parse_sitemap_locs(result.html)
        if not is_nested:
            for url in nested:
                if url not in seen:
                    seen.add(url)
                    queue.append((url, True))
        for page_url in pages:
            if _same_host(page_url, host) and page_url not in discovered:
                discovered.append(page_url)

    return discovered


async def crawl_site(
    root_url: str,
    client: httpx.AsyncClient,
    *,
    max_pages: int = 5,
    include_sitemap: bool = False,
    timeout: float = 30.0,
    max_concurrent: int = 3,
) -> CrawlResult:
    """Fetch a bounded set of pages for one site.

    The homepage always comes first; sitemap-declared pages follow in the
    order they were found. A failed page fetch is recorded in ``errors`` and
    the crawl carries on.

    Args:
        root_url: Site URL, with or without scheme
        client: Client created by :func:`agent_audit.fetcher.build_client`
        max_pages: Hard cap on fetched pages
        include_sitemap: Also crawl URLs listed in robots.txt sitemaps
        timeout: Per-request timeout in seconds
        max_concurrent: Upper bound on simultaneous page requests

    Returns:
        CrawlResult; callers decide whether zero pages is fatal
    """
    start_time = time.monotonic()
    site_url = normalize_site_url(root_url)
    result = CrawlResult(site_url=site_url)
    log = logger.bind(site_url=site_url)

    robots_fetch = await fetch(client, build_url(site_url, "/robots.txt"), timeout=timeout)
    result.robots_fetch = robots_fetch
    robots_found = robots_fetch.status_code == 200 and bool(robots_fetch.html)
    result.robots_txt = RobotsTxt(found=robots_found, content=robots_fetch.html if robots_found else None)

    candidates = [site_url]
    if robots_found and include_sitemap:
        result.sitemap_urls = resolve_urls(site_url, extract_sitemap_directives(robots_fetch.html))
        discovered = await _discover_from_sitemaps(
            client, result.sitemap_urls, urlparse(site_url).netloc, timeout
        )
        seen = {_canonical_page_url(site_url)}
        for url in discovered:
            key = _canonical_page_url(url)
            if key not in seen:
                seen.add(key)
                candidates.append(url)

    candidates = candidates[:max(1, max_pages)]
    semaphore = asyncio.Semaphore(max(1, max_concurrent))

    async def fetch_page(url: str) -> FetchResult:
        async with semaphore:
            return await fetch(client, url, timeout=timeout)

    fetched = await asyncio.gather(*(fetch_page(url) for url in candidates))

    for page in fetched:
        if page.ok:
            result.pages.append(page)
        else:
            result.errors.append(f"{page.url}: {page.error}")
            log.warning("page_fetch_failed", url=page.url, error=page.error)

    result.duration_ms = int((time.monotonic() - start_time) * 1000)
    log.info(
        "crawl_finished",
        candidates=len(candidates),
        pages=len(result.pages),
        errors=len(result.errors),
        duration_ms=result.duration_ms,
    )
    return result
