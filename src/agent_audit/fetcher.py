"""Bounded HTTP fetching with page metadata extraction."""

from __future__ import annotations

import asyncio
import time
from typing import Iterable
from urllib.parse import urljoin, urlparse

import httpx
import structlog
from bs4 import BeautifulSoup

from .config import Settings, get_settings
from .errors import InvalidURLError
from .models import FetchResult

logger = structlog.get_logger(__name__)


DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

MAX_REDIRECTS = 5


def normalize_site_url(url: str) -> str:
    """Ensure URL has a scheme and no trailing slash."""
    url = url.strip()
    if "://" not in url:
        url = "https://" + url
    return url.rstrip("/")


def validate_site_url(url: str) -> str:
    """Normalise ``url`` and reject anything that is not an http(s) site."""
    site_url = normalize_site_url(url)
    parsed = urlparse(site_url)
    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError("Only HTTP and HTTPS URLs are allowed")
    if not parsed.hostname:
        raise InvalidURLError(f"Invalid URL format: {url}")
    return site_url


def build_url(base_url: str, path: str) -> str:
    """Resolve ``path`` against ``base_url``, allowing only well-formed http(s) results."""
    try:
        url = urljoin(base_url + "/", path)
        scheme = urlparse(url).scheme
        httpx.URL(url)
    except (ValueError, httpx.InvalidURL) as e:
        raise InvalidURLError(f"Invalid URL format: {path}") from e
    if scheme not in ("http", "https"):
        raise InvalidURLError(f"Invalid protocol: {scheme}")
    return url


def resolve_urls(base_url: str, candidates: Iterable[str]) -> list[str]:
    """Resolve each candidate with :func:`build_url`, dropping rejected ones."""
    resolved: list[str] = []
    for candidate in candidates:
        try:
            url = build_url(base_url, candidate)
        except InvalidURLError as e:
            logger.debug("url_rejected", url=candidate, error=str(e))
            continue
        if url not in resolved:
            resolved.append(url)
    return resolved


def site_root(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def build_client(
    settings: Settings | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared client for one audit.

    ``transport`` is only meant for tests (``httpx.MockTransport``).
    """
    settings = settings or get_settings()
    headers = {**DEFAULT_HEADERS, "User-Agent": settings.user_agent}
    return httpx.AsyncClient(
        headers=headers,
        timeout=timeout or settings.request_timeout,
        follow_redirects=True,
        max_redirects=MAX_REDIRECTS,
        transport=transport,
    )


def _looks_like_html(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return "html" in content_type or (not content_type and response.text.lstrip()[:1] == "<")


def extract_page_info(html: str) -> tuple[str | None, str | None, int | None]:
    """Return (title, meta description, word count) from an HTML document."""
    soup = BeautifulSoup(html, "lxml")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else None

    desc_tag = soup.find("meta", attrs={"name": "description"})
    description = desc_tag.get("content", "").strip() if desc_tag else None

    body = soup.body or soup
    for tag in body.find_all(["script", "style", "noscript"]):
        tag.decompose()
    word_count = len(body.get_text(" ", strip=True).split())

    return title or None, description or None, word_count


async def fetch(
    client: httpx.AsyncClient,
    url: str,
    timeout: float | None = None,
) -> FetchResult:
    """GET ``url`` and describe what came back.

    HTTP error statuses are reported through ``status_code``; only transport
    failures (DNS, refused connection, timeout) set ``error``.

    Args:
        client: Client created by :func:`build_client`
        url: Absolute URL to fetch
        timeout: Per-request override of the client's timeout in seconds

    Returns:
        FetchResult, never raises for network problems
    """
    start_time = time.monotonic()

    def elapsed() -> int:
        return int((time.monotonic() - start_time) * 1000)

    try:
        if timeout is not None:
            response = await client.get(url, timeout=timeout)
        else:
            response = await client.get(url)
    except httpx.TimeoutException:
        limit = timeout if timeout is not None else client.timeout.read
        return FetchResult(url=url, final_url=url, status_code=0, load_time_ms=elapsed(),
                           error=f"Timeout after {limit}s")
    except httpx.TooManyRedirects:
        return FetchResult(url=url, final_url=url, status_code=0, load_time_ms=elapsed(),
                           error=f"More than {MAX_REDIRECTS} redirects")
    except httpx.InvalidURL as e:
        return FetchResult(url=url, final_url=url, status_code=0, load_time_ms=elapsed(),
                           error=f"Invalid URL: {e}")
    except httpx.RequestError as e:
        return FetchResult(url=url, final_url=url, status_code=0, load_time_ms=elapsed(),
                           error=f"Request failed: {e}")

    load_time_ms = elapsed()
    body = response.text
    title = description = word_count = None

    if body and _looks_like_html(response):
        try:
            title, description, word_count = extract_page_info(body)
        except Exception as e:
            logger.debug("page_parse_failed", url=url, error=str(e))

    return FetchResult(
        url=url,
        final_url=str(response.url),
        status_code=response.status_code,
        headers=dict(response.headers),
        html=body,
        load_time_ms=load_time_ms,
        title=title,
        meta_description=description,
        word_count=word_count,
    )


class SiteResources:
    """Memoised fetches of site-level files for the duration of one audit.

    Every page runs every scanner, so ``/llms.txt`` and friends would otherwise
    be requested once per page. Concurrent callers share one in-flight request.
    """

    def __init__(self, client: httpx.AsyncClient, site_url: str, timeout: float | None = None):
        self.client = client
        self.site_url = normalize_site_url(site_url)
        self.timeout = timeout
        self._results: dict[str, asyncio.Future[FetchResult]] = {}

    def url_for(self, path: str) -> str:
        return build_url(site_root(self.site_url), path)

    def seed(self, result: FetchResult) -> None:
        """Register a fetch done elsewhere (e.g. the crawler's robots.txt)."""
        if result.url in self._results:
            return
        future: asyncio.Future[FetchResult] = asyncio.get_running_loop().create_future()
        future.set_result(result)
        self._results[result.url] = future

    async def get(self, path_or_url: str) -> FetchResult:
        url = path_or_url if "://" in path_or_url else self.url_for(path_or_url)
        future = self._results.get(url)
        if future is None:
            future = asyncio.ensure_future(fetch(self.client, url, timeout=self.timeout))
            self._results[url] = future
        return await asyncio.shield(future)

    @property
    def fetched_urls(self) -> list[str]:
        return sorted(self._results)
