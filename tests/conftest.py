"""
Shared fixtures: an in-process fake website served through httpx.MockTransport.

Nothing in the test suite touches the network.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

from agent_audit.checks import ScanContext
from agent_audit.config import Settings
from agent_audit.fetcher import SiteResources
from agent_audit.models import IndicatorCategory, IndicatorStatus, ScannerResult

BASE_URL = "https://example.com"

Route = httpx.Response | Exception | Callable[[httpx.Request], Any]


class FakeSite:
    """Routes keyed by absolute URL; anything unknown is a 404."""

    def __init__(self, base_url: str = BASE_URL):
        self.base_url = base_url
        self.routes: dict[str, Route] = {}
        self.requests: list[str] = []

    def url(self, path: str) -> str:
        return path if "://" in path else self.base_url + path

    def add(self, path: str, body: str = "", status: int = 200,
            content_type: str = "text/html; charset=utf-8") -> "FakeSite":
        self.routes[self.url(path)] = httpx.Response(status, text=body, headers={"content-type": content_type})
        return self

    def add_text(self, path: str, body: str) -> "FakeSite":
        return self.add(path, body, content_type="text/plain; charset=utf-8")

    def add_xml(self, path: str, body: str) -> "FakeSite":
        return self.add(path, body, content_type="application/xml")

    def add_json(self, path: str, data: Any) -> "FakeSite":
        body = data if isinstance(data, str) else json.dumps(data)
        return self.add(path, body, content_type="application/json")

    def fail(self, path: str, error: type[Exception] = httpx.ConnectError) -> "FakeSite":
        self.routes[self.url(path)] = error("boom")
        return self

    def requested(self, path: str) -> int:
        return self.requests.count(self.url(path))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        key = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        self.requests.append(key)
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, text="Not Found", headers={"content-type": "text/html"})
        if isinstance(route, Exception):
            raise type(route)(str(route), request=request)
        if callable(route):
            return await route(request)
        return route

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, follow_redirects=True)


def html_page(
    title: str | None = None,
    description: str | None = None,
    head: str = "",
    body: str = "<p>Hello world</p>",
) -> str:
    parts = ["<!DOCTYPE html><html><head>"]
    if title is not None:
        parts.append(f"<title>{title}</title>")
    if description is not None:
        parts.append(f'<meta name="description" content="{description}">')
    parts.append(head)
    parts.append(f"</head><body>{body}</body></html>")
    return "".join(parts)


def json_ld_script(data: Any) -> str:
    content = data if isinstance(data, str) else json.dumps(data)
    return f'<script type="application/ld+json">{content}</script>'


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        request_timeout=5,
        anonymous_timeout=5,
        resource_timeout=5,
        max_concurrent=2,
        default_max_pages=5,
        anonymous_max_pages=3,
    )


@pytest.fixture
async def client(site: FakeSite):
    async with site.client() as c:
        yield c


@pytest.fixture
def make_context(site: FakeSite, client: httpx.AsyncClient):
    """Build a ScanContext for one page of the fake site."""

    def _make(html: str | None = None, page_url: str | None = None) -> ScanContext:
        return ScanContext(
            site_url=site.base_url,
            resources=SiteResources(client, site.base_url),
            page_url=page_url or site.base_url,
            page_html=html,
        )

    return _make


def scanner_result(
    name: str,
    score: float,
    status: IndicatorStatus | None = None,
    weight: float = 1.0,
    message: str = "",
    recommendation: str | None = None,
    evidence: dict[str, Any] | None = None,
) -> ScannerResult:
    """A ready-made scanner result; status follows the score when omitted."""
    if status is None:
        status = IndicatorStatus.PASS if score >= 0.8 else IndicatorStatus.WARN if score >= 0.5 else IndicatorStatus.FAIL
    return ScannerResult(
        indicator_name=name,
        category=IndicatorCategory.STANDARDS,
        weight=weight,
        status=status,
        score=score,
        message=message or f"{name} result",
        recommendation=recommendation,
        evidence=evidence or {},
    )
