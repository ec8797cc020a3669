"""Tests for the bounded site crawl."""

import asyncio

import httpx
import pytest

from agent_audit.crawler import crawl_site, extract_sitemap_directives, parse_sitemap_locs

from .conftest import html_page

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
{entries}
</urlset>"""


def urlset(*locs: str) -> str:
    return URLSET.format(entries="\n".join(f"<url><loc>{loc}</loc></url>" for loc in locs))


class TestSitemapParsing:
    def test_sitemap_directives_in_file_order(self):
        robots = "User-agent: *\nSitemap: https://example.com/b.xml\nsitemap: https://example.com/a.xml\n"
        assert extract_sitemap_directives(robots) == ["https://example.com/b.xml", "https://example.com/a.xml"]

    def test_urlset_yields_pages(self):
        pages, nested = parse_sitemap_locs(urlset("https://example.com/a", "https://example.com/b"))
        assert pages == ["https://example.com/a", "https://example.com/b"]
        assert nested == []

    def test_sitemapindex_yields_nested_sitemaps(self):
        index = (
            '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            "<sitemap><loc>https://example.com/posts.xml</loc></sitemap>"
            "</sitemapindex>"
        )
        assert parse_sitemap_locs(index) == ([], ["https://example.com/posts.xml"])

    def test_garbage_yields_nothing(self):
        assert parse_sitemap_locs("<urlset><url>") == ([], [])


class TestCrawlSite:
    """Tests for crawl_site()."""

    @pytest.mark.asyncio
    async def test_homepage_only_without_sitemap(self, site, client):
        site.add_text("/robots.txt", "User-agent: *\nSitemap: https://example.com/sitemap.xml\n")
        site.add("/", html_page(title="Home"))

        result = await crawl_site("example.com", client, max_pages=5)

        assert [p.url for p in result.pages] == ["https://example.com"]
        assert result.robots_txt.found
        assert site.requested("/sitemap.xml") == 0

    @pytest.mark.asyncio
    async def test_missing_robots_is_not_fatal(self, site, client):
        site.add("/", html_page(title="Home"))

        result = await crawl_site("https://example.com", client)

        assert not result.robots_txt.found
        assert result.robots_fetch.status_code == 404
        assert len(result.scannable_pages) == 1
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_successful_pages(self, site, client):
        site.add_text("/robots.txt", "Sitemap: https://example.com/sitemap.xml\n")
        site.add_xml("/sitemap.xml", urlset("https://example.com/a", "https://example.com/b"))
        site.add("/", html_page(title="Home"))
        site.add("/a", html_page(title="A"))
        site.fail("/b")

        result = await crawl_site("https://example.com", client, max_pages=3, include_sitemap=True)

        assert [p.url for p in result.pages] == ["https://example.com", "https://example.com/a"]
        assert len(result.errors) == 1
        assert result.errors[0].startswith("https://example.com/b: Request failed")
        assert result.sitemap_urls == ["https://example.com/sitemap.xml"]

    @pytest.mark.asyncio
    async def test_page_cap_and_homepage_first(self, site, client):
        site.add_text("/robots.txt", "Sitemap: https://example.com/sitemap.xml\n")
        site.add_xml("/sitemap.xml", urlset(
            "https://example.com/",
            "https://example.com/a",
            "https://example.com/b",
            "https://example.com/c",
            "https://other.example.org/x",
        ))
        for path in ("/", "/a", "/b", "/c"):
            site.add(path, html_page(title=path))

        result = await crawl_site("https://example.com", client, max_pages=2, include_sitemap=True)

        assert [p.url for p in result.pages] == ["https://example.com", "https://example.com/a"]
        assert site.requested("/b") == 0
        assert site.requested("https://other.example.org/x") == 0

    @pytest.mark.asyncio
    async def test_follows_sitemap_index(self, site, client):
        site.add_text("/robots.txt", "Sitemap: https://example.com/index.xml\n")
        site.add_xml(
            "/index.xml",
            '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            "<sitemap><loc>https://example.com/pages.xml</loc></sitemap></sitemapindex>",
        )
        site.add_xml("/pages.xml", urlset("https://example.com/docs"))
        site.add("/", html_page(title="Home"))
        site.add("/docs", html_page(title="Docs"))

        result = await crawl_site("https://example.com", client, max_pages=5, include_sitemap=True)

        assert [p.url for p in result.pages] == ["https://example.com", "https://example.com/docs"]

    @pytest.mark.asyncio
    async def test_http_error_page_is_kept_but_not_scannable(self, site, client):
        site.add("/", "Server Error", status=500)

        result = await crawl_site("https://example.com", client)

        assert result.total_pages == 1
        assert result.errors == []
        assert result.scannable_pages == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, site, client):
        site.add_text("/robots.txt", "Sitemap: https://example.com/sitemap.xml\n")
        site.add_xml("/sitemap.xml", urlset(*(f"https://example.com/p{i}" for i in range(6))))
        state = {"in_flight": 0, "peak": 0}

        async def slow_page(request: httpx.Request) -> httpx.Response:
            state["in_flight"] += 1
            state["peak"] = max(state["peak"], state["in_flight"])
            await asyncio.sleep(0.01)
            state["in_flight"] -= 1
            return httpx.Response(200, text=html_page(title="p"), headers={"content-type": "text/html"})

        site.routes["https://example.com/"] = slow_page
        for i in range(6):
            site.routes[f"https://example.com/p{i}"] = slow_page

        result = await crawl_site(
            "https://example.com", client, max_pages=7, include_sitemap=True, max_concurrent=2
        )

        assert result.total_pages == 7
        assert state["peak"] <= 2

    @pytest.mark.asyncio
    async def test_malformed_sitemap_urls_are_skipped(self, site, client):
        site.add_text(
            "/robots.txt",
            "User-agent: *\nSitemap: http://[::1\nSitemap: https://example.com/sitemap.xml\n",
        )
        site.add_xml("/sitemap.xml", urlset("https://example.com/a", "http://[::1/b"))
        site.add("/", html_page(title="Home"))
        site.add("/a", html_page(title="A"))

        result = await crawl_site("example.com", client, max_pages=5, include_sitemap=True)

        assert result.sitemap_urls == ["https://example.com/sitemap.xml"]
        assert [p.url for p in result.pages] == ["https://example.com", "https://example.com/a"]
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_relative_sitemap_directive_is_resolved(self, site, client):
        site.add_text("/robots.txt", "Sitemap: /pages.xml\n")
        site.add_xml("/pages.xml", urlset("https://example.com/a"))
        site.add("/", html_page(title="Home"))
        site.add("/a", html_page(title="A"))

        result = await crawl_site("example.com", client, include_sitemap=True)

        assert result.sitemap_urls == ["https://example.com/pages.xml"]
        assert result.total_pages == 2
