"""Check the page's canonical URL."""

from urllib.parse import parse_qsl, urlparse

from bs4 import BeautifulSoup

from ..models import IndicatorCategory, IndicatorStatus, ScannerResult
from .base import ScanContext, Scanner, extract_meta_tags

# Query parameters that legitimately distinguish canonical pages
ACCEPTABLE_QUERY_PARAMS = {"page", "sort", "category", "tag"}

INDEX_FILES = ("index.html", "index.php")


def find_canonical(soup: BeautifulSoup) -> str | None:
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "canonical" in (r.lower() for r in rel):
            return link["href"].strip()
    return None


def canonical_issues(canonical_url: str) -> list[str]:
    """List what is wrong with ``canonical_url``; empty means valid."""
    issues = []
    try:
        parsed = urlparse(canonical_url)
    except ValueError:
        return ["Canonical URL is malformed"]

    if not parsed.scheme or not parsed.netloc:
        issues.append("Canonical URL must be absolute (include protocol and domain)")
    elif parsed.scheme not in ("http", "https"):
        issues.append("Invalid protocol (must be http or https)")
    else:
        params = {key.lower() for key, _ in parse_qsl(parsed.query, keep_blank_values=True)}
        if params - ACCEPTABLE_QUERY_PARAMS:
            issues.append("Contains potentially problematic query parameters")

    if " " in canonical_url:
        issues.append("URL contains spaces")
    if canonical_url.endswith(INDEX_FILES):
        issues.append("Avoid including index files in canonical URLs")
    return issues


def og_url_mismatch(canonical_url: str, og_url: str | None) -> str | None:
    """Describe how ``og:url`` disagrees with the canonical URL, if it does."""
    if not og_url:
        return None
    try:
        canonical, og = urlparse(canonical_url), urlparse(og_url)
    except ValueError:
        return "Invalid URL format in og:url"
    if not og.netloc:
        return "Invalid URL format in og:url"
    if canonical.hostname != og.hostname:
        return "Different domains in canonical and og:url"
    if canonical.path.rstrip("/") != og.path.rstrip("/"):
        return "Different paths in canonical and og:url"
    return None


async def check_canonical_urls(scanner: Scanner, ctx: ScanContext) -> ScannerResult:
    page_url = ctx.page_url or ctx.site_url
    if ctx.soup is None:
        return scanner.result(
            IndicatorStatus.NOT_APPLICABLE,
            0.0,
            "No HTML content available for canonical URL analysis",
            evidence={"reason": "Page HTML not provided"},
            checked_url=page_url,
        )

    canonical_url = find_canonical(ctx.soup)
    if not canonical_url:
        return scanner.result(
            IndicatorStatus.WARN,
            0.3,
            "No canonical URL specified",
            evidence={"page_url": page_url},
            recommendation="Add a <link rel=\"canonical\"> tag to prevent duplicate content issues",
            checked_url=page_url,
        )

    issues = canonical_issues(canonical_url)
    if issues:
        return scanner.result(
            IndicatorStatus.FAIL,
            0.0,
            "Invalid canonical URL implementation",
            evidence={"canonical_url": canonical_url, "issues": issues, "page_url": page_url},
            recommendation=f"Fix canonical URL issues: {', '.join(issues)}",
            found=True,
            checked_url=page_url,
        )

    og_url = extract_meta_tags(ctx.soup).get("og:url")
    mismatch = og_url_mismatch(canonical_url, og_url)
    if mismatch:
        return scanner.result(
            IndicatorStatus.WARN,
            0.7,
            "Canonical URL inconsistency detected",
            evidence={"canonical_url": canonical_url, "og_url": og_url, "issue": mismatch},
            recommendation="Make the canonical URL and the og:url meta tag point at the same page",
            found=True,
            is_valid=True,
            checked_url=page_url,
        )

    return scanner.result(
        IndicatorStatus.PASS,
        1.0,
        "Proper canonical URL implementation",
        evidence={"canonical_url": canonical_url, "og_url": og_url, "matches_og_url": True},
        found=True,
        is_valid=True,
        checked_url=page_url,
    )


CANONICAL_URLS = Scanner(
    name="canonical_urls",
    category=IndicatorCategory.SEO,
    weight=1.0,
    description="Validity of the page's canonical URL and its agreement with og:url",
    check=check_canonical_urls,
)
