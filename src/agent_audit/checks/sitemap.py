"""Check XML sitemap presence and validity."""

from dataclasses import dataclass, field
from urllib.parse import urlparse

from lxml import etree

from ..fetcher import resolve_urls
from ..models import IndicatorCategory, IndicatorStatus, ScannerResult
from .base import ScanContext, Scanner, parse_robots_txt

COMMON_SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml")

# Limits from sitemaps.org
MAX_SITEMAP_URLS = 50_000
MAX_SITEMAP_BYTES = 50 * 1024 * 1024

# Only the first few <loc> values are checked for well-formedness
LOCS_TO_VALIDATE = 10


@dataclass
class SitemapValidation:
    url: str
    kind: str = ""  # "urlset" or "sitemapindex"
    url_count: int = 0
    has_lastmod: bool = False
    has_changefreq: bool = False
    has_priority: bool = False
    issues: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return bool(self.kind) and not self.issues


def _localname(element) -> str:
    return etree.QName(element).localname if isinstance(element.tag, str) else ""


def _is_absolute_http(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_sitemap(url: str, content: str) -> SitemapValidation:
    """Validate one sitemap document, either a ``<urlset>`` or a ``<sitemapindex>``."""
    validation = SitemapValidation(url=url)
    raw = content.encode("utf-8")

    try:
        root = etree.fromstring(raw, parser=etree.XMLParser(recover=False, resolve_entities=False))
    except etree.XMLSyntaxError as e:
        validation.issues.append(f"Invalid XML: {e}")
        return validation

    kind = _localname(root)
    if kind not in ("urlset", "sitemapindex"):
        validation.issues.append("Invalid XML sitemap format: root must be <urlset> or <sitemapindex>")
        return validation
    validation.kind = kind

    entry_tag = "url" if kind == "urlset" else "sitemap"
    entries = [el for el in root if _localname(el) == entry_tag]
    validation.url_count = len(entries)
    if not entries:
        validation.issues.append("Sitemap contains no URLs")
        return validation

    names = {_localname(el) for el in root.iter()}
    validation.has_lastmod = "lastmod" in names
    validation.has_changefreq = "changefreq" in names
    validation.has_priority = "priority" in names

    locs = [(el.text or "").strip() for el in root.iter() if _localname(el) == "loc"]
    for loc in locs[:LOCS_TO_VALIDATE]:
        if not _is_absolute_http(loc):
            validation.issues.append(f"Invalid URL in sitemap: {loc}")

    if validation.url_count > MAX_SITEMAP_URLS:
        validation.issues.append("Sitemap exceeds 50,000 URL limit")
    if len(raw) > MAX_SITEMAP_BYTES:
        validation.issues.append("Sitemap exceeds 50MB size limit")

    return validation


async def find_sitemap_urls(ctx: ScanContext) -> tuple[list[str], list[str]]:
    """Return (all candidate sitemap URLs, those that responded with 2xx)."""
    candidates = [ctx.resources.url_for(path) for path in COMMON_SITEMAP_PATHS]

    robots = await ctx.resources.get("/robots.txt")
    if robots.found and robots.html:
        candidates.extend(resolve_urls(ctx.site_url, parse_robots_txt(robots.html).sitemaps))

    candidates = list(dict.fromkeys(candidates))
    resolved = []
    for url in candidates:
        fetched = await ctx.resources.get(url)
        if fetched.found and fetched.html:
            resolved.append(url)
    return candidates, resolved


async def check_xml_sitemap(scanner: Scanner, ctx: ScanContext) -> ScannerResult:
    checked, sitemap_urls = await find_sitemap_urls(ctx)

    if not sitemap_urls:
        return scanner.result(
            IndicatorStatus.FAIL,
            0.0,
            "No XML sitemap found",
            evidence={"checked_locations": checked},
            recommendation="Create an XML sitemap and reference it in robots.txt",
            checked_url=checked[0],
        )

    validations = []
    for url in sitemap_urls:
        fetched = await ctx.resources.get(url)
        validations.append(validate_sitemap(url, fetched.html))

    valid = [v for v in validations if v.is_valid]
    issues = [f"{v.url}: {issue}" for v in validations for issue in v.issues]
    total_urls = sum(v.url_count for v in validations)
    evidence = {
        "sitemap_urls": sitemap_urls,
        "total_urls": total_urls,
        "valid_sitemaps": len(valid),
        "sitemap_types": {v.url: v.kind or None for v in validations},
        "issues": issues,
    }

    if not valid:
        return scanner.result(
            IndicatorStatus.FAIL,
            0.2,
            "Sitemap found but contains errors",
            evidence=evidence,
            recommendation="Fix the validation errors in your XML sitemap",
            found=True,
            checked_url=sitemap_urls[0],
        )

    has_optional = any(v.has_lastmod or v.has_changefreq or v.has_priority for v in valid)
    evidence.update(
        has_lastmod=any(v.has_lastmod for v in valid),
        has_changefreq=any(v.has_changefreq for v in valid),
        has_priority=any(v.has_priority for v in valid),
    )
    plural = "s" if len(sitemap_urls) > 1 else ""

    return scanner.result(
        IndicatorStatus.WARN if issues else IndicatorStatus.PASS,
        1.0 if has_optional else 0.8,
        f"Valid XML sitemap{plural} found with {total_urls} URLs",
        evidence=evidence,
        recommendation=None if has_optional else "Add lastmod, changefreq or priority elements to your sitemap",
        found=True,
        is_valid=True,
        checked_url=valid[0].url,
    )


XML_SITEMAP = Scanner(
    name="xml_sitemap",
    category=IndicatorCategory.SEO,
    weight=1.0,
    description="Presence and validity of an XML sitemap",
    check=check_xml_sitemap,
)
