"""Classify a site into a profile from scanner evidence and page URLs."""

from __future__ import annotations

from typing import Iterable
from urllib.parse import urlparse

from .models import ScannerResult, SiteProfileResult

ECOMMERCE = "ecommerce"
BLOG_CONTENT = "blog_content"
SAAS = "saas"
KB_SUPPORT = "kb_support"
GOV_NONTRANSACTING = "gov_nontransacting"
UNKNOWN = "unknown"

# Order matters: it breaks ties between equally scored profiles
PROFILES = (ECOMMERCE, BLOG_CONTENT, SAAS, KB_SUPPORT, GOV_NONTRANSACTING, UNKNOWN)

PROFILE_DISPLAY_NAMES = {
    ECOMMERCE: "E-commerce Site",
    BLOG_CONTENT: "Blog/Content Site",
    SAAS: "SaaS Application",
    KB_SUPPORT: "Knowledge Base/Support",
    GOV_NONTRANSACTING: "Government (Non-transacting)",
    UNKNOWN: "Unknown/Other",
}

ECOMMERCE_SCHEMAS = (
    "Product", "Offer", "AggregateOffer", "ShoppingCart", "Store", "OnlineStore",
    "ProductModel", "Brand", "Review", "AggregateRating",
)
ARTICLE_SCHEMAS = ("Article", "BlogPosting", "NewsArticle")
KB_SCHEMAS = ("FAQPage", "HowTo", "QAPage")
GOV_SCHEMAS = ("GovernmentOrganization", "GovernmentService")

ECOMMERCE_PATHS = (
    "/cart", "/checkout", "/products", "/shop", "/store", "/product/", "/wc-api/",
    "/woocommerce", "/add-to-cart", "/my-account", "/basket", "/order", "/payment", "/billing",
)
SAAS_PATHS = ("/api", "/dashboard", "/login", "/oauth", "/signup", "/pricing")
KB_PATHS = ("/docs", "/help", "/support", "/faq", "/kb", "/knowledge")
BLOG_PATHS = ("/blog", "/post", "/article", "/news")
GOV_PATHS = ("/policy", "/regulations")

ECOMMERCE_KEYWORDS = (
    "shop", "store", "buy", "purchase", "cart", "checkout", "add to cart", "sale", "price",
    "product", "shipping", "delivery", "discount", "coupon", "in stock", "new arrivals",
    "gift card", "free returns", "wholesale", "collection", "shop now",
)
SAAS_KEYWORDS = ("platform", "software", "saas", "dashboard", "api", "free trial", "sign up", "integrations")
BLOG_KEYWORDS = ("blog", "article", "read", "post", "news", "stories")
SUPPORT_KEYWORDS = ("help", "support", "documentation", "guide", "faq", "tutorial")
GOV_KEYWORDS = ("government", "ministry", "department of", "public service", "council")


def is_valid_profile(profile: str | None) -> bool:
    return profile in PROFILES


class _Tally:
    """Running per-profile scores plus de-duplicated, ordered signals."""

    def __init__(self):
        self.scores = {profile: 0 for profile in PROFILES}
        self.signals: list[str] = []

    def add(self, profile: str, points: int, signal: str) -> None:
        self.scores[profile] += points
        if signal not in self.signals:
            self.signals.append(signal)

    def best(self) -> tuple[str, int]:
        best_profile, best_score = UNKNOWN, 0
        for profile in PROFILES:
            if self.scores[profile] > best_score:
                best_profile, best_score = profile, self.scores[profile]
        return best_profile, best_score


def _evidence_values(indicators: list[ScannerResult], name: str, key: str) -> list:
    values = []
    for result in indicators:
        if result.indicator_name == name:
            value = result.evidence.get(key)
            if isinstance(value, list):
                values.extend(value)
            elif value:
                values.append(value)
    return values


def _matches(text: str, keywords: Iterable[str]) -> list[str]:
    return [k for k in keywords if k in text]


def _score_schemas(tally: _Tally, types: list[str]) -> None:
    ecommerce = [t for t in ECOMMERCE_SCHEMAS if t in types]
    if ecommerce:
        tally.add(ECOMMERCE, min(4, len(ecommerce)), f"E-commerce schemas detected: {', '.join(ecommerce)}")
    if any(t in types for t in ARTICLE_SCHEMAS):
        tally.add(BLOG_CONTENT, 3, "Article/Blog schema detected")
    if any(t in types for t in KB_SCHEMAS):
        tally.add(KB_SUPPORT, 3, "FAQ/HowTo schema detected")
    if any(t in types for t in GOV_SCHEMAS):
        tally.add(GOV_NONTRANSACTING, 3, "Government schema detected")
    if any(t in types for t in ("SoftwareApplication", "WebApplication")):
        tally.add(SAAS, 2, "Software application schema detected")


def _score_url(tally: _Tally, url: str) -> None:
    lowered = url.lower()
    path = urlparse(lowered).path

    ecommerce = _matches(path, ECOMMERCE_PATHS)
    if ecommerce:
        tally.add(ECOMMERCE, min(2, len(ecommerce)), f"E-commerce URL patterns: {', '.join(ecommerce)}")
    if _matches(path, SAAS_PATHS):
        tally.add(SAAS, 1, "SaaS app URL patterns")
    if _matches(path, KB_PATHS):
        tally.add(KB_SUPPORT, 1, "Knowledge base URL patterns")
    if _matches(path, BLOG_PATHS):
        tally.add(BLOG_CONTENT, 1, "Blog/content URL patterns")

    hostname = urlparse(lowered).hostname or ""
    if hostname.endswith(".gov") or ".gov." in hostname or _matches(path, GOV_PATHS):
        tally.add(GOV_NONTRANSACTING, 1, "Government URL patterns")


def _score_keywords(tally: _Tally, text: str) -> None:
    checks = (
        (ECOMMERCE, ECOMMERCE_KEYWORDS, 4, "E-commerce keywords in SEO"),
        (SAAS, SAAS_KEYWORDS, 2, "SaaS keywords in SEO"),
        (BLOG_CONTENT, BLOG_KEYWORDS, 2, "Blog keywords in SEO"),
        (KB_SUPPORT, SUPPORT_KEYWORDS, 2, "Support keywords in SEO"),
        (GOV_NONTRANSACTING, GOV_KEYWORDS, 2, "Government keywords in SEO"),
    )
    for profile, keywords, cap, label in checks:
        found = _matches(text, keywords)
        if found:
            tally.add(profile, min(cap, len(found)), f"{label}: {', '.join(found)}")


def detect_profile(
    indicators: Iterable[ScannerResult],
    page_urls: Iterable[str],
    declared_profile: str | None = None,
) -> SiteProfileResult:
    """Decide which kind of site this is.

    A valid declared profile (other than ``unknown``) wins outright.
    Otherwise each profile collects points from JSON-LD types, URL paths and
    title/description keywords. The highest total wins, ties going to the
    earlier profile in :data:`PROFILES`, and confidence is ``best / 5``
    capped at 1.

    Args:
        indicators: Scanner results from every scanned page
        page_urls: URLs of the scanned pages
        declared_profile: Profile stated by the site owner, if any

    Returns:
        SiteProfileResult with ``method`` "declared" or "heuristic"
    """
    if is_valid_profile(declared_profile) and declared_profile != UNKNOWN:
        return SiteProfileResult(
            profile=declared_profile,
            confidence=1.0,
            method="declared",
            signals=("Client declared profile",),
        )

    indicators = list(indicators)
    tally = _Tally()

    types = list(dict.fromkeys(_evidence_values(indicators, "json_ld", "types")))
    _score_schemas(tally, types)

    for url in sorted(set(page_urls)):
        _score_url(tally, url)

    text_parts = _evidence_values(indicators, "seo_basic", "title")
    text_parts += _evidence_values(indicators, "seo_basic", "meta_description")
    text = " ".join(str(part) for part in text_parts).lower()
    if text:
        _score_keywords(tally, text)

    profile, best = tally.best()
    if best == 0:
        return SiteProfileResult(
            profile=UNKNOWN,
            confidence=0.0,
            method="heuristic",
            signals=("No clear profile signals detected",),
        )

    return SiteProfileResult(
        profile=profile,
        confidence=min(1.0, best / 5),
        method="heuristic",
        signals=tuple(tally.signals),
    )
