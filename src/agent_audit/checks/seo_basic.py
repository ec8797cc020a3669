"""Check basic on-page SEO: title, meta description, H1 and Open Graph."""

from bs4 import BeautifulSoup

from ..models import IndicatorCategory, IndicatorStatus, ScannerResult
from .base import ScanContext, Scanner, extract_meta_tags, status_for

TITLE_RANGE = (30, 60)
DESCRIPTION_RANGE = (120, 160)
OG_TAGS = ("og:title", "og:description", "og:image", "og:url")

# Share of each element in the composite score
SUB_SCORE_WEIGHTS = {
    "title": 0.30,
    "meta_description": 0.30,
    "h1": 0.25,
    "open_graph": 0.15,
}


def length_score(text: str | None, bounds: tuple[int, int], label: str) -> tuple[float, str | None]:
    """1.0 inside ``bounds``, 0.5 when present but out of range, 0 when missing."""
    if not text:
        return 0.0, f"Missing {label}"
    low, high = bounds
    if len(text) < low:
        return 0.5, f"{label.capitalize()} too short (< {low} characters)"
    if len(text) > high:
        return 0.5, f"{label.capitalize()} too long (> {high} characters)"
    return 1.0, None


def heading_outline(soup: BeautifulSoup, limit: int = 10) -> list[str]:
    outline = []
    for heading in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]):
        text = heading.get_text(" ", strip=True)
        if text:
            outline.append(f"{heading.name.upper()}: {text[:50]}{'...' if len(text) > 50 else ''}")
        if len(outline) >= limit:
            break
    return outline


def h1_score(count: int) -> tuple[float, str | None]:
    if count == 1:
        return 1.0, None
    if count == 0:
        return 0.0, "No H1 tag found"
    return 0.5, f"Multiple H1 tags found ({count})"


def open_graph_score(meta: dict[str, str]) -> tuple[float, list[str]]:
    missing = [tag for tag in OG_TAGS if not meta.get(tag)]
    if not missing:
        return 1.0, missing
    if len(missing) <= 2:
        return 0.5, missing
    return 0.0, missing


async def check_seo_basic(scanner: Scanner, ctx: ScanContext) -> ScannerResult:
    """Weighted composite of title, description, H1 and Open Graph checks.

    Title and description score 1.0 within their optimal length, 0.5 when
    merely present. Exactly one H1 scores 1.0, several 0.5. Open Graph scores
    1.0 when complete and 0.5 with at most two tags missing.
    """
    page_url = ctx.page_url or ctx.site_url
    if ctx.soup is None:
        return scanner.result(
            IndicatorStatus.NOT_APPLICABLE,
            0.0,
            "No HTML content available for SEO analysis",
            evidence={"reason": "Page HTML not provided"},
            checked_url=page_url,
        )

    meta = extract_meta_tags(ctx.soup)
    title = meta.get("title") or None
    description = meta.get("description") or None
    h1_count = len(ctx.soup.find_all("h1"))

    title_score, title_issue = length_score(title, TITLE_RANGE, "title")
    description_score, description_issue = length_score(description, DESCRIPTION_RANGE, "meta description")
    heading_score, heading_issue = h1_score(h1_count)
    og_score, og_missing = open_graph_score(meta)

    sub_scores = {
        "title": title_score,
        "meta_description": description_score,
        "h1": heading_score,
        "open_graph": og_score,
    }
    score = round(sum(SUB_SCORE_WEIGHTS[k] * v for k, v in sub_scores.items()), 3)

    issues = [i for i in (title_issue, description_issue, heading_issue) if i]
    if og_missing:
        issues.append(f"Missing Open Graph tags: {', '.join(og_missing)}")

    evidence = {
        "title": title,
        "title_length": len(title) if title else 0,
        "meta_description": description,
        "meta_description_length": len(description) if description else 0,
        "h1_count": h1_count,
        "headings": heading_outline(ctx.soup),
        "og_missing_tags": og_missing,
        "sub_scores": sub_scores,
        "issues": issues,
    }

    return scanner.result(
        status_for(score, pass_at=0.8, warn_at=0.5),
        score,
        "Basic SEO elements are well optimized" if not issues else f"SEO issues found: {'; '.join(issues[:3])}",
        evidence=evidence,
        recommendation="; ".join(issues) if issues else None,
        found=True,
        is_valid=not issues,
        checked_url=page_url,
    )


SEO_BASIC = Scanner(
    name="seo_basic",
    category=IndicatorCategory.SEO,
    weight=1.5,
    description="Title, meta description, H1 and Open Graph basics",
    check=check_seo_basic,
)
