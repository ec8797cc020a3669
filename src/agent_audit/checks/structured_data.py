"""Check for JSON-LD structured data."""

from typing import Any

from ..models import IndicatorCategory, IndicatorStatus, ScannerResult
from .base import ScanContext, Scanner, extract_json_ld, status_for


# Schema types that help agents understand what a page is about
AI_RELEVANT_TYPES = (
    "Organization",
    "Corporation",
    "LocalBusiness",
    "WebSite",
    "WebPage",
    "Article",
    "NewsArticle",
    "BlogPosting",
    "Product",
    "Service",
    "FAQPage",
    "HowTo",
    "Recipe",
    "Event",
    "Person",
    "VideoObject",
    "ImageObject",
)

ARTICLE_ISSUE_PENALTY = 0.05
ISSUE_PENALTY = 0.1
MAX_PENALTY = 0.4


def get_schema_types(data: Any) -> list[str]:
    """Collect every @type value in a JSON-LD value, nested objects included."""
    types: list[str] = []

    if isinstance(data, list):
        for item in data:
            types.extend(get_schema_types(item))
        return types
    if not isinstance(data, dict):
        return types

    type_val = data.get("@type")
    if isinstance(type_val, list):
        types.extend(t for t in type_val if isinstance(t, str))
    elif isinstance(type_val, str):
        types.append(type_val)

    for value in data.values():
        if isinstance(value, (dict, list)):
            types.extend(get_schema_types(value))

    return types


def _own_types(obj: dict[str, Any]) -> list[str]:
    type_val = obj.get("@type")
    if isinstance(type_val, list):
        return [t for t in type_val if isinstance(t, str)]
    return [type_val] if isinstance(type_val, str) else []


def validate_entity(obj: dict[str, Any], context: Any = None) -> list[str]:
    """Check one top-level JSON-LD object for context, type and required fields."""
    issues = []

    context = obj.get("@context", context)
    if not context:
        issues.append("Missing @context property")
    elif isinstance(context, str) and "schema.org" not in context:
        issues.append("@context should reference schema.org")

    types = _own_types(obj)
    if not types:
        issues.append("Missing @type property")

    if any("Organization" in t for t in types):
        if not obj.get("name"):
            issues.append("Organization missing name property")
        if not obj.get("url"):
            issues.append("Organization missing url property")

    if "WebSite" in types:
        if not obj.get("url"):
            issues.append("WebSite missing url property")
        if not obj.get("name"):
            issues.append("WebSite missing name property")

    if "Product" in types:
        if not obj.get("name"):
            issues.append("Product missing name property")
        if not obj.get("description"):
            issues.append("Product missing description property")

    if any("Article" in t or t == "BlogPosting" for t in types):
        for prop in ("headline", "author", "datePublished"):
            if not obj.get(prop):
                issues.append(f"Article missing {prop} property")

    return issues


def top_level_entities(block: Any) -> list[tuple[dict[str, Any], Any]]:
    """Flatten a block into (entity, inherited @context) pairs, expanding @graph."""
    if isinstance(block, list):
        return [pair for item in block for pair in top_level_entities(item)]
    if not isinstance(block, dict):
        return []
    if isinstance(block.get("@graph"), list):
        context = block.get("@context")
        return [(item, context) for item in block["@graph"] if isinstance(item, dict)]
    return [(block, None)]


def analyze_json_ld(blocks: list[Any]) -> dict[str, Any]:
    types = list(dict.fromkeys(t for block in blocks for t in get_schema_types(block)))

    issues: list[str] = []
    for entity, context in (pair for block in blocks for pair in top_level_entities(block)):
        issues.extend(validate_entity(entity, context))

    return {
        "count": len(blocks),
        "types": types,
        "has_organization": any("Organization" in t or "Corporation" in t for t in types),
        "has_website": "WebSite" in types,
        "has_webpage": "WebPage" in types,
        "has_breadcrumb": "BreadcrumbList" in types,
        "has_product": "Product" in types,
        "has_article": any("Article" in t or t == "BlogPosting" for t in types),
        "ai_relevant_types": [t for t in types if any(ai in t for ai in AI_RELEVANT_TYPES)],
        "validation_issues": list(dict.fromkeys(issues)),
    }


def json_ld_score(analysis: dict[str, Any]) -> float:
    score = 0.5
    if analysis["has_organization"] or analysis["has_website"]:
        score += 0.3
    if analysis["has_webpage"] or analysis["has_breadcrumb"]:
        score += 0.1
    if analysis["has_product"] or analysis["has_article"]:
        score += 0.2
    score += min(0.3, 0.1 * len(analysis["ai_relevant_types"]))
    if analysis["count"] > 1:
        score += 0.1

    # Partial Article data is common, so it costs less
    penalty = sum(
        ARTICLE_ISSUE_PENALTY if "Article" in issue else ISSUE_PENALTY
        for issue in analysis["validation_issues"]
    )
    score -= min(MAX_PENALTY, penalty)

    return round(min(1.0, max(0.0, score)), 3)


def json_ld_recommendations(analysis: dict[str, Any]) -> list[str]:
    recommendations = []
    if not analysis["has_organization"] and not analysis["has_website"]:
        recommendations.append("Add Organization or WebSite schema for better brand recognition")
    if not analysis["has_breadcrumb"]:
        recommendations.append("Consider adding BreadcrumbList for better navigation context")
    if analysis["validation_issues"]:
        recommendations.append(f"Fix validation issues: {', '.join(analysis['validation_issues'][:3])}")
    if not analysis["ai_relevant_types"]:
        recommendations.append("Use AI-relevant schema types like Article, Product or FAQPage")
    return recommendations


async def check_json_ld(scanner: Scanner, ctx: ScanContext) -> ScannerResult:
    """Score the page's JSON-LD blocks.

    A 0.5 base for any block, bonuses for key entity types, AI-relevant type
    coverage and multiple blocks, minus a capped penalty per validation issue.
    """
    page_url = ctx.page_url or ctx.site_url
    if ctx.soup is None:
        return scanner.result(
            IndicatorStatus.NOT_APPLICABLE,
            0.0,
            "No HTML content available for JSON-LD analysis",
            evidence={"reason": "Page HTML not provided"},
            checked_url=page_url,
        )

    blocks, invalid_blocks = extract_json_ld(ctx.soup)
    analysis = analyze_json_ld(blocks)
    analysis["invalid_blocks"] = invalid_blocks

    if not blocks:
        return scanner.result(
            IndicatorStatus.FAIL,
            0.0,
            "No JSON-LD structured data found" if not invalid_blocks else "JSON-LD blocks found but none could be parsed",
            evidence=analysis,
            recommendation="Add JSON-LD structured data to help search engines and AI agents understand your content",
            found=bool(invalid_blocks),
            checked_url=page_url,
        )

    score = json_ld_score(analysis)
    if analysis["validation_issues"]:
        message = f"Found {len(analysis['types'])} structured data types with {len(analysis['validation_issues'])} validation issues"
    elif analysis["ai_relevant_types"]:
        message = f"Structured data with {len(analysis['ai_relevant_types'])} AI-relevant types"
    else:
        message = f"Basic structured data found with {len(analysis['types'])} types"

    recommendations = json_ld_recommendations(analysis)
    return scanner.result(
        status_for(score, pass_at=0.8, warn_at=0.3),
        score,
        message,
        evidence=analysis,
        recommendation=". ".join(recommendations) or None,
        found=True,
        is_valid=not analysis["validation_issues"] and not invalid_blocks,
        checked_url=page_url,
    )


JSON_LD = Scanner(
    name="json_ld",
    category=IndicatorCategory.STRUCTURED_DATA,
    weight=2.0,
    description="JSON-LD structured data coverage and validity",
    check=check_json_ld,
)
