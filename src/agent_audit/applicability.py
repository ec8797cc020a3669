"""Which indicators matter for which kind of site, and where they are scored."""

from __future__ import annotations

from .models import Applicability, ApplicabilityStatus, ScoreCategory
from .profile import PROFILES

REQUIRED = ApplicabilityStatus.REQUIRED
OPTIONAL = ApplicabilityStatus.OPTIONAL
NOT_APPLICABLE = ApplicabilityStatus.NOT_APPLICABLE

# indicator -> {profile or "default": status}
APPLICABILITY_MATRIX: dict[str, dict[str, ApplicabilityStatus]] = {
    "mcp": {
        "default": OPTIONAL,
        "ecommerce": REQUIRED,
        "saas": REQUIRED,
        "blog_content": NOT_APPLICABLE,
        "gov_nontransacting": NOT_APPLICABLE,
    },
    "agent_json": {
        "default": OPTIONAL,
        "ecommerce": REQUIRED,
        "saas": REQUIRED,
    },
    "ai_agent_json": {
        "default": OPTIONAL,
        "ecommerce": REQUIRED,
        "saas": REQUIRED,
        "gov_nontransacting": NOT_APPLICABLE,
    },
    "llms_txt": {"default": REQUIRED},
    "json_ld": {"default": REQUIRED},
    "xml_sitemap": {"default": REQUIRED},
    "canonical_urls": {"default": REQUIRED},
    "robots_txt": {"default": REQUIRED},
    "seo_basic": {"default": REQUIRED},
}

# One indicator may feed several categories
CATEGORY_MAPPING: dict[ScoreCategory, tuple[str, ...]] = {
    ScoreCategory.DISCOVERY: ("robots_txt", "xml_sitemap", "seo_basic"),
    ScoreCategory.UNDERSTANDING: ("json_ld", "llms_txt", "canonical_urls"),
    ScoreCategory.ACTIONS: ("mcp", "agent_json", "ai_agent_json"),
    ScoreCategory.TRUST: ("canonical_urls", "robots_txt", "seo_basic"),
}

PROFILE_DESCRIPTIONS = {
    "ecommerce": "e-commerce sites",
    "blog_content": "blog/content sites",
    "saas": "SaaS applications",
    "kb_support": "knowledge base/support sites",
    "gov_nontransacting": "government (non-transacting) sites",
    "unknown": "unclassified sites",
}


def lookup_status(indicator_name: str, profile: str) -> ApplicabilityStatus:
    row = APPLICABILITY_MATRIX.get(indicator_name)
    if row is None:
        return OPTIONAL
    return row.get(profile, row.get("default", OPTIONAL))


def get_applicability(indicator_name: str, profile: str) -> Applicability:
    status = lookup_status(indicator_name, profile)
    sites = PROFILE_DESCRIPTIONS.get(profile, f"{profile} sites")

    if status is REQUIRED:
        reason = f"{indicator_name} is required for {sites}"
    elif status is OPTIONAL:
        reason = f"{indicator_name} is recommended but optional for {sites}"
    else:
        reason = f"{indicator_name} is not applicable to {sites}"

    return Applicability(
        status=status,
        reason=reason,
        included_in_category_math=status is not NOT_APPLICABLE,
    )


def profile_applicabilities(profile: str) -> dict[str, Applicability]:
    """Applicability of every indicator in the matrix for ``profile``."""
    return {name: get_applicability(name, profile) for name in APPLICABILITY_MATRIX}


def should_include(indicator_name: str, profile: str) -> bool:
    return get_applicability(indicator_name, profile).included_in_category_math


def categories_for(indicator_name: str) -> list[ScoreCategory]:
    return [c for c in ScoreCategory if indicator_name in CATEGORY_MAPPING[c]]


def known_profiles() -> tuple[str, ...]:
    return PROFILES
