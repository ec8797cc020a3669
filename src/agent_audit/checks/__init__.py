"""Indicator scanners for agent readiness."""

from .agent_json import AGENT_JSON, AI_AGENT_JSON
from .base import ScanContext, Scanner, ScannerRegistry
from .canonical import CANONICAL_URLS
from .llms_txt import LLMS_TXT
from .mcp import MCP
from .robots import ROBOTS_TXT
from .seo_basic import SEO_BASIC
from .sitemap import XML_SITEMAP
from .structured_data import JSON_LD

ALL_SCANNERS = (
    LLMS_TXT,
    AGENT_JSON,
    AI_AGENT_JSON,
    ROBOTS_TXT,
    CANONICAL_URLS,
    XML_SITEMAP,
    SEO_BASIC,
    JSON_LD,
    MCP,
)


def default_registry() -> ScannerRegistry:
    """A fresh registry holding every built-in scanner."""
    return ScannerRegistry(ALL_SCANNERS)


__all__ = [
    "ALL_SCANNERS",
    "AGENT_JSON",
    "AI_AGENT_JSON",
    "CANONICAL_URLS",
    "JSON_LD",
    "LLMS_TXT",
    "MCP",
    "ROBOTS_TXT",
    "SEO_BASIC",
    "XML_SITEMAP",
    "ScanContext",
    "Scanner",
    "ScannerRegistry",
    "default_registry",
]
