"""Scanner interface, registry and parsing helpers shared by all checks."""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Awaitable, Callable, Iterable

import structlog
from bs4 import BeautifulSoup

from ..fetcher import SiteResources
from ..models import IndicatorCategory, IndicatorStatus, PageMetadata, ScannerResult

logger = structlog.get_logger(__name__)


@dataclass
class ScanContext:
    """Everything a scanner may look at for one page."""
    site_url: str
    resources: SiteResources
    page_url: str | None = None
    page_html: str | None = None
    page_metadata: PageMetadata | None = None

    @cached_property
    def soup(self) -> BeautifulSoup | None:
        if not self.page_html:
            return None
        return BeautifulSoup(self.page_html, "lxml")


CheckFn = Callable[["Scanner", ScanContext], Awaitable[ScannerResult]]


@dataclass(frozen=True)
class Scanner:
    """One indicator check: identity plus the coroutine that runs it."""
    name: str
    category: IndicatorCategory
    weight: float
    description: str
    check: CheckFn = field(repr=False)

    async def scan(self, context: ScanContext) -> ScannerResult:
        return await self.check(self, context)

    def result(self, status: IndicatorStatus, score: float, message: str, **kwargs: Any) -> ScannerResult:
        return ScannerResult(
            indicator_name=self.name,
            category=self.category,
            weight=self.weight,
            status=status,
            score=score,
            message=message,
            **kwargs,
        )

    def error_result(self, error: Exception) -> ScannerResult:
        return self.result(
            IndicatorStatus.FAIL,
            0.0,
            f"Scanner failed: {error}",
            evidence={"error": str(error), "error_type": type(error).__name__},
        )


class ScannerRegistry:
    """Ordered set of scanners, one per indicator name."""

    def __init__(self, scanners: Iterable[Scanner] = ()):
        self._scanners: dict[str, Scanner] = {}
        for scanner in scanners:
            self.register(scanner)

    def register(self, scanner: Scanner) -> None:
        if scanner.name in self._scanners:
            raise ValueError(f"Scanner {scanner.name} is already registered")
        self._scanners[scanner.name] = scanner

    def unregister(self, name: str) -> None:
        self._scanners.pop(name, None)

    def get(self, name: str) -> Scanner | None:
        return self._scanners.get(name)

    def all(self) -> list[Scanner]:
        return list(self._scanners.values())

    def by_category(self, category: IndicatorCategory) -> list[Scanner]:
        return [s for s in self._scanners.values() if s.category is category]

    def __len__(self) -> int:
        return len(self._scanners)

    def __contains__(self, name: str) -> bool:
        return name in self._scanners

    async def _run_one(self, scanner: Scanner, context: ScanContext) -> ScannerResult:
        try:
            return await scanner.scan(context)
        except Exception as e:
            logger.warning(
                "scanner_failed",
                scanner=scanner.name,
                page_url=context.page_url,
                error=str(e),
                exc_info=True,
            )
            return scanner.error_result(e)

    async def run(self, scanners: Iterable[Scanner], context: ScanContext) -> list[ScannerResult]:
        return list(await asyncio.gather(*(self._run_one(s, context) for s in scanners)))

    async def run_all(self, context: ScanContext) -> list[ScannerResult]:
        """Run every scanner against ``context``.

        A scanner that raises yields a ``fail`` result instead of aborting
        the batch.
        """
        return await self.run(self.all(), context)

    async def run_category(self, category: IndicatorCategory, context: ScanContext) -> list[ScannerResult]:
        return await self.run(self.by_category(category), context)


def status_for(score: float, pass_at: float, warn_at: float) -> IndicatorStatus:
    if score >= pass_at:
        return IndicatorStatus.PASS
    if score >= warn_at:
        return IndicatorStatus.WARN
    return IndicatorStatus.FAIL


def preview(content: str | None, limit: int = 200) -> str | None:
    if content is None:
        return None
    return content[:limit] + ("..." if len(content) > limit else "")


def extract_meta_tags(soup: BeautifulSoup) -> dict[str, str]:
    """Map ``name``/``property`` of every <meta> tag to its content, plus ``title``."""
    tags: dict[str, str] = {}
    for meta in soup.find_all("meta"):
        key = meta.get("name") or meta.get("property")
        content = meta.get("content")
        if key and content is not None and key.lower() not in tags:
            tags[key.lower()] = content.strip()

    title_tag = soup.find("title")
    if title_tag:
        tags["title"] = title_tag.get_text(strip=True)
    return tags


def extract_json_ld(soup: BeautifulSoup) -> tuple[list[Any], int]:
    """Return the parsed JSON-LD blocks and how many failed to parse."""
    blocks: list[Any] = []
    invalid = 0
    for script in soup.find_all("script", type="application/ld+json"):
        content = script.string or script.get_text()
        if not content or not content.strip():
            continue
        try:
            blocks.append(json.loads(content))
        except json.JSONDecodeError:
            invalid += 1
    return blocks, invalid


def extract_robots_meta(soup: BeautifulSoup) -> dict[str, bool]:
    meta = extract_meta_tags(soup)
    robots = meta.get("robots", "").lower()
    ai = meta.get("robots-ai", "").lower()
    directives = {d.strip() for d in re.split(r"[,\s]+", f"{robots},{ai}") if d.strip()}
    return {
        "noindex": "noindex" in directives,
        "nofollow": "nofollow" in directives,
        "noai": "noai" in directives,
        "noimageai": "noimageai" in directives,
    }


@dataclass
class RobotsRules:
    user_agents: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    sitemaps: list[str] = field(default_factory=list)
    crawl_delay: float | None = None


def parse_robots_txt(content: str) -> RobotsRules:
    """Parse robots.txt into per-user-agent allow/disallow lists.

    Consecutive ``User-agent`` lines share the rule group that follows them.
    """
    rules = RobotsRules()
    current: list[str] = []
    in_agent_block = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        directive, value = (part.strip() for part in line.split(":", 1))
        directive = directive.lower()

        if directive == "user-agent":
            if not in_agent_block:
                current = []
            current.append(value)
            rules.user_agents.setdefault(value, {"allow": [], "disallow": []})
            in_agent_block = True
            continue

        in_agent_block = False
        if directive in ("allow", "disallow"):
            for agent in current:
                if value:
                    rules.user_agents[agent][directive].append(value)
        elif directive == "sitemap" and value:
            rules.sitemaps.append(value)
        elif directive == "crawl-delay" and re.fullmatch(r"\d+(\.\d+)?", value):
            rules.crawl_delay = float(value)

    return rules


def missing_fields(data: dict[str, Any], required: Iterable[str]) -> list[str]:
    return [f for f in required if f not in data or data[f] in (None, "")]


def load_json_object(content: str) -> tuple[dict[str, Any] | None, str | None]:
    """Parse ``content`` as a JSON object; returns (data, error message)."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        return None, str(e)
    if not isinstance(data, dict):
        return None, "Top-level JSON value must be an object"
    return data, None
