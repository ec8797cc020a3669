"""Fold page-level scanner results into a scored audit report."""

from __future__ import annotations

from statistics import fmean
from typing import Iterable, Mapping

from .applicability import CATEGORY_MAPPING, get_applicability
from .models import (
    Applicability,
    ApplicabilityStatus,
    AuditReport,
    CategoryScore,
    IndicatorStatus,
    ReportSummary,
    ScannerResult,
    ScoreCategory,
    overall_score,
    utcnow,
)
from .profile import detect_profile

DEFAULT_WEIGHTS: dict[ScoreCategory, float] = {
    ScoreCategory.DISCOVERY: 0.30,
    ScoreCategory.UNDERSTANDING: 0.30,
    ScoreCategory.ACTIONS: 0.25,
    ScoreCategory.TRUST: 0.15,
}

# Lower is worse
STATUS_RANK = {
    IndicatorStatus.FAIL: 0,
    IndicatorStatus.WARN: 1,
    IndicatorStatus.PASS: 2,
}

READINESS_LEVELS = ((90, "excellent"), (70, "good"), (50, "needs_improvement"))

MAX_SUMMARY_ITEMS = 5
CRITICAL_WEIGHT = 2.0

WeightsArg = Mapping[ScoreCategory | str, float]


def resolve_weights(weights: WeightsArg | None = None) -> dict[ScoreCategory, float]:
    """Merge custom category weights over :data:`DEFAULT_WEIGHTS`."""
    merged = dict(DEFAULT_WEIGHTS)
    for key, value in (weights or {}).items():
        merged[ScoreCategory(key)] = float(value)
    return merged


def merge_indicator(results: list[tuple[str, ScannerResult]]) -> ScannerResult:
    """Merge one indicator's results across pages.

    ``results`` must be ordered by page URL. Pages that reported
    ``not_applicable`` are ignored unless every page did. The score is the
    mean over the remaining pages and the status is the worst among them;
    message, evidence and recommendation come from the first of them.
    """
    contributing = [(url, r) for url, r in results if r.status is not IndicatorStatus.NOT_APPLICABLE]
    if not contributing:
        return results[0][1]

    first = contributing[0][1]
    if len(contributing) == 1:
        return first

    evidence = dict(first.evidence)
    evidence["page_scores"] = {url: r.score for url, r in contributing}

    return ScannerResult(
        indicator_name=first.indicator_name,
        category=first.category,
        weight=first.weight,
        status=min((r.status for _, r in contributing), key=STATUS_RANK.__getitem__),
        score=round(fmean(r.score for _, r in contributing), 6),
        message=first.message,
        recommendation=first.recommendation,
        evidence=evidence,
        found=first.found,
        is_valid=all(r.is_valid for _, r in contributing),
        checked_url=first.checked_url,
    )


def _with_applicability(result: ScannerResult, applicability: Applicability) -> ScannerResult:
    return ScannerResult(
        indicator_name=result.indicator_name,
        category=result.category,
        weight=result.weight,
        status=result.status,
        score=result.score,
        message=result.message,
        recommendation=result.recommendation,
        evidence=result.evidence,
        found=result.found,
        is_valid=result.is_valid,
        checked_url=result.checked_url,
        applicability=applicability,
    )


def attach_applicability(result: ScannerResult, profile: str) -> ScannerResult:
    if result.status is IndicatorStatus.NOT_APPLICABLE:
        applicability = Applicability(
            status=ApplicabilityStatus.NOT_APPLICABLE,
            reason=f"Scanner reported not applicable: {result.message}",
            included_in_category_math=False,
        )
    else:
        applicability = get_applicability(result.indicator_name, profile)
    return _with_applicability(result, applicability)


def category_scores(indicators: Mapping[str, ScannerResult]) -> dict[ScoreCategory, CategoryScore]:
    """Mean score of counted indicators per category, 0 when none count."""
    categories = {}
    for category in ScoreCategory:
        members = [indicators[name] for name in CATEGORY_MAPPING[category] if name in indicators]
        counted = [r.score for r in members if r.counted]
        categories[category] = CategoryScore(
            category=category,
            score=round(fmean(counted), 6) if counted else 0.0,
            indicator_scores={r.indicator_name: r.score for r in members},
        )
    return categories


def readiness_level(score_0_100: int) -> str:
    for threshold, level in READINESS_LEVELS:
        if score_0_100 >= threshold:
            return level
    return "poor"


def _by_priority(result: ScannerResult) -> tuple[float, str]:
    return -result.weight, result.indicator_name


def build_summary(indicators: Mapping[str, ScannerResult], score_0_100: int) -> ReportSummary:
    results = list(indicators.values())

    def count(status: IndicatorStatus) -> int:
        return sum(1 for r in results if r.status is status)

    critical = sorted(
        (r for r in results if r.status is IndicatorStatus.FAIL and r.weight >= CRITICAL_WEIGHT),
        key=_by_priority,
    )
    recommended = sorted(
        (r for r in results if r.recommendation and r.status in (IndicatorStatus.FAIL, IndicatorStatus.WARN)),
        key=_by_priority,
    )
    robots = indicators.get("robots_txt")

    return ReportSummary(
        total_indicators=len(results),
        passed=count(IndicatorStatus.PASS),
        warnings=count(IndicatorStatus.WARN),
        failed=count(IndicatorStatus.FAIL),
        not_applicable=count(IndicatorStatus.NOT_APPLICABLE),
        readiness=readiness_level(score_0_100),
        access_intent=robots.evidence.get("access_intent", "unknown") if robots else "unknown",
        critical_issues=tuple(f"{r.indicator_name}: {r.message}" for r in critical[:MAX_SUMMARY_ITEMS]),
        top_recommendations=tuple(r.recommendation for r in recommended[:MAX_SUMMARY_ITEMS]),
    )


def aggregate(
    site_url: str,
    page_results: Mapping[str, Iterable[ScannerResult]],
    declared_profile: str | None = None,
    weights: WeightsArg | None = None,
    scan_date: str | None = None,
) -> AuditReport:
    """Build the audit report for one site.

    The result depends only on the contents of ``page_results``, never on
    its iteration order; pages are processed in sorted URL order.

    Args:
        site_url: Normalised site URL
        page_results: Scanner results keyed by page URL
        declared_profile: Profile stated by the site owner, skips detection
        weights: Category weight overrides, merged over the defaults
        scan_date: Report date, today's UTC date when omitted

    Returns:
        Immutable AuditReport
    """
    page_urls = sorted(page_results)
    by_name: dict[str, list[tuple[str, ScannerResult]]] = {}
    flattened: list[ScannerResult] = []

    for url in page_urls:
        for result in sorted(page_results[url], key=lambda r: r.indicator_name):
            flattened.append(result)
            pages = by_name.setdefault(result.indicator_name, [])
            if not pages or pages[-1][0] != url:
                pages.append((url, result))

    profile_detection = detect_profile(flattened, page_urls, declared_profile)

    indicators = {
        name: attach_applicability(merge_indicator(by_name[name]), profile_detection.profile)
        for name in sorted(by_name)
    }

    categories = category_scores(indicators)
    resolved_weights = resolve_weights(weights)
    overall = overall_score(categories, resolved_weights)

    return AuditReport(
        site_url=site_url,
        scan_date=scan_date or utcnow().date().isoformat(),
        profile_detection=profile_detection,
        categories=categories,
        indicators=indicators,
        weights=resolved_weights,
        overall=overall,
        summary=build_summary(indicators, overall.score_0_100),
    )
