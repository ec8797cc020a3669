"""Data models for agent-readiness audits."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import InvalidTransitionError


class IndicatorStatus(Enum):
    """Outcome of a single indicator check."""
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    NOT_APPLICABLE = "not_applicable"


class IndicatorCategory(Enum):
    """Scanner-intrinsic grouping of an indicator."""
    STANDARDS = "standards"
    SEO = "seo"
    STRUCTURED_DATA = "structured_data"


class ScoreCategory(Enum):
    """The four buckets the overall score is built from."""
    DISCOVERY = "discovery"
    UNDERSTANDING = "understanding"
    ACTIONS = "actions"
    TRUST = "trust"


class ApplicabilityStatus(Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"
    NOT_APPLICABLE = "not_applicable"


class AuditStatus(Enum):
    """Lifecycle of one audit run."""
    PENDING = "pending"
    CRAWLING = "crawling"
    SCANNING = "scanning"
    SCORING = "scoring"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not AUDIT_TRANSITIONS[self]

    def can_transition_to(self, target: AuditStatus) -> bool:
        return target in AUDIT_TRANSITIONS[self]


AUDIT_TRANSITIONS: dict[AuditStatus, frozenset[AuditStatus]] = {
    AuditStatus.PENDING: frozenset({AuditStatus.CRAWLING, AuditStatus.FAILED}),
    AuditStatus.CRAWLING: frozenset({AuditStatus.SCANNING, AuditStatus.FAILED}),
    AuditStatus.SCANNING: frozenset({AuditStatus.SCORING, AuditStatus.FAILED}),
    AuditStatus.SCORING: frozenset({AuditStatus.COMPLETED, AuditStatus.FAILED}),
    AuditStatus.COMPLETED: frozenset(),
    AuditStatus.FAILED: frozenset(),
}


def normalize_score(value: float) -> float:
    """Bring a score into [0, 1].

    Anything above 1 is treated as the old 0-10 scale.
    """
    value = float(value)
    if value > 1:
        value = value / 10
    return min(1.0, max(0.0, value))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FetchResult:
    """One HTTP GET, successful or not."""
    url: str
    final_url: str
    status_code: int  # 0 on transport failure
    headers: dict[str, str] = field(default_factory=dict)
    html: str = ""
    load_time_ms: int = 0
    title: str | None = None
    meta_description: str | None = None
    word_count: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True when the request reached the server, whatever the status."""
        return self.error is None

    @property
    def found(self) -> bool:
        return self.ok and 200 <= self.status_code < 300

    @property
    def is_html_page(self) -> bool:
        return self.ok and self.status_code == 200 and bool(self.html)


@dataclass(frozen=True)
class PageMetadata:
    title: str | None = None
    meta_description: str | None = None
    status_code: int | None = None
    load_time_ms: int | None = None
    word_count: int | None = None

    @classmethod
    def from_fetch(cls, page: FetchResult) -> PageMetadata:
        return cls(
            title=page.title,
            meta_description=page.meta_description,
            status_code=page.status_code,
            load_time_ms=page.load_time_ms,
            word_count=page.word_count,
        )


@dataclass(frozen=True)
class Applicability:
    status: ApplicabilityStatus
    reason: str
    included_in_category_math: bool

    def __post_init__(self):
        if self.status is ApplicabilityStatus.NOT_APPLICABLE and self.included_in_category_math:
            raise ValueError("not_applicable indicators cannot count toward category math")

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason,
            "included_in_category_math": self.included_in_category_math,
        }


@dataclass(frozen=True)
class ScannerResult:
    """Result of one indicator on one page."""
    indicator_name: str
    category: IndicatorCategory
    weight: float
    status: IndicatorStatus
    score: float  # always 0-1 once constructed
    message: str
    recommendation: str | None = None
    evidence: dict[str, Any] = field(default_factory=dict)
    found: bool = False
    is_valid: bool = False
    checked_url: str | None = None
    applicability: Applicability | None = None

    def __post_init__(self):
        object.__setattr__(self, "score", normalize_score(self.score))

    @property
    def counted(self) -> bool:
        return self.applicability is not None and self.applicability.included_in_category_math

    def to_dict(self) -> dict[str, Any]:
        evidence = dict(self.evidence)
        evidence["found"] = self.found
        evidence["is_valid"] = self.is_valid
        evidence["checked_url"] = self.checked_url
        return {
            "name": self.indicator_name,
            "category": self.category.value,
            "weight": self.weight,
            "status": self.status.value,
            "score": self.score,
            "message": self.message,
            "recommendation": self.recommendation,
            "evidence": evidence,
            "applicability": self.applicability.to_dict() if self.applicability else None,
        }


@dataclass(frozen=True)
class CategoryScore:
    category: ScoreCategory
    score: float
    indicator_scores: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "indicator_scores": dict(self.indicator_scores)}


@dataclass(frozen=True)
class SiteProfileResult:
    profile: str
    confidence: float
    method: str  # "heuristic" or "declared"
    signals: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile": self.profile,
            "confidence": self.confidence,
            "method": self.method,
            "signals": list(self.signals),
        }


@dataclass(frozen=True)
class OverallScore:
    raw_0_1: float
    score_0_100: int

    def to_dict(self) -> dict[str, Any]:
        return {"raw_0_1": self.raw_0_1, "score_0_100": self.score_0_100}


def overall_score(
    categories: dict[ScoreCategory, CategoryScore],
    weights: dict[ScoreCategory, float],
) -> OverallScore:
    raw = sum(weights[c] * categories[c].score for c in ScoreCategory)
    return OverallScore(raw_0_1=round(raw, 6), score_0_100=round(100 * raw))


@dataclass(frozen=True)
class ReportSummary:
    """Human-facing digest of an audit report."""
    total_indicators: int
    passed: int
    warnings: int
    failed: int
    not_applicable: int
    readiness: str
    access_intent: str
    critical_issues: tuple[str, ...] = ()
    top_recommendations: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_indicators": self.total_indicators,
            "passed": self.passed,
            "warnings": self.warnings,
            "failed": self.failed,
            "not_applicable": self.not_applicable,
            "readiness": self.readiness,
            "access_intent": self.access_intent,
            "critical_issues": list(self.critical_issues),
            "top_recommendations": list(self.top_recommendations),
        }


@dataclass(frozen=True)
class AuditReport:
    """Scored outcome of one audit. Never mutated; a new audit builds a new one."""
    site_url: str
    scan_date: str
    profile_detection: SiteProfileResult
    categories: dict[ScoreCategory, CategoryScore]
    indicators: dict[str, ScannerResult]
    weights: dict[ScoreCategory, float]
    overall: OverallScore
    summary: ReportSummary

    def recompute_overall(self) -> OverallScore:
        """Rebuild the overall score from the stored categories and weights."""
        return overall_score(self.categories, self.weights)

    def to_dict(self) -> dict[str, Any]:
        return {
            "site": {
                "url": self.site_url,
                "scan_date": self.scan_date,
                "profile": self.profile_detection.profile,
                "profile_detection": self.profile_detection.to_dict(),
            },
            "categories": {c.value: self.categories[c].to_dict() for c in ScoreCategory},
            "indicators": {name: r.to_dict() for name, r in self.indicators.items()},
            "weights": {c.value: self.weights[c] for c in ScoreCategory},
            "overall": self.overall.to_dict(),
            "summary": self.summary.to_dict(),
        }


@dataclass
class Audit:
    """One orchestrated run. Only the diagnostics service touches its state."""
    id: str
    owner: str | None
    site_id: str | None
    site_url: str
    status: AuditStatus = AuditStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    error_message: str | None = None
    cached: bool = False

    def transition_to(self, target: AuditStatus, error_message: str | None = None) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(self.status.value, target.value)
        self.status = target
        if target is AuditStatus.FAILED:
            self.error_message = error_message
        if target.is_terminal:
            self.completed_at = utcnow()


@dataclass
class DiagnosticResult:
    """What callers of the diagnostics service get back."""
    audit_id: str | None
    status: AuditStatus
    report: AuditReport | None = None
    error: str | None = None
    duration_ms: int = 0
    cached: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is AuditStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "audit_id": self.audit_id,
            "status": self.status.value,
            "report": self.report.to_dict() if self.report else None,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "cached": self.cached,
        }
