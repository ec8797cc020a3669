"""Check agent manifest files: /agent.json and /.well-known/ai-agent.json."""

from typing import Any

from ..models import IndicatorCategory, IndicatorStatus, ScannerResult
from .base import ScanContext, Scanner, load_json_object, missing_fields, preview

ADVANCED_FEATURES = ("capabilities", "authentication", "privacy", "rateLimit")


def advanced_features(data: dict[str, Any]) -> list[str]:
    """Return which optional agent features are meaningfully declared."""
    present = []
    capabilities = data.get("capabilities")
    if isinstance(capabilities, (list, dict)) and capabilities:
        present.append("capabilities")
    auth = data.get("authentication")
    if isinstance(auth, dict) and auth.get("type"):
        present.append("authentication")
    privacy = data.get("privacy")
    if isinstance(privacy, dict) and privacy:
        present.append("privacy")
    rate_limit = data.get("rateLimit")
    if isinstance(rate_limit, dict) and rate_limit.get("requests"):
        present.append("rateLimit")
    return present


def manifest_warnings(data: dict[str, Any], recommended: tuple[str, ...]) -> list[str]:
    warnings = [f"Recommended field '{f}' is missing" for f in recommended if f not in data]

    if "capabilities" in data and not isinstance(data["capabilities"], (list, dict)):
        warnings.append("capabilities should be an array or object")
    if "contact" in data and not isinstance(data["contact"], dict):
        warnings.append("contact should be an object")
    auth = data.get("authentication")
    if auth is not None and not (isinstance(auth, dict) and auth.get("type")):
        warnings.append("authentication.type is required when authentication is specified")
    rate_limit = data.get("rateLimit")
    if isinstance(rate_limit, dict) and not (rate_limit.get("requests") and rate_limit.get("period")):
        warnings.append("rateLimit should specify both requests and period")
    api = data.get("api")
    if isinstance(api, dict) and "endpoints" in api and not isinstance(api["endpoints"], list):
        warnings.append("api.endpoints should be an array")
    return warnings


def _badly_typed(data: dict[str, Any], required: tuple[str, ...]) -> list[str]:
    return [f for f in required if f in data and data[f] not in (None, "") and not isinstance(data[f], str)]


async def _check_manifest(
    scanner: Scanner,
    ctx: ScanContext,
    path: str,
    required: tuple[str, ...],
    recommended: tuple[str, ...],
    absent_status: IndicatorStatus,
    absent_score: float,
) -> ScannerResult:
    url = ctx.resources.url_for(path)
    fetched = await ctx.resources.get(path)
    filename = path.lstrip("/")

    if not fetched.found:
        return scanner.result(
            absent_status,
            absent_score,
            f"No {filename} file found",
            evidence={"status_code": fetched.status_code, "error": fetched.error},
            recommendation=f"Publish {path} describing your site's name, purpose and agent capabilities",
            checked_url=url,
        )

    data, error = load_json_object(fetched.html)
    if data is None:
        return scanner.result(
            IndicatorStatus.FAIL,
            0.0,
            f"Invalid JSON in {filename}",
            evidence={"error": error, "content_preview": preview(fetched.html)},
            recommendation=f"Fix the JSON syntax errors in {path}",
            found=True,
            checked_url=url,
        )

    missing = missing_fields(data, required)
    wrong_type = _badly_typed(data, required)
    features = advanced_features(data)
    warnings = manifest_warnings(data, recommended)
    evidence = {
        "missing_fields": missing,
        "badly_typed_fields": wrong_type,
        "advanced_features": features,
        "warnings": warnings,
        "content": data,
    }

    if missing or wrong_type:
        problems = missing + [f"{f} (must be a string)" for f in wrong_type]
        return scanner.result(
            IndicatorStatus.WARN,
            0.6 if len(features) >= 2 else 0.5,
            f"{filename} found but missing required fields",
            evidence=evidence,
            recommendation=f"Add or fix the following fields in {path}: {', '.join(problems)}",
            found=True,
            checked_url=url,
        )

    comprehensive = len(features) >= 3
    return scanner.result(
        IndicatorStatus.PASS,
        1.0 if comprehensive else 0.8,
        f"Comprehensive {filename} configuration found" if comprehensive else f"Valid {filename} file found",
        evidence=evidence,
        recommendation=None if comprehensive else (
            "Declare capabilities, authentication, privacy and rateLimit to describe agent access fully"
        ),
        found=True,
        is_valid=True,
        checked_url=url,
    )


async def check_agent_json(scanner: Scanner, ctx: ScanContext) -> ScannerResult:
    return await _check_manifest(
        scanner, ctx, "/agent.json",
        required=("name", "description"),
        recommended=("version", "capabilities", "contact"),
        absent_status=IndicatorStatus.FAIL,
        absent_score=0.0,
    )


async def check_ai_agent_json(scanner: Scanner, ctx: ScanContext) -> ScannerResult:
    # Emerging standard, so a missing file only warns
    return await _check_manifest(
        scanner, ctx, "/.well-known/ai-agent.json",
        required=("version", "name", "description"),
        recommended=("capabilities", "privacy"),
        absent_status=IndicatorStatus.WARN,
        absent_score=0.3,
    )


AGENT_JSON = Scanner(
    name="agent_json",
    category=IndicatorCategory.STANDARDS,
    weight=1.5,
    description="Presence and validity of /agent.json",
    check=check_agent_json,
)

AI_AGENT_JSON = Scanner(
    name="ai_agent_json",
    category=IndicatorCategory.STANDARDS,
    weight=2.0,
    description="Presence and validity of /.well-known/ai-agent.json",
    check=check_ai_agent_json,
)
