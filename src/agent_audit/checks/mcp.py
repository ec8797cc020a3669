"""Check for a Model Context Protocol manifest at /.well-known/mcp.json."""

from typing import Any

from ..models import IndicatorCategory, IndicatorStatus, ScannerResult
from .base import ScanContext, Scanner, load_json_object, preview

MCP_PATH = "/.well-known/mcp.json"


def validate_mcp_config(data: dict[str, Any]) -> list[str]:
    issues = []

    if not data.get("version"):
        issues.append("Missing required field: version")

    if not isinstance(data.get("capabilities"), list):
        issues.append("Missing or invalid capabilities array")

    actions = data.get("actions")
    if actions is not None and not isinstance(actions, list):
        issues.append("actions must be an array")
    elif actions:
        for index, action in enumerate(actions):
            if not isinstance(action, dict):
                issues.append(f"Action {index} must be an object")
                continue
            for prop in ("name", "description", "parameters"):
                if not action.get(prop):
                    issues.append(f"Action {index} missing {prop}")

    auth = data.get("authentication")
    if auth and not (isinstance(auth, dict) and auth.get("type")):
        issues.append("Authentication specified but type is missing")

    server = data.get("server")
    if not server:
        issues.append("Missing server configuration")
    elif not (isinstance(server, dict) and server.get("url")):
        issues.append("Missing server URL")

    return issues


async def check_mcp(scanner: Scanner, ctx: ScanContext) -> ScannerResult:
    mcp_url = ctx.resources.url_for(MCP_PATH)
    fetched = await ctx.resources.get(MCP_PATH)

    if not fetched.found:
        return scanner.result(
            IndicatorStatus.FAIL,
            0.0,
            f"No MCP configuration found at {MCP_PATH}",
            evidence={"status_code": fetched.status_code, "error": fetched.error},
            recommendation=(
                f"Publish a Model Context Protocol configuration at {MCP_PATH} "
                "so AI agents can perform actions on your site"
            ),
            checked_url=mcp_url,
        )

    data, error = load_json_object(fetched.html)
    issues = [f"Invalid JSON format: {error}"] if data is None else validate_mcp_config(data)

    data = data or {}
    actions = data.get("actions") if isinstance(data.get("actions"), list) else []
    capabilities = data.get("capabilities") if isinstance(data.get("capabilities"), list) else []
    evidence = {
        "status_code": fetched.status_code,
        "capabilities": capabilities,
        "action_count": len(actions),
        "auth_required": bool(data.get("authentication")),
        "validation_issues": issues,
        "content_preview": preview(fetched.html),
    }

    if issues:
        return scanner.result(
            IndicatorStatus.WARN,
            0.5,
            "MCP configuration found but has validation issues",
            evidence=evidence,
            recommendation=f"Fix MCP configuration issues: {'; '.join(issues)}",
            found=True,
            checked_url=mcp_url,
        )

    return scanner.result(
        IndicatorStatus.PASS,
        1.0,
        f"Valid MCP configuration with {len(actions)} action(s) for AI agents",
        evidence=evidence,
        found=True,
        is_valid=True,
        checked_url=mcp_url,
    )


MCP = Scanner(
    name="mcp",
    category=IndicatorCategory.STANDARDS,
    weight=2.5,
    description="Model Context Protocol configuration enabling agent actions",
    check=check_mcp,
)
