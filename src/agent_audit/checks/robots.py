"""Check robots.txt presence and derive the site's AI access intent."""

from ..models import IndicatorCategory, IndicatorStatus, ScannerResult
from .base import RobotsRules, ScanContext, Scanner, extract_robots_meta, parse_robots_txt, preview

AI_USER_AGENTS = ("GPTBot", "ChatGPT-User", "CCBot", "anthropic-ai", "Claude-Web")


def ai_agent_rules(rules: RobotsRules) -> dict[str, list[str]]:
    """Disallow rules per AI crawler that has its own group in robots.txt."""
    wanted = {a.lower(): a for a in AI_USER_AGENTS}
    found: dict[str, list[str]] = {}
    for agent, group in rules.user_agents.items():
        if agent.lower() in wanted:
            found[wanted[agent.lower()]] = list(group["disallow"])
    return found


def access_intent(rules: RobotsRules | None, meta: dict[str, bool] | None) -> str:
    """Classify the site's stance toward AI crawlers as allow, partial or block.

    Any group addressed to a known AI crawler counts as an explicit AI policy
    and yields ``block``, as do the ``noai``/``noimageai`` meta directives.
    """
    meta = meta or {}
    if (rules and ai_agent_rules(rules)) or meta.get("noai") or meta.get("noimageai"):
        return "block"

    wildcard = rules.user_agents.get("*", {}).get("disallow", []) if rules else []
    if wildcard or meta.get("noindex") or meta.get("nofollow"):
        return "partial"
    return "allow"


async def check_robots_txt(scanner: Scanner, ctx: ScanContext) -> ScannerResult:
    """Binary presence check on /robots.txt.

    AI directives only feed the ``access_intent`` evidence; they do not move
    the score.
    """
    robots_url = ctx.resources.url_for("/robots.txt")
    fetched = await ctx.resources.get("/robots.txt")
    found = fetched.status_code == 200 and bool(fetched.html.strip())

    rules = parse_robots_txt(fetched.html) if found else None
    meta = extract_robots_meta(ctx.soup) if ctx.soup is not None else None
    intent = access_intent(rules, meta)
    ai_rules = ai_agent_rules(rules) if rules else {}

    evidence = {
        "status_code": fetched.status_code,
        "access_intent": intent,
        "ai_user_agents": sorted(ai_rules),
        "ai_agent_disallows": ai_rules,
        "has_ai_directives": bool(ai_rules) or bool(meta and (meta["noai"] or meta["noimageai"])),
        "sitemaps": list(rules.sitemaps) if rules else [],
        "user_agents": sorted(rules.user_agents) if rules else [],
        "robots_meta": meta,
        "content_preview": preview(fetched.html) if found else None,
    }

    recommendations = []
    if not found:
        recommendations.append("Create a robots.txt file to tell crawlers and AI agents what they may access")
    elif not ai_rules:
        recommendations.append("Add explicit groups for AI crawlers (e.g. User-agent: GPTBot) to state your intent")
    if found and not rules.sitemaps:
        recommendations.append("Reference your XML sitemap in robots.txt")

    return scanner.result(
        IndicatorStatus.PASS if found else IndicatorStatus.FAIL,
        1.0 if found else 0.0,
        f"robots.txt found (access intent: {intent})" if found else f"No robots.txt file found (access intent: {intent})",
        evidence=evidence,
        recommendation=". ".join(recommendations) or None,
        found=found,
        is_valid=found,
        checked_url=robots_url,
    )


ROBOTS_TXT = Scanner(
    name="robots_txt",
    category=IndicatorCategory.STANDARDS,
    weight=0.0,
    description="Presence of robots.txt and AI crawler access intent",
    check=check_robots_txt,
)
