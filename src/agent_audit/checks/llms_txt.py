"""Check for llms.txt file presence and structure."""

import re
from dataclasses import dataclass, field

from ..models import IndicatorCategory, IndicatorStatus, ScannerResult
from .base import ScanContext, Scanner, preview

LINK_LINE = re.compile(r"^-\s*\[(?P<title>[^\]]+)\]\((?P<url>[^)\s]+)\)(?::\s*(?P<description>.*))?$")

SUMMARY_RECOMMENDATION = "Add a blockquote summary (> ...) right after the title describing the site"


@dataclass
class LlmsTxtDocument:
    title: str | None = None
    summary: str | None = None
    sections: dict[str, int] = field(default_factory=dict)  # H2 name -> link count
    link_count: int = 0
    issues: list[str] = field(default_factory=list)

    @property
    def sections_with_links(self) -> int:
        return sum(1 for count in self.sections.values() if count > 0)

    @property
    def is_valid(self) -> bool:
        return bool(self.title) and (bool(self.summary) or self.sections_with_links > 0)


def parse_llms_txt(content: str) -> LlmsTxtDocument:
    """Parse an llms.txt file as described at https://llmstxt.org/.

    The expected shape is an H1 title, an optional ``>`` summary, free text,
    then H2 sections listing ``- [title](url): description`` links.
    """
    doc = LlmsTxtDocument()
    if not content.strip():
        doc.issues.append("File is empty")
        return doc

    current_section: str | None = None
    summary_lines: list[str] = []

    for number, raw_line in enumerate(content.splitlines(), 1):
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith("# "):
            if doc.title is None:
                doc.title = line[2:].strip()
            else:
                doc.issues.append(f"Line {number}: only one H1 title is allowed")
            continue

        if line.startswith("## "):
            current_section = line[3:].strip()
            doc.sections.setdefault(current_section, 0)
            continue

        if line.startswith(">") and current_section is None:
            summary_lines.append(line.lstrip(">").strip())
            continue

        if line.startswith("-") and current_section is not None:
            if LINK_LINE.match(line):
                doc.sections[current_section] += 1
                doc.link_count += 1
            else:
                doc.issues.append(f"Line {number}: malformed link, expected '- [title](url): description'")

    if summary_lines:
        doc.summary = " ".join(summary_lines).strip() or None

    if doc.title is None:
        doc.issues.insert(0, "Missing required H1 title (# Project name)")
    if doc.summary is None:
        doc.issues.append(SUMMARY_RECOMMENDATION)
    if doc.sections and doc.sections_with_links == 0:
        doc.issues.append("H2 sections contain no markdown links")

    return doc


async def check_llms_txt(scanner: Scanner, ctx: ScanContext) -> ScannerResult:
    """Check that /llms.txt exists and follows the llms.txt layout."""
    llms_txt_url = ctx.resources.url_for("/llms.txt")
    fetched = await ctx.resources.get("/llms.txt")

    if not fetched.found:
        return scanner.result(
            IndicatorStatus.FAIL,
            0.0,
            "No llms.txt file found",
            evidence={"status_code": fetched.status_code, "error": fetched.error},
            recommendation="Create /llms.txt with an H1 title, a short summary and sections linking to key pages. See llmstxt.org",
            checked_url=llms_txt_url,
        )

    doc = parse_llms_txt(fetched.html)
    evidence = {
        "title": doc.title,
        "summary": doc.summary,
        "sections": dict(doc.sections),
        "link_count": doc.link_count,
        "validation_issues": list(doc.issues),
        "content_preview": preview(fetched.html),
    }

    if not doc.is_valid:
        return scanner.result(
            IndicatorStatus.WARN,
            0.5,
            "llms.txt file found but has issues",
            evidence=evidence,
            recommendation="Fix the llms.txt structure: " + "; ".join(doc.issues[:3]),
            found=True,
            is_valid=False,
            checked_url=llms_txt_url,
        )

    return scanner.result(
        IndicatorStatus.PASS,
        1.0,
        f"Valid llms.txt with {doc.link_count} link(s) in {len(doc.sections)} section(s)",
        evidence=evidence,
        recommendation="; ".join(doc.issues) if doc.issues else None,
        found=True,
        is_valid=True,
        checked_url=llms_txt_url,
    )


LLMS_TXT = Scanner(
    name="llms_txt",
    category=IndicatorCategory.STANDARDS,
    weight=2.0,
    description="Presence and structure of /llms.txt for LLM consumers",
    check=check_llms_txt,
)
