"""agent-audit - score how ready a website is for AI agents."""

__version__ = "0.3.0"
