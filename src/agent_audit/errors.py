"""Exceptions raised by the diagnostics engine."""


class AuditError(Exception):
    """Base class for all diagnostics errors."""


class PolicyError(AuditError):
    """The request is not allowed to run (unknown site, bad URL, ...)."""


class SiteNotFoundError(PolicyError):
    def __init__(self, site_id: str):
        super().__init__("Site not found or access denied")
        self.site_id = site_id


class InvalidURLError(PolicyError):
    pass


class EntitlementError(PolicyError):
    """The caller's plan does not include the requested feature."""


class CrawlError(AuditError):
    """No page of the site could be fetched."""


class InvalidTransitionError(AuditError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Illegal audit transition: {current} -> {target}")
        self.current = current
        self.target = target
