"""Exception hierarchy shared by the filter, reconciler, comparator and collaborators."""

from __future__ import annotations


class ChartSyncError(RuntimeError):
    """Base class for all chartsync failures."""


class ConfigError(ChartSyncError):
    """Raised when package or repository configuration is invalid."""


class EmptyUpstreamError(ChartSyncError):
    """Raised when upstream has no versions left after prerelease exclusion."""


class MalformedVersionError(ChartSyncError, ValueError):
    """Raised when a single version string cannot be parsed."""

    def __init__(self, raw: str, reason: str = ""):
        self.raw = raw
        detail = f": {reason}" if reason else ""
        super().__init__(f"malformed version {raw!r}{detail}")


class FeaturedConflictError(ChartSyncError):
    """Raised when stored charts disagree on the featured annotation value."""

    def __init__(self, first: str, second: str):
        self.values = (first, second)
        super().__init__(f"found two different values for featured annotation {first!r} and {second!r}")


class ReadError(ChartSyncError):
    """Raised when a stored artifact cannot be read or decoded."""


class WriteError(ChartSyncError):
    """Raised when an artifact cannot be persisted."""


class FetchError(ChartSyncError):
    """Raised when an upstream index or archive cannot be retrieved."""


class AllPackagesFailedError(ChartSyncError):
    """Raised when every package that needed an update was skipped."""

    def __init__(self, skipped):
        self.skipped = dict(skipped)
        super().__init__(f"all packages skipped: {', '.join(sorted(self.skipped))}")
