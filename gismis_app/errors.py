"""
Exception hierarchy for the catalog aggregation engine.

Source errors (fetch failures and timeouts) are recovered at the aggregator
boundary and never reach callers of DataAggregator. Caller errors such as
bad arguments or broken configuration propagate normally.
"""

from typing import Optional


class GismisError(Exception):
    """Base class for all Gismis errors."""


class ConfigError(GismisError):
    """Raised when an environment setting cannot be parsed."""
    def __init__(self, name: str, value: str, reason: str):
        self.name = name
        self.value = value
        super().__init__(f"Invalid setting {name}={value!r}: {reason}")


class SourceError(GismisError):
    """An upstream catalog could not deliver a usable answer."""
    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(f"[{platform}] {message}")


class SourceFetchError(SourceError):
    """Raised by adapters when a request fails or its body cannot be decoded."""
    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(platform, message)


class SourceTimeoutError(SourceError):
    """Describes a branch that did not settle within the per-source timeout."""
    def __init__(self, platform: str, timeout: float):
        self.timeout = timeout
        super().__init__(platform, f"Request timeout after {timeout:.2f}s")
