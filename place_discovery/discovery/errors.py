from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for errors raised by the discovery core."""


class InvalidFilterSpec(DiscoveryError, ValueError):
    """A filter value was rejected before any search or pool work began."""

    def __init__(self, message: str, errors: list[dict] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class DiscoveryFailed(DiscoveryError):
    """Every search attempt failed or the attempt budget produced nothing."""

    def __init__(
        self,
        attempts: int,
        last_error: BaseException | None = None,
        radii: list[int] | None = None,
    ) -> None:
        reason = f"{type(last_error).__name__}: {last_error}" if last_error else "no results"
        super().__init__(f"Discovery failed after {attempts} attempt(s) ({reason})")
        self.attempts = attempts
        self.last_error = last_error
        self.radii = radii or []


class CacheCorruption(DiscoveryError):
    """A persisted cache snapshot could not be decoded."""
