from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from yad2_checker.models import CycleReport


class CheckerError(Exception):
    """Base class for all errors raised by the checker."""


class TransportFault(CheckerError):
    """Upstream fetch failed: network error, timeout or unexpected payload.

    Suppliers return it inside a FetchResult instead of raising it.
    """

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class StoreFault(CheckerError):
    """The listing store is unavailable or corrupt."""


class CycleFailed(CheckerError):
    """A polling cycle was aborted; `report` holds what was done before."""

    def __init__(self, report: CycleReport, message: str = "cycle aborted"):
        super().__init__(message)
        self.report = report


class ConfigError(CheckerError):
    """Configuration is missing or malformed."""
