"""Accumulated, non-fatal reconciliation findings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Diagnostic severity."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single finding reported back to the caller.

    Attributes:
        severity: ERROR means the result must not be treated as fully applied.
        summary: Short, stable description of the problem class.
        detail: Specifics (ids, remote error text).
    """

    severity: Severity
    summary: str
    detail: str = ""


class Diagnostics(list[Diagnostic]):
    """Ordered list of diagnostics with helpers for the common checks."""

    def add_error(self, summary: str, detail: str = "") -> None:
        logger.error(summary, extra={"detail": detail})
        self.append(Diagnostic(Severity.ERROR, summary, detail))

    def add_warning(self, summary: str, detail: str = "") -> None:
        logger.warning(summary, extra={"detail": detail})
        self.append(Diagnostic(Severity.WARNING, summary, detail))

    def errors(self) -> list[Diagnostic]:
        return [d for d in self if d.severity == Severity.ERROR]

    @property
    def has_error(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self)
