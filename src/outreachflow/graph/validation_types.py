"""Result types shared by the content validator and the editor session."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of :func:`outreachflow.graph.validation.verify`.

    Attributes:
        valid: True if the sequence may be saved.
        node_id: First offending node in traversal order (None if valid).
        message: What the operator has to fix.
    """

    valid: bool
    node_id: str | None = None
    message: str = ""

    @classmethod
    def ok(cls) -> VerifyResult:
        return cls(valid=True)

    @classmethod
    def offender(cls, node_id: str, message: str) -> VerifyResult:
        return cls(valid=False, node_id=node_id, message=message)


@dataclass
class ValidationCheck:
    """Result of a single validation check.

    Attributes:
        name: Identifier for the check.
        severity: "pass", "warn", or "fail".
        message: Human-readable description of the result.
        node_id: Node the check is about, if any.
    """

    name: str
    severity: Literal["pass", "warn", "fail"]
    message: str = ""
    node_id: str | None = None


@dataclass
class ValidationReport:
    """Aggregated results of validation checks.

    Attributes:
        checks: List of individual validation check results.
    """

    checks: list[ValidationCheck] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        """True if any check has severity 'fail'."""
        return any(c.severity == "fail" for c in self.checks)

    @property
    def has_warnings(self) -> bool:
        """True if any check has severity 'warn'."""
        return any(c.severity == "warn" for c in self.checks)

    def failures(self) -> list[ValidationCheck]:
        return [c for c in self.checks if c.severity == "fail"]

    def warnings(self) -> list[ValidationCheck]:
        return [c for c in self.checks if c.severity == "warn"]

    @property
    def summary(self) -> str:
        """Human-readable summary of all checks."""
        fails = self.failures()
        warns = self.warnings()
        passes = [c for c in self.checks if c.severity == "pass"]

        parts: list[str] = []
        if fails:
            parts.append(f"{len(fails)} failed")
        if warns:
            parts.append(f"{len(warns)} warnings")
        if passes:
            parts.append(f"{len(passes)} passed")
        return ", ".join(parts)
