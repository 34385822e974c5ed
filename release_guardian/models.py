"""
Core data models for release guardian.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import FrozenSet, Optional, Tuple


class Mode(str, Enum):
    """How vulnerability findings are acted upon."""

    BLOCK = "block"
    WARN = "warn"
    OFF = "off"


VALID_MODES = tuple(mode.value for mode in Mode)


class Severity(IntEnum):
    """Closed severity scale used by npm audit."""

    LOW = 1
    MODERATE = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_label(cls, label: Optional[str]) -> "Severity":
        """Map an audit severity label to a Severity.

        Missing or unrecognised labels (including npm's ``info``) fall back
        to ``LOW``.
        """
        if isinstance(label, str):
            try:
                return cls[label.strip().upper()]
            except KeyError:
                pass
        return cls.LOW

    @property
    def label(self) -> str:
        return self.name.lower()


class Action(str, Enum):
    """Action taken for a package after classification."""

    ALLOW = "allow"
    REPORT = "report"
    WARN = "warn"
    BLOCK = "block"


class OutcomeStatus(str, Enum):
    """Final status of one requested package."""

    INSTALLED = "installed"
    EXCLUDED = "excluded"
    BLOCKED = "blocked"
    RESOLVED = "resolved"
    CLEAN = "clean"
    FAILED = "failed"


@dataclass(frozen=True)
class Policy:
    """Immutable policy for one run."""

    min_age_days: float = 0
    mode: Mode = Mode.BLOCK
    excluded: FrozenSet[str] = frozenset()
    exact_install: bool = False
    fail_fast: bool = False

    def is_excluded(self, package: str) -> bool:
        return package in self.excluded


@dataclass(frozen=True)
class PackageVersion:
    """A package version with its publish date."""

    name: str
    version: str
    released_at: datetime


@dataclass(frozen=True)
class ResolvedVersion:
    """The version chosen for install."""

    name: str
    version: str
    age_days: int
    published_at: datetime
    latest: Optional[str] = None

    @property
    def spec(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(frozen=True)
class VulnerabilityIssue:
    """One advisory (or referenced vulnerable dependency) behind a finding."""

    title: Optional[str] = None
    url: Optional[str] = None
    severity: Optional[Severity] = None
    source: Optional[str] = None


@dataclass(frozen=True)
class VulnerabilityFinding:
    """Audit report entries matching one package."""

    name: str
    severity: Severity
    version: Optional[str] = None
    issues: Tuple[VulnerabilityIssue, ...] = ()

    @property
    def highest_severity(self) -> Severity:
        declared = [issue.severity for issue in self.issues if issue.severity is not None]
        return max([self.severity, *declared])


@dataclass(frozen=True)
class Decision:
    """Classifier verdict for a package."""

    action: Action
    finding: Optional[VulnerabilityFinding] = None

    @property
    def reported(self) -> bool:
        return self.action is not Action.ALLOW

    @property
    def blocked(self) -> bool:
        return self.action is Action.BLOCK


@dataclass
class PackageOutcome:
    """Result of processing one specifier."""

    specifier: str
    name: str
    status: OutcomeStatus
    resolved: Optional[ResolvedVersion] = None
    decision: Optional[Decision] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status not in (OutcomeStatus.FAILED, OutcomeStatus.BLOCKED)

    def as_row(self) -> dict:
        finding = self.decision.finding if self.decision else None
        return {
            "specifier": self.specifier,
            "package": self.name,
            "status": self.status.value,
            "version": self.resolved.version if self.resolved else None,
            "age_days": self.resolved.age_days if self.resolved else None,
            "action": self.decision.action.value if self.decision else None,
            "severity": finding.highest_severity.label if finding else None,
            "error": self.error,
        }
