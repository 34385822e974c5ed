"""
Classification of audit report findings.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .models import Action, Decision, Mode, Severity, VulnerabilityFinding, VulnerabilityIssue
from .npm_semver import InvalidRangeError, satisfies


logger = logging.getLogger(__name__)


def _parse_issue(entry) -> Optional[VulnerabilityIssue]:
    """Build an issue from a ``via`` entry.

    Objects carry advisory details; bare strings name another vulnerable
    package and declare no severity.
    """
    if isinstance(entry, str):
        return VulnerabilityIssue(source=entry)
    if not isinstance(entry, dict):
        return None
    severity = entry.get("severity")
    return VulnerabilityIssue(
        title=entry.get("title"),
        url=entry.get("url"),
        severity=Severity.from_label(severity) if severity is not None else None,
        source=str(entry["source"]) if entry.get("source") is not None else entry.get("name"),
    )


def _parse_issues(via) -> List[VulnerabilityIssue]:
    if via is None:
        return []
    if not isinstance(via, list):
        via = [via]
    issues = [_parse_issue(entry) for entry in via]
    return [issue for issue in issues if issue is not None]


def _finding_from_entries(name: str, version: Optional[str], entries: Iterable[Dict]) -> Optional[VulnerabilityFinding]:
    entries = list(entries)
    if not entries:
        return None
    severity = max(Severity.from_label(entry.get("severity")) for entry in entries)
    issues: List[VulnerabilityIssue] = []
    for entry in entries:
        issues.extend(_parse_issues(entry.get("via")))
        if entry.get("title") or entry.get("url"):
            issues.append(
                VulnerabilityIssue(
                    title=entry.get("title"),
                    url=entry.get("url"),
                    severity=Severity.from_label(entry.get("severity")),
                )
            )
    return VulnerabilityFinding(name=name, severity=severity, version=version, issues=tuple(issues))


def _matches_version(entry, version: str) -> bool:
    """Whether a finding applies to ``version``; entries without a version or range always do."""
    entry_version = entry.get("version")
    if isinstance(entry_version, str) and entry_version:
        return entry_version == version
    entry_range = entry.get("range")
    if isinstance(entry_range, str) and entry_range:
        try:
            return satisfies(version, entry_range)
        except InvalidRangeError:
            return True
    return True


def _filter_flat_report(entries: List[Dict], name: str, version: Optional[str]) -> List[Dict]:
    records = [entry for entry in entries if isinstance(entry, dict)]
    if not records:
        return []
    df = pd.DataFrame({"entry": records, "name": [entry.get("name") for entry in records]})
    df["version"] = [entry.get("version") for entry in records]
    df["range"] = [entry.get("range") for entry in records]

    matched = df[df["name"] == name]
    if version is not None and len(matched) > 0:
        mask = matched.apply(lambda row: _matches_version(row, version), axis=1)
        matched = matched[mask.astype(bool)]
    return list(matched["entry"])


def classify(report: Dict, name: str, version: Optional[str] = None) -> Optional[VulnerabilityFinding]:
    """Find the vulnerabilities an audit report lists for one package.

    ``report["vulnerabilities"]`` may be npm's mapping of package name to
    finding, or a flat list of findings that is filtered by name and
    version.

    Returns:
        The merged finding, or None when the package is not listed
    """
    vulnerabilities = (report or {}).get("vulnerabilities")
    if not vulnerabilities:
        return None

    if isinstance(vulnerabilities, dict):
        entry = vulnerabilities.get(name)
        if not isinstance(entry, dict):
            # Some reports key findings by advisory id rather than by name.
            entries = [
                v for v in vulnerabilities.values()
                if isinstance(v, dict) and v.get("name") == name
            ]
        else:
            entries = [entry]
        if version is not None:
            entries = [e for e in entries if _matches_version(e, version)]
        return _finding_from_entries(name, version, entries)

    if isinstance(vulnerabilities, list):
        return _finding_from_entries(name, version, _filter_flat_report(vulnerabilities, name, version))

    logger.warning("Unrecognised vulnerabilities section of type %s", type(vulnerabilities).__name__)
    return None


def decide_action(mode: Mode, finding: Optional[VulnerabilityFinding]) -> Decision:
    """Apply the mode's action table to a finding."""
    if finding is None or mode is Mode.OFF:
        return Decision(Action.ALLOW, finding)

    high = finding.highest_severity >= Severity.HIGH
    if mode is Mode.BLOCK:
        return Decision(Action.BLOCK if high else Action.REPORT, finding)
    return Decision(Action.WARN if high else Action.REPORT, finding)


def log_decision(decision: Decision, spec: str) -> None:
    """Report a decision the way the CLI shows it."""
    finding = decision.finding
    if finding is None:
        logger.info("No vulnerabilities found for %s", spec)
        return
    if not decision.reported:
        return

    logger.error(
        "Vulnerabilities found in %s (highest severity: %s):",
        spec,
        finding.highest_severity.label,
    )
    for issue in finding.issues:
        severity = issue.severity.label if issue.severity else finding.severity.label
        title = issue.title or (f"via {issue.source}" if issue.source else "Security issue")
        if issue.url:
            logger.error(" - %s (%s) -> %s <%s>", finding.name, severity, title, issue.url)
        else:
            logger.error(" - %s (%s) -> %s", finding.name, severity, title)

    if decision.action is Action.WARN:
        logger.warning("Installation will proceed due to 'warn' mode.")
    elif decision.action is Action.BLOCK:
        logger.error("%s is blocked by policy.", spec)
