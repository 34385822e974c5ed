"""
Per-package policy enforcement.
"""

from __future__ import annotations

import logging
from typing import Collection, Dict, Iterable, List, Optional

from .audit import classify, decide_action, log_decision
from .config import parse_mode
from .exceptions import PackageManagerError, ResolutionError
from .interfaces import MetadataSource, PackageManager
from .models import Decision, OutcomeStatus, PackageOutcome, Policy
from .resolver import VersionResolver
from .specifier import split_package_spec


logger = logging.getLogger(__name__)


class PolicyOrchestrator:
    """Resolve, install and screen packages one at a time.

    Packages are handled strictly in the order given. Each package's
    install, audit and any compensating uninstall finish before the next
    package is resolved. A failed package does not stop the batch unless
    the policy asks to fail fast.
    """

    def __init__(
        self,
        policy: Policy,
        registry: MetadataSource,
        package_manager: PackageManager,
        resolver: Optional[VersionResolver] = None,
    ) -> None:
        self.policy = policy
        self.registry = registry
        self.package_manager = package_manager
        self.resolver = resolver or VersionResolver(policy)

    def validate_policy(self) -> None:
        """Raise InvalidModeError unless the policy mode is known."""
        parse_mode(self.policy.mode)

    def process(
        self,
        specifiers: Iterable[str],
        dev: bool = False,
        exact: bool = False,
        dry_run: bool = False,
        dev_packages: Collection[str] = (),
    ) -> List[PackageOutcome]:
        """Process a batch of specifiers.

        Args:
            specifiers: Package specifiers, processed in order
            dev: Install every package as a devDependency
            exact: Pin exact versions in package.json
            dry_run: Resolve only; never invoke the package manager
            dev_packages: Names installed as devDependencies even when
                ``dev`` is False

        Raises:
            InvalidModeError: Before any package is touched, if the policy
                mode is invalid
        """
        self.validate_policy()

        outcomes = []
        for spec in specifiers:
            name, _ = split_package_spec(spec)
            outcome = self.process_one(
                spec, dev=dev or name in dev_packages, exact=exact, dry_run=dry_run
            )
            outcomes.append(outcome)
            if not outcome.ok and self.policy.fail_fast:
                logger.error("Stopping after %s (fail fast)", spec)
                break
        return outcomes

    def process_one(
        self, spec: str, dev: bool = False, exact: bool = False, dry_run: bool = False
    ) -> PackageOutcome:
        name, version_range = split_package_spec(spec)
        exact = exact or self.policy.exact_install

        if self.policy.is_excluded(name):
            return self._install_excluded(spec, name, dev, exact, dry_run)

        try:
            metadata = self.registry.fetch_package_metadata(name)
            resolved = self.resolver.resolve(name, version_range, metadata)
        except ResolutionError as e:
            logger.error("%s", e)
            return PackageOutcome(spec, name, OutcomeStatus.FAILED, error=str(e))

        if dry_run:
            logger.info(
                "%s resolves to %s (published %s days ago)",
                spec,
                resolved.spec,
                resolved.age_days,
            )
            return PackageOutcome(spec, name, OutcomeStatus.RESOLVED, resolved=resolved)

        logger.info("Installing %s (published %s days ago)", resolved.spec, resolved.age_days)
        try:
            self.package_manager.install(resolved.spec, dev=dev, exact=exact)
        except PackageManagerError as e:
            logger.error("Failed to install %s: %s", resolved.spec, e)
            return PackageOutcome(spec, name, OutcomeStatus.FAILED, resolved=resolved, error=str(e))

        decision = self.screen(name, resolved.version)
        if decision.blocked:
            self._remove_blocked(resolved.spec, name)
            return PackageOutcome(
                spec,
                name,
                OutcomeStatus.BLOCKED,
                resolved=resolved,
                decision=decision,
                error=f"{resolved.spec} has {decision.finding.highest_severity.label} severity vulnerabilities",
            )
        return PackageOutcome(spec, name, OutcomeStatus.INSTALLED, resolved=resolved, decision=decision)

    def screen(self, name: str, version: Optional[str], report: Optional[Dict] = None) -> Decision:
        """Classify a package against an audit report and log the verdict."""
        if report is None:
            report = self.package_manager.audit()
        finding = classify(report, name, version)
        decision = decide_action(parse_mode(self.policy.mode), finding)
        log_decision(decision, f"{name}@{version}" if version else name)
        return decision

    def audit_installed(self, names: Iterable[str] = ()) -> List[PackageOutcome]:
        """Screen already-installed packages without changing anything.

        With no names, every package listed in the audit report is screened.
        """
        self.validate_policy()
        report = self.package_manager.audit()
        names = list(names) or reported_packages(report)
        if not names:
            logger.info("No vulnerabilities found")

        outcomes = []
        for spec in names:
            name, _ = split_package_spec(spec)
            if self.policy.is_excluded(name):
                logger.warning("%s is excluded from restrictions. Skipping vulnerability check.", name)
                outcomes.append(PackageOutcome(spec, name, OutcomeStatus.EXCLUDED))
                continue
            decision = self.screen(name, None, report=report)
            if decision.finding is None:
                status = OutcomeStatus.CLEAN
            elif decision.blocked:
                status = OutcomeStatus.BLOCKED
            else:
                status = OutcomeStatus.INSTALLED
            outcomes.append(PackageOutcome(spec, name, status, decision=decision))
        return outcomes

    def _install_excluded(
        self, spec: str, name: str, dev: bool, exact: bool, dry_run: bool
    ) -> PackageOutcome:
        logger.warning("%s is excluded from restrictions. Installing without validation.", name)
        if not dry_run:
            try:
                self.package_manager.install(spec, dev=dev, exact=exact, quiet=False)
            except PackageManagerError as e:
                logger.error("Failed to install %s: %s", spec, e)
                return PackageOutcome(spec, name, OutcomeStatus.FAILED, error=str(e))
        return PackageOutcome(spec, name, OutcomeStatus.EXCLUDED)

    def _remove_blocked(self, resolved_spec: str, name: str) -> None:
        logger.error("%s is blocked by policy and will be removed.", resolved_spec)
        try:
            self.package_manager.uninstall(name)
        except PackageManagerError as e:
            logger.error("Failed to uninstall %s: %s", name, e)


def reported_packages(report: Dict) -> List[str]:
    """Names of all packages listed in an audit report, sorted."""
    vulnerabilities = (report or {}).get("vulnerabilities") or {}
    if isinstance(vulnerabilities, dict):
        names = {
            entry.get("name", key) if isinstance(entry, dict) else key
            for key, entry in vulnerabilities.items()
        }
    elif isinstance(vulnerabilities, list):
        names = {entry.get("name") for entry in vulnerabilities if isinstance(entry, dict)}
    else:
        names = set()
    return sorted(name for name in names if name)
