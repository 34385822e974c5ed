"""Tests for the per-package policy flow."""

import pytest

from conftest import NOW, FakePackageManager, FakeRegistry, make_metadata
from release_guardian.exceptions import InvalidModeError
from release_guardian.models import Action, Mode, OutcomeStatus, Policy
from release_guardian.orchestrator import PolicyOrchestrator, reported_packages
from release_guardian.resolver import VersionResolver


CRITICAL_REPORT = {
    "vulnerabilities": {
        "demo": {"name": "demo", "severity": "critical", "via": [{"title": "RCE", "severity": "critical"}]}
    }
}


def _orchestrator(policy, documents, report=None, events=None, **pm_kwargs):
    events = events if events is not None else []
    registry = FakeRegistry(documents, events)
    pm = FakePackageManager(report=report, events=events, **pm_kwargs)
    resolver = VersionResolver(policy, clock=lambda: NOW)
    return PolicyOrchestrator(policy, registry, pm, resolver=resolver), registry, pm


def test_installs_resolved_version():
    policy = Policy(min_age_days=30)
    orchestrator, _, pm = _orchestrator(policy, {"demo": make_metadata({"1.0.0": 40, "1.1.0": 5})})

    outcomes = orchestrator.process(["demo"], dev=True)

    assert [o.status for o in outcomes] == [OutcomeStatus.INSTALLED]
    assert outcomes[0].resolved.version == "1.0.0"
    assert outcomes[0].decision.action is Action.ALLOW
    assert pm.installs == [("demo@1.0.0", True, False, True)]


def test_exact_install_from_policy():
    policy = Policy(exact_install=True)
    orchestrator, _, pm = _orchestrator(policy, {"demo": make_metadata({"1.0.0": 40})})

    orchestrator.process(["demo@^1"])

    assert pm.installs == [("demo@1.0.0", False, True, True)]


def test_invalid_mode_fails_before_any_package():
    policy = Policy(mode="strict")
    orchestrator, registry, pm = _orchestrator(policy, {"demo": make_metadata({"1.0.0": 40})})

    with pytest.raises(InvalidModeError):
        orchestrator.process(["demo", "other"])

    assert registry.events == []
    assert pm.installs == []


def test_excluded_package_bypasses_all_checks():
    policy = Policy(min_age_days=365, excluded=frozenset({"demo"}))
    orchestrator, _, pm = _orchestrator(policy, {}, report=CRITICAL_REPORT)

    outcomes = orchestrator.process(["demo@^2.0.0"])

    assert outcomes[0].status is OutcomeStatus.EXCLUDED
    assert pm.installs == [("demo@^2.0.0", False, False, False)]
    assert pm.events == ["install demo@^2.0.0"]
    assert "audit" not in pm.events
    assert pm.uninstalls == []


def test_blocking_vulnerability_uninstalls():
    policy = Policy(mode=Mode.BLOCK)
    orchestrator, _, pm = _orchestrator(
        policy, {"demo": make_metadata({"1.0.0": 40})}, report=CRITICAL_REPORT
    )

    outcomes = orchestrator.process(["demo"])

    assert outcomes[0].status is OutcomeStatus.BLOCKED
    assert outcomes[0].decision.action is Action.BLOCK
    assert pm.events == ["fetch demo", "install demo@1.0.0", "audit", "uninstall demo"]
    assert outcomes[0].ok is False


def test_warn_mode_keeps_vulnerable_package():
    policy = Policy(mode=Mode.WARN)
    orchestrator, _, pm = _orchestrator(
        policy, {"demo": make_metadata({"1.0.0": 40})}, report=CRITICAL_REPORT
    )

    outcomes = orchestrator.process(["demo"])

    assert outcomes[0].status is OutcomeStatus.INSTALLED
    assert outcomes[0].decision.action is Action.WARN
    assert pm.uninstalls == []


def test_failed_uninstall_is_not_raised():
    policy = Policy(mode=Mode.BLOCK)
    orchestrator, _, pm = _orchestrator(
        policy,
        {"demo": make_metadata({"1.0.0": 40})},
        report=CRITICAL_REPORT,
        fail_uninstall=True,
    )

    outcomes = orchestrator.process(["demo"])

    assert outcomes[0].status is OutcomeStatus.BLOCKED
    assert "uninstall demo" in pm.events


def test_failure_does_not_stop_batch():
    policy = Policy(min_age_days=30)
    documents = {
        "young": make_metadata({"1.0.0": 1}),
        "demo": make_metadata({"1.0.0": 40}),
    }
    orchestrator, _, pm = _orchestrator(policy, documents)

    outcomes = orchestrator.process(["missing", "young", "demo"])

    assert [o.status for o in outcomes] == [
        OutcomeStatus.FAILED,
        OutcomeStatus.FAILED,
        OutcomeStatus.INSTALLED,
    ]
    assert "missing" in outcomes[0].error
    assert "30" in outcomes[1].error
    assert pm.installs == [("demo@1.0.0", False, False, True)]


def test_fail_fast_stops_batch():
    policy = Policy(fail_fast=True)
    orchestrator, _, pm = _orchestrator(policy, {"demo": make_metadata({"1.0.0": 40})})

    outcomes = orchestrator.process(["missing", "demo"])

    assert len(outcomes) == 1
    assert pm.installs == []


def test_install_failure_is_reported_for_package():
    policy = Policy()
    orchestrator, _, pm = _orchestrator(
        policy, {"demo": make_metadata({"1.0.0": 40})}, fail_install={"demo@1.0.0"}
    )

    outcomes = orchestrator.process(["demo"])

    assert outcomes[0].status is OutcomeStatus.FAILED
    assert "audit" not in pm.events


def test_packages_are_processed_in_order():
    events = []
    documents = {"a": make_metadata({"1.0.0": 40}), "b": make_metadata({"2.0.0": 40})}
    orchestrator, _, _ = _orchestrator(Policy(), documents, events=events)

    orchestrator.process(["a", "b"])

    assert events == [
        "fetch a",
        "install a@1.0.0",
        "audit",
        "fetch b",
        "install b@2.0.0",
        "audit",
    ]


def test_dry_run_resolves_without_installing():
    orchestrator, _, pm = _orchestrator(Policy(min_age_days=30), {"demo": make_metadata({"1.0.0": 40, "1.1.0": 5})})

    outcomes = orchestrator.process(["demo"], dry_run=True)

    assert outcomes[0].status is OutcomeStatus.RESOLVED
    assert outcomes[0].resolved.version == "1.0.0"
    assert pm.events == ["fetch demo"]


def test_dev_packages_install_as_dev():
    documents = {"a": make_metadata({"1.0.0": 40}), "b": make_metadata({"2.0.0": 40})}
    orchestrator, _, pm = _orchestrator(Policy(), documents)

    orchestrator.process(["a", "b@^2"], dev_packages=["b"])

    assert pm.installs == [("a@1.0.0", False, False, True), ("b@2.0.0", True, False, True)]


def test_audit_installed_screens_reported_packages():
    report = {
        "vulnerabilities": {
            "demo": {"name": "demo", "severity": "critical"},
            "minor": {"name": "minor", "severity": "low"},
        }
    }
    orchestrator, _, pm = _orchestrator(Policy(mode=Mode.BLOCK), {}, report=report)

    outcomes = orchestrator.audit_installed()

    assert [(o.name, o.status) for o in outcomes] == [
        ("demo", OutcomeStatus.BLOCKED),
        ("minor", OutcomeStatus.INSTALLED),
    ]
    assert pm.events == ["audit"]
    assert pm.uninstalls == []


def test_audit_installed_named_clean_package():
    orchestrator, _, _ = _orchestrator(Policy(), {}, report=CRITICAL_REPORT)

    outcomes = orchestrator.audit_installed(["react"])

    assert outcomes[0].status is OutcomeStatus.CLEAN


def test_reported_packages_list_form():
    report = {"vulnerabilities": [{"name": "b"}, {"name": "a"}, {"name": "b"}, "junk"]}
    assert reported_packages(report) == ["a", "b"]


def test_audit_installed_skips_excluded_packages(caplog):
    report = {"vulnerabilities": {"internal": {"name": "internal", "severity": "critical"}}}
    policy = Policy(mode=Mode.BLOCK, excluded=frozenset({"internal"}))
    orchestrator, _, pm = _orchestrator(policy, {}, report=report)

    with caplog.at_level("INFO"):
        outcomes = orchestrator.audit_installed()

    assert [(o.name, o.status) for o in outcomes] == [("internal", OutcomeStatus.EXCLUDED)]
    assert outcomes[0].decision is None
    assert all(o.ok for o in outcomes)
    assert "blocked" not in caplog.text


def test_audit_installed_block_does_not_mention_removal(caplog):
    orchestrator, _, pm = _orchestrator(Policy(mode=Mode.BLOCK), {}, report=CRITICAL_REPORT)

    with caplog.at_level("INFO"):
        outcomes = orchestrator.audit_installed(["demo"])

    assert outcomes[0].status is OutcomeStatus.BLOCKED
    assert "demo is blocked by policy." in caplog.text
    assert "will be removed" not in caplog.text
    assert pm.uninstalls == []


def test_blocked_install_logs_removal(caplog):
    orchestrator, _, pm = _orchestrator(
        Policy(mode=Mode.BLOCK), {"demo": make_metadata({"1.0.0": 40})}, report=CRITICAL_REPORT
    )

    with caplog.at_level("INFO"):
        orchestrator.process(["demo"])

    assert "demo@1.0.0 is blocked by policy and will be removed." in caplog.text
    assert pm.uninstalls == ["demo"]
