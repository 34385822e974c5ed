"""
Command-line interface for release guardian.
"""

import argparse
import json
import logging
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from . import __version__
from .config import build_policy, load_config, merge_settings, write_default_config
from .exceptions import ConfigurationError
from .models import VALID_MODES
from .npm import NpmClient
from .npm_semver import is_valid_range
from .orchestrator import PolicyOrchestrator
from .registry import NpmRegistry
from .reporting import export_outcomes_csv, print_summary, save_outcomes_json
from .specifier import split_package_spec


logger = logging.getLogger(__name__)

DIST_TAG_PATTERN = re.compile(r"[A-Za-z][\w.-]*")


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    fmt = "%(levelname)s %(name)s: %(message)s" if verbose else "%(message)s"
    logging.basicConfig(level=level, format=fmt, stream=sys.stderr)
    logging.getLogger().setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--min-age", "-m",
        default=None,
        help="Minimum version age (e.g. 30, 1d, 1w, 1m, 24h, 24hs)"
    )
    common.add_argument(
        "--mode",
        default=None,
        help=f"Vulnerability mode ({', '.join(VALID_MODES)})"
    )
    common.add_argument(
        "--exclude",
        action="append",
        default=None,
        metavar="PACKAGE",
        help="Package to install without restrictions (repeatable)"
    )
    common.add_argument(
        "--fail-fast",
        action="store_true",
        default=None,
        help="Stop at the first package that fails or is blocked"
    )
    common.add_argument("--config", default=None, help="Path to a config file")
    common.add_argument("--registry", default=None, help="npm registry URL")
    common.add_argument(
        "--report-dir",
        default=None,
        help="Write JSON and CSV outcome reports to this directory"
    )
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    install_flags = argparse.ArgumentParser(add_help=False)
    install_flags.add_argument(
        "--dev", "-D",
        action="store_true",
        help="Install as devDependency (--save-dev)"
    )
    install_flags.add_argument(
        "--exact",
        action="store_true",
        help="Install exact version (--save-exact)"
    )

    parser = argparse.ArgumentParser(
        prog="guardian",
        description="Install npm packages with minimum release age and vulnerability restrictions"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    subparsers.required = True

    install = subparsers.add_parser(
        "install",
        parents=[common, install_flags],
        help="Install packages with minimum release age restriction"
    )
    install.add_argument(
        "packages",
        nargs="*",
        help="Packages to install, e.g.: react@18 lodash@4 @scope/pkg@1.2.3"
    )

    update = subparsers.add_parser(
        "update",
        parents=[common, install_flags],
        help="Re-resolve dependencies from package.json under the policy"
    )
    update.add_argument("packages", nargs="*", help="Packages to update (default: all)")

    audit = subparsers.add_parser(
        "audit",
        parents=[common],
        help="Screen installed packages against npm audit"
    )
    audit.add_argument("packages", nargs="*", help="Packages to screen (default: all reported)")

    use = subparsers.add_parser(
        "use",
        parents=[common],
        help="Show which version would be installed, without installing"
    )
    use.add_argument("packages", nargs="+", help="Packages to resolve")

    init = subparsers.add_parser(
        "init",
        parents=[common],
        help="Create guardian.config.json in the current directory"
    )
    init.add_argument("--force", action="store_true", help="Overwrite an existing config file")

    return parser


def read_package_json(cwd: Path) -> Dict:
    path = cwd / "package.json"
    if not path.exists():
        raise ConfigurationError(f"No package.json found in {cwd}")
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Error reading package.json: {e}") from e


def update_specifiers(package_json: Dict, packages: List[str]) -> Tuple[List[str], List[str]]:
    """Specifiers to re-resolve, and the names declared as devDependencies.

    Declared ranges and dist-tags are kept. Entries that do not point at
    the registry (git URLs, file paths, aliases) are skipped.
    """
    declared: Dict[str, str] = {}
    declared.update(package_json.get("dependencies") or {})
    dev_declared = package_json.get("devDependencies") or {}
    declared.update(dev_declared)

    if packages:
        requested = []
        for spec in packages:
            name, version_range = split_package_spec(spec)
            if version_range is None and name in declared:
                version_range = declared[name]
            requested.append((name, version_range))
    else:
        requested = list(declared.items())

    specifiers = []
    for name, version_range in requested:
        if version_range is None:
            specifiers.append(name)
        elif is_valid_range(version_range) or DIST_TAG_PATTERN.fullmatch(version_range):
            specifiers.append(f"{name}@{version_range}")
        else:
            logger.warning("Skipping %s: %s is not a registry version range", name, version_range)
    return specifiers, sorted(dev_declared)


def _overrides(args: argparse.Namespace) -> Dict:
    return {
        "minAge": args.min_age,
        "mode": args.mode,
        "exclude": args.exclude,
        "failFast": args.fail_fast,
        "registry": args.registry,
    }


def run(argv: Optional[List[str]] = None, cwd: Optional[Path] = None) -> int:
    """Run the CLI and return the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    cwd = Path(cwd or Path.cwd())

    try:
        if args.command == "init":
            path = write_default_config(cwd, min_age=args.min_age, force=args.force)
            logger.info("Created %s", path.name)
            return 0

        settings = merge_settings(load_config(cwd, args.config), _overrides(args))
        policy = build_policy(settings)
        orchestrator = PolicyOrchestrator(
            policy,
            NpmRegistry(settings["registry"]),
            NpmClient(cwd=cwd),
        )

        if args.command == "install":
            if not args.packages:
                logger.error("You must specify at least one package to install")
                return 1
            outcomes = orchestrator.process(args.packages, dev=args.dev, exact=args.exact)
        elif args.command == "update":
            specifiers, dev_packages = update_specifiers(read_package_json(cwd), args.packages)
            if not specifiers:
                logger.info("Nothing to update")
                return 0
            outcomes = orchestrator.process(
                specifiers, dev=args.dev, exact=args.exact, dev_packages=dev_packages
            )
        elif args.command == "audit":
            outcomes = orchestrator.audit_installed(args.packages)
        else:
            outcomes = orchestrator.process(args.packages, dry_run=True)
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1

    print_summary(args.command, outcomes)
    if args.report_dir:
        output_dir = Path(args.report_dir)
        results_file = save_outcomes_json(outcomes, output_dir, args.command)
        csv_file = export_outcomes_csv(outcomes, output_dir, args.command)
        logger.info("Results saved to: %s and %s", results_file, csv_file)

    return 0 if all(outcome.ok for outcome in outcomes) else 1


def main():
    """Main entry point for the CLI."""
    sys.exit(run())


if __name__ == "__main__":
    main()
