"""
npm process invocation.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import PackageManagerError
from .interfaces import PackageManager


logger = logging.getLogger(__name__)


class NpmClient(PackageManager):
    """Run npm install, uninstall and audit with argument lists."""

    def __init__(
        self,
        npm_executable: str = "npm",
        cwd: Optional[Path] = None,
        timeout: float = 600,
    ) -> None:
        self.npm_executable = npm_executable
        self.cwd = Path(cwd) if cwd is not None else None
        self.timeout = timeout

    def install_command(
        self, spec: str, dev: bool = False, exact: bool = False, quiet: bool = True
    ) -> List[str]:
        cmd = [self.npm_executable, "install", spec]
        if quiet:
            cmd.extend(["--silent", "--no-audit"])
        if dev:
            cmd.append("--save-dev")
        if exact:
            cmd.append("--save-exact")
        return cmd

    def install(self, spec: str, dev: bool = False, exact: bool = False, quiet: bool = True) -> None:
        self._run_checked(self.install_command(spec, dev=dev, exact=exact, quiet=quiet))

    def uninstall(self, package_name: str) -> None:
        self._run_checked([self.npm_executable, "uninstall", package_name])

    def audit(self) -> Dict:
        """Return the parsed ``npm audit --json`` report.

        npm exits non-zero whenever vulnerabilities are found, so the exit
        code is ignored and whatever JSON was written to stdout is parsed.
        An unreadable report yields an empty dict.
        """
        cmd = [self.npm_executable, "audit", "--json"]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=self.cwd,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.warning("npm audit could not be run: %s", e)
            return {}

        if result.returncode != 0:
            logger.debug("npm audit exited with %s", result.returncode)

        output = result.stdout.strip()
        if not output:
            logger.warning("npm audit produced no report: %s", result.stderr.strip()[:200])
            return {}
        try:
            report = json.loads(output)
        except json.JSONDecodeError as e:
            logger.warning("Could not parse npm audit report: %s", e)
            return {}
        if not isinstance(report, dict):
            return {}
        return report

    def _run_checked(self, cmd: List[str]) -> None:
        logger.debug("Executing: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=self.cwd,
            )
        except subprocess.TimeoutExpired as e:
            raise PackageManagerError(cmd, -1, f"timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise PackageManagerError(cmd, 127, str(e)) from e

        if result.returncode != 0:
            raise PackageManagerError(cmd, result.returncode, result.stderr)
        if result.stdout.strip():
            logger.debug("%s", result.stdout.strip())
