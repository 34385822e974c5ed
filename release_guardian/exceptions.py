"""
Exception hierarchy for release guardian.
"""

from __future__ import annotations

from typing import Optional, Sequence


class GuardianError(Exception):
    """Base exception for all release guardian errors."""


class ConfigurationError(GuardianError):
    """Raised when the policy configuration is invalid.

    Configuration errors abort a run before any package is touched.
    """


class InvalidModeError(ConfigurationError):
    """Raised when the vulnerability mode is not one of the known modes."""

    def __init__(self, mode: object, valid_modes: Sequence[str]):
        self.mode = mode
        self.valid_modes = tuple(valid_modes)
        super().__init__(
            f"Invalid mode in configuration: {mode}. "
            f"Valid options are: {', '.join(self.valid_modes)}"
        )


class InvalidDurationError(ConfigurationError, ValueError):
    """Raised when a minimum age expression cannot be parsed."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid format for minAge: {value}")


class ResolutionError(GuardianError):
    """Raised when a package cannot be resolved to an installable version."""

    def __init__(self, message: str, package: str, constraint: Optional[str] = None):
        self.package = package
        self.constraint = constraint
        super().__init__(message)


class NoCandidatesOldEnoughError(ResolutionError):
    """Raised when no published version meets the minimum age."""

    def __init__(self, package: str, min_age_days: float):
        self.min_age_days = min_age_days
        super().__init__(
            f"No version of {package} is at least {min_age_days:g} days old",
            package,
            f"minAge={min_age_days:g}",
        )


class NoVersionInRangeError(ResolutionError):
    """Raised when no old-enough version satisfies the requested range."""

    def __init__(self, package: str, version_range: str, min_age_days: float):
        self.min_age_days = min_age_days
        super().__init__(
            f"No version of {package} satisfies {version_range} "
            f"and is at least {min_age_days:g} days old",
            package,
            version_range,
        )


class RegistryFetchError(ResolutionError):
    """Raised when registry metadata for a package cannot be fetched."""

    def __init__(self, package: str, reason: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(f"Failed to fetch metadata for {package}: {reason}", package)


class PackageManagerError(GuardianError):
    """Raised when the package manager process exits with an error."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command '{' '.join(self.command)}' failed with exit code {returncode}"
        if stderr:
            message += f": {stderr.strip()[:200]}"
        super().__init__(message)
