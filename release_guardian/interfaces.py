"""
Interfaces for the registry and package-manager collaborators.
"""

from __future__ import annotations

from typing import Dict, Protocol


class MetadataSource(Protocol):
    """Fetch registry metadata documents."""

    def fetch_package_metadata(self, package_name: str) -> Dict:
        ...


class PackageManager(Protocol):
    """Perform install, uninstall and audit side effects."""

    def install(self, spec: str, dev: bool = False, exact: bool = False, quiet: bool = True) -> None:
        ...

    def uninstall(self, package_name: str) -> None:
        ...

    def audit(self) -> Dict:
        ...
