from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytest

from release_guardian.exceptions import PackageManagerError, RegistryFetchError


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_metadata(ages: Dict[str, float], now: datetime = NOW, latest: Optional[str] = None) -> Dict:
    """Registry document whose versions were published ``ages`` days before ``now``."""
    time_data = {"created": (now - timedelta(days=1000)).isoformat()}
    for ver, age in ages.items():
        time_data[ver] = (now - timedelta(days=age)).isoformat()
    return {
        "versions": {ver: {"version": ver} for ver in ages},
        "time": time_data,
        "dist-tags": {"latest": latest or list(ages)[-1]},
    }


class FakeRegistry:
    def __init__(self, documents: Dict[str, Dict], events=None):
        self.documents = documents
        self.events = events if events is not None else []

    def fetch_package_metadata(self, package_name):
        self.events.append(f"fetch {package_name}")
        if package_name not in self.documents:
            raise RegistryFetchError(package_name, "HTTP 404", status_code=404)
        return self.documents[package_name]


class FakePackageManager:
    def __init__(self, report=None, events=None, fail_install=(), fail_uninstall=False):
        self.report = report or {}
        self.events = events if events is not None else []
        self.fail_install = set(fail_install)
        self.fail_uninstall = fail_uninstall
        self.installs = []
        self.uninstalls = []

    def install(self, spec, dev=False, exact=False, quiet=True):
        self.events.append(f"install {spec}")
        if spec in self.fail_install:
            raise PackageManagerError(["npm", "install", spec], 1, "E404")
        self.installs.append((spec, dev, exact, quiet))

    def uninstall(self, package_name):
        self.events.append(f"uninstall {package_name}")
        if self.fail_uninstall:
            raise PackageManagerError(["npm", "uninstall", package_name], 1, "EPERM")
        self.uninstalls.append(package_name)

    def audit(self):
        self.events.append("audit")
        return self.report


@pytest.fixture
def now():
    return NOW
