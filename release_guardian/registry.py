"""
npm registry client.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional
from urllib.parse import quote

import requests

from .exceptions import RegistryFetchError
from .interfaces import MetadataSource
from .models import PackageVersion
from .time_utils import parse_timestamp


logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"

# Entries of the ``time`` map that are not versions.
_TIME_META_KEYS = ("created", "modified", "unpublished")


def package_url(registry_url: str, package_name: str) -> str:
    """Registry URL for a package; the scope slash is percent-encoded."""
    return f"{registry_url.rstrip('/')}/{quote(package_name, safe='@')}"


class NpmRegistry(MetadataSource):
    """Fetch package metadata documents from an npm registry.

    Every call hits the registry; responses are not cached.
    """

    def __init__(
        self,
        registry_url: str = DEFAULT_REGISTRY_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.registry_url = registry_url
        self.session = session or requests.Session()
        self.timeout = timeout

    def fetch_package_metadata(self, package_name: str) -> Dict:
        url = package_url(self.registry_url, package_name)
        logger.info("Fetching metadata for %s", package_name)
        try:
            with self.session.get(url, timeout=self.timeout) as response:
                if not response.ok:
                    raise RegistryFetchError(
                        package_name,
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                data = response.json()
        except requests.RequestException as e:
            raise RegistryFetchError(package_name, str(e)) from e
        except ValueError as e:
            raise RegistryFetchError(package_name, f"invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise RegistryFetchError(package_name, "unexpected metadata document")
        return data


def get_all_versions_with_dates(metadata: Dict, package_name: str) -> List[PackageVersion]:
    """List published versions that have a parseable publish time.

    Only keys of ``versions`` count as published; the ``time`` map supplies
    the dates. Result is ordered by release date, then version string.
    """
    versions = metadata.get("versions") or {}
    time_data = metadata.get("time") or {}

    version_dates = []
    for ver in versions:
        if ver in _TIME_META_KEYS:
            continue
        pub_date = parse_timestamp(time_data.get(ver))
        if pub_date is None:
            logger.debug("No publish time for %s@%s, skipping", package_name, ver)
            continue
        version_dates.append(PackageVersion(name=package_name, version=ver, released_at=pub_date))
    return sorted(version_dates, key=lambda x: (x.released_at, x.version))


def get_dist_tags(metadata: Dict) -> Dict[str, str]:
    tags = metadata.get("dist-tags") or {}
    return {tag: ver for tag, ver in tags.items() if isinstance(ver, str)}
