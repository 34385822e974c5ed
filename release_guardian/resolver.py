"""
Version resolution under a minimum-age policy.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .exceptions import NoCandidatesOldEnoughError, NoVersionInRangeError
from .models import PackageVersion, Policy, ResolvedVersion
from .npm_semver import InvalidRangeError, max_satisfying, sort_versions
from .registry import get_all_versions_with_dates, get_dist_tags
from .time_utils import age_in_days, ensure_utc, utc_now


logger = logging.getLogger(__name__)


class VersionResolver:
    """Pick the version to install for a package.

    The age filter runs before the range filter: a version that is too new
    is never a candidate, so a range can only be satisfied by versions that
    are already old enough.
    """

    def __init__(self, policy: Policy, clock: Callable[[], datetime] = utc_now) -> None:
        self.policy = policy
        self.clock = clock

    def candidate_versions(
        self, metadata: Dict, package_name: str, now: Optional[datetime] = None
    ) -> List[PackageVersion]:
        """Versions whose whole-day age meets the policy's minimum age.

        Versions without a publish time are never candidates.
        """
        now = ensure_utc(now or self.clock())
        return [
            pv
            for pv in get_all_versions_with_dates(metadata, package_name)
            if age_in_days(pv.released_at, now) >= self.policy.min_age_days
        ]

    def resolve(
        self, package_name: str, version_range: Optional[str], metadata: Dict
    ) -> Optional[ResolvedVersion]:
        """Resolve ``package_name`` to a concrete version.

        Args:
            package_name: Bare package name
            version_range: npm range or dist-tag, or None for unconstrained
            metadata: Registry metadata document for the package

        Returns:
            ResolvedVersion, or None when the package is excluded from policy

        Raises:
            NoCandidatesOldEnoughError: If no version is old enough
            NoVersionInRangeError: If no old-enough version satisfies the range
        """
        if self.policy.is_excluded(package_name):
            logger.debug("%s is excluded from policy, not resolving", package_name)
            return None

        now = ensure_utc(self.clock())
        candidates = self.candidate_versions(metadata, package_name, now)
        if not candidates:
            raise NoCandidatesOldEnoughError(package_name, self.policy.min_age_days)

        by_version = {pv.version: pv for pv in candidates}
        dist_tags = get_dist_tags(metadata)

        if version_range is None:
            ordered = sort_versions(by_version)
            if not ordered:
                raise NoCandidatesOldEnoughError(package_name, self.policy.min_age_days)
            chosen = ordered[-1]
        else:
            chosen = self._highest_in_range(package_name, version_range, by_version, dist_tags)

        latest = dist_tags.get("latest")
        if latest and latest != chosen:
            logger.info(
                "%s: latest is %s, resolved to %s under minimum age %g days",
                package_name,
                latest,
                chosen,
                self.policy.min_age_days,
            )

        published = by_version[chosen].released_at
        return ResolvedVersion(
            name=package_name,
            version=chosen,
            age_days=age_in_days(published, now),
            published_at=published,
            latest=latest,
        )

    def _highest_in_range(
        self,
        package_name: str,
        version_range: str,
        by_version: Dict[str, PackageVersion],
        dist_tags: Dict[str, str],
    ) -> str:
        # A dist-tag stands for exactly the version it points at.
        target_range = dist_tags.get(version_range, version_range)
        try:
            chosen = max_satisfying(by_version, target_range)
        except InvalidRangeError:
            logger.debug("%s: %r is not a valid range", package_name, version_range)
            chosen = None
        if chosen is None:
            raise NoVersionInRangeError(package_name, version_range, self.policy.min_age_days)
        return chosen
