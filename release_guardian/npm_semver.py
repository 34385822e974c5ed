"""
npm-flavoured semantic versioning.

Version parsing and precedence come from the ``semver`` package; this module
adds npm's range grammar on top of it (caret, tilde, x-ranges, hyphen ranges,
comparator intersections and ``||`` unions) following node-semver's rules,
including its handling of pre-release versions.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from semver import Version


_WILDCARDS = {"x", "X", "*"}

_PARTIAL = re.compile(
    r"^[v=]*"
    r"(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*])"
    r"(?:\.(?P<patch>\d+|[xX*])"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?"
    r"(?:\+[0-9A-Za-z.-]+)?"
    r")?)?$"
)
_COMPARATOR = re.compile(r"^(?P<op><=|>=|<|>|=|\^|~>|~)?(?P<version>.*)$")
_HYPHEN = re.compile(r"^\s*(?P<low>\S+)\s+-\s+(?P<high>\S+)\s*$")
_OPERATOR_GAP = re.compile(r"(<=|>=|<|>|=|\^|~>|~)\s+")

ZERO = Version(0, 0, 0)


def npm_semver_key(version: str) -> Optional[Version]:
    """Return a sortable key for an npm version string, or None if invalid.

    A leading ``v`` or ``=`` is ignored, and build metadata does not take
    part in precedence.
    """
    if not isinstance(version, str):
        return None
    text = version.strip().lstrip("=v")
    try:
        return Version.parse(text)
    except ValueError:
        return None


def sort_versions(versions: Iterable[str]) -> List[str]:
    """Sort version strings by semver precedence, dropping invalid ones.

    Equal-precedence strings keep a stable order by their text.
    """
    keyed = [(npm_semver_key(v), v) for v in versions]
    valid = [(key, v) for key, v in keyed if key is not None]
    valid.sort(key=lambda item: (item[0], item[1]))
    return [v for _, v in valid]


@dataclass(frozen=True)
class Comparator:
    """A single ``<op> <version>`` test."""

    operator: str
    version: Version

    def test(self, candidate: Version) -> bool:
        if self.operator == "<":
            return candidate < self.version
        if self.operator == "<=":
            return candidate <= self.version
        if self.operator == ">":
            return candidate > self.version
        if self.operator == ">=":
            return candidate >= self.version
        return candidate == self.version


ComparatorSet = Tuple[Comparator, ...]

# Matches nothing; used for ranges such as ``<0.0.0-0`` or ``>*``.
_NOTHING: ComparatorSet = (Comparator("<", Version(0, 0, 0, prerelease="0")),)
_ANY: ComparatorSet = (Comparator(">=", ZERO),)


class InvalidRangeError(ValueError):
    """Raised when a string is not a valid npm version range."""


def _parse_partial(text: str) -> Tuple[Optional[int], Optional[int], Optional[int], Optional[str]]:
    match = _PARTIAL.match(text)
    if not match:
        raise InvalidRangeError(f"Invalid version in range: {text!r}")

    parts: List[Optional[int]] = []
    wildcard_seen = False
    for group in ("major", "minor", "patch"):
        value = match.group(group)
        if value is None or value in _WILDCARDS or wildcard_seen:
            wildcard_seen = True
            parts.append(None)
        else:
            parts.append(int(value))
    prerelease = match.group("prerelease") if parts[2] is not None else None
    return parts[0], parts[1], parts[2], prerelease


def _upper(major: int, minor: int = 0, patch: int = 0) -> Version:
    """Exclusive upper bound that also excludes pre-releases of the bound."""
    return Version(major, minor, patch, prerelease="0")


def _caret(major, minor, patch, prerelease) -> ComparatorSet:
    if major is None:
        return _ANY
    if minor is None:
        return (Comparator(">=", Version(major, 0, 0)), Comparator("<", _upper(major + 1)))
    if patch is None:
        if major > 0:
            high = _upper(major + 1)
        else:
            high = _upper(0, minor + 1)
        return (Comparator(">=", Version(major, minor, 0)), Comparator("<", high))

    low = Version(major, minor, patch, prerelease=prerelease)
    if major > 0:
        high = _upper(major + 1)
    elif minor > 0:
        high = _upper(0, minor + 1)
    else:
        high = _upper(0, 0, patch + 1)
    return (Comparator(">=", low), Comparator("<", high))


def _tilde(major, minor, patch, prerelease) -> ComparatorSet:
    if major is None:
        return _ANY
    if minor is None:
        return (Comparator(">=", Version(major, 0, 0)), Comparator("<", _upper(major + 1)))
    low = Version(major, minor, patch or 0, prerelease=prerelease)
    return (Comparator(">=", low), Comparator("<", _upper(major, minor + 1)))


def _primitive(operator, major, minor, patch, prerelease) -> ComparatorSet:
    if major is None:
        if operator in ("<", ">"):
            return _NOTHING
        return _ANY

    if patch is not None:
        return (Comparator(operator or "=", Version(major, minor, patch, prerelease=prerelease)),)

    # Partial versions behave like x-ranges.
    if operator in ("", "="):
        if minor is None:
            return (Comparator(">=", Version(major, 0, 0)), Comparator("<", _upper(major + 1)))
        return (
            Comparator(">=", Version(major, minor, 0)),
            Comparator("<", _upper(major, minor + 1)),
        )
    if operator == ">":
        if minor is None:
            return (Comparator(">=", Version(major + 1, 0, 0)),)
        return (Comparator(">=", Version(major, minor + 1, 0)),)
    if operator == ">=":
        return (Comparator(">=", Version(major, minor or 0, 0)),)
    if operator == "<":
        return (Comparator("<", _upper(major, minor or 0)),)
    # <=
    if minor is None:
        return (Comparator("<", _upper(major + 1)),)
    return (Comparator("<", _upper(major, minor + 1)),)


def _parse_token(token: str) -> ComparatorSet:
    match = _COMPARATOR.match(token)
    operator = match.group("op") or ""
    major, minor, patch, prerelease = _parse_partial(match.group("version"))
    if operator == "^":
        return _caret(major, minor, patch, prerelease)
    if operator in ("~", "~>"):
        return _tilde(major, minor, patch, prerelease)
    return _primitive(operator, major, minor, patch, prerelease)


def _parse_hyphen(low: str, high: str) -> ComparatorSet:
    comparators: List[Comparator] = []
    l_major, l_minor, l_patch, l_pre = _parse_partial(low)
    if l_major is not None:
        comparators.append(
            Comparator(">=", Version(l_major, l_minor or 0, l_patch or 0, prerelease=l_pre))
        )

    h_major, h_minor, h_patch, h_pre = _parse_partial(high)
    if h_major is not None:
        if h_minor is None:
            comparators.append(Comparator("<", _upper(h_major + 1)))
        elif h_patch is None:
            comparators.append(Comparator("<", _upper(h_major, h_minor + 1)))
        else:
            comparators.append(
                Comparator("<=", Version(h_major, h_minor, h_patch, prerelease=h_pre))
            )
    return tuple(comparators) or _ANY


def parse_range(version_range: str) -> List[ComparatorSet]:
    """Parse an npm range into a union of comparator sets.

    Raises:
        InvalidRangeError: If the range is not valid npm range syntax
    """
    if not isinstance(version_range, str):
        raise InvalidRangeError(f"Invalid range: {version_range!r}")

    sets: List[ComparatorSet] = []
    for part in version_range.split("||"):
        hyphen = _HYPHEN.match(part)
        if hyphen:
            sets.append(_parse_hyphen(hyphen.group("low"), hyphen.group("high")))
            continue

        tokens = _OPERATOR_GAP.sub(r"\1", part.strip()).split()
        if not tokens:
            sets.append(_ANY)
            continue
        comparators: List[Comparator] = []
        for token in tokens:
            comparators.extend(_parse_token(token))
        sets.append(tuple(comparators))
    return sets


def is_valid_range(version_range: str) -> bool:
    try:
        parse_range(version_range)
    except InvalidRangeError:
        return False
    return True


def _set_allows(comparators: ComparatorSet, candidate: Version) -> bool:
    if not all(comparator.test(candidate) for comparator in comparators):
        return False
    if not candidate.prerelease:
        return True

    # A pre-release only matches when the range opts in to pre-releases of
    # the same major.minor.patch tuple.
    for comparator in comparators:
        bound = comparator.version
        if bound.prerelease and (bound.major, bound.minor, bound.patch) == (
            candidate.major,
            candidate.minor,
            candidate.patch,
        ):
            return True
    return False


def satisfies(version: str, version_range: str) -> bool:
    """Return True if ``version`` is within the npm ``version_range``.

    Invalid versions never satisfy; invalid ranges raise InvalidRangeError.
    """
    candidate = npm_semver_key(version)
    if candidate is None:
        return False
    return any(_set_allows(comparators, candidate) for comparators in parse_range(version_range))


def max_satisfying(versions: Iterable[str], version_range: str) -> Optional[str]:
    """Highest version in ``versions`` that satisfies ``version_range``."""
    sets = parse_range(version_range)
    matching = []
    for version in versions:
        candidate = npm_semver_key(version)
        if candidate is None:
            continue
        if any(_set_allows(comparators, candidate) for comparators in sets):
            matching.append(version)
    ordered = sort_versions(matching)
    return ordered[-1] if ordered else None
