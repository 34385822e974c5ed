"""
Package specifier parsing.
"""

from __future__ import annotations

from typing import Optional, Tuple


def split_package_spec(spec: str) -> Tuple[str, Optional[str]]:
    """Split ``name[@range]`` into the package name and its version range.

    The leading ``@`` of a scoped package (``@scope/pkg``) is part of the
    name; only a later ``@`` separates the range.
    """
    at_index = spec.rfind("@")
    if at_index <= 0:
        return spec, None
    name, version_range = spec[:at_index], spec[at_index + 1:]
    return name, version_range or None
