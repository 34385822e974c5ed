"""
Configuration loading and policy construction.

Policy values are merged once, in order of precedence: built-in defaults,
then the first config file found, then command-line overrides. The result
is an immutable Policy that is passed explicitly to every component.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from .duration import parse_min_age
from .exceptions import ConfigurationError, InvalidModeError
from .models import VALID_MODES, Mode, Policy
from .registry import DEFAULT_REGISTRY_URL


logger = logging.getLogger(__name__)

CONFIG_FILES = ("guardian.config.json", ".guardianrc.json")

DEFAULTS: Dict[str, Any] = {
    "minAge": 0,
    "mode": Mode.BLOCK.value,
    "exclude": [],
    "exactInstall": False,
    "failFast": False,
    "registry": DEFAULT_REGISTRY_URL,
}


def find_config_file(cwd: Path) -> Optional[Path]:
    for name in CONFIG_FILES:
        candidate = Path(cwd) / name
        if candidate.exists():
            return candidate
    return None


def load_config(cwd: Path, path: Optional[Path] = None) -> Dict[str, Any]:
    """Read the config file, if any, and normalise ``minAge``.

    Args:
        cwd: Directory searched for ``guardian.config.json`` and
            ``.guardianrc.json``, in that order
        path: Explicit config file, which must exist

    Returns:
        The file's values (empty when no file is found)

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")
    else:
        config_path = find_config_file(cwd)
        if config_path is None:
            logger.debug("No config file found in %s", cwd)
            return {}

    try:
        with open(config_path, encoding="utf-8") as f:
            values = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Error reading {config_path.name}: {e}") from e

    if not isinstance(values, dict):
        raise ConfigurationError(f"Error reading {config_path.name}: expected a JSON object")

    unknown = set(values) - set(DEFAULTS)
    if unknown:
        logger.debug("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))

    if values.get("minAge") is not None:
        values["minAge"] = parse_min_age(values["minAge"])

    logger.info("Configuration loaded from %s", config_path.name)
    return values


def parse_mode(value: Any) -> Mode:
    if isinstance(value, Mode):
        return value
    try:
        return Mode(value)
    except ValueError:
        raise InvalidModeError(value, VALID_MODES) from None


def _as_names(value: Any) -> Iterable[str]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigurationError(f"exclude must be a list of package names, got {value!r}")
    return tuple(str(name) for name in value)


def _as_flag(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"{key} must be true or false, got {value!r}")
    return value


def merge_settings(file_values: Dict[str, Any], overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge defaults, file values and non-None overrides, keyed by config name."""
    settings = dict(DEFAULTS)
    settings.update({k: v for k, v in file_values.items() if k in DEFAULTS and v is not None})
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key == "exclude":
            settings["exclude"] = [*_as_names(settings.get("exclude")), *_as_names(value)]
        else:
            settings[key] = value
    return settings


def build_policy(settings: Dict[str, Any]) -> Policy:
    """Construct the run's Policy from merged settings.

    ``minAge`` overrides are raw strings and go through ``parse_min_age``;
    file values were normalised by ``load_config`` and pass through
    unchanged.

    Raises:
        ConfigurationError: If any value is invalid
    """
    return Policy(
        min_age_days=parse_min_age(settings.get("minAge", DEFAULTS["minAge"])),
        mode=parse_mode(settings.get("mode", DEFAULTS["mode"])),
        excluded=frozenset(_as_names(settings.get("exclude"))),
        exact_install=_as_flag("exactInstall", settings.get("exactInstall", False)),
        fail_fast=_as_flag("failFast", settings.get("failFast", False)),
    )


def write_default_config(cwd: Path, min_age: Optional[str] = None, force: bool = False) -> Path:
    """Write ``guardian.config.json`` with default values."""
    path = Path(cwd) / CONFIG_FILES[0]
    if path.exists() and not force:
        raise ConfigurationError(f"{path.name} already exists (use --force to overwrite)")

    values = {
        "minAge": min_age if min_age is not None else DEFAULTS["minAge"],
        "mode": DEFAULTS["mode"],
        "exclude": [],
        "exactInstall": DEFAULTS["exactInstall"],
    }
    # Reject bad values before writing them.
    parse_min_age(values["minAge"])
    with open(path, "w", encoding="utf-8") as f:
        json.dump(values, f, indent=2)
        f.write("\n")
    return path
