"""
Reporting and export utilities.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List

import pandas as pd

from .models import PackageOutcome


logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "specifier",
    "package",
    "status",
    "version",
    "age_days",
    "action",
    "severity",
    "error",
]


def outcomes_frame(outcomes: Iterable[PackageOutcome]) -> pd.DataFrame:
    return pd.DataFrame([outcome.as_row() for outcome in outcomes], columns=SUMMARY_COLUMNS)


def print_summary(command: str, outcomes: List[PackageOutcome]) -> None:
    if not outcomes:
        return
    df = outcomes_frame(outcomes)
    logger.info("=" * 60)
    logger.info("%s RESULTS", command.upper())
    logger.info("=" * 60)
    for row in df.itertuples(index=False):
        version = row.version if isinstance(row.version, str) else "-"
        line = f"{row.package:<30} {row.status:<10} {version}"
        if isinstance(row.error, str):
            logger.error("%s  %s", line, row.error)
        else:
            logger.info("%s", line)
    logger.info("-" * 60)
    counts = df["status"].value_counts()
    logger.info(
        "%s", ", ".join(f"{status}: {count}" for status, count in sorted(counts.items()))
    )
    logger.info("=" * 60)


def save_outcomes_json(outcomes: List[PackageOutcome], output_dir: Path, command: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    results_file = output_dir / f"guardian_{command}_results.json"
    with open(results_file, 'w') as f:
        json.dump([outcome.as_row() for outcome in outcomes], f, indent=2, default=str)
    return results_file


def export_outcomes_csv(outcomes: List[PackageOutcome], output_dir: Path, command: str) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    summary_file = output_dir / f"guardian_{command}_results.csv"
    outcomes_frame(outcomes).to_csv(summary_file, index=False, columns=SUMMARY_COLUMNS)
    return summary_file
