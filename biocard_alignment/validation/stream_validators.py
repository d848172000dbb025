"""
Stream Validators
=================

Schema checks on the loaded streams and invariant checks on the
aligned analysis dataset.

Validation targets:
- Streams: every expected canonical column is present
- Dataset: window_start <= baseline_date <= window_end
- Dataset: matched stream dates lie inside their window
- Dataset: year is never negative
"""

import pandas as pd
from typing import Dict, Iterable, List

from biocard_alignment.config.alignment_config import (
    DATED_STREAMS,
    date_column,
)
from biocard_alignment.processing.window_builder import in_window_mask


class ValidationResult:
    """Container for validation results."""

    def __init__(self, name: str):
        self.name = name
        self.checks = []
        self.passed = 0
        self.failed = 0

    def add_check(self, description: str, passed: bool, details: str = ""):
        """Add a validation check result."""
        self.checks.append({
            'description': description,
            'passed': passed,
            'details': details,
        })
        if passed:
            self.passed += 1
        else:
            self.failed += 1

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def summary(self) -> str:
        status = "PASS" if self.ok else "FAIL"
        return f"{self.name}: {status} ({self.passed}/{self.passed + self.failed} checks)"

    def report(self) -> str:
        """Get full report string."""
        lines = [f"\n{'='*60}", f"{self.name}", "="*60]
        for check in self.checks:
            icon = "✓" if check['passed'] else "✗"
            lines.append(f"  {icon} {check['description']}")
            if check['details']:
                lines.append(f"      {check['details']}")
        lines.append(self.summary())
        return "\n".join(lines)


def missing_columns(df: pd.DataFrame, expected: Iterable[str]) -> List[str]:
    return [col for col in expected if col not in df.columns]


def check_stream_columns(
    result: ValidationResult,
    df: pd.DataFrame,
    stream: str,
    expected: Iterable[str],
) -> ValidationResult:
    """Record whether a stream carries all of its expected columns."""
    missing = missing_columns(df, expected)
    result.add_check(
        f"{stream}: expected columns present",
        not missing,
        f"Missing: {', '.join(missing)}" if missing else f"{len(df):,} records",
    )
    return result


def validate_streams(
    streams: Dict[str, pd.DataFrame],
    source_tables: Dict,
) -> ValidationResult:
    """Check every loaded stream against its expected canonical columns."""
    result = ValidationResult("Source streams")
    for stream, df in streams.items():
        expected = (source_tables.get(stream) or {}).get('expected') or []
        check_stream_columns(result, df, stream, expected)
    return result


def validate_analysis_dataset(data: pd.DataFrame) -> ValidationResult:
    """Check the alignment invariants on an analysis table."""
    result = ValidationResult("Analysis dataset")

    if data.empty:
        result.add_check("Analysis dataset has rows", False, "Empty (no anchor windows)")
        return result

    # Check 1: baseline inside its own window
    ordered = (
        (data['window_start'] <= data['baseline_date'])
        & (data['baseline_date'] <= data['window_end'])
    )
    result.add_check(
        "Baselines lie inside their windows",
        bool(ordered.all()),
        f"Violations: {int((~ordered).sum())}",
    )

    # Check 2: matched dates inside window
    for stream in DATED_STREAMS:
        col = date_column(stream)
        if col not in data.columns:
            continue
        dates = pd.to_datetime(data[col], errors='coerce')
        outside = dates.notna() & ~in_window_mask(dates, data['window_start'], data['window_end'])
        result.add_check(
            f"{col} matches lie inside their windows",
            not outside.any(),
            f"Coverage: {dates.notna().mean()*100:.1f}%, outside: {int(outside.sum())}",
        )

    # Check 3: elapsed year clipped at zero
    if 'year' in data.columns:
        negative = pd.to_numeric(data['year'], errors='coerce') < 0
        result.add_check(
            "year is never negative",
            not negative.any(),
            f"Negative: {int(negative.sum())}",
        )

    return result
