"""Baseline window construction around anchor-stream visits."""
import logging
from typing import Tuple

import numpy as np
import pandas as pd

from biocard_alignment.config.alignment_config import SUBJECT_ID

logger = logging.getLogger(__name__)

# Default half-width of a matching window (days)
DEFAULT_WINDOW_DAYS = 730

WINDOW_COLUMNS = [
    SUBJECT_ID,
    "baseline_date",
    "window_start",
    "window_end",
    "window_index",
    "anchor_row",
]


def in_window_mask(
    dates: pd.Series,
    window_start: pd.Series,
    window_end: pd.Series,
) -> pd.Series:
    """True where a date lies in its [window_start, window_end] (both bounds inclusive).

    Missing dates are never inside.
    """
    return dates.notna() & (dates >= window_start) & (dates <= window_end)


def build_windows(
    anchor_df: pd.DataFrame,
    date_col: str,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> Tuple[pd.DataFrame, int]:
    """Build one baseline window per dated anchor record.

    Each anchor record's date is its baseline; the window spans
    window_days either side of it. Records without a date cannot
    anchor a window and are skipped, as are records without a subject_id.

    Args:
        anchor_df: Anchor stream with subject_id and date_col
        date_col: Name of the anchor date column
        window_days: Half-width of the window in days

    Returns:
        (windows, n_skipped). windows has WINDOW_COLUMNS, sorted by
        subject then baseline; anchor_row is the record's position in
        anchor_df, window_index its 0-based position within the subject.
    """
    if window_days <= 0:
        raise ValueError(f"window_days must be positive, got {window_days}")

    anchors = anchor_df[[SUBJECT_ID, date_col]].reset_index(drop=True)
    baseline = pd.to_datetime(anchors[date_col], errors="coerce")
    undated = baseline.isna()
    no_id = anchors[SUBJECT_ID].isna()
    skipped = (undated | no_id).to_numpy()

    if undated.any():
        logger.warning(f"Skipped {int(undated.sum())} anchor records without a valid {date_col}")
    if (no_id & ~undated).any():
        logger.warning(f"Skipped {int((no_id & ~undated).sum())} anchor records without a {SUBJECT_ID}")
    n_skipped = int(skipped.sum())

    offset = pd.Timedelta(days=window_days)
    windows = pd.DataFrame({
        SUBJECT_ID: anchors.loc[~skipped, SUBJECT_ID],
        "baseline_date": baseline[~skipped],
        "anchor_row": np.arange(len(anchors))[~skipped],
    })
    windows["window_start"] = windows["baseline_date"] - offset
    windows["window_end"] = windows["baseline_date"] + offset

    windows = windows.sort_values(
        [SUBJECT_ID, "baseline_date", "anchor_row"], kind="mergesort"
    ).reset_index(drop=True)
    windows["window_index"] = windows.groupby(SUBJECT_ID).cumcount()

    if windows.empty:
        logger.info("Anchor stream has no dated records; analysis dataset will be empty")
    else:
        logger.info(
            f"Built {len(windows):,} windows for {windows[SUBJECT_ID].nunique():,} subjects "
            f"(+/-{window_days} days)"
        )

    return windows[WINDOW_COLUMNS], n_skipped
