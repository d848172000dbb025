"""Nearest-in-window matching of measurement streams onto baseline windows."""
import logging
import warnings
from typing import Dict, List, Mapping, Tuple

import numpy as np
import pandas as pd

from biocard_alignment.config.alignment_config import (
    MATCH_ORDER,
    STATIC_STREAMS,
    SUBJECT_ID,
    date_column,
)
from biocard_alignment.processing.window_builder import in_window_mask

logger = logging.getLogger(__name__)


class AmbiguousJoinWarning(UserWarning):
    """A subject has several records in a stream that carries no date."""


def _assign_to_closest_window(pairs: pd.DataFrame) -> pd.DataFrame:
    """Keep each candidate only in its closest window.

    Ties go to the earlier baseline, then the earlier window.
    """
    return (
        pairs.sort_values(["_row", "_distance", "baseline_date", "_window"], kind="mergesort")
        .drop_duplicates("_row", keep="first")
    )


def match_stream(
    windows: pd.DataFrame,
    stream_df: pd.DataFrame,
    date_col: str,
    overlap: bool = False,
) -> pd.DataFrame:
    """Select at most one record of a dated stream for every window.

    A record is a candidate for a window when it belongs to the same
    subject and its date lies in [window_start, window_end]. Records
    without a subject_id or a date are never candidates. The winner
    is the candidate closest to the baseline; ties go to the earlier
    date, then to the earlier row of stream_df.

    Without overlap, a record that falls inside several windows of its
    subject is first given to the window with the closest baseline, so
    it can be matched at most once per subject.

    Args:
        windows: Output of build_windows
        stream_df: Stream records with subject_id and date_col
        date_col: Stream date column
        overlap: Resolve every window independently

    Returns:
        DataFrame indexed like windows holding the matched record's
        columns (all but subject_id); rows without a match are null.
    """
    if date_col not in stream_df.columns:
        raise ValueError(f"Stream has no date column {date_col!r}")

    candidates = stream_df.reset_index(drop=True)
    candidates = candidates.assign(
        _row=np.arange(len(candidates)),
        **{date_col: pd.to_datetime(candidates[date_col], errors="coerce")},
    )

    keys = windows[[SUBJECT_ID, "baseline_date", "window_start", "window_end"]].assign(
        _window=windows.index
    )
    pairs = keys.merge(
        candidates.loc[
            candidates[date_col].notna() & candidates[SUBJECT_ID].notna(),
            [SUBJECT_ID, date_col, "_row"],
        ],
        on=SUBJECT_ID,
        how="inner",
    )
    pairs = pairs[in_window_mask(pairs[date_col], pairs["window_start"], pairs["window_end"])]
    pairs = pairs.assign(_distance=(pairs[date_col] - pairs["baseline_date"]).abs())

    if not overlap:
        pairs = _assign_to_closest_window(pairs)

    best = (
        pairs.sort_values(["_window", "_distance", date_col, "_row"], kind="mergesort")
        .drop_duplicates("_window", keep="first")
    )

    matched = (
        best[["_window", "_row"]]
        .merge(candidates.drop(columns=[SUBJECT_ID]), on="_row", how="left")
        .set_index("_window")
        .drop(columns=["_row"])
        .reindex(windows.index)
    )
    matched.index.name = None

    logger.info(
        f"Matched {date_col}: {len(best):,}/{len(windows):,} windows "
        f"({'overlapping' if overlap else 'exclusive'} windows)"
    )
    return matched


def collapse_static(static_df: pd.DataFrame, stream: str) -> Tuple[pd.DataFrame, int]:
    """Reduce an undated stream to one record per subject, last record wins.

    Returns:
        (collapsed, n_ambiguous) where n_ambiguous counts subjects that
        had more than one record.
    """
    counts = static_df[SUBJECT_ID].value_counts()
    n_ambiguous = int((counts > 1).sum())
    if n_ambiguous:
        msg = f"{n_ambiguous} subjects have multiple {stream} records; keeping the last one"
        logger.warning(msg)
        warnings.warn(msg, AmbiguousJoinWarning, stacklevel=2)

    return static_df.drop_duplicates(SUBJECT_ID, keep="last"), n_ambiguous


def match_static(
    windows: pd.DataFrame,
    static_df: pd.DataFrame,
    stream: str,
) -> Tuple[pd.DataFrame, int]:
    """Join an undated stream onto windows by subject_id only.

    Records without a subject_id are ignored.

    Returns:
        (matched, n_ambiguous); matched is indexed like windows.
    """
    collapsed, n_ambiguous = collapse_static(static_df[static_df[SUBJECT_ID].notna()], stream)
    matched = windows[[SUBJECT_ID]].merge(collapsed, on=SUBJECT_ID, how="left")
    matched.index = windows.index
    return matched.drop(columns=[SUBJECT_ID]), n_ambiguous


def attach_columns(
    merged: pd.DataFrame,
    incoming: pd.DataFrame,
    stream: str,
    column_sources: Mapping[str, str],
) -> Tuple[pd.DataFrame, Dict[str, str], List[str]]:
    """Append a stream's columns to the merged table, first contributor wins.

    Args:
        merged: Table built so far
        incoming: Columns from one stream, indexed like merged
        stream: Name of the contributing stream
        column_sources: Column -> stream that contributed it

    Returns:
        (merged, column_sources, dropped) where dropped lists incoming
        columns discarded because an earlier stream already owns them.
    """
    sources = dict(column_sources)
    dropped = [col for col in incoming.columns if col in merged.columns]
    kept = [col for col in incoming.columns if col not in merged.columns]
    for col in kept:
        sources[col] = stream

    if dropped:
        logger.debug(
            f"{stream}: dropped {len(dropped)} duplicate columns "
            f"({', '.join(f'{c} kept from {sources.get(c)}' for c in dropped)})"
        )

    return pd.concat([merged, incoming[kept]], axis=1), sources, dropped


def merge_streams(
    windows: pd.DataFrame,
    streams: Mapping[str, pd.DataFrame],
    anchor_stream: str,
    overlap: bool = False,
) -> Tuple[pd.DataFrame, Dict[str, str], Dict[str, int]]:
    """Build one merged row per window from every stream.

    The anchor record's own fields are attached first, then each other
    stream in MATCH_ORDER: dated streams by nearest-in-window matching,
    demographics and genetics by subject_id.

    Args:
        windows: Output of build_windows
        streams: Stream name -> normalized table
        anchor_stream: Stream the windows were built from
        overlap: Resolve windows independently

    Returns:
        (merged, column_sources, ambiguous_subjects)
    """
    merged = windows.copy()
    column_sources = {col: "window" for col in windows.columns}
    ambiguous_subjects: Dict[str, int] = {}

    anchor_fields = (
        streams[anchor_stream]
        .reset_index(drop=True)
        .drop(columns=[SUBJECT_ID])
        .iloc[windows["anchor_row"].to_numpy()]
        .set_index(windows.index)
    )
    merged, column_sources, _ = attach_columns(merged, anchor_fields, anchor_stream, column_sources)

    for stream in MATCH_ORDER:
        if stream == anchor_stream:
            continue
        if stream not in streams:
            logger.warning(f"Stream {stream!r} not provided; its fields are omitted")
            continue

        if stream in STATIC_STREAMS:
            matched, n_ambiguous = match_static(windows, streams[stream], stream)
            ambiguous_subjects[stream] = n_ambiguous
        else:
            matched = match_stream(windows, streams[stream], date_column(stream), overlap)

        merged, column_sources, _ = attach_columns(merged, matched, stream, column_sources)

    merged = merged.drop(columns=["anchor_row"])
    column_sources.pop("anchor_row", None)

    return merged, column_sources, ambiguous_subjects
