"""
BIOCARD Stream Loader
=====================

Reads the BIOCARD source files and normalizes each stream to canonical
column names using the source-table dictionary.
"""

import pandas as pd
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import logging

from biocard_alignment.config.alignment_config import (
    STREAM_CODES,
    SUBJECT_ID,
    date_column,
)
from biocard_alignment.processing.subject_ids import normalize_subject_ids

logger = logging.getLogger(__name__)

# Stream -> (mean column, left column, right column)
BILATERAL_MEASURES: Dict[str, List[Tuple[str, str, str]]] = {
    'hippocampus': [('bi_hippo', 'l_hippo', 'r_hippo')],
    'amygdala': [('bi_amy', 'l_amy', 'r_amy')],
    'entorhinal': [
        ('bi_ec_vol', 'l_ec_vol', 'r_ec_vol'),
        ('bi_ec_thick', 'l_ec_thick', 'r_ec_thick'),
    ],
}

# Date cells of spreadsheets read as text
SPREADSHEET_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def find_source_file(data_dir: Union[str, Path], pattern: str) -> Path:
    """
    Locate the source file for a stream.

    Args:
        data_dir: Directory holding the source files
        pattern: Glob pattern from the source-table dictionary

    Returns:
        First matching file in name order
    """
    matches = sorted(p for p in Path(data_dir).glob(pattern) if p.is_file())
    if not matches:
        raise FileNotFoundError(f"No file matching {pattern!r} in {data_dir}")
    if len(matches) > 1:
        logger.warning(f"{len(matches)} files match {pattern!r}; using {matches[0].name}")
    return matches[0]


def read_source_file(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read a source file, dispatching on its suffix.

    Text formats are read as strings; typing happens in normalize_stream.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == '.parquet':
        return pd.read_parquet(path)
    if suffix == '.csv':
        return pd.read_csv(path, dtype=str, low_memory=False)
    if suffix == '.txt':
        return pd.read_csv(path, sep='|', dtype=str, low_memory=False)
    if suffix in ('.xls', '.xlsx'):
        return pd.read_excel(path, dtype=str)
    raise ValueError(f"Unsupported source file type: {path.name}")


def add_bilateral_means(df: pd.DataFrame, stream: str) -> pd.DataFrame:
    """Add mean of left and right measurements for MRI streams."""
    result = df
    for mean_col, left_col, right_col in BILATERAL_MEASURES.get(stream, []):
        if left_col in result.columns and right_col in result.columns:
            result = result.assign(**{mean_col: (result[left_col] + result[right_col]) / 2})
    return result


def normalize_stream(df: pd.DataFrame, stream: str, entry: Dict) -> pd.DataFrame:
    """
    Rename, type and trim one raw stream table.

    Args:
        df: Raw table as read from the source file
        stream: Stream name (key of STREAM_CODES)
        entry: That stream's entry in the source-table dictionary

    Returns:
        Table with subject_id (str), date_<code> for dated streams,
        canonical measurement columns and bilateral means
    """
    result = df.copy()

    if entry.get('date'):
        date_col = date_column(stream)
        raw_dates = result[entry['date']]
        parsed = pd.to_datetime(raw_dates, format=entry.get('date_format'), errors='coerce')
        retry = parsed.isna() & raw_dates.notna()
        if retry.any():
            parsed[retry] = pd.to_datetime(raw_dates[retry], format=SPREADSHEET_DATE_FORMAT, errors='coerce')
        n_bad = int((parsed.isna() & raw_dates.notna()).sum())
        if n_bad:
            logger.warning(f"{stream}: {n_bad} unparseable dates in {entry['date']}")
        result = result.drop(columns=[entry['date']])
        result[date_col] = parsed

    renames = dict(entry.get('rename') or {})
    renames[entry['subject_id']] = SUBJECT_ID
    result = result.rename(columns=renames)

    for col in entry.get('numeric') or []:
        if col in result.columns:
            result[col] = pd.to_numeric(result[col], errors='coerce')

    drop = [col for col in entry.get('drop') or [] if col in result.columns]
    result = result.drop(columns=drop)

    result[SUBJECT_ID] = normalize_subject_ids(result[SUBJECT_ID])

    return add_bilateral_means(result, stream)


def load_streams(
    data_dir: Union[str, Path],
    source_tables: Dict,
    streams: Optional[List[str]] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Load and normalize every stream.

    Args:
        data_dir: Directory holding the source files
        source_tables: Parsed source-table dictionary
        streams: Streams to load (default: all of STREAM_CODES)

    Returns:
        Stream name -> normalized table
    """
    loaded = {}
    for stream in streams or list(STREAM_CODES):
        entry = source_tables[stream]
        path = find_source_file(data_dir, entry['pattern'])
        raw = read_source_file(path)
        loaded[stream] = normalize_stream(raw, stream, entry)
        logger.info(f"Loaded {stream}: {len(raw):,} records from {path.name}")
    return loaded


def load_exclusion_lists(
    data_dir: Union[str, Path],
    source_tables: Dict,
) -> Tuple[List[str], List[str]]:
    """
    Load subject ids of exclusion list A and list B.

    Returns:
        (list_a, list_b) as lists of string ids
    """
    lists = []
    for name in ('list_a', 'list_b'):
        entry = source_tables['exclusion_lists'][name]
        raw = read_source_file(find_source_file(data_dir, entry['pattern']))
        ids = normalize_subject_ids(raw[entry['subject_id']]).dropna().tolist()
        logger.info(f"Loaded exclusion {name}: {len(ids)} subjects")
        lists.append(ids)
    return lists[0], lists[1]
