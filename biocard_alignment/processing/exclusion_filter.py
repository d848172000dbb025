"""Advisory exclusion flag from the study's exclusion lists."""
from typing import Iterable, Set

import pandas as pd

from biocard_alignment.config.alignment_config import SUBJECT_ID
from biocard_alignment.processing.subject_ids import normalize_subject_id, normalize_subject_ids


def build_exclusion_set(list_a: Iterable, list_b: Iterable) -> Set[str]:
    """Union of both lists, ids in normalized string form."""
    ids = {normalize_subject_id(subject_id) for subject_id in list(list_a) + list(list_b)}
    ids.discard(None)
    return ids


def flag_excluded(df: pd.DataFrame, list_a: Iterable, list_b: Iterable) -> pd.DataFrame:
    """Set exclude=True on rows whose subject is in either list.

    Rows are kept; dropping them is left to the analysis.
    """
    excluded = build_exclusion_set(list_a, list_b)
    result = df.copy()
    result["exclude"] = normalize_subject_ids(result[SUBJECT_ID]).isin(excluded).astype(bool)
    return result
