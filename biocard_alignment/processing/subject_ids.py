"""Subject id normalization shared by loading, matching and exclusion."""
import re
from typing import Optional

import numpy as np
import pandas as pd

# Whole number written with a zero fraction, e.g. "1.0"
_ZERO_FRACTION = re.compile(r"^(-?\d+)\.0*$")


def normalize_subject_id(value) -> Optional[str]:
    """Canonical string form of one subject id.

    Whole-number floats render as integers (1.0 -> "1"), strings are
    stripped, and missing or blank ids become None.
    """
    if value is None:
        return None
    if isinstance(value, (float, np.floating)):
        if np.isnan(value):
            return None
        if float(value).is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if pd.isna(value):
        return None

    text = str(value).strip()
    if not text:
        return None
    match = _ZERO_FRACTION.match(text)
    return match.group(1) if match else text


def normalize_subject_ids(ids: pd.Series) -> pd.Series:
    """Vectorised normalize_subject_id; result is object dtype with None for missing."""
    return ids.map(normalize_subject_id).astype(object)
