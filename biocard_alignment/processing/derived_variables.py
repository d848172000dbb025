"""Cohort covariates derived from merged baseline rows."""
from typing import Optional

import pandas as pd

from biocard_alignment.config.alignment_config import (
    AGE_GROUP_BINS,
    SEX_LABELS,
    SUBJECT_ID,
    YEAR_SOURCE_STREAM,
    date_column,
)


def classify_age_group(age: Optional[float]) -> Optional[str]:
    """Map an age in years to its decade bin.

    Args:
        age: Age in years

    Returns:
        Bin label from AGE_GROUP_BINS, None if age is missing
    """
    if age is None or pd.isna(age):
        return None
    for label, lower, upper in AGE_GROUP_BINS:
        if (lower is None or age >= lower) and (upper is None or age < upper):
            return label
    return None


def sex_label(code) -> Optional[str]:
    """Map a sex code (1/2, numeric or string) to its label."""
    if code is None or pd.isna(code):
        return None
    numeric = pd.to_numeric(code, errors="coerce")
    if pd.isna(numeric) or not float(numeric).is_integer():
        return None
    return SEX_LABELS.get(int(numeric))


def compute_age(df: pd.DataFrame) -> pd.Series:
    """Age at cohort entry: startyear - birthyear."""
    startyear = pd.to_numeric(df["startyear"], errors="coerce")
    birthyear = pd.to_numeric(df["birthyear"], errors="coerce")
    return startyear - birthyear


def assign_age_group(age: pd.Series) -> pd.Series:
    return age.apply(classify_age_group).astype(object)


def map_sex_group(sex: pd.Series) -> pd.Series:
    return sex.apply(sex_label).astype(object)


def assign_visit_index(df: pd.DataFrame) -> pd.Series:
    """1-based position of each row within its subject, in baseline order."""
    ordered = df.sort_values([SUBJECT_ID, "baseline_date"], kind="mergesort")
    visit = ordered.groupby(SUBJECT_ID).cumcount() + 1
    return visit.reindex(df.index)


def compute_study_year(df: pd.DataFrame) -> pd.Series:
    """Whole years from cohort entry to the matched cognitive visit.

    Always read from the cognitive stream's date, whichever stream
    anchored the windows. Visits before startyear count as year 0.
    """
    date_col = date_column(YEAR_SOURCE_STREAM)
    if date_col not in df.columns:
        return pd.Series(float("nan"), index=df.index)

    visit_year = pd.to_datetime(df[date_col], errors="coerce").dt.year
    startyear = pd.to_numeric(df["startyear"], errors="coerce")
    return (visit_year - startyear).clip(lower=0)


def add_derived_fields(df: pd.DataFrame) -> pd.DataFrame:
    """Add sex_group, age, age_group, visit and year columns.

    Args:
        df: Merged rows with subject_id, baseline_date and the
            demographic fields sex, birthyear, startyear

    Returns:
        Copy of df with the derived columns
    """
    result = df.copy()
    for col in ("sex", "birthyear", "startyear"):
        if col not in result.columns:
            result[col] = None

    result["sex_group"] = map_sex_group(result["sex"])
    result["age"] = compute_age(result)
    result["age_group"] = assign_age_group(result["age"])
    result["visit"] = assign_visit_index(result)
    result["year"] = compute_study_year(result)

    return result
