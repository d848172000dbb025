"""APOE genotype code to risk-allele category mapping."""
from typing import Dict, Optional

import pandas as pd

from biocard_alignment.config.alignment_config import APOE_CONFIG, ApoeConfig


def normalize_genotype_code(code) -> Optional[str]:
    """Canonical string form of a genotype code.

    3.4, '3.4' and ' 3.40 ' all normalize to '3.4'.
    """
    if code is None or pd.isna(code):
        return None
    try:
        return f"{float(code):g}"
    except (TypeError, ValueError):
        return str(code).strip()


def map_apoe(codes: pd.Series, mapping: Optional[Dict] = None) -> pd.Series:
    """Map raw genotype codes to categories; unlisted codes become missing.

    Args:
        codes: Raw genotype codes
        mapping: Code -> category (default: APOE_CONFIG.mapping)

    Returns:
        Nullable integer Series aligned with codes
    """
    mapping = APOE_CONFIG.mapping if mapping is None else mapping
    lookup = {normalize_genotype_code(k): v for k, v in mapping.items()}

    categories = [lookup.get(normalize_genotype_code(code)) for code in codes]
    return pd.Series(pd.array(categories, dtype="Int64"), index=codes.index)


def add_apoe(df: pd.DataFrame, config: ApoeConfig = APOE_CONFIG) -> pd.DataFrame:
    """Add the apoe category column from the raw genotype column."""
    result = df.copy()
    codes = result[config.source_column] if config.source_column in result.columns \
        else pd.Series(None, index=result.index, dtype=object)
    result[config.target_column] = map_apoe(codes, config.mapping)
    return result
