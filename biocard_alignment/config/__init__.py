"""
BIOCARD Alignment Configuration Package
"""

from .alignment_config import (
    # Paths
    MODULE_ROOT,
    DATA_DIR,
    OUTPUT_DIR,
    SOURCE_TABLES_YAML,

    # Stream registry
    STREAM_CODES,
    DATED_STREAMS,
    STATIC_STREAMS,
    MATCH_ORDER,
    SUBJECT_ID,
    YEAR_SOURCE_STREAM,
    date_column,

    # Configs
    AlignmentConfig,
    ALIGNMENT_CONFIG,
    AGE_GROUP_BINS,
    SEX_LABELS,
    ApoeConfig,
    APOE_CONFIG,

    # Helpers
    load_source_tables,
    ensure_directories,
)
