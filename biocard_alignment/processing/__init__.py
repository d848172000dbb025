"""Window construction, matching and cohort covariates."""

from .window_builder import build_windows, in_window_mask
from .matcher import (
    AmbiguousJoinWarning,
    match_stream,
    match_static,
    merge_streams,
)
from .derived_variables import add_derived_fields, classify_age_group
from .apoe_mapper import add_apoe, map_apoe
from .exclusion_filter import flag_excluded
from .subject_ids import normalize_subject_ids

__all__ = [
    'build_windows',
    'in_window_mask',
    'AmbiguousJoinWarning',
    'match_stream',
    'match_static',
    'merge_streams',
    'add_derived_fields',
    'classify_age_group',
    'add_apoe',
    'map_apoe',
    'flag_excluded',
    'normalize_subject_ids',
]
