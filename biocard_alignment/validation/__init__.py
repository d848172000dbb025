"""Validation of loaded streams and aligned output."""

from .stream_validators import (
    ValidationResult,
    check_stream_columns,
    validate_streams,
    validate_analysis_dataset,
)

__all__ = [
    'ValidationResult',
    'check_stream_columns',
    'validate_streams',
    'validate_analysis_dataset',
]
