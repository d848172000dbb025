"""Source file loading for BIOCARD streams."""

from .stream_loader import (
    find_source_file,
    read_source_file,
    normalize_stream,
    add_bilateral_means,
    load_streams,
    load_exclusion_lists,
)

__all__ = [
    'find_source_file',
    'read_source_file',
    'normalize_stream',
    'add_bilateral_means',
    'load_streams',
    'load_exclusion_lists',
]
