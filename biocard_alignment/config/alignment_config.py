"""
BIOCARD Alignment Configuration
===============================

Central configuration for aligning BIOCARD measurement streams to
baseline visit windows.
"""

from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import yaml


# =============================================================================
# PATH CONFIGURATION
# =============================================================================

MODULE_ROOT = Path(__file__).parent.parent
DATA_DIR = MODULE_ROOT.parent / "Data" / "biocard"
OUTPUT_DIR = MODULE_ROOT.parent / "outputs" / "biocard"

CONFIG_DIR = MODULE_ROOT / "config"
SOURCE_TABLES_YAML = CONFIG_DIR / "source_tables.yaml"


# =============================================================================
# STREAM REGISTRY
# =============================================================================

# Stream name -> short code used in column names (date_<code>)
STREAM_CODES: Dict[str, str] = {
    'cognitive': 'cog',
    'diagnosis': 'diag',
    'csf': 'csf',
    'hippocampus': 'hippo',
    'amygdala': 'amy',
    'entorhinal': 'ec',
    'demographics': 'demo',
    'genetics': 'ge',
}

# Streams indexed by visit date; any of these can anchor the windows
DATED_STREAMS: List[str] = [
    'cognitive',
    'diagnosis',
    'csf',
    'hippocampus',
    'amygdala',
    'entorhinal',
]

# Subject-level streams joined without a date constraint
STATIC_STREAMS: List[str] = ['demographics', 'genetics']

# Join order; earlier streams win column conflicts
MATCH_ORDER: List[str] = [
    'diagnosis',
    'cognitive',
    'csf',
    'hippocampus',
    'amygdala',
    'entorhinal',
] + STATIC_STREAMS

SUBJECT_ID = 'subject_id'

# Stream whose matched date drives the elapsed study year
YEAR_SOURCE_STREAM = 'cognitive'


def date_column(stream: str) -> str:
    """Canonical date column name for a stream, e.g. 'date_cog'."""
    return f"date_{STREAM_CODES[stream]}"


# =============================================================================
# ALIGNMENT CONFIGURATION
# =============================================================================

@dataclass
class AlignmentConfig:
    """Anchor stream and window settings."""

    anchor_stream: str = 'cognitive'

    # Half-width of the matching window around each baseline (days)
    window_days: int = 730

    # Allow one record to match several windows of the same subject
    overlap: bool = False

    def __post_init__(self):
        if self.anchor_stream not in DATED_STREAMS:
            raise ValueError(
                f"Unknown anchor stream: {self.anchor_stream!r}. "
                f"Expected one of {DATED_STREAMS}"
            )
        whole = not isinstance(self.window_days, bool) and int(self.window_days) == self.window_days
        if not whole or self.window_days <= 0:
            raise ValueError(f"window_days must be a positive integer, got {self.window_days!r}")
        self.window_days = int(self.window_days)

    @property
    def anchor_date_column(self) -> str:
        return date_column(self.anchor_stream)


ALIGNMENT_CONFIG = AlignmentConfig()


# =============================================================================
# COHORT COVARIATES
# =============================================================================

# (label, lower inclusive, upper exclusive); None means unbounded
AGE_GROUP_BINS: List[Tuple[str, Optional[int], Optional[int]]] = [
    ('under 10', None, 10),
    ('10-19', 10, 20),
    ('20-29', 20, 30),
    ('30-39', 30, 40),
    ('40-49', 40, 50),
    ('50-59', 50, 60),
    ('60-69', 60, 70),
    ('70-79', 70, 80),
    ('80-89', 80, 90),
    ('above 89', 90, None),
]

SEX_LABELS: Dict[int, str] = {
    1: 'Male',
    2: 'Female',
}


@dataclass
class ApoeConfig:
    """Genotype code -> risk-allele category lookup."""

    # Codes absent from this map, or mapped to None, become missing
    mapping: Dict[str, Optional[int]] = field(default_factory=lambda: {
        '3.4': 1,
        '4.4': 2,
        '2.4': None,
    })

    source_column: str = 'apoecode'
    target_column: str = 'apoe'


APOE_CONFIG = ApoeConfig()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def load_source_tables(path: Optional[Path] = None) -> Dict:
    """Load the source-table dictionary (file patterns, column maps) from YAML."""
    path = Path(path) if path else SOURCE_TABLES_YAML
    with open(path, 'r') as f:
        return yaml.safe_load(f)


def ensure_directories(output_dir: Optional[Path] = None):
    """Create the output directory."""
    (Path(output_dir) if output_dir else OUTPUT_DIR).mkdir(parents=True, exist_ok=True)
