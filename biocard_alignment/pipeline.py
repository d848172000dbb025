# pipeline.py
"""
BIOCARD Alignment Pipeline
==========================

Builds the longitudinal analysis dataset: baseline windows from the
anchor stream, nearest-in-window matching of every other stream,
cohort covariates and the exclusion flag.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd

from biocard_alignment.config.alignment_config import (
    ALIGNMENT_CONFIG,
    APOE_CONFIG,
    DATA_DIR,
    DATED_STREAMS,
    OUTPUT_DIR,
    SUBJECT_ID,
    AlignmentConfig,
    ApoeConfig,
    ensure_directories,
    load_source_tables,
)
from biocard_alignment.extractors.stream_loader import load_exclusion_lists, load_streams
from biocard_alignment.processing.apoe_mapper import add_apoe
from biocard_alignment.processing.derived_variables import add_derived_fields
from biocard_alignment.processing.exclusion_filter import flag_excluded
from biocard_alignment.processing.matcher import merge_streams
from biocard_alignment.processing.subject_ids import normalize_subject_ids
from biocard_alignment.processing.window_builder import build_windows
from biocard_alignment.validation.stream_validators import (
    validate_analysis_dataset,
    validate_streams,
)

logger = logging.getLogger(__name__)


@dataclass
class AnalysisDataset:
    """Aligned analysis table with its provenance."""
    data: pd.DataFrame
    anchor_stream: str
    window_size: int
    overlap: bool
    dataset_type: str = 'biocard'
    skipped_anchor_records: int = 0
    ambiguous_subjects: Dict[str, int] = field(default_factory=dict)
    column_sources: Dict[str, str] = field(default_factory=dict)

    def metadata(self) -> Dict:
        """Provenance of the table: anchor stream, window size, overlap mode."""
        return {
            'anchor_stream': self.anchor_stream,
            'window_size': self.window_size,
            'overlap': self.overlap,
        }

    def audit(self) -> Dict:
        return {
            **self.metadata(),
            'dataset_type': self.dataset_type,
            'n_rows': len(self.data),
            'n_subjects': int(self.data[SUBJECT_ID].nunique()) if len(self.data) else 0,
            'skipped_anchor_records': self.skipped_anchor_records,
            'ambiguous_subjects': self.ambiguous_subjects,
            'column_sources': self.column_sources,
        }


class BiocardAlignmentPipeline:
    """Main pipeline for BIOCARD longitudinal alignment."""

    def __init__(
        self,
        config: AlignmentConfig = ALIGNMENT_CONFIG,
        apoe_config: ApoeConfig = APOE_CONFIG,
        source_tables_path: Optional[str] = None,
    ):
        """
        Initialize pipeline.

        Args:
            config: Anchor stream, window size and overlap mode
            apoe_config: Genotype lookup
            source_tables_path: Optional YAML overriding the default
                source-table dictionary
        """
        self.config = config
        self.apoe_config = apoe_config
        self.source_tables_path = Path(source_tables_path) if source_tables_path else None

    def process_data(
        self,
        streams: Dict[str, pd.DataFrame],
        list_a: Iterable = (),
        list_b: Iterable = (),
    ) -> AnalysisDataset:
        """
        Align pre-loaded streams.

        Args:
            streams: Stream name -> normalized table
            list_a: Subject ids of exclusion list A
            list_b: Subject ids of exclusion list B

        Returns:
            AnalysisDataset with one row per anchor visit
        """
        anchor = self.config.anchor_stream
        if anchor not in streams:
            raise ValueError(f"Anchor stream {anchor!r} not among provided streams {sorted(streams)}")

        streams = {
            name: df.assign(**{SUBJECT_ID: normalize_subject_ids(df[SUBJECT_ID])})
            for name, df in streams.items()
        }

        windows, n_skipped = build_windows(
            streams[anchor], self.config.anchor_date_column, self.config.window_days
        )
        merged, column_sources, ambiguous = merge_streams(
            windows, streams, anchor, self.config.overlap
        )

        merged = add_apoe(merged, self.apoe_config)
        merged = flag_excluded(merged, list_a, list_b)
        merged = add_derived_fields(merged)

        return AnalysisDataset(
            data=merged.reset_index(drop=True),
            anchor_stream=anchor,
            window_size=self.config.window_days,
            overlap=self.config.overlap,
            skipped_anchor_records=n_skipped,
            ambiguous_subjects=ambiguous,
            column_sources=column_sources,
        )

    def run(
        self,
        data_dir: Optional[str] = None,
        output_dir: Optional[str] = None,
    ) -> AnalysisDataset:
        """
        Run the full alignment pipeline.

        Args:
            data_dir: Directory holding the BIOCARD source files
            output_dir: Output directory (default: OUTPUT_DIR)

        Returns:
            AnalysisDataset
        """
        print("=" * 60)
        print("BIOCARD Longitudinal Alignment")
        print("=" * 60)

        data_dir = Path(data_dir) if data_dir else DATA_DIR
        output_dir = Path(output_dir) if output_dir else OUTPUT_DIR
        ensure_directories(output_dir)

        print(f"\n1. Loading streams from {data_dir}...")
        source_tables = load_source_tables(self.source_tables_path)
        streams = load_streams(data_dir, source_tables)
        list_a, list_b = load_exclusion_lists(data_dir, source_tables)

        checks = validate_streams(streams, source_tables)
        if not checks.ok:
            print(checks.report())

        print(f"\n2. Merging analysis dataset on {self.config.anchor_stream} "
              f"(+/-{self.config.window_days} days, overlap={self.config.overlap})...")
        dataset = self.process_data(streams, list_a, list_b)

        invariants = validate_analysis_dataset(dataset.data)
        logger.info(invariants.summary())

        print(f"\n3. Saving to {output_dir}...")
        output_path = output_dir / "biocard_analysis_dataset.parquet"
        dataset.data.to_parquet(output_path, index=False)
        metadata_path = output_dir / "biocard_analysis_metadata.json"
        with open(metadata_path, 'w') as f:
            json.dump(dataset.audit(), f, indent=2)

        print("\n" + "=" * 60)
        print("Alignment Summary")
        print("=" * 60)
        print(f"   Rows: {len(dataset.data):,}")
        if len(dataset.data):
            print(f"   Subjects: {dataset.data[SUBJECT_ID].nunique():,}")
            print(f"   Flagged for exclusion: {dataset.data['exclude'].mean():.1%}")
        if dataset.skipped_anchor_records:
            print(f"   Anchor records without a date: {dataset.skipped_anchor_records}")
        for stream, n in dataset.ambiguous_subjects.items():
            if n:
                print(f"   Subjects with multiple {stream} records: {n}")
        print(f"\n   Output: {output_path}")
        print("=" * 60)

        return dataset


# =============================================================================
# CLI
# =============================================================================

def main(argv=None):
    """Main entry point for CLI."""
    import argparse

    parser = argparse.ArgumentParser(description="Build the BIOCARD analysis dataset")
    parser.add_argument('--data-dir', type=str, default=None, help='Directory with source files')
    parser.add_argument('--output-dir', type=str, default=None, help='Output directory')
    parser.add_argument('--merge-by', choices=DATED_STREAMS, default='cognitive',
                        help='Anchor stream defining baseline visits')
    parser.add_argument('--window', type=int, default=730, help='Window half-width in days')
    parser.add_argument('--overlap', action='store_true', help='Allow overlapping windows')
    parser.add_argument('--source-tables', type=str, default=None,
                        help='YAML source-table dictionary')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    config = AlignmentConfig(
        anchor_stream=args.merge_by,
        window_days=args.window,
        overlap=args.overlap,
    )
    pipeline = BiocardAlignmentPipeline(config, source_tables_path=args.source_tables)
    pipeline.run(data_dir=args.data_dir, output_dir=args.output_dir)


if __name__ == "__main__":
    main()
