# tests/test_pipeline.py
"""Tests for main BiocardAlignmentPipeline."""

import json
import numpy as np
import pytest
import pandas as pd
from datetime import datetime

from biocard_alignment.config.alignment_config import AlignmentConfig
from biocard_alignment.pipeline import AnalysisDataset, BiocardAlignmentPipeline, main
from biocard_alignment.processing.matcher import AmbiguousJoinWarning


@pytest.fixture
def streams():
    """Small cohort: S and U have diagnosis visits, T only cognitive data."""
    return {
        'diagnosis': pd.DataFrame({
            'subject_id': ['S', 'S', 'U'],
            'date_diag': [datetime(2010, 1, 1), datetime(2012, 6, 1), datetime(2016, 3, 1)],
            'dx': ['NORMAL', 'MCI', 'NORMAL'],
        }),
        'cognitive': pd.DataFrame({
            'subject_id': ['S', 'S', 'T', 'U'],
            'date_cog': [
                datetime(2010, 3, 1), datetime(2013, 1, 1),
                datetime(2011, 1, 1), datetime(2016, 2, 1),
            ],
            'mmse': [29, 27, 30, 28],
        }),
        'csf': pd.DataFrame({
            'subject_id': ['S'],
            'date_csf': [datetime(2009, 11, 1)],
            'abeta': [450.0],
        }),
        'hippocampus': pd.DataFrame({
            'subject_id': ['U'],
            'date_hippo': [datetime(2016, 4, 1)],
            'bi_hippo': [3100.0],
        }),
        'amygdala': pd.DataFrame({
            'subject_id': pd.Series([], dtype=str),
            'date_amy': pd.Series([], dtype='datetime64[ns]'),
        }),
        'entorhinal': pd.DataFrame({
            'subject_id': ['S'],
            'date_ec': [datetime(2020, 1, 1)],
            'bi_ec_vol': [900.0],
        }),
        'demographics': pd.DataFrame({
            'subject_id': ['S', 'T', 'U'],
            'sex': [2, 1, 1],
            'birthyear': [1940, 1960, 1950],
            'startyear': [2011, 2009, 2015],
        }),
        'genetics': pd.DataFrame({
            'subject_id': ['S', 'U'],
            'apoecode': ['3.4', '2.2'],
        }),
    }


def make_pipeline(**kwargs):
    return BiocardAlignmentPipeline(AlignmentConfig(**kwargs))


class TestConfiguration:
    """Test configuration validation."""

    def test_unknown_anchor_rejected(self):
        with pytest.raises(ValueError):
            AlignmentConfig(anchor_stream='demographics')

    def test_non_positive_window_rejected(self):
        with pytest.raises(ValueError):
            AlignmentConfig(window_days=0)

    def test_anchor_must_be_provided(self, streams):
        del streams['csf']
        with pytest.raises(ValueError):
            make_pipeline(anchor_stream='csf').process_data(streams)


class TestScenarios:
    """End-to-end alignment scenarios."""

    def test_diagnosis_anchor_two_visits(self, streams):
        """Cognitive records land in the window around their own visit."""
        dataset = make_pipeline(anchor_stream='diagnosis', window_days=365).process_data(streams)
        s_rows = dataset.data[dataset.data['subject_id'] == 'S']

        assert s_rows['date_cog'].tolist() == [pd.Timestamp('2010-03-01'), pd.Timestamp('2013-01-01')]
        assert s_rows['mmse'].tolist() == [29, 27]

    def test_subject_without_anchor_record_omitted(self, streams):
        """T has no diagnosis visit and contributes no rows."""
        dataset = make_pipeline(anchor_stream='diagnosis').process_data(streams)
        assert 'T' not in set(dataset.data['subject_id'])

    def test_apoe_scenario(self, streams):
        """3.4 maps to 1; 2.2 is unlisted and missing."""
        dataset = make_pipeline(anchor_stream='diagnosis').process_data(streams)
        by_subject = dataset.data.groupby('subject_id')['apoe'].first()
        assert by_subject['S'] == 1
        assert pd.isna(by_subject['U'])

    def test_age_scenario(self, streams):
        """Birth 1950, start 2015 -> 65 -> 60-69."""
        dataset = make_pipeline(anchor_stream='diagnosis').process_data(streams)
        u_row = dataset.data[dataset.data['subject_id'] == 'U'].iloc[0]
        assert u_row['age'] == 65
        assert u_row['age_group'] == '60-69'
        assert u_row['sex_group'] == 'Male'

    def test_year_clipped_and_from_cognitive(self, streams):
        """year uses date_cog and never goes negative."""
        dataset = make_pipeline(anchor_stream='diagnosis', window_days=365).process_data(streams)
        s_rows = dataset.data[dataset.data['subject_id'] == 'S']
        # startyear 2011: 2010 visit clips to 0, 2013 visit is year 2
        assert s_rows['year'].tolist() == [0, 2]
        assert (dataset.data['year'].dropna() >= 0).all()

    def test_visit_index(self, streams):
        dataset = make_pipeline(anchor_stream='diagnosis').process_data(streams)
        assert dataset.data['visit'].tolist() == [1, 2, 1]


class TestAssembly:
    """Test the assembled analysis dataset."""

    def test_one_row_per_anchor_visit(self, streams):
        dataset = make_pipeline(anchor_stream='cognitive').process_data(streams)
        assert len(dataset.data) == 4
        assert dataset.data['subject_id'].tolist() == ['S', 'S', 'T', 'U']

    def test_matched_dates_inside_windows(self, streams):
        dataset = make_pipeline(anchor_stream='cognitive', window_days=200).process_data(streams)
        data = dataset.data
        for col in ('date_diag', 'date_csf', 'date_hippo', 'date_ec'):
            inside = data[col].isna() | (
                (data[col] >= data['window_start']) & (data[col] <= data['window_end'])
            )
            assert inside.all()

    def test_unmatched_stream_fields_are_null(self, streams):
        """The entorhinal scan in 2020 is outside every window."""
        dataset = make_pipeline(anchor_stream='diagnosis', window_days=365).process_data(streams)
        assert dataset.data['bi_ec_vol'].isna().all()

    def test_exclusion_flag(self, streams):
        dataset = make_pipeline(anchor_stream='diagnosis').process_data(streams, ['U'], [])
        flags = dataset.data.set_index('subject_id')['exclude']
        assert flags['U']
        assert not flags['S'].any()

    def test_provenance_metadata(self, streams):
        dataset = make_pipeline(anchor_stream='csf', window_days=100, overlap=True).process_data(streams)
        assert dataset.metadata() == {'anchor_stream': 'csf', 'window_size': 100, 'overlap': True}
        assert dataset.column_sources['mmse'] == 'cognitive'

    def test_deterministic(self, streams):
        pipeline = make_pipeline(anchor_stream='diagnosis')
        first = pipeline.process_data(streams).data
        second = pipeline.process_data(streams).data
        pd.testing.assert_frame_equal(first, second)

    def test_inputs_not_mutated(self, streams):
        before = {name: df.copy() for name, df in streams.items()}
        make_pipeline(anchor_stream='diagnosis').process_data(streams)
        for name, df in streams.items():
            pd.testing.assert_frame_equal(df, before[name])


class TestEdgeCases:
    """Test empty anchors, undated anchors and ambiguous joins."""

    def test_empty_anchor_stream(self, streams):
        """An empty anchor yields an empty table, not an error."""
        dataset = make_pipeline(anchor_stream='amygdala').process_data(streams)
        assert isinstance(dataset, AnalysisDataset)
        assert dataset.data.empty
        assert 'exclude' in dataset.data.columns

    def test_undated_anchor_record_counted(self, streams):
        streams['diagnosis'] = pd.concat([
            streams['diagnosis'],
            pd.DataFrame({'subject_id': ['S'], 'date_diag': [pd.NaT], 'dx': ['MCI']}),
        ], ignore_index=True)
        dataset = make_pipeline(anchor_stream='diagnosis').process_data(streams)
        assert dataset.skipped_anchor_records == 1
        assert len(dataset.data) == 3

    def test_ambiguous_demographics_counted(self, streams):
        streams['demographics'] = pd.concat([
            streams['demographics'],
            pd.DataFrame({'subject_id': ['S'], 'sex': [2], 'birthyear': [1941], 'startyear': [2011]}),
        ], ignore_index=True)
        with pytest.warns(AmbiguousJoinWarning):
            dataset = make_pipeline(anchor_stream='diagnosis').process_data(streams)
        assert dataset.ambiguous_subjects['demographics'] == 1
        s_rows = dataset.data[dataset.data['subject_id'] == 'S']
        assert (s_rows['birthyear'] == 1941).all()

    def test_int_and_float_subject_ids_join(self):
        """Ids stored as floats (column with gaps) match their integer form."""
        streams = {
            'diagnosis': pd.DataFrame({
                'subject_id': [1, 2],
                'date_diag': [datetime(2010, 1, 1), datetime(2010, 1, 1)],
            }),
            'demographics': pd.DataFrame({
                'subject_id': [1.0, np.nan],
                'sex': [1, 2],
                'birthyear': [1950, 1960],
                'startyear': [2009, 2009],
            }),
        }
        dataset = make_pipeline(anchor_stream='diagnosis').process_data(streams, list_a=[1.0])
        data = dataset.data

        assert data['subject_id'].tolist() == ['1', '2']
        assert data.loc[0, 'sex'] == 1
        assert data.loc[0, 'sex_group'] == 'Male'
        assert pd.isna(data.loc[1, 'sex'])
        assert data['exclude'].tolist() == [True, False]

    def test_records_without_subject_id_skipped(self):
        """Id-less anchor and stream records are never linked together."""
        streams = {
            'diagnosis': pd.DataFrame({
                'subject_id': ['S', None],
                'date_diag': [datetime(2010, 1, 1), datetime(2010, 1, 1)],
            }),
            'cognitive': pd.DataFrame({
                'subject_id': [np.nan],
                'date_cog': [datetime(2010, 2, 1)],
                'mmse': [30],
            }),
        }
        dataset = make_pipeline(anchor_stream='diagnosis').process_data(streams)

        assert dataset.skipped_anchor_records == 1
        assert dataset.data['subject_id'].tolist() == ['S']
        assert pd.isna(dataset.data.loc[0, 'mmse'])


class TestRun:
    """Test the file-based run and CLI."""

    @pytest.fixture
    def data_dir(self, tmp_path):
        files = {
            "BIOCARD_Cognitive.csv": "SUBJECT_ID,VISITDATE,MMSE\n1,01/05/2010,29\n1,02/01/2012,28\n",
            "BIOCARD_DiagnosisData.csv": "SUBJECT_ID,DIAGDATE,VISITNO,DIAGNOSIS\n1,01/01/2010,1,NORMAL\n",
            "BIOCARD_CSF.csv": "SUBJECT_ID,LPDATE,AB42\n1,02/01/2010,512\n",
            "BIOCARD_Hippocampus.csv":
                "SUBJECT_ID,SCANDATE,INTRACRANIAL_VOL,LEFT_HIPPO,RIGHT_HIPPO\n1,03/01/2010,1500000,3000,3200\n",
            "BIOCARD_Amygdala.csv":
                "SUBJECT_ID,SCANDATE,INTRACRANIAL_VOL,LEFT_AMY,RIGHT_AMY\n1,03/01/2010,1500000,1200,1300\n",
            "BIOCARD_EC.csv":
                "SUBJECT_ID,SCANDATE,INTRACRANIAL_VOL,LEFT_EC_VOL,RIGHT_EC_VOL,LEFT_EC_THICK,RIGHT_EC_THICK\n"
                "1,03/01/2010,1500000,900,950,2.1,2.3\n",
            "BIOCARD_Demographics.csv":
                "SUBJECT_ID,SEX,BIRTHYEAR,STARTYEAR,jhuanonid,lettercode,nihid\n1,2,1950,2009,a,b,c\n",
            "BIOCARD_Genetics.csv": "SUBJECT_ID,APOECODE,jhuanonid,lettercode,nihid\n1,4.4,a,b,c\n",
            "BIOCARD_ExclusionListA.csv": "SUBJECT_ID\n7\n",
            "BIOCARD_ExclusionListB.csv": "SUBJECT_ID\n1\n",
        }
        data_dir = tmp_path / "data"
        data_dir.mkdir()
        for name, text in files.items():
            (data_dir / name).write_text(text)
        return data_dir

    def test_run_writes_outputs(self, data_dir, tmp_path):
        output_dir = tmp_path / "out"
        dataset = make_pipeline(anchor_stream='cognitive').run(str(data_dir), str(output_dir))

        assert len(dataset.data) == 2
        assert dataset.data['exclude'].all()
        assert dataset.data['apoe'].tolist() == [2, 2]

        saved = pd.read_parquet(output_dir / "biocard_analysis_dataset.parquet")
        assert len(saved) == 2
        with open(output_dir / "biocard_analysis_metadata.json") as f:
            metadata = json.load(f)
        assert metadata['anchor_stream'] == 'cognitive'
        assert metadata['window_size'] == 730
        assert metadata['overlap'] is False

    def test_cli(self, data_dir, tmp_path):
        output_dir = tmp_path / "cli_out"
        main([
            '--data-dir', str(data_dir),
            '--output-dir', str(output_dir),
            '--merge-by', 'diagnosis',
            '--window', '365',
            '--overlap',
        ])
        with open(output_dir / "biocard_analysis_metadata.json") as f:
            metadata = json.load(f)
        assert metadata == {**metadata, 'anchor_stream': 'diagnosis', 'window_size': 365, 'overlap': True}
