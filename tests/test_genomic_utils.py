"""
Unit tests for genomic_utils shared module.

Tests cover:
- Interval overlap detection (NCLS)
- Chromosome filtering (exact match)
- Score harmonization to a single ``score`` column
- Region clipping and genomic regions
"""

import pandas as pd
import pytest

from epiwalk.core.exceptions import MissingColumnError, ValidationError
from epiwalk.core.genomic_utils import (
    BROADPEAK_SCHEMA,
    CORE_COLUMNS,
    METHYLATION_SCHEMA,
    GenomicRegion,
    ScoreSchema,
    clip_to_region,
    filter_chromosome,
    find_overlaps,
    harmonize_score,
)


# ============================================================================
# Core overlap detection
# ============================================================================


class TestFindOverlaps:
    """Tests for the main find_overlaps function."""

    def test_basic_overlap(self):
        """Two intervals on the same chromosome that overlap."""
        query = pd.DataFrame({"chr": ["chr1"], "start": [100], "end": [300]})
        subject = pd.DataFrame({"chr": ["chr1"], "start": [200], "end": [400]})
        result = find_overlaps(query, subject)
        assert len(result) == 1
        assert result.iloc[0]["overlap_bp"] == 100

    def test_adjacent_intervals_do_not_overlap(self):
        """Half-open intervals sharing only a boundary do not overlap."""
        query = pd.DataFrame({"chr": ["chr1"], "start": [100], "end": [200]})
        subject = pd.DataFrame({"chr": ["chr1"], "start": [200], "end": [300]})
        assert find_overlaps(query, subject).empty

    def test_different_chromosomes(self):
        """Intervals on different chromosomes never overlap."""
        query = pd.DataFrame({"chr": ["chr1"], "start": [100], "end": [300]})
        subject = pd.DataFrame({"chr": ["chr2"], "start": [100], "end": [300]})
        assert len(find_overlaps(query, subject)) == 0

    def test_min_overlap_bp_filter(self):
        """Filter by minimum overlap base pairs."""
        query = pd.DataFrame({"chr": ["chr1"], "start": [100], "end": [300]})
        subject = pd.DataFrame({"chr": ["chr1"], "start": [290], "end": [400]})
        assert len(find_overlaps(query, subject, min_overlap_bp=1)) == 1
        assert len(find_overlaps(query, subject, min_overlap_bp=50)) == 0

    def test_report_first(self):
        """report='first' returns at most one hit per query."""
        query = pd.DataFrame({"chr": ["chr1"], "start": [100], "end": [500]})
        subject = pd.DataFrame({"chr": ["chr1", "chr1"], "start": [150, 300], "end": [200, 350]})
        assert len(find_overlaps(query, subject, report="first")) == 1

    def test_empty_inputs(self):
        """Empty query or subject gives an empty result."""
        empty = pd.DataFrame(columns=["chr", "start", "end"])
        query = pd.DataFrame({"chr": ["chr1"], "start": [100], "end": [300]})
        assert find_overlaps(empty, query).empty
        assert find_overlaps(query, empty).empty


class TestClipToRegion:
    """Tests for clip_to_region."""

    def test_clip_to_region(self, signal_intervals):
        clipped = clip_to_region(signal_intervals, "chrX", 150, 500)
        assert len(clipped) == 2
        assert clipped["start"].tolist() == [150, 400]
        assert clipped["end"].tolist() == [200, 500]

    def test_clip_does_not_modify_input(self, signal_intervals):
        before = signal_intervals.copy()
        clip_to_region(signal_intervals, "chrX", 150, 500)
        pd.testing.assert_frame_equal(signal_intervals, before)


# ============================================================================
# Chromosome filter
# ============================================================================


class TestFilterChromosome:
    """Exact-match chromosome filtering."""

    def test_three_of_five_on_chrx(self, signal_intervals):
        """Three chrX and two chr1 records filter to exactly three."""
        result = filter_chromosome(signal_intervals, "chrX")
        assert len(result) == 3
        assert set(result["chr"]) == {"chrX"}

    def test_no_prefix_match(self):
        """chr1 does not select chr11 or chr1_random."""
        df = pd.DataFrame({
            "chr": ["chr1", "chr11", "chr1_gl000191_random", "chr1"],
            "start": [0, 0, 0, 10],
            "end": [5, 5, 5, 20],
        })
        result = filter_chromosome(df, "chr1")
        assert len(result) == 2
        assert set(result["chr"]) == {"chr1"}

    def test_absent_chromosome_gives_empty_table(self, signal_intervals):
        result = filter_chromosome(signal_intervals, "chrY")
        assert result.empty
        assert list(result.columns) == list(signal_intervals.columns)


# ============================================================================
# Score harmonization
# ============================================================================


class TestHarmonizeScore:
    """Exactly one numeric score column after harmonization."""

    def test_broadpeak_keeps_signal_value(self, broadpeak_intervals):
        result = harmonize_score(broadpeak_intervals, BROADPEAK_SCHEMA)
        assert list(result.columns) == CORE_COLUMNS + ["score"]
        assert result["score"].tolist() == [12.5, 4.0, 7.2]

    def test_methylation_schema(self, signal_intervals):
        result = harmonize_score(signal_intervals, METHYLATION_SCHEMA)
        assert list(result.columns) == CORE_COLUMNS + ["score"]
        assert result["score"].tolist() == signal_intervals["score"].tolist()

    @pytest.mark.parametrize("fixture_name,schema", [
        ("signal_intervals", METHYLATION_SCHEMA),
        ("broadpeak_intervals", BROADPEAK_SCHEMA),
    ])
    def test_single_numeric_metadata_column(self, request, fixture_name, schema):
        """Both assays end up with one numeric metadata field and nothing else."""
        df = request.getfixturevalue(fixture_name)
        result = harmonize_score(df, schema)
        metadata = [c for c in result.columns if c not in CORE_COLUMNS]
        assert metadata == ["score"]
        assert pd.api.types.is_numeric_dtype(result["score"])

    def test_strand_added_when_missing(self):
        df = pd.DataFrame({"chr": ["chrX"], "start": [0], "end": [10], "value": [1.0]})
        result = harmonize_score(df, ScoreSchema(keep="value"))
        assert result["strand"].tolist() == ["*"]

    def test_missing_keep_column(self, signal_intervals):
        with pytest.raises(MissingColumnError):
            harmonize_score(signal_intervals, BROADPEAK_SCHEMA)

    def test_non_numeric_keep_column(self, broadpeak_intervals):
        with pytest.raises(ValidationError):
            harmonize_score(broadpeak_intervals, ScoreSchema(keep="name"))

    def test_incomplete_drop_list(self, broadpeak_intervals):
        schema = ScoreSchema(keep="signalValue", drop=("name", "score"))
        with pytest.raises(ValidationError, match="neither kept nor dropped"):
            harmonize_score(broadpeak_intervals, schema)

    def test_empty_table_is_valid(self, signal_intervals):
        empty = filter_chromosome(signal_intervals, "chrY")
        result = harmonize_score(empty, METHYLATION_SCHEMA)
        assert result.empty
        assert list(result.columns) == CORE_COLUMNS + ["score"]

    def test_input_not_modified(self, broadpeak_intervals):
        before = broadpeak_intervals.copy()
        harmonize_score(broadpeak_intervals, BROADPEAK_SCHEMA)
        pd.testing.assert_frame_equal(broadpeak_intervals, before)


class TestGenomicRegion:
    """Tests for GenomicRegion."""

    def test_width_and_str(self):
        region = GenomicRegion("hg19", "chrX", 100, 600)
        assert region.width == 500
        assert str(region) == "hg19:chrX:100-600"

    def test_empty_region_rejected(self):
        with pytest.raises(ValidationError):
            GenomicRegion("hg19", "chrX", 600, 600)
