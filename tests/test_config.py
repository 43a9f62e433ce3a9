"""
Tests for walkthrough settings.
"""

import pytest

from epiwalk.config import GenomeConfig, Settings, TrackStyles


class TestSettings:
    """Defaults, environment overrides and derived locations."""

    def test_defaults(self):
        s = Settings(_env_file=None)
        assert (s.cell_type, s.genome, s.chromosome, s.histone_mark) == ("H1", "hg19", "chrX", "H3K4me3")
        assert s.genes == ["TMSB4X", "FAM9C"]
        assert s.n_workers == 1

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("EPIWALK_CHROMOSOME", "chr7")
        monkeypatch.setenv("EPIWALK_PROMOTER_UPSTREAM", "2500")
        s = Settings(_env_file=None)
        assert s.chromosome == "chr7"
        assert s.promoter_upstream == 2500

    def test_remote_urls(self):
        s = Settings(_env_file=None)
        assert s.methylation_url("E003").endswith("E003_RRBS_FractionalMethylation.bigwig")
        assert s.peak_url("E003").endswith("E003-H3K4me3.broadPeak.gz")
        assert s.gene_table_url("hg38").endswith("/hg38/database/refGene.txt.gz")

    def test_unsupported_genome(self):
        with pytest.raises(ValueError, match="Unsupported genome"):
            Settings(_env_file=None).get_genome_config("dm6")

    def test_histone_config(self):
        s = Settings(_env_file=None, histone_mark="H3K27me3")
        assert s.get_histone_config() == GenomeConfig.HISTONE_MARKS["H3K27me3"]

    def test_track_style_override(self):
        s = Settings(_env_file=None, track_styles={"methylation": {"color": "#000000"}})
        style = s.get_track_style("methylation")
        assert style["color"] == "#000000"
        assert style["height"] == TrackStyles.STYLES["methylation"]["height"]

    def test_ensure_directories(self, tmp_path):
        s = Settings(_env_file=None, cache_dir=tmp_path / "c", output_dir=tmp_path / "o")
        s.ensure_directories()
        assert (tmp_path / "c").is_dir() and (tmp_path / "o").is_dir()
