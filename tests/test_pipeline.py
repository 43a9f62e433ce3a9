"""
End-to-end tests of the walkthrough pipeline on local fixture files.
"""

import logging
from unittest.mock import patch

import pytest

from epiwalk import __main__ as cli
from epiwalk.core.exceptions import AnnotationLookupError, DataAcquisitionError, PipelineError
from epiwalk.core.genomic_utils import CORE_COLUMNS
from epiwalk.core.ucsc import UCSCClient
from epiwalk.core.workspace import MANIFEST_NAME, load_workspace
from epiwalk.pipeline import LOG_FORMAT, EpigenomeWalkthrough, configure_logging


@pytest.fixture
def walkthrough(local_settings, ucsc_session):
    return EpigenomeWalkthrough(local_settings, ucsc_client=UCSCClient(session=ucsc_session))


class TestWalkthrough:
    """Full run with local data and a mocked UCSC service."""

    def test_run_writes_figures(self, walkthrough, local_settings):
        saved = walkthrough.run()

        assert set(saved) == {"methylation_heatmap", "histone_profile", "locus"}
        for path in saved.values():
            assert path.exists()
            assert path.parent == local_settings.output_dir
            assert path.suffix == ".json"

    def test_stage_outputs(self, walkthrough):
        walkthrough.run()

        assert walkthrough.dataset_id == "E003"
        assert len(walkthrough.raw_methylation) == 5
        assert len(walkthrough.methylation) == 3
        assert list(walkthrough.histone.columns) == CORE_COLUMNS + ["score"]
        assert walkthrough.histone["score"].tolist() == [12.5, 4.0]
        assert walkthrough.promoters["gene_name"].tolist() == ["G1", "G2"]
        assert walkthrough.matrices["methylation"].shape == (2, 1000)
        assert walkthrough.matrices["H3K4me3"].shape == (2, 1000)
        assert walkthrough.chrom_sizes["chrX"] == 20000
        assert walkthrough.completed_stages == [
            "metadata", "acquisition", "harmonization", "annotation", "aggregation", "locus", "export",
        ]

    def test_locus_spans_both_genes(self, walkthrough):
        walkthrough.run()
        region = walkthrough.region
        # G1 starts at 1500, G2 ends at 5500; 100 bp padding
        assert (region.chrom, region.start, region.end) == ("chrX", 1400, 5600)
        assert len(walkthrough.gene_models) == 3

    def test_dataset_id_override_skips_metadata(self, local_settings, ucsc_session):
        settings = local_settings.model_copy(update={"dataset_id": "E003", "metadata_url": "/does/not/exist"})
        wt = EpigenomeWalkthrough(settings, ucsc_client=UCSCClient(session=ucsc_session))
        assert wt.lookup_datasets() == "E003"

    def test_chromosome_without_genes(self, local_settings, ucsc_session):
        """No promoters on the chromosome gives empty matrices, not a failure."""
        settings = local_settings.model_copy(update={"chromosome": "chr2"})
        wt = EpigenomeWalkthrough(settings, ucsc_client=UCSCClient(session=ucsc_session))
        wt.run()

        assert wt.promoters.empty
        assert wt.methylation.empty
        assert wt.matrices["methylation"].shape == (0, 1000)
        assert wt.matrices["H3K4me3"].shape == (0, 1000)
        assert "aggregation" in wt.completed_stages
        assert wt.saved_files["methylation_heatmap"].exists()
        assert wt.saved_files["histone_profile"].exists()

    def test_gff3_annotation_file(self, local_settings, ucsc_session, gff3_file):
        settings = local_settings.model_copy(update={"annotation_file": str(gff3_file)})
        wt = EpigenomeWalkthrough(settings, ucsc_client=UCSCClient(session=ucsc_session))
        promoters = wt.load_promoters()

        assert promoters["gene_name"].tolist() == ["GENE1", "GENE1"]
        assert promoters["tss"].tolist() == [2999, 3999]

    def test_snapshot(self, walkthrough, local_settings):
        walkthrough.run(snapshot=True)

        ws = load_workspace(local_settings.workspace_dir)
        assert {"methylation", "histone", "promoters", "gene_models"} <= set(ws.tables)
        assert set(ws.matrices) == {"methylation", "H3K4me3"}
        assert set(ws.figures) == {"methylation_heatmap", "histone_profile", "locus"}
        assert ws.settings["dataset_id"] == "E003"
        assert ws.settings["genome"] == "hg19"


class TestFailures:
    """The first failing stage stops the run."""

    def test_unknown_cell_type(self, local_settings, ucsc_session):
        settings = local_settings.model_copy(update={"cell_type": "K562"})
        wt = EpigenomeWalkthrough(settings, ucsc_client=UCSCClient(session=ucsc_session))

        with pytest.raises(PipelineError) as exc:
            wt.run()
        assert exc.value.stage == "metadata"
        assert isinstance(exc.value.cause, DataAcquisitionError)
        assert wt.completed_stages == []

    def test_unknown_genes_keep_earlier_outputs(self, local_settings, ucsc_session):
        settings = local_settings.model_copy(update={"genes": ["NOPE"]})
        wt = EpigenomeWalkthrough(settings, ucsc_client=UCSCClient(session=ucsc_session))

        with pytest.raises(PipelineError) as exc:
            wt.run()
        assert exc.value.stage == "locus"
        assert isinstance(exc.value.cause, AnnotationLookupError)
        assert "methylation_heatmap" in wt.figures
        assert wt.matrices["methylation"].shape == (2, 1000)

    def test_snapshot_on_failure(self, local_settings, ucsc_session, tmp_path):
        settings = local_settings.model_copy(update={
            "snapshot_on_failure": True,
            "peak_url_template": str(tmp_path / "missing-{mark}.broadPeak.gz"),
        })
        wt = EpigenomeWalkthrough(settings, ucsc_client=UCSCClient(session=ucsc_session))

        with pytest.raises(PipelineError) as exc:
            wt.run()
        assert exc.value.stage == "acquisition"

        assert (settings.workspace_dir / MANIFEST_NAME).exists()
        ws = load_workspace(settings.workspace_dir)
        assert ws.settings["completed_stages"] == ["metadata"]
        assert "raw_methylation" in ws.tables

    def test_no_snapshot_by_default(self, local_settings, ucsc_session):
        settings = local_settings.model_copy(update={"cell_type": "K562"})
        wt = EpigenomeWalkthrough(settings, ucsc_client=UCSCClient(session=ucsc_session))
        with pytest.raises(PipelineError):
            wt.run()
        assert not (settings.workspace_dir / MANIFEST_NAME).exists()


class TestEntryPoint:
    """Logging setup and the module entry point."""

    def test_configure_logging(self):
        with patch("epiwalk.pipeline.logging.basicConfig") as mock_config:
            configure_logging("debug")
        mock_config.assert_called_once_with(level=logging.DEBUG, format=LOG_FORMAT)

    def test_main_reports_failure(self):
        with patch.object(cli, "EpigenomeWalkthrough") as mock_cls, patch.object(cli, "configure_logging"):
            mock_cls.return_value.run.side_effect = PipelineError("metadata", DataAcquisitionError("x"))
            assert cli.main() == 1

    def test_main_success(self, capsys, tmp_path):
        with patch.object(cli, "EpigenomeWalkthrough") as mock_cls, patch.object(cli, "configure_logging"):
            mock_cls.return_value.run.return_value = {"locus": tmp_path / "locus.html"}
            assert cli.main() == 0
        assert "locus" in capsys.readouterr().out
