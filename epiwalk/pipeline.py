"""
Walkthrough pipeline.

Runs the stages in order for one cell type:

1. metadata lookup          -> dataset identifier (EID)
2. acquisition              -> raw methylation and histone interval tables
3. filtering/harmonization  -> one chromosome, one ``score`` column
4. annotation               -> promoter windows
5. aggregation              -> score matrices, heat matrix, meta-profile
6. locus figure             -> multi-track browser plot
7. export                   -> figures and (optionally) a workspace snapshot

Each stage stores its outputs on the walkthrough object. The first
failing stage aborts the run with a PipelineError naming the stage.
"""

import functools
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import plotly.graph_objects as go

from .config import GenomeConfig, Settings, settings as default_settings
from .core.acquisition import (
    BROADPEAK_EXTRA_COLUMNS,
    bigwig_chrom_sizes,
    fetch_remote,
    import_bigwig,
    import_peaks,
)
from .core.annotation import TranscriptDatabase, resolve_locus
from .core.browser import build_locus_tracks, plot_tracks
from .core.exceptions import DataAcquisitionError, PipelineError
from .core.genomic_utils import (
    BROADPEAK_SCHEMA,
    METHYLATION_SCHEMA,
    GenomicRegion,
    filter_chromosome,
    harmonize_score,
)
from .core.metadata import MetadataIndex
from .core.score_matrix import ScoreMatrixList, score_matrix_list
from .core.ucsc import UCSCClient
from .core.workspace import save_workspace
from .components.export import save_figure
from .components.plots import plot_heat_matrix, plot_meta_profile

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

GTF_SUFFIXES = (".gtf", ".gtf.gz", ".gff", ".gff.gz", ".gff3", ".gff3.gz")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for command-line runs."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def stage(name: str):
    """Mark a walkthrough method as a pipeline stage."""
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            logger.info(f"Stage '{name}' started")
            try:
                result = method(self, *args, **kwargs)
            except PipelineError:
                raise
            except Exception as e:
                logger.error(f"Stage '{name}' failed: {e}")
                if self.settings.snapshot_on_failure:
                    self._snapshot_after_failure()
                raise PipelineError(name, e) from e
            self.completed_stages.append(name)
            logger.info(f"Stage '{name}' finished")
            return result
        return wrapper
    return decorator


class EpigenomeWalkthrough:
    """
    Methylation and histone walkthrough for one cell type.

    Args:
        settings: Walkthrough settings (defaults to the module-level settings)
        ucsc_client: UCSC REST client used for the locus figure
    """

    def __init__(self, settings: Optional[Settings] = None, ucsc_client: Optional[UCSCClient] = None):
        self.settings = settings or default_settings
        self.ucsc = ucsc_client or UCSCClient(
            api_url=self.settings.ucsc_api_url, timeout=self.settings.http_timeout
        )
        self.completed_stages: List[str] = []

        self.dataset_ids: List[str] = []
        self.dataset_id: Optional[str] = None
        self.raw_methylation: Optional[pd.DataFrame] = None
        self.raw_histone: Optional[pd.DataFrame] = None
        self.chrom_sizes: Dict[str, int] = {}
        self.methylation: Optional[pd.DataFrame] = None
        self.histone: Optional[pd.DataFrame] = None
        self.promoters: Optional[pd.DataFrame] = None
        self.matrices: ScoreMatrixList = ScoreMatrixList()
        self.gene_models: Optional[pd.DataFrame] = None
        self.region: Optional[GenomicRegion] = None
        self.figures: Dict[str, go.Figure] = {}
        self.saved_files: Dict[str, Path] = {}

    @property
    def workspace_dir(self) -> Path:
        return self.settings.workspace_dir or (self.settings.output_dir / "workspace")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    @stage("metadata")
    def lookup_datasets(self) -> str:
        """Resolve the dataset identifier of the configured cell type."""
        s = self.settings
        if s.dataset_id:
            self.dataset_ids = [s.dataset_id]
        else:
            index = MetadataIndex.load(
                s.metadata_url, s.cache_dir,
                id_column=s.metadata_id_column,
                name_column=s.metadata_name_column,
                timeout=s.http_timeout,
            )
            self.dataset_ids = index.lookup(s.cell_type)
            if not self.dataset_ids:
                raise DataAcquisitionError(s.metadata_url, f"no dataset for cell type '{s.cell_type}'")
            if len(self.dataset_ids) > 1:
                logger.warning(f"Several datasets for '{s.cell_type}': {self.dataset_ids}; using the first")

        self.dataset_id = self.dataset_ids[0]
        return self.dataset_id

    @stage("acquisition")
    def acquire(self) -> None:
        """Download and import the methylation bigWig and the histone broadPeak file."""
        s = self.settings
        if self.dataset_id is None:
            self.lookup_datasets()

        meth_path = fetch_remote(s.methylation_url(self.dataset_id), s.cache_dir, timeout=s.http_timeout)
        self.chrom_sizes = bigwig_chrom_sizes(meth_path)
        self.raw_methylation = import_bigwig(meth_path)

        peak_path = fetch_remote(s.peak_url(self.dataset_id), s.cache_dir, timeout=s.http_timeout)
        self.raw_histone = import_peaks(peak_path, BROADPEAK_EXTRA_COLUMNS)

    @stage("harmonization")
    def harmonize(self) -> None:
        """Restrict both tracks to the configured chromosome with one score column."""
        chrom = self.settings.chromosome
        self.methylation = harmonize_score(filter_chromosome(self.raw_methylation, chrom), METHYLATION_SCHEMA)
        self.histone = harmonize_score(filter_chromosome(self.raw_histone, chrom), BROADPEAK_SCHEMA)

    @stage("annotation")
    def load_promoters(self) -> pd.DataFrame:
        """Promoter windows of all transcripts on the configured chromosome."""
        s = self.settings
        if s.annotation_file and s.annotation_file.lower().endswith(GTF_SUFFIXES):
            local = fetch_remote(s.annotation_file, s.cache_dir, timeout=s.http_timeout)
            db = TranscriptDatabase.from_gtf(local, genome=s.genome)
        else:
            location = s.annotation_file or s.gene_table_url(s.genome)
            db = TranscriptDatabase.from_ucsc(s.genome, location, s.cache_dir, timeout=s.http_timeout)

        self.promoters = db.promoters(
            upstream=s.promoter_upstream,
            downstream=s.promoter_downstream,
            chrom=s.chromosome,
        )
        return self.promoters

    @stage("aggregation")
    def aggregate(self) -> ScoreMatrixList:
        """Score matrices over the promoters plus the heat matrix and meta-profile."""
        s = self.settings
        self.matrices = score_matrix_list(
            {"methylation": self.methylation, s.histone_mark: self.histone},
            self.promoters,
            upstream=s.promoter_upstream,
            width=s.promoter_upstream + s.promoter_downstream,
            bin_size=s.matrix_bin_size,
            chrom_sizes=self.chrom_sizes,
            n_workers=s.n_workers,
        )

        self.figures["methylation_heatmap"] = plot_heat_matrix(
            self.matrices["methylation"],
            title=f"{self.dataset_id} DNA methylation around TSSs ({s.chromosome})",
            color_scale=s.heatmap_colorscale,
            value_label="methylation",
        )
        histone_color = self._histone_color()
        self.figures["histone_profile"] = plot_meta_profile(
            {s.histone_mark: self.matrices[s.histone_mark]},
            title=f"{self.dataset_id} {s.histone_mark} meta-profile ({s.chromosome})",
            colors={s.histone_mark: histone_color} if histone_color else None,
            dispersion="se",
            value_label="Average signal",
        )
        return self.matrices

    @stage("locus")
    def plot_locus(self) -> go.Figure:
        """Browser figure of the configured genes with both signal tracks."""
        s = self.settings
        genome_config = s.get_genome_config()

        self.gene_models = self.ucsc.gene_models(
            s.genome, s.genes, chrom=s.chromosome, track=genome_config["gene_table"]
        )
        self.region = resolve_locus(self.gene_models, s.genes, genome=s.genome, padding=s.locus_padding)

        cpg = self.ucsc.cpg_islands(
            s.genome, self.region.chrom, self.region.start, self.region.end,
            track=genome_config["cpg_table"],
        )
        bands = self.ucsc.cytobands(s.genome, self.region.chrom, track=genome_config["ideogram_table"])

        styles = {key: s.get_track_style(key) for key in ("ideogram", "axis", "genes", "cpg", "methylation", "histone")}
        if self._histone_color():
            styles["histone"]["color"] = self._histone_color()

        tracks = build_locus_tracks(
            self.region,
            bands=bands,
            models=self.gene_models,
            cpg_islands=cpg,
            signals={"methylation": self.methylation, "histone": self.histone},
            styles=styles,
            labels={"methylation": "Methylation", "histone": s.histone_mark},
        )
        self.figures["locus"] = plot_tracks(
            tracks, self.region, title=f"{', '.join(s.genes)} in {s.cell_type} ({self.dataset_id})"
        )
        return self.figures["locus"]

    @stage("export")
    def save_figures(self) -> Dict[str, Path]:
        """Write every figure to the output directory."""
        out = self.settings.output_dir
        for name, fig in self.figures.items():
            self.saved_files[name] = save_figure(fig, out / name, format=self.settings.figure_format)
        return self.saved_files

    @stage("snapshot")
    def save_workspace(self, directory: Optional[Path] = None) -> Path:
        """Snapshot tables, matrices, figures and settings."""
        return save_workspace(directory or self.workspace_dir, **self._workspace_contents())

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def run(self, snapshot: bool = False) -> Dict[str, Path]:
        """
        Run every stage in order.

        Args:
            snapshot: Also save a workspace snapshot at the end

        Returns:
            Paths of the written figures
        """
        self.settings.ensure_directories()
        logger.info(
            f"Walkthrough for {self.settings.cell_type} on {self.settings.genome} "
            f"{self.settings.chromosome} ({self.settings.histone_mark})"
        )

        self.lookup_datasets()
        self.acquire()
        self.harmonize()
        self.load_promoters()
        self.aggregate()
        self.plot_locus()
        saved = self.save_figures()
        if snapshot:
            self.save_workspace()

        logger.info(f"Walkthrough finished: {len(saved)} figures in {self.settings.output_dir}")
        return saved

    def _histone_color(self) -> Optional[str]:
        if self.settings.histone_mark not in GenomeConfig.HISTONE_MARKS:
            return None
        return self.settings.get_histone_config()["color"]

    def _workspace_contents(self) -> Dict:
        candidates = {
            "raw_methylation": self.raw_methylation,
            "raw_histone": self.raw_histone,
            "methylation": self.methylation,
            "histone": self.histone,
            "promoters": self.promoters,
            "gene_models": self.gene_models,
        }
        tables = {name: df for name, df in candidates.items() if df is not None}
        return {
            "tables": tables,
            "matrices": dict(self.matrices),
            "figures": dict(self.figures),
            "settings": {
                **self.settings.model_dump(mode="json"),
                "dataset_id": self.dataset_id,
                "completed_stages": list(self.completed_stages),
            },
        }

    def _snapshot_after_failure(self) -> None:
        try:
            path = save_workspace(self.workspace_dir, **self._workspace_contents())
            logger.info(f"Saved partial workspace to {path.parent}")
        except (OSError, ValueError) as e:
            logger.error(f"Could not save workspace snapshot: {e}")
