"""
Configuration settings for the epiwalk walkthrough.

Every option of the walkthrough (cell type, genome build, chromosome,
promoter flanks, genes of interest, track styling, remote locations)
is a field of ``Settings`` and can be overridden from the environment
with the ``EPIWALK_`` prefix or from a ``.env`` file.
"""

from pathlib import Path
from typing import Dict, List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class GenomeConfig:
    """Reference genome configuration."""

    SUPPORTED_GENOMES = {
        "hg19": {
            "name": "Human (hg19/GRCh37)",
            "species": "Homo sapiens",
            "gene_table": "refGene",
            "cpg_table": "cpgIslandExt",
            "ideogram_table": "cytoBandIdeo",
        },
        "hg38": {
            "name": "Human (hg38/GRCh38)",
            "species": "Homo sapiens",
            "gene_table": "refGene",
            "cpg_table": "cpgIslandExt",
            "ideogram_table": "cytoBandIdeo",
        },
        "mm10": {
            "name": "Mouse (mm10/GRCm38)",
            "species": "Mus musculus",
            "gene_table": "refGene",
            "cpg_table": "cpgIslandExt",
            "ideogram_table": "cytoBandIdeo",
        },
        "mm39": {
            "name": "Mouse (mm39/GRCm39)",
            "species": "Mus musculus",
            "gene_table": "refGene",
            "cpg_table": "cpgIslandExt",
            "ideogram_table": "cytoBandIdeo",
        },
    }

    HISTONE_MARKS = {
        "H3K4me3": {
            "type": "active",
            "description": "Active promoters",
            "peak_type": "sharp",
            "color": "#377EB8"
        },
        "H3K27ac": {
            "type": "active",
            "description": "Active enhancers and promoters",
            "peak_type": "sharp",
            "color": "#4DAF4A"
        },
        "H3K4me1": {
            "type": "priming",
            "description": "Enhancer priming/poised",
            "peak_type": "broad",
            "color": "#FF7F00"
        },
        "H3K27me3": {
            "type": "repressive",
            "description": "Polycomb repression",
            "peak_type": "broad",
            "color": "#E41A1C"
        },
        "H3K9me3": {
            "type": "repressive",
            "description": "Heterochromatin",
            "peak_type": "broad",
            "color": "#984EA3"
        },
        "H3K36me3": {
            "type": "active",
            "description": "Transcribed gene bodies",
            "peak_type": "broad",
            "color": "#A65628"
        }
    }


class TrackStyles:
    """Default display parameters for browser tracks."""

    STYLES = {
        "ideogram": {"color": "#B22222", "height": 0.6},
        "axis": {"color": "#444444", "height": 0.5},
        "genes": {"color": "#F2A900", "height": 1.5, "stacking": "squish"},
        "cpg": {"color": "#2E8B57", "height": 0.6, "stacking": "dense"},
        "methylation": {"color": "#1F77B4", "height": 1.2},
        "histone": {"color": "#D62728", "height": 1.2},
    }


class Settings(BaseSettings):
    """Walkthrough settings loaded from environment variables."""

    # Application
    app_name: str = "epiwalk"
    app_version: str = "0.1.0"
    log_level: str = "INFO"

    # Paths
    base_dir: Path = Field(default_factory=lambda: Path.cwd())
    cache_dir: Path = Field(default_factory=lambda: Path.cwd() / "data" / "cache")
    output_dir: Path = Field(default_factory=lambda: Path.cwd() / "results")
    workspace_dir: Optional[Path] = None
    snapshot_on_failure: bool = False

    # Dataset selection
    cell_type: str = "H1"
    genome: str = "hg19"
    chromosome: str = "chrX"
    histone_mark: str = "H3K4me3"
    dataset_id: Optional[str] = None

    # Metadata index (Roadmap epigenome summary table)
    metadata_url: str = "https://egg2.wustl.edu/roadmap/data/byFileType/metadata/EID_metadata.tab"
    metadata_id_column: str = "EID"
    metadata_name_column: str = "STD_NAME"

    # Remote data templates, filled with eid / mark
    methylation_url_template: str = (
        "https://egg2.wustl.edu/roadmap/data/byDataType/dnamethylation/RRBS/"
        "FractionalMethylation_bigwig/{eid}_RRBS_FractionalMethylation.bigwig"
    )
    peak_url_template: str = (
        "https://egg2.wustl.edu/roadmap/data/byFileType/peaks/consolidated/"
        "broadPeak/{eid}-{mark}.broadPeak.gz"
    )

    # UCSC services
    ucsc_api_url: str = "https://api.genome.ucsc.edu"
    ucsc_download_url: str = "https://hgdownload.soe.ucsc.edu/goldenPath"
    http_timeout: int = 60

    # Transcript annotation: UCSC table dump or GTF; defaults to the genome's gene table
    annotation_file: Optional[str] = None

    # Promoter windows / score matrices
    promoter_upstream: int = 1000
    promoter_downstream: int = 1000
    matrix_bin_size: Optional[int] = None
    n_workers: int = 1

    # Locus plot
    genes: List[str] = Field(default_factory=lambda: ["TMSB4X", "FAM9C"])
    locus_padding: int = 2000

    # Figures
    heatmap_colorscale: str = "Viridis"
    figure_format: str = "html"
    track_styles: Dict[str, Dict] = Field(default_factory=lambda: dict(TrackStyles.STYLES))

    class Config:
        env_prefix = "EPIWALK_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    def ensure_directories(self):
        """Create necessary directories if they don't exist."""
        for dir_path in [self.cache_dir, self.output_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

    def get_genome_config(self, genome: Optional[str] = None) -> Dict:
        """Get configuration for a specific genome."""
        genome = genome or self.genome
        if genome not in GenomeConfig.SUPPORTED_GENOMES:
            raise ValueError(f"Unsupported genome: {genome}. Supported: {list(GenomeConfig.SUPPORTED_GENOMES.keys())}")
        return GenomeConfig.SUPPORTED_GENOMES[genome]

    def get_histone_config(self, mark: Optional[str] = None) -> Dict:
        """Get configuration for a specific histone mark."""
        mark = mark or self.histone_mark
        if mark not in GenomeConfig.HISTONE_MARKS:
            raise ValueError(f"Unknown histone mark: {mark}. Known marks: {list(GenomeConfig.HISTONE_MARKS.keys())}")
        return GenomeConfig.HISTONE_MARKS[mark]

    def get_track_style(self, track: str) -> Dict:
        """Display parameters for a browser track, falling back to defaults."""
        style = dict(TrackStyles.STYLES.get(track, {}))
        style.update(self.track_styles.get(track, {}))
        return style

    def methylation_url(self, eid: str) -> str:
        return self.methylation_url_template.format(eid=eid, mark=self.histone_mark)

    def peak_url(self, eid: str) -> str:
        return self.peak_url_template.format(eid=eid, mark=self.histone_mark)

    def gene_table_url(self, genome: Optional[str] = None) -> str:
        """Location of the bulk transcript table dump on the UCSC download server."""
        genome = genome or self.genome
        table = self.get_genome_config(genome)["gene_table"]
        return f"{self.ucsc_download_url}/{genome}/database/{table}.txt.gz"


# Global settings instance
settings = Settings()
