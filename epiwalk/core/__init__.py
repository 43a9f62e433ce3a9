"""
Core modules of the epiwalk walkthrough.

Includes:
- Remote data acquisition (bigWig, broadPeak)
- Chromosome filtering and score harmonization
- Transcript annotation and UCSC lookups
- Score matrices around promoters
- Multi-track locus figures
- Workspace snapshots
"""

# Acquisition
from .acquisition import (
    BROADPEAK_EXTRA_COLUMNS,
    NARROWPEAK_EXTRA_COLUMNS,
    fetch_remote,
    import_bigwig,
    bigwig_chrom_sizes,
    import_peaks,
)

# Metadata lookup
from .metadata import MetadataIndex

# Shared genomic utilities (interval-tree overlap, harmonization, etc.)
from .genomic_utils import (
    GenomicRegion,
    ScoreSchema,
    METHYLATION_SCHEMA,
    BROADPEAK_SCHEMA,
    find_overlaps,
    clip_to_region,
    filter_chromosome,
    harmonize_score,
)

# Annotation
from .annotation import TranscriptDatabase, resolve_locus
from .ucsc import UCSCClient

# Score matrices
from .score_matrix import (
    ScoreMatrix,
    ScoreMatrixList,
    score_matrix,
    score_matrix_list,
    meta_profile,
    profile_dispersion,
)

# Locus browser
from .browser import (
    IdeogramTrack,
    GenomeAxisTrack,
    GeneRegionTrack,
    AnnotationTrack,
    DataTrack,
    plot_tracks,
    build_locus_tracks,
)

# Persistence
from .workspace import Workspace, save_workspace, load_workspace

__all__ = [
    # Acquisition
    "BROADPEAK_EXTRA_COLUMNS",
    "NARROWPEAK_EXTRA_COLUMNS",
    "fetch_remote",
    "import_bigwig",
    "bigwig_chrom_sizes",
    "import_peaks",

    # Metadata
    "MetadataIndex",

    # Genomic utilities
    "GenomicRegion",
    "ScoreSchema",
    "METHYLATION_SCHEMA",
    "BROADPEAK_SCHEMA",
    "find_overlaps",
    "clip_to_region",
    "filter_chromosome",
    "harmonize_score",

    # Annotation
    "TranscriptDatabase",
    "resolve_locus",
    "UCSCClient",

    # Score matrices
    "ScoreMatrix",
    "ScoreMatrixList",
    "score_matrix",
    "score_matrix_list",
    "meta_profile",
    "profile_dispersion",

    # Browser
    "IdeogramTrack",
    "GenomeAxisTrack",
    "GeneRegionTrack",
    "AnnotationTrack",
    "DataTrack",
    "plot_tracks",
    "build_locus_tracks",

    # Workspace
    "Workspace",
    "save_workspace",
    "load_workspace",
]
