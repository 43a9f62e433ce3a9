"""
Gene Annotation Module

Transcript-level gene annotation used as the alignment frame of the
aggregate plots and as the locus definition of the browser figure:
- UCSC gene-prediction table dumps (refGene / knownGene)
- GTF/GFF parsing for gene models
- Fixed-width promoter windows around transcription start sites
- Gene-symbol to locus resolution
"""

import gzip
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd

from .acquisition import fetch_remote
from .exceptions import (
    AnnotationLookupError,
    FileFormatError,
    GTFParseError,
    validate_dataframe,
    validate_numeric_param,
)
from .genomic_utils import GenomicRegion, filter_chromosome

logger = logging.getLogger(__name__)

# genePred layouts of the UCSC download server, keyed by column count
GENEPRED_LAYOUTS = {
    16: [
        "bin", "name", "chrom", "strand", "txStart", "txEnd", "cdsStart",
        "cdsEnd", "exonCount", "exonStarts", "exonEnds", "score", "name2",
        "cdsStartStat", "cdsEndStat", "exonFrames",
    ],
    15: [
        "name", "chrom", "strand", "txStart", "txEnd", "cdsStart", "cdsEnd",
        "exonCount", "exonStarts", "exonEnds", "score", "name2",
        "cdsStartStat", "cdsEndStat", "exonFrames",
    ],
    12: [
        "name", "chrom", "strand", "txStart", "txEnd", "cdsStart", "cdsEnd",
        "exonCount", "exonStarts", "exonEnds", "proteinID", "alignID",
    ],
    10: [
        "name", "chrom", "strand", "txStart", "txEnd", "cdsStart", "cdsEnd",
        "exonCount", "exonStarts", "exonEnds",
    ],
}

TRANSCRIPT_COLUMNS = [
    "chr", "start", "end", "strand", "transcript_id", "gene_id", "gene_name",
    "exon_starts", "exon_ends",
]

# Feature types that carry a transcript extent (GTF and GFF3)
TRANSCRIPT_FEATURES = ("transcript", "mRNA", "ncRNA", "lnc_RNA")


def parse_coordinate_list(value) -> List[int]:
    """Parse a UCSC comma-separated coordinate list ("100,250,")."""
    if isinstance(value, (list, tuple, np.ndarray)):
        return [int(v) for v in value]
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return []
    return [int(v) for v in str(value).split(",") if v.strip()]


class TranscriptDatabase:
    """
    Transcript models of one genome build.

    ``transcripts`` holds one row per transcript in 0-based half-open
    coordinates with exon boundary lists.
    """

    def __init__(self, transcripts: pd.DataFrame, genome: str = "hg19"):
        validate_dataframe(transcripts, "transcript table", required_columns=TRANSCRIPT_COLUMNS)
        self.transcripts = transcripts
        self.genome = genome

    def __len__(self):
        return len(self.transcripts)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_ucsc(
        cls,
        genome: str,
        url: str,
        cache_dir: Union[str, Path],
        timeout: int = 60,
    ) -> "TranscriptDatabase":
        """Download (or reuse) a UCSC table dump and load it."""
        logger.info(f"Loading {genome} transcript table from {url}")
        local = fetch_remote(url, cache_dir, timeout=timeout)
        return cls.from_ucsc_table(local, genome)

    @classmethod
    def from_ucsc_table(cls, path: Union[str, Path], genome: str = "hg19") -> "TranscriptDatabase":
        """
        Load a genePred table (refGene, knownGene, ...).

        Args:
            path: Plain or gzipped tab-separated table without header
            genome: Genome build the table belongs to

        Returns:
            TranscriptDatabase
        """
        try:
            raw = pd.read_csv(path, sep="\t", header=None, dtype=str, compression="infer")
        except pd.errors.EmptyDataError:
            raw = pd.DataFrame(columns=GENEPRED_LAYOUTS[16])
        except pd.errors.ParserError as e:
            raise FileFormatError(f"{path}: {e}") from e

        if raw.shape[1] not in GENEPRED_LAYOUTS:
            raise FileFormatError(
                f"{path}: {raw.shape[1]} columns does not match a known genePred layout "
                f"({sorted(GENEPRED_LAYOUTS)})"
            )
        raw.columns = GENEPRED_LAYOUTS[raw.shape[1]]
        return cls(genepred_to_transcripts(raw), genome)

    @classmethod
    def from_gtf(cls, gtf_file: Union[str, Path], genome: str = "hg19") -> "TranscriptDatabase":
        """
        Load transcript models from a GTF/GFF file.

        Transcript rows (``transcript`` in GTF, ``mRNA`` and friends in
        GFF3) give the transcript extent; exon rows give the exon
        boundaries. Coordinates are converted to 0-based.
        """
        logger.info(f"Loading GTF: {gtf_file}")
        df = _parse_gtf(str(gtf_file))
        if df.empty:
            return cls(pd.DataFrame(columns=TRANSCRIPT_COLUMNS), genome)

        df = _standardize_gtf_columns(df)
        transcripts = df[df["feature"].isin(TRANSCRIPT_FEATURES)].copy()
        exons = df[df["feature"] == "exon"].copy()

        if transcripts.empty:
            raise GTFParseError(f"{gtf_file}: no transcript features")

        exon_groups = {
            tid: grp.sort_values("start")
            for tid, grp in exons.groupby("transcript_id")
        } if "transcript_id" in exons.columns else {}

        records = []
        for row in transcripts.itertuples(index=False):
            tx_exons = exon_groups.get(row.transcript_id)
            if tx_exons is None or tx_exons.empty:
                exon_starts, exon_ends = [row.start - 1], [row.end]
            else:
                exon_starts = (tx_exons["start"] - 1).tolist()
                exon_ends = tx_exons["end"].tolist()
            records.append({
                "chr": row.chrom,
                "start": row.start - 1,
                "end": row.end,
                "strand": row.strand,
                "transcript_id": row.transcript_id,
                "gene_id": row.gene_id,
                "gene_name": row.gene_name,
                "exon_starts": exon_starts,
                "exon_ends": exon_ends,
            })

        logger.info(f"Loaded {len(records)} transcripts, {len(exons)} exons")
        return cls(pd.DataFrame(records, columns=TRANSCRIPT_COLUMNS), genome)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def promoters(
        self,
        upstream: int = 1000,
        downstream: int = 1000,
        chrom: Optional[str] = None,
    ) -> pd.DataFrame:
        """
        Fixed-width windows around every transcription start site.

        Plus-strand windows are ``[tss - upstream, tss + downstream)``;
        minus-strand windows are mirrored around the last transcribed
        base. Windows are not clipped at the chromosome start, so every
        window is exactly ``upstream + downstream`` wide. Transcripts
        sharing a TSS give one window.

        Args:
            upstream: Base pairs upstream of TSS
            downstream: Base pairs downstream of TSS
            chrom: Restrict to one chromosome

        Returns:
            Window table with chr, start, end, strand, gene_id, gene_name, tss
        """
        validate_numeric_param(upstream, "upstream", min_val=0)
        validate_numeric_param(downstream, "downstream", min_val=0)
        if upstream + downstream == 0:
            raise ValueError("Promoter window must be at least 1 bp wide")

        tx = self.transcripts
        if chrom is not None:
            tx = filter_chromosome(tx, chrom)

        minus = tx["strand"] == "-"
        tss = np.where(minus, tx["end"] - 1, tx["start"]).astype(np.int64)

        windows = pd.DataFrame({
            "chr": tx["chr"].values,
            "start": np.where(minus, tss - downstream + 1, tss - upstream),
            "end": np.where(minus, tss + upstream + 1, tss + downstream),
            "strand": tx["strand"].values,
            "gene_id": tx["gene_id"].values,
            "gene_name": tx["gene_name"].values,
            "tss": tss,
        })
        windows = windows.drop_duplicates(subset=["chr", "start", "end", "strand"]).reset_index(drop=True)
        logger.info(f"Built {len(windows)} promoter windows ({upstream} up / {downstream} down)")
        return windows

    def gene_models(self, symbols: Iterable[str]) -> pd.DataFrame:
        """Transcripts whose gene name is one of ``symbols``."""
        symbols = list(symbols)
        hits = self.transcripts[self.transcripts["gene_name"].isin(symbols)]
        return transcripts_to_models(hits)


def genepred_to_transcripts(raw: pd.DataFrame) -> pd.DataFrame:
    """Convert a genePred table (UCSC column names) to the transcript layout."""
    gene_col = "name2" if "name2" in raw.columns else "name"
    return pd.DataFrame({
        "chr": raw["chrom"].astype(str).values,
        "start": raw["txStart"].astype(np.int64).values,
        "end": raw["txEnd"].astype(np.int64).values,
        "strand": raw["strand"].astype(str).values,
        "transcript_id": raw["name"].astype(str).values,
        "gene_id": raw[gene_col].astype(str).values,
        "gene_name": raw[gene_col].astype(str).values,
        "exon_starts": [parse_coordinate_list(v) for v in raw["exonStarts"]],
        "exon_ends": [parse_coordinate_list(v) for v in raw["exonEnds"]],
    }, columns=TRANSCRIPT_COLUMNS)


def transcripts_to_models(transcripts: pd.DataFrame) -> pd.DataFrame:
    """Gene model table (chr, start, end, strand, transcript, symbol, exons)."""
    return pd.DataFrame({
        "chr": transcripts["chr"].values,
        "start": transcripts["start"].values,
        "end": transcripts["end"].values,
        "strand": transcripts["strand"].values,
        "transcript": transcripts["transcript_id"].values,
        "symbol": transcripts["gene_name"].values,
        "exon_starts": transcripts["exon_starts"].values,
        "exon_ends": transcripts["exon_ends"].values,
    })


def resolve_locus(
    models: pd.DataFrame,
    symbols: Iterable[str],
    genome: str = "",
    padding: int = 0,
) -> GenomicRegion:
    """
    Locus spanning every transcript of the given gene symbols.

    The boundary is the minimum start and maximum end over all matching
    transcripts, so a symbol with several transcripts (or read-through
    transcripts) widens the locus rather than picking one model.

    Args:
        models: Gene model table with chr, start, end and symbol
        symbols: Gene symbols that define the locus
        genome: Genome build recorded on the region
        padding: Base pairs added on both sides

    Returns:
        GenomicRegion

    Raises:
        AnnotationLookupError: None of the symbols has a transcript
    """
    symbols = list(symbols)
    validate_dataframe(models, "gene models", required_columns=["chr", "start", "end", "symbol"])
    hits = models[models["symbol"].isin(symbols)]

    if hits.empty:
        raise AnnotationLookupError(symbols, genome)

    missing = [s for s in symbols if s not in set(hits["symbol"])]
    if missing:
        logger.warning(f"No transcripts for {missing}; locus built from the remaining genes")

    per_symbol = hits.groupby("symbol").size()
    ambiguous = per_symbol[per_symbol > 1]
    if not ambiguous.empty:
        logger.info(f"Merging multiple transcripts for {ambiguous.to_dict()} into one locus")

    chroms = hits["chr"].value_counts()
    chrom = chroms.index[0]
    if len(chroms) > 1:
        logger.warning(f"Transcripts span {list(chroms.index)}; using {chrom}")
        hits = hits[hits["chr"] == chrom]

    start = max(0, int(hits["start"].min()) - padding)
    end = int(hits["end"].max()) + padding
    return GenomicRegion(genome=genome, chrom=str(chrom), start=start, end=end)


# ============================================================================
# GTF parsing
# ============================================================================


def _parse_gtf(gtf_file: str) -> pd.DataFrame:
    """Parse GTF file into DataFrame."""
    records = []

    opener = gzip.open if gtf_file.endswith('.gz') else open

    with opener(gtf_file, 'rt') as f:
        for line_no, line in enumerate(f, start=1):
            if line.startswith('#') or not line.strip():
                continue

            fields = line.rstrip('\n').split('\t')
            if len(fields) < 9:
                raise GTFParseError(f"{gtf_file}:{line_no}: expected 9 fields, got {len(fields)}")

            chrom, source, feature, start, end, score, strand, frame, attributes = fields[:9]
            try:
                start, end = int(start), int(end)
            except ValueError as e:
                raise GTFParseError(f"{gtf_file}:{line_no}: bad coordinates") from e

            records.append({
                'chrom': chrom,
                'source': source,
                'feature': feature,
                'start': start,
                'end': end,
                'strand': strand,
                **_parse_attributes(attributes)
            })

    return pd.DataFrame(records)


def _parse_attributes(attr_string: str) -> Dict[str, str]:
    """Parse GTF attribute string."""
    attrs = {}
    for item in attr_string.strip().split(';'):
        item = item.strip()
        if not item:
            continue

        # Handle both GTF and GFF formats
        if '=' in item:  # GFF3
            key, value = item.split('=', 1)
        elif ' ' in item:  # GTF
            key, value = item.split(' ', 1)
        else:
            continue

        attrs[key] = value.strip().strip('"')

    return attrs


def _attribute(df: pd.DataFrame, candidates: List[str]) -> pd.Series:
    """First non-missing value among attribute columns, row by row."""
    values = pd.Series(np.nan, index=df.index, dtype=object)
    for col in candidates:
        if col in df.columns:
            values = values.fillna(df[col])
    return values


def _standardize_gtf_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Standardize identifier columns across GTF/GFF versions.

    GTF rows name their transcript and gene directly. GFF3 rows link an
    exon to its transcript and a transcript to its gene through ``Parent``;
    an exon shared by several transcripts lists them comma-separated.
    """
    df = df.copy()

    if 'transcript_id' in df.columns:
        if 'gene_id' not in df.columns:
            df['gene_id'] = df['transcript_id']
        df['gene_name'] = _attribute(df, ['gene_name', 'gene_symbol', 'gene', 'gene_id'])
        return df

    ids = _attribute(df, ['ID'])
    parents = _attribute(df, ['Parent'])
    is_exon = df['feature'] == 'exon'

    df['transcript_id'] = ids.where(~is_exon, parents)
    df['gene_id'] = parents.where(~is_exon)

    # Symbols come from the parent gene row, else from the transcript itself
    gene_rows = (df['feature'] == 'gene') & ids.notna()
    symbols = pd.Series(
        _attribute(df, ['gene_name', 'Name'])[gene_rows].values,
        index=ids[gene_rows].values,
    )
    symbols = symbols[~symbols.index.duplicated()]
    df['gene_name'] = (
        df['gene_id'].map(symbols)
        .fillna(_attribute(df, ['gene_name', 'gene']))
        .fillna(df['gene_id'])
    )

    exons = df[is_exon].copy()
    exons['transcript_id'] = exons['transcript_id'].str.split(',')
    exons = exons.explode('transcript_id')
    return pd.concat([df[~is_exon], exons], ignore_index=True)
