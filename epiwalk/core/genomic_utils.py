"""
Shared genomic utilities for epiwalk.

Interval tables are plain DataFrames with ``chr``, ``start``, ``end`` and
``strand`` columns (0-based, half-open) plus metadata columns. This module
holds the helpers every stage uses on them:

- NCLS-backed interval overlap detection
- chromosome filtering and score-column harmonization
- genomic regions

None of the functions modify their input; each returns a new DataFrame.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from ncls import NCLS

from .exceptions import MissingColumnError, ValidationError, validate_dataframe

logger = logging.getLogger(__name__)

CORE_COLUMNS = ["chr", "start", "end", "strand"]


# ============================================================================
# Core overlap functions
# ============================================================================


def _build_ncls_index(
    starts: np.ndarray, ends: np.ndarray
) -> NCLS:
    """Build an NCLS index from start/end arrays."""
    ids = np.arange(len(starts), dtype=np.int64)
    return NCLS(
        starts.astype(np.int64),
        ends.astype(np.int64),
        ids,
    )


def find_overlaps(
    query_df: pd.DataFrame,
    subject_df: pd.DataFrame,
    chrom_col: str = "chr",
    start_col: str = "start",
    end_col: str = "end",
    min_overlap_bp: int = 1,
    report: str = "all",
) -> pd.DataFrame:
    """Find overlapping intervals between two DataFrames.

    Parameters
    ----------
    query_df : pd.DataFrame
        Query intervals (the "left" set).
    subject_df : pd.DataFrame
        Subject intervals (the "right" set to search against).
    chrom_col : str
        Column name for chromosome in both DataFrames.
    start_col, end_col : str
        Column names for interval boundaries.
    min_overlap_bp : int
        Minimum overlap in base pairs (default 1).
    report : str
        "all" – return all overlapping pairs.
        "first" – return only the first hit per query.

    Returns
    -------
    pd.DataFrame
        DataFrame with columns [query_idx, subject_idx, overlap_bp].
    """
    if query_df.empty or subject_df.empty:
        return pd.DataFrame(columns=["query_idx", "subject_idx", "overlap_bp"])

    results: List[Tuple[int, int, int]] = []

    subject_groups = {name: grp for name, grp in subject_df.groupby(chrom_col)}

    for chrom, q_grp in query_df.groupby(chrom_col):
        if chrom not in subject_groups:
            continue
        s_grp = subject_groups[chrom]

        q_starts = q_grp[start_col].values
        q_ends = q_grp[end_col].values
        q_indices = q_grp.index.values
        s_indices = s_grp.index.values

        ncls = _build_ncls_index(s_grp[start_col].values, s_grp[end_col].values)
        for i in range(len(q_starts)):
            qs, qe = int(q_starts[i]), int(q_ends[i])
            # NCLS.find_overlap returns an iterator of (start, end, id) tuples
            for _s_start, _s_end, s_local_idx in ncls.find_overlap(qs, qe):
                ovlp = min(qe, int(_s_end)) - max(qs, int(_s_start))
                if ovlp < min_overlap_bp:
                    continue
                results.append((int(q_indices[i]), int(s_indices[int(s_local_idx)]), ovlp))
                if report == "first":
                    break

    if not results:
        return pd.DataFrame(columns=["query_idx", "subject_idx", "overlap_bp"])

    return pd.DataFrame(results, columns=["query_idx", "subject_idx", "overlap_bp"])


def clip_to_region(
    intervals: pd.DataFrame,
    chrom: str,
    start: int,
    end: int,
) -> pd.DataFrame:
    """Intervals overlapping ``chrom:start-end``, trimmed to the region."""
    if intervals.empty:
        return intervals.copy()
    mask = (
        (intervals["chr"] == chrom)
        & (intervals["start"] < end)
        & (intervals["end"] > start)
    )
    clipped = intervals[mask].copy()
    clipped["start"] = clipped["start"].clip(lower=start)
    clipped["end"] = clipped["end"].clip(upper=end)
    return clipped.reset_index(drop=True)


# ============================================================================
# Chromosome filter & score harmonization
# ============================================================================


def filter_chromosome(df: pd.DataFrame, chrom: str, chrom_col: str = "chr") -> pd.DataFrame:
    """Keep rows whose chromosome equals ``chrom`` exactly.

    No pattern matching: ``"chr1"`` does not select ``"chr11"`` or
    ``"chr1_gl000191_random"``. A chromosome with no records gives an
    empty table with the same columns.
    """
    validate_dataframe(df, "interval table", required_columns=[chrom_col])
    filtered = df[df[chrom_col].astype(str) == chrom].reset_index(drop=True)
    logger.info(f"Kept {len(filtered)} of {len(df)} records on {chrom}")
    return filtered


@dataclass(frozen=True)
class ScoreSchema:
    """Which metadata column becomes the common score and which are dropped.

    ``drop=None`` drops every other metadata column. An explicit ``drop``
    list must name all remaining metadata columns.
    """
    keep: str
    rename_to: str = "score"
    drop: Optional[Tuple[str, ...]] = None


METHYLATION_SCHEMA = ScoreSchema(keep="score")
BROADPEAK_SCHEMA = ScoreSchema(
    keep="signalValue",
    drop=("name", "score", "pValue", "qValue"),
)


def metadata_columns(df: pd.DataFrame) -> List[str]:
    """Columns of an interval table that are not coordinates or strand."""
    return [c for c in df.columns if c not in CORE_COLUMNS]


def harmonize_score(df: pd.DataFrame, schema: ScoreSchema) -> pd.DataFrame:
    """Reduce an interval table to its core columns plus one numeric score.

    Raises
    ------
    MissingColumnError
        If the column to keep is absent.
    ValidationError
        If the kept column is not numeric, or an explicit drop list leaves
        undeclared metadata behind.
    """
    validate_dataframe(df, "interval table", required_columns=["chr", "start", "end"])
    if schema.keep not in df.columns:
        raise MissingColumnError(schema.keep, "interval table", available=list(df.columns))
    if not pd.api.types.is_numeric_dtype(df[schema.keep]):
        raise ValidationError(
            f"Column '{schema.keep}' must be numeric to serve as '{schema.rename_to}', "
            f"got {df[schema.keep].dtype}"
        )

    others = [c for c in metadata_columns(df) if c != schema.keep]
    if schema.drop is not None:
        undeclared = [c for c in others if c not in schema.drop]
        if undeclared:
            raise ValidationError(
                f"Columns {undeclared} are neither kept nor dropped by the score schema"
            )

    out = df.drop(columns=others)
    if "strand" not in out.columns:
        out["strand"] = "*"
    out = out.rename(columns={schema.keep: schema.rename_to})
    out = out[CORE_COLUMNS + [schema.rename_to]].reset_index(drop=True)
    logger.debug(f"Harmonized '{schema.keep}' -> '{schema.rename_to}', dropped {others}")
    return out


# ============================================================================
# Regions
# ============================================================================


@dataclass(frozen=True)
class GenomicRegion:
    """A coordinate window on one chromosome of one genome build."""
    genome: str
    chrom: str
    start: int
    end: int

    def __post_init__(self):
        if self.end <= self.start:
            raise ValidationError(f"Region end ({self.end}) must be greater than start ({self.start})")

    @property
    def width(self) -> int:
        return self.end - self.start

    def __str__(self) -> str:
        return f"{self.genome}:{self.chrom}:{self.start}-{self.end}"
