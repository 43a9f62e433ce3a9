"""
Score Matrices

Aligns interval tracks to a set of equal-width windows (promoters) and
summarizes them as window-by-position matrices:

- one row per window, one column per base (or per bin)
- minus-strand rows reversed so column order follows transcription
- positions without data are NaN, never zero
- NaN-excluding meta-profiles and dispersion for the aggregate plots

Windows that run off the chromosome (start < 0, or end beyond the
chromosome length when sizes are supplied) keep their row; the off-edge
positions are NaN.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import (
    EmptyDataError,
    InvalidParameterError,
    ScoreMatrixError,
    validate_dataframe,
)
from .genomic_utils import find_overlaps

logger = logging.getLogger(__name__)


@dataclass
class ScoreMatrix:
    """Window-by-position score matrix of one track."""

    values: np.ndarray
    windows: pd.DataFrame
    name: str = ""
    upstream: int = 0
    bin_size: int = 1
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape

    @property
    def positions(self) -> np.ndarray:
        """Offset of each column from the window anchor (TSS)."""
        return np.arange(self.values.shape[1]) * self.bin_size - self.upstream

    def profile(self) -> np.ndarray:
        return meta_profile(self.values)

    def coverage(self) -> float:
        """Fraction of cells holding data."""
        if self.values.size == 0:
            return 0.0
        return float(np.isfinite(self.values).mean())

    def ordered(self) -> "ScoreMatrix":
        """Copy with rows sorted by descending mean; all-missing rows last."""
        means = _row_means(self.values)
        order = np.argsort(np.where(np.isnan(means), -np.inf, means), kind="stable")[::-1]
        return ScoreMatrix(
            values=self.values[order],
            windows=self.windows.iloc[order].reset_index(drop=True),
            name=self.name,
            upstream=self.upstream,
            bin_size=self.bin_size,
            metadata=dict(self.metadata),
        )

    def winsorized(self, lower: float = 1.0, upper: float = 99.0) -> "ScoreMatrix":
        """Copy with values clipped to the given percentiles; NaN stays NaN."""
        if not 0 <= lower < upper <= 100:
            raise InvalidParameterError("winsorize", (lower, upper), "0 <= lower < upper <= 100")
        if not np.isfinite(self.values).any():
            return self
        lo, hi = np.nanpercentile(self.values, [lower, upper])
        return ScoreMatrix(
            values=np.clip(self.values, lo, hi),
            windows=self.windows,
            name=self.name,
            upstream=self.upstream,
            bin_size=self.bin_size,
            metadata=dict(self.metadata),
        )


class ScoreMatrixList(dict):
    """Score matrices of several tracks over the same windows, in insertion order."""

    def profiles(self) -> Dict[str, np.ndarray]:
        return {name: m.profile() for name, m in self.items()}


# ============================================================================
# Matrix computation
# ============================================================================


def _fill_chunk(
    windows: pd.DataFrame,
    intervals: pd.DataFrame,
    weight_col: str,
    width: int,
    chrom_size: Optional[int],
) -> np.ndarray:
    """Matrix block for windows of one chromosome, in genomic orientation."""
    block = np.zeros((len(windows), width), dtype=float)
    covered = np.zeros((len(windows), width), dtype=bool)

    local = windows.reset_index(drop=True)
    subject = intervals.reset_index(drop=True)
    hits = find_overlaps(local.assign(start=local["start"].clip(lower=0)), subject)

    if not hits.empty:
        win_starts = local["start"].to_numpy(dtype=np.int64)
        iv_starts = subject["start"].to_numpy(dtype=np.int64)
        iv_ends = subject["end"].to_numpy(dtype=np.int64)
        weights = subject[weight_col].to_numpy(dtype=float)

        for q, s in zip(hits["query_idx"].astype(int), hits["subject_idx"].astype(int)):
            ws = win_starts[q]
            a = max(iv_starts[s], ws) - ws
            b = min(iv_ends[s], ws + width) - ws
            block[q, a:b] += weights[s]
            covered[q, a:b] = True

    block[~covered] = np.nan

    # Off-edge positions carry no data by definition
    starts = local["start"].to_numpy(dtype=np.int64)
    for i in np.flatnonzero(starts < 0):
        block[i, : min(width, -starts[i])] = np.nan
    if chrom_size is not None:
        for i in np.flatnonzero(starts + width > chrom_size):
            block[i, max(0, chrom_size - starts[i]):] = np.nan

    return block


def _anchor_offset(windows: pd.DataFrame) -> int:
    """Bases between the window start and its TSS, in transcription order."""
    if "tss" not in windows.columns:
        return 0
    first = windows.iloc[0]
    if first.get("strand") == "-":
        return int(first["end"] - 1 - first["tss"])
    return int(first["tss"] - first["start"])


def _bin_columns(values: np.ndarray, bin_size: int) -> np.ndarray:
    n_rows, width = values.shape
    if width % bin_size != 0:
        raise InvalidParameterError("bin_size", bin_size, f"a divisor of the window width {width}")
    reshaped = values.reshape(n_rows, width // bin_size, bin_size)
    counts = np.isfinite(reshaped).sum(axis=2)
    sums = np.nansum(reshaped, axis=2)
    with np.errstate(invalid="ignore", divide="ignore"):
        return np.where(counts > 0, sums / np.maximum(counts, 1), np.nan)


def _empty_matrix(
    windows: pd.DataFrame,
    width: int,
    name: str,
    upstream: Optional[int],
    bin_size: Optional[int],
) -> ScoreMatrix:
    if width <= 0:
        raise InvalidParameterError("window width", width, "> 0")
    values = np.full((0, width), np.nan)
    effective_bin = 1
    if bin_size and bin_size > 1:
        values = _bin_columns(values, bin_size)
        effective_bin = bin_size
    logger.warning(f"Score matrix '{name}': no windows, returning an empty matrix")
    return ScoreMatrix(
        values=values,
        windows=windows.reset_index(drop=True),
        name=name,
        upstream=upstream or 0,
        bin_size=effective_bin,
    )


def score_matrix(
    intervals: pd.DataFrame,
    windows: pd.DataFrame,
    weight_col: str = "score",
    name: str = "",
    strand_aware: bool = True,
    upstream: Optional[int] = None,
    bin_size: Optional[int] = None,
    chrom_sizes: Optional[Dict[str, int]] = None,
    n_workers: int = 1,
    width: Optional[int] = None,
) -> ScoreMatrix:
    """
    Score matrix of one track over equal-width windows.

    Each cell is the summed ``weight_col`` of the intervals covering that
    base; uncovered bases are NaN.

    Args:
        intervals: Interval table (chr, start, end, weight column)
        windows: Window table (chr, start, end, strand); all windows must
            have the same width
        weight_col: Column holding the score
        name: Track name recorded on the matrix
        strand_aware: Reverse rows of minus-strand windows
        upstream: Offset of the anchor inside the window, used for the
            position axis; taken from ``windows["tss"]`` when present
        bin_size: Average consecutive columns into bins of this many bases
        chrom_sizes: Chromosome lengths for off-edge detection
        n_workers: Threads used to fill per-chromosome blocks
        width: Expected window width; required when ``windows`` may be
            empty, in which case a matrix with no rows is returned

    Returns:
        ScoreMatrix with one row per window

    Raises:
        EmptyDataError: No windows and no ``width`` to size the matrix
    """
    validate_dataframe(windows, "window set", required_columns=["chr", "start", "end"])
    validate_dataframe(intervals, "intervals", required_columns=["chr", "start", "end", weight_col])
    if n_workers < 1:
        raise InvalidParameterError("n_workers", n_workers, ">= 1")
    if windows.empty:
        if width is None:
            raise EmptyDataError("window set")
        return _empty_matrix(windows, width, name, upstream, bin_size)

    widths = (windows["end"] - windows["start"]).unique()
    if len(widths) != 1:
        raise InvalidParameterError("windows", f"{len(widths)} different widths", "equal-width windows")
    if width is not None and int(widths[0]) != width:
        raise InvalidParameterError("windows", f"width {int(widths[0])}", f"width {width}")
    width = int(widths[0])
    if width <= 0:
        raise InvalidParameterError("window width", width, "> 0")

    windows = windows.reset_index(drop=True)
    intervals = intervals.reset_index(drop=True)
    if not pd.api.types.is_numeric_dtype(intervals[weight_col]):
        raise ScoreMatrixError(f"Weight column '{weight_col}' is not numeric")

    if upstream is None:
        upstream = _anchor_offset(windows)

    by_chrom = {chrom: grp for chrom, grp in intervals.groupby("chr", sort=False)}
    chunks = [(chrom, grp) for chrom, grp in windows.groupby("chr", sort=False)]
    chrom_sizes = chrom_sizes or {}

    def _run(chunk):
        chrom, grp = chunk
        subject = by_chrom.get(chrom, intervals.iloc[0:0])
        return grp.index.to_numpy(), _fill_chunk(grp, subject, weight_col, width, chrom_sizes.get(chrom))

    if n_workers > 1 and len(chunks) > 1:
        logger.info(f"Computing {len(chunks)} chromosome blocks on {n_workers} threads")
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            blocks = list(executor.map(_run, chunks))
    else:
        blocks = [_run(chunk) for chunk in chunks]

    values = np.full((len(windows), width), np.nan)
    for rows, block in blocks:
        values[rows] = block

    if strand_aware and "strand" in windows.columns:
        minus = (windows["strand"] == "-").to_numpy()
        values[minus] = values[minus, ::-1]

    starts = windows["start"].to_numpy()
    sizes = windows["chr"].map(chrom_sizes).to_numpy(dtype=float)
    off_edge = int(((starts < 0) | (starts + width > np.nan_to_num(sizes, nan=np.inf))).sum())
    if off_edge:
        logger.info(f"{off_edge} windows run off the chromosome; off-edge positions are NaN")

    effective_bin = 1
    if bin_size and bin_size > 1:
        values = _bin_columns(values, bin_size)
        effective_bin = bin_size

    matrix = ScoreMatrix(
        values=values,
        windows=windows,
        name=name,
        upstream=upstream,
        bin_size=effective_bin,
    )
    logger.info(
        f"Score matrix '{name}': {matrix.shape[0]} x {matrix.shape[1]}, "
        f"{matrix.coverage():.1%} cells with data"
    )
    return matrix


def score_matrix_list(
    tracks: Dict[str, pd.DataFrame],
    windows: pd.DataFrame,
    **kwargs,
) -> ScoreMatrixList:
    """Score matrices of several tracks over the same windows."""
    matrices = ScoreMatrixList()
    for name, intervals in tracks.items():
        matrices[name] = score_matrix(intervals, windows, name=name, **kwargs)
    return matrices


# ============================================================================
# Profiles
# ============================================================================


def _row_means(values: np.ndarray) -> np.ndarray:
    counts = np.isfinite(values).sum(axis=1)
    sums = np.nansum(values, axis=1)
    with np.errstate(invalid="ignore", divide="ignore"):
        return np.where(counts > 0, sums / np.maximum(counts, 1), np.nan)


def meta_profile(values) -> np.ndarray:
    """
    Column means over all windows, ignoring missing cells.

    A column with no data in any window is NaN.
    """
    if isinstance(values, ScoreMatrix):
        values = values.values
    return _row_means(np.asarray(values, dtype=float).T)


def profile_dispersion(values, kind: str = "se") -> np.ndarray:
    """
    Per-column standard deviation ("sd") or standard error ("se") of the
    non-missing cells. Columns with fewer than two values are NaN.
    """
    if kind not in ("se", "sd"):
        raise InvalidParameterError("kind", kind, "'se' or 'sd'")
    if isinstance(values, ScoreMatrix):
        values = values.values
    values = np.asarray(values, dtype=float)

    mask = np.isfinite(values)
    counts = mask.sum(axis=0)
    means = meta_profile(values)
    sq = np.where(mask, (values - means) ** 2, 0.0).sum(axis=0)
    with np.errstate(invalid="ignore", divide="ignore"):
        sd = np.where(counts > 1, np.sqrt(sq / np.maximum(counts - 1, 1)), np.nan)
        if kind == "sd":
            return sd
        return np.where(counts > 1, sd / np.sqrt(np.maximum(counts, 1)), np.nan)


__all__: List[str] = [
    "ScoreMatrix",
    "ScoreMatrixList",
    "score_matrix",
    "score_matrix_list",
    "meta_profile",
    "profile_dispersion",
]
