"""
Remote Data Acquisition

Fetches track files from the network and loads them into interval tables:
- bigWig continuous signal (RRBS fractional methylation) via pyBigWig
- BED6+N peak tables (broadPeak / narrowPeak) with a declared
  extra-column schema

A fetch is a single blocking attempt; any failure surfaces immediately.
"""

import hashlib
import logging
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import urlparse

import numpy as np
import pandas as pd
import pyBigWig
import requests

from .exceptions import (
    DataAcquisitionError,
    FileFormatError,
    PeakFileFormatError,
    SchemaMismatchError,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

BED6_COLUMNS = ["chr", "start", "end", "name", "score", "strand"]

# ENCODE broadPeak: BED6 + signalValue, pValue, qValue
BROADPEAK_EXTRA_COLUMNS: Dict[str, type] = {
    "signalValue": float,
    "pValue": float,
    "qValue": float,
}

# ENCODE narrowPeak: broadPeak + summit offset
NARROWPEAK_EXTRA_COLUMNS: Dict[str, type] = {
    **BROADPEAK_EXTRA_COLUMNS,
    "peak": int,
}


def _is_remote(location: str) -> bool:
    return urlparse(location).scheme in ("http", "https", "ftp")


def _cache_path(location: str, cache_dir: Path) -> Path:
    """Download target mirroring the URL's host and path under ``cache_dir``."""
    parsed = urlparse(location)
    parts = [p for p in parsed.path.split("/") if p not in ("", ".", "..")]
    if not parts:
        parts = ["download"]
    if parsed.query:
        digest = hashlib.sha1(parsed.query.encode()).hexdigest()[:8]
        parts.insert(-1, digest)
    return cache_dir.joinpath(parsed.netloc or "localhost", *parts)


def fetch_remote(url: PathLike, cache_dir: PathLike, timeout: int = 60) -> Path:
    """
    Make a track file available locally.

    Remote URLs are streamed into ``cache_dir`` under their host and path,
    so URLs that share a file name do not collide; a file already
    downloaded there is reused. Local paths and ``file://`` URLs are
    returned as-is.

    Args:
        url: http(s)/ftp URL, file:// URL or local path
        cache_dir: Download directory
        timeout: Seconds to wait for the server

    Returns:
        Path to the local file

    Raises:
        DataAcquisitionError: Unreachable server, HTTP error status or
            missing local file
    """
    location = str(url)

    if not _is_remote(location):
        parsed = urlparse(location)
        path = Path(parsed.path) if parsed.scheme == "file" else Path(location)
        if not path.exists():
            raise DataAcquisitionError(location, "no such file")
        return path

    local_file = _cache_path(location, Path(cache_dir))
    local_file.parent.mkdir(parents=True, exist_ok=True)

    if local_file.exists():
        logger.info(f"Using downloaded copy {local_file}")
        return local_file

    logger.info(f"Downloading {location}...")
    partial = local_file.with_name(local_file.name + ".part")
    try:
        response = requests.get(location, stream=True, timeout=timeout)
        response.raise_for_status()

        with open(partial, "wb") as f:
            for chunk in response.iter_content(chunk_size=8192):
                f.write(chunk)
    except requests.RequestException as e:
        partial.unlink(missing_ok=True)
        raise DataAcquisitionError(location, str(e)) from e

    partial.replace(local_file)
    logger.info(f"Saved {local_file} ({local_file.stat().st_size} bytes)")
    return local_file


# ============================================================================
# bigWig
# ============================================================================


def _open_bigwig(path: PathLike):
    try:
        bw = pyBigWig.open(str(path))
    except RuntimeError as e:
        raise FileFormatError(f"{path}: cannot be opened as bigWig ({e})") from e
    if bw is None or not bw.isBigWig():
        if bw is not None:
            bw.close()
        raise FileFormatError(f"{path}: not a bigWig file")
    return bw


def bigwig_chrom_sizes(path: PathLike) -> Dict[str, int]:
    """Chromosome lengths declared in a bigWig header."""
    bw = _open_bigwig(path)
    try:
        return {chrom: int(length) for chrom, length in bw.chroms().items()}
    finally:
        bw.close()


def import_bigwig(path: PathLike, chrom: Optional[str] = None) -> pd.DataFrame:
    """
    Load the intervals of a bigWig file.

    Args:
        path: Local bigWig file
        chrom: Only read this chromosome; a chromosome absent from the file
            gives an empty table

    Returns:
        Interval table with chr, start, end, strand and score
    """
    bw = _open_bigwig(path)
    frames = []
    try:
        chroms = bw.chroms()
        targets = [chrom] if chrom is not None else list(chroms)

        for name in targets:
            if name not in chroms:
                continue
            intervals = bw.intervals(name)
            if not intervals:
                continue
            arr = np.asarray(intervals, dtype=float)
            frames.append(pd.DataFrame({
                "chr": name,
                "start": arr[:, 0].astype(np.int64),
                "end": arr[:, 1].astype(np.int64),
                "strand": "*",
                "score": arr[:, 2],
            }))
    finally:
        bw.close()

    if not frames:
        return _empty_table({"score": float})

    df = pd.concat(frames, ignore_index=True)
    logger.info(f"Imported {len(df)} bigWig intervals from {path}")
    return df


# ============================================================================
# Peak tables
# ============================================================================


def _empty_table(extra: Dict[str, type]) -> pd.DataFrame:
    columns = {
        "chr": pd.Series(dtype=str),
        "start": pd.Series(dtype=np.int64),
        "end": pd.Series(dtype=np.int64),
        "strand": pd.Series(dtype=str),
    }
    for col, dtype in extra.items():
        columns[col] = pd.Series(dtype=dtype)
    return pd.DataFrame(columns)


def import_peaks(
    path: PathLike,
    extra_columns: Dict[str, type] = BROADPEAK_EXTRA_COLUMNS,
) -> pd.DataFrame:
    """
    Load a BED6+N peak file with a declared extra-column schema.

    Args:
        path: Plain or gzipped peak file
        extra_columns: Ordered mapping of the columns after the six BED
            columns to their Python type

    Returns:
        Interval table with the BED6 columns and the declared extras;
        BED strand "." becomes "*"

    Raises:
        SchemaMismatchError: The file's column count differs from
            6 + len(extra_columns)
        PeakFileFormatError: A value does not parse as its declared type
    """
    names = BED6_COLUMNS + list(extra_columns)
    dtypes = {"start": np.int64, "end": np.int64, "score": float, **extra_columns}

    try:
        raw = pd.read_csv(path, sep="\t", header=None, comment="#", dtype=str, compression="infer")
    except pd.errors.EmptyDataError:
        logger.info(f"{path} contains no peaks")
        return _empty_table({"name": str, "score": float, **extra_columns})[
            ["chr", "start", "end", "name", "score", "strand", *extra_columns]
        ]
    except pd.errors.ParserError as e:
        raise PeakFileFormatError(f"{path}: {e}") from e

    if raw.shape[1] != len(names):
        raise SchemaMismatchError(str(path), len(names), raw.shape[1])
    raw.columns = names

    df = raw.copy()
    for col, dtype in dtypes.items():
        if dtype in (int, float, np.int64):
            try:
                df[col] = pd.to_numeric(raw[col], errors="raise").astype(dtype)
            except (ValueError, TypeError) as e:
                raise PeakFileFormatError(f"{path}: column '{col}' is not {dtype.__name__}: {e}") from e
        else:
            df[col] = raw[col].astype(dtype)

    df["strand"] = df["strand"].replace(".", "*")
    logger.info(f"Imported {len(df)} peaks from {path}")
    return df


__all__ = [
    "BROADPEAK_EXTRA_COLUMNS",
    "NARROWPEAK_EXTRA_COLUMNS",
    "fetch_remote",
    "import_bigwig",
    "bigwig_chrom_sizes",
    "import_peaks",
]
