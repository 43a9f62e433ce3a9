"""
UCSC Genome Browser REST API client.

Point lookups against browser annotation tables:
- gene models for a list of symbols (refGene-style tracks)
- CpG islands and ideogram bands for the locus figure

Every call is one blocking request; failures raise DataAcquisitionError.
Results are not cached.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
import requests

from .annotation import genepred_to_transcripts, transcripts_to_models
from .exceptions import DataAcquisitionError

logger = logging.getLogger(__name__)


class UCSCClient:
    """Thin client for https://api.genome.ucsc.edu."""

    def __init__(
        self,
        api_url: str = "https://api.genome.ucsc.edu",
        timeout: int = 60,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.api_url}/{endpoint}"
        logger.debug(f"GET {url} {params}")
        try:
            response = self.session.get(
                url, params=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise DataAcquisitionError(url, str(e)) from e
        except ValueError as e:
            raise DataAcquisitionError(url, f"invalid JSON response ({e})") from e

        if isinstance(data, dict) and data.get("error"):
            raise DataAcquisitionError(url, str(data["error"]))
        return data

    def get_track(
        self,
        genome: str,
        track: str,
        chrom: Optional[str] = None,
        start: Optional[int] = None,
        end: Optional[int] = None,
        max_items: int = -1,
    ) -> pd.DataFrame:
        """
        Rows of an annotation table, optionally restricted to a region.

        Returns:
            DataFrame with the table's own column names; empty when the
            region holds no items
        """
        params: Dict[str, Any] = {"genome": genome, "track": track, "maxItemsOutput": max_items}
        if chrom is not None:
            params["chrom"] = chrom
            if start is not None and end is not None:
                params["start"] = int(start)
                params["end"] = int(end)

        data = self._get("getData/track", params)
        items = data.get(track, [])

        # Whole-genome queries are keyed by chromosome
        if isinstance(items, dict):
            rows: List[Dict[str, Any]] = []
            for chrom_items in items.values():
                rows.extend(chrom_items)
            items = rows

        logger.info(f"{genome}/{track}: {len(items)} items")
        return pd.DataFrame(items)

    def gene_models(
        self,
        genome: str,
        symbols: Iterable[str],
        chrom: Optional[str] = None,
        track: str = "refGene",
    ) -> pd.DataFrame:
        """
        Transcript models for gene symbols, fetched fresh.

        Args:
            genome: Genome build
            symbols: Gene symbols matched against the table's ``name2``
            chrom: Limit the query to one chromosome
            track: genePred track name

        Returns:
            Gene model table; symbols without transcripts contribute no rows
        """
        symbols = list(symbols)
        table = self.get_track(genome, track, chrom=chrom)
        if table.empty or "name2" not in table.columns:
            logger.warning(f"{track} returned no gene models for {symbols}")
            return transcripts_to_models(genepred_to_transcripts(
                pd.DataFrame(columns=["name", "chrom", "strand", "txStart", "txEnd",
                                      "exonStarts", "exonEnds", "name2"])
            ))

        hits = table[table["name2"].isin(symbols)]
        models = transcripts_to_models(genepred_to_transcripts(hits))
        logger.info(f"Found {len(models)} transcripts for {symbols}")
        return models

    def cpg_islands(
        self,
        genome: str,
        chrom: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        track: str = "cpgIslandExt",
    ) -> pd.DataFrame:
        """CpG islands as an interval table with a ``name`` column."""
        table = self.get_track(genome, track, chrom=chrom, start=start, end=end)
        if table.empty:
            return pd.DataFrame(columns=["chr", "start", "end", "strand", "name"])
        return pd.DataFrame({
            "chr": table["chrom"].astype(str),
            "start": table["chromStart"].astype(int),
            "end": table["chromEnd"].astype(int),
            "strand": "*",
            "name": table["name"].astype(str) if "name" in table.columns else "CpG",
        })

    def cytobands(self, genome: str, chrom: str, track: str = "cytoBandIdeo") -> pd.DataFrame:
        """Ideogram bands of one chromosome (chr, start, end, name, gieStain)."""
        table = self.get_track(genome, track, chrom=chrom)
        if table.empty:
            return pd.DataFrame(columns=["chr", "start", "end", "name", "gieStain"])
        return pd.DataFrame({
            "chr": table["chrom"].astype(str),
            "start": table["chromStart"].astype(int),
            "end": table["chromEnd"].astype(int),
            "name": table["name"].astype(str),
            "gieStain": table["gieStain"].astype(str),
        })
