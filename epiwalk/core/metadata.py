"""
Epigenome metadata index.

Resolves a cell type name to dataset identifiers using a spreadsheet-style
summary table (the Roadmap Epigenomics EID table by default). The table is
read-only; it may be a local TSV/CSV file or a URL.
"""

import logging
import re
from pathlib import Path
from typing import List, Union

import pandas as pd

from .acquisition import fetch_remote
from .exceptions import FileFormatError, validate_dataframe

logger = logging.getLogger(__name__)


class MetadataIndex:
    """
    Lookup table from epigenome identifiers to sample descriptions.

    Args:
        table: Metadata DataFrame
        id_column: Column holding dataset identifiers (e.g. "EID")
        name_column: Column searched for the cell type (e.g. "STD_NAME")
    """

    def __init__(
        self,
        table: pd.DataFrame,
        id_column: str = "EID",
        name_column: str = "STD_NAME",
    ):
        validate_dataframe(table, "metadata index", required_columns=[id_column, name_column])
        self.table = table
        self.id_column = id_column
        self.name_column = name_column

    @classmethod
    def load(
        cls,
        location: Union[str, Path],
        cache_dir: Union[str, Path],
        id_column: str = "EID",
        name_column: str = "STD_NAME",
        timeout: int = 60,
    ) -> "MetadataIndex":
        """Read the metadata spreadsheet from a URL or a local file."""
        local = fetch_remote(location, cache_dir, timeout=timeout)
        sep = "," if local.suffix.lower() == ".csv" else "\t"
        try:
            table = pd.read_csv(local, sep=sep, dtype=str)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise FileFormatError(f"{local}: unreadable metadata table ({e})") from e
        logger.info(f"Loaded metadata index with {len(table)} entries from {location}")
        return cls(table, id_column=id_column, name_column=name_column)

    def find(self, cell_type: str, exact: bool = False) -> pd.DataFrame:
        """
        Rows describing a cell type.

        Matching is case-insensitive. With ``exact=False`` the cell type may
        appear anywhere in the name column ("H1" matches "H1 Cell Line");
        a whole-word match is required so "H1" does not match "H19".
        """
        names = self.table[self.name_column].fillna("").str.strip()
        if exact:
            mask = names.str.lower() == cell_type.lower()
        else:
            pattern = rf"(?<![A-Za-z0-9]){re.escape(cell_type)}(?![A-Za-z0-9])"
            mask = names.str.contains(pattern, case=False, regex=True)
        return self.table[mask].reset_index(drop=True)

    def lookup(self, cell_type: str, exact: bool = False) -> List[str]:
        """Dataset identifiers for a cell type, in table order."""
        ids = self.find(cell_type, exact=exact)[self.id_column].dropna().tolist()
        if not ids:
            logger.warning(f"No datasets found for cell type '{cell_type}'")
        else:
            logger.info(f"Cell type '{cell_type}' -> {ids}")
        return ids
