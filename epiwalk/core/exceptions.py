"""
Custom exception classes for epiwalk.

Provides clear, stage-specific error types so that a failing walkthrough
stops with a message naming what went wrong: an unreachable resource,
a file whose layout does not match its declared schema, or an annotation
lookup that cannot produce a locus.
"""


class EpiWalkError(Exception):
    """Base exception for all epiwalk errors."""
    pass


# ============================================================================
# Network / resource errors
# ============================================================================

class DataAcquisitionError(EpiWalkError):
    """Raised when a remote or local resource cannot be fetched."""

    def __init__(self, location: str, reason: str = ""):
        msg = f"Could not fetch '{location}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.location = location
        self.reason = reason


# ============================================================================
# Input / File errors
# ============================================================================

class FileFormatError(EpiWalkError):
    """Raised when an input file has an unexpected or invalid format."""
    pass


class PeakFileFormatError(FileFormatError):
    """Raised when a BED/narrowPeak/broadPeak file is malformed."""
    pass


class SchemaMismatchError(FileFormatError):
    """Raised when the declared column schema does not match the file layout."""

    def __init__(self, path: str, expected: int, actual: int):
        super().__init__(
            f"{path}: declared schema has {expected} columns but the file has {actual}"
        )
        self.path = path
        self.expected = expected
        self.actual = actual


class GTFParseError(FileFormatError):
    """Raised when a GTF/GFF annotation file cannot be parsed."""
    pass


# ============================================================================
# Data validation errors
# ============================================================================

class ValidationError(EpiWalkError):
    """Raised when input data fails validation checks."""
    pass


class MissingColumnError(ValidationError):
    """Raised when a required column is missing from a DataFrame."""

    def __init__(self, column: str, dataframe_name: str = "DataFrame", available: list = None):
        available_str = f" Available columns: {available}" if available else ""
        super().__init__(
            f"Required column '{column}' not found in {dataframe_name}.{available_str}"
        )
        self.column = column
        self.available = available


class EmptyDataError(ValidationError):
    """Raised when data is empty where it should not be."""

    def __init__(self, data_name: str = "data"):
        super().__init__(f"Empty {data_name} provided where non-empty data is required")
        self.data_name = data_name


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is out of valid range."""

    def __init__(self, param: str, value, valid_range: str = ""):
        msg = f"Invalid value for '{param}': {value}"
        if valid_range:
            msg += f". Expected: {valid_range}"
        super().__init__(msg)
        self.param = param
        self.value = value


# ============================================================================
# Analysis errors
# ============================================================================

class AnalysisError(EpiWalkError):
    """Base class for analysis-specific errors."""
    pass


class AnnotationLookupError(AnalysisError):
    """Raised when gene symbols cannot be resolved to a locus."""

    def __init__(self, symbols, genome: str = ""):
        where = f" in {genome}" if genome else ""
        super().__init__(f"No transcripts found for {list(symbols)}{where}")
        self.symbols = list(symbols)
        self.genome = genome


class ScoreMatrixError(AnalysisError):
    """Raised when a score matrix cannot be computed."""
    pass


# ============================================================================
# Pipeline errors
# ============================================================================

class PipelineError(EpiWalkError):
    """Raised when a walkthrough stage fails; wraps the original error."""

    def __init__(self, stage: str, cause: Exception):
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause


# ============================================================================
# Validation helpers
# ============================================================================

def validate_dataframe(
    df,
    name: str = "DataFrame",
    required_columns: list = None,
    min_rows: int = 0,
) -> None:
    """Validate a DataFrame has expected shape and columns.

    Parameters
    ----------
    df : pd.DataFrame
        The DataFrame to validate.
    name : str
        Human-readable name for error messages.
    required_columns : list, optional
        Columns that must be present.
    min_rows : int
        Minimum number of rows required.

    Raises
    ------
    EmptyDataError
        If df is None or empty and min_rows > 0.
    MissingColumnError
        If a required column is missing.
    """
    import pandas as pd

    if df is None:
        raise EmptyDataError(name)

    if not isinstance(df, pd.DataFrame):
        raise ValidationError(f"Expected DataFrame for {name}, got {type(df).__name__}")

    if min_rows > 0 and len(df) < min_rows:
        if len(df) == 0:
            raise EmptyDataError(name)
        raise ValidationError(
            f"{name} has {len(df)} rows but at least {min_rows} are required"
        )

    if required_columns:
        for col in required_columns:
            if col not in df.columns:
                raise MissingColumnError(col, name, available=list(df.columns))


def validate_numeric_param(value, name: str, min_val=None, max_val=None) -> None:
    """Validate a numeric parameter is within acceptable bounds.

    Raises
    ------
    InvalidParameterError
        If the value is out of range.
    """
    if min_val is not None and value < min_val:
        raise InvalidParameterError(name, value, f">= {min_val}")
    if max_val is not None and value > max_val:
        raise InvalidParameterError(name, value, f"<= {max_val}")
