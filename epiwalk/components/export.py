"""
Figure export.

Writes plotly figures to disk as interactive HTML or as static
PNG/SVG/PDF images (static formats go through plotly's image export).
"""

import logging
from pathlib import Path
from typing import Union

import plotly.graph_objects as go

logger = logging.getLogger(__name__)

STATIC_FORMATS = ("png", "svg", "pdf")
SUPPORTED_FORMATS = ("html", "json") + STATIC_FORMATS


def save_figure(
    fig: go.Figure,
    path: Union[str, Path],
    format: str = None,
    scale: float = 2.0,
) -> Path:
    """
    Save a figure.

    Args:
        fig: Plotly figure
        path: Output file; its suffix is replaced by ``format`` when given
        format: html, json, png, svg or pdf (default: the path's suffix)
        scale: Resolution multiplier for raster output

    Returns:
        Path written
    """
    path = Path(path)
    format = (format or path.suffix.lstrip(".") or "html").lower()
    if format not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported figure format: {format}. Supported: {list(SUPPORTED_FORMATS)}")

    path = path.with_suffix(f".{format}")
    path.parent.mkdir(parents=True, exist_ok=True)

    if format == "html":
        fig.write_html(str(path), include_plotlyjs="cdn")
    elif format == "json":
        path.write_text(fig.to_json())
    else:
        fig.write_image(str(path), format=format, scale=scale if format == "png" else 1.0)

    logger.info(f"Wrote {path}")
    return path
