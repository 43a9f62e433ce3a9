"""
Aggregate visualization components using Plotly.

Provides:
- Heat matrices of promoter-aligned score matrices
- Meta-profiles (average signal around the TSS) for one or more tracks
"""

import plotly.graph_objects as go
import numpy as np
from typing import Dict, List, Optional, Tuple, Union

from ..core.score_matrix import ScoreMatrix, meta_profile, profile_dispersion

DEFAULT_LINE_COLORS = ["#1F77B4", "#D62728", "#2CA02C", "#9467BD", "#FF7F0E", "#8C564B"]


def plot_heat_matrix(
    matrix: ScoreMatrix,
    title: Optional[str] = None,
    color_scale: str = "Viridis",
    order: bool = False,
    winsorize: Optional[Tuple[float, float]] = None,
    value_label: str = "score",
) -> go.Figure:
    """
    Render a score matrix as a heat image.

    Missing cells stay blank instead of being painted as zero.

    Args:
        matrix: Score matrix (windows x positions)
        title: Plot title (defaults to the matrix name)
        color_scale: Plotly color scale
        order: Sort rows by decreasing mean signal
        winsorize: Percentile bounds used to clip extreme values
        value_label: Colorbar title

    Returns:
        Plotly figure
    """
    if winsorize is not None:
        matrix = matrix.winsorized(*winsorize)
    if order:
        matrix = matrix.ordered()

    labels = matrix.windows.get("gene_name")
    hover_rows = labels.astype(str).tolist() if labels is not None else list(range(matrix.shape[0]))

    fig = go.Figure(
        data=go.Heatmap(
            z=matrix.values,
            x=matrix.positions,
            y=np.arange(matrix.shape[0]),
            customdata=np.repeat(np.array(hover_rows, dtype=object)[:, None], matrix.shape[1], axis=1),
            colorscale=color_scale,
            colorbar=dict(title=value_label),
            hoverongaps=False,
            hovertemplate="%{customdata}<br>position %{x}<br>" + value_label + " %{z:.3f}<extra></extra>",
        )
    )

    fig.add_vline(x=0, line_dash="dash", line_color="white")
    fig.update_yaxes(autorange="reversed", showticklabels=False, title_text=f"{matrix.shape[0]} windows")
    fig.update_xaxes(title_text="Position relative to TSS (bp)")
    fig.update_layout(
        title=title or matrix.name,
        template="plotly_white",
        width=600,
        height=800,
    )

    return fig


def plot_meta_profile(
    matrices: Union[ScoreMatrix, Dict[str, ScoreMatrix], List[ScoreMatrix]],
    title: str = "Meta-profile",
    colors: Optional[Dict[str, str]] = None,
    dispersion: Optional[str] = None,
    value_label: str = "Average score",
) -> go.Figure:
    """
    Plot the average signal across all windows, one line per track.

    Args:
        matrices: One score matrix, or several keyed by track name
        title: Plot title
        colors: Line color per track name (any Plotly color: hex, rgb() or a
            CSS name)
        dispersion: "se" or "sd" to draw a band around each line
        value_label: Y-axis title

    Returns:
        Plotly figure
    """
    if isinstance(matrices, ScoreMatrix):
        matrices = {matrices.name or "track": matrices}
    elif isinstance(matrices, list):
        matrices = {m.name or f"track {i + 1}": m for i, m in enumerate(matrices)}

    colors = colors or {}
    fig = go.Figure()

    for i, (name, matrix) in enumerate(matrices.items()):
        color = colors.get(name, DEFAULT_LINE_COLORS[i % len(DEFAULT_LINE_COLORS)])
        x = matrix.positions
        y = meta_profile(matrix)

        if dispersion:
            spread = profile_dispersion(matrix, kind=dispersion)
            fig.add_trace(
                go.Scatter(
                    x=np.concatenate([x, x[::-1]]),
                    y=np.concatenate([y + spread, (y - spread)[::-1]]),
                    fill="toself",
                    fillcolor=color,
                    opacity=0.2,
                    line=dict(width=0),
                    hoverinfo="skip",
                    showlegend=False,
                    name=f"{name} ({dispersion})",
                )
            )

        fig.add_trace(
            go.Scatter(
                x=x,
                y=y,
                mode="lines",
                name=name,
                line=dict(color=color, width=2),
                connectgaps=False,
            )
        )

    fig.add_vline(x=0, line_dash="dash", line_color="gray")
    fig.update_layout(
        title=title,
        template="plotly_white",
        xaxis_title="Position relative to TSS (bp)",
        yaxis_title=value_label,
        hovermode="x unified",
        width=800,
        height=450,
    )

    return fig
