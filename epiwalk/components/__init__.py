"""Reusable plotly figure components."""

from .plots import plot_heat_matrix, plot_meta_profile
from .export import save_figure

__all__ = [
    "plot_heat_matrix",
    "plot_meta_profile",
    "save_figure",
]
