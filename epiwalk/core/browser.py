"""
Multi-track Locus Browser

Composes display tracks into one stacked Plotly figure for a single
genomic region, in the spirit of a genome browser screenshot:

- IdeogramTrack: chromosome bands with the region highlighted
- GenomeAxisTrack: coordinate ruler
- GeneRegionTrack: transcript models (exons as boxes, introns as lines)
- AnnotationTrack: plain feature boxes (e.g. CpG islands)
- DataTrack: signal histogram

Tracks are stacked top-to-bottom in list order and all share the
region's coordinates. A track with nothing inside the region renders
as an empty row.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from .exceptions import EmptyDataError, InvalidParameterError
from .genomic_utils import GenomicRegion, clip_to_region

logger = logging.getLogger(__name__)

STACKING_MODES = ("dense", "squish", "full")

# Giemsa stain colours of UCSC ideograms
GIEMSA_COLORS = {
    "gneg": "#FFFFFF",
    "gpos25": "#C0C0C0",
    "gpos33": "#A8A8A8",
    "gpos50": "#808080",
    "gpos66": "#606060",
    "gpos75": "#404040",
    "gpos100": "#000000",
    "acen": "#B22222",
    "gvar": "#DCDCDC",
    "stalk": "#708090",
}


def _boxes(x0s, x1s, y0s, y1s) -> Tuple[List, List]:
    """Polygon coordinates of rectangles, separated by None for one trace."""
    xs: List = []
    ys: List = []
    for x0, x1, y0, y1 in zip(x0s, x1s, y0s, y1s):
        xs.extend([x0, x1, x1, x0, x0, None])
        ys.extend([y0, y0, y1, y1, y0, None])
    return xs, ys


def assign_levels(starts: Sequence[int], ends: Sequence[int]) -> List[int]:
    """Greedy row packing: each feature goes to the first level it fits on."""
    order = np.argsort(np.asarray(starts), kind="stable")
    level_ends: List[int] = []
    levels = [0] * len(order)
    for i in order:
        for level, last_end in enumerate(level_ends):
            if starts[i] >= last_end:
                levels[i] = level
                level_ends[level] = ends[i]
                break
        else:
            levels[i] = len(level_ends)
            level_ends.append(ends[i])
    return levels


def stack_levels(starts: Sequence[int], ends: Sequence[int], stacking: str) -> List[int]:
    """
    Row of each feature for a stacking mode.

    ``dense`` puts everything on one row, ``squish`` packs non-overlapping
    features onto shared rows and ``full`` gives every feature its own row
    in start order.
    """
    if stacking == "dense":
        return [0] * len(starts)
    if stacking == "full":
        levels = [0] * len(starts)
        for rank, i in enumerate(np.argsort(np.asarray(starts), kind="stable")):
            levels[i] = rank
        return levels
    return assign_levels(starts, ends)


# ============================================================================
# Tracks
# ============================================================================


@dataclass
class Track:
    """Base display track."""
    name: str
    color: str = "#444444"
    height: float = 1.0
    genome: Optional[str] = None

    @property
    def label(self) -> str:
        return self.name

    def draw(self, fig: go.Figure, row: int, region: GenomicRegion) -> None:
        raise NotImplementedError

    def x_range(self, region: GenomicRegion) -> Tuple[int, int]:
        return region.start, region.end


@dataclass
class IdeogramTrack(Track):
    """Chromosome ideogram; ``bands`` has chr, start, end, name, gieStain."""
    bands: pd.DataFrame = field(default_factory=pd.DataFrame)
    height: float = 0.6

    def _chrom_bands(self, region: GenomicRegion) -> pd.DataFrame:
        if self.bands.empty:
            return self.bands
        return self.bands[self.bands["chr"] == region.chrom].sort_values("start")

    def x_range(self, region: GenomicRegion) -> Tuple[int, int]:
        bands = self._chrom_bands(region)
        if bands.empty:
            return region.start, region.end
        return 0, int(bands["end"].max())

    def draw(self, fig, row, region):
        bands = self._chrom_bands(region)
        if bands.empty:
            return

        for stain, grp in bands.groupby("gieStain"):
            xs, ys = _boxes(grp["start"], grp["end"], [0.2] * len(grp), [0.8] * len(grp))
            fig.add_trace(
                go.Scatter(
                    x=xs, y=ys, mode="lines", fill="toself",
                    fillcolor=GIEMSA_COLORS.get(stain, "#FFFFFF"),
                    line=dict(color="#333333", width=0.5),
                    name=f"{self.name} {stain}", showlegend=False,
                    text=grp["name"].tolist(), hoverinfo="skip",
                ),
                row=row, col=1,
            )

        xs, ys = _boxes([region.start], [region.end], [0.05], [0.95])
        fig.add_trace(
            go.Scatter(
                x=xs, y=ys, mode="lines",
                line=dict(color=self.color, width=2),
                name=f"{self.name} region", showlegend=False, hoverinfo="skip",
            ),
            row=row, col=1,
        )


@dataclass
class GenomeAxisTrack(Track):
    """Coordinate ruler."""
    height: float = 0.5

    def draw(self, fig, row, region):
        fig.add_trace(
            go.Scatter(
                x=[region.start, region.end], y=[0.5, 0.5], mode="lines",
                line=dict(color=self.color, width=1),
                name=self.name, showlegend=False, hoverinfo="skip",
            ),
            row=row, col=1,
        )


@dataclass
class AnnotationTrack(Track):
    """Feature boxes from an interval table (chr, start, end[, name])."""
    features: pd.DataFrame = field(default_factory=pd.DataFrame)
    stacking: str = "dense"
    height: float = 0.6

    def __post_init__(self):
        if self.stacking not in STACKING_MODES:
            raise InvalidParameterError("stacking", self.stacking, f"one of {STACKING_MODES}")

    def draw(self, fig, row, region):
        feats = clip_to_region(self.features, region.chrom, region.start, region.end)
        if feats.empty:
            return

        levels = stack_levels(feats["start"].tolist(), feats["end"].tolist(), self.stacking)
        y0 = [-lv - 0.4 for lv in levels]
        y1 = [-lv + 0.4 for lv in levels]

        xs, ys = _boxes(feats["start"], feats["end"], y0, y1)
        names = feats["name"].astype(str).tolist() if "name" in feats.columns else []
        fig.add_trace(
            go.Scatter(
                x=xs, y=ys, mode="lines", fill="toself",
                fillcolor=self.color, line=dict(color=self.color, width=1),
                name=self.name, showlegend=False,
                hovertext=", ".join(names) if names else self.name, hoverinfo="text",
            ),
            row=row, col=1,
        )


@dataclass
class GeneRegionTrack(Track):
    """
    Transcript models from a gene model table (chr, start, end, strand,
    transcript, symbol, exon_starts, exon_ends).
    """
    models: pd.DataFrame = field(default_factory=pd.DataFrame)
    stacking: str = "squish"
    show_labels: bool = True
    height: float = 1.5

    def __post_init__(self):
        if self.stacking not in STACKING_MODES:
            raise InvalidParameterError("stacking", self.stacking, f"one of {STACKING_MODES}")

    def draw(self, fig, row, region):
        if self.models.empty:
            return
        models = self.models[
            (self.models["chr"] == region.chrom)
            & (self.models["start"] < region.end)
            & (self.models["end"] > region.start)
        ].reset_index(drop=True)
        if models.empty:
            return

        levels = stack_levels(models["start"].tolist(), models["end"].tolist(), self.stacking)

        line_x: List = []
        line_y: List = []
        box_x0, box_x1, box_y0, box_y1 = [], [], [], []
        label_x, label_y, label_text = [], [], []

        for level, model in zip(levels, models.itertuples(index=False)):
            y = -level
            start, end = max(model.start, region.start), min(model.end, region.end)
            line_x.extend([start, end, None])
            line_y.extend([y, y, None])

            for ex_start, ex_end in zip(model.exon_starts, model.exon_ends):
                if ex_end <= region.start or ex_start >= region.end:
                    continue
                box_x0.append(max(ex_start, region.start))
                box_x1.append(min(ex_end, region.end))
                box_y0.append(y - 0.3)
                box_y1.append(y + 0.3)

            arrow = "→" if model.strand == "+" else "←"
            label_x.append((start + end) / 2)
            label_y.append(y + 0.45)
            if self.stacking == "full":
                label_text.append(f"{model.symbol} ({model.transcript}) {arrow}")
            else:
                label_text.append(f"{model.symbol} {arrow}")

        fig.add_trace(
            go.Scatter(
                x=line_x, y=line_y, mode="lines",
                line=dict(color=self.color, width=1),
                name=f"{self.name} introns", showlegend=False, hoverinfo="skip",
            ),
            row=row, col=1,
        )

        xs, ys = _boxes(box_x0, box_x1, box_y0, box_y1)
        fig.add_trace(
            go.Scatter(
                x=xs, y=ys, mode="lines", fill="toself",
                fillcolor=self.color, line=dict(color=self.color, width=1),
                name=f"{self.name} exons", showlegend=False, hoverinfo="skip",
            ),
            row=row, col=1,
        )

        if self.show_labels and self.stacking != "dense":
            fig.add_trace(
                go.Scatter(
                    x=label_x, y=label_y, mode="text", text=label_text,
                    textfont=dict(size=10),
                    name=f"{self.name} labels", showlegend=False, hoverinfo="skip",
                ),
                row=row, col=1,
            )


@dataclass
class DataTrack(Track):
    """Signal histogram from an interval table with a numeric column."""
    data: pd.DataFrame = field(default_factory=pd.DataFrame)
    value_col: str = "score"
    y_range: Optional[Tuple[float, float]] = None

    def draw(self, fig, row, region):
        data = clip_to_region(self.data, region.chrom, region.start, region.end)
        if data.empty:
            return

        widths = (data["end"] - data["start"]).to_numpy()
        fig.add_trace(
            go.Bar(
                x=(data["start"] + widths / 2).to_numpy(),
                y=data[self.value_col].to_numpy(),
                width=widths,
                marker=dict(color=self.color, line=dict(width=0)),
                name=self.name, showlegend=False,
            ),
            row=row, col=1,
        )
        if self.y_range is not None:
            fig.update_yaxes(range=list(self.y_range), row=row, col=1)


# ============================================================================
# Composition
# ============================================================================


def plot_tracks(
    tracks: List[Track],
    region: GenomicRegion,
    title: Optional[str] = None,
    width: int = 1000,
    row_height: int = 90,
) -> go.Figure:
    """
    Stack tracks into one figure for ``region``.

    Args:
        tracks: Tracks in top-to-bottom order
        region: Shared genome, chromosome and coordinate window
        title: Figure title (defaults to the region)
        width: Figure width in pixels
        row_height: Pixel height of a track with ``height=1``

    Returns:
        Plotly figure with one subplot row per track

    Raises:
        InvalidParameterError: A track belongs to another genome build
    """
    if not tracks:
        raise EmptyDataError("track list")

    for track in tracks:
        if track.genome is not None and track.genome != region.genome:
            raise InvalidParameterError(
                f"{track.name}.genome", track.genome, f"the region's genome {region.genome}"
            )

    heights = [t.height for t in tracks]
    fig = make_subplots(
        rows=len(tracks), cols=1,
        row_heights=[h / sum(heights) for h in heights],
        vertical_spacing=0.02,
        shared_xaxes=False,
    )

    for row, track in enumerate(tracks, start=1):
        track.draw(fig, row, region)
        x0, x1 = track.x_range(region)
        fig.update_xaxes(range=[x0, x1], showticklabels=False, showgrid=False, row=row, col=1)
        fig.update_yaxes(
            title_text=track.label, title_font=dict(size=10),
            showticklabels=isinstance(track, DataTrack), showgrid=False, zeroline=False,
            row=row, col=1,
        )
        if isinstance(track, GenomeAxisTrack):
            fig.update_xaxes(showticklabels=True, ticks="outside", row=row, col=1)

    fig.update_layout(
        title=title or f"{region.chrom}:{region.start:,}-{region.end:,} ({region.genome})",
        template="plotly_white",
        width=width,
        height=int(row_height * sum(heights)) + 120,
        bargap=0,
        showlegend=False,
    )

    logger.info(f"Composed {len(tracks)} tracks for {region}")
    return fig


def build_locus_tracks(
    region: GenomicRegion,
    bands: pd.DataFrame,
    models: pd.DataFrame,
    cpg_islands: pd.DataFrame,
    signals: Dict[str, pd.DataFrame],
    styles: Dict[str, Dict],
    labels: Optional[Dict[str, str]] = None,
) -> List[Track]:
    """
    The standard track stack: ideogram, axis, genes, CpG islands, then one
    histogram per signal (in the mapping's order). Signal keys select the
    style; ``labels`` gives their display names.
    """
    labels = labels or {}

    def _style(key: str) -> Dict:
        return dict(styles.get(key, {}))

    tracks: List[Track] = [
        IdeogramTrack(name=region.chrom, bands=bands, genome=region.genome, **_style("ideogram")),
        GenomeAxisTrack(name="", genome=region.genome, **_style("axis")),
        GeneRegionTrack(name="Genes", models=models, genome=region.genome, **_style("genes")),
        AnnotationTrack(name="CpG islands", features=cpg_islands, genome=region.genome, **_style("cpg")),
    ]
    for key, data in signals.items():
        tracks.append(DataTrack(name=labels.get(key, key), data=data, genome=region.genome, **_style(key)))
    return tracks
