"""
Workspace Snapshots - Save/Load Walkthrough State

A snapshot is a directory holding everything a walkthrough produced:

    workspace.json          manifest (settings, entry index, timestamps)
    tables/<name>.parquet   interval tables, window sets, gene models
    matrices/<name>.npz     score matrix values
    matrices/<name>.parquet score matrix windows
    figures/<name>.json     plotly figures

Loading a snapshot rebuilds the same objects.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd
import plotly.graph_objects as go
import plotly.io as pio

from .exceptions import FileFormatError
from .score_matrix import ScoreMatrix

logger = logging.getLogger(__name__)

MANIFEST_NAME = "workspace.json"
WORKSPACE_VERSION = "1.0.0"


@dataclass
class Workspace:
    """In-memory view of a snapshot."""
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    matrices: Dict[str, ScoreMatrix] = field(default_factory=dict)
    figures: Dict[str, go.Figure] = field(default_factory=dict)
    settings: Dict[str, Any] = field(default_factory=dict)
    saved_at: str = ""

    def __len__(self):
        return len(self.tables) + len(self.matrices) + len(self.figures)


def _safe_name(name: str) -> str:
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in name)


def save_workspace(
    directory: Union[str, Path],
    tables: Optional[Dict[str, pd.DataFrame]] = None,
    matrices: Optional[Dict[str, ScoreMatrix]] = None,
    figures: Optional[Dict[str, go.Figure]] = None,
    settings: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Write a workspace snapshot.

    Args:
        directory: Snapshot directory (created if needed)
        tables: DataFrames by name
        matrices: Score matrices by name
        figures: Plotly figures by name
        settings: JSON-serializable settings dump

    Returns:
        Path of the manifest file
    """
    directory = Path(directory)
    for sub in ("tables", "matrices", "figures"):
        (directory / sub).mkdir(parents=True, exist_ok=True)

    manifest = {
        "version": WORKSPACE_VERSION,
        "saved_at": datetime.now().isoformat(),
        "settings": settings or {},
        "tables": {},
        "matrices": {},
        "figures": {},
    }

    for name, df in (tables or {}).items():
        rel = f"tables/{_safe_name(name)}.parquet"
        df.reset_index(drop=True).to_parquet(directory / rel)
        manifest["tables"][name] = {"file": rel, "shape": list(df.shape)}

    for name, matrix in (matrices or {}).items():
        stem = f"matrices/{_safe_name(name)}"
        np.savez_compressed(directory / f"{stem}.npz", values=matrix.values)
        matrix.windows.reset_index(drop=True).to_parquet(directory / f"{stem}.parquet")
        manifest["matrices"][name] = {
            "values": f"{stem}.npz",
            "windows": f"{stem}.parquet",
            "name": matrix.name,
            "upstream": int(matrix.upstream),
            "bin_size": int(matrix.bin_size),
            "metadata": matrix.metadata,
            "shape": list(matrix.shape),
        }

    for name, fig in (figures or {}).items():
        rel = f"figures/{_safe_name(name)}.json"
        pio.write_json(fig, str(directory / rel))
        manifest["figures"][name] = {"file": rel}

    manifest_path = directory / MANIFEST_NAME
    with open(manifest_path, 'w') as f:
        json.dump(manifest, f, indent=2, default=str)

    logger.info(
        f"Saved workspace to {directory}: {len(manifest['tables'])} tables, "
        f"{len(manifest['matrices'])} matrices, {len(manifest['figures'])} figures"
    )
    return manifest_path


def load_workspace(directory: Union[str, Path]) -> Workspace:
    """
    Read a snapshot written by :func:`save_workspace`.

    Raises:
        FileFormatError: Manifest missing or unreadable
    """
    directory = Path(directory)
    manifest_path = directory / MANIFEST_NAME
    if not manifest_path.exists():
        raise FileFormatError(f"No workspace manifest in {directory}")

    try:
        with open(manifest_path, 'r') as f:
            manifest = json.load(f)
    except json.JSONDecodeError as e:
        raise FileFormatError(f"Corrupt workspace manifest {manifest_path}: {e}") from e

    workspace = Workspace(settings=manifest.get("settings", {}), saved_at=manifest.get("saved_at", ""))

    for name, entry in manifest.get("tables", {}).items():
        workspace.tables[name] = pd.read_parquet(directory / entry["file"])

    for name, entry in manifest.get("matrices", {}).items():
        with np.load(directory / entry["values"]) as data:
            values = data["values"]
        workspace.matrices[name] = ScoreMatrix(
            values=values,
            windows=pd.read_parquet(directory / entry["windows"]),
            name=entry.get("name", name),
            upstream=entry.get("upstream", 0),
            bin_size=entry.get("bin_size", 1),
            metadata=entry.get("metadata", {}),
        )

    for name, entry in manifest.get("figures", {}).items():
        workspace.figures[name] = pio.read_json(str(directory / entry["file"]))

    logger.info(f"Loaded workspace from {directory} ({len(workspace)} entries)")
    return workspace
