"""
False color composites and before/after figures for aligned bands.
"""

import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path
from typing import Dict, Sequence
import logging

from defaults import DEFAULT_COMPOSITE_BANDS


def linear_stretch(grid: np.ndarray) -> np.ndarray:
    """Map the finite range of a grid onto [0, 1]; NaN cells become 0."""
    out = np.zeros(grid.shape, dtype=np.float64)
    valid = np.isfinite(grid)
    if not valid.any():
        return out

    vmin = grid[valid].min()
    vmax = grid[valid].max()
    if vmax > vmin:
        out[valid] = (grid[valid] - vmin) / (vmax - vmin)
    return out


def false_color_composite(bands: Dict[str, np.ndarray],
                          rgb_bands: Sequence[str] = DEFAULT_COMPOSITE_BANDS) -> np.ndarray:
    """
    Stack three bands into an RGB image with a per-band linear stretch.

    Args:
        bands: Band name -> grid
        rgb_bands: Names of the bands shown as red, green and blue

    Returns:
        (rows, cols, 3) float array in [0, 1]
    """
    if len(rgb_bands) != 3:
        raise ValueError(f"Need exactly 3 composite bands, got {list(rgb_bands)}")
    missing = [name for name in rgb_bands if name not in bands]
    if missing:
        raise KeyError(f"Composite bands not available: {missing}")

    return np.dstack([linear_stretch(bands[name]) for name in rgb_bands])


def save_composite(path, bands: Dict[str, np.ndarray],
                   rgb_bands: Sequence[str] = DEFAULT_COMPOSITE_BANDS,
                   title: str = None) -> Path:
    """Render a false color composite to PNG."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    rgb = false_color_composite(bands, rgb_bands)

    fig, ax = plt.subplots(figsize=(10, 10))
    ax.imshow(rgb)
    ax.set_title(title or f"R={rgb_bands[0]} G={rgb_bands[1]} B={rgb_bands[2]}",
                 fontsize=14, fontweight='bold')
    ax.axis('off')

    plt.tight_layout()
    plt.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logging.info(f"Saved composite to {path.name}")
    return path


def save_before_after(path, before: Dict[str, np.ndarray], after: Dict[str, np.ndarray],
                      rgb_bands: Sequence[str] = DEFAULT_COMPOSITE_BANDS) -> Path:
    """Side-by-side composites of the bands before and after alignment."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fig, axes = plt.subplots(1, 2, figsize=(20, 10))

    axes[0].imshow(false_color_composite(before, rgb_bands))
    axes[0].set_title('Before alignment', fontsize=14, fontweight='bold')
    axes[0].axis('off')

    axes[1].imshow(false_color_composite(after, rgb_bands))
    axes[1].set_title('After alignment', fontsize=14, fontweight='bold')
    axes[1].axis('off')

    plt.tight_layout()
    plt.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logging.info(f"Saved before/after comparison to {path.name}")
    return path
