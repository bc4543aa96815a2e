"""
Raster I/O for band coregistration.
Reads single-band or stacked GeoTIFFs into NaN-masked grids and writes aligned bands back out
with the reference raster's georeferencing.
"""

import numpy as np
import rasterio
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import logging


def _require_file(path: Path) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster not found: {path}")
    return path


def read_band(path, band_index: int = 1) -> Tuple[np.ndarray, dict]:
    """
    Read one band as a float grid with no-data cells set to NaN.

    Args:
        path: Path to raster file
        band_index: 1-based band index

    Returns:
        (grid, profile) where profile is the rasterio profile of the file
    """
    path = _require_file(path)
    with rasterio.open(path) as src:
        data = src.read(band_index, masked=True)
        profile = src.profile.copy()

    grid = data.astype(np.float64).filled(np.nan)
    logging.debug(f"  Read {path.name} band {band_index}: {grid.shape[1]}x{grid.shape[0]}, "
                  f"{int(np.count_nonzero(~np.isfinite(grid)))} no-data cells")
    return grid, profile


def load_bands(band_paths: Dict[str, str]) -> Tuple[Dict[str, np.ndarray], Dict[str, dict]]:
    """Load one single-band raster per band name, preserving the given order."""
    bands = {}
    profiles = {}
    for name, path in band_paths.items():
        logging.info(f"  Loading {name}: {path}")
        bands[name], profiles[name] = read_band(path)
    return bands, profiles


def load_band_stack(path, band_names: List[str]) -> Tuple[Dict[str, np.ndarray], dict]:
    """
    Load a multi-band raster, naming band i+1 after band_names[i].

    Raises:
        ValueError: If the number of names does not match the band count
    """
    path = _require_file(path)
    with rasterio.open(path) as src:
        if src.count != len(band_names):
            raise ValueError(
                f"{path.name} has {src.count} bands but {len(band_names)} names were given: {band_names}"
            )
        data = src.read(masked=True)
        profile = src.profile.copy()

    bands = {}
    for i, name in enumerate(band_names):
        bands[name] = data[i].astype(np.float64).filled(np.nan)
    logging.info(f"  Loaded stack {path.name}: {', '.join(band_names)}")
    return bands, profile


def _output_profile(profile: dict, count: int, shape: Tuple[int, int]) -> dict:
    """Float32 GeoTIFF profile carrying over the reference georeferencing."""
    out = profile.copy()
    out.update(
        driver='GTiff',
        count=count,
        height=shape[0],
        width=shape[1],
        dtype='float32',
        nodata=np.nan,
        compress='deflate'
    )
    # Block sizes and JPEG options from the source may not fit float output
    for key in ('blockxsize', 'blockysize', 'tiled', 'jpeg_quality', 'photometric'):
        out.pop(key, None)
    return out


def write_band(path, grid: np.ndarray, profile: dict) -> Path:
    """Write a single grid as a float32 GeoTIFF with NaN no-data."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    out_profile = _output_profile(profile, 1, grid.shape)
    with rasterio.open(path, 'w', **out_profile) as dst:
        dst.write(grid.astype(np.float32), 1)

    logging.info(f"  Saved: {path.name}")
    return path


def write_stack(path, bands: Dict[str, np.ndarray], profile: dict,
                band_order: Optional[List[str]] = None) -> Path:
    """
    Write several grids as one multi-band GeoTIFF.

    Args:
        path: Output path
        bands: Band name -> grid, all the same shape
        profile: Reference rasterio profile (CRS and transform are reused)
        band_order: Band names in output order (defaults to mapping order)

    Returns:
        Path to the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    names = list(band_order) if band_order is not None else list(bands)
    if not names:
        raise ValueError("No bands to write")

    shape = bands[names[0]].shape
    out_profile = _output_profile(profile, len(names), shape)
    with rasterio.open(path, 'w', **out_profile) as dst:
        for idx, name in enumerate(names, start=1):
            dst.write(bands[name].astype(np.float32), idx)
            dst.set_band_description(idx, name)

    logging.info(f"  Saved stack: {path.name} ({', '.join(names)})")
    return path
