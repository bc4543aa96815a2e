"""
Shared fixtures for unit tests.
"""

import pytest
import numpy as np
import tempfile
from pathlib import Path
import sys
import rasterio
from rasterio.transform import from_origin

sys.path.insert(0, str(Path(__file__).parent.parent))

from alignment import apply_shift

NODATA = -9999.0

# Shift that realigns each band with the Red reference
BAND_SHIFTS = {
    'Green': (2, -1),
    'NIR': (-3, 4),
}


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def textured_grid():
    """A 120x120 grid of seeded noise, with a unique correlation peak."""
    rng = np.random.default_rng(42)
    return rng.normal(loc=100.0, scale=20.0, size=(120, 120))


@pytest.fixture
def gradient_grid_100x100():
    """A 100x100 row + col gradient with seeded texture on top."""
    rng = np.random.default_rng(7)
    rows, cols = np.mgrid[0:100, 0:100]
    return (rows + cols).astype(np.float64) + 10.0 * rng.normal(size=(100, 100))


def displaced(grid, dx, dy):
    """Target that shifting by (dx, dy) brings back onto grid."""
    return apply_shift(grid, -dx, -dy)


@pytest.fixture
def misaligned_bands(textured_grid):
    """Green/Red/NIR bands where Green and NIR are displaced from Red."""
    bands = {'Red': textured_grid}
    for name, (dx, dy) in BAND_SHIFTS.items():
        bands[name] = displaced(textured_grid, dx, dy)
    return {name: bands[name] for name in ['Green', 'Red', 'NIR']}


def _write_geotiff(path, data, nodata=NODATA, crs='EPSG:32610',
                   transform=from_origin(400000.0, 5450000.0, 0.05, 0.05)):
    """Write a (count, rows, cols) float array as a GeoTIFF, UTM by default."""
    data = np.where(np.isfinite(data), data, nodata).astype(np.float32)
    with rasterio.open(
        path,
        'w',
        driver='GTiff',
        height=data.shape[1],
        width=data.shape[2],
        count=data.shape[0],
        dtype=data.dtype,
        crs=crs,
        transform=transform,
        nodata=nodata
    ) as dst:
        dst.write(data)
    return path


@pytest.fixture
def band_geotiffs(temp_dir, misaligned_bands):
    """One single-band GeoTIFF per band, no-data marking the shifted-out edges."""
    paths = {}
    for name, grid in misaligned_bands.items():
        paths[name] = str(_write_geotiff(temp_dir / f"ms_{name.lower()}.tif", grid[np.newaxis]))
    return paths


@pytest.fixture
def band_stack_geotiff(temp_dir, misaligned_bands):
    """A three-band GeoTIFF holding Green, Red, NIR in that order."""
    data = np.stack([misaligned_bands[name] for name in ['Green', 'Red', 'NIR']])
    return str(_write_geotiff(temp_dir / "ms_stack.tif", data))


@pytest.fixture
def geographic_band_geotiffs(temp_dir, misaligned_bands):
    """The misaligned bands as WGS84 GeoTIFFs with 1e-6 degree pixels at latitude 49."""
    paths = {}
    for name, grid in misaligned_bands.items():
        paths[name] = str(_write_geotiff(
            temp_dir / f"geo_{name.lower()}.tif", grid[np.newaxis],
            crs='EPSG:4326', transform=from_origin(-123.5, 49.0, 1e-6, 1e-6)
        ))
    return paths


@pytest.fixture
def feet_band_geotiffs(temp_dir, misaligned_bands):
    """The misaligned bands in a US survey foot state plane CRS, 0.5 ft pixels."""
    paths = {}
    for name, grid in misaligned_bands.items():
        paths[name] = str(_write_geotiff(
            temp_dir / f"ft_{name.lower()}.tif", grid[np.newaxis],
            crs='EPSG:2227', transform=from_origin(6000000.0, 2000000.0, 0.5, 0.5)
        ))
    return paths
