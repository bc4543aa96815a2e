"""
Unit tests for raster_io module.
"""

import pytest
import numpy as np
from pathlib import Path
import sys
import rasterio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from raster_io import read_band, load_bands, load_band_stack, write_band, write_stack
from conftest import BAND_SHIFTS


class TestReadBand:
    """Test single band reading."""

    def test_nodata_becomes_nan(self, band_geotiffs):
        """No-data cells are returned as NaN in a float grid."""
        grid, profile = read_band(band_geotiffs['Green'])
        dx, dy = BAND_SHIFTS['Green']

        assert grid.dtype == np.float64
        assert grid.shape == (120, 120)
        # Green was displaced by (-2, +1): first row and last two columns are empty
        assert np.all(np.isnan(grid[0, :]))
        assert np.all(np.isnan(grid[:, -abs(dx):]))
        assert np.count_nonzero(np.isnan(grid)) == 120 * 120 - (120 - abs(dy)) * (120 - abs(dx))

    def test_profile_has_georeferencing(self, band_geotiffs):
        """The profile carries CRS and transform for writing outputs."""
        _, profile = read_band(band_geotiffs['Red'])

        assert profile['crs'] is not None
        assert profile['transform'].a == pytest.approx(0.05)

    def test_missing_file(self, temp_dir):
        """A missing raster raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            read_band(temp_dir / "nonexistent.tif")


class TestLoadBands:
    """Test loading several bands."""

    def test_load_bands_order(self, band_geotiffs):
        """Bands come back in the order they were given."""
        bands, profiles = load_bands(band_geotiffs)

        assert list(bands) == ['Green', 'Red', 'NIR']
        assert set(profiles) == set(bands)

    def test_load_band_stack(self, band_stack_geotiff, misaligned_bands):
        """Stack bands are named in file order."""
        bands, profile = load_band_stack(band_stack_geotiff, ['Green', 'Red', 'NIR'])

        assert list(bands) == ['Green', 'Red', 'NIR']
        assert profile['count'] == 3
        np.testing.assert_allclose(bands['Red'], misaligned_bands['Red'], rtol=1e-6)

    def test_load_band_stack_count_mismatch(self, band_stack_geotiff):
        """Naming the wrong number of bands raises ValueError."""
        with pytest.raises(ValueError):
            load_band_stack(band_stack_geotiff, ['Green', 'Red'])


class TestWriteRasters:
    """Test writing aligned rasters."""

    def test_write_band_round_trip(self, band_geotiffs, temp_dir):
        """A written band keeps values, NaN cells and georeferencing."""
        grid, profile = read_band(band_geotiffs['NIR'])

        out_path = write_band(temp_dir / "out" / "nir_aligned.tif", grid, profile)

        assert out_path.exists()
        with rasterio.open(out_path) as src:
            assert src.count == 1
            assert src.dtypes[0] == 'float32'
            assert src.crs == profile['crs']
            assert src.transform == profile['transform']

        reread, _ = read_band(out_path)
        np.testing.assert_array_equal(np.isnan(reread), np.isnan(grid))
        valid = np.isfinite(grid)
        np.testing.assert_allclose(reread[valid], grid[valid], rtol=1e-6)

    def test_write_stack(self, band_geotiffs, temp_dir):
        """The stack has one band per name with descriptions set."""
        bands, profiles = load_bands(band_geotiffs)

        out_path = write_stack(temp_dir / "stack.tif", bands, profiles['Red'],
                               band_order=['NIR', 'Red', 'Green'])

        with rasterio.open(out_path) as src:
            assert src.count == 3
            assert src.descriptions == ('NIR', 'Red', 'Green')
            np.testing.assert_allclose(src.read(2), bands['Red'].astype(np.float32))

    def test_write_stack_empty(self, temp_dir):
        """An empty band mapping is rejected."""
        with pytest.raises(ValueError):
            write_stack(temp_dir / "stack.tif", {}, {})
