"""
Band coregistration pipeline.
Loads multispectral bands, aligns them to a reference band by whole-pixel translation,
and writes aligned rasters, composites and a run report.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pyproj
from affine import Affine
from rasterio.transform import array_bounds

from alignment import AlignmentResult, compute_band_shifts, apply_band_shifts
from defaults import (
    DEFAULT_MAX_SHIFT,
    DEFAULT_MIN_OVERLAP,
    DEFAULT_REFERENCE_BAND,
    DEFAULT_BAND_NAMES,
    DEFAULT_COMPOSITE_BANDS,
    DEFAULT_WORKERS,
    DEFAULT_OUTPUT_DIR
)
from raster_io import load_bands, load_band_stack, write_band, write_stack
from visualization import save_composite, save_before_after


@dataclass
class CoregistrationConfig:
    """Configuration for band coregistration."""
    band_paths: Dict[str, str] = field(default_factory=dict)
    stack_path: Optional[str] = None
    band_names: List[str] = field(default_factory=lambda: list(DEFAULT_BAND_NAMES))
    reference_band: str = DEFAULT_REFERENCE_BAND
    max_shift: int = DEFAULT_MAX_SHIFT
    min_overlap: int = DEFAULT_MIN_OVERLAP
    workers: int = DEFAULT_WORKERS
    output_dir: str = DEFAULT_OUTPUT_DIR
    composite_bands: List[str] = field(default_factory=lambda: list(DEFAULT_COMPOSITE_BANDS))
    create_visualizations: bool = True
    save_stack: bool = True
    verbose: bool = False

    @classmethod
    def from_dict(cls, config_dict: dict):
        """Create config from dictionary."""
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__annotations__})

    def validate(self):
        """Raise ValueError for settings the pipeline cannot run with."""
        if not self.band_paths and not self.stack_path:
            raise ValueError("Either band_paths or stack_path is required")
        if self.band_paths and self.stack_path:
            raise ValueError("Give band_paths or stack_path, not both")
        if self.max_shift < 0:
            raise ValueError(f"max_shift must be >= 0, got {self.max_shift}")
        if self.min_overlap < 0:
            raise ValueError(f"min_overlap must be >= 0, got {self.min_overlap}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        names = list(self.band_paths) if self.band_paths else self.band_names
        if self.reference_band not in names:
            raise ValueError(f"Reference band '{self.reference_band}' not in bands: {names}")


class BandCoregistration:
    """Aligns every band of a multispectral capture to a reference band."""

    def __init__(self, config: CoregistrationConfig, output_dir: Path):
        config.validate()
        self.config = config
        self.output_dir = Path(output_dir)

        self.bands: Dict[str, np.ndarray] = {}
        self.aligned: Dict[str, np.ndarray] = {}
        self.shifts: Dict[str, AlignmentResult] = {}
        self.reference_profile = None
        self.elapsed = None

        # Create subdirectories
        self.aligned_dir = self.output_dir / 'aligned'
        self.viz_dir = self.output_dir / 'visualizations'
        self.logs_dir = self.output_dir / 'logs'

        self.aligned_dir.mkdir(parents=True, exist_ok=True)
        self.viz_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def load_bands(self) -> Dict[str, np.ndarray]:
        """Load input bands from single-band files or a stack."""
        logging.info("Loading bands...")
        if self.config.stack_path:
            self.bands, self.reference_profile = load_band_stack(
                self.config.stack_path, self.config.band_names
            )
        else:
            self.bands, profiles = load_bands(self.config.band_paths)
            self.reference_profile = profiles[self.config.reference_band]

        ref = self.bands[self.config.reference_band]
        logging.info(f"Reference: {self.config.reference_band} ({ref.shape[1]}x{ref.shape[0]})")
        return self.bands

    def run(self) -> Dict[str, np.ndarray]:
        """Search and apply the best shift for every non-reference band."""
        if not self.bands:
            self.load_bands()

        start_time = time.time()
        n_candidates = (2 * self.config.max_shift + 1) ** 2
        logging.info(f"Searching {n_candidates} candidate shifts per band "
                     f"(max_shift={self.config.max_shift}, min_overlap={self.config.min_overlap})")

        self.shifts = compute_band_shifts(
            self.bands,
            self.config.reference_band,
            max_shift=self.config.max_shift,
            min_overlap=self.config.min_overlap,
            workers=self.config.workers
        )
        self.aligned = apply_band_shifts(self.bands, self.config.reference_band, self.shifts)

        self.elapsed = time.time() - start_time
        logging.info(f"Alignment finished in {self.elapsed:.1f}s")
        return self.aligned

    def save_aligned_bands(self) -> Dict[str, Path]:
        """Write each aligned band, and optionally the stack, as GeoTIFF."""
        if not self.aligned:
            raise ValueError("No aligned bands, call run() first")

        logging.info("Saving aligned bands...")
        outputs = {}
        for name, grid in self.aligned.items():
            outputs[name] = write_band(self.aligned_dir / f'{name}_aligned.tif',
                                       grid, self.reference_profile)

        if self.config.save_stack:
            outputs['stack'] = write_stack(self.aligned_dir / 'aligned_stack.tif',
                                           self.aligned, self.reference_profile)
        return outputs

    def create_visualizations(self) -> List[Path]:
        """Render after and before/after false color composites."""
        if not self.aligned:
            raise ValueError("No aligned bands, call run() first")

        rgb_bands = self.config.composite_bands
        missing = [name for name in rgb_bands if name not in self.aligned]
        if missing:
            logging.warning(f"Skipping composites, bands not available: {missing}")
            return []

        return [
            save_composite(self.viz_dir / 'composite_aligned.png', self.aligned, rgb_bands,
                           title='Aligned false color composite'),
            save_before_after(self.viz_dir / 'before_after.png', self.bands, self.aligned, rgb_bands),
        ]

    def _ground_resolution(self) -> Optional[float]:
        """Reference resolution in meters per pixel, if it can be determined."""
        profile = self.reference_profile or {}
        transform = profile.get('transform') or Affine.identity()
        crs = profile.get('crs')
        if crs is None:
            return None

        if crs.is_geographic:
            west, south, east, north = array_bounds(profile['height'], profile['width'], transform)
            center_lon = (west + east) / 2
            center_lat = (south + north) / 2
            geod = pyproj.Geod(ellps='WGS84')
            _, _, dist_x = geod.inv(west, center_lat, east, center_lat)
            _, _, dist_y = geod.inv(center_lon, south, center_lon, north)
            return (dist_x / profile['width'] + dist_y / profile['height']) / 2

        # Projected CRS units may be feet
        _, meters_per_unit = crs.linear_units_factor
        return abs(transform.a) * meters_per_unit

    def _map_offset(self, dx: int, dy: int) -> List[float]:
        """Offset of a pixel shift in the reference CRS units."""
        transform = (self.reference_profile or {}).get('transform') or Affine.identity()
        # Linear part only, the origin cancels out
        return [transform.a * dx + transform.b * dy,
                transform.d * dx + transform.e * dy]

    def generate_report(self) -> Path:
        """Write JSON and text reports of the run."""
        resolution = self._ground_resolution()

        band_stats = {}
        for name, result in self.shifts.items():
            stats = result.to_dict()
            stats['offset_map_units'] = self._map_offset(result.dx, result.dy)
            if resolution is not None:
                stats['offset_m'] = float(np.hypot(result.dx, result.dy) * resolution)
            band_stats[name] = stats

        report = {
            'timestamp': datetime.now().isoformat(),
            'input_files': {
                'band_paths': dict(self.config.band_paths),
                'stack_path': self.config.stack_path
            },
            'configuration': {
                'reference_band': self.config.reference_band,
                'max_shift': self.config.max_shift,
                'min_overlap': self.config.min_overlap,
                'workers': self.config.workers
            },
            'reference_metadata': {
                'shape': list(self.bands[self.config.reference_band].shape) if self.bands else None,
                'crs': str((self.reference_profile or {}).get('crs')),
                'resolution_m_per_px': resolution
            },
            'elapsed_s': self.elapsed,
            'bands': band_stats
        }

        report_file = self.output_dir / 'coregistration_report.json'
        with open(report_file, 'w') as f:
            json.dump(report, f, indent=2)

        # Text report
        text_file = self.output_dir / 'coregistration_report.txt'
        with open(text_file, 'w') as f:
            f.write("=" * 80 + "\n")
            f.write("BAND COREGISTRATION REPORT\n")
            f.write("=" * 80 + "\n\n")
            f.write(f"Timestamp: {report['timestamp']}\n")
            f.write(f"Reference band: {self.config.reference_band}\n")
            f.write(f"Search window: +/-{self.config.max_shift} px\n")
            if resolution is not None:
                f.write(f"Resolution: {resolution:.4f} m/pixel\n")
            f.write("\nShifts:\n")
            for name, stats in band_stats.items():
                if stats['found']:
                    f.write(f"  {name}: dx={stats['dx']:+d} dy={stats['dy']:+d} "
                            f"correlation={stats['correlation']:.4f}\n")
                else:
                    f.write(f"  {name}: no valid shift found, left unshifted\n")

        logging.info(f"Report saved to {report_file.name}")
        return report_file
