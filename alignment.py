"""
Translation alignment for multispectral bands.

Finds the whole-pixel (dx, dy) offset that maximizes the Pearson correlation
between a reference band and a target band over their valid overlap, and
applies it. Missing samples are NaN throughout.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Mapping, Tuple

import numpy as np

from defaults import DEFAULT_MAX_SHIFT, DEFAULT_MIN_OVERLAP, DEFAULT_WORKERS


class ShapeMismatchError(ValueError):
    """Raised when grids that must be compared have different shapes."""


@dataclass(frozen=True)
class AlignmentResult:
    """Best shift found by the search and its score."""
    dx: int = 0
    dy: int = 0
    correlation: float = -np.inf
    overlap: int = 0
    candidates_evaluated: int = 0

    @property
    def found(self) -> bool:
        """False when no candidate qualified (the zero shift is a fallback)."""
        return bool(np.isfinite(self.correlation))

    def to_dict(self) -> dict:
        return {
            'dx': self.dx,
            'dy': self.dy,
            'correlation': float(self.correlation) if self.found else None,
            'overlap': self.overlap,
            'candidates_evaluated': self.candidates_evaluated,
            'found': self.found,
        }


def _check_same_shape(ref: np.ndarray, other: np.ndarray):
    if ref.ndim != 2 or other.ndim != 2:
        raise ValueError(f"Expected 2D grids, got {ref.ndim}D and {other.ndim}D")
    if ref.shape != other.shape:
        raise ShapeMismatchError(f"Grid shapes differ: {ref.shape} vs {other.shape}")


def score_overlap(ref: np.ndarray, shifted: np.ndarray,
                  min_overlap: int = DEFAULT_MIN_OVERLAP) -> Tuple[float, int]:
    """
    Pearson correlation between two grids over cells valid in both.

    Args:
        ref: Reference grid
        shifted: Grid to compare, same shape as ref
        min_overlap: Overlap counts at or below this are rejected

    Returns:
        (correlation, overlap_count). correlation is NaN when the overlap is
        too small or either side has zero variance.
    """
    _check_same_shape(ref, shifted)

    overlap = np.isfinite(ref) & np.isfinite(shifted)
    overlap_count = int(np.count_nonzero(overlap))
    if overlap_count <= min_overlap:
        return np.nan, overlap_count

    a = ref[overlap].astype(np.float64)
    b = shifted[overlap].astype(np.float64)
    a -= a.mean()
    b -= b.mean()

    denom = np.sqrt(np.dot(a, a) * np.dot(b, b))
    if denom == 0 or not np.isfinite(denom):
        return np.nan, overlap_count

    correlation = float(np.dot(a, b) / denom)
    return correlation, overlap_count


def apply_shift(grid: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """
    Translate a grid by whole pixels.

    Source cell (row, col) moves to (row + dy, col + dx). Cells shifted past
    the edge are dropped and uncovered cells are NaN.
    """
    if grid.ndim != 2:
        raise ValueError(f"Expected a 2D grid, got {grid.ndim}D")

    rows, cols = grid.shape
    shifted = np.full((rows, cols), np.nan, dtype=np.float64)

    if abs(dy) >= rows or abs(dx) >= cols:
        return shifted

    src_r0, src_r1 = max(0, -dy), min(rows, rows - dy)
    src_c0, src_c1 = max(0, -dx), min(cols, cols - dx)

    shifted[src_r0 + dy:src_r1 + dy, src_c0 + dx:src_c1 + dx] = grid[src_r0:src_r1, src_c0:src_c1]
    return shifted


def _evaluate_candidate(ref: np.ndarray, target: np.ndarray, dx: int, dy: int,
                        min_overlap: int) -> Tuple[float, int]:
    return score_overlap(ref, apply_shift(target, dx, dy), min_overlap)


def search_best_shift(ref: np.ndarray, target: np.ndarray,
                      max_shift: int = DEFAULT_MAX_SHIFT,
                      min_overlap: int = DEFAULT_MIN_OVERLAP,
                      workers: int = DEFAULT_WORKERS) -> AlignmentResult:
    """
    Exhaustive search for the shift of target that best correlates with ref.

    Candidates are enumerated dx ascending, then dy ascending, over
    [-max_shift, max_shift]. A candidate replaces the current best only if its
    correlation is strictly greater, so ties go to the earliest candidate.

    Args:
        ref: Reference grid
        target: Grid to align, same shape as ref
        max_shift: Half-width of the search window in pixels
        min_overlap: Minimum overlap (exclusive) for a candidate to be scored
        workers: Threads used to score candidates; 1 runs serially

    Returns:
        AlignmentResult. If no candidate qualifies, dx=0, dy=0 and
        correlation=-inf.
    """
    _check_same_shape(ref, target)
    if max_shift < 0:
        raise ValueError(f"max_shift must be >= 0, got {max_shift}")
    if min_overlap < 0:
        raise ValueError(f"min_overlap must be >= 0, got {min_overlap}")
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    offsets = range(-max_shift, max_shift + 1)
    candidates = [(dx, dy) for dx in offsets for dy in offsets]

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            scores = list(executor.map(
                lambda c: _evaluate_candidate(ref, target, c[0], c[1], min_overlap),
                candidates
            ))
    else:
        scores = [_evaluate_candidate(ref, target, dx, dy, min_overlap) for dx, dy in candidates]

    best_cor, best_dx, best_dy, best_overlap = -np.inf, 0, 0, 0
    for (dx, dy), (cor, overlap) in zip(candidates, scores):
        # NaN never compares greater, so rejected candidates fall through
        if cor > best_cor:
            best_cor, best_dx, best_dy, best_overlap = cor, dx, dy, overlap

    logging.debug(f"  Evaluated {len(candidates)} candidates (max_shift={max_shift}, "
                  f"workers={workers}): best dx={best_dx} dy={best_dy} cor={best_cor:.6f}")

    return AlignmentResult(
        dx=best_dx,
        dy=best_dy,
        correlation=best_cor,
        overlap=best_overlap,
        candidates_evaluated=len(candidates)
    )


def compute_band_shifts(bands: Mapping[str, np.ndarray], reference_name: str,
                        max_shift: int = DEFAULT_MAX_SHIFT,
                        min_overlap: int = DEFAULT_MIN_OVERLAP,
                        workers: int = DEFAULT_WORKERS) -> Dict[str, AlignmentResult]:
    """Search the best shift of every non-reference band against the reference."""
    if reference_name not in bands:
        raise KeyError(f"Reference band '{reference_name}' not in bands: {list(bands)}")

    ref = bands[reference_name]
    for name, grid in bands.items():
        if name != reference_name:
            _check_same_shape(ref, grid)

    results = {}
    for name, grid in bands.items():
        if name == reference_name:
            continue

        logging.info(f"Aligning {name} to {reference_name}...")
        result = search_best_shift(ref, grid, max_shift=max_shift,
                                   min_overlap=min_overlap, workers=workers)

        if result.found:
            logging.info(f"  {name}: dx={result.dx}, dy={result.dy}, "
                         f"correlation={result.correlation:.4f}, overlap={result.overlap}")
        else:
            logging.warning(f"  {name}: no candidate shift had enough valid overlap "
                            f"or variance, applying zero shift")
        results[name] = result

    return results


def apply_band_shifts(bands: Mapping[str, np.ndarray], reference_name: str,
                      shifts: Mapping[str, AlignmentResult]) -> Dict[str, np.ndarray]:
    """Build the aligned band mapping from previously computed shifts."""
    aligned = {}
    for name, grid in bands.items():
        if name == reference_name:
            aligned[name] = grid.copy()
        else:
            result = shifts[name]
            aligned[name] = apply_shift(grid, result.dx, result.dy)
    return aligned


def align_bands(bands: Mapping[str, np.ndarray], reference_name: str,
                max_shift: int = DEFAULT_MAX_SHIFT,
                min_overlap: int = DEFAULT_MIN_OVERLAP,
                workers: int = DEFAULT_WORKERS) -> Dict[str, np.ndarray]:
    """
    Align every band to the reference band.

    Args:
        bands: Band name -> grid, all the same shape
        reference_name: Band left unshifted
        max_shift: Half-width of the search window in pixels
        min_overlap: Minimum overlap (exclusive) for a candidate to be scored
        workers: Threads used to score candidates

    Returns:
        New mapping with one entry per input band, in input order
    """
    results = compute_band_shifts(bands, reference_name, max_shift=max_shift,
                                  min_overlap=min_overlap, workers=workers)
    return apply_band_shifts(bands, reference_name, results)
