"""Chunked masked reductions over flat voxel buffers.

Count, sum, sum of squares, min and max are associative, so a buffer can be
split into contiguous chunks, reduced independently and combined.  With more
than one worker the chunks run on a thread pool; numpy releases the GIL in
the inner loops.  Results match a serial pass up to floating-point summation
order.
"""

from __future__ import annotations

import functools
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from tumor_burden.domain.errors import GeometryMismatchError
from tumor_burden.domain.models import EngineConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Moments:
    """Partial reduction of the masked values of one or more chunks."""

    count: int = 0
    total: float = 0.0
    total_sq: float = 0.0
    minimum: float = math.inf
    maximum: float = -math.inf

    def combine(self, other: Moments) -> Moments:
        return Moments(
            count=self.count + other.count,
            total=self.total + other.total,
            total_sq=self.total_sq + other.total_sq,
            minimum=min(self.minimum, other.minimum),
            maximum=max(self.maximum, other.maximum),
        )

    @property
    def mean(self) -> float:
        return self.total / self.count

    @property
    def std(self) -> float:
        """Population standard deviation.

        ``E[x^2] - E[x]^2`` can dip below zero through cancellation when the
        variance is near zero; it is clamped before the square root.
        """
        mean = self.mean
        variance = self.total_sq / self.count - mean * mean
        return math.sqrt(max(variance, 0.0))


def masked_moments(values: np.ndarray, mask: np.ndarray) -> Moments:
    """Reduce the entries of *values* where *mask* is True."""
    selected = values[mask].astype(np.float64, copy=False)
    if selected.size == 0:
        return Moments()
    return Moments(
        count=int(selected.size),
        total=float(selected.sum()),
        total_sq=float(np.dot(selected, selected)),
        minimum=float(selected.min()),
        maximum=float(selected.max()),
    )


def reduce_masked(
    values: np.ndarray,
    mask: np.ndarray,
    config: EngineConfig | None = None,
) -> Moments:
    """Reduce *values* under *mask* in contiguous chunks.

    Parameters
    ----------
    values:
        Intensity buffer; flattened in raster order.
    mask:
        Boolean buffer of the same size.
    config:
        Worker count and chunk size; defaults to :class:`EngineConfig`.

    Raises
    ------
    GeometryMismatchError
        If the buffers differ in length.
    """
    config = config or EngineConfig()
    flat_values = np.ascontiguousarray(values).reshape(-1)
    flat_mask = np.ascontiguousarray(mask, dtype=bool).reshape(-1)
    if flat_values.size != flat_mask.size:
        raise GeometryMismatchError(
            f"Value buffer ({flat_values.size}) and mask ({flat_mask.size}) "
            "differ in length."
        )

    chunk = max(1, int(config.chunk_size))
    bounds = [
        (start, min(start + chunk, flat_values.size))
        for start in range(0, flat_values.size, chunk)
    ]

    def _reduce(bound: tuple[int, int]) -> Moments:
        lo, hi = bound
        return masked_moments(flat_values[lo:hi], flat_mask[lo:hi])

    if config.workers > 1 and len(bounds) > 1:
        with ThreadPoolExecutor(max_workers=config.workers) as executor:
            partials = list(executor.map(_reduce, bounds))
    else:
        partials = [_reduce(bound) for bound in bounds]

    logger.debug(
        "Reduced %d voxel(s) in %d chunk(s) with %d worker(s).",
        flat_values.size, len(bounds), max(1, config.workers),
    )
    return functools.reduce(Moments.combine, partials, Moments())
