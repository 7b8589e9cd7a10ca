"""Domain models for the tumor burden quantification engine.

Result and configuration records are frozen dataclasses.  Grids are frozen as
well, but the numpy array they wrap is shared: a :class:`LabelVolume` is
updated in place by the segmentation writer while an
:class:`IntensityVolume` exposes a read-only view of its data.

Arrays are stored slice-major with shape ``(nz, ny, nx)`` so that the C-order
flat buffer addresses voxel ``(i, j, k)`` at ``i + j*nx + k*nx*ny``.
"""

from __future__ import annotations

import enum
import math
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import yaml

from tumor_burden.domain.errors import GeometryMismatchError

# Absolute tolerance used when comparing spacing, origin and direction.
GEOMETRY_ATOL = 1e-6

# Cubic millimetres to millilitres.
MM3_TO_ML = 1e-3


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _uuid() -> str:
    """Generate a new UUID4 string."""
    return str(uuid.uuid4())


def _empty_grid() -> np.ndarray:
    """Return an empty float32 3-D array."""
    return np.zeros((0, 0, 0), dtype=np.float32)


def _identity() -> np.ndarray:
    """Return a 3x3 identity direction matrix."""
    return np.eye(3)


def _empty_dict() -> dict[str, Any]:
    """Return an empty dictionary."""
    return {}


def _empty_points() -> np.ndarray:
    """Return an empty ``(0, 3)`` point array."""
    return np.empty((0, 3), dtype=np.float64)


# ---------------------------------------------------------------------------
# Grids
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VoxelSpacing:
    """Physical spacing between voxels in millimetres (x, y, z)."""

    x: float = 1.0
    y: float = 1.0
    z: float = 1.0

    def as_tuple(self) -> tuple[float, float, float]:
        return (float(self.x), float(self.y), float(self.z))

    @property
    def voxel_volume_ml(self) -> float:
        """Volume of a single voxel in millilitres."""
        return float(self.x) * float(self.y) * float(self.z) * MM3_TO_ML


@dataclass(frozen=True, eq=False)
class Grid:
    """A 3-D scalar array with physical geometry.

    ``direction`` holds the direction cosines of the i, j and k axes as its
    columns; ``origin`` is the physical position of voxel ``(0, 0, 0)``.
    """

    scalars: np.ndarray = field(default_factory=_empty_grid)
    spacing: VoxelSpacing = field(default_factory=VoxelSpacing)
    origin: tuple[float, float, float] = (0.0, 0.0, 0.0)
    direction: np.ndarray = field(default_factory=_identity)

    def __post_init__(self) -> None:
        scalars = np.ascontiguousarray(self.scalars)
        if scalars.ndim != 3:
            raise ValueError(
                f"Grid scalars must be 3-D (nz, ny, nx), got shape {scalars.shape}."
            )
        direction = np.asarray(self.direction, dtype=np.float64)
        if direction.size == 9:
            direction = direction.reshape(3, 3)
        if direction.shape != (3, 3):
            raise ValueError(
                f"Direction must be a 3x3 matrix, got shape {direction.shape}."
            )
        if len(self.origin) != 3:
            raise ValueError(f"Origin must have 3 components, got {self.origin}.")
        if any(s <= 0 for s in self.spacing.as_tuple()):
            raise ValueError(f"Spacing must be positive, got {self.spacing}.")

        object.__setattr__(self, "scalars", scalars)
        object.__setattr__(self, "direction", direction)
        object.__setattr__(self, "origin", tuple(float(v) for v in self.origin))

    # -- factory -----------------------------------------------------------

    @classmethod
    def from_flat(
        cls,
        buffer: Any,
        dimensions: tuple[int, int, int],
        **kwargs: Any,
    ) -> Grid:
        """Build a grid from a flat raster-ordered buffer.

        Parameters
        ----------
        buffer:
            Sequence or array of length ``nx * ny * nz``.
        dimensions:
            ``(nx, ny, nz)``.
        **kwargs:
            Remaining dataclass fields (spacing, origin, direction, ...).

        Raises
        ------
        GeometryMismatchError
            If the buffer length does not match the dimensions.
        """
        nx, ny, nz = (int(d) for d in dimensions)
        flat = np.asarray(buffer)
        if flat.ndim != 1 or flat.size != nx * ny * nz:
            raise GeometryMismatchError(
                f"Buffer of {flat.size} values does not match dimensions "
                f"{(nx, ny, nz)} ({nx * ny * nz} voxels)."
            )
        return cls(scalars=flat.reshape(nz, ny, nx), **kwargs)

    # -- geometry ----------------------------------------------------------

    @property
    def dimensions(self) -> tuple[int, int, int]:
        """``(nx, ny, nz)``."""
        nz, ny, nx = self.scalars.shape
        return (nx, ny, nz)

    @property
    def voxel_count(self) -> int:
        return int(self.scalars.size)

    @property
    def scalar_data(self) -> np.ndarray:
        """Flat view of the scalar buffer in raster order."""
        return self.scalars.reshape(-1)

    def same_geometry(self, other: Grid, atol: float = GEOMETRY_ATOL) -> bool:
        """Return True when *other* has the same dimensions, spacing and orientation."""
        if self.dimensions != other.dimensions:
            return False
        if not np.allclose(
            self.spacing.as_tuple(), other.spacing.as_tuple(), atol=atol, rtol=0.0
        ):
            return False
        if not np.allclose(self.direction, other.direction, atol=atol, rtol=0.0):
            return False
        return bool(np.allclose(self.origin, other.origin, atol=atol, rtol=0.0))


@dataclass(frozen=True, eq=False)
class IntensityVolume(Grid):
    """A grid of physical measurements, e.g. PET activity concentration.

    The wrapped array is exposed read-only; the caller's array is left
    writable.
    """

    volume_id: str = field(default_factory=_uuid)
    modality: str = "PT"
    metadata: dict[str, Any] = field(default_factory=_empty_dict)

    def __post_init__(self) -> None:
        super().__post_init__()
        view = self.scalars.view()
        view.flags.writeable = False
        object.__setattr__(self, "scalars", view)


@dataclass(frozen=True, eq=False)
class LabelVolume(Grid):
    """A grid of non-negative segment indices; ``0`` is background.

    ``reference`` points directly at the intensity volume the labels were
    derived from.  When it is set the two grids must share geometry.
    """

    segmentation_id: str = field(default_factory=_uuid)
    reference: IntensityVolume | None = None
    reference_id: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not np.issubdtype(self.scalars.dtype, np.integer):
            raise ValueError(
                f"Label volume dtype must be integer, got {self.scalars.dtype}."
            )
        if np.issubdtype(self.scalars.dtype, np.signedinteger) and self.scalars.size:
            lowest = int(self.scalars.min())
            if lowest < 0:
                raise ValueError(
                    f"Label volume indices must be non-negative, got {lowest}."
                )
        if not self.scalars.flags.writeable:
            object.__setattr__(self, "scalars", self.scalars.copy())
        if self.reference is not None:
            if not self.same_geometry(self.reference):
                raise GeometryMismatchError(
                    f"Label volume {self.segmentation_id} geometry "
                    f"{self.dimensions} does not match reference "
                    f"{self.reference.volume_id} {self.reference.dimensions}."
                )
            if not self.reference_id:
                object.__setattr__(self, "reference_id", self.reference.volume_id)

    @classmethod
    def empty_like(
        cls,
        reference: IntensityVolume,
        segmentation_id: str | None = None,
        dtype: Any = np.uint16,
    ) -> LabelVolume:
        """Create an all-background label volume on the grid of *reference*."""
        return cls(
            scalars=np.zeros(reference.scalars.shape, dtype=dtype),
            spacing=reference.spacing,
            origin=reference.origin,
            direction=reference.direction.copy(),
            segmentation_id=segmentation_id or _uuid(),
            reference=reference,
        )

    @property
    def max_segment_index(self) -> int:
        """Largest segment index the label dtype can hold."""
        return int(np.iinfo(self.scalars.dtype).max)

    def segment_indices(self) -> list[int]:
        """Sorted non-background indices present in the volume."""
        present = np.unique(self.scalars)
        return [int(v) for v in present if v != 0]


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

class BoundaryKind(str, enum.Enum):
    """Which end of a slab's slice range is being set."""

    START = "start"
    END = "end"


@dataclass(eq=False)
class Slab:
    """A multi-slice rectangular selection in physical space.

    ``points`` are the corner points of the in-plane quadrilateral.  The
    inclusive ``[start_slice, end_slice]`` range runs along the grid axis
    most parallel to ``view_plane_normal``.  ``stale`` marks that cached
    derived values must be recomputed.
    """

    points: np.ndarray = field(default_factory=_empty_points)
    start_slice: int | None = None
    end_slice: int | None = None
    view_plane_normal: tuple[float, float, float] = (0.0, 0.0, 1.0)
    focal_point: tuple[float, float, float] = (0.0, 0.0, 0.0)
    slab_id: str = field(default_factory=_uuid)
    label: str = ""
    stale: bool = False

    def __post_init__(self) -> None:
        points = np.asarray(self.points, dtype=np.float64)
        if points.size == 0:
            points = points.reshape(0, 3)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Slab points must have shape (N, 3), got {points.shape}.")
        self.points = points

    @property
    def slice_range(self) -> tuple[int, int] | None:
        """``(start, end)`` when both ends are set, else None."""
        if self.start_slice is None or self.end_slice is None:
            return None
        return (self.start_slice, self.end_slice)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LesionStatistics:
    """Descriptive statistics of one segment over its intensity volume."""

    min_value: float = 0.0
    max_value: float = 0.0
    mean_value: float = 0.0
    std_value: float = 0.0
    volume_ml: float = 0.0
    voxel_count: int = 0
    segment_index: int = 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SUVPeakResult:
    """Peak activity of one segment.

    ``mean`` is the neighborhood average around the maximum voxel,
    ``max_index`` its ``(i, j, k)`` grid index and ``max_world`` its
    physical position.
    """

    mean: float = 0.0
    max: float = 0.0
    max_index: tuple[int, int, int] = (0, 0, 0)
    max_world: tuple[float, float, float] = (0.0, 0.0, 0.0)
    neighborhood_voxels: int = 0
    segment_index: int = 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AggregateResult:
    """Whole-body totals over a set of label volumes."""

    tmtv_ml: float = 0.0
    total_lesion_glycolysis: float = 0.0
    voxel_count: int = 0
    label_volume_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Engine configuration models
# ---------------------------------------------------------------------------

class ThresholdStrategy(str, enum.Enum):
    """Strategies understood by the default threshold resolver."""

    FIXED_RANGE = "fixed_range"
    PERCENT_OF_MAX = "percent_of_max"
    MEAN_PLUS_K_SIGMA = "mean_plus_k_sigma"


@dataclass(frozen=True)
class ThresholdConfig:
    """Threshold strategy and its parameters.

    ``lower``/``upper`` are used by ``FIXED_RANGE``; ``weight`` is the
    fraction of the ROI maximum for ``PERCENT_OF_MAX``; ``k`` is the sigma
    multiplier for ``MEAN_PLUS_K_SIGMA``.
    """

    strategy: ThresholdStrategy = ThresholdStrategy.PERCENT_OF_MAX
    lower: float = 0.0
    upper: float = math.inf
    weight: float = 0.41
    k: float = 2.0


@dataclass(frozen=True)
class PeakConfig:
    """SUV peak neighborhood: a sphere of ``volume_ml`` centred at the max voxel."""

    volume_ml: float = 1.0

    @property
    def radius_mm(self) -> float:
        """Sphere radius in millimetres for the configured volume."""
        volume_mm3 = self.volume_ml / MM3_TO_ML
        return (3.0 * volume_mm3 / (4.0 * math.pi)) ** (1.0 / 3.0)


@dataclass(frozen=True)
class EngineConfig:
    """Chunked reduction parameters."""

    workers: int = 1
    chunk_size: int = 1 << 20


# ---------------------------------------------------------------------------
# Application configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AppConfig:
    """Engine configuration tree.

    Sources are layered in order: the default YAML file, an optional overlay
    file, then environment variables carrying the prefix.  Nested keys are
    joined with a double underscore, so ``TBE_PEAK__VOLUME_ML=2`` sets
    ``peak.volume_ml``.  Variable values are read as YAML scalars
    (``2`` is an int, ``null`` is None).
    """

    data: dict[str, Any] = field(default_factory=_empty_dict)

    @staticmethod
    def load(
        default_path: str | Path = "config/default.yaml",
        overlay_path: str | Path | None = None,
        env_prefix: str = "TBE_",
    ) -> AppConfig:
        """Read and layer the configuration sources.

        Missing files are skipped, so an absent default yields an empty tree
        and every typed record falls back to its dataclass defaults.
        """
        import os

        tree: dict[str, Any] = {}
        for source in (default_path, overlay_path):
            if source is not None and Path(source).is_file():
                tree = _merge_trees(tree, _read_yaml(Path(source)))

        overrides = {
            key[len(env_prefix):]: value
            for key, value in os.environ.items()
            if key.startswith(env_prefix)
        }
        return AppConfig(data=_apply_overrides(tree, overrides))

    def get(self, dotted_key: str, default: Any = None) -> Any:
        """Value at ``section.key``, or *default* when any level is missing."""
        node: Any = self.data
        for part in dotted_key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def section(self, name: str) -> dict[str, Any]:
        """Copy of a top-level section; ``{}`` when absent or not a mapping."""
        value = self.data.get(name)
        return dict(value) if isinstance(value, dict) else {}


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as fh:
        loaded = yaml.safe_load(fh)
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Config file {path} must contain a mapping at top level.")
    return loaded


def _merge_trees(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Return *base* with *overlay* laid on top; sub-mappings merge key by key."""
    result = dict(base)
    for key, value in overlay.items():
        below = result.get(key)
        if isinstance(below, dict) and isinstance(value, dict):
            value = _merge_trees(below, value)
        result[key] = value
    return result


def _apply_overrides(tree: dict[str, Any], overrides: dict[str, str]) -> dict[str, Any]:
    """Lay ``SECTION__KEY=value`` overrides onto *tree*."""
    for name, raw in sorted(overrides.items()):
        path = [part for part in name.lower().split("__") if part]
        if not path:
            continue
        try:
            nested: Any = yaml.safe_load(raw) if raw.strip() else raw
        except yaml.YAMLError:
            nested = raw
        for part in reversed(path):
            nested = {part: nested}
        tree = _merge_trees(tree, nested)
    return tree
