"""Tests for domain models, errors, events, and configuration records."""

from __future__ import annotations

import math

import numpy as np
import pytest

from tumor_burden.domain.errors import (
    EmptySegmentError,
    GeometryMismatchError,
    InvalidThresholdRangeError,
    TumorBurdenError,
)
from tumor_burden.domain.events import (
    SLAB_RESOLVED,
    Event,
    EventBus,
)
from tumor_burden.domain.models import (
    AggregateResult,
    Grid,
    IntensityVolume,
    LabelVolume,
    LesionStatistics,
    PeakConfig,
    Slab,
    SUVPeakResult,
    VoxelSpacing,
)


# =====================================================================
# Grid construction
# =====================================================================


class TestGrid:
    """Buffer length and raster order."""

    def test_from_flat_dimensions(self):
        grid = Grid.from_flat(np.arange(24), (4, 3, 2))
        assert grid.dimensions == (4, 3, 2)
        assert grid.scalars.shape == (2, 3, 4)
        assert grid.scalar_data.size == 4 * 3 * 2

    def test_raster_order(self):
        """Flat index i + j*nx + k*nx*ny addresses voxel (i, j, k)."""
        nx, ny, nz = 4, 3, 2
        grid = Grid.from_flat(np.arange(nx * ny * nz), (nx, ny, nz))
        i, j, k = 3, 1, 1
        assert grid.scalars[k, j, i] == i + j * nx + k * nx * ny

    @pytest.mark.parametrize("length", [0, 23, 25])
    def test_from_flat_rejects_wrong_length(self, length):
        with pytest.raises(GeometryMismatchError):
            Grid.from_flat(np.zeros(length), (4, 3, 2))

    def test_rejects_non_3d(self):
        with pytest.raises(ValueError):
            Grid(scalars=np.zeros((4, 4)))

    def test_rejects_non_positive_spacing(self):
        with pytest.raises(ValueError):
            Grid(scalars=np.zeros((2, 2, 2)), spacing=VoxelSpacing(x=0.0))

    def test_flat_direction_reshaped(self):
        grid = Grid(scalars=np.zeros((1, 1, 1)), direction=tuple(np.eye(3).ravel()))
        assert grid.direction.shape == (3, 3)

    def test_same_geometry(self):
        a = Grid(scalars=np.zeros((2, 3, 4)))
        b = Grid(scalars=np.ones((2, 3, 4)))
        c = Grid(scalars=np.zeros((2, 3, 4)), spacing=VoxelSpacing(x=2.0))
        assert a.same_geometry(b)
        assert not a.same_geometry(c)

    def test_voxel_volume_ml(self):
        assert VoxelSpacing(10.0, 10.0, 10.0).voxel_volume_ml == pytest.approx(1.0)


# =====================================================================
# Intensity and label volumes
# =====================================================================


class TestVolumes:

    def test_intensity_volume_is_read_only(self, scenario_reference):
        with pytest.raises(ValueError):
            scenario_reference.scalars[0, 0, 0] = 99.0

    def test_caller_array_stays_writable(self):
        data = np.zeros((2, 2, 2), dtype=np.float32)
        IntensityVolume(scalars=data)
        data[0, 0, 0] = 1.0
        assert data[0, 0, 0] == 1.0

    def test_label_volume_requires_integers(self):
        with pytest.raises(ValueError):
            LabelVolume(scalars=np.zeros((2, 2, 2), dtype=np.float32))

    def test_label_volume_rejects_negative_indices(self):
        with pytest.raises(ValueError):
            LabelVolume.from_flat(np.array([-1, 0], dtype=np.int16), (2, 1, 1))

    def test_label_volume_accepts_signed_non_negative(self):
        label = LabelVolume.from_flat(np.array([3, 0], dtype=np.int16), (2, 1, 1))
        assert label.segment_indices() == [3]

    def test_label_volume_geometry_must_match_reference(self, scenario_reference):
        with pytest.raises(GeometryMismatchError):
            LabelVolume(
                scalars=np.zeros((2, 2, 3), dtype=np.uint16),
                spacing=scenario_reference.spacing,
                reference=scenario_reference,
            )

    def test_label_volume_spacing_mismatch(self, scenario_reference):
        with pytest.raises(GeometryMismatchError):
            LabelVolume(
                scalars=np.zeros((2, 2, 2), dtype=np.uint16),
                spacing=VoxelSpacing(1.0, 1.0, 1.0),
                reference=scenario_reference,
            )

    def test_empty_like(self, pet_volume):
        label = LabelVolume.empty_like(pet_volume)
        assert label.dimensions == pet_volume.dimensions
        assert label.reference is pet_volume
        assert label.reference_id == "pt-001"
        assert label.scalars.dtype == np.uint16
        assert not label.scalars.any()
        assert label.scalars.flags.writeable

    def test_segment_indices(self, scenario_label):
        assert scenario_label.segment_indices() == [1]
        assert scenario_label.max_segment_index == 65535


# =====================================================================
# Slabs and records
# =====================================================================


class TestSlabAndRecords:

    def test_slab_defaults(self):
        slab = Slab()
        assert slab.points.shape == (0, 3)
        assert slab.slice_range is None
        assert slab.stale is False

    def test_slab_rejects_bad_points(self):
        with pytest.raises(ValueError):
            Slab(points=np.zeros((4, 2)))

    def test_slice_range(self):
        slab = Slab(points=np.zeros((4, 3)), start_slice=2, end_slice=5)
        assert slab.slice_range == (2, 5)

    def test_result_records_serialise_to_plain_dicts(self):
        stats = LesionStatistics(min_value=1.0, max_value=4.0, mean_value=2.5,
                                 std_value=1.1, volume_ml=4.0, voxel_count=4)
        peak = SUVPeakResult(mean=3.0, max=4.0, max_index=(1, 1, 0),
                             max_world=(10.0, 10.0, 0.0))
        agg = AggregateResult(tmtv_ml=4.0, total_lesion_glycolysis=10.0)
        assert stats.to_dict()["mean_value"] == 2.5
        assert peak.to_dict()["max_index"] == (1, 1, 0)
        assert agg.to_dict() == {
            "tmtv_ml": 4.0,
            "total_lesion_glycolysis": 10.0,
            "voxel_count": 0,
            "label_volume_count": 0,
        }

    def test_results_are_frozen(self):
        stats = LesionStatistics()
        with pytest.raises(AttributeError):
            stats.mean_value = 1.0  # type: ignore[misc]

    def test_peak_radius_for_one_ml(self):
        radius = PeakConfig().radius_mm
        assert radius == pytest.approx(6.2035, abs=1e-3)
        assert 4.0 / 3.0 * math.pi * radius ** 3 == pytest.approx(1000.0)


# =====================================================================
# Errors and events
# =====================================================================


class TestErrorsAndEvents:

    def test_error_hierarchy(self):
        assert issubclass(GeometryMismatchError, TumorBurdenError)
        assert issubclass(GeometryMismatchError, ValueError)
        assert issubclass(InvalidThresholdRangeError, ValueError)
        err = EmptySegmentError(3)
        assert err.segment_index == 3
        assert "3" in str(err)

    def test_publish_subscribe(self):
        bus = EventBus()
        received: list[Event] = []
        bus.subscribe(SLAB_RESOLVED, received.append)
        bus.publish(SLAB_RESOLVED, {"slab_id": "a"})
        assert len(received) == 1
        assert received[0].payload == {"slab_id": "a"}
        assert bus.handler_count(SLAB_RESOLVED) == 1

    def test_other_event_types_not_delivered(self):
        bus = EventBus()
        received: list[Event] = []
        bus.subscribe(SLAB_RESOLVED, received.append)
        assert bus.publish(Event(type="other")) == 0
        assert received == []

    def test_unsubscribe(self):
        bus = EventBus()
        received: list[Event] = []
        bus.subscribe(SLAB_RESOLVED, received.append)
        bus.unsubscribe(SLAB_RESOLVED, received.append)
        assert bus.publish(SLAB_RESOLVED, {"slab_id": "a"}) == 0
        assert received == []

    def test_clear(self):
        bus = EventBus()
        bus.subscribe(SLAB_RESOLVED, lambda e: None)
        bus.clear()
        assert bus.handler_count(SLAB_RESOLVED) == 0
