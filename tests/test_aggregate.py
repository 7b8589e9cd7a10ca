"""Tests for label merging and whole-body TMTV / TLG."""

from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from tumor_burden.domain.errors import (
    EmptyAggregateError,
    GeometryMismatchError,
    MissingReferenceError,
    NoSelectionError,
)
from tumor_burden.domain.models import (
    AggregateResult,
    IntensityVolume,
    LabelVolume,
    VoxelSpacing,
)
from tumor_burden.quantification.aggregate import (
    compute_tlg,
    compute_tmtv,
    merge_label_volumes,
    summarize,
)

UNIT = VoxelSpacing(1.0, 1.0, 1.0)


@pytest.fixture()
def pair_reference() -> IntensityVolume:
    """Two voxels along i with intensities 10 and 20, 1 mm spacing."""
    return IntensityVolume.from_flat(
        np.array([10.0, 20.0]), (2, 1, 1), spacing=UNIT, volume_id="pt-pair"
    )


def _label(reference, flat, dtype=np.uint16, **kwargs) -> LabelVolume:
    return LabelVolume.from_flat(
        np.asarray(flat, dtype=dtype),
        reference.dimensions,
        spacing=reference.spacing,
        reference=reference,
        **kwargs,
    )


@pytest.fixture()
def lesion_a(pair_reference) -> LabelVolume:
    return _label(pair_reference, [1, 0], segmentation_id="lesion-a")


@pytest.fixture()
def lesion_b(pair_reference) -> LabelVolume:
    return _label(pair_reference, [0, 2], segmentation_id="lesion-b")


# =====================================================================
# Merge
# =====================================================================


class TestMerge:

    def test_partition(self, lesion_a, lesion_b):
        merged = merge_label_volumes([lesion_a, lesion_b])
        npt.assert_array_equal(merged.scalar_data, [1, 2])
        assert merged.reference is lesion_a.reference
        assert merged.segmentation_id.startswith("merged-")

    def test_commutative_partition(self, lesion_a, lesion_b):
        ab = merge_label_volumes([lesion_a, lesion_b])
        ba = merge_label_volumes([lesion_b, lesion_a])
        npt.assert_array_equal(ab.scalars != 0, ba.scalars != 0)

    def test_idempotent(self, lesion_a):
        merged = merge_label_volumes([lesion_a, lesion_a])
        npt.assert_array_equal(merged.scalars, lesion_a.scalars)

    def test_first_non_background_wins(self, pair_reference, lesion_a):
        overlapping = _label(pair_reference, [5, 5])
        npt.assert_array_equal(
            merge_label_volumes([lesion_a, overlapping]).scalar_data, [1, 5]
        )
        npt.assert_array_equal(
            merge_label_volumes([overlapping, lesion_a]).scalar_data, [5, 5]
        )

    def test_inputs_untouched(self, lesion_a, lesion_b):
        merge_label_volumes([lesion_a, lesion_b])
        npt.assert_array_equal(lesion_a.scalar_data, [1, 0])
        npt.assert_array_equal(lesion_b.scalar_data, [0, 2])

    def test_mixed_dtypes(self, pair_reference, lesion_a):
        wide = _label(pair_reference, [0, 300], dtype=np.int32)
        merged = merge_label_volumes([lesion_a, wide])
        assert merged.scalars.dtype == np.result_type(np.uint16, np.int32)
        npt.assert_array_equal(merged.scalar_data, [1, 300])

    def test_uint64_with_signed_stays_integer(self, pair_reference):
        wide = _label(pair_reference, [1, 0], dtype=np.uint64)
        signed = _label(pair_reference, [0, 2], dtype=np.int64)
        merged = merge_label_volumes([wide, signed])
        assert merged.scalars.dtype == np.uint64
        npt.assert_array_equal(merged.scalar_data, [1, 2])
        assert compute_tmtv([wide, signed]) == pytest.approx(0.002)

    def test_empty(self):
        with pytest.raises(NoSelectionError):
            merge_label_volumes([])

    def test_geometry_mismatch(self, lesion_a):
        other = LabelVolume.from_flat(
            np.array([1, 0, 0], dtype=np.uint16), (3, 1, 1), spacing=UNIT
        )
        with pytest.raises(GeometryMismatchError):
            merge_label_volumes([lesion_a, other])


# =====================================================================
# TMTV / TLG
# =====================================================================


class TestTotals:

    def test_tmtv(self, lesion_a, lesion_b):
        assert compute_tmtv([lesion_a, lesion_b]) == pytest.approx(0.002)

    def test_tmtv_empty(self):
        assert compute_tmtv([]) == 0.0

    def test_tmtv_counts_overlap_once(self, lesion_a):
        assert compute_tmtv([lesion_a, lesion_a]) == pytest.approx(0.001)

    def test_tlg(self, lesion_a, lesion_b):
        # mean 15 over 2 voxels of 0.001 mL
        assert compute_tlg([lesion_a, lesion_b]) == pytest.approx(0.03)

    def test_tlg_explicit_reference(self, pair_reference):
        bare = LabelVolume.from_flat(
            np.array([0, 1], dtype=np.uint16), (2, 1, 1), spacing=UNIT
        )
        assert compute_tlg([bare], pair_reference) == pytest.approx(0.02)

    def test_tlg_empty(self):
        with pytest.raises(EmptyAggregateError):
            compute_tlg([])

    def test_tlg_all_background(self, pair_reference):
        with pytest.raises(EmptyAggregateError):
            compute_tlg([_label(pair_reference, [0, 0])])

    def test_tlg_missing_reference(self):
        bare = LabelVolume.from_flat(
            np.array([1, 0], dtype=np.uint16), (2, 1, 1), spacing=UNIT
        )
        with pytest.raises(MissingReferenceError):
            compute_tlg([bare])

    def test_tlg_over_mixed_segments(self, pet_volume, pet_label):
        pet_label.scalars[1, 1, 2] = 1
        pet_label.scalars[2, 2, 3] = 2
        voxel_ml = pet_volume.spacing.voxel_volume_ml
        assert compute_tlg([pet_label]) == pytest.approx((10.0 + 20.0) * voxel_ml)


class TestSummarize:

    def test_summary(self, lesion_a, lesion_b):
        result = summarize([lesion_a, lesion_b])
        assert result.tmtv_ml == pytest.approx(0.002)
        assert result.total_lesion_glycolysis == pytest.approx(0.03)
        assert result.voxel_count == 2
        assert result.label_volume_count == 2

    def test_empty(self):
        assert summarize([]) == AggregateResult()

    def test_all_background(self, pair_reference):
        result = summarize([_label(pair_reference, [0, 0])])
        assert result.tmtv_ml == 0.0
        assert result.total_lesion_glycolysis == 0.0
        assert result.label_volume_count == 1
