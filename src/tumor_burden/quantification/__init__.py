"""Quantification sub-package.

Per-lesion statistics and SUV peak, whole-body aggregation (TMTV, TLG), and
serialisable report rows.
"""

from __future__ import annotations

from tumor_burden.quantification.aggregate import (
    compute_tlg,
    compute_tmtv,
    merge_label_volumes,
    summarize,
)
from tumor_burden.quantification.peak import compute_peak
from tumor_burden.quantification.report import (
    aggregate_report_rows,
    flatten_record,
    lesion_report_row,
)
from tumor_burden.quantification.statistics import (
    compute_stats,
    compute_stats_for_segments,
    lesion_glycolysis,
)

__all__ = [
    "aggregate_report_rows",
    "compute_peak",
    "compute_stats",
    "compute_stats_for_segments",
    "compute_tlg",
    "compute_tmtv",
    "flatten_record",
    "lesion_glycolysis",
    "lesion_report_row",
    "merge_label_volumes",
    "summarize",
]
