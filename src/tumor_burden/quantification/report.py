"""Serialisable report rows for downstream report writers.

Rows are flat ``dict`` objects holding only plain Python scalars, so any
tabular or structured writer can consume them without engine types.  Nested
mappings are flattened to ``key_subkey`` columns and sequences to
``key_0``, ``key_1``, ... columns.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping

from tumor_burden.domain.models import (
    AggregateResult,
    LesionStatistics,
    SUVPeakResult,
    ThresholdConfig,
)
from tumor_burden.quantification.statistics import lesion_glycolysis


def flatten_record(record: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested mappings and sequences into a single-level dict."""
    flat: dict[str, Any] = {}
    for key, value in record.items():
        name = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten_record(value, prefix=f"{name}_"))
        elif isinstance(value, (list, tuple)):
            for position, item in enumerate(value):
                flat[f"{name}_{position}"] = _plain(item)
        else:
            flat[name] = _plain(value)
    return flat


def lesion_report_row(
    stats: LesionStatistics,
    peak: SUVPeakResult | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """One report row for a lesion.

    Parameters
    ----------
    stats:
        Lesion statistics.
    peak:
        Optional peak result; its fields are prefixed with ``peak_``.
    metadata:
        Per-lesion identifiers (patient, study, series, label, ...); listed
        first in the row.
    """
    row = flatten_record(dict(metadata or {}))
    row.update(flatten_record(stats.to_dict()))
    row["lesion_glycolysis"] = lesion_glycolysis(stats)
    if peak is not None:
        row.update(flatten_record(peak.to_dict(), prefix="peak_"))
    return row


def aggregate_report_rows(
    aggregate: AggregateResult,
    threshold: ThresholdConfig | None = None,
) -> list[dict[str, Any]]:
    """Key/value summary rows appended after the per-lesion rows."""
    rows: list[dict[str, Any]] = [
        {"key": "Total Metabolic Tumor Volume", "value": {"tmtv_ml": aggregate.tmtv_ml}},
        {
            "key": "Total Lesion Glycolysis",
            "value": {"tlg": round(aggregate.total_lesion_glycolysis, 4)},
        },
    ]
    if threshold is not None:
        rows.append(
            {
                "key": "Threshold Configuration",
                "value": flatten_record(
                    {
                        "strategy": threshold.strategy,
                        "lower": threshold.lower,
                        "upper": threshold.upper,
                        "weight": threshold.weight,
                        "k": threshold.k,
                    }
                ),
            }
        )
    return rows


def _plain(value: Any) -> Any:
    """Convert enums and numpy scalars to built-in Python values."""
    if isinstance(value, enum.Enum):
        return value.value
    if hasattr(value, "item") and callable(value.item):
        return value.item()
    return value
