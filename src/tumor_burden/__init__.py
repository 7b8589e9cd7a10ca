"""Tumor burden quantification engine.

Turns slab-shaped selections on a PET (or other intensity) volume into
threshold-based lesion label volumes, measures each lesion (statistics,
SUV peak, lesion glycolysis) and aggregates lesions into whole-body totals
(total metabolic tumor volume, total lesion glycolysis).
"""

from __future__ import annotations

__version__ = "0.1.0"
