"""Configuration sub-package.

Provides settings loading and typed configuration access.

Quick usage::

    from tumor_burden.config import get_config, peak_config

    cfg = get_config()
    print(cfg["threshold"]["strategy"])
    print(peak_config().radius_mm)
"""

from __future__ import annotations

from tumor_burden.config.settings import (
    engine_config,
    get_config,
    get_typed_config,
    peak_config,
    threshold_config,
)

__all__ = [
    "engine_config",
    "get_config",
    "get_typed_config",
    "peak_config",
    "threshold_config",
]
