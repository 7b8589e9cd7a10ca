"""Settings module -- single entry point for engine configuration.

:func:`get_config` returns the merged configuration dictionary.  It loads
``config/default.yaml`` and applies any ``TBE_`` prefixed environment
variable overrides.  The typed helpers turn sections into the engine's
configuration records, keeping dataclass defaults for missing keys.
"""

from __future__ import annotations

import functools
from pathlib import Path
from typing import Any

from tumor_burden.domain.models import (
    AppConfig,
    EngineConfig,
    PeakConfig,
    ThresholdConfig,
)
from tumor_burden.segmentation.threshold import threshold_config_from_mapping

# Project root is three levels up from ``src/tumor_burden/config/``.
_PROJECT_ROOT = Path(__file__).resolve().parents[3]

ENV_PREFIX = "TBE_"


@functools.lru_cache(maxsize=1)
def get_config() -> dict[str, Any]:
    """Return the fully merged configuration dictionary.

    The result is cached so that repeated calls within the same process are
    essentially free.

    Resolution order:

    1. ``config/default.yaml``
    2. Environment variables with ``TBE_`` prefix

    Returns
    -------
    dict[str, Any]
        The merged configuration tree.
    """
    return get_typed_config().data


def get_typed_config() -> AppConfig:
    """Return the :class:`AppConfig` wrapper for typed access."""
    return AppConfig.load(
        default_path=_PROJECT_ROOT / "config" / "default.yaml",
        env_prefix=ENV_PREFIX,
    )


def threshold_config(app_config: AppConfig | None = None) -> ThresholdConfig:
    """Build the threshold strategy from the ``threshold`` section."""
    app_config = app_config or get_typed_config()
    return threshold_config_from_mapping(app_config.section("threshold"))


def peak_config(app_config: AppConfig | None = None) -> PeakConfig:
    """Build the SUV peak neighborhood from the ``peak`` section."""
    app_config = app_config or get_typed_config()
    return PeakConfig(
        volume_ml=float(app_config.get("peak.volume_ml", PeakConfig.volume_ml)),
    )


def engine_config(app_config: AppConfig | None = None) -> EngineConfig:
    """Build the chunked reduction parameters from the ``engine`` section."""
    app_config = app_config or get_typed_config()
    return EngineConfig(
        workers=int(app_config.get("engine.workers", EngineConfig.workers)),
        chunk_size=int(app_config.get("engine.chunk_size", EngineConfig.chunk_size)),
    )
