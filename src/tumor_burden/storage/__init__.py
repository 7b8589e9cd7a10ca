"""Storage sub-package.

In-memory implementations of the volume and selection store protocols.
"""

from __future__ import annotations

from tumor_burden.storage.memory import InMemoryVolumeStore, SlabSelectionStore

__all__ = [
    "InMemoryVolumeStore",
    "SlabSelectionStore",
]
