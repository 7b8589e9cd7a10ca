"""In-memory volume and selection stores.

Both stores keep explicit indexes keyed by stable identifiers so that the
engine is handed objects directly instead of searching collections at call
time.  Instances belong to one viewing session; nothing here is global.
"""

from __future__ import annotations

import logging
import threading

from tumor_burden.domain.models import Grid, IntensityVolume, LabelVolume, Slab

logger = logging.getLogger(__name__)


class InMemoryVolumeStore:
    """Volumes keyed by id, with label-to-reference links.

    Implements :class:`~tumor_burden.domain.protocols.VolumeStoreProtocol`.
    """

    def __init__(self) -> None:
        self._volumes: dict[str, Grid] = {}
        self._references: dict[str, str] = {}
        self._lock = threading.Lock()

    def add(self, volume: Grid, volume_id: str | None = None) -> str:
        """Register *volume* and return its id.

        Intensity volumes default to their ``volume_id`` and label volumes to
        their ``segmentation_id``.  Adding a label volume also records its
        reference id.
        """
        if volume_id is None:
            if isinstance(volume, IntensityVolume):
                volume_id = volume.volume_id
            elif isinstance(volume, LabelVolume):
                volume_id = volume.segmentation_id
            else:
                raise ValueError("An explicit volume_id is required for a plain Grid.")
        with self._lock:
            self._volumes[volume_id] = volume
            if isinstance(volume, LabelVolume) and volume.reference_id:
                self._references[volume_id] = volume.reference_id
        logger.debug("Stored volume %s %s.", volume_id, volume.dimensions)
        return volume_id

    def remove(self, volume_id: str) -> None:
        with self._lock:
            del self._volumes[volume_id]
            self._references.pop(volume_id, None)

    def get_volume(self, volume_id: str) -> Grid:
        """Return the volume registered under *volume_id* (``KeyError`` if absent)."""
        with self._lock:
            try:
                return self._volumes[volume_id]
            except KeyError:
                raise KeyError(f"No volume registered under {volume_id!r}.") from None

    def get_referenced_volume_id(self, label_volume_id: str) -> str:
        with self._lock:
            try:
                return self._references[label_volume_id]
            except KeyError:
                raise KeyError(
                    f"No reference recorded for label volume {label_volume_id!r}."
                ) from None

    def label_volumes_for(self, reference_id: str) -> list[LabelVolume]:
        """All stored label volumes derived from *reference_id*, in insertion order."""
        with self._lock:
            return [
                volume
                for volume_id, volume in self._volumes.items()
                if isinstance(volume, LabelVolume)
                and self._references.get(volume_id) == reference_id
            ]

    def __contains__(self, volume_id: object) -> bool:
        with self._lock:
            return volume_id in self._volumes

    def __len__(self) -> int:
        with self._lock:
            return len(self._volumes)


class SlabSelectionStore:
    """Slab annotations and the ordered subset currently selected.

    Implements :class:`~tumor_burden.domain.protocols.SelectionStoreProtocol`.
    The lock is re-entrant because ``add`` and ``remove`` go through
    ``select`` and ``deselect``.
    """

    def __init__(self) -> None:
        self._slabs: dict[str, Slab] = {}
        self._selected: list[str] = []
        self._lock = threading.RLock()

    def add(self, slab: Slab, select: bool = False) -> str:
        with self._lock:
            self._slabs[slab.slab_id] = slab
            if select:
                self.select(slab.slab_id)
        return slab.slab_id

    def get(self, slab_id: str) -> Slab:
        with self._lock:
            try:
                return self._slabs[slab_id]
            except KeyError:
                raise KeyError(f"No slab registered under {slab_id!r}.") from None

    def all(self) -> list[Slab]:
        with self._lock:
            return list(self._slabs.values())

    def select(self, slab_id: str) -> None:
        """Append *slab_id* to the selection (no-op if already selected)."""
        with self._lock:
            self.get(slab_id)
            if slab_id not in self._selected:
                self._selected.append(slab_id)

    def deselect(self, slab_id: str) -> None:
        with self._lock:
            if slab_id in self._selected:
                self._selected.remove(slab_id)

    def clear_selection(self) -> None:
        with self._lock:
            self._selected.clear()

    def selected(self) -> list[Slab]:
        with self._lock:
            return [self._slabs[slab_id] for slab_id in self._selected]

    def invalidate(self, slab_id: str) -> None:
        self.get(slab_id).stale = True

    def remove(self, slab_id: str) -> None:
        with self._lock:
            self.get(slab_id)
            self.deselect(slab_id)
            del self._slabs[slab_id]

    def __contains__(self, slab_id: object) -> bool:
        with self._lock:
            return slab_id in self._slabs

    def __len__(self) -> int:
        with self._lock:
            return len(self._slabs)
