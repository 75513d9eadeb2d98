from __future__ import annotations

import logging
from typing import Any, Iterable

from .events import EventBus
from .models import Region, ResizeEdge

log = logging.getLogger(__name__)

MIN_REGION_LENGTH = 0.01


class RegionStore:
    """Named time regions over each file's timeline.

    Regions are kept per file in insertion order; overlapping regions
    are allowed and :meth:`hit_test` returns the first match.  Indices
    are 0-based.  A file whose last region is deleted disappears from
    the store.
    """

    def __init__(self, min_length: float = MIN_REGION_LENGTH,
                 event_bus: EventBus | None = None):
        self.min_length = float(min_length)
        self._event_bus = event_bus
        self._regions: dict[str, list[Region]] = {}

    # -- queries ------------------------------------------------------------

    def regions(self, file: str) -> list[Region]:
        """The regions of *file* (a copy of the list, same objects)."""
        return list(self._regions.get(file, ()))

    def files(self) -> list[str]:
        return list(self._regions)

    def count(self, file: str) -> int:
        return len(self._regions.get(file, ()))

    def get(self, file: str, index: int) -> Region | None:
        items = self._regions.get(file)
        if items is None or not 0 <= index < len(items):
            return None
        return items[index]

    def index_at(self, file: str, position: float) -> int | None:
        for i, region in enumerate(self._regions.get(file, ())):
            if region.contains(position):
                return i
        return None

    def hit_test(self, file: str, position: float) -> Region | None:
        """First region, by insertion order, containing *position*."""
        i = self.index_at(file, position)
        return None if i is None else self._regions[file][i]

    # -- edits --------------------------------------------------------------

    def create(self, file: str, start: float, end: float,
               name: str | None = None) -> Region | None:
        """Add a region.  Reversed bounds are swapped; spans shorter than
        the minimum length are rejected and return ``None``."""
        start, end = float(start), float(end)
        if end < start:
            start, end = end, start
        if end - start < self.min_length:
            return None
        items = self._regions.setdefault(file, [])
        region = Region(start, end, name or f"Area {len(items) + 1}")
        items.append(region)
        self._changed(file)
        return region

    def resize(self, file: str, index: int, edge: ResizeEdge | str,
               new_pos: float, max_pos: float | None = None) -> Region | None:
        """Drag one edge of a region.

        The moved edge is clamped so the region keeps at least the
        minimum length; a left edge never goes below zero and, when
        *max_pos* is given, a right edge never goes past it.
        """
        region = self.get(file, index)
        if region is None:
            return None
        edge = ResizeEdge(edge)
        new_pos = float(new_pos)
        if edge is ResizeEdge.LEFT:
            region.start_pos = min(max(0.0, new_pos),
                                   region.end_pos - self.min_length)
        else:
            end = max(new_pos, region.start_pos + self.min_length)
            if max_pos is not None:
                end = max(min(end, float(max_pos)),
                          region.start_pos + self.min_length)
            region.end_pos = end
        self._changed(file)
        return region

    def move(self, file: str, index: int, new_start: float,
             total_length: float) -> Region | None:
        """Shift a region to *new_start*, keeping its length, clamped into
        ``[0, total_length]``."""
        region = self.get(file, index)
        if region is None:
            return None
        length = region.length
        start = max(0.0, min(float(new_start), float(total_length) - length))
        region.start_pos = start
        region.end_pos = start + length
        self._changed(file)
        return region

    def rename(self, file: str, index: int, name: str) -> bool:
        region = self.get(file, index)
        if region is None:
            return False
        region.name = name
        self._changed(file)
        return True

    def delete(self, file: str, index: int) -> bool:
        items = self._regions.get(file)
        if items is None or not 0 <= index < len(items):
            return False
        del items[index]
        if not items:
            del self._regions[file]
        self._changed(file)
        return True

    def clear_all(self, file: str) -> None:
        if self._regions.pop(file, None) is not None:
            self._changed(file)

    def clear(self) -> None:
        files = list(self._regions)
        self._regions.clear()
        for file in files:
            self._changed(file)

    def replace(self, file: str, regions: Iterable[Region]) -> None:
        """Swap in a whole new list for *file* (empty drops the file)."""
        items = list(regions)
        if items:
            self._regions[file] = items
        else:
            self._regions.pop(file, None)
        self._changed(file)

    # -- persistence --------------------------------------------------------

    def export_regions(self, file: str) -> list[dict[str, Any]]:
        """Plain ``{startPos, endPos, name}`` records for *file*."""
        return [r.to_record() for r in self._regions.get(file, ())]

    def import_regions(self, file: str,
                       records: Iterable[dict[str, Any]] | None) -> bool:
        """Replace the regions of *file* with *records*.

        Records missing a name get ``"Area i"`` (1-based position in the
        input).  Records without usable numeric bounds are skipped.
        Returns False only when *records* is ``None``.
        """
        if records is None:
            return False
        items: list[Region] = []
        for i, rec in enumerate(records, start=1):
            try:
                start = float(rec["startPos"])
                end = float(rec["endPos"])
            except (KeyError, TypeError, ValueError) as e:
                log.warning("Skipping region record %d for %s: %s", i, file, e)
                continue
            name = rec.get("name") or f"Area {i}"
            items.append(Region(start, end, str(name)))
        self.replace(file, items)
        return True

    def _changed(self, file: str) -> None:
        if self._event_bus is not None:
            self._event_bus.emit("regions.changed", file=file,
                                 count=self.count(file))
