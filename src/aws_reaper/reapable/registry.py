"""
Registry of live reapables keyed by region and id.

Written wholesale at the end of each reap cycle and read by action link
handling in between, so it sits behind a reader/writer lock.
"""
from typing import Dict, Iterable, Iterator, List, Optional

from ..core.locks import ReadWriteLock
from .base import NotFoundError, Reapable


class Reapables:
    """Thread-safe ``region -> id -> Reapable`` store."""

    def __init__(self, regions: Optional[Iterable[str]] = None):
        self._lock = ReadWriteLock()
        self._store: Dict[str, Dict[str, Reapable]] = {region: {} for region in regions or []}

    def put(self, reapable: Reapable) -> None:
        with self._lock.write():
            self._store.setdefault(reapable.region, {})[reapable.id] = reapable

    def get(self, region: str, resource_id: str) -> Reapable:
        """
        Raises:
            NotFoundError: If nothing is registered under ``(region, resource_id)``
        """
        with self._lock.read():
            try:
                return self._store[region][resource_id]
            except KeyError:
                raise NotFoundError(region, resource_id) from None

    def delete(self, region: str, resource_id: str) -> None:
        with self._lock.write():
            self._store.get(region, {}).pop(resource_id, None)

    def all(self) -> List[Reapable]:
        """Snapshot of every registered reapable."""
        with self._lock.read():
            return [r for region in self._store.values() for r in region.values()]

    def __iter__(self) -> Iterator[Reapable]:
        return iter(self.all())

    def __len__(self) -> int:
        with self._lock.read():
            return sum(len(region) for region in self._store.values())

    def replace_all(self, reapables: Iterable[Reapable]) -> None:
        """Swap the whole contents in one write."""
        fresh: Dict[str, Dict[str, Reapable]] = {}
        for reapable in reapables:
            fresh.setdefault(reapable.region, {})[reapable.id] = reapable
        with self._lock.write():
            self._store = fresh
