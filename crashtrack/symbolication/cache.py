"""
Parsed source map cache.

Entries are keyed by the artifact's SHA-256, so the same map uploaded
under several releases or names is parsed once. Concurrent cold lookups
for one key share a single in-flight parse.
"""
import asyncio
import logging
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Union

from crashtrack.symbolication.errors import SourceMapError
from crashtrack.symbolication.sourcemap import ParsedSourceMap

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[bytes]]
_Entry = Union[ParsedSourceMap, SourceMapError]


class SourceMapCache:
    """LRU read-through cache of ``ParsedSourceMap`` objects."""

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._in_flight: Dict[str, "asyncio.Task[_Entry]"] = {}
        self._stats = {"hits": 0, "misses": 0, "loads": 0, "shared_loads": 0, "evictions": 0}

    async def get_or_load(self, sha256: str, loader: Loader) -> ParsedSourceMap:
        """
        Return the parsed map for ``sha256``, loading it on a miss.

        Args:
            sha256: Content hash of the artifact
            loader: Coroutine function returning the artifact bytes

        Raises:
            SourceMapError: The artifact is not a valid source map. The
                failure is cached like a successful parse.
        """
        entry = self._entries.get(sha256)
        if entry is not None:
            self._entries.move_to_end(sha256)
            self._stats["hits"] += 1
            return self._unwrap(entry)

        self._stats["misses"] += 1
        task = self._in_flight.get(sha256)
        if task is None:
            task = asyncio.ensure_future(self._load(sha256, loader))
            self._in_flight[sha256] = task
            task.add_done_callback(lambda t: self._load_done(sha256, t))
        else:
            self._stats["shared_loads"] += 1

        entry = await asyncio.shield(task)
        return self._unwrap(entry)

    async def _load(self, sha256: str, loader: Loader) -> _Entry:
        data = await loader()
        self._stats["loads"] += 1
        try:
            entry: _Entry = await asyncio.to_thread(ParsedSourceMap.from_bytes, data)
            logger.debug(f"Parsed source map {sha256[:12]} ({entry.mapping_count} mappings)")
        except SourceMapError as e:
            logger.warning(f"Source map {sha256[:12]} failed to parse: {e}")
            entry = e
        self._store(sha256, entry)
        return entry

    def _load_done(self, sha256: str, task: "asyncio.Task[_Entry]") -> None:
        self._in_flight.pop(sha256, None)
        # Loader errors are not cached; every waiter may have gone already
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Loading source map {sha256[:12]} failed: {task.exception()!r}")

    def _store(self, sha256: str, entry: _Entry) -> None:
        self._entries[sha256] = entry
        self._entries.move_to_end(sha256)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self._stats["evictions"] += 1

    @staticmethod
    def _unwrap(entry: _Entry) -> ParsedSourceMap:
        if isinstance(entry, SourceMapError):
            raise entry
        return entry

    def __contains__(self, sha256: str) -> bool:
        return sha256 in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Return cache statistics."""
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
        return {
            **self._stats,
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "hit_rate_percent": round(hit_rate, 2),
        }
