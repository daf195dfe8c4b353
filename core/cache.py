"""
core/cache.py - Persistent answer cache with TTL expiry
=======================================================

Generated answers are cached by the normalized question text so repeated
questions are answered without calling the providers again.

- Entries live in memory and are mirrored to a JSON file on every change.
- Stale entries are evicted lazily, on the read that finds them.
- An unreadable cache file is discarded; the cache starts empty.
- Concurrent writes to the same key are last-writer-wins (no locking).
"""

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from config import CACHE_TTL_HOURS, CHAT_CACHE_PATH
from core.text import normalize_text
from rag.knowledge import write_json_atomic

logger = logging.getLogger(__name__)

MS_PER_HOUR = 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def cache_key(question: str) -> str:
    """Cache keys are always the normalized question, never the raw text."""
    return normalize_text(question)


@dataclass
class CacheEntry:
    """
    A cached answer.

    Attributes:
        key: Normalized question text
        answer: Final answer text as delivered to the caller
        sources: List of {"title", "url"} dicts
        timestamp: Write time in epoch milliseconds
    """
    key: str
    answer: str
    sources: list = field(default_factory=list)
    timestamp: int = 0

    def to_dict(self) -> dict:
        # The key is the map key in the persisted file
        return {"answer": self.answer, "sources": self.sources, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, key: str, data: dict) -> "CacheEntry":
        if not isinstance(data, dict):
            raise ValueError(f"cache entry {key!r} is not an object")
        answer = data.get("answer")
        timestamp = data.get("timestamp")
        if not isinstance(answer, str) or not isinstance(timestamp, (int, float)):
            raise ValueError(f"cache entry {key!r} is malformed")
        sources = data.get("sources")
        return cls(
            key=key,
            answer=answer,
            sources=sources if isinstance(sources, list) else [],
            timestamp=int(timestamp),
        )


class AnswerCache:
    """
    TTL cache of answers keyed by normalized question text.

    Usage:
        cache = AnswerCache.load(Path("cache/chat-cache.json"), ttl_hours=168)
        entry = cache.get("What is PCOS?")
        if entry is None:
            cache.set("What is PCOS?", answer, sources)
    """

    def __init__(
        self,
        path: Optional[Path] = CHAT_CACHE_PATH,
        ttl_hours: float = CACHE_TTL_HOURS,
        clock: Callable[[], int] = now_ms,
        entries: Optional[dict] = None,
    ):
        self.path = Path(path) if path is not None else None
        self.ttl_hours = ttl_hours
        self.ttl_ms = int(ttl_hours * MS_PER_HOUR)
        self.clock = clock
        self._entries: dict[str, CacheEntry] = dict(entries or {})

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, path: Optional[Path] = CHAT_CACHE_PATH,
             ttl_hours: float = CACHE_TTL_HOURS,
             clock: Callable[[], int] = now_ms) -> "AnswerCache":
        """
        Load a cache from disk.

        A missing file gives an empty cache. A corrupt file is discarded
        with a warning; it will be overwritten on the next write.
        """
        entries = {}
        if path is not None and Path(path).exists():
            try:
                raw = json.loads(Path(path).read_text(encoding="utf-8"))
                if not isinstance(raw, dict):
                    raise ValueError("cache file must contain an object")
                for key, data in raw.items():
                    entries[key] = CacheEntry.from_dict(key, data)
            except (OSError, ValueError) as e:
                logger.warning("Discarding unreadable chat cache %s: %s", path, e)
                entries = {}
        return cls(path=path, ttl_hours=ttl_hours, clock=clock, entries=entries)

    def save(self) -> None:
        """Write the whole cache to disk. Failures are logged, never raised."""
        if self.path is None:
            return
        snapshot = {key: entry.to_dict() for key, entry in dict(self._entries).items()}
        try:
            write_json_atomic(snapshot, self.path)
        except OSError as e:
            logger.warning("Failed to persist chat cache %s: %s", self.path, e)

    # -------------------------------------------------------------------------
    # Read / write
    # -------------------------------------------------------------------------

    def is_fresh(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.timestamp < self.ttl_ms

    def get(self, question: str) -> Optional[CacheEntry]:
        """
        Return the fresh cached entry for a question, or None.

        A stale entry is removed and the removal persisted before returning.
        """
        key = cache_key(question)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.is_fresh(entry):
            return entry

        self._entries.pop(key, None)
        self.save()
        logger.debug("Evicted stale cache entry %r", key)
        return None

    def set(self, question: str, answer: str, sources: list) -> CacheEntry:
        """Store (or overwrite) the answer for a question and persist immediately."""
        key = cache_key(question)
        entry = CacheEntry(
            key=key,
            answer=answer,
            sources=[dict(s) for s in sources],
            timestamp=self.clock(),
        )
        self._entries[key] = entry
        self.save()
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, question: str) -> bool:
        return cache_key(question) in self._entries
