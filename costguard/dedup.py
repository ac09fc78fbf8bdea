"""Short-window, per-identifier request deduplication.

Unlike the response cache, which any caller can hit by content alone, a
deduplication record is keyed by ``(identifier, payload)`` and lives for
seconds. It stops a single client from re-triggering an expensive call it has
just been answered for.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

from cachetools import Cache, TTLCache  # type: ignore[import-untyped]

from costguard.metrics import DEDUP_HITS
from utils.errors import ConfigurationError
from utils.hashing import hash_params

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeduplicationRecord:
    identifier: str
    request_hash: str
    result: Any
    timestamp: float


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool
    cached_result: Any = None


_NOT_DUPLICATE = DuplicateCheck(is_duplicate=False)


class RequestDeduplicator:
    """Remember the last result per ``(identifier, payload)`` for a short window."""

    def __init__(
        self,
        window_seconds: float = 30.0,
        *,
        max_records: int = 10_000,
        enabled: bool = True,
    ) -> None:
        if window_seconds <= 0:
            raise ConfigurationError("window_seconds must be positive")
        if max_records <= 0:
            raise ConfigurationError("max_records must be positive")
        self._window_seconds = window_seconds
        self._enabled = enabled
        # Resolve the clock per call so tests can patch time.monotonic.
        self._records: TTLCache = TTLCache(
            maxsize=max_records, ttl=window_seconds, timer=lambda: time.monotonic()
        )
        self._lock = threading.Lock()
        self._duplicates = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def check_duplicate(self, identifier: str, payload: Any) -> DuplicateCheck:
        """Return the recorded result if ``payload`` was answered within the window."""
        if not self._enabled:
            return _NOT_DUPLICATE
        request_hash = hash_params(payload)
        now = time.monotonic()
        with self._lock:
            record: DeduplicationRecord | None = self._records.get((identifier, request_hash))
            if record is None or now - record.timestamp >= self._window_seconds:
                return _NOT_DUPLICATE
            self._duplicates += 1
        DEDUP_HITS.inc()
        logger.debug("dedup: duplicate request from %s (%s)", identifier, request_hash)
        return DuplicateCheck(is_duplicate=True, cached_result=record.result)

    def record_result(self, identifier: str, payload: Any, result: Any) -> None:
        """Remember ``result`` as the answer to ``payload`` for ``identifier``."""
        if not self._enabled:
            return
        request_hash = hash_params(payload)
        record = DeduplicationRecord(
            identifier=identifier,
            request_hash=request_hash,
            result=result,
            timestamp=time.monotonic(),
        )
        with self._lock:
            self._records[(identifier, request_hash)] = record

    def purge_expired(self) -> int:
        with self._lock:
            # Cache.__len__ counts raw slots; TTLCache.__len__ would expire first.
            before = Cache.__len__(self._records)
            self._records.expire()
            return before - Cache.__len__(self._records)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "records": len(self._records),
                "duplicates": self._duplicates,
                "window_seconds": self._window_seconds,
                "enabled": self._enabled,
            }
