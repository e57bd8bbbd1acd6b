"""
Trace deduplication for ingestion.

Two layers:
  in-memory  ── trace IDs embedded during this process lifetime are skipped
                outright (overlapping poll windows)
  index      ── a trace ID not yet seen by this process is always preceded by
                a delete-by-traceId, since a previous process may already have
                indexed it; this keeps ingestion idempotent across restarts
                without persistent dedup state
"""

import logging
import threading

from .vector_store import eq

log = logging.getLogger(__name__)


class TraceDeduplicator:
    def __init__(self, store):
        self.store = store
        self._known: set[str] = set()
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._known)

    def should_skip(self, trace_id: str) -> bool:
        with self._lock:
            return trace_id in self._known

    def mark_embedded(self, trace_id: str):
        with self._lock:
            self._known.add(trace_id)

    def claim(self, trace_id: str) -> bool:
        """Atomically mark a trace as taken. False if it was already known."""
        with self._lock:
            if trace_id in self._known:
                return False
            self._known.add(trace_id)
            return True

    def release(self, trace_id: str):
        """Undo a claim whose write never made it into the index."""
        with self._lock:
            self._known.discard(trace_id)

    def prepare_replacement(self, trace_id: str):
        """Best-effort removal of previously indexed chunks for this trace."""
        try:
            self.store.delete(eq("traceId", trace_id))
        except Exception as e:
            # Nothing to delete is the common case on first ingestion
            log.debug("Dedup removal for trace %s (may not exist yet): %s", trace_id, e)
