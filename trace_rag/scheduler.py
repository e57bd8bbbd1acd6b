"""
Background ingestion scheduler.

Architecture:
  startup thread ── docs once, then traces after a short delay (Jaeger may
                    still be starting); never blocks app readiness
  polling thread ── trace tick every `interval` seconds until stop()

Each ingestion kind ("docs", "traces") is single-flight: a tick or manual
trigger that finds the previous run of the same kind still going is skipped,
never run concurrently.
"""

import logging
import threading

from . import config

log = logging.getLogger(__name__)


class IngestionScheduler:
    def __init__(
        self,
        telemetry,
        documents,
        polling_enabled: bool = config.TRACE_POLLING_ENABLED,
        interval: float = config.TRACE_POLLING_INTERVAL,
        initial_delay: float = config.TRACE_POLLING_INITIAL_DELAY,
        polling_lookback: str = config.TRACE_POLLING_LOOKBACK,
        polling_limit: int = config.TRACE_POLLING_LIMIT,
        startup_docs: bool = config.STARTUP_INGEST_DOCS,
        startup_traces: bool = config.STARTUP_INGEST_TRACES,
        startup_traces_delay: float = config.STARTUP_TRACES_DELAY,
        startup_lookback: str = config.STARTUP_TRACES_LOOKBACK,
        startup_limit: int = config.STARTUP_TRACES_LIMIT,
    ):
        self.telemetry = telemetry
        self.documents = documents
        self.polling_enabled = polling_enabled
        self.interval = interval
        self.initial_delay = initial_delay
        self.polling_lookback = polling_lookback
        self.polling_limit = polling_limit
        self.startup_docs = startup_docs
        self.startup_traces = startup_traces
        self.startup_traces_delay = startup_traces_delay
        self.startup_lookback = startup_lookback
        self.startup_limit = startup_limit

        self._locks = {"docs": threading.Lock(), "traces": threading.Lock()}
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    # ── Single-flight runs ───────────────────────────────────────

    def is_running(self, kind: str) -> bool:
        return self._locks[kind].locked()

    def _run_exclusive(self, kind: str, fn, *args) -> int | None:
        lock = self._locks[kind]
        if not lock.acquire(blocking=False):
            log.warning("%s ingestion already in progress, skipping", kind)
            return None
        try:
            return fn(*args)
        finally:
            lock.release()

    def run_docs(self) -> int | None:
        """Ingest documentation; None if a docs ingestion is already running."""
        return self._run_exclusive("docs", self.documents.ingest_documents)

    def run_traces(self, lookback: str, limit: int) -> int | None:
        """Ingest traces; None if a trace ingestion is already running."""
        return self._run_exclusive("traces", self.telemetry.ingest_traces, lookback, limit)

    # ── Background loops ─────────────────────────────────────────

    def _startup(self):
        if self.startup_docs:
            try:
                log.info("Auto-ingesting project documentation on startup...")
                count = self.run_docs()
                log.info("Startup: ingested %s documents", count)
            except Exception as e:
                log.warning("Startup doc ingestion failed (non-fatal): %s", e)

        if self.startup_traces and not self._stop.wait(self.startup_traces_delay):
            try:
                log.info("Auto-ingesting traces from Jaeger (lookback: %s, limit: %d)...",
                         self.startup_lookback, self.startup_limit)
                count = self.run_traces(self.startup_lookback, self.startup_limit)
                log.info("Startup: ingested %s traces", count)
            except Exception as e:
                log.warning("Startup trace ingestion failed (non-fatal): %s. "
                            "Jaeger may not be running. Use POST /ingest/traces to retry.", e)

    def tick(self) -> int | None:
        """One scheduled trace poll. Failures are logged, never raised."""
        try:
            count = self.run_traces(self.polling_lookback, self.polling_limit)
        except Exception as e:
            log.error("Scheduled trace poll failed: [%s] %s", type(e).__name__, e)
            return None
        if count:
            log.info("Scheduled trace poll: ingested %d new traces (lookback: %s)",
                     count, self.polling_lookback)
        return count

    def _poll_loop(self):
        if self._stop.wait(self.initial_delay):
            return
        while not self._stop.is_set():
            self.tick()
            if self._stop.wait(self.interval):
                return

    def start(self):
        if self._threads:
            return
        self._stop.clear()
        targets = [("ingest-startup", self._startup)]
        if self.polling_enabled:
            targets.append(("ingest-poll", self._poll_loop))
        else:
            log.info("Scheduled trace polling disabled")

        for name, target in targets:
            thread = threading.Thread(target=target, name=name, daemon=True)
            thread.start()
            self._threads.append(thread)
        log.info("Ingestion scheduler started (poll every %.0fs, lookback %s)",
                 self.interval, self.polling_lookback)

    def stop(self, timeout: float | None = 10.0):
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        log.info("Ingestion scheduler stopped")
