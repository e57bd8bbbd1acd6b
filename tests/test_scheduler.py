import threading

from trace_rag.scheduler import IngestionScheduler


class FakeTelemetry:
    def __init__(self, result=3, error=None, gate=None):
        self.result = result
        self.error = error
        self.gate = gate
        self.started = threading.Event()
        self.calls = []

    def ingest_traces(self, lookback, limit):
        self.calls.append((lookback, limit))
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.error:
            raise self.error
        return self.result


class FakeDocuments:
    def __init__(self, result=2, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    def ingest_documents(self):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


def make_scheduler(telemetry=None, documents=None, **kw):
    opts = dict(
        polling_enabled=False, interval=0.01, initial_delay=0.0,
        polling_lookback="10m", polling_limit=20,
        startup_docs=False, startup_traces=False, startup_traces_delay=0.0,
        startup_lookback="1h", startup_limit=50,
    )
    opts.update(kw)
    return IngestionScheduler(telemetry or FakeTelemetry(), documents or FakeDocuments(), **opts)


def test_manual_runs_return_counts():
    telemetry, documents = FakeTelemetry(result=4), FakeDocuments(result=7)
    scheduler = make_scheduler(telemetry, documents)

    assert scheduler.run_traces("2h", 10) == 4
    assert scheduler.run_docs() == 7
    assert telemetry.calls == [("2h", 10)]


def test_overlapping_trace_runs_are_skipped():
    gate = threading.Event()
    telemetry = FakeTelemetry(gate=gate)
    scheduler = make_scheduler(telemetry)
    results = []

    worker = threading.Thread(target=lambda: results.append(scheduler.run_traces("1h", 20)))
    worker.start()
    assert telemetry.started.wait(5)

    assert scheduler.is_running("traces")
    assert scheduler.run_traces("1h", 20) is None
    assert scheduler.tick() is None
    # a different kind is not blocked
    assert scheduler.run_docs() == 2

    gate.set()
    worker.join(5)
    assert results == [3]
    assert len(telemetry.calls) == 1
    assert not scheduler.is_running("traces")


def test_tick_swallows_failures():
    scheduler = make_scheduler(FakeTelemetry(error=ConnectionError("jaeger down")))
    assert scheduler.tick() is None
    assert not scheduler.is_running("traces")


def test_tick_uses_polling_window():
    telemetry = FakeTelemetry()
    scheduler = make_scheduler(telemetry, polling_lookback="10m", polling_limit=20)

    assert scheduler.tick() == 3
    assert telemetry.calls == [("10m", 20)]


def test_startup_ingests_docs_then_traces():
    telemetry, documents = FakeTelemetry(), FakeDocuments()
    scheduler = make_scheduler(telemetry, documents, startup_docs=True, startup_traces=True)

    scheduler.start()
    assert telemetry.started.wait(5)
    scheduler.stop()

    assert documents.calls == 1
    assert telemetry.calls[0] == ("1h", 50)


def test_startup_failures_are_not_fatal():
    telemetry = FakeTelemetry()
    scheduler = make_scheduler(telemetry, FakeDocuments(error=OSError("docs missing")),
                               startup_docs=True, startup_traces=True)

    scheduler.start()
    assert telemetry.started.wait(5)
    scheduler.stop()


def test_polling_loop_runs_until_stopped():
    telemetry = FakeTelemetry()
    scheduler = make_scheduler(telemetry, polling_enabled=True)

    scheduler.start()
    assert telemetry.started.wait(5)
    scheduler.stop()

    count = len(telemetry.calls)
    assert count >= 1
    assert all(call == ("10m", 20) for call in telemetry.calls)
    threading.Event().wait(0.05)
    assert len(telemetry.calls) == count


def test_stop_interrupts_startup_delay():
    telemetry = FakeTelemetry()
    scheduler = make_scheduler(telemetry, startup_traces=True, startup_traces_delay=60)

    scheduler.start()
    scheduler.stop(timeout=5)

    assert telemetry.calls == []
