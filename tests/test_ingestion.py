import pytest

from trace_rag.dedup import TraceDeduplicator
from trace_rag.ingestion import DocumentIngestionService, KnowledgeIngestor, TelemetryIngestionService
from trace_rag.splitter import TokenTextSplitter
from trace_rag.vector_store import Document
from tests.factories import FakeStore, WordEncoding, make_span, make_trace, simple_trace


class FakeJaeger:
    def __init__(self, traces=()):
        self.traces = list(traces)
        self.calls = []

    def list_all_traces(self, lookback, limit):
        self.calls.append((lookback, limit))
        return list(self.traces)


def make_ingestor(store, size=5000):
    enc = WordEncoding()
    return KnowledgeIngestor(
        store,
        doc_splitter=TokenTextSplitter(size, 0, encoding=enc),
        trace_splitter=TokenTextSplitter(size, 0, encoding=enc),
    )


def make_service(traces=(), store=None, dedup=None):
    store = store or FakeStore()
    jaeger = FakeJaeger(traces)
    service = TelemetryIngestionService(jaeger, make_ingestor(store), dedup or TraceDeduplicator(store))
    return service, store, jaeger


# ── KnowledgeIngestor ───────────────────────────────────────────

def test_ingestor_adds_chunk_metadata_in_one_batch():
    store = FakeStore()
    ingestor = make_ingestor(store, size=3)

    count = ingestor.ingest([
        ("a b c d e", {"source": "x.md", "type": "documentation"}),
        ("   ", {"source": "blank.md", "type": "documentation"}),
        ("f g", {"source": "y.md", "type": "documentation"}),
    ])

    assert count == 2
    assert store.add_calls == 1
    assert [(c.text, c.metadata["chunkIndex"], c.metadata["chunkCount"]) for c in store.chunks] == [
        ("a b c", 0, 2), ("d e", 1, 2), ("f g", 0, 1),
    ]
    assert store.chunks[0].metadata["source"] == "x.md"


def test_ingestor_picks_splitter_by_type():
    ingestor = make_ingestor(FakeStore())
    assert ingestor.splitter_for({"type": "telemetry"}) is ingestor.trace_splitter
    assert ingestor.splitter_for({"type": "documentation"}) is ingestor.doc_splitter
    assert ingestor.splitter_for({}) is ingestor.doc_splitter


def test_ingestor_skips_write_when_nothing_to_add():
    store = FakeStore()
    assert make_ingestor(store).ingest([("", {"type": "documentation"})]) == 0
    assert store.add_calls == 0


# ── Telemetry ───────────────────────────────────────────────────

def test_traces_become_telemetry_chunks():
    service, store, jaeger = make_service([simple_trace("t1"), simple_trace("t2")])

    assert service.ingest_traces("10m", 20) == 2

    assert jaeger.calls == [("10m", 20)]
    assert {c.metadata["traceId"] for c in store.chunks} == {"t1", "t2"}
    assert all(c.metadata["type"] == "telemetry" for c in store.chunks)
    assert "=== Distributed Trace ===" in store.chunks[0].text


def test_malformed_trace_does_not_abort_batch():
    traces = [simple_trace(f"t{i}") for i in range(9)]
    traces.insert(4, make_trace("bad", ["not-a-span"]))
    service, store, _ = make_service(traces)

    assert service.ingest_traces("1h", 20) == 9
    assert store.chunks_for("bad") == []


def test_empty_traces_are_skipped():
    service, store, _ = make_service([make_trace("empty", []), simple_trace("t1")])
    assert service.ingest_traces("1h", 20) == 1


def test_no_traces_means_zero_and_no_writes():
    service, store, _ = make_service([])
    assert service.ingest_traces("1h", 20) == 0
    assert store.add_calls == 0


def test_overlapping_polls_embed_a_trace_once():
    service, store, _ = make_service([simple_trace("t1")])

    assert service.ingest_traces("10m", 20) == 1
    assert service.ingest_traces("10m", 20) == 0

    assert len(store.chunks_for("t1")) == 1
    assert store.deleted == ["traceId == 't1'"]
    assert store.add_calls == 1


def test_duplicate_within_one_batch_is_embedded_once():
    service, store, _ = make_service([simple_trace("t1"), simple_trace("t1")])

    assert service.ingest_traces("10m", 20) == 1
    assert len(store.chunks_for("t1")) == 1


def test_restart_replaces_previously_indexed_trace():
    store = FakeStore()
    store.chunks = [Document("stale narrative", {"traceId": "t1", "type": "telemetry"})]

    # fresh process: empty in-memory dedup state
    service, store, _ = make_service([simple_trace("t1")], store=store)
    assert service.ingest_traces("1h", 20) == 1

    chunks = store.chunks_for("t1")
    assert len(chunks) == 1
    assert chunks[0].text != "stale narrative"


def test_failed_write_releases_claims():
    store = FakeStore()
    store.add_error = ConnectionError("clickhouse down")
    dedup = TraceDeduplicator(store)
    service, _, _ = make_service([simple_trace("t1")], store=store, dedup=dedup)

    with pytest.raises(ConnectionError):
        service.ingest_traces("1h", 20)
    assert not dedup.should_skip("t1")

    store.add_error = None
    assert service.ingest_traces("1h", 20) == 1
    assert len(store.chunks_for("t1")) == 1


def test_unknown_trace_id_bypasses_dedup():
    trace = {"spans": [make_span("a")], "processes": {"p1": {"serviceName": "order-service"}}}
    service, store, _ = make_service([trace])

    assert service.ingest_traces("1h", 20) == 1
    assert store.deleted == []
    assert store.chunks[0].metadata["traceId"] == "unknown"


# ── Documentation ───────────────────────────────────────────────

def test_document_ingestion_replaces_documentation(tmp_path):
    (tmp_path / "b.md").write_text("# Tracing\nspans are sampled", encoding="utf-8")
    (tmp_path / "a.md").write_text("# Orders\norder flow", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    store = FakeStore()
    store.chunks = [
        Document("old doc", {"source": "gone.md", "type": "documentation"}),
        Document("trace", {"traceId": "t1", "type": "telemetry"}),
    ]
    service = DocumentIngestionService(make_ingestor(store), docs_dir=tmp_path)

    assert service.ingest_documents() == 2

    assert store.deleted == ["type == 'documentation'"]
    sources = [c.metadata.get("source") for c in store.chunks if c.metadata["type"] == "documentation"]
    assert sources == ["a.md", "b.md"]
    assert any(c.metadata["type"] == "telemetry" for c in store.chunks)


def test_missing_docs_dir_ingests_nothing(tmp_path):
    store = FakeStore()
    service = DocumentIngestionService(make_ingestor(store), docs_dir=tmp_path / "nope")

    assert service.ingest_documents() == 0
    assert store.deleted == []
