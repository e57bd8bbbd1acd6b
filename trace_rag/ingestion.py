"""
Ingestion into the semantic index.

  KnowledgeIngestor           chunk (text, metadata) pairs and write them in one batch
  TelemetryIngestionService   Jaeger → narratives → dedup → KnowledgeIngestor
  DocumentIngestionService    docs/*.md → KnowledgeIngestor
"""

import logging
from pathlib import Path

from . import config
from .dedup import TraceDeduplicator
from .narrative import build_narrative
from .splitter import TokenTextSplitter
from .vector_store import Document, eq

log = logging.getLogger(__name__)


class KnowledgeIngestor:
    """
    Narratives are dense, low-redundancy structured text, so they get larger
    chunks than prose documentation.
    """

    def __init__(self, store, doc_splitter=None, trace_splitter=None):
        self.store = store
        self.doc_splitter = doc_splitter or TokenTextSplitter(
            config.DOC_CHUNK_TOKENS, config.DOC_CHUNK_OVERLAP,
        )
        self.trace_splitter = trace_splitter or TokenTextSplitter(
            config.TRACE_CHUNK_TOKENS, config.TRACE_CHUNK_OVERLAP,
        )

    def splitter_for(self, metadata: dict) -> TokenTextSplitter:
        if metadata.get("type") == "telemetry":
            return self.trace_splitter
        return self.doc_splitter

    def ingest(self, documents: list[tuple[str, dict]]) -> int:
        """Returns the number of source documents that produced at least one chunk."""
        chunks = []
        ingested = 0
        for text, metadata in documents:
            pieces = self.splitter_for(metadata).split(text or "")
            if not pieces:
                log.debug("Document produced no chunks: %s", metadata)
                continue
            ingested += 1
            for i, piece in enumerate(pieces):
                chunks.append(Document(
                    text=piece,
                    metadata={**metadata, "chunkIndex": i, "chunkCount": len(pieces)},
                ))

        if chunks:
            self.store.add(chunks)
        log.info("Ingested %d documents (%d chunks)", ingested, len(chunks))
        return ingested


class TelemetryIngestionService:
    def __init__(self, jaeger, ingestor: KnowledgeIngestor, dedup: TraceDeduplicator):
        self.jaeger = jaeger
        self.ingestor = ingestor
        self.dedup = dedup

    def ingest_traces(self, lookback: str, limit: int) -> int:
        """Fetch traces from Jaeger and index their narratives. Returns traces ingested."""
        log.info("Starting telemetry ingestion (lookback: %s, limit: %d)", lookback, limit)

        traces = self.jaeger.list_all_traces(lookback, limit)
        if not traces:
            log.warning("No traces found in Jaeger")
            return 0

        documents = []
        claimed = []
        skipped = 0
        for trace in traces:
            try:
                narrative = build_narrative(trace)
            except Exception as e:
                trace_id = trace.get("traceID", "?") if isinstance(trace, dict) else "?"
                log.error("Failed to convert trace %s to narrative: [%s] %s",
                          trace_id, type(e).__name__, e)
                continue
            if narrative is None:
                continue

            trace_id = narrative.trace_id
            if trace_id != "unknown":
                if not self.dedup.claim(trace_id):
                    skipped += 1
                    continue
                self.dedup.prepare_replacement(trace_id)
                claimed.append(trace_id)
            documents.append((narrative.text, narrative.metadata))

        if skipped:
            log.info("Skipped %d duplicate traces (already embedded)", skipped)
        if not documents:
            log.warning("No documents generated from traces")
            return 0

        log.info("Converted %d traces into narratives, starting embedding...", len(documents))
        try:
            count = self.ingestor.ingest(documents)
        except Exception:
            for trace_id in claimed:
                self.dedup.release(trace_id)
            raise
        log.info("Successfully ingested %d trace documents", count)
        return count


class DocumentIngestionService:
    def __init__(self, ingestor: KnowledgeIngestor, docs_dir: Path = config.DOCS_DIR):
        self.ingestor = ingestor
        self.docs_dir = Path(docs_dir)

    def load_documents(self) -> list[tuple[str, dict]]:
        if not self.docs_dir.is_dir():
            log.warning("Documentation directory %s does not exist", self.docs_dir)
            return []

        documents = []
        for path in sorted(self.docs_dir.glob("*.md")):
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                log.error("Failed to load document %s: %s", path.name, e)
                continue
            documents.append((text, {"source": path.name, "type": "documentation"}))
            log.info("Loaded document: %s", path.name)
        return documents

    def clear_existing_documents(self):
        self.ingestor.store.delete(eq("type", "documentation"))

    def ingest_documents(self) -> int:
        log.info("Starting document ingestion from %s", self.docs_dir)
        documents = self.load_documents()
        if not documents:
            log.warning("No documents found to ingest")
            return 0

        self.clear_existing_documents()
        count = self.ingestor.ingest(documents)
        log.info("Successfully ingested %d documents", count)
        return count
