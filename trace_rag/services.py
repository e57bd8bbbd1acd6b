"""Process-wide component wiring (lazy singletons)."""

import threading

from .answer import ResilientAnswerGenerator
from .circuit_breaker import CircuitBreaker
from .dedup import TraceDeduplicator
from .ingestion import DocumentIngestionService, KnowledgeIngestor, TelemetryIngestionService
from .jaeger import JaegerClient
from .llm import get_llm
from .query import QueryOrchestrator
from .scheduler import IngestionScheduler
from .vector_store import VectorStore

_lock = threading.RLock()
_instances: dict = {}


def _get(name: str, factory):
    with _lock:
        if name not in _instances:
            _instances[name] = factory()
        return _instances[name]


def get_store() -> VectorStore:
    return _get("store", VectorStore)


def get_ingestor() -> KnowledgeIngestor:
    return _get("ingestor", lambda: KnowledgeIngestor(get_store()))


def get_telemetry_ingestion() -> TelemetryIngestionService:
    return _get("telemetry", lambda: TelemetryIngestionService(
        JaegerClient(), get_ingestor(), TraceDeduplicator(get_store()),
    ))


def get_document_ingestion() -> DocumentIngestionService:
    return _get("documents", lambda: DocumentIngestionService(get_ingestor()))


def get_orchestrator() -> QueryOrchestrator:
    return _get("orchestrator", lambda: QueryOrchestrator(
        get_store(), ResilientAnswerGenerator(get_llm(), CircuitBreaker("llm-chat")),
    ))


def get_scheduler() -> IngestionScheduler:
    return _get("scheduler", lambda: IngestionScheduler(
        get_telemetry_ingestion(), get_document_ingestion(),
    ))


def shutdown():
    with _lock:
        scheduler = _instances.pop("scheduler", None)
        if scheduler is not None:
            scheduler.stop()
        orchestrator = _instances.pop("orchestrator", None)
        if orchestrator is not None:
            orchestrator.close()
        telemetry = _instances.pop("telemetry", None)
        if telemetry is not None:
            telemetry.jaeger.close()
        _instances.clear()
