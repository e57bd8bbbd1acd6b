"""
Question answering: classify → retrieve → build prompt → generate.

The retrieval call (embed query + vector search) is not breaker-protected: a
failure is caught once and answered with a fixed message; the next request
tries again. Only the LLM call goes through the circuit breaker.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from . import config
from .answer import ResilientAnswerGenerator
from .classifier import ClassifiedQuery, classify
from .retrieval import configure
from .vector_store import Document

log = logging.getLogger(__name__)

KNOWLEDGE_BASE_UNAVAILABLE = (
    "The knowledge base is temporarily unavailable. "
    "Please try again in a few moments."
)
INSUFFICIENT_CONTEXT = (
    "Insufficient context to answer that question. "
    "Try ingesting documents first via POST /ingest or wait for auto-ingestion."
)
ASSISTANT_UNAVAILABLE = (
    "The assistant is temporarily unavailable. "
    "Please try again in a few moments."
)

PROMPT_TEMPLATE = """\
You are an incident triage assistant for a distributed microservices system ({services}).

QUERY TYPE: {intent}
{focus}

INSTRUCTIONS:
- Answer ONLY based on the provided context below.
- When referencing traces, ALWAYS cite the trace ID (e.g., "Trace abc123 shows...").
- When referencing documentation, cite the source file name.
- For error analysis: identify root cause, affected services, and error propagation path.
- For performance analysis: identify the slowest spans and bottleneck services with durations.
- If the context is insufficient, say so explicitly rather than speculating.
- Be precise and concise. Use bullet points for multi-part answers.

CONTEXT:
{context}

QUESTION: {question}

ANSWER:"""


def annotate(doc: Document) -> str:
    meta = doc.metadata
    doc_type = meta.get("type")
    if doc_type == "telemetry":
        prefix = f"[TRACE|service={meta.get('rootService')}|traceId={meta.get('traceId')}]\n"
    elif doc_type == "documentation":
        prefix = f"[DOC|source={meta.get('source')}]\n"
    else:
        prefix = ""
    return prefix + doc.text


def build_context(docs: list[Document]) -> str:
    return "\n\n---\n\n".join(annotate(d) for d in docs)


def build_prompt(cq: ClassifiedQuery, context: str, question: str) -> str:
    return PROMPT_TEMPLATE.format(
        services=", ".join(config.KNOWN_SERVICES),
        intent=cq.intent.value,
        focus=f"SERVICE FOCUS: {cq.service_name}" if cq.service_name else "",
        context=context,
        question=question,
    )


class QueryOrchestrator:
    def __init__(
        self,
        store,
        generator: ResilientAnswerGenerator,
        timeout: float = config.ASK_TIMEOUT,
        max_workers: int = config.ASK_WORKERS,
    ):
        self.store = store
        self.generator = generator
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ask")

    def close(self):
        self._pool.shutdown(wait=False, cancel_futures=True)

    def ask(self, question: str) -> str:
        """Answer a question within `timeout` seconds; never raises."""
        future = self._pool.submit(self.answer, question)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            log.error("Answering timed out after %.1fs: %r", self.timeout, question)
            return ASSISTANT_UNAVAILABLE
        except Exception:
            log.exception("Unexpected failure while answering %r", question)
            return ASSISTANT_UNAVAILABLE

    def answer(self, question: str) -> str:
        log.info("Received question: %s", question)

        cq = classify(question)
        spec = configure(cq)
        log.info("Query classified as %s (service: %s)", cq.intent.value, cq.service_name)

        try:
            docs = self.store.similarity_search(
                question,
                top_k=spec.top_k,
                min_score=spec.min_score,
                filter_expression=spec.filter_expression,
            )
        except Exception as e:
            log.error("Failed to retrieve context (embedding/ClickHouse may be down): [%s] %s",
                      type(e).__name__, e)
            return KNOWLEDGE_BASE_UNAVAILABLE

        log.info("Retrieved %d relevant chunks", len(docs))
        for doc in docs:
            meta = doc.metadata
            ident = meta.get("traceId") if meta.get("type") == "telemetry" else meta.get("source")
            log.debug("  Chunk: type=%s, id=%s, score=%s", meta.get("type"), ident, doc.score)

        if not docs:
            return INSUFFICIENT_CONTEXT

        context = build_context(docs)
        prompt = build_prompt(cq, context, question)
        return self.generator.generate(prompt, context)
