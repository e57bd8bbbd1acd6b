"""Retrieval parameters per query intent."""

from dataclasses import dataclass

from .classifier import ClassifiedQuery, QueryIntent
from .vector_store import eq


@dataclass(frozen=True)
class RetrievalSpec:
    top_k: int
    min_score: float
    filter_expression: str | None = None


# intent → (top_k, min_score). Documentation is dense prose and gets the
# stricter threshold; narratives score lower against natural questions.
RETRIEVAL_TABLE = {
    QueryIntent.ERROR_ANALYSIS: (7, 0.40),
    QueryIntent.PERFORMANCE_ANALYSIS: (7, 0.45),
    QueryIntent.SERVICE_SPECIFIC: (6, 0.45),
    QueryIntent.ARCHITECTURE_DOCS: (5, 0.50),
    QueryIntent.GENERAL: (5, 0.50),
}

FILTER_TABLE = {
    QueryIntent.ERROR_ANALYSIS: f"{eq('type', 'telemetry')} && {eq('hasErrors', 'true')}",
    QueryIntent.PERFORMANCE_ANALYSIS: eq("type", "telemetry"),
    QueryIntent.SERVICE_SPECIFIC: eq("type", "telemetry"),
    QueryIntent.ARCHITECTURE_DOCS: eq("type", "documentation"),
    QueryIntent.GENERAL: None,
}


def configure(cq: ClassifiedQuery) -> RetrievalSpec:
    top_k, min_score = RETRIEVAL_TABLE[cq.intent]
    filter_expression = FILTER_TABLE[cq.intent]

    if cq.service_name and cq.intent is not QueryIntent.ARCHITECTURE_DOCS:
        service_term = eq("rootService", cq.service_name)
        filter_expression = f"{filter_expression} && {service_term}" if filter_expression else service_term

    return RetrievalSpec(top_k=top_k, min_score=min_score, filter_expression=filter_expression)
