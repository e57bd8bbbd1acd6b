"""
Rule-based query intent classification. No LLM call: fast and deterministic.

Priority order: ERROR > PERFORMANCE > SERVICE_SPECIFIC > ARCHITECTURE > GENERAL.
Error and performance questions are operationally urgent and win even when the
question also names a service or is phrased as an architecture question.
"""

import re
from dataclasses import dataclass
from enum import Enum

from . import config


class QueryIntent(str, Enum):
    ERROR_ANALYSIS = "ERROR_ANALYSIS"
    PERFORMANCE_ANALYSIS = "PERFORMANCE_ANALYSIS"
    SERVICE_SPECIFIC = "SERVICE_SPECIFIC"
    ARCHITECTURE_DOCS = "ARCHITECTURE_DOCS"
    GENERAL = "GENERAL"


@dataclass(frozen=True)
class ClassifiedQuery:
    intent: QueryIntent
    service_name: str | None = None


ERROR_KEYWORDS = (
    "error", "fail", "failed", "exception", "500", "4xx", "5xx",
    "crash", "broken", "bug", "issue", "wrong", "problem", "fault",
)

PERF_KEYWORDS = (
    "slow", "latency", "duration", "timeout", "performance",
    "p99", "p95", "bottleneck", "fast", "speed", "response time",
)

ARCH_KEYWORDS = (
    "architecture", "design", "how does", "how do", "what is",
    "explain", "documentation", "pattern", "strategy", "structure",
    "why did we", "why do we", "tracing work", "decision",
)


def _service_pattern(services) -> re.Pattern | None:
    names = sorted({s.lower() for s in services if s}, key=len, reverse=True)
    if not names:
        return None
    return re.compile("|".join(re.escape(n) for n in names))


_SERVICE_PATTERN = _service_pattern(config.KNOWN_SERVICES)


def _contains_any(text: str, keywords) -> bool:
    return any(k in text for k in keywords)


def extract_service_name(lower: str, pattern: re.Pattern | None = _SERVICE_PATTERN) -> str | None:
    """Earliest known service name mentioned in the (lower-cased) question."""
    if pattern is None:
        return None
    m = pattern.search(lower)
    return m.group(0) if m else None


def classify(question: str, services=None) -> ClassifiedQuery:
    lower = question.lower()
    pattern = _SERVICE_PATTERN if services is None else _service_pattern(services)
    service = extract_service_name(lower, pattern)

    if _contains_any(lower, ERROR_KEYWORDS):
        return ClassifiedQuery(QueryIntent.ERROR_ANALYSIS, service)
    if _contains_any(lower, PERF_KEYWORDS):
        return ClassifiedQuery(QueryIntent.PERFORMANCE_ANALYSIS, service)
    is_architecture = _contains_any(lower, ARCH_KEYWORDS)
    if service and not is_architecture:
        return ClassifiedQuery(QueryIntent.SERVICE_SPECIFIC, service)
    if is_architecture:
        return ClassifiedQuery(QueryIntent.ARCHITECTURE_DOCS, service)
    return ClassifiedQuery(QueryIntent.GENERAL, service)
