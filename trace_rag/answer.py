"""
LLM answer generation behind a circuit breaker.

Degradation:
  level 0  everything works       → LLM summary
  level 1  LLM down/slow/rejected → the raw retrieved context, verbatim

The user still gets the relevant traces and docs, just without the summary.
"""

import logging

from .circuit_breaker import CircuitBreaker, CircuitOpenError

log = logging.getLogger(__name__)

FALLBACK_TEMPLATE = """\
The AI assistant is temporarily unavailable, but I found relevant context from the knowledge base:

{context}

Please try again shortly for a summarized answer."""


def fallback_answer(context: str) -> str:
    return FALLBACK_TEMPLATE.format(context=context)


class ResilientAnswerGenerator:
    def __init__(self, llm, breaker: CircuitBreaker | None = None):
        self.llm = llm
        self.breaker = breaker or CircuitBreaker("llm-chat")

    def generate(self, prompt: str, raw_context: str) -> str:
        try:
            log.info("Calling LLM (circuit breaker: %s, state: %s)...",
                     self.breaker.name, self.breaker.state.value)
            answer = self.breaker.call(self.llm.generate, prompt)
        except CircuitOpenError:
            # Expected while the LLM is known to be down; no stack trace
            log.warning("Circuit breaker OPEN for %s, rejecting call instantly", self.breaker.name)
            return fallback_answer(raw_context)
        except Exception as e:
            log.error("LLM call failed [%s]: %s", type(e).__name__, e, exc_info=True)
            return fallback_answer(raw_context)

        log.info("LLM responded successfully")
        return answer
