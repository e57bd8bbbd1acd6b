import logging

from trace_rag.answer import ResilientAnswerGenerator, fallback_answer
from trace_rag.circuit_breaker import CircuitBreaker, CircuitState

CONTEXT = "[TRACE|service=order-service|traceId=abc]\nTrace ID: abc\nHas Errors: YES"


class FakeLLM:
    def __init__(self, answer="summary", error=None):
        self.answer = answer
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.answer


def breaker():
    return CircuitBreaker("llm-chat", window_size=4, minimum_calls=2, open_duration=60)


def test_healthy_llm_answer_is_returned():
    llm = FakeLLM("Trace abc shows a payment timeout")
    gen = ResilientAnswerGenerator(llm, breaker())

    assert gen.generate("prompt", CONTEXT) == "Trace abc shows a payment timeout"
    assert llm.prompts == ["prompt"]


def test_failure_returns_context_verbatim(caplog):
    gen = ResilientAnswerGenerator(FakeLLM(error=TimeoutError("read timed out")), breaker())

    with caplog.at_level(logging.ERROR, logger="trace_rag.answer"):
        answer = gen.generate("prompt", CONTEXT)

    assert answer == fallback_answer(CONTEXT)
    assert CONTEXT in answer
    assert answer.startswith("The AI assistant is temporarily unavailable")
    assert any(r.exc_info for r in caplog.records)


def test_open_breaker_skips_llm_and_logs_without_trace(caplog):
    llm = FakeLLM(error=ConnectionError("refused"))
    gen = ResilientAnswerGenerator(llm, breaker())
    gen.generate("p1", CONTEXT)
    gen.generate("p2", CONTEXT)
    assert gen.breaker.state is CircuitState.OPEN

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="trace_rag.answer"):
        answer = gen.generate("p3", CONTEXT)

    assert answer == fallback_answer(CONTEXT)
    assert llm.prompts == ["p1", "p2"]
    warnings = [r for r in caplog.records if r.name == "trace_rag.answer" and r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "OPEN" in warnings[0].getMessage()
    assert warnings[0].exc_info is None


def test_empty_llm_output_counts_as_failure():
    gen = ResilientAnswerGenerator(FakeLLM(error=ValueError("LLM returned an empty response")), breaker())
    assert gen.generate("prompt", CONTEXT) == fallback_answer(CONTEXT)
