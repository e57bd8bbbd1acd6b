"""
Trace narrative builder: turns one raw Jaeger trace into a human-readable
story plus filterable metadata.

Each TRACE becomes one document, not each span. A lone span ("GET /products/1
took 15ms") carries no context; a trace tells where the time went and where
the error started, which is what retrieval needs.

Jaeger trace JSON:
  {
    "traceID": "abc123",
    "spans": [{spanID, operationName, processID, references, startTime,
               duration, tags: [{key, value}], logs: [{fields: [{key, value}]}]}],
    "processes": {"p1": {"serviceName": ..., "tags": [...]}}
  }
startTime is microseconds since epoch, duration is microseconds.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

SLOW_TRACE_MS = 500

INTERESTING_PREFIXES = (
    "http.", "db.", "net.", "rpc.",
    "product.", "order.", "payment.",
)
INTERESTING_KEYS = {
    "error", "error.message", "exception.message",
    "otel.status_code", "otel.status_description",
}
ERROR_MESSAGE_KEYS = ("error.message", "exception.message")
LOG_TEXT_KEYS = ("message", "event")


class MalformedTraceError(ValueError):
    """Trace structure cannot be interpreted (e.g. a span that is not an object)."""


@dataclass(frozen=True)
class Span:
    span_id: str
    parent_span_id: str
    service_name: str
    operation_name: str
    start_time: int           # µs since epoch
    duration: int             # µs
    has_error: bool = False
    error_message: str | None = None
    tags: dict[str, str] = field(default_factory=dict)
    logs: tuple[str, ...] = ()

    @property
    def end_time(self) -> int:
        return self.start_time + self.duration

    @property
    def duration_ms(self) -> int:
        return self.duration // 1000

    @property
    def is_root(self) -> bool:
        return not self.parent_span_id or set(self.parent_span_id) == {"0"}


@dataclass(frozen=True)
class TraceNarrative:
    trace_id: str
    root_service: str
    root_operation: str
    start_time: int
    duration_ms: int
    span_count: int
    has_errors: bool
    spans: tuple[Span, ...]
    text: str

    @property
    def metadata(self) -> dict:
        return {
            "source": "jaeger-trace",
            "traceId": self.trace_id,
            "rootService": self.root_service,
            "rootOperation": self.root_operation,
            "durationMs": self.duration_ms,
            "spanCount": self.span_count,
            "hasErrors": "true" if self.has_errors else "false",
            "type": "telemetry",
        }


# ── Parsing ──────────────────────────────────────────────────────

def _as_int(value) -> int:
    """Malformed numbers count as 0 rather than failing the whole trace."""
    if isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 0


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _key_values(entries) -> list[tuple[str, str]]:
    if not isinstance(entries, list):
        return []
    return [
        (_as_text(e.get("key")), _as_text(e.get("value")))
        for e in entries
        if isinstance(e, dict)
    ]


def is_interesting_tag(key: str) -> bool:
    return key in INTERESTING_KEYS or key.startswith(INTERESTING_PREFIXES)


def build_process_map(processes) -> dict[str, str]:
    """processID → serviceName."""
    if not isinstance(processes, dict):
        return {}
    return {
        pid: _as_text(proc["serviceName"])
        for pid, proc in processes.items()
        if isinstance(proc, dict) and proc.get("serviceName")
    }


def _parent_span_id(references) -> str:
    if not isinstance(references, list):
        return ""
    for ref in references:
        if isinstance(ref, dict) and ref.get("refType") == "CHILD_OF":
            return _as_text(ref.get("spanID"))
    return ""


def parse_span(raw: dict, process_map: dict[str, str]) -> Span:
    if not isinstance(raw, dict):
        raise MalformedTraceError(f"span is {type(raw).__name__}, expected an object")

    has_error = False
    error_message = None
    tags = {}
    for key, value in _key_values(raw.get("tags")):
        if key == "error" and value.lower() == "true":
            has_error = True
        if key == "otel.status_code" and value == "ERROR":
            has_error = True
        if is_interesting_tag(key):
            tags[key] = value
        if key in ERROR_MESSAGE_KEYS:
            error_message = value

    logs = []
    for entry in raw.get("logs") or []:
        if not isinstance(entry, dict):
            continue
        text = ""
        for key, value in _key_values(entry.get("fields")):
            if key in LOG_TEXT_KEYS:
                text += value
            elif key in ERROR_MESSAGE_KEYS:
                has_error = True
                error_message = value
                text += f"ERROR: {value}"
        if text:
            logs.append(text)

    return Span(
        span_id=_as_text(raw.get("spanID")),
        parent_span_id=_parent_span_id(raw.get("references")),
        service_name=process_map.get(_as_text(raw.get("processID")), "unknown"),
        operation_name=_as_text(raw.get("operationName")) or "unknown",
        start_time=_as_int(raw.get("startTime")),
        duration=max(_as_int(raw.get("duration")), 0),
        has_error=has_error,
        error_message=error_message,
        tags=tags,
        logs=tuple(logs),
    )


def find_root(spans: list[Span]) -> Span:
    """First span without a parent; the earliest span when none qualifies."""
    return next((s for s in spans if s.is_root), spans[0])


# ── Rendering ────────────────────────────────────────────────────

def format_time(micros: int) -> str:
    try:
        ts = datetime.fromtimestamp(micros / 1_000_000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return f"{micros}µs since epoch"
    return ts.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3] + " UTC"


def _distinct(values) -> list[str]:
    return list(dict.fromkeys(values))


def render(trace_id: str, spans: list[Span], root: Span, start: int, duration_ms: int, has_errors: bool) -> str:
    lines = [
        "=== Distributed Trace ===",
        f"Trace ID: {trace_id}",
        f"Time: {format_time(start)}",
        f"Root Operation: {root.operation_name} ({root.service_name})",
        f"Total Duration: {duration_ms}ms",
        f"Span Count: {len(spans)}",
        f"Has Errors: {'YES' if has_errors else 'no'}",
        f"Services Involved: {', '.join(_distinct(s.service_name for s in spans))}",
        "",
        "--- Span Breakdown ---",
        "",
    ]

    for span in spans:
        marker = "  *** ERROR ***" if span.has_error else ""
        lines.append(f"[{span.service_name}] {span.operation_name}  ({span.duration_ms}ms){marker}")
        for key, value in span.tags.items():
            lines.append(f"  {key}: {value}")
        if span.has_error and span.error_message:
            lines.append(f"  ERROR: {span.error_message}")
        for entry in span.logs:
            lines.append(f"  event: {entry}")
        lines.append("")

    if duration_ms > SLOW_TRACE_MS:
        slowest = max(spans, key=lambda s: s.duration)
        lines.append("--- Performance Note ---")
        lines.append(
            f"This trace is SLOW ({duration_ms}ms). "
            f"Slowest span: [{slowest.service_name}] {slowest.operation_name} at {slowest.duration_ms}ms."
        )

    if has_errors:
        lines.append("--- Error Summary ---")
        for span in spans:
            if span.has_error:
                lines.append(
                    f"ERROR in [{span.service_name}] {span.operation_name}: "
                    f"{span.error_message or 'unknown error'}"
                )

    return "\n".join(lines) + "\n"


def build_narrative(trace: dict) -> TraceNarrative | None:
    """Narrative for one raw trace, or None when the trace has no spans."""
    if not isinstance(trace, dict):
        raise MalformedTraceError(f"trace is {type(trace).__name__}, expected an object")

    raw_spans = trace.get("spans")
    if raw_spans is None:
        return None
    if not isinstance(raw_spans, list):
        raise MalformedTraceError(f"'spans' is {type(raw_spans).__name__}, expected a list")
    if not raw_spans:
        return None

    trace_id = _as_text(trace.get("traceID")) or "unknown"
    process_map = build_process_map(trace.get("processes"))

    # sorted() is stable: spans starting at the same instant keep input order
    spans = sorted((parse_span(s, process_map) for s in raw_spans), key=lambda s: s.start_time)

    start = min(s.start_time for s in spans)
    end = max(s.end_time for s in spans)
    duration_ms = max(end - start, 0) // 1000
    has_errors = any(s.has_error for s in spans)
    root = find_root(spans)

    return TraceNarrative(
        trace_id=trace_id,
        root_service=root.service_name,
        root_operation=root.operation_name,
        start_time=start,
        duration_ms=duration_ms,
        span_count=len(spans),
        has_errors=has_errors,
        spans=tuple(spans),
        text=render(trace_id, spans, root, start, duration_ms, has_errors),
    )
