import os
from pathlib import Path


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _names(name: str, default: str) -> list[str]:
    return [s.strip() for s in os.getenv(name, default).split(",") if s.strip()]


# Jaeger query API
JAEGER_API_URL = os.getenv("JAEGER_API_URL", "http://jaeger:16686")
JAEGER_TIMEOUT = float(os.getenv("JAEGER_TIMEOUT", "5.0"))
JAEGER_INTERNAL_SERVICES = _names("JAEGER_INTERNAL_SERVICES", "jaeger-query,jaeger-all-in-one")

# Retry tiers for Jaeger
JAEGER_CALL_ATTEMPTS = int(os.getenv("JAEGER_CALL_ATTEMPTS", "3"))      # first try + 2 retries
JAEGER_CALL_DELAY = float(os.getenv("JAEGER_CALL_DELAY", "1.0"))        # seconds between attempts
JAEGER_BATCH_ATTEMPTS = int(os.getenv("JAEGER_BATCH_ATTEMPTS", "3"))
JAEGER_BATCH_DELAY = float(os.getenv("JAEGER_BATCH_DELAY", "2.0"))
JAEGER_BATCH_BACKOFF = float(os.getenv("JAEGER_BATCH_BACKOFF", "2.0"))

# ClickHouse (semantic index)
CH_HOST = os.getenv("CH_HOST", "clickhouse")
CH_PORT = int(os.getenv("CH_PORT", "8123"))
CH_USER = os.getenv("CH_USER", "admin")
CH_PASSWORD = os.getenv("CH_PASSWORD", "clickhouse123")
CH_DATABASE = os.getenv("CH_DATABASE", "rag")
CH_TABLE = os.getenv("CH_TABLE", "knowledge_chunks")

# Embedding model
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2")

# LLM
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openrouter")                  # openrouter | anthropic
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
LLM_MODEL = os.getenv("LLM_MODEL", "anthropic/claude-sonnet-4")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "60.0"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "1024"))

# Circuit breaker around the LLM
BREAKER_WINDOW_SIZE = int(os.getenv("BREAKER_WINDOW_SIZE", "10"))
BREAKER_MINIMUM_CALLS = int(os.getenv("BREAKER_MINIMUM_CALLS", "5"))
BREAKER_FAILURE_RATE = float(os.getenv("BREAKER_FAILURE_RATE", "0.5"))
BREAKER_SLOW_CALL_SECONDS = float(os.getenv("BREAKER_SLOW_CALL_SECONDS", "30.0"))
BREAKER_SLOW_CALL_RATE = float(os.getenv("BREAKER_SLOW_CALL_RATE", "1.0"))
BREAKER_OPEN_SECONDS = float(os.getenv("BREAKER_OPEN_SECONDS", "30.0"))
BREAKER_HALF_OPEN_CALLS = int(os.getenv("BREAKER_HALF_OPEN_CALLS", "3"))

# Question answering
ASK_TIMEOUT = float(os.getenv("ASK_TIMEOUT", "90.0"))
ASK_WORKERS = int(os.getenv("ASK_WORKERS", "8"))
KNOWN_SERVICES = _names("KNOWN_SERVICES", "product-service,order-service,payment-service,rag-service")

# Chunking (tokens)
DOCS_DIR = Path(os.getenv("DOCS_DIR", "docs"))
DOC_CHUNK_TOKENS = int(os.getenv("DOC_CHUNK_TOKENS", "1000"))
DOC_CHUNK_OVERLAP = int(os.getenv("DOC_CHUNK_OVERLAP", "200"))
TRACE_CHUNK_TOKENS = int(os.getenv("TRACE_CHUNK_TOKENS", "1500"))
TRACE_CHUNK_OVERLAP = int(os.getenv("TRACE_CHUNK_OVERLAP", "150"))

# Startup ingestion
STARTUP_INGEST_DOCS = _flag("STARTUP_INGEST_DOCS", "true")
STARTUP_INGEST_TRACES = _flag("STARTUP_INGEST_TRACES", "true")
STARTUP_TRACES_DELAY = float(os.getenv("STARTUP_TRACES_DELAY", "5"))    # give Jaeger time to come up
STARTUP_TRACES_LOOKBACK = os.getenv("STARTUP_TRACES_LOOKBACK", "1h")
STARTUP_TRACES_LIMIT = int(os.getenv("STARTUP_TRACES_LIMIT", "50"))

# Scheduled trace polling
TRACE_POLLING_ENABLED = _flag("TRACE_POLLING_ENABLED", "true")
TRACE_POLLING_INTERVAL = float(os.getenv("TRACE_POLLING_INTERVAL", "300"))   # seconds
TRACE_POLLING_INITIAL_DELAY = float(os.getenv("TRACE_POLLING_INITIAL_DELAY", "60"))
TRACE_POLLING_LOOKBACK = os.getenv("TRACE_POLLING_LOOKBACK", "10m")
TRACE_POLLING_LIMIT = int(os.getenv("TRACE_POLLING_LIMIT", "20"))

# Manual trace ingestion defaults
INGEST_TRACES_LOOKBACK = os.getenv("INGEST_TRACES_LOOKBACK", "1h")
INGEST_TRACES_LIMIT = int(os.getenv("INGEST_TRACES_LIMIT", "20"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
