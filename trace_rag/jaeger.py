"""
Jaeger query API client: pulls traces for every traced service within a
lookback window.

Two independent retry tiers:
  per call  ── list_services / list_traces retry transport failures a few
               times with a fixed delay, then give up with an empty list
  batch     ── list_all_traces treats an empty service list as "Jaeger is
               down" and retries the whole batch with backoff, then falls
               back to an empty list (the next scheduled poll tries again)

Endpoints:
  GET /api/services                                  → {"data": [names]}
  GET /api/traces?service=X&lookback=1h&limit=20     → {"data": [traces]}
"""

import logging

import httpx

from . import config
from .retry import RetryPolicy

log = logging.getLogger(__name__)


class TraceBackendUnavailable(RuntimeError):
    """Jaeger returned no services; the API is most likely down."""


class TransientStatusError(Exception):
    """HTTP 429/5xx from Jaeger, worth retrying."""

    def __init__(self, status_code: int, path: str):
        super().__init__(f"HTTP {status_code} from {path}")
        self.status_code = status_code


# Transport-level failures and overloaded-server responses are retried;
# anything else (4xx, undecodable or unparseable body, redirect loops) fails fast.
RETRYABLE_ERRORS = (httpx.TransportError, TransientStatusError)


class JaegerClient:
    def __init__(
        self,
        base_url: str = config.JAEGER_API_URL,
        timeout: float = config.JAEGER_TIMEOUT,
        internal_services: list[str] | None = None,
        call_policy: RetryPolicy | None = None,
        batch_policy: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self._http = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)
        self.internal_services = set(
            config.JAEGER_INTERNAL_SERVICES if internal_services is None else internal_services
        )
        self.call_policy = call_policy or RetryPolicy(
            max_attempts=config.JAEGER_CALL_ATTEMPTS,
            delay=config.JAEGER_CALL_DELAY,
            retry_on=RETRYABLE_ERRORS,
        )
        self.batch_policy = batch_policy or RetryPolicy(
            max_attempts=config.JAEGER_BATCH_ATTEMPTS,
            delay=config.JAEGER_BATCH_DELAY,
            backoff=config.JAEGER_BATCH_BACKOFF,
            retry_on=(TraceBackendUnavailable,),
        )

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── HTTP ─────────────────────────────────────────────────────

    def _get_data(self, path: str, params: dict | None = None) -> list:
        resp = self._http.get(path, params=params)
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientStatusError(resp.status_code, path)
        resp.raise_for_status()

        body = resp.json()
        if not isinstance(body, dict):
            raise ValueError(f"unexpected response body from {path}: {type(body).__name__}")
        data = body.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise ValueError(f"'data' from {path} is {type(data).__name__}, expected a list")
        return data

    def _call(self, name: str, path: str, params: dict | None = None) -> list:
        """One per-call-tier request. Never raises; failures become []."""
        try:
            return self.call_policy.call(
                name, self._get_data, path, params, fallback=lambda e: [],
            )
        except (httpx.HTTPError, ValueError) as e:
            log.error("%s failed without retry: [%s] %s", name, type(e).__name__, e)
            return []

    # ── Public API ───────────────────────────────────────────────

    def list_services(self) -> list[str]:
        data = self._call("Jaeger /api/services", "/api/services")
        services = [str(s) for s in data if s]
        log.info("Found %d services in Jaeger", len(services))
        return services

    def list_traces(self, service: str, lookback: str, limit: int) -> list[dict]:
        data = self._call(
            f"Jaeger /api/traces for '{service}'",
            "/api/traces",
            {"service": service, "lookback": lookback, "limit": limit},
        )
        traces = [t for t in data if isinstance(t, dict)]
        if len(traces) != len(data):
            log.warning("Dropped %d non-object traces for '%s'", len(data) - len(traces), service)
        log.info("Fetched %d traces for service '%s' (lookback: %s)", len(traces), service, lookback)
        return traces

    def _fetch_all_traces(self, lookback: str, limit: int) -> list[dict]:
        services = self.list_services()
        if not services:
            raise TraceBackendUnavailable("Jaeger returned no services; API may be down")

        all_traces = []
        for service in services:
            if service in self.internal_services:
                continue
            all_traces.extend(self.list_traces(service, lookback, limit))

        log.info("Fetched %d total traces across %d services", len(all_traces), len(services))
        return all_traces

    def list_all_traces(self, lookback: str, limit: int) -> list[dict]:
        """Traces for every non-internal service; [] if Jaeger stays unreachable."""
        return self.batch_policy.call(
            "Jaeger trace batch",
            self._fetch_all_traces,
            lookback,
            limit,
            fallback=self._all_traces_fallback,
        )

    def _all_traces_fallback(self, error: BaseException) -> list[dict]:
        log.error(
            "Jaeger API unavailable after all retries: [%s] %s. "
            "Trace ingestion skipped, will retry on next scheduled poll.",
            type(error).__name__, error,
        )
        return []
