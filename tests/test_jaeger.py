import httpx

from trace_rag.jaeger import RETRYABLE_ERRORS, JaegerClient, TraceBackendUnavailable
from trace_rag.retry import RetryPolicy
from tests.factories import simple_trace


class Recorder:
    def __init__(self):
        self.requests = []
        self.sleeps = []
        self.batch_sleeps = []


def make_client(handler, rec: Recorder) -> JaegerClient:
    def record(request):
        rec.requests.append(request)
        return handler(request)

    return JaegerClient(
        base_url="http://jaeger:16686",
        internal_services=["jaeger-query", "jaeger-all-in-one"],
        call_policy=RetryPolicy(max_attempts=3, delay=1.0, retry_on=RETRYABLE_ERRORS, sleep=rec.sleeps.append),
        batch_policy=RetryPolicy(
            max_attempts=3, delay=2.0, backoff=2.0,
            retry_on=(TraceBackendUnavailable,), sleep=rec.batch_sleeps.append,
        ),
        transport=httpx.MockTransport(record),
    )


def test_list_services():
    rec = Recorder()
    client = make_client(lambda r: httpx.Response(200, json={"data": ["order-service", "jaeger-query"]}), rec)

    assert client.list_services() == ["order-service", "jaeger-query"]
    assert rec.requests[0].url.path == "/api/services"
    assert rec.sleeps == []


def test_list_traces_passes_query_parameters():
    rec = Recorder()
    client = make_client(lambda r: httpx.Response(200, json={"data": [simple_trace("t1")]}), rec)

    traces = client.list_traces("order-service", "30m", 5)

    assert [t["traceID"] for t in traces] == ["t1"]
    params = rec.requests[0].url.params
    assert params["service"] == "order-service"
    assert params["lookback"] == "30m"
    assert params["limit"] == "5"


def test_transient_failure_is_retried_then_succeeds():
    rec = Recorder()
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"data": ["order-service"]})

    client = make_client(handler, rec)

    assert client.list_services() == ["order-service"]
    assert len(rec.requests) == 3
    assert rec.sleeps == [1.0, 1.0]


def test_exhausted_retries_return_empty_without_final_sleep():
    rec = Recorder()

    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler, rec)

    assert client.list_traces("order-service", "1h", 20) == []
    assert len(rec.requests) == 3
    # sleeps only between attempts, never after the last one
    assert rec.sleeps == [1.0, 1.0]


def test_server_errors_are_retried():
    rec = Recorder()
    responses = iter([httpx.Response(503), httpx.Response(200, json={"data": ["a"]})])
    client = make_client(lambda r: next(responses), rec)

    assert client.list_services() == ["a"]
    assert len(rec.requests) == 2


def test_client_errors_fail_fast():
    rec = Recorder()
    client = make_client(lambda r: httpx.Response(404, json={"errors": ["not found"]}), rec)

    assert client.list_services() == []
    assert len(rec.requests) == 1
    assert rec.sleeps == []


def test_parse_errors_fail_fast():
    rec = Recorder()
    client = make_client(lambda r: httpx.Response(200, content=b"<html>not json</html>"), rec)

    assert client.list_traces("order-service", "1h", 20) == []
    assert len(rec.requests) == 1


def test_unexpected_payload_shape_fails_fast():
    rec = Recorder()
    client = make_client(lambda r: httpx.Response(200, json={"data": {"oops": 1}}), rec)

    assert client.list_services() == []
    assert len(rec.requests) == 1


def test_list_all_traces_skips_internal_services():
    rec = Recorder()

    def handler(request):
        if request.url.path == "/api/services":
            return httpx.Response(200, json={"data": ["order-service", "jaeger-query", "payment-service"]})
        service = request.url.params["service"]
        return httpx.Response(200, json={"data": [simple_trace(f"{service}-1")]})

    client = make_client(handler, rec)

    traces = client.list_all_traces("10m", 20)

    assert [t["traceID"] for t in traces] == ["order-service-1", "payment-service-1"]
    fetched = [r.url.params.get("service") for r in rec.requests if r.url.path == "/api/traces"]
    assert fetched == ["order-service", "payment-service"]


def test_list_all_traces_falls_back_to_empty_when_backend_stays_down():
    rec = Recorder()
    client = make_client(lambda r: httpx.Response(200, json={"data": []}), rec)

    assert client.list_all_traces("1h", 20) == []
    service_calls = [r for r in rec.requests if r.url.path == "/api/services"]
    assert len(service_calls) == 3
    assert rec.batch_sleeps == [2.0, 4.0]


def test_batch_retry_recovers_when_backend_comes_back():
    rec = Recorder()
    service_answers = iter([[], ["order-service"]])

    def handler(request):
        if request.url.path == "/api/services":
            return httpx.Response(200, json={"data": next(service_answers)})
        return httpx.Response(200, json={"data": [simple_trace("t1")]})

    client = make_client(handler, rec)

    traces = client.list_all_traces("1h", 20)

    assert [t["traceID"] for t in traces] == ["t1"]
    assert rec.batch_sleeps == [2.0]


def test_unreachable_backend_exhausts_both_tiers():
    rec = Recorder()

    def handler(request):
        raise httpx.ConnectError("no route to host", request=request)

    client = make_client(handler, rec)

    assert client.list_all_traces("1h", 20) == []
    # 3 batch attempts x 3 per-call attempts
    assert len(rec.requests) == 9
    assert rec.sleeps == [1.0, 1.0] * 3
    assert rec.batch_sleeps == [2.0, 4.0]


def garbage_gzip():
    return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")


def test_undecodable_body_fails_fast():
    rec = Recorder()
    client = make_client(lambda r: garbage_gzip(), rec)

    assert client.list_traces("order-service", "1h", 20) == []
    assert len(rec.requests) == 1
    assert rec.sleeps == []


def test_one_broken_service_does_not_lose_the_others():
    rec = Recorder()

    def handler(request):
        if request.url.path == "/api/services":
            return httpx.Response(200, json={"data": ["order-service", "payment-service"]})
        if request.url.params["service"] == "order-service":
            return garbage_gzip()
        return httpx.Response(200, json={"data": [simple_trace("pay-1")]})

    client = make_client(handler, rec)

    assert [t["traceID"] for t in client.list_all_traces("1h", 20)] == ["pay-1"]
    assert rec.batch_sleeps == []


def test_redirect_loop_fails_fast():
    rec = Recorder()
    client = make_client(lambda r: httpx.Response(302, headers={"Location": "/api/services"}), rec)
    client._http.follow_redirects = True

    assert client.list_services() == []
    assert rec.sleeps == []
