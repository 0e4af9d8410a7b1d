from types import SimpleNamespace

from starlette.requests import Request

from app.core.rate_limit import get_client_ip, ip_rate_limit_key, rate_limit_exceeded_handler, user_rate_limit_key


def make_request(headers=None, client=("10.0.0.1", 1234)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/v1/credits/balance",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
        "query_string": b"",
    }
    return Request(scope)


def test_client_ip_header_priority():
    assert get_client_ip(make_request({"cf-connecting-ip": "1.1.1.1", "x-forwarded-for": "2.2.2.2"})) == "1.1.1.1"
    assert get_client_ip(make_request({"x-forwarded-for": "2.2.2.2, 3.3.3.3"})) == "2.2.2.2"
    assert get_client_ip(make_request({"x-real-ip": "4.4.4.4"})) == "4.4.4.4"
    assert get_client_ip(make_request()) == "10.0.0.1"
    assert get_client_ip(make_request(client=None)) == "unknown"


def test_rate_limit_keys():
    assert ip_rate_limit_key(make_request()) == "ip:10.0.0.1"
    user_key = user_rate_limit_key(make_request({"authorization": "Bearer abc"}))
    assert user_key.startswith("user:")
    assert len(user_key) == len("user:") + 32
    assert user_key == user_rate_limit_key(make_request({"authorization": "Bearer abc"}))
    assert user_rate_limit_key(make_request()) == "ip:10.0.0.1"


def test_rate_limit_response():
    limit = SimpleNamespace(limit=SimpleNamespace(get_expiry=lambda: 10))
    exc = SimpleNamespace(limit=limit)
    response = rate_limit_exceeded_handler(make_request(), exc)
    assert response.status_code == 429
    assert response.headers["retry-after"] == "10"
    assert b'"code":"RATE_LIMITED"' in response.body
    assert b'"retryAfter":10' in response.body


def test_health_endpoints_skip_auth(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/ready").json() == {"status": "ready"}
    response = client.get("/")
    assert response.headers["x-frame-options"] == "DENY"
