from app.core.dependencies import get_current_user_id
from app.main import app
from tests.conftest import USER_ID


def test_authorize_charges_credits(client, fake_db, auth_headers):
    response = client.post(
        "/api/v1/processing/authorize",
        json={"image_count": 2, "job_id": "job-1"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["job_id"] == "job-1"
    assert data["model_id"] == "real-esrgan"
    assert data["credits_per_image"] == 1
    assert data["credits_charged"] == 2
    assert data["remaining_credits"] == 118
    assert data["hourly_usage"] == 2
    assert data["hourly_limit"] == 40

    consume = fake_db.calls("consume_credits_v2")
    assert consume[0]["amount"] == 2
    assert consume[0]["ref_id"] == "job-1"
    assert fake_db.profile()["subscription_credits_balance"] == 98


def test_authorize_generates_job_id(client, auth_headers):
    response = client.post("/api/v1/processing/authorize", json={}, headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["data"]["job_id"]


def test_insufficient_credits(client, fake_db, auth_headers):
    fake_db.profile().update({"subscription_credits_balance": 0, "purchased_credits_balance": 1})
    response = client.post(
        "/api/v1/processing/authorize",
        json={"image_count": 2},
        headers=auth_headers,
    )
    assert response.status_code == 402
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INSUFFICIENT_CREDITS"


def test_batch_size_limit(client, auth_headers):
    response = client.post(
        "/api/v1/processing/authorize",
        json={"image_count": 11},
        headers=auth_headers,
    )
    assert response.status_code == 429
    error = response.json()["error"]
    assert error["code"] == "BATCH_LIMIT_EXCEEDED"
    assert error["details"] == {"requested": 11, "limit": 10}


def test_inactive_subscription_gets_free_limits(client, fake_db, auth_headers):
    fake_db.profile()["subscription_status"] = "canceled"
    response = client.post(
        "/api/v1/processing/authorize",
        json={"image_count": 2},
        headers=auth_headers,
    )
    assert response.status_code == 429

    limits = client.get("/api/v1/processing/limits", headers=auth_headers).json()["data"]
    assert limits["tier"] == "free"
    assert limits["batch_limit"] == 1
    assert limits["hourly_limit"] == 5


def test_hourly_limit_reached(client, auth_headers):
    for _ in range(4):
        assert client.post(
            "/api/v1/processing/authorize", json={"image_count": 10}, headers=auth_headers
        ).status_code == 201
    response = client.post("/api/v1/processing/authorize", json={"image_count": 1}, headers=auth_headers)
    assert response.status_code == 429
    assert response.json()["error"]["details"]["current"] == 40
    assert "retry-after" in response.headers


def test_limits_reflect_usage(client, auth_headers):
    client.post("/api/v1/processing/authorize", json={"image_count": 3}, headers=auth_headers)
    data = client.get("/api/v1/processing/limits", headers=auth_headers).json()["data"]
    assert data["tier"] == "hobby"
    assert data["hourly_used"] == 3
    assert data["hourly_remaining"] == 37


WORKER_HEADERS = {"x-internal-secret": "internal_test_secret"}


def refund(client, job_id, headers=WORKER_HEADERS, user_id=USER_ID):
    return client.post(f"/api/v1/processing/{job_id}/refund", json={"user_id": user_id}, headers=headers)


def test_refund_once(client, fake_db, auth_headers):
    client.post(
        "/api/v1/processing/authorize",
        json={"image_count": 2, "mode": "enhance", "job_id": "job-9"},
        headers=auth_headers,
    )
    response = refund(client, "job-9")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["credits_refunded"] == 4
    assert data["new_balance"] == 120
    assert fake_db.calls("refund_credits") == [{"target_user_id": USER_ID, "amount": 4, "job_id": "job-9"}]

    for _ in range(2):
        again = refund(client, "job-9")
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "INVALID_REQUEST"
    assert len(fake_db.calls("refund_credits")) == 1
    assert fake_db.profile()["purchased_credits_balance"] == 24


def test_refund_is_logged_as_purchase_row(client, fake_db, auth_headers):
    client.post("/api/v1/processing/authorize", json={"job_id": "job-3"}, headers=auth_headers)
    refund(client, "job-3")
    rows = [t for t in fake_db.tables["credit_transactions"] if t["reference_id"] == "job-3"]
    assert sorted(t["type"] for t in rows) == ["purchase", "usage"]


def test_refund_requires_worker_secret(client, fake_db, auth_headers):
    client.post("/api/v1/processing/authorize", json={"job_id": "job-7"}, headers=auth_headers)

    missing = client.post("/api/v1/processing/job-7/refund", json={"user_id": USER_ID}, headers=auth_headers)
    assert missing.status_code == 401
    assert missing.json()["error"]["code"] == "UNAUTHORIZED"

    wrong = refund(client, "job-7", headers={"x-internal-secret": "guess"})
    assert wrong.status_code == 401
    assert fake_db.calls("refund_credits") == []


def test_refund_unknown_job(client):
    response = refund(client, "nope")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_validation_errors_use_envelope(client, auth_headers):
    response = client.post(
        "/api/v1/processing/authorize",
        json={"image_count": 0, "scale": 3},
        headers=auth_headers,
    )
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    fields = {e["field"] for e in error["details"]["errors"]}
    assert "body.image_count" in fields
    assert "body.scale" in fields


def test_missing_token_is_unauthorized(client):
    app.dependency_overrides.pop(get_current_user_id)
    response = client.get("/api/v1/credits/balance")
    assert response.status_code == 401
    assert response.json()["error"] == {"code": "UNAUTHORIZED", "message": "Missing authorization header"}


def test_balance_and_estimate(client, auth_headers):
    balance = client.get("/api/v1/credits/balance", headers=auth_headers).json()["data"]
    assert balance == {
        "subscription_credits": 100,
        "purchased_credits": 20,
        "total_credits": 120,
        "low_credits": False,
    }

    estimate = client.post(
        "/api/v1/credits/estimate",
        json={"mode": "enhance", "scale": 4, "enhance_faces": True},
        headers=auth_headers,
    ).json()["data"]
    assert estimate["model_to_be_used"] == "gfpgan"
    assert estimate["breakdown"]["total_cost"] == 6
    assert estimate["can_afford"] is True


def test_transactions_newest_first(client, auth_headers):
    client.post("/api/v1/processing/authorize", json={"job_id": "first"}, headers=auth_headers)
    client.post("/api/v1/processing/authorize", json={"job_id": "second"}, headers=auth_headers)
    data = client.get("/api/v1/credits/transactions?limit=1", headers=auth_headers).json()["data"]
    assert len(data) == 1
    assert data[0]["reference_id"] == "second"
    assert data[0]["type"] == "usage"


def test_me_reports_effective_tier(client, auth_headers):
    data = client.get("/api/v1/auth/me", headers=auth_headers).json()
    assert data["id"] == USER_ID
    assert data["effective_tier"] == "hobby"
    assert data["total_credits"] == 120
