import pytest
import stripe

from app.modules.sync.service import SubscriptionSyncService, is_stripe_not_found_error
from tests.conftest import CUSTOMER_ID, HOBBY_PRICE, PRO_PRICE, USER_ID

CRON_HEADERS = {"x-cron-secret": "cron_test_secret"}
PERIOD_END = 1738368000
PERIOD_END_ISO = "2025-02-01T00:00:00+00:00"


def stripe_subscription(subscription_id, price_id=HOBBY_PRICE, status="active"):
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": CUSTOMER_ID,
        "status": status,
        "cancel_at_period_end": False,
        "items": {"data": [{
            "id": f"si_{subscription_id}",
            "price": {"id": price_id},
            "current_period_start": 1735689600,
            "current_period_end": PERIOD_END,
        }]},
    }


def not_found(subscription_id):
    return stripe.InvalidRequestError(f"No such subscription: '{subscription_id}'", param="id", http_status=404)


@pytest.fixture
def stripe_subscriptions(monkeypatch):
    """Subscriptions as Stripe reports them; ids missing here raise Stripe's 404."""
    known = {}

    def retrieve(subscription_id):
        if subscription_id not in known:
            raise not_found(subscription_id)
        return known[subscription_id]

    monkeypatch.setattr(stripe.Subscription, "retrieve", retrieve)
    return known


def db_subscription(subscription_id, period_end, price_id=HOBBY_PRICE, status="active"):
    return {
        "id": subscription_id,
        "user_id": USER_ID,
        "status": status,
        "price_id": price_id,
        "current_period_end": period_end,
    }


def row(fake_db, subscription_id):
    return next(r for r in fake_db.tables["subscriptions"] if r["id"] == subscription_id)


@pytest.mark.parametrize("headers", [{}, {"x-cron-secret": "wrong"}])
def test_sync_requires_cron_secret(client, headers):
    for path in ("/api/v1/sync/check-expirations", "/api/v1/sync/reconcile"):
        response = client.post(path, headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"


def test_check_expirations(client, fake_db, stripe_subscriptions):
    fake_db.tables["subscriptions"] = [
        db_subscription("sub_canceled", "2025-01-01T00:00:00+00:00"),
        db_subscription("sub_renewed", "2025-01-01T00:00:00+00:00"),
        db_subscription("sub_gone", "2025-01-01T00:00:00+00:00"),
        db_subscription("sub_current", "2999-01-01T00:00:00+00:00"),
    ]
    stripe_subscriptions["sub_canceled"] = stripe_subscription("sub_canceled", status="canceled")
    stripe_subscriptions["sub_renewed"] = stripe_subscription("sub_renewed")

    response = client.post("/api/v1/sync/check-expirations", headers=CRON_HEADERS)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["processed"] == 3
    assert data["fixed"] == 3

    assert row(fake_db, "sub_canceled")["status"] == "canceled"
    assert row(fake_db, "sub_renewed")["current_period_end"] == PERIOD_END_ISO
    assert row(fake_db, "sub_gone")["status"] == "canceled"
    assert row(fake_db, "sub_current")["current_period_end"] == "2999-01-01T00:00:00+00:00"
    assert fake_db.profile()["subscription_status"] == "canceled"

    [run] = fake_db.tables["sync_runs"]
    assert run["job_type"] == "expiration_check"
    assert run["status"] == "completed"
    assert run["records_fixed"] == 3


def test_reconcile_fixes_price_drift(client, fake_db, stripe_subscriptions):
    fake_db.tables["subscriptions"] = [
        db_subscription("sub_1", PERIOD_END_ISO),
        db_subscription("sub_2", PERIOD_END_ISO),
    ]
    stripe_subscriptions["sub_1"] = stripe_subscription("sub_1", price_id=PRO_PRICE)
    stripe_subscriptions["sub_2"] = stripe_subscription("sub_2")

    response = client.post("/api/v1/sync/reconcile", headers=CRON_HEADERS)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["processed"] == 2
    assert data["discrepancies"] == 1
    assert data["fixed"] == 1
    assert data["has_more"] is False
    [issue] = data["issues"]
    assert issue["subscription_id"] == "sub_1"
    assert issue["action"] == "auto-fixed"
    assert issue["issue"].startswith("Price mismatch")

    assert row(fake_db, "sub_1")["price_id"] == PRO_PRICE
    assert fake_db.profile()["subscription_tier"] == "pro"
    [run] = fake_db.tables["sync_runs"]
    assert run["metadata"]["issues"][0]["subscription_id"] == "sub_1"


def test_reconcile_marks_missing_subscription_canceled(fake_db, stripe_subscriptions):
    fake_db.tables["subscriptions"] = [db_subscription("sub_gone", PERIOD_END_ISO, status="past_due")]
    result = SubscriptionSyncService(fake_db, delay_seconds=0).reconcile()
    assert result.fixed == 1
    assert result.issues[0].action == "marked-canceled"
    assert row(fake_db, "sub_gone")["status"] == "canceled"


def test_reconcile_processes_one_batch(fake_db, stripe_subscriptions):
    fake_db.tables["subscriptions"] = [db_subscription(f"sub_{i}", PERIOD_END_ISO) for i in range(3)]
    for i in range(3):
        stripe_subscriptions[f"sub_{i}"] = stripe_subscription(f"sub_{i}")

    result = SubscriptionSyncService(fake_db, delay_seconds=0).reconcile(batch_size=2)
    assert result.processed == 2
    assert result.total_subscriptions == 3
    assert result.has_more is True
    assert result.discrepancies == 0


def test_not_found_detection():
    assert is_stripe_not_found_error(not_found("sub_1"))
    assert not is_stripe_not_found_error(stripe.InvalidRequestError("Invalid request", param="id", http_status=400))
    assert not is_stripe_not_found_error(ValueError("No such subscription"))
