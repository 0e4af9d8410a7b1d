import copy
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["SUPABASE_URL"] = "http://localhost:54321"
os.environ["CRON_SECRET"] = "cron_test_secret"
os.environ["INTERNAL_API_SECRET"] = "internal_test_secret"
os.environ["SYNC_STRIPE_DELAY_SECONDS"] = "0"

from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import get_current_user_id
from app.database.supabase_client import get_service_supabase, get_supabase
from app.main import app
from app.modules.limits.service import batch_limit_service

USER_ID = "11111111-1111-1111-1111-111111111111"
USER_EMAIL = "user@example.com"
CUSTOMER_ID = "cus_test123"

HOBBY_PRICE = "price_1SZmVyALMLhQocpf0H7n5ls8"
PRO_PRICE = "price_1SZmVzALMLhQocpfPyRX2W8D"
BUSINESS_PRICE = "price_1SZmVzALMLhQocpfqPk9spg4"
STARTER_PRICE = "price_1SbAAQALMLhQocpfStarter09"
MEDIUM_PACK_PRICE = "price_1SbAASALMLhQocpf7nw3wRj7"


class FakeAPIError(Exception):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class FakeResult:
    def __init__(self, data: Any):
        self.data = data


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table_name = table
        self.op = "select"
        self.payload: Any = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.order_by: Optional[tuple] = None
        self.limit_count: Optional[int] = None
        self.offset = 0

    def select(self, columns: str = "*"):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.op, self.payload = "update", payload
        return self

    def upsert(self, payload, on_conflict: str = "id"):
        self.op, self.payload = "upsert", payload
        return self

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def lt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) < value)
        return self

    def in_(self, column, values):
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, count: int):
        self.limit_count = count
        return self

    def range(self, start: int, end: int):
        self.offset = start
        self.limit_count = end - start + 1
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        rows = self.db.tables.setdefault(self.table_name, [])
        return [row for row in rows if all(f(row) for f in self.filters)]

    def execute(self) -> FakeResult:
        rows = self.db.tables.setdefault(self.table_name, [])
        if self.op == "select":
            matched = self._matching()
            if self.order_by:
                column, desc = self.order_by
                matched = sorted(matched, key=lambda r: r.get(column) or "", reverse=desc)
            matched = matched[self.offset:]
            if self.limit_count is not None:
                matched = matched[:self.limit_count]
            return FakeResult(copy.deepcopy(matched))

        if self.op == "insert":
            new_rows = self.payload if isinstance(self.payload, list) else [self.payload]
            unique = self.db.unique_columns.get(self.table_name)
            for row in new_rows:
                if unique and any(r.get(unique) == row.get(unique) for r in rows):
                    raise FakeAPIError(
                        f'duplicate key value violates unique constraint "{self.table_name}_{unique}_key"',
                        code="23505",
                    )
                rows.append(copy.deepcopy(row))
            return FakeResult(copy.deepcopy(new_rows))

        if self.op == "update":
            matched = self._matching()
            for row in matched:
                row.update(self.payload)
            return FakeResult(copy.deepcopy(matched))

        if self.op == "upsert":
            existing = next((r for r in rows if r.get("id") == self.payload.get("id")), None)
            if existing:
                existing.update(self.payload)
            else:
                rows.append(copy.deepcopy(self.payload))
            return FakeResult([copy.deepcopy(self.payload)])

        raise AssertionError(f"Unsupported operation {self.op}")


class FakeRPC:
    def __init__(self, db: "FakeSupabase", name: str, params: Dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    def execute(self) -> FakeResult:
        self.db.rpc_calls.append((self.name, self.params))
        handler = self.db.rpc_handlers.get(self.name)
        if handler is None:
            raise AssertionError(f"No fake handler for rpc {self.name}")
        return FakeResult(handler(self.params))


class FakeSupabase:
    """In-memory stand-in for the supabase-py Client, with ledger-aware credit RPCs."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.unique_columns = {"webhook_events": "event_id"}
        self.rpc_calls: List[tuple] = []
        self.rpc_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "consume_credits_v2": self._consume,
            "refund_credits": self._refund,
            "add_subscription_credits": self._add_subscription,
            "add_purchased_credits": self._add_purchased,
            "expire_subscription_credits": self._expire,
            "clawback_credits_from_transaction": self._clawback,
        }

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRPC:
        return FakeRPC(self, name, params)

    def calls(self, name: str) -> List[Dict[str, Any]]:
        return [params for rpc_name, params in self.rpc_calls if rpc_name == name]

    def profile(self, user_id: str = USER_ID) -> Dict[str, Any]:
        return next(p for p in self.tables["profiles"] if p["id"] == user_id)

    def _log(self, user_id, amount, tx_type, ref_id, description=None):
        transactions = self.tables.setdefault("credit_transactions", [])
        transactions.append({
            "id": f"tx_{len(transactions) + 1}",
            "user_id": user_id,
            "amount": amount,
            "type": tx_type,
            "reference_id": ref_id,
            "description": description,
            "created_at": f"2025-01-01T00:00:{len(transactions):02d}+00:00",
        })

    def _consume(self, params):
        profile = self.profile(params["target_user_id"])
        amount = params["amount"]
        subscription = profile["subscription_credits_balance"]
        purchased = profile["purchased_credits_balance"]
        if subscription + purchased < amount:
            raise FakeAPIError("Insufficient credits", code="P0001")
        from_subscription = min(subscription, amount)
        profile["subscription_credits_balance"] = subscription - from_subscription
        profile["purchased_credits_balance"] = purchased - (amount - from_subscription)
        self._log(profile["id"], -amount, "usage", params["ref_id"], params.get("description"))
        return [{
            "new_subscription_balance": profile["subscription_credits_balance"],
            "new_purchased_balance": profile["purchased_credits_balance"],
            "new_total_balance": profile["subscription_credits_balance"] + profile["purchased_credits_balance"],
        }]

    def _refund(self, params):
        profile = self.profile(params["target_user_id"])
        profile["purchased_credits_balance"] += params["amount"]
        self._log(profile["id"], params["amount"], "purchase", params["job_id"])
        return profile["subscription_credits_balance"] + profile["purchased_credits_balance"]

    def _add_subscription(self, params):
        profile = self.profile(params["target_user_id"])
        profile["subscription_credits_balance"] += params["amount"]
        self._log(profile["id"], params["amount"], "subscription", params["ref_id"], params.get("description"))
        return profile["subscription_credits_balance"]

    def _add_purchased(self, params):
        profile = self.profile(params["target_user_id"])
        profile["purchased_credits_balance"] += params["amount"]
        self._log(profile["id"], params["amount"], "purchase", params["ref_id"], params.get("description"))
        return profile["purchased_credits_balance"]

    def _expire(self, params):
        profile = self.profile(params["target_user_id"])
        expired = profile["subscription_credits_balance"]
        profile["subscription_credits_balance"] = 0
        if expired:
            self._log(profile["id"], -expired, "expiration", params.get("subscription_stripe_id"))
        return expired

    def _clawback(self, params):
        profile = self.profile(params["p_target_user_id"])
        original = next(
            (t for t in self.tables.get("credit_transactions", [])
             if t["reference_id"] == params["p_original_ref_id"] and t["amount"] > 0),
            None,
        )
        if original is None:
            return [{"success": False, "credits_clawed_back": 0, "new_balance": 0,
                     "error_message": "Original transaction not found"}]
        balance_key = "subscription_credits_balance" if original["type"] == "subscription" else "purchased_credits_balance"
        clawed = min(original["amount"], profile[balance_key])
        profile[balance_key] -= clawed
        self._log(profile["id"], -clawed, "clawback", params["p_original_ref_id"], params["p_reason"])
        return [{
            "success": True,
            "credits_clawed_back": clawed,
            "new_balance": profile["subscription_credits_balance"] + profile["purchased_credits_balance"],
            "error_message": None,
        }]


def make_profile(**overrides) -> Dict[str, Any]:
    profile = {
        "id": USER_ID,
        "email": USER_EMAIL,
        "stripe_customer_id": CUSTOMER_ID,
        "subscription_status": "active",
        "subscription_tier": "hobby",
        "subscription_credits_balance": 100,
        "purchased_credits_balance": 20,
    }
    profile.update(overrides)
    return profile


@pytest.fixture
def fake_db() -> FakeSupabase:
    db = FakeSupabase()
    db.tables["profiles"] = [make_profile()]
    return db


@pytest.fixture
def client(fake_db):
    app.dependency_overrides[get_supabase] = lambda: fake_db
    app.dependency_overrides[get_service_supabase] = lambda: fake_db
    app.dependency_overrides[get_current_user_id] = lambda: {"id": USER_ID, "email": USER_EMAIL}
    batch_limit_service.reset()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    batch_limit_service.reset()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer test-token"}
