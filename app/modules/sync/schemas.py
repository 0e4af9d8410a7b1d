from pydantic import BaseModel
from typing import List


class SyncRunResult(BaseModel):
    run_id: str
    processed: int = 0
    fixed: int = 0


class ReconcileIssue(BaseModel):
    subscription_id: str
    user_id: str
    issue: str
    action: str  # auto-fixed | marked-canceled | failed


class ReconcileResult(SyncRunResult):
    discrepancies: int = 0
    issues: List[ReconcileIssue] = []
    total_subscriptions: int = 0
    batch_size: int = 0
    has_more: bool = False
