from fastapi import APIRouter, Depends
from supabase import Client

from app.core.dependencies import verify_cron_secret
from app.core.errors import success_body
from app.database.supabase_client import get_service_supabase
from app.modules.sync.service import SubscriptionSyncService

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[Depends(verify_cron_secret)])


def get_sync_service(supabase: Client = Depends(get_service_supabase)) -> SubscriptionSyncService:
    return SubscriptionSyncService(supabase)


@router.post("/check-expirations")
def check_expirations(service: SubscriptionSyncService = Depends(get_sync_service)):
    """Hourly: re-sync active subscriptions whose billing period has ended"""
    return success_body(service.check_expirations().model_dump())


@router.post("/reconcile")
def reconcile(service: SubscriptionSyncService = Depends(get_sync_service)):
    """Daily: compare live subscriptions with Stripe and fix status, price and period drift"""
    return success_body(service.reconcile().model_dump())
