"""
Subscription endpoints called by the web client: sync, auto-renew toggle,
cancel, and the manual link/repair override.
"""
from fastapi import APIRouter, Depends

from app.dependencies.billing import (
    get_dodo_client,
    get_identity_resolver,
    get_reconciliation_engine,
)
from app.schemas.billing import (
    CancelSubscriptionRequest,
    LinkSubscriptionRequest,
    SyncSubscriptionRequest,
    SyncSubscriptionResponse,
    ToggleAutoRenewRequest,
)
from app.services.dodo_client import DodoClient
from app.services.identity_resolver import IdentityResolver
from app.services.reconciliation import ReconciliationEngine
from app.services.subscription_sync import sync_subscription

router = APIRouter()


@router.post("/sync", response_model=SyncSubscriptionResponse)
async def sync_user_subscription(
    request: SyncSubscriptionRequest,
    client: DodoClient = Depends(get_dodo_client),
    resolver: IdentityResolver = Depends(get_identity_resolver),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    """Find the caller's Dodo subscription and link it when the webhook never did."""
    return await sync_subscription(request.user_id, client, resolver, engine)


@router.post("/toggle-auto-renew")
async def toggle_auto_renew(
    request: ToggleAutoRenewRequest,
    client: DodoClient = Depends(get_dodo_client),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    profile = await engine.toggle_auto_renew(client, request.user_id, request.subscription_id, request.auto_renew)
    return {"success": True, "autoRenew": profile.auto_renew}


@router.post("/cancel")
async def cancel_subscription(
    request: CancelSubscriptionRequest,
    client: DodoClient = Depends(get_dodo_client),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    """
    Cancel immediately with Dodo, then downgrade the linked profile.
    If Dodo rejects the request the profile is not touched.
    """
    await engine.cancel_subscription(client, request.user_id, request.subscription_id)
    return {"success": True, "message": "Subscription cancelled"}


@router.post("/link")
@router.post("/fix")
async def link_subscription(
    request: LinkSubscriptionRequest,
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    """Manual repair: bind a subscription to a user and grant premium (no ownership check)."""
    profile = engine.link_subscription(request.user_id, request.subscription_id, request.customer_id)
    return {
        "success": True,
        "message": f"Linked subscription {request.subscription_id} to user {request.user_id}",
        "profile": profile.to_dict(),
    }
