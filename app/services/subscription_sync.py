"""
Client-triggered repair when the webhook linkage is missing or late.

Lists every Dodo subscription, finds the one belonging to the caller and
applies it to their profile the same way a webhook would.
"""
import logging

from app.core.errors import NotFoundError
from app.schemas.dodo import normalize_subscription
from app.services.dodo_client import DodoClient
from app.services.identity_resolver import IdentityResolver
from app.services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)

NOT_FOUND_HINT = (
    "No active subscription matched this account. If you just paid, wait a minute "
    "and retry; otherwise make sure checkout used the same email as your account."
)


async def sync_subscription(
    user_id: str,
    client: DodoClient,
    resolver: IdentityResolver,
    engine: ReconciliationEngine,
) -> dict:
    engine.store.require(user_id)

    records = await client.list_subscriptions()
    subs = [normalize_subscription(record, allow_bare_id=True) for record in records]
    logger.info("[Sync] Found %s subscriptions from Dodo, searching for user %s", len(subs), user_id)

    match = resolver.find_subscription(user_id, subs)
    if not match:
        raise NotFoundError(
            "No active subscription found",
            details={"hint": NOT_FOUND_HINT, "subscriptionsChecked": len(subs)},
        )

    profile = engine.apply_entitlement(user_id, match.subscription)
    return {
        "success": True,
        "subscriptionId": profile.subscription_id,
        "customerId": profile.customer_id,
        "autoRenew": profile.auto_renew,
        "plan": profile.plan,
        "matchedBy": match.method,
    }
