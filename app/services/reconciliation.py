"""
Turns a resolved (user, subscription) pair into a profile update.

The change sets are computed by pure functions so they can be checked in
isolation; ReconciliationEngine applies them through the ProfileStore.
Applying the same input twice leaves the profile in the same state.
"""
import logging
from typing import Union

from app.core.errors import AuthorizationError
from app.core.plans import PLAN_FREE, PLAN_PREMIUM
from app.models.profile import Profile
from app.schemas.dodo import ProviderSubscription, WebhookEvent
from app.services.dodo_client import DodoClient
from app.services.profile_store import ProfileStore
from app.services.webhook_events import EventCategory, classify

logger = logging.getLogger(__name__)


def cancellation_changes() -> dict:
    # subscription_id is kept so the profile still shows which one was cancelled
    return {
        "plan": PLAN_FREE,
        "auto_renew": False,
        "trial_expires_at": None,
    }


def entitlement_changes(sub: ProviderSubscription) -> dict:
    changes: dict = {
        "plan": PLAN_PREMIUM,
        "trial_expires_at": None,
    }

    if sub.subscription_id:
        changes["subscription_id"] = sub.subscription_id
        changes["auto_renew"] = True

    if sub.cancel_at_next_billing_date:
        changes["auto_renew"] = False

    # A cancelled status wins over whatever the event type implied
    if sub.is_cancelled:
        changes["plan"] = PLAN_FREE
        changes["auto_renew"] = False

    if sub.next_billing_date:
        changes["renews_at"] = sub.next_billing_date

    if sub.customer_id:
        changes["customer_id"] = sub.customer_id

    return changes


def link_changes(subscription_id: str, customer_id: str | None = None) -> dict:
    return {
        "subscription_id": subscription_id,
        "customer_id": customer_id or None,
        "plan": PLAN_PREMIUM,
        "auto_renew": True,
    }


class ReconciliationEngine:
    def __init__(self, store: ProfileStore):
        self.store = store

    def apply(self, user_id: str, source: Union[ProviderSubscription, WebhookEvent]) -> Profile:
        """Apply a provider record or a webhook event to one user's profile."""
        if isinstance(source, WebhookEvent):
            if classify(source.type) is EventCategory.CANCELLATION:
                return self.store.update(user_id, cancellation_changes())
            source = source.subscription
        return self.apply_entitlement(user_id, source)

    def apply_entitlement(self, user_id: str, sub: ProviderSubscription) -> Profile:
        changes = entitlement_changes(sub)
        logger.info(
            "[Reconcile] User %s -> plan=%s auto_renew=%s subscription=%s",
            user_id, changes["plan"], changes.get("auto_renew"), sub.subscription_id,
        )
        return self.store.update(user_id, changes)

    def apply_cancellation(self, subscription_id: str) -> int:
        count = self.store.update_linked(subscription_id, cancellation_changes())
        if count == 0:
            logger.warning("[Reconcile] Cancellation for %s matched no linked profile", subscription_id)
        else:
            logger.info("[Reconcile] Subscription %s cancelled on %s profile(s)", subscription_id, count)
        return count

    def verify_ownership(self, user_id: str, subscription_id: str) -> Profile:
        profile = self.store.get(user_id)
        if not profile or profile.subscription_id != subscription_id:
            logger.warning("[Reconcile] User %s does not own subscription %s", user_id, subscription_id)
            raise AuthorizationError("Invalid subscription for this user")
        return profile

    async def toggle_auto_renew(self, client: DodoClient, user_id: str, subscription_id: str, auto_renew: bool) -> Profile:
        self.verify_ownership(user_id, subscription_id)
        # Provider first; if Dodo refuses, the profile is left untouched
        await client.set_cancel_at_next_billing_date(subscription_id, not auto_renew)
        return self.store.update(user_id, {"auto_renew": auto_renew})

    async def cancel_subscription(self, client: DodoClient, user_id: str, subscription_id: str) -> int:
        self.verify_ownership(user_id, subscription_id)
        await client.cancel_subscription(subscription_id)
        return self.apply_cancellation(subscription_id)

    def link_subscription(self, user_id: str, subscription_id: str, customer_id: str | None = None) -> Profile:
        # Administrative override: no ownership check
        logger.warning("[Reconcile] Manually linking subscription %s to user %s", subscription_id, user_id)
        return self.store.update(user_id, link_changes(subscription_id, customer_id))
