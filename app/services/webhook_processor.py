"""
Dispatch for Dodo webhook deliveries.

Every delivery is handled on its own: classify the event type, then either
acknowledge and ignore it, downgrade the profiles linked to a cancelled
subscription, or resolve the owner and grant/refresh premium.
"""
import logging

from app.core.errors import NotFoundError, ValidationError
from app.schemas.dodo import WebhookEvent, normalize_email, normalize_event, read_event_type
from app.services.identity_resolver import IdentityResolver
from app.services.reconciliation import ReconciliationEngine
from app.services.webhook_events import EventCategory, classify

logger = logging.getLogger(__name__)


class WebhookProcessor:
    def __init__(self, resolver: IdentityResolver, engine: ReconciliationEngine):
        self.resolver = resolver
        self.engine = engine

    def handle(self, body: dict) -> dict:
        event_type = read_event_type(body)
        category = classify(event_type)
        logger.info("[Webhook] Received %s (%s)", event_type, category.value)

        if category is EventCategory.IGNORED:
            # Acknowledge so Dodo does not keep retrying types we don't handle
            return {"received": True, "ignored": event_type}

        event = normalize_event(body)
        if category is EventCategory.CANCELLATION:
            return self._handle_cancellation(event)
        return self._handle_entitlement(event)

    def _handle_cancellation(self, event: WebhookEvent) -> dict:
        subscription_id = event.subscription.subscription_id
        if not subscription_id:
            raise ValidationError("No subscription_id in cancellation event")

        # Linkage only: metadata and email on a cancelled subscription may be stale
        updated = self.engine.apply_cancellation(subscription_id)
        return {"success": True, "message": "Subscription cancelled", "profilesUpdated": updated}

    def _handle_entitlement(self, event: WebhookEvent) -> dict:
        sub = event.subscription
        if not sub.has_correlation_key:
            raise ValidationError("No customer email or known subscription")

        match = self.resolver.find_owner(sub)
        if not match:
            logger.error(
                "[Webhook] No user found for %s subscription=%s email=%s metadata_user=%s",
                event.type, sub.subscription_id, sub.customer_email, sub.metadata_user_id,
            )
            if not normalize_email(sub.customer_email):
                # Unknown subscription or stale claim and nothing to search users by
                raise ValidationError("No customer email or known subscription")
            raise NotFoundError(
                "User not found",
                details={
                    "debug": {
                        "receivedEmail": sub.customer_email,
                        "receivedMetadataUserId": sub.metadata_user_id,
                        "subscriptionId": sub.subscription_id,
                    }
                },
            )

        self.engine.apply(match.user_id, event)
        logger.info("[Webhook] User %s processed %s via %s", match.user_id, event.type, match.method)
        return {"success": True, "event": event.type, "userId": match.user_id, "matchedBy": match.method}
