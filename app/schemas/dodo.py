"""
Canonical shapes for Dodo Payments subscription records and webhook events.

Dodo webhooks are not consistent about nesting: subscription_id and metadata
can appear directly under `data` or one level down under `data.subscription`.
Everything is normalised into ProviderSubscription / WebhookEvent here so the
resolver and the reconciliation engine never look at raw payloads.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from app.core.errors import ValidationError
from app.core.plans import is_cancelled_status, normalize_status

logger = logging.getLogger(__name__)


class ProviderSubscription(BaseModel):
    subscription_id: Optional[str] = None
    status: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    metadata_user_id: Optional[str] = None
    client_reference_id: Optional[str] = None
    cancel_at_next_billing_date: bool = False
    next_billing_date: Optional[datetime] = None

    @property
    def is_cancelled(self) -> bool:
        return is_cancelled_status(self.status)

    @property
    def has_correlation_key(self) -> bool:
        return bool(
            self.subscription_id
            or self.metadata_user_id
            or self.client_reference_id
            or normalize_email(self.customer_email)
        )


class WebhookEvent(BaseModel):
    type: str
    subscription: ProviderSubscription


def normalize_email(value: Any) -> str:
    """Lowercase and trim an email for comparison. Returns '' when absent."""
    if not value or not isinstance(value, str):
        return ""
    return value.strip().lower()


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("[Dodo] Unparseable timestamp %r; ignoring", value)
            return None
    logger.warning("[Dodo] Unexpected timestamp type %s; ignoring", type(value).__name__)
    return None


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, "", {}):
            return value
    return None


def normalize_subscription(payload: Any, allow_bare_id: bool = False) -> ProviderSubscription:
    """
    Normalise a Dodo subscription record or webhook `data` object.

    Top-level fields win; `payload["subscription"]` is consulted when a field
    is missing at the top level. `allow_bare_id` lets records from
    GET /subscriptions fall back to their `id` field; webhook payloads keep it
    off because `data.id` can be a payment id there.
    """
    data = _as_dict(payload)
    nested = _as_dict(data.get("subscription"))

    metadata = _as_dict(_first(data.get("metadata"), nested.get("metadata")))
    customer = _as_dict(_first(data.get("customer"), nested.get("customer")))

    cancel_flag = _first(
        data.get("cancel_at_next_billing_date"),
        nested.get("cancel_at_next_billing_date"),
    )

    return ProviderSubscription(
        subscription_id=_as_str(_first(
            data.get("subscription_id"),
            nested.get("subscription_id"),
            data.get("id") if allow_bare_id else None,
        )),
        status=normalize_status(_first(data.get("status"), nested.get("status"))),
        customer_id=_as_str(_first(
            customer.get("customer_id"),
            customer.get("id"),
            data.get("customer_id"),
            nested.get("customer_id"),
        )),
        customer_email=_as_str(_first(customer.get("email"), data.get("email"), nested.get("email"))),
        metadata_user_id=_as_str(_first(metadata.get("userId"), metadata.get("user_id"))),
        client_reference_id=_as_str(_first(data.get("client_reference_id"), nested.get("client_reference_id"))),
        cancel_at_next_billing_date=cancel_flag is True,
        next_billing_date=parse_timestamp(_first(data.get("next_billing_date"), nested.get("next_billing_date"))),
    )


def read_event_type(body: Any) -> str:
    if not isinstance(body, dict):
        raise ValidationError("Webhook body must be a JSON object")
    event_type = body.get("type")
    if not isinstance(event_type, str) or not event_type.strip():
        raise ValidationError("Missing event type")
    return event_type.strip()


def normalize_event(body: Any) -> WebhookEvent:
    event_type = read_event_type(body)
    data = body.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Webhook data must be a JSON object")
    return WebhookEvent(type=event_type, subscription=normalize_subscription(data))
