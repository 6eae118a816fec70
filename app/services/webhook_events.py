from enum import Enum


class EventCategory(str, Enum):
    IGNORED = "ignored"
    CANCELLATION = "cancellation"
    ENTITLEMENT_UPDATE = "entitlement-update"


# Events that upgrade/keep premium
ENTITLEMENT_EVENTS = frozenset({
    "payment.succeeded",
    "subscription.created",
    "subscription.updated",
    "subscription.renewed",
})

# Events that downgrade to free
CANCELLATION_EVENTS = frozenset({
    "subscription.cancelled",
})


def classify(event_type: str | None) -> EventCategory:
    if event_type in CANCELLATION_EVENTS:
        return EventCategory.CANCELLATION
    if event_type in ENTITLEMENT_EVENTS:
        return EventCategory.ENTITLEMENT_UPDATE
    return EventCategory.IGNORED
