from typing import Dict

# Plan entitlements stored on profiles.plan
PLAN_FREE = "free"
PLAN_PREMIUM = "premium"

PLANS: Dict[str, str] = {
    PLAN_FREE: "Free",
    PLAN_PREMIUM: "Premium",
}

# Dodo spells it "cancelled"; older payloads used "canceled"
STATUS_CANCELLED = "cancelled"
_CANCELLED_ALIASES = {"cancelled", "canceled"}


def normalize_status(status: str | None) -> str | None:
    if status is None:
        return None
    value = str(status).strip().lower()
    if value in _CANCELLED_ALIASES:
        return STATUS_CANCELLED
    return value or None


def is_cancelled_status(status: str | None) -> bool:
    return normalize_status(status) == STATUS_CANCELLED


def is_valid_plan(plan: str) -> bool:
    return plan in PLANS
