"""
Point reads and point updates against the profiles and users tables.

Each update commits on its own; there is no transaction spanning several
profiles or spanning a Dodo API call. Write failures surface as StoreError
and are not retried.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, StoreError, ValidationError
from app.core.plans import is_valid_plan
from app.models.profile import Profile
from app.models.user import User
from app.schemas.dodo import normalize_email

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = frozenset({
    "subscription_id",
    "customer_id",
    "plan",
    "auto_renew",
    "renews_at",
    "trial_expires_at",
})


def _check_fields(changes: dict) -> dict:
    unknown = set(changes) - WRITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown profile fields: {sorted(unknown)}")
    if "plan" in changes and not is_valid_plan(changes["plan"]):
        raise ValidationError(f"Invalid plan: {changes['plan']}")
    stamped = dict(changes)
    stamped["updated_at"] = datetime.now(timezone.utc)
    return stamped


class ProfileStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Profile | None:
        return self.db.query(Profile).filter(Profile.user_id == user_id).first()

    def require(self, user_id: str) -> Profile:
        profile = self.get(user_id)
        if not profile:
            raise NotFoundError("Profile not found", details={"userId": user_id})
        return profile

    def linkage_map(self, subscription_ids: Iterable[str | None]) -> dict[str, list[str]]:
        """Map each linked subscription id to the profiles that point at it."""
        ids = sorted({sid for sid in subscription_ids if sid})
        if not ids:
            return {}
        rows = (
            self.db.query(Profile.subscription_id, Profile.user_id)
            .filter(Profile.subscription_id.in_(ids))
            .order_by(Profile.user_id)
            .all()
        )
        linked: dict[str, list[str]] = {}
        for subscription_id, user_id in rows:
            linked.setdefault(subscription_id, []).append(user_id)
        return linked

    def update(self, user_id: str, changes: dict) -> Profile:
        values = _check_fields(changes)
        profile = self.require(user_id)
        try:
            for field, value in values.items():
                setattr(profile, field, value)
            self.db.commit()
            self.db.refresh(profile)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("[Store] Failed to update profile %s: %s", user_id, e)
            raise StoreError("Failed to update profile") from e
        logger.info("[Store] Updated profile %s fields=%s", user_id, sorted(changes))
        return profile

    def update_linked(self, subscription_id: str, changes: dict) -> int:
        """Update every profile linked to subscription_id; returns the row count."""
        values = _check_fields(changes)
        try:
            count = (
                self.db.query(Profile)
                .filter(Profile.subscription_id == subscription_id)
                .update(values, synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("[Store] Failed to update profiles for subscription %s: %s", subscription_id, e)
            raise StoreError("Failed to update profile") from e
        logger.info("[Store] Updated %s profile(s) linked to %s fields=%s", count, subscription_id, sorted(changes))
        return count


class IdentityDirectory:
    """Read-only view of auth identities (user id and registered email)."""

    def __init__(self, db: Session):
        self.db = db

    def emails_for(self, user_ids: Iterable[str | None]) -> dict[str, str]:
        ids = sorted({uid for uid in user_ids if uid})
        if not ids:
            return {}
        rows = self.db.query(User.id, User.email).filter(User.id.in_(ids)).all()
        return {user_id: normalize_email(email) for user_id, email in rows}

    def find_by_email(self, email: str | None) -> dict[str, str]:
        wanted = normalize_email(email)
        if not wanted:
            return {}
        rows = (
            self.db.query(User.id, User.email)
            .filter(func.lower(func.trim(User.email)) == wanted)
            .all()
        )
        return {user_id: normalize_email(found) for user_id, found in rows}
