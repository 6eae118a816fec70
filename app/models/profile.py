from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.db.base import Base
from app.core.plans import PLAN_FREE


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    # Linkage to the Dodo subscription. Uniqueness is enforced by the
    # reconciliation logic, not by the schema.
    subscription_id = Column(String, index=True, nullable=True)
    customer_id = Column(String, nullable=True)
    plan = Column(String, nullable=False, default=PLAN_FREE)  # free | premium
    auto_renew = Column(Boolean, nullable=False, default=False)
    renews_at = Column(DateTime(timezone=True), nullable=True)
    trial_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "subscriptionId": self.subscription_id,
            "customerId": self.customer_id,
            "plan": self.plan,
            "autoRenew": self.auto_renew,
            "renewsAt": self.renews_at.isoformat() if self.renews_at else None,
            "trialExpiresAt": self.trial_expires_at.isoformat() if self.trial_expires_at else None,
        }
