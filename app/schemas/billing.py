from pydantic import BaseModel, ConfigDict, Field, StrictBool
from typing import Optional


class _CamelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SyncSubscriptionRequest(_CamelRequest):
    user_id: str = Field(..., alias="userId", min_length=1)


class ToggleAutoRenewRequest(_CamelRequest):
    user_id: str = Field(..., alias="userId", min_length=1)
    subscription_id: str = Field(..., alias="subscriptionId", min_length=1)
    auto_renew: StrictBool = Field(..., alias="autoRenew")


class CancelSubscriptionRequest(_CamelRequest):
    user_id: str = Field(..., alias="userId", min_length=1)
    subscription_id: str = Field(..., alias="subscriptionId", min_length=1)


class LinkSubscriptionRequest(_CamelRequest):
    user_id: str = Field(..., alias="userId", min_length=1)
    subscription_id: str = Field(..., alias="subscriptionId", min_length=1)
    customer_id: Optional[str] = Field(None, alias="customerId")


class SyncSubscriptionResponse(BaseModel):
    success: bool = True
    subscriptionId: Optional[str] = None
    customerId: Optional[str] = None
    autoRenew: bool
    plan: str
    matchedBy: str
