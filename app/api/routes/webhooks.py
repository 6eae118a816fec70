"""
Webhook for the payment provider (Dodo Payments).

Register https://your-backend.com/webhooks/dodo in the Dodo dashboard.
Deliveries are not signature-checked; see DESIGN.md.
"""
import json
from fastapi import APIRouter, Depends, Request

from app.core.errors import ValidationError
from app.dependencies.billing import get_identity_resolver, get_reconciliation_engine
from app.services.identity_resolver import IdentityResolver
from app.services.reconciliation import ReconciliationEngine
from app.services.webhook_processor import WebhookProcessor

router = APIRouter()


@router.post("/dodo")
async def dodo_webhook(
    request: Request,
    resolver: IdentityResolver = Depends(get_identity_resolver),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    payload = await request.body()
    try:
        body = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON")

    return WebhookProcessor(resolver, engine).handle(body)
