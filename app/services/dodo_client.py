"""
Thin async client for the Dodo Payments subscription API.

Only the calls the reconciliation flows need: list subscriptions (paginated,
newest first as returned by Dodo) and PATCH one.
"""
import logging
from typing import Any

import httpx

from app.core.config import Settings
from app.core.errors import UpstreamError

logger = logging.getLogger(__name__)


class DodoClient:
    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 15.0,
        page_size: int = 100,
        max_pages: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.page_size = page_size
        self.max_pages = max_pages
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> "DodoClient":
        return cls(
            api_key=settings.require_dodo_api_key(),
            base_url=settings.dodo_base_url,
            timeout=settings.dodo_timeout_seconds,
            page_size=settings.dodo_page_size,
            max_pages=settings.dodo_max_pages,
            transport=transport,
        )

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            logger.error("[Dodo] Timeout calling %s %s: %s", method, path, e)
            raise UpstreamError("Payment provider timeout", provider_status=504)
        except httpx.RequestError as e:
            logger.error("[Dodo] Request error calling %s %s: %s", method, path, e)
            raise UpstreamError(f"Payment provider request failed: {e}")

        if r.status_code < 200 or r.status_code >= 300:
            # Keep the provider body in logs only; it can echo auth problems.
            logger.error("[Dodo] %s %s returned %s: %s", method, path, r.status_code, (r.text or "")[:500])
            raise UpstreamError(
                f"Payment provider returned {r.status_code}",
                provider_status=r.status_code,
            )
        return r

    @staticmethod
    def _json(r: httpx.Response) -> Any:
        if not r.content:
            return {}
        try:
            return r.json()
        except ValueError:
            raise UpstreamError("Payment provider returned invalid JSON")

    async def list_subscriptions(self) -> list[dict]:
        """Return every subscription visible to the API key, in provider order."""
        subscriptions: list[dict] = []
        page_number = 0

        while page_number < self.max_pages:
            params = {"page_size": self.page_size, "page_number": page_number}
            payload = self._json(await self._request("GET", "/subscriptions", params=params))

            # Dodo returns lists under 'items'; fall back to 'data' for legacy
            if isinstance(payload, dict):
                page_items = payload.get("items") or payload.get("data") or []
            else:
                page_items = payload if isinstance(payload, list) else []
            if not isinstance(page_items, list):
                page_items = []

            subscriptions.extend(item for item in page_items if isinstance(item, dict))
            if len(page_items) < self.page_size:
                break
            page_number += 1
        else:
            logger.warning("[Dodo] Stopped listing subscriptions after %s pages", self.max_pages)

        logger.info("[Dodo] Listed %s subscriptions", len(subscriptions))
        return subscriptions

    async def update_subscription(self, subscription_id: str, changes: dict) -> dict:
        logger.info("[Dodo] PATCH subscription %s fields=%s", subscription_id, sorted(changes))
        return self._json(await self._request("PATCH", f"/subscriptions/{subscription_id}", json=changes))

    async def set_cancel_at_next_billing_date(self, subscription_id: str, cancel: bool) -> dict:
        return await self.update_subscription(subscription_id, {"cancel_at_next_billing_date": cancel})

    async def cancel_subscription(self, subscription_id: str) -> dict:
        return await self.update_subscription(subscription_id, {"status": "cancelled"})
