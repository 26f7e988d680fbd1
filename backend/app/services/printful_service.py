"""Printful API client - draft/confirm order lifecycle, estimates, order lookup

Docs: https://developers.printful.com/docs/
"""
import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ExternalProviderError
from app.core.metrics import provider_errors_counter

logger = logging.getLogger(__name__)

# Printful order status vocabulary -> local OrderStatus values
PRINTFUL_STATUS_MAP = {
    "draft": "draft",
    "pending": "confirmed",
    "failed": "failed",
    "canceled": "cancelled",
    "inprocess": "processing",
    "onhold": "on_hold",
    "partial": "partial",
    "fulfilled": "fulfilled",
}


def build_recipient(shipping: Dict[str, Any]) -> Dict[str, Any]:
    """Storefront shipping info -> Printful recipient"""
    recipient = {
        "name": shipping["name"],
        "email": shipping["email"],
        "phone": shipping.get("phone") or "",
        "address1": shipping["address"],
        "city": shipping["city"],
        "state_code": shipping["state"],
        "country_code": shipping["country"],
        "zip": shipping["zip"],
    }
    if shipping.get("address2"):
        recipient["address2"] = shipping["address2"]
    return recipient


class PrintfulClient:
    """Thin synchronous client over the Printful REST API.

    Every call carries an explicit timeout; a hung provider must not hold a
    webhook request open until the platform default kills it.
    """

    def __init__(
        self,
        token: str,
        store_id: str,
        base_url: str = "https://api.printful.com",
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.token = token
        self.store_id = store_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _request(self, method: str, endpoint: str, operation: str, **kwargs) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }
        if self.store_id:
            headers["X-PF-Store-Id"] = str(self.store_id)

        try:
            with httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport
            ) as client:
                response = client.request(method, endpoint, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            provider_errors_counter.labels(provider="printful", operation=operation).inc()
            logger.error(f"Printful {operation} request failed: {e}")
            raise ExternalProviderError(f"Printful API unreachable: {e}", provider="printful")

        if response.status_code >= 400:
            provider_errors_counter.labels(provider="printful", operation=operation).inc()
            logger.error(
                f"Printful API error during {operation} ({response.status_code}): {response.text}"
            )
            raise ExternalProviderError(
                f"Printful API error ({response.status_code})",
                provider="printful",
                provider_status=response.status_code,
                response_body=response.text,
            )

        try:
            return response.json()
        except json.JSONDecodeError:
            provider_errors_counter.labels(provider="printful", operation=operation).inc()
            raise ExternalProviderError(
                "Printful API returned a non-JSON body",
                provider="printful",
                provider_status=response.status_code,
                response_body=response.text,
            )

    @staticmethod
    def _unwrap(body: Dict[str, Any]) -> Any:
        # v2 endpoints wrap in "data", legacy ones in "result"
        if "data" in body:
            return body["data"]
        return body.get("result")

    def estimate_order(self, recipient: Dict[str, Any], items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """POST /v2/order-estimation-tasks"""
        body = self._request(
            "POST", "/v2/order-estimation-tasks", "estimate_order",
            json={"store_id": self.store_id, "recipient": recipient, "items": items}
        )
        return self._unwrap(body)

    def create_order(
        self,
        external_id: str,
        recipient: Dict[str, Any],
        items: List[Dict[str, Any]],
        retail_costs: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """POST /v2/orders - creates a draft; nothing ships until confirm_order"""
        body = self._request(
            "POST", "/v2/orders", "create_order",
            json={
                "store_id": self.store_id,
                "external_id": external_id,
                "recipient": recipient,
                "items": items,
                "retail_costs": retail_costs,
            }
        )
        return self._unwrap(body)

    def confirm_order(self, order_id: int) -> Dict[str, Any]:
        """POST /v2/orders/:id/confirm"""
        body = self._request("POST", f"/v2/orders/{order_id}/confirm", "confirm_order")
        return self._unwrap(body)

    def get_order(self, order_id: int) -> Dict[str, Any]:
        body = self._request("GET", f"/v2/orders/{order_id}", "get_order")
        return self._unwrap(body)

    def get_order_by_external_id(self, external_id: str) -> Optional[Dict[str, Any]]:
        body = self._request("GET", "/v2/orders", "get_order", params={"external_id": external_id})
        orders = self._unwrap(body) or []
        return orders[0] if orders else None

    def list_orders(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        body = self._request(
            "GET", "/v2/orders", "list_orders", params={"limit": limit, "offset": offset}
        )
        return self._unwrap(body) or []


def get_printful_client() -> PrintfulClient:
    """FastAPI dependency"""
    return PrintfulClient(
        token=settings.PRINTFUL_API_TOKEN,
        store_id=settings.PRINTFUL_STORE_ID,
        base_url=settings.PRINTFUL_API_BASE,
        timeout=settings.PRINTFUL_TIMEOUT_SECONDS,
    )
