"""
Async client for the restaurant REST backend.

Answers come either bare (``[...]``) or wrapped as
``{"success": true, "data": ..., "message": ...}``; both are accepted. An
HTML page (wrong URL, PHP not executing, proxy error) or a body that is not
JSON is an ``ApiError``, never an empty result.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .models import NotificationRecord, Order, SubscriptionSnapshot, SubscriptionUsage

logger = logging.getLogger(__name__)

ENDPOINTS = {
    "notifications.list": "notifications/list",
    "notifications.mark_read": "notifications/mark-read",
    "orders.list": "orders/list",
    "orders.update_status": "orders/update-status",
    "subscriptions.current": "subscriptions/current",
    "subscriptions.usage": "subscriptions/usage",
}


class ApiError(Exception):
    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.payload = payload

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} (HTTP {self.status})" if self.status else base


def _looks_like_html(text: str, content_type: str) -> bool:
    head = text.lstrip()[:15].lower()
    return (
        "text/html" in content_type
        or "application/xhtml" in content_type
        or head.startswith(("<!doctype", "<html", "<?php"))
    )


def decode_response(response: httpx.Response) -> Any:
    text = response.text or ""
    content_type = response.headers.get("content-type", "")

    if text.strip() and _looks_like_html(text, content_type):
        raise ApiError(
            "Server returned HTML instead of JSON. Check the API base URL.",
            status=response.status_code,
            payload=text.strip()[:500],
        )

    payload: Any = {}
    if text.strip():
        try:
            payload = json.loads(text)
        except ValueError:
            if response.is_success:
                raise ApiError("Server returned invalid JSON", status=response.status_code, payload=text[:500])
            payload = {}

    if response.is_error:
        message = "Request failed"
        if isinstance(payload, dict):
            message = payload.get("message") or payload.get("error") or message
        raise ApiError(message, status=response.status_code, payload=payload)

    return payload


def unwrap(payload: Any) -> Any:
    if isinstance(payload, dict):
        if payload.get("success") is False:
            raise ApiError(payload.get("message") or payload.get("error") or "Request failed", payload=payload)
        if "data" in payload:
            return payload["data"]
    return payload


def _records(data: Any, model, what: str) -> list:
    if not isinstance(data, list):
        raise ApiError(f"Expected a list of {what}, got {type(data).__name__}", payload=data)
    records = []
    for item in data:
        if not isinstance(item, dict):
            continue
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning("[Api] skipped malformed %s entry: %s", what, exc.errors()[:1])
    return records


class RestaurantApi:
    def __init__(
        self,
        base_url: str,
        token: str = "",
        endpoint_suffix: str = "",
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self.endpoint_suffix = endpoint_suffix
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_s),
            transport=transport,
        )

    def set_token(self, token: str) -> None:
        self.token = token or ""

    def url_for(self, endpoint: str) -> str:
        return ENDPOINTS[endpoint] + self.endpoint_suffix

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        response = await self._client.request(
            method,
            self.url_for(endpoint),
            params=params or None,
            json=body,
            headers=self._headers(),
        )
        return unwrap(decode_response(response))

    # -------------------------------------------------------------------
    # NOTIFICATIONS
    # -------------------------------------------------------------------

    async def list_notifications(self) -> List[NotificationRecord]:
        data = await self._request("GET", "notifications.list")
        return _records(data, NotificationRecord, "notifications")

    async def mark_read(self, notification_id: Optional[str] = None) -> Any:
        """Mark one notification as read; without an id, mark ALL as read."""
        body = {"id": notification_id} if notification_id is not None else {}
        return await self._request("POST", "notifications.mark_read", body=body)

    # -------------------------------------------------------------------
    # ORDERS
    # -------------------------------------------------------------------

    async def list_orders(
        self,
        restaurant_id: str,
        branch_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Order]:
        data = await self._request(
            "GET",
            "orders.list",
            params={"restaurantId": restaurant_id, "branchId": branch_id, "status": status},
        )
        return _records(data, Order, "orders")

    async def update_order_status(self, order_id: str, status: str, notes: str = "") -> Any:
        return await self._request(
            "PUT",
            "orders.update_status",
            body={"id": order_id, "status": status, "notes": notes},
        )

    # -------------------------------------------------------------------
    # SUBSCRIPTIONS
    # -------------------------------------------------------------------

    async def current_subscription(self, restaurant_id: str) -> Optional[SubscriptionSnapshot]:
        """None when the restaurant has no subscription (``data`` null/false)."""
        data = await self._request("GET", "subscriptions.current", params={"restaurantId": restaurant_id})
        if data is None or data is False:
            return None
        if not isinstance(data, dict):
            raise ApiError("Unexpected subscription payload", payload=data)
        return SubscriptionSnapshot.model_validate(data)

    async def subscription_usage(self, restaurant_id: str) -> SubscriptionUsage:
        data = await self._request("GET", "subscriptions.usage", params={"restaurantId": restaurant_id})
        return SubscriptionUsage.model_validate(data if isinstance(data, dict) else {})

    async def aclose(self) -> None:
        await self._client.aclose()
