"""
Wire models for the restaurant backend.

The backend answers with a mix of snake_case and camelCase keys
(``customer_name`` / ``customerName``). Every alias pair is resolved here,
once, at ingestion; the rest of the package only sees the snake_case
attribute names.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .expiry import parse_optional_instant


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    PAUSED = "paused"
    UNKNOWN = "unknown"


class PollContext(NamedTuple):
    """(restaurant, branch) scope a poller is bound to."""

    restaurant_id: str
    branch_id: Optional[str] = None

    def label(self) -> str:
        return f"{self.restaurant_id}/{self.branch_id or '*'}"


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator("id", "restaurant_id", "branch_id", "order_id", mode="before", check_fields=False)
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("created_at", mode="before", check_fields=False)
    @classmethod
    def _lenient_instant(cls, value: Any) -> Optional[datetime]:
        return parse_optional_instant(value)

    @field_validator("status", mode="before", check_fields=False)
    @classmethod
    def _normalize_status(cls, value: Any) -> str:
        return str(value or "").strip().lower()


class NotificationRecord(_WireModel):
    """
    One entry of ``notifications/list``.

    Immutable snapshot: the next poll replaces the whole record. ``id`` is the
    only identity key used when comparing two polls.
    """

    id: str
    status: str = ""
    title: str = ""
    message: str = Field("", validation_alias=_alias("message", "body"))
    type: str = ""
    is_read: bool = Field(False, validation_alias=_alias("is_read", "isRead"))
    created_at: Optional[datetime] = Field(None, validation_alias=_alias("created_at", "createdAt"))

    # denormalized order reference
    order_id: Optional[str] = Field(None, validation_alias=_alias("order_id", "orderId"))
    order_number: str = Field("", validation_alias=_alias("order_number", "orderNumber"))
    customer_name: str = Field("", validation_alias=_alias("customer_name", "customerName"))
    total: float = 0.0
    item_count: int = Field(0, validation_alias=_alias("item_count", "itemCount", "items"))
    restaurant_id: Optional[str] = Field(None, validation_alias=_alias("restaurant_id", "restaurantId"))
    branch_id: Optional[str] = Field(None, validation_alias=_alias("branch_id", "branchId"))

    @field_validator("order_number", "customer_name", "title", "message", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("total", mode="before")
    @classmethod
    def _money(cls, value: Any) -> float:
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0

    @field_validator("item_count", mode="before")
    @classmethod
    def _count_items(cls, value: Any) -> int:
        if isinstance(value, (list, tuple)):
            return len(value)
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0

    @field_validator("is_read", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        # MySQL tinyint comes through as 0/1 or "0"/"1"
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)


class Order(_WireModel):
    """One entry of ``orders/list``."""

    id: str
    order_number: str = Field("", validation_alias=_alias("order_number", "orderNumber"))
    status: str = ""
    customer_name: str = Field("", validation_alias=_alias("customer_name", "customerName"))
    customer_phone: str = Field("", validation_alias=_alias("customer_phone", "customerPhone"))
    total: float = 0.0
    items: List[Dict[str, Any]] = Field(default_factory=list)
    notes: str = ""
    branch_id: Optional[str] = Field(None, validation_alias=_alias("branch_id", "branchId"))
    created_at: Optional[datetime] = Field(None, validation_alias=_alias("created_at", "createdAt"))

    @field_validator("order_number", "customer_name", "customer_phone", "notes", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("total", mode="before")
    @classmethod
    def _money(cls, value: Any) -> float:
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0

    @field_validator("items", mode="before")
    @classmethod
    def _item_list(cls, value: Any) -> List[Dict[str, Any]]:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
        return []


class SubscriptionSnapshot(BaseModel):
    """
    Raw ``subscriptions/current`` answer.

    ``end_date`` is kept exactly as received; ``gate.evaluate`` normalizes it.
    A missing or unrecognised ``status`` becomes ``UNKNOWN`` (never active).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", arbitrary_types_allowed=True)

    status: SubscriptionStatus = SubscriptionStatus.UNKNOWN
    end_date: Any = Field(None, validation_alias=_alias("end_date", "endDate"))
    start_date: Any = Field(None, validation_alias=_alias("start_date", "startDate"))
    plan_id: Optional[str] = Field(None, validation_alias=_alias("plan_id", "planId"))
    plan_name: str = Field("", validation_alias=_alias("plan_name", "planName"))
    restaurant_id: Optional[str] = Field(None, validation_alias=_alias("restaurant_id", "restaurantId"))
    limits: Dict[str, Any] = Field(default_factory=dict)
    features: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("status", mode="before")
    @classmethod
    def _known_status(cls, value: Any) -> SubscriptionStatus:
        try:
            return SubscriptionStatus(str(value).strip().lower())
        except ValueError:
            return SubscriptionStatus.UNKNOWN

    @field_validator("plan_id", "restaurant_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("plan_name", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("limits", "features", mode="before")
    @classmethod
    def _mapping(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}


class SubscriptionUsage(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    products: int = Field(0, validation_alias=_alias("menuItems", "menu_items", "products"))
    categories: int = 0
    branches: int = 0
    orders: int = 0

    @field_validator("products", "categories", "branches", "orders", mode="before")
    @classmethod
    def _count(cls, value: Any) -> int:
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0
