"""
LiveEngine: the composition root of the live dashboard.

Owns the API client, the subscription gate, the protected pollers
(notifications and orders), the dispatcher, the toast slot and the
connection status for ONE context at a time.

    gate ACTIVE   -> notification + order pollers run for the context
    gate BLOCKED  -> both pollers stopped, toast cleared, baseline forgotten

Everything here runs on the engine's event loop (see ``runtime``).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

import httpx

from . import labels
from .api import ApiError
from .delta import diff, index_by_id
from .dispatcher import NotificationDispatcher
from .gate import GateDecision, LimitCheck, SubscriptionGate, check_limit, utcnow
from .models import NotificationRecord, Order, PollContext, SubscriptionUsage
from .scheduler import PollScheduler
from .slot import LatestSlot
from .toast import ToastPresenter, ToastView

logger = logging.getLogger(__name__)

MUTATION_ERRORS = (ApiError, httpx.HTTPError)


@dataclass(frozen=True)
class ConnectionStatus:
    online: Optional[bool] = None
    last_ok: Optional[datetime] = None
    last_error: str = ""


@dataclass
class EngineState:
    """Copy of everything the dashboard renders, taken in one loop step."""

    context: Optional[PollContext]
    decision: GateDecision
    notifications: List[NotificationRecord] = field(default_factory=list)
    orders: List[Order] = field(default_factory=list)
    toast: Optional[ToastView] = None
    connection: ConnectionStatus = field(default_factory=ConnectionStatus)
    sound_enabled: bool = True
    unread_count: int = 0
    requested_page: Optional[str] = None


class LiveEngine:
    def __init__(
        self,
        api,
        notifier,
        audio,
        notification_interval_s: float = 5.0,
        order_interval_s: float = 5.0,
        subscription_interval_s: float = 2.0,
        toast_ttl_s: float = 8.0,
        locale: str = "en",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.api = api
        self.locale = locale
        self.clock = clock

        self.slot = LatestSlot(toast_ttl_s)
        self.dispatcher = NotificationDispatcher(self.slot, notifier, audio, locale=locale)
        self.toast = ToastPresenter(
            self.slot,
            navigate=self._request_page,
            title=labels.text("new_order_title", locale),
        )

        self.gate = SubscriptionGate(self._fetch_subscription, subscription_interval_s, clock=clock)
        self.gate.add_listener(self._on_gate_change)

        self._notification_poller = PollScheduler(
            "notifications",
            self._fetch_notifications,
            notification_interval_s,
            on_failure=self._on_notification_failure,
        )
        self._order_poller = PollScheduler("orders", self._fetch_orders, order_interval_s)

        self.context: Optional[PollContext] = None
        self.notifications: List[NotificationRecord] = []
        self.orders: List[Order] = []
        self.connection = ConnectionStatus()
        self.requested_page: Optional[str] = None

    # -------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------

    def init(self, context: PollContext) -> None:
        """Bind to a context and start the gate. Protected pollers follow the gate."""
        if self.context is not None:
            self.dispose()
        self.context = context
        logger.info("[LiveEngine] init %s", context.label())
        self.gate.start(context.restaurant_id)

    def use_context(self, context: PollContext) -> None:
        """Switch context. A branch change keeps the gate; a restaurant change restarts it."""
        if context == self.context:
            return
        if self.context is None or context.restaurant_id != self.context.restaurant_id:
            self.init(context)
            return

        self._stop_protected()
        self.context = context
        logger.info("[LiveEngine] switched to %s", context.label())
        if self.gate.active:
            self._start_protected()

    def dispose(self) -> None:
        if self.context is None:
            return
        logger.info("[LiveEngine] dispose %s", self.context.label())
        self._stop_protected()
        self.gate.stop()
        self.context = None
        self.connection = ConnectionStatus()

    @property
    def protected_running(self) -> bool:
        return self._notification_poller.running or self._order_poller.running

    def _on_gate_change(self, decision: GateDecision) -> None:
        if decision.active and self.context is not None:
            self._start_protected()
        else:
            self._stop_protected()

    def _start_protected(self) -> None:
        context = self.context
        self._notification_poller.start(context, lambda records: self._on_notifications(context, records))
        self._order_poller.start(context, lambda orders: self._on_orders(context, orders))

    def _stop_protected(self) -> None:
        self._notification_poller.stop()
        self._order_poller.stop()
        if self.context is not None:
            self.dispatcher.forget(self.context)
        self.slot.clear()
        self.notifications = []
        self.orders = []

    # -------------------------------------------------------------------
    # FETCH
    # -------------------------------------------------------------------

    async def _fetch_subscription(self, restaurant_id: str):
        return await self.api.current_subscription(restaurant_id)

    async def _fetch_notifications(self, context: PollContext) -> List[NotificationRecord]:
        records = await self.api.list_notifications()
        return [record for record in records if _in_context(record, context)]

    async def _fetch_orders(self, context: PollContext) -> List[Order]:
        return await self.api.list_orders(context.restaurant_id, branch_id=context.branch_id)

    # -------------------------------------------------------------------
    # TICK HANDLERS
    # -------------------------------------------------------------------

    def _on_notifications(self, context: PollContext, records: List[NotificationRecord]) -> None:
        if context != self.context:
            return
        delta = diff(self.notifications, records)
        self.notifications = list(index_by_id(records).values())
        self.connection = ConnectionStatus(online=True, last_ok=self.clock())
        self.dispatcher.dispatch(context, delta)

    def _on_notification_failure(self, exc: BaseException) -> None:
        self.connection = ConnectionStatus(
            online=False,
            last_ok=self.connection.last_ok,
            last_error=str(exc) or type(exc).__name__,
        )

    def _on_orders(self, context: PollContext, orders: List[Order]) -> None:
        if context != self.context:
            return
        self.orders = list(orders)

    def _request_page(self, page: str) -> None:
        self.requested_page = page

    # -------------------------------------------------------------------
    # MUTATIONS (optimistic; the next poll reconciles)
    # -------------------------------------------------------------------

    async def mark_read(self, notification_id: str) -> bool:
        if not self.gate.active:
            return False
        self.notifications = [
            record.model_copy(update={"is_read": True}) if record.id == notification_id else record
            for record in self.notifications
        ]
        try:
            await self.api.mark_read(notification_id)
        except MUTATION_ERRORS as exc:
            logger.warning("[LiveEngine] mark_read %s failed: %s", notification_id, exc)
            return False
        return True

    async def mark_all_read(self) -> bool:
        if not self.gate.active:
            return False
        self.notifications = [record.model_copy(update={"is_read": True}) for record in self.notifications]
        try:
            await self.api.mark_read()
        except MUTATION_ERRORS as exc:
            logger.warning("[LiveEngine] mark_all_read failed: %s", exc)
            return False
        return True

    async def update_order_status(self, order_id: str, status: str, notes: str = "") -> bool:
        if not self.gate.active:
            return False
        self.orders = [
            order.model_copy(update={"status": status}) if order.id == order_id else order
            for order in self.orders
        ]
        try:
            await self.api.update_order_status(order_id, status, notes)
        except MUTATION_ERRORS as exc:
            logger.warning("[LiveEngine] update_order_status %s -> %s failed: %s", order_id, status, exc)
            return False
        self._order_poller.trigger()
        return True

    # -------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------

    @property
    def unread_count(self) -> int:
        return sum(1 for record in self.notifications if not record.is_read)

    def set_sound(self, enabled: bool) -> None:
        self.dispatcher.sound_enabled = enabled

    def dismiss_toast(self, record_id: Optional[str] = None) -> bool:
        return self.toast.dismiss(record_id)

    def view_toast(self, record_id: Optional[str] = None) -> bool:
        return self.toast.view(record_id)

    def take_requested_page(self) -> Optional[str]:
        page, self.requested_page = self.requested_page, None
        return page

    async def usage(self) -> Optional[SubscriptionUsage]:
        if self.context is None:
            return None
        return await self.api.subscription_usage(self.context.restaurant_id)

    def check_limit(self, limit_type: str, current_count: int) -> LimitCheck:
        return check_limit(self.gate.snapshot, limit_type, current_count, now=self.clock())

    def state(self) -> EngineState:
        return EngineState(
            context=self.context,
            decision=self.gate.decision,
            notifications=list(self.notifications),
            orders=list(self.orders),
            toast=self.toast.current(),
            connection=self.connection,
            sound_enabled=self.dispatcher.sound_enabled,
            unread_count=self.unread_count,
            requested_page=self.requested_page,
        )

    async def aclose(self) -> None:
        self.dispose()
        await self.api.aclose()


def _in_context(record: NotificationRecord, context: PollContext) -> bool:
    if record.restaurant_id and record.restaurant_id != context.restaurant_id:
        return False
    if context.branch_id and record.branch_id and record.branch_id != context.branch_id:
        return False
    return True
