import asyncio
import logging
from typing import Callable, Optional

from .models import NotificationRecord

logger = logging.getLogger(__name__)


class LatestSlot:
    """
    Single-item cell holding the newest order for the toast.

    Written by the dispatcher, read and cleared by the toast presenter. Every
    value is paired with exactly one auto-clear timer: ``publish`` cancels the
    previous timer and schedules the new one in the same synchronous step,
    and any clear cancels the pending timer. Clearing an empty slot is a
    no-op, so a manual dismiss and the auto-clear can race safely.
    """

    def __init__(
        self,
        ttl_s: float,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        on_change: Optional[Callable[[Optional[NotificationRecord]], None]] = None,
    ):
        self.ttl_s = ttl_s
        self._loop = loop
        self._on_change = on_change
        self._value: Optional[NotificationRecord] = None
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def value(self) -> Optional[NotificationRecord]:
        return self._value

    @property
    def timer(self) -> Optional[asyncio.TimerHandle]:
        return self._handle

    @property
    def live_timers(self) -> int:
        return 1 if self._handle is not None and not self._handle.cancelled() else 0

    def publish(self, record: NotificationRecord) -> None:
        loop = self._loop or asyncio.get_running_loop()
        previous = self._handle
        self._value = record
        self._handle = loop.call_later(self.ttl_s, self._expire, record.id)
        if previous is not None:
            previous.cancel()
        self._changed()

    def clear(self, expected_id: Optional[str] = None) -> bool:
        """
        Empty the slot and cancel its timer.

        With ``expected_id`` the slot is only cleared while it still holds
        that record (a dismiss aimed at an older toast must not drop a newer
        one). Returns True if something was cleared.
        """
        if self._value is None:
            return False
        if expected_id is not None and self._value.id != expected_id:
            return False
        self._cancel_timer()
        self._value = None
        self._changed()
        return True

    def _expire(self, record_id: str) -> None:
        self._handle = None
        if self._value is not None and self._value.id == record_id:
            logger.debug("[LatestSlot] auto-cleared %s", record_id)
            self._value = None
            self._changed()

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self._value)
