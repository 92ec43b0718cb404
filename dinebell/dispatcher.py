import logging
from dataclasses import dataclass
from typing import Hashable, Iterable, List, Optional, Set

from . import labels
from .delta import Delta
from .models import NotificationRecord
from .slot import LatestSlot

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    baseline: bool = False
    toast: Optional[NotificationRecord] = None
    sound_played: bool = False
    os_notifications: int = 0


def newest_first(records: Iterable[NotificationRecord]) -> List[NotificationRecord]:
    """Sort by ``created_at`` descending; undated records last, ties keep collection order."""

    def _key(record: NotificationRecord) -> float:
        return record.created_at.timestamp() if record.created_at else float("-inf")

    return sorted(records, key=_key, reverse=True)


class NotificationDispatcher:
    """
    Turns deltas into side effects.

    • first delta of a context = baseline, no effects at all
    • added   -> newest one goes to the toast slot, plays the sound cue and
                 raises one OS notification (tag ``new-order-<id>``)
    • changed -> one OS notification each (tag ``order-update-<id>``),
                 no toast, no sound

    OS notification permission is requested lazily, the first time a
    notification would be raised.
    """

    def __init__(self, slot: LatestSlot, notifier, audio, locale: str = "en"):
        self.slot = slot
        self.notifier = notifier
        self.audio = audio
        self.locale = locale
        self._primed: Set[Hashable] = set()

    @property
    def sound_enabled(self) -> bool:
        return self.audio.enabled

    @sound_enabled.setter
    def sound_enabled(self, enabled: bool) -> None:
        self.audio.enabled = bool(enabled)

    def is_primed(self, context: Hashable) -> bool:
        return context in self._primed

    def forget(self, context: Hashable) -> None:
        self._primed.discard(context)

    def dispatch(self, context: Hashable, delta: Delta) -> DispatchResult:
        if context not in self._primed:
            self._primed.add(context)
            logger.debug("[Dispatcher] baseline for %s (%d new ignored)", context, len(delta.added))
            return DispatchResult(baseline=True)

        result = DispatchResult()

        if delta.added:
            latest = newest_first(delta.added)[0]
            self.slot.publish(latest)
            result.toast = latest
            result.sound_played = self.audio.play()
            title, body = labels.new_order_message(latest, self.locale)
            if self._emit(title, body, f"new-order-{latest.id}"):
                result.os_notifications += 1
            logger.info("[Dispatcher] new order %s for %s", latest.order_number or latest.id, context)

        for record in delta.changed:
            title, body = labels.status_change_message(record, self.locale)
            if self._emit(title, body, f"order-update-{record.id}"):
                result.os_notifications += 1

        return result

    def _emit(self, title: str, body: str, tag: str) -> bool:
        self.notifier.permission.request()
        if not self.notifier.permission.granted:
            return False
        return self.notifier.notify(title, body, tag)
