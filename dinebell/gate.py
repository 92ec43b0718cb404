"""
Subscription gate.

Two states: ACTIVE (protected screens render) and BLOCKED (a blocking notice
replaces them). The decision is recomputed on every gate tick from the last
fetched subscription and the current time, with no hysteresis: an expiry is
caught within one tick, and a renewal unblocks within one tick.

Fail-closed: no subscription, an unknown status, or an end date that cannot be
read all mean BLOCKED.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from .expiry import Ok, normalize_instant
from .models import SubscriptionSnapshot, SubscriptionStatus
from .scheduler import PollScheduler

logger = logging.getLogger(__name__)

UNLIMITED = -1


class GateState(str, Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class GateDecision:
    state: GateState
    reason: str
    status: Optional[SubscriptionStatus] = None
    expires_at: Optional[datetime] = None
    checked_at: Optional[datetime] = None
    days_left: Optional[int] = None

    @property
    def active(self) -> bool:
        return self.state == GateState.ACTIVE

    @property
    def pending(self) -> bool:
        return self.checked_at is None


PENDING = GateDecision(GateState.BLOCKED, "pending")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def days_until(expires_at: datetime, now: datetime) -> int:
    return math.ceil((expires_at - now) / timedelta(days=1))


def evaluate(snapshot: Optional[SubscriptionSnapshot], now: datetime) -> GateDecision:
    """ACTIVE iff status == "active" AND the end date parses AND it is after ``now``."""
    if snapshot is None:
        return GateDecision(GateState.BLOCKED, "no subscription", checked_at=now)

    parsed = normalize_instant(snapshot.end_date)
    if not isinstance(parsed, Ok):
        return GateDecision(
            GateState.BLOCKED,
            f"unreadable end date ({parsed.reason})",
            status=snapshot.status,
            checked_at=now,
        )

    expires_at = parsed.value
    days_left = days_until(expires_at, now)
    if snapshot.status != SubscriptionStatus.ACTIVE:
        return GateDecision(
            GateState.BLOCKED,
            f"status {snapshot.status.value}",
            status=snapshot.status,
            expires_at=expires_at,
            checked_at=now,
            days_left=days_left,
        )
    if expires_at <= now:
        return GateDecision(
            GateState.BLOCKED,
            "expired",
            status=snapshot.status,
            expires_at=expires_at,
            checked_at=now,
            days_left=days_left,
        )
    return GateDecision(
        GateState.ACTIVE,
        "active",
        status=snapshot.status,
        expires_at=expires_at,
        checked_at=now,
        days_left=days_left,
    )


def expiry_warning_due(decision: GateDecision, window_days: int) -> bool:
    return decision.active and decision.days_left is not None and 0 < decision.days_left <= window_days


@dataclass(frozen=True)
class LimitCheck:
    allowed: bool
    remaining: int
    reason: str
    limit: Optional[int] = None
    current_count: Optional[int] = None


def check_limit(
    snapshot: Optional[SubscriptionSnapshot],
    limit_type: str,
    current_count: int,
    now: Optional[datetime] = None,
) -> LimitCheck:
    """
    Plan limit check (``maxProducts``, ``maxBranches``, ...).

    -1 means unlimited. An inactive subscription never allows anything.
    """
    if snapshot is None:
        return LimitCheck(False, 0, "No subscription found")
    if not evaluate(snapshot, now or utcnow()).active:
        return LimitCheck(False, 0, "Subscription not active")

    raw = snapshot.limits.get(limit_type)
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        return LimitCheck(False, 0, "Not included in plan", current_count=current_count)

    if limit == UNLIMITED:
        return LimitCheck(True, UNLIMITED, "OK", limit=UNLIMITED, current_count=current_count)

    allowed = current_count < limit
    return LimitCheck(
        allowed,
        max(0, limit - current_count),
        "OK" if allowed else "Limit reached",
        limit=limit,
        current_count=current_count,
    )


class SubscriptionGate:
    """
    Polls the current subscription on its own cadence and keeps the decision.

    Every tick re-evaluates the last known snapshot against the current time
    before its fetch is sent, and so does a failed fetch. An expiry is caught
    within one interval even while the backend is slow or unreachable.
    Listeners are called on every ACTIVE <-> BLOCKED transition.
    """

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[Optional[SubscriptionSnapshot]]],
        interval_s: float,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.clock = clock
        self.snapshot: Optional[SubscriptionSnapshot] = None
        self.decision: GateDecision = PENDING
        self._fetched = False
        self._listeners: List[Callable[[GateDecision], None]] = []
        self._scheduler = PollScheduler(
            "subscription", fetch, interval_s, on_failure=self._on_failure, on_tick=self.reevaluate
        )

    @property
    def state(self) -> GateState:
        return self.decision.state

    @property
    def active(self) -> bool:
        return self.decision.active

    @property
    def running(self) -> bool:
        return self._scheduler.running

    @property
    def restaurant_id(self) -> Optional[str]:
        return self._scheduler.context

    def add_listener(self, listener: Callable[[GateDecision], None]) -> None:
        self._listeners.append(listener)

    def start(self, restaurant_id: str) -> bool:
        if self._scheduler.running and self._scheduler.context == restaurant_id:
            return False
        self.stop()
        return self._scheduler.start(restaurant_id, self._on_snapshot)

    def stop(self) -> None:
        self._scheduler.stop()
        self.snapshot = None
        self._fetched = False
        self._set(PENDING)

    def reevaluate(self) -> GateDecision:
        if not self._fetched:
            return self.decision
        self._set(evaluate(self.snapshot, self.clock()))
        return self.decision

    def _on_snapshot(self, snapshot: Optional[SubscriptionSnapshot]) -> None:
        self.snapshot = snapshot
        self._fetched = True
        self.reevaluate()

    def _on_failure(self, exc: BaseException) -> None:
        self.reevaluate()

    def _set(self, decision: GateDecision) -> None:
        previous = self.decision
        self.decision = decision
        if previous.state == decision.state:
            return
        logger.info("[SubscriptionGate] %s -> %s (%s)", previous.state.value, decision.state.value, decision.reason)
        for listener in list(self._listeners):
            try:
                listener(decision)
            except Exception:
                logger.exception("[SubscriptionGate] listener raised")
