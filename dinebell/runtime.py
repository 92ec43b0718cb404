"""
Runs the engine on its own asyncio loop in a daemon thread and gives the
Streamlit script thread a blocking facade over it.

Streamlit reruns the script top to bottom on every interaction, so the engine
cannot live in the script thread. One loop per process, started once through
``st.cache_resource``; every call from the script is marshalled onto that loop
with ``asyncio.run_coroutine_threadsafe``.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Callable, Coroutine, Optional

from .api import RestaurantApi
from .audio import default_audio_alert
from .config import Settings
from .desktop import build_notifier
from .engine import EngineState, LiveEngine
from .gate import LimitCheck
from .models import PollContext, SubscriptionUsage

logger = logging.getLogger(__name__)


class BackgroundLoop:
    def __init__(self, name: str = "dinebell-loop"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def submit(self, coro: Coroutine) -> concurrent.futures.Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine, timeout: Optional[float] = None) -> Any:
        return self.submit(coro).result(timeout)

    def call(self, fn: Callable[..., Any], *args, timeout: Optional[float] = None) -> Any:
        """Run a plain function on the loop thread and wait for its result."""

        async def _call():
            return fn(*args)

        return self.run(_call(), timeout)

    def stop(self, timeout: float = 5.0) -> None:
        if not self.alive:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout)


def build_engine(settings: Settings, player=None, prompt=None, transport=None) -> LiveEngine:
    """Wire a LiveEngine from settings. Must run on the engine loop."""
    api = RestaurantApi(
        settings.api_base_url,
        token=settings.api_token,
        endpoint_suffix=settings.endpoint_suffix,
        timeout_s=settings.request_timeout_s,
        transport=transport,
    )
    notifier = build_notifier(settings.os_notifications, settings.app_name, prompt=prompt)
    audio = default_audio_alert(settings.sound_asset_path, enabled=settings.sound_enabled, player=player)
    return LiveEngine(
        api,
        notifier,
        audio,
        notification_interval_s=settings.notification_poll_ms / 1000,
        order_interval_s=settings.order_poll_ms / 1000,
        subscription_interval_s=settings.subscription_poll_ms / 1000,
        toast_ttl_s=settings.toast_ttl_ms / 1000,
        locale=settings.locale,
    )


class EngineHandle:
    """Blocking, thread-safe facade used by the dashboard script."""

    def __init__(self, engine: LiveEngine, background: BackgroundLoop, timeout_s: float = 15.0):
        self.engine = engine
        self.background = background
        self.timeout_s = timeout_s

    @classmethod
    def start(cls, settings: Settings, **kwargs) -> "EngineHandle":
        background = BackgroundLoop()
        engine = background.call(lambda: build_engine(settings, **kwargs), timeout=10.0)
        logger.info("[EngineHandle] engine started (api=%s)", settings.api_base_url)
        return cls(engine, background, timeout_s=settings.request_timeout_s + 5)

    def _call(self, fn: Callable[..., Any], *args) -> Any:
        return self.background.call(fn, *args, timeout=self.timeout_s)

    def _run(self, coro: Coroutine) -> Any:
        return self.background.run(coro, timeout=self.timeout_s)

    # -------- lifecycle --------

    def set_token(self, token: str) -> None:
        self._call(self.engine.api.set_token, token)

    def use_context(self, restaurant_id: str, branch_id: Optional[str] = None) -> None:
        self._call(self.engine.use_context, PollContext(str(restaurant_id), branch_id or None))

    def dispose(self) -> None:
        self._call(self.engine.dispose)

    def close(self) -> None:
        try:
            self._run(self.engine.aclose())
        finally:
            self.background.stop()

    # -------- reads --------

    def state(self) -> EngineState:
        return self._call(self.engine.state)

    def usage(self) -> Optional[SubscriptionUsage]:
        return self._run(self.engine.usage())

    def check_limit(self, limit_type: str, current_count: int) -> LimitCheck:
        return self._call(self.engine.check_limit, limit_type, current_count)

    def take_requested_page(self) -> Optional[str]:
        return self._call(self.engine.take_requested_page)

    # -------- actions --------

    def set_sound(self, enabled: bool) -> None:
        self._call(self.engine.set_sound, enabled)

    def dismiss_toast(self, record_id: Optional[str] = None) -> bool:
        return self._call(self.engine.dismiss_toast, record_id)

    def view_toast(self, record_id: Optional[str] = None) -> bool:
        return self._call(self.engine.view_toast, record_id)

    def mark_read(self, notification_id: str) -> bool:
        return self._run(self.engine.mark_read(notification_id))

    def mark_all_read(self) -> bool:
        return self._run(self.engine.mark_all_read())

    def update_order_status(self, order_id: str, status: str, notes: str = "") -> bool:
        return self._run(self.engine.update_order_status(order_id, status, notes))
