"""
OS-level notifications for the POS machine.

Delivery goes through ``plyer.notification`` in a worker thread so a slow
notification daemon never stalls the polling loop.
"""

import asyncio
import logging
from collections import OrderedDict
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_REMEMBERED_TAGS = 256


class PermissionState(str, Enum):
    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


class NotificationPermission:
    """
    Session-scoped permission, asked at most once.

    ``request()`` only prompts from DEFAULT. Once GRANTED or DENIED the answer
    sticks for the rest of the session; there are no repeated prompts.
    """

    def __init__(self, prompt: Callable[[], PermissionState], state: PermissionState = PermissionState.DEFAULT):
        self._prompt = prompt
        self.state = state
        self.prompts = 0

    @property
    def granted(self) -> bool:
        return self.state == PermissionState.GRANTED

    def request(self) -> PermissionState:
        if self.state != PermissionState.DEFAULT:
            return self.state
        self.prompts += 1
        try:
            answer = PermissionState(self._prompt())
        except Exception as exc:
            logger.warning("[Permission] prompt failed, treating as denied: %s", exc)
            answer = PermissionState.DENIED
        if answer == PermissionState.DEFAULT:
            answer = PermissionState.DENIED
        self.state = answer
        logger.info("[Permission] desktop notifications %s", self.state.value)
        return self.state

    def deny(self) -> None:
        self.state = PermissionState.DENIED


def consent_prompt(enabled: bool) -> Callable[[], PermissionState]:
    """Desktop 'prompt': the operator's consent lives in configuration."""

    def _prompt() -> PermissionState:
        return PermissionState.GRANTED if enabled else PermissionState.DENIED

    return _prompt


class DesktopNotifier:
    """
    Shows OS notifications keyed by a tag.

    Re-emitting the same tag with the same body is coalesced (nothing new is
    shown); a new body under a known tag replaces the previous one.
    """

    def __init__(self, permission: NotificationPermission, app_name: str = "DineBell", timeout_s: int = 5):
        self.permission = permission
        self.app_name = app_name
        self.timeout_s = timeout_s
        self._shown: "OrderedDict[str, str]" = OrderedDict()

    def notify(self, title: str, body: str, tag: str) -> bool:
        if not self.permission.granted:
            return False
        if self._shown.get(tag) == body:
            logger.debug("[DesktopNotifier] coalesced %s", tag)
            return False
        self._remember(tag, body)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None:
            self._show(title, body)
        else:
            loop.run_in_executor(None, self._show, title, body)
        return True

    def _remember(self, tag: str, body: str) -> None:
        self._shown[tag] = body
        self._shown.move_to_end(tag)
        while len(self._shown) > MAX_REMEMBERED_TAGS:
            self._shown.popitem(last=False)

    def _show(self, title: str, body: str) -> None:
        try:
            from plyer import notification

            notification.notify(
                title=title,
                message=body,
                app_name=self.app_name,
                timeout=self.timeout_s,
            )
        except NotImplementedError:
            logger.warning("[DesktopNotifier] no notification backend on this platform, disabling")
            self.permission.deny()
        except Exception as exc:
            logger.warning("[DesktopNotifier] notification failed: %s", exc)


def build_notifier(enabled: bool, app_name: str, prompt: Optional[Callable[[], PermissionState]] = None) -> DesktopNotifier:
    permission = NotificationPermission(prompt or consent_prompt(enabled))
    return DesktopNotifier(permission, app_name=app_name)
