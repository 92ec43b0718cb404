import logging
import os
import sys
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_app_data_dir() -> str:
    """
    Returns a writable directory for the session store.
    Works for both .py and PyInstaller .exe
    """
    if getattr(sys, "frozen", False):
        base = os.environ.get("APPDATA") or os.path.expanduser("~")
        app_dir = os.path.join(base, "DineBell")
    else:
        app_dir = os.path.join(os.path.expanduser("~"), ".dinebell")

    os.makedirs(app_dir, exist_ok=True)
    return app_dir


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DINEBELL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "DineBell"
    log_level: str = "INFO"

    # -------- backend --------
    api_base_url: str = "http://localhost/backend/api"
    api_token: str = ""
    endpoint_suffix: str = ""
    request_timeout_s: float = 10.0

    # -------- cadences (milliseconds) --------
    notification_poll_ms: int = Field(5000, gt=0)
    order_poll_ms: int = Field(5000, gt=0)
    subscription_poll_ms: int = Field(2000, gt=0)
    toast_ttl_ms: int = Field(8000, gt=0)

    # -------- alerts --------
    sound_enabled: bool = True
    sound_asset: str = "notification.wav"
    os_notifications: bool = True
    locale: str = "en"
    currency: str = "EGP"

    # -------- subscription --------
    expiry_warning_days: int = 7
    support_whatsapp: str = ""

    data_dir: str = Field("", validate_default=True)

    @field_validator("locale", mode="before")
    @classmethod
    def _known_locale(cls, value: str) -> str:
        value = (value or "en").strip().lower()
        return value if value in ("en", "ar") else "en"

    @field_validator("data_dir", mode="before")
    @classmethod
    def _default_data_dir(cls, value: str) -> str:
        if value and str(value).strip():
            return str(value)
        return get_app_data_dir()

    @property
    def sound_asset_path(self) -> str:
        if os.path.isabs(self.sound_asset):
            return self.sound_asset
        return os.path.join(self.data_dir, self.sound_asset)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
