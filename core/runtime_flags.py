from __future__ import annotations

import os
import threading

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


_FLAGS_CACHE: "RuntimeFlags | None" = None
_FLAGS_SIGNATURE: tuple[tuple[str, str | None], ...] | None = None
_CACHE_LOCK = threading.Lock()

PAPER_BASE_URL = "https://paper-api.alpaca.markets"

_FALSEY = {"0", "false", "no", "off", "f", "n", ""}
_TRUEY = {"1", "true", "yes", "on", "t", "y"}


def parse_bool(value: object | None, default: bool = False) -> bool:
    """Coerce user-provided strings and booleans into a boolean."""

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip()
    if not text:
        return False
    lowered = text.lower()
    if lowered in _TRUEY:
        return True
    if lowered in _FALSEY:
        return False
    return default


def _coerce_int(value: object | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _sanitize_url(value: str | None, *, default: str) -> str:
    candidate = (value or default).strip()
    if not candidate:
        return default.rstrip("/")
    return candidate.rstrip("/")


class RuntimeFlags(BaseModel):
    """Process-level switches that live outside the trading configuration."""

    model_config = ConfigDict(frozen=True)

    log_level: str = Field(default="INFO")
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8000)
    alpaca_base_url: str | None = Field(default=None)
    alpaca_key: str | None = Field(default=None)
    alpaca_secret: str | None = Field(default=None)
    alpaca_paper: bool = Field(default=True)

    @property
    def alpaca_configured(self) -> bool:
        return bool(self.alpaca_key and self.alpaca_secret)


_SIGNATURE_KEYS = (
    "LOG_LEVEL",
    "API_HOST",
    "API_PORT",
    "ALPACA_BASE_URL",
    "APCA_API_BASE_URL",
    "ALPACA_KEY_ID",
    "ALPACA_API_KEY_ID",
    "APCA_API_KEY_ID",
    "ALPACA_SECRET_KEY",
    "ALPACA_API_SECRET_KEY",
    "APCA_API_SECRET_KEY",
    "ALPACA_PAPER",
)


def _env_signature() -> tuple[tuple[str, str | None], ...]:
    return tuple((name, os.getenv(name)) for name in _SIGNATURE_KEYS)


def _build_runtime_flags() -> RuntimeFlags:
    """Internal helper to hydrate :class:`RuntimeFlags` from the environment."""

    load_dotenv(override=False)

    raw_base = (os.getenv("ALPACA_BASE_URL") or os.getenv("APCA_API_BASE_URL") or "").strip()
    alpaca_base = _sanitize_url(raw_base, default=PAPER_BASE_URL)
    paper_default = "paper" in alpaca_base.lower()
    alpaca_key = (
        os.getenv("ALPACA_KEY_ID")
        or os.getenv("ALPACA_API_KEY_ID")
        or os.getenv("APCA_API_KEY_ID")
    )
    alpaca_secret = (
        os.getenv("ALPACA_SECRET_KEY")
        or os.getenv("ALPACA_API_SECRET_KEY")
        or os.getenv("APCA_API_SECRET_KEY")
    )
    return RuntimeFlags(
        log_level=(os.getenv("LOG_LEVEL", "INFO").strip() or "INFO").upper(),
        api_host=os.getenv("API_HOST", "127.0.0.1").strip() or "127.0.0.1",
        api_port=_coerce_int(os.getenv("API_PORT"), 8000),
        alpaca_base_url=alpaca_base if raw_base else None,
        alpaca_key=alpaca_key,
        alpaca_secret=alpaca_secret,
        alpaca_paper=parse_bool(os.getenv("ALPACA_PAPER"), default=paper_default),
    )


def get_runtime_flags() -> RuntimeFlags:
    """Return cached runtime flags, rebuilding them when the environment changes."""

    global _FLAGS_CACHE, _FLAGS_SIGNATURE
    signature = _env_signature()
    with _CACHE_LOCK:
        if _FLAGS_CACHE is None or _FLAGS_SIGNATURE != signature:
            _FLAGS_CACHE = _build_runtime_flags()
            _FLAGS_SIGNATURE = signature
        return _FLAGS_CACHE


__all__ = ["RuntimeFlags", "get_runtime_flags", "parse_bool"]
