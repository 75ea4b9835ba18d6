"""
Wizard runtime configuration.

Settings are resolved once from environment variables and cached. Call
clear_settings_cache() after changing the environment (tests do this).

Priority order:
1. Explicit environment variables (WIZARD_*, OPENAI_API_KEY, TAVILY_API_KEY)
2. ENV mode defaults (dev vs prod)
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

StoreKind = Literal["json", "memory"]
ModelTier = Literal["default", "strong", "vision"]

DEFAULT_DB_PATH = Path("data") / "wizard_sessions.json"
DEFAULT_MAX_TOOL_STEPS = 10

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class WizardSettings:
    """Current wizard settings."""

    env: str
    deterministic_enabled: bool
    default_model: str
    strong_model: str
    vision_model: str
    max_tool_steps: int
    store: StoreKind
    db_path: Path
    timezone: str
    openai_api_key: Optional[str]
    tavily_api_key: Optional[str]
    fetch_timeout: float

    @property
    def is_dev(self) -> bool:
        return self.env in ("dev", "development", "local")

    @property
    def tzinfo(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError:
            return ZoneInfo("UTC")

    def model_for(self, tier: ModelTier) -> str:
        if tier == "strong":
            return self.strong_model
        if tier == "vision":
            return self.vision_model
        return self.default_model


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def _int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


_cached_settings: Optional[WizardSettings] = None


def get_settings(*, force_reload: bool = False) -> WizardSettings:
    """
    Get the current wizard configuration.

    Deterministic resolution for the party-info and guests steps is on unless
    WIZARD_DETERMINISTIC_ENABLED is set to a falsy value.
    """
    global _cached_settings

    if _cached_settings is not None and not force_reload:
        return _cached_settings

    env = os.getenv("ENV", "prod").lower()
    is_dev = env in ("dev", "development", "local")
    store = os.getenv("WIZARD_STORE", "memory" if is_dev else "json").lower()
    if store not in ("json", "memory"):
        store = "json"

    _cached_settings = WizardSettings(
        env=env,
        deterministic_enabled=_flag("WIZARD_DETERMINISTIC_ENABLED", True),
        default_model=os.getenv("WIZARD_MODEL_DEFAULT", "gpt-4.1-mini"),
        strong_model=os.getenv("WIZARD_MODEL_STRONG", "gpt-4.1"),
        vision_model=os.getenv("WIZARD_MODEL_VISION", "gpt-4.1-mini"),
        max_tool_steps=max(1, _int("WIZARD_MAX_TOOL_STEPS", DEFAULT_MAX_TOOL_STEPS)),
        store=store,  # type: ignore[arg-type]
        db_path=Path(os.getenv("WIZARD_DB_PATH", str(DEFAULT_DB_PATH))),
        timezone=os.getenv("WIZARD_TIMEZONE", "UTC"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        tavily_api_key=os.getenv("TAVILY_API_KEY") or None,
        fetch_timeout=_float("WIZARD_FETCH_TIMEOUT", 20.0),
    )
    return _cached_settings


def clear_settings_cache() -> None:
    """Clear the cached settings. Call after environment changes."""
    global _cached_settings
    _cached_settings = None


__all__ = [
    "WizardSettings",
    "ModelTier",
    "get_settings",
    "clear_settings_cache",
]
