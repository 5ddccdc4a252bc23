"""
Runtime settings, read from the environment.

A ``.env`` file in the working directory (or the path given to
``load_settings``) is loaded first with python-dotenv, so local secrets and
engine URLs need no manual ``export``. Real environment variables win over
the file.

    RULEGRAPH_ENGINE_URL            base URL of the evaluation engine ("" disables testing)
    RULEGRAPH_ENGINE_TIMEOUT        seconds per test request            (10)
    RULEGRAPH_HISTORY_SIZE          undo entries kept                   (50)
    RULEGRAPH_HISTORY_DEBOUNCE_MS   push debounce window                (100)
    RULEGRAPH_LOGIC_SLOTS           input slots on a new logic node     (3)
    RULEGRAPH_REQUIRE_METADATA      name/code/event type needed to save (true)
    RULEGRAPH_LOG_LEVEL             logging level                       (INFO)
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    engine_url: str = ""
    engine_timeout: float = 10.0
    history_size: int = 50
    history_debounce_ms: float = 100.0
    logic_slots: int = 3
    require_metadata: bool = True
    log_level: str = "INFO"


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def settings_from_env(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    log_level = env.get("RULEGRAPH_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"RULEGRAPH_LOG_LEVEL is not a logging level: {log_level!r}")

    return Settings(
        engine_url=env.get("RULEGRAPH_ENGINE_URL", "").strip(),
        engine_timeout=_get_float(env, "RULEGRAPH_ENGINE_TIMEOUT", 10.0),
        history_size=_get_int(env, "RULEGRAPH_HISTORY_SIZE", 50, minimum=1),
        history_debounce_ms=_get_float(env, "RULEGRAPH_HISTORY_DEBOUNCE_MS", 100.0),
        logic_slots=_get_int(env, "RULEGRAPH_LOGIC_SLOTS", 3, minimum=1),
        require_metadata=_get_bool(env, "RULEGRAPH_REQUIRE_METADATA", True),
        log_level=log_level,
    )


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    load_dotenv(dotenv_path)
    return settings_from_env()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
