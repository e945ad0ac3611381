"""Runtime configuration helpers for the alliance HQ bot."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional, Set

__all__ = [
    "cfg",
    "reload_config",
    "get_config_snapshot",
    "require_startup_env",
    "get_env_name",
    "get_bot_name",
    "get_log_level",
    "get_discord_token",
    "get_admin_role_ids",
    "get_gspread_credentials",
    "get_grants_sheet_id",
    "get_grants_backend",
    "get_mentions_backend",
    "get_mentions_store_path",
    "get_kv_tab",
    "get_state_grants_tab",
    "get_alliance_grants_tab",
    "get_scope_users_tab",
    "get_default_state_code",
    "redact_value",
]

log = logging.getLogger("hq.config")

# ===== Config Schema (authoritative) =====
_REQUIRED_STARTUP_ENV = ("DISCORD_TOKEN",)

_MISSING_VALUE = "—"
_INT_RE = re.compile(r"\d+")

_CONFIG: Dict[str, object] = {}

_SECRET_KEYS = {"DISCORD_TOKEN", "GSPREAD_CREDENTIALS"}


def redact_value(key: str, value: object) -> str:
    """Mask secrets before a config snapshot is logged."""

    if value in (None, "", [], (), {}, set()):
        return _MISSING_VALUE
    key_upper = str(key).upper()
    if key_upper in _SECRET_KEYS or "TOKEN" in key_upper or "CREDENTIAL" in key_upper:
        return "set"
    if isinstance(value, (set, frozenset)):
        return ",".join(str(item) for item in sorted(value))
    return str(value)


def _int_set(raw: str | None) -> Set[int]:
    values: Set[int] = set()
    if not raw:
        return values
    for match in _INT_RE.finditer(raw):
        values.add(int(match.group(0)))
    return values


def _choice_env(key: str, default: str, choices: Set[str]) -> str:
    raw = (os.getenv(key) or "").strip().lower()
    if not raw:
        return default
    if raw not in choices:
        log.warning("config: %s='%s' invalid; using default %s", key, raw, default)
        return default
    return raw


def _str_env(key: str, default: str) -> str:
    return (os.getenv(key) or "").strip() or default


def _log_snapshot(snapshot: Dict[str, object]) -> None:
    redacted = {key: redact_value(key, value) for key, value in snapshot.items()}
    log.info("config loaded", extra={"config": redacted})


def _load_config() -> Dict[str, object]:
    return {
        "ENV_NAME": _str_env("ENV_NAME", "dev"),
        "BOT_NAME": _str_env("BOT_NAME", "Alliance-HQ"),
        "LOG_LEVEL": _str_env("LOG_LEVEL", "INFO").upper(),
        "DISCORD_TOKEN": os.getenv("DISCORD_TOKEN", ""),
        "ADMIN_ROLE_IDS": _int_set(os.getenv("ADMIN_ROLE_IDS")),
        "GSPREAD_CREDENTIALS": os.getenv("GSPREAD_CREDENTIALS", ""),
        "GRANTS_SHEET_ID": _str_env("GRANTS_SHEET_ID", ""),
        "GRANTS_BACKEND": _choice_env("GRANTS_BACKEND", "memory", {"memory", "sheets"}),
        "MENTIONS_BACKEND": _choice_env("MENTIONS_BACKEND", "file", {"file", "sheets"}),
        "MENTIONS_STORE_PATH": _str_env("MENTIONS_STORE_PATH", "config/hq_store.json"),
        "KV_TAB": _str_env("KV_TAB", "KV"),
        "STATE_GRANTS_TAB": _str_env("STATE_GRANTS_TAB", "StateAccessGrants"),
        "ALLIANCE_GRANTS_TAB": _str_env("ALLIANCE_GRANTS_TAB", "AllianceAccessGrants"),
        "SCOPE_USERS_TAB": _str_env("SCOPE_USERS_TAB", "ScopeUsers"),
        "DEFAULT_STATE_CODE": _str_env("DEFAULT_STATE_CODE", "789"),
    }


def reload_config() -> Dict[str, object]:
    """Reload configuration from environment and return a snapshot."""

    snapshot = _load_config()

    global _CONFIG
    _CONFIG = snapshot
    _log_snapshot(snapshot)
    return dict(_CONFIG)


reload_config()


def require_startup_env() -> None:
    """Raise when an environment variable needed to start the bot is missing."""

    for name in _REQUIRED_STARTUP_ENV:
        value = os.getenv(name)
        if value is None or str(value).strip() == "":
            raise RuntimeError(f"Missing required environment variable: {name}")


def _normalise_key(name: object) -> Optional[str]:
    if name is None:
        return None
    text = re.sub(r"[^A-Za-z0-9_]", "_", str(name).strip())
    text = re.sub(r"__+", "_", text).strip("_")
    return text.upper() or None


class _ConfigFacade:
    __slots__ = ()

    def get(self, key: object, default: object | None = None) -> object | None:
        normalised = _normalise_key(key)
        if not normalised:
            return default
        return _CONFIG.get(normalised, default)

    def __contains__(self, key: object) -> bool:  # pragma: no cover - convenience
        normalised = _normalise_key(key)
        return bool(normalised) and normalised in _CONFIG


cfg = _ConfigFacade()


def get_config_snapshot() -> Dict[str, object]:
    """Return a shallow copy of the cached config values."""

    return dict(_CONFIG)


def _str(key: str, default: str = "") -> str:
    value = _CONFIG.get(key)
    return str(value) if isinstance(value, str) and value else default


def get_env_name(default: str = "dev") -> str:
    return _str("ENV_NAME", default)


def get_bot_name(default: str = "Alliance-HQ") -> str:
    return _str("BOT_NAME", default)


def get_log_level(default: str = "INFO") -> str:
    return _str("LOG_LEVEL", default)


def get_discord_token() -> str:
    return _str("DISCORD_TOKEN")


def get_admin_role_ids() -> Set[int]:
    value = _CONFIG.get("ADMIN_ROLE_IDS")
    return set(value) if isinstance(value, set) else set()


def get_gspread_credentials() -> str:
    return _str("GSPREAD_CREDENTIALS")


def get_grants_sheet_id() -> str:
    return _str("GRANTS_SHEET_ID")


def get_grants_backend() -> str:
    return _str("GRANTS_BACKEND", "memory")


def get_mentions_backend() -> str:
    return _str("MENTIONS_BACKEND", "file")


def get_mentions_store_path() -> Path:
    return Path(_str("MENTIONS_STORE_PATH", "config/hq_store.json"))


def get_kv_tab() -> str:
    return _str("KV_TAB", "KV")


def get_state_grants_tab() -> str:
    return _str("STATE_GRANTS_TAB", "StateAccessGrants")


def get_alliance_grants_tab() -> str:
    return _str("ALLIANCE_GRANTS_TAB", "AllianceAccessGrants")


def get_scope_users_tab() -> str:
    return _str("SCOPE_USERS_TAB", "ScopeUsers")


def get_default_state_code() -> str:
    return _str("DEFAULT_STATE_CODE", "789")
