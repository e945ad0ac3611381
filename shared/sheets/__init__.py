"""Helpers for working with Google Sheets (import side-effect free)."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = [
    "async_adapter",
    "core",
    "get_client",
    "grants",
    "kv",
]

_LAZY_MODULES = {
    "async_adapter": "shared.sheets.async_adapter",
    "core": "shared.sheets.core",
    "grants": "shared.sheets.grants",
    "kv": "shared.sheets.kv",
}

_LAZY_ATTRS = {
    "get_client": ("shared.sheets.core", "get_client"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_MODULES:
        module = importlib.import_module(_LAZY_MODULES[name])
        globals()[name] = module
        return module
    if name in _LAZY_ATTRS:
        module_name, attr_name = _LAZY_ATTRS[name]
        module = importlib.import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'shared.sheets' has no attribute {name!r}")


def __dir__() -> list[str]:
    exported = {name for name in globals() if not name.startswith("_")}
    exported.update(__all__)
    return sorted(exported)
