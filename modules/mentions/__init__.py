"""Mention map persistence, announcement presets and broadcast templates."""

from __future__ import annotations

__all__ = ["presets", "store", "templates"]
