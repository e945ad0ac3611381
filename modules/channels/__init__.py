"""State Discord channel directory."""

from __future__ import annotations

__all__ = ["directory"]
