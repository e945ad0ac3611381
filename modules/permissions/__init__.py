"""Access-grant services: storage adapters and edit sessions."""

from __future__ import annotations

__all__ = ["editor", "store"]
