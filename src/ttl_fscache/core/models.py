from __future__ import annotations

import typing as t
from dataclasses import dataclass

EvictionCallback = t.Callable[[str], None]
ClockFn = t.Callable[[], float]


@dataclass(frozen=True)
class Entry:
    """Read-only view of one live queue entry."""

    key: str
    expires_at: float

    def __str__(self) -> str:
        return f"[{self.key} expires_at={self.expires_at:.3f}]"
