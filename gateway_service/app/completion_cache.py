"""자동완성 후보 목록을 짧게 기억하는 TTL 캐시예요.

모든 세션이 같은 인스턴스를 공유해요. 사용자마다 보이는 목록이 다를 수 있는
호출부는 `cache_key(..., scope=...)`로 사용자 식별자를 키에 넣어야 해요.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

DEFAULT_TTL_SECONDS = 30 * 60
DISCOVERY_TTL_SECONDS = 10 * 60


@dataclass(slots=True, frozen=True)
class CompletionCacheEntry:
    key: str
    values: list[str]
    stored_at: float
    expires_at: float


def cache_key(*parts: str, scope: str | None = None) -> str:
    """``vault:policies`` 같은 캐시 키를 만들어요. ``scope``가 있으면 ``@scope``를 붙여요."""
    key = ":".join(part for part in parts if part)
    if scope:
        return f"{key}@{scope}"
    return key


class CompletionCache:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, CompletionCacheEntry] = {}

    def get(self, key: str) -> list[str] | None:
        """만료되지 않은 값만 돌려줘요. 만료된 항목은 이 시점에 지워요."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.values

    def set(self, key: str, values: list[str], ttl_seconds: float = DEFAULT_TTL_SECONDS) -> list[str]:
        """값을 저장하고 입력을 그대로 돌려줘요."""
        now = self._clock()
        self._entries[key] = CompletionCacheEntry(
            key=key,
            values=values,
            stored_at=now,
            expires_at=now + ttl_seconds,
        )
        return values

    def invalidate(self, prefix: str) -> int:
        """``prefix``로 시작하는 키를 모두 지우고 지운 개수를 반환해요."""
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, object]:
        now = self._clock()
        return {
            "size": len(self._entries),
            "entries": [
                {
                    "key": entry.key,
                    "age_seconds": round(now - entry.stored_at, 3),
                    "ttl_seconds": round(entry.expires_at - entry.stored_at, 3),
                    "expired": now >= entry.expires_at,
                }
                for entry in self._entries.values()
            ],
        }

    def __len__(self) -> int:
        return len(self._entries)
