"""Model-list cache: immutable per-provider entries with expiry tracking."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from taskwerk_ai.providers.models import Model

#: Placeholder entries local backends return when they have nothing to serve.
#: Lists containing them are never cached, so the next call asks the backend again.
SENTINEL_MODEL_IDS = frozenset({"no-models", "connection-error"})


def _consume_exception(fut: asyncio.Future[Any]) -> None:
    if not fut.cancelled():
        fut.exception()


@dataclass(frozen=True)
class CachedModels:
    """One provider's model list and the clock reading it expires at."""

    models: tuple[Model, ...]
    expires_at: float


@dataclass
class ModelListCache:
    """Per-provider model lists, valid for ``ttl_s`` seconds.

    Entries are replaced whole, never mutated, so a reader always sees one
    complete list. Concurrent misses for the same provider share a single
    fetch. ``clock`` is injectable for tests.
    """

    ttl_s: float = 300.0
    clock: Callable[[], float] = time.monotonic
    _entries: dict[str, CachedModels] = field(default_factory=dict)
    _inflight: dict[str, asyncio.Future[tuple[Model, ...]]] = field(default_factory=dict)
    _generation: dict[str, int] = field(default_factory=dict)

    def get(self, name: str) -> tuple[Model, ...] | None:
        """Return the cached list for *name* unless missing or expired."""
        entry = self._entries.get(name)
        if entry is None:
            return None
        if self.clock() >= entry.expires_at:
            self._entries.pop(name, None)
            return None
        return entry.models

    def set(self, name: str, models: Sequence[Model]) -> None:
        """Store *models* for *name*; a zero TTL disables caching."""
        if self.ttl_s <= 0:
            return
        self._entries[name] = CachedModels(tuple(models), self.clock() + self.ttl_s)

    def invalidate(self, name: str | None = None) -> None:
        """Drop one provider's entry, or every entry when *name* is None."""
        names = [name] if name is not None else [*self._entries, *self._inflight]
        for n in names:
            self._entries.pop(n, None)
            self._generation[n] = self._generation.get(n, 0) + 1

    async def get_or_fetch(
        self,
        name: str,
        fetch: Callable[[], Awaitable[Sequence[Model]]],
    ) -> list[Model]:
        """Return the cached list, or run *fetch* once and cache its result."""
        cached = self.get(name)
        if cached is not None:
            return list(cached)

        pending = self._inflight.get(name)
        if pending is not None:
            return list(await asyncio.shield(pending))

        fut: asyncio.Future[tuple[Model, ...]] = (
            asyncio.get_running_loop().create_future()
        )
        fut.add_done_callback(_consume_exception)
        self._inflight[name] = fut
        generation = self._generation.get(name, 0)
        try:
            models = tuple(await fetch())
        except asyncio.CancelledError:
            fut.cancel()
            raise
        except Exception as e:
            fut.set_exception(e)
            raise
        finally:
            self._inflight.pop(name, None)

        # A config change while fetching makes this result stale.
        if (
            models
            and generation == self._generation.get(name, 0)
            and not any(m.id in SENTINEL_MODEL_IDS for m in models)
        ):
            self.set(name, models)
        fut.set_result(models)
        return list(models)
