"""Code-list resolution for ``select`` filters.

A :class:`CodeListCache` holds resolved code groups plus the registry of
in-flight lookups.  One cache is created per process
(:data:`shared_code_cache`) and injected into every
:class:`OptionResolver`, so all grids share resolved lists and concurrent
requests for the same group collapse into one fetch.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable

from reflex.utils import console

from monarch_grid.errors import OptionResolutionError
from monarch_grid.models import CodeOption

CodeFetcher = Callable[[str], Awaitable[list[CodeOption]]]


class CodeListCache:
    """Resolved code groups and in-flight lookups, keyed by code group."""

    def __init__(self) -> None:
        self._resolved: dict[str, list[CodeOption]] = {}
        self._pending: dict[str, asyncio.Task[list[CodeOption]]] = {}

    def get(self, group: str) -> list[CodeOption] | None:
        return self._resolved.get(group)

    def store(self, group: str, options: list[CodeOption]) -> None:
        self._resolved[group] = options

    def pending(self, group: str) -> asyncio.Task[list[CodeOption]] | None:
        return self._pending.get(group)

    def track(self, group: str, task: asyncio.Task[list[CodeOption]]) -> None:
        self._pending[group] = task

    def release(self, group: str) -> None:
        self._pending.pop(group, None)

    def clear(self) -> None:
        """Forget every resolved group.  In-flight lookups still complete."""
        self._resolved.clear()

    def __contains__(self, group: object) -> bool:
        return group in self._resolved

    def __len__(self) -> int:
        return len(self._resolved)


shared_code_cache = CodeListCache()


def clear_code_cache() -> None:
    """Drop all cached code lists (e.g. after the host edits common codes)."""
    shared_code_cache.clear()
    console.info("[CodeList] Cache cleared")


class OptionResolver:
    """Resolve code groups through *fetcher*, deduplicating and caching results.

    A failed group resolves to an empty list and is not cached, so the next
    request for it fetches again.
    """

    def __init__(self, fetcher: CodeFetcher, cache: CodeListCache | None = None) -> None:
        self._fetcher = fetcher
        self.cache = cache if cache is not None else CodeListCache()

    async def resolve(self, group: str) -> list[CodeOption]:
        cached = self.cache.get(group)
        if cached is not None:
            return cached
        task = self.cache.pending(group)
        if task is None:
            task = asyncio.ensure_future(self._fetch(group))
            self.cache.track(group, task)
        # Shield so a cancelled requester does not cancel the shared lookup.
        return await asyncio.shield(task)

    async def resolve_many(self, groups: Iterable[str]) -> dict[str, list[CodeOption]]:
        """Resolve several groups concurrently; failures map to ``[]``."""
        unique = list(dict.fromkeys(group for group in groups if group))
        results = await asyncio.gather(*(self.resolve(group) for group in unique))
        return dict(zip(unique, results))

    async def _fetch(self, group: str) -> list[CodeOption]:
        try:
            options = await self._fetcher(group)
        except OptionResolutionError as exc:
            console.warn(f"[CodeList] Failed to resolve code group {group!r}: {exc}")
            return []
        finally:
            self.cache.release(group)
        self.cache.store(group, options)
        console.debug(f"[CodeList] Resolved {group!r}: {len(options)} options")
        return options
