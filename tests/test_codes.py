"""Tests for code-list resolution and caching."""

import asyncio

import pytest

from monarch_grid.codes import CodeListCache, OptionResolver, clear_code_cache, shared_code_cache
from monarch_grid.errors import OptionResolutionError
from monarch_grid.models import CodeOption


class GatedFetcher:
    """Code fetcher that blocks until released and counts calls per group."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.release = asyncio.Event()
        self.failing: set[str] = set()

    async def __call__(self, group: str) -> list[CodeOption]:
        self.calls.append(group)
        await self.release.wait()
        if group in self.failing:
            raise OptionResolutionError(f"{group} unavailable")
        return [CodeOption(value=f"{group}-1", label="One")]


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_fetch():
    """Two requesters before the first resolves cause one fetch."""
    fetcher = GatedFetcher()
    resolver = OptionResolver(fetcher, CodeListCache())

    first = asyncio.ensure_future(resolver.resolve("STATUS"))
    second = asyncio.ensure_future(resolver.resolve("STATUS"))
    await asyncio.sleep(0)
    fetcher.release.set()
    a, b = await asyncio.gather(first, second)

    assert fetcher.calls == ["STATUS"]
    assert a is b
    assert a == [CodeOption(value="STATUS-1", label="One")]


@pytest.mark.asyncio
async def test_resolved_group_is_cached():
    fetcher = GatedFetcher()
    fetcher.release.set()
    cache = CodeListCache()
    resolver = OptionResolver(fetcher, cache)

    await resolver.resolve("STATUS")
    await resolver.resolve("STATUS")
    await OptionResolver(fetcher, cache).resolve("STATUS")

    assert fetcher.calls == ["STATUS"]
    assert "STATUS" in cache


@pytest.mark.asyncio
async def test_failure_is_isolated_and_retryable():
    fetcher = GatedFetcher()
    fetcher.failing.add("BROKEN")
    fetcher.release.set()
    resolver = OptionResolver(fetcher, CodeListCache())

    resolved = await resolver.resolve_many(["BROKEN", "STATUS", "BROKEN"])

    assert resolved["BROKEN"] == []
    assert len(resolved["STATUS"]) == 1
    assert "BROKEN" not in resolver.cache
    assert resolver.cache.pending("BROKEN") is None

    fetcher.failing.clear()
    assert len(await resolver.resolve("BROKEN")) == 1
    assert fetcher.calls.count("BROKEN") == 2


@pytest.mark.asyncio
async def test_clear_forces_refetch():
    fetcher = GatedFetcher()
    fetcher.release.set()
    cache = CodeListCache()
    resolver = OptionResolver(fetcher, cache)

    await resolver.resolve("STATUS")
    cache.clear()
    await resolver.resolve("STATUS")

    assert fetcher.calls == ["STATUS", "STATUS"]


def test_clear_code_cache_empties_shared_cache():
    shared_code_cache.store("TEMP", [CodeOption(value="x", label="X")])
    clear_code_cache()
    assert "TEMP" not in shared_code_cache
    assert len(shared_code_cache) == 0
