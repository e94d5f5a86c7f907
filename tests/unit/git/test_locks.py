"""Tests for per-repository locks."""

from __future__ import annotations

import asyncio

import pytest

from gitsync.git.locks import RepositoryLocks, default_locks, with_lock


@pytest.fixture
def locks() -> RepositoryLocks:
    return RepositoryLocks()


async def _step(log: list[str], name: str) -> None:
    log.append(f"{name}:start")
    await asyncio.sleep(0.01)
    log.append(f"{name}:end")


class TestRepositoryLocks:
    @pytest.mark.asyncio
    async def test_same_key_runs_sequentially(self, locks: RepositoryLocks) -> None:
        log: list[str] = []

        await asyncio.gather(
            with_lock("app", lambda: _step(log, "first"), locks),
            with_lock("app", lambda: _step(log, "second"), locks),
        )

        assert log == ["first:start", "first:end", "second:start", "second:end"]

    @pytest.mark.asyncio
    async def test_different_keys_overlap(self, locks: RepositoryLocks) -> None:
        log: list[str] = []

        await asyncio.gather(
            with_lock("one", lambda: _step(log, "one"), locks),
            with_lock("two", lambda: _step(log, "two"), locks),
        )

        assert log[:2] == ["one:start", "two:start"]

    @pytest.mark.asyncio
    async def test_entries_are_released(self, locks: RepositoryLocks) -> None:
        async with locks.acquire("app"):
            assert locks.is_locked("app")
            assert len(locks) == 1

        assert not locks.is_locked("app")
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_failure_releases_lock(self, locks: RepositoryLocks) -> None:
        async def boom() -> None:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await with_lock("app", boom, locks)

        assert len(locks) == 0
        assert await with_lock("app", lambda: asyncio.sleep(0, result="ok"), locks) == "ok"

    @pytest.mark.asyncio
    async def test_waiters_keep_entry_alive(self, locks: RepositoryLocks) -> None:
        release = asyncio.Event()

        async def holder() -> None:
            await release.wait()

        first = asyncio.create_task(with_lock("app", holder, locks))
        await asyncio.sleep(0)
        second = asyncio.create_task(with_lock("app", holder, locks))
        await asyncio.sleep(0)

        assert len(locks) == 1
        release.set()
        await asyncio.gather(first, second)
        assert len(locks) == 0


@pytest.mark.asyncio
async def test_default_registry_is_used() -> None:
    result = await with_lock(("repo", 42), lambda: asyncio.sleep(0, result=7))

    assert result == 7
    assert not default_locks.is_locked(("repo", 42))
