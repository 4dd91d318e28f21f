from __future__ import annotations

import asyncio

import pytest

from insanus_notes.autosave import AutosaveScheduler
from insanus_notes.store.file_store import FileEntityStore


class FakeClock:
    """Drives AutosaveScheduler timers by hand instead of wall-clock time."""

    def __init__(self) -> None:
        self.now = 0.0
        self._waiters: list[tuple[float, asyncio.Future]] = []

    async def sleep(self, delay: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append((self.now + delay, fut))
        await fut

    async def advance(self, dt: float) -> None:
        # let freshly scheduled tasks register their sleeps first
        await settle()
        self.now += dt
        remaining = []
        for deadline, fut in self._waiters:
            if fut.done():
                continue
            if deadline <= self.now + 1e-9:
                fut.set_result(None)
            else:
                remaining.append((deadline, fut))
        self._waiters = remaining
        await settle()


async def settle(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock: FakeClock) -> AutosaveScheduler:
    return AutosaveScheduler(1.5, sleep=clock.sleep)


@pytest.fixture
def store(tmp_path) -> FileEntityStore:
    return FileEntityStore(tmp_path)
