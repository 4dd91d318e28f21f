"""
Debounced autosave.

One scheduler is owned by each editing session. Every edit re-arms a timer
for its target key; when a timer runs out the latest payload for that key is
committed once. Keys are independent, so saving the note body never cancels a
pending property write and vice versa.

Typical usage:
    scheduler = AutosaveScheduler(delay_s=1.5)
    scheduler.schedule("note:abc", {"title": "Hi"}, commit=save_note, on_success=apply)
    ...
    scheduler.cancel_all()  # on teardown
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from insanus_notes.domain.exceptions import StoreError

logger = logging.getLogger("insanus.autosave")

DEFAULT_DELAY_S = 1.5

Commit = Callable[[Any], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]


class AutosaveScheduler:
    def __init__(self, delay_s: float = DEFAULT_DELAY_S, *, sleep: Optional[Sleep] = None) -> None:
        self.delay_s = delay_s
        self._sleep: Sleep = sleep or asyncio.sleep
        self._pending: dict[str, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()
        self._saving: set[str] = set()
        # one write per key at a time
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def schedule(
        self,
        key: str,
        payload: Any,
        commit: Commit,
        on_success: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[StoreError], None]] = None,
    ) -> None:
        """(Re)arm the timer for ``key``; must be called from a running event loop."""
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(
            self._run(key, payload, commit, on_success, on_error)
        )
        self._pending[key] = task

    async def _run(self, key, payload, commit, on_success, on_error) -> None:
        await self._sleep(self.delay_s)

        # Past this point the write is committed to; later edits arm a new timer.
        task = asyncio.current_task()
        if self._pending.get(key) is task:
            del self._pending[key]
        self._inflight.add(task)
        lock = self._lock(key)
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                await self._commit(key, payload, commit, on_success, on_error)
        finally:
            self._inflight.discard(task)
            self._release_lock(key)

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def _release_lock(self, key: str) -> None:
        users = self._lock_users[key] - 1
        if users:
            self._lock_users[key] = users
        else:
            del self._lock_users[key]
            del self._locks[key]

    async def _commit(self, key, payload, commit, on_success, on_error) -> None:
        self._saving.add(key)
        try:
            result = await commit(payload)
        except StoreError as e:
            logger.warning("autosave_failed", extra={"key": key, "error": e.message})
            if on_error is not None:
                on_error(e)
        else:
            logger.info("autosave_commit", extra={"key": key})
            if on_success is not None:
                on_success(result)
        finally:
            self._saving.discard(key)

    def cancel(self, key: str) -> bool:
        task = self._pending.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_matching(self, predicate: Callable[[str], bool]) -> list[str]:
        keys = [k for k in self._pending if predicate(k)]
        for key in keys:
            self.cancel(key)
        if keys:
            logger.info("autosave_discarded", extra={"keys": keys})
        return keys

    def cancel_all(self) -> None:
        self.cancel_matching(lambda _key: True)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def is_saving(self, key: str) -> bool:
        return key in self._saving

    def saving_keys(self) -> list[str]:
        return list(self._saving)

    def pending_keys(self) -> list[str]:
        return list(self._pending)

    async def drain(self) -> None:
        """Wait for writes that already left the debounce window."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
