"""
Building blocks shared by the RBAC state managers.

A manager owns its state and is the only writer of it. UI collaborators
read snapshots and subscribe to change notifications instead of reaching
into the manager's maps.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class LoadingTracker:
    """Per-operation-class loading flags backed by in-flight counters.

    Names listed in ``pending`` report loading until their first ``finish``
    (or ``clear``), which mirrors "nothing has been fetched yet".
    """

    def __init__(self, names: Iterable[str], pending: Iterable[str] = ()):
        self._counts: Dict[str, int] = {name: 0 for name in names}
        self._pending = set(pending)

    def start(self, name: str) -> None:
        self._counts[name] += 1

    def finish(self, name: str) -> None:
        self._counts[name] = max(0, self._counts[name] - 1)
        self._pending.discard(name)

    def clear(self, name: str) -> None:
        self._pending.discard(name)

    def is_loading(self, name: str) -> bool:
        return self._counts[name] > 0 or name in self._pending

    def as_dict(self) -> Dict[str, bool]:
        return {name: self.is_loading(name) for name in self._counts}


class InFlight:
    """Share one running coroutine between concurrent callers asking for the same key"""

    def __init__(self):
        self._tasks: Dict[Hashable, asyncio.Future] = {}

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task

            def _forget(done: asyncio.Future, key: Hashable = key) -> None:
                if self._tasks.get(key) is done:
                    del self._tasks[key]

            task.add_done_callback(_forget)
        return await asyncio.shield(task)

    async def wait(self, key: Hashable) -> None:
        """Wait for a running coroutine of this key, if there is one"""
        task = self._tasks.get(key)
        if task is not None:
            await asyncio.shield(task)


class StateStore:
    """Change notification plus one lock per cache map"""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._locks: Dict[str, asyncio.Lock] = {}

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback invoked with the store after every state change; returns an unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.exception(f"State listener {listener!r} failed: {e}")

    def lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock
