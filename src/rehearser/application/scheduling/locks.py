"""Per-item write serialization."""

import threading
import weakref
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager


class _ItemLock:
    """A plain lock that can be referenced weakly."""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def __enter__(self) -> None:
        self._lock.acquire()

    def __exit__(self, *exc_info) -> None:
        self._lock.release()


class ItemLocks:
    """
    Registry of one lock per item.

    Writers touching the same item run one at a time; writers on different
    items proceed in parallel. Batch writers must go through ``hold`` so
    locks are always taken in the same (sorted) order.

    Entries are weak: a lock disappears once no writer holds or waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, _ItemLock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    def _lock_for(self, item_id: str) -> _ItemLock:
        with self._guard:
            lock = self._locks.get(item_id)
            if lock is None:
                lock = _ItemLock()
                self._locks[item_id] = lock
            return lock

    @contextmanager
    def hold(self, item_ids: Iterable[str]) -> Iterator[None]:
        # The list keeps every lock alive until the block exits.
        held = [self._lock_for(item_id) for item_id in sorted(set(item_ids))]
        with ExitStack() as stack:
            for lock in held:
                stack.enter_context(lock)
            yield

    def item(self, item_id: str):
        return self.hold([item_id])
