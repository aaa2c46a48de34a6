import asyncio
from typing import Callable, Generic, List, Optional, Tuple, TypeVar

from punchlist.core.events import EventEmitter, Subscription

T = TypeVar("T")


class LiveSnapshot(Generic[T]):
    """
    Single mutable snapshot behind a publish/subscribe interface.

    Every publish replaces the whole value. Consumers read `current` or wait
    for a snapshot that satisfies a predicate (the confirmation of a mutation
    they just applied).
    """

    def __init__(self) -> None:
        self._value: Optional[T] = None
        self._version = 0
        self._changes: EventEmitter[T] = EventEmitter()
        self._waiters: List[Tuple[Callable[[T], bool], asyncio.Future]] = []

    @property
    def ready(self) -> bool:
        return self._version > 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def current(self) -> Optional[T]:
        return self._value

    def publish(self, value: T) -> None:
        self._value = value
        self._version += 1
        self._changes.emit(value)

        pending = []
        for predicate, fut in self._waiters:
            if fut.done():
                continue
            if predicate(value):
                fut.set_result(value)
            else:
                pending.append((predicate, fut))
        self._waiters = pending

    def subscribe(self, listener: Callable[[T], None]) -> Subscription:
        sub = self._changes.subscribe(listener)
        if self.ready:
            listener(self._value)
        return sub

    async def wait_for(self, predicate: Callable[[T], bool]) -> T:
        if self.ready and predicate(self._value):
            return self._value

        fut = asyncio.get_running_loop().create_future()
        self._waiters.append((predicate, fut))
        return await fut
