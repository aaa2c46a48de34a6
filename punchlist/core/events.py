from typing import Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")


class Subscription:
    """Cancellation handle returned by every subscribe/watch call."""

    def __init__(self, cancel: Optional[Callable[[], None]] = None):
        self._cancel = cancel
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._cancel is not None:
            self._cancel()
            self._cancel = None

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()


class EventEmitter(Generic[T]):
    """
    Synchronous fan-out of events to listeners, in subscription order.

    Listeners registered or cancelled during an emit take effect on the next
    emit.
    """

    def __init__(self) -> None:
        self._listeners: List[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Subscription:
        self._listeners.append(listener)

        def _remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_remove)

    def emit(self, event: T) -> None:
        for listener in list(self._listeners):
            listener(event)

    def __len__(self) -> int:
        return len(self._listeners)
