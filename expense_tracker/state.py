from __future__ import annotations

from typing import Any, Callable, Generic, List, NamedTuple, TypeVar

S = TypeVar("S")

__all__ = ["Action", "StateContainer"]


class Action(NamedTuple):
    type: str
    payload: Any = None


class StateContainer(Generic[S]):
    """Single owner of a state snapshot.

    Commands go through `dispatch`, the reducer builds the next immutable
    snapshot, and every subscriber receives it when it differs from the
    previous one.
    """

    def __init__(self, initial: S, reducer: Callable[[S, Action], S]):
        self._state = initial
        self._reducer = reducer
        self._subscribers: List[Callable[[S], None]] = []

    @property
    def state(self) -> S:
        return self._state

    def dispatch(self, action: Action) -> S:
        next_state = self._reducer(self._state, action)
        if next_state == self._state:
            return self._state
        self._state = next_state
        for listener in list(self._subscribers):
            listener(next_state)
        return next_state

    def subscribe(self, listener: Callable[[S], None]) -> Callable[[], None]:
        self._subscribers.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Callable[[S], None]) -> None:
        if listener in self._subscribers:
            self._subscribers.remove(listener)
