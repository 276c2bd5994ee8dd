"""Observable state container shared by the stores."""

from dataclasses import fields, replace
from typing import Any, Callable, Generic, List, TypeVar

S = TypeVar("S")
Listener = Callable[[Any], None]


class Store(Generic[S]):
    """Holds a dataclass state and notifies subscribers on every change."""

    def __init__(self, state: S):
        self.state = state
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_state(self, **changes: Any) -> None:
        """Replace the state with ``changes`` applied and notify listeners."""
        valid = {f.name for f in fields(self.state)}
        unknown = set(changes) - valid
        if unknown:
            raise AttributeError(f"Unknown state fields: {sorted(unknown)}")
        self.state = replace(self.state, **changes)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)
