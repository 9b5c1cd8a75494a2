"""
Observable state container.

A Store holds one immutable pydantic state object. Every change builds a
new object with model_copy and replaces the old one wholesale, then
notifies subscribers with the new state. Readers never see a half-updated
object.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

S = TypeVar("S", bound=BaseModel)

Listener = Callable[[Any], None]


class Store(Generic[S]):
    """Holds a state object and publishes every replacement to subscribers."""

    def __init__(self, state: S):
        self._state = state
        self._listeners: list[Listener] = []

    @property
    def state(self) -> S:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with the new state after every change.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set(self, **changes: Any) -> S:
        """Replace the state with a copy carrying `changes`, then notify."""
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state
