"""Finite state machine with a validated transition graph.

The graph maps each state to the actions leaving it. An action names the
target state and may carry an effect that runs after the state changed.
Requests that are not in the graph raise ``InvalidTransitionError`` and leave
the machine untouched.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from surveysim.exceptions import InvalidTransitionError

State = TypeVar("State", bound=Enum)
"""Type variable for state enumerations."""

ActionFn = Callable[..., Any]

StateGraph = dict[Enum, Iterable["Action"]]


@dataclass(frozen=True)
class Action:
    """A transition into ``state`` with an optional side effect.

    Attributes:
        state: The target state of this transition.
        effect: Called with the arguments passed to
            :meth:`StateMachine.request_transition`, after the state changed.
    """

    state: Enum
    effect: ActionFn | None = None

    def __call__(self, *args, **kwargs) -> Any:
        if self.effect:
            return self.effect(*args, **kwargs)
        return None


class StateMachine:
    """Tracks a current state and only moves along edges of its graph.

    Example:
        >>> class Door(Enum):
        ...     OPEN = 1
        ...     CLOSED = 2
        >>> sm = StateMachine(Door.CLOSED, {Door.CLOSED: [Action(Door.OPEN)]})
        >>> sm.request_transition(Door.OPEN)
        >>> sm.current
        <Door.OPEN: 1>
        >>> sm.can_transition(Door.OPEN)
        False
    """

    def __init__(self, initial_state: Enum, nodes_graph: StateGraph):
        self._state = initial_state
        self._allowed = {state: tuple(actions) for state, actions in nodes_graph.items()}

    @property
    def current(self) -> Enum:
        return self._state

    def request_transition(self, next_state: Enum, *args, **kwargs) -> Any:
        """Move to ``next_state`` and run the transition's effect.

        Returns:
            Whatever the action's effect returns, or None.

        Raises:
            InvalidTransitionError: If the graph has no edge from the current
                state to ``next_state``.
        """
        action = self._validate_transition(self._state, next_state)
        self._state = action.state
        return action(*args, **kwargs)

    def can_transition(self, next_state: Enum) -> bool:
        return self._find_action(self._state, next_state) is not None

    def allowed_from(self, state: Enum) -> frozenset:
        """Target states reachable in one step from ``state``."""
        return frozenset(action.state for action in self._allowed.get(state, ()))

    def _find_action(self, frm: Enum, to: Enum) -> Action | None:
        for action in self._allowed.get(frm, ()):
            if action.state == to:
                return action
        return None

    def _validate_transition(self, frm: Enum, to: Enum) -> Action:
        action = self._find_action(frm, to)
        if action is None:
            raise InvalidTransitionError(frm, to)
        return action
