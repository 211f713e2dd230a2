"""
Finite-state-machine combinator for pipelines.

Declare per-state transition rules with an immutable builder, then attach
them with `Pipeline.fsm(initial, build)`:

    from pipefold import Pipeline, TryEffect
    from pipefold.fsm import State, InitialState, goto, stay
    from pipefold.dsl import case

    doors = Pipeline.of(2, 9).fsm(
        InitialState.pure(State(Door.OPENED, {})),
        lambda b: (
            b.when(Door.OPENED,
                   case(lambda i: i % 2 == 0,
                        lambda i: goto(Door.CLOSED)
                            .modify_key(Door.OPENED, lambda n: n + 1, default=0)
                            .push_with(lambda d: d[Door.OPENED])))
             .when(Door.CLOSED,
                   case(lambda i: i % 3 == 0,
                        lambda i: goto(Door.OPENED)
                            .modify_key(Door.CLOSED, lambda n: n + 1, default=0)
                            .spam(lambda d: [d[Door.CLOSED]] * 10)))
             .when_undefined(lambda i: goto(Door.CLOSED).change({}).dont_push())
        ),
    )

Each element is processed exactly once, in encounter order: the current
state is read, the rule for its name (or the fallback) yields a Transition,
the new state is committed, and the Transition's outputs are emitted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Generic, Iterable, Mapping, Optional, Tuple, TypeVar, Union

from .dsl.catpy import Case, Just, PartialFunction, compose, identity
from .dsl.effects import Effect
from .exceptions import FSMError, NoMatchingTransitionError

logger = logging.getLogger(__name__)

N = TypeVar("N")
D = TypeVar("D")


# =============================================================================
# State
# =============================================================================

@dataclass(frozen=True)
class State(Generic[N, D]):
    """A named state with its data.

    ::: This is-in-layer State-Machine-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """
    name: N
    data: D


class InitialState:
    """
    How the first state is obtained: a fixed value, or derived from the first
    element observed by the evaluation.
    """

    __slots__ = ("_state", "_from_first")

    def __init__(self, state: Optional[State] = None,
                 from_first: Optional[Callable[[Any], State]] = None):
        if (state is None) == (from_first is None):
            raise ValueError("InitialState needs exactly one of state or from_first")
        self._state = state
        self._from_first = from_first

    @classmethod
    def pure(cls, state: State) -> "InitialState":
        return cls(state=state)

    @classmethod
    def from_first_element(cls, f: Callable[[Any], State]) -> "InitialState":
        return cls(from_first=f)

    @classmethod
    def coerce(cls, value: Any) -> "InitialState":
        """Accept an InitialState, a State, or a first-element function."""
        if isinstance(value, InitialState):
            return value
        if isinstance(value, State):
            return cls.pure(value)
        if callable(value):
            return cls.from_first_element(value)
        raise TypeError(f"Cannot build an initial state from {type(value).__name__}")

    def materialize(self, first_element: Any) -> State:
        if self._state is not None:
            return self._state
        state = self._from_first(first_element)
        if not isinstance(state, State):
            raise FSMError(f"Initial state function returned {type(state).__name__}, expected State")
        return state

    def __repr__(self) -> str:
        if self._state is not None:
            return f"InitialState.pure({self._state!r})"
        return "InitialState.from_first_element(...)"


# =============================================================================
# Transition actions
# =============================================================================

class _Stay:
    def __repr__(self) -> str:
        return "stay"


STAY = _Stay()

# (effect, new_data) -> F[list of outputs]
Outputs = Callable[[Effect, Any], Any]


def _no_outputs(effect: Effect, data: Any) -> Any:
    return effect.pure([])


@dataclass(frozen=True)
class Transition:
    """
    What processing one element does: the next state name, how the state
    data changes, and which outputs are emitted.

    Output functions receive the *new* state data. Each output method
    replaces any previously declared outputs.

    ::: This is-in-layer State-Machine-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """
    next_name: Any = STAY
    update: Callable[[Any], Any] = identity
    outputs: Outputs = _no_outputs

    # -------------------------------------------------------------------------
    # State data
    # -------------------------------------------------------------------------

    def modify(self, f: Callable[[D], D]) -> "Transition":
        """Apply `f` to the state data (after any earlier modification)."""
        return replace(self, update=compose(f, self.update))

    def modify_key(self, key: Any, f: Callable[[Any], Any], default: Any = None) -> "Transition":
        """Replace `data[key]` with `f(data.get(key, default))` in a copy of the mapping."""
        def update_key(data: Mapping) -> Dict:
            updated = dict(data)
            updated[key] = f(data.get(key, default))
            return updated
        return self.modify(update_key)

    def change(self, data: Any) -> "Transition":
        """Replace the state data outright."""
        return replace(self, update=lambda _: data)

    # -------------------------------------------------------------------------
    # Outputs
    # -------------------------------------------------------------------------

    def push(self, value: Any) -> "Transition":
        return replace(self, outputs=lambda F, data: F.pure([value]))

    def push_with(self, f: Callable[[Any], Any]) -> "Transition":
        return replace(self, outputs=lambda F, data: F.delay(lambda: [f(data)]))

    def push_effect(self, f: Callable[[Any], Any]) -> "Transition":
        """`f(data)` returns a value of the evaluating effect."""
        return replace(
            self,
            outputs=lambda F, data: F.map(F.defer(lambda: f(data)), lambda value: [value]),
        )

    def spam(self, f: Callable[[Any], Iterable[Any]]) -> "Transition":
        """Emit every value of `f(data)` for this element."""
        return replace(self, outputs=lambda F, data: F.delay(lambda: list(f(data))))

    def dont_push(self) -> "Transition":
        return replace(self, outputs=_no_outputs)

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------

    def apply(self, state: State) -> State:
        name = state.name if self.next_name is STAY else self.next_name
        return State(name, self.update(state.data))


def goto(name: Any) -> Transition:
    """A transition to state `name`."""
    return Transition(next_name=name)


def stay() -> Transition:
    """A transition keeping the current state name."""
    return Transition()


# =============================================================================
# Rule table builder
# =============================================================================

Rule = Union[PartialFunction, Case]


class FSMBuilder:
    """
    Immutable rule-table builder.

    Starts empty; each `when(name, ...)` returns a new builder with the rule
    for `name` replaced (last registration wins). `when_undefined(fn)` sets
    the fallback used when no rule matches; without one an unmatched
    element fails with NoMatchingTransitionError.

    ::: This is-in-layer State-Machine-Layer.
    ::: This is a builder.
    ::: This is stateless.
    """

    __slots__ = ("_rules", "_fallback")

    def __init__(self, rules: Optional[Mapping[Any, PartialFunction]] = None,
                 fallback: Optional[Callable[[Any], Transition]] = None):
        self._rules: Dict[Any, PartialFunction] = dict(rules or {})
        self._fallback = fallback

    @classmethod
    def empty(cls) -> "FSMBuilder":
        return cls()

    def when(self, state_name: Any, *rules: Rule) -> "FSMBuilder":
        """Register the rule for `state_name`: a PartialFunction or ordered Cases."""
        if not rules:
            raise ValueError(f"when({state_name!r}) needs at least one case")
        if len(rules) == 1:
            pf = PartialFunction.coerce(rules[0])
        else:
            pf = PartialFunction.coerce(rules)
        updated = dict(self._rules)
        updated[state_name] = pf
        return FSMBuilder(updated, self._fallback)

    def when_undefined(self, fallback: Callable[[Any], Transition]) -> "FSMBuilder":
        return FSMBuilder(self._rules, fallback)

    @property
    def rules(self) -> Dict[Any, PartialFunction]:
        return dict(self._rules)

    @property
    def fallback(self) -> Optional[Callable[[Any], Transition]]:
        return self._fallback

    @property
    def is_empty(self) -> bool:
        return not self._rules and self._fallback is None

    @property
    def has_fallback(self) -> bool:
        return self._fallback is not None

    def build(self, initial: Any) -> "StateMachine":
        return StateMachine(InitialState.coerce(initial), self._rules, self._fallback)

    def __repr__(self) -> str:
        names = ", ".join(repr(n) for n in self._rules)
        return f"FSMBuilder(states=[{names}], fallback={self.has_fallback})"


# =============================================================================
# Transition algorithm
# =============================================================================

class StateMachine:
    """
    A finalized rule table plus its initial state.

    `step` is pure with respect to the machine: all evaluation state lives in
    the `state` argument and the returned value, so one machine can serve any
    number of concurrent evaluations.

    ::: This is-in-layer State-Machine-Layer.
    ::: This is a state-machine.
    ::: This is stateless.
    """

    def __init__(self, initial: InitialState, rules: Mapping[Any, PartialFunction],
                 fallback: Optional[Callable[[Any], Transition]] = None):
        self.initial = initial
        self.rules = dict(rules)
        self.fallback = fallback

    def select(self, state: State, element: Any) -> Transition:
        """The transition for `element` in `state`; raises when nothing applies."""
        rule = self.rules.get(state.name)
        chosen = rule.lift(element) if rule is not None else None
        if isinstance(chosen, Just):
            transition = chosen.value
        elif self.fallback is not None:
            transition = self.fallback(element)
        else:
            raise NoMatchingTransitionError(state.name, element)
        if not isinstance(transition, Transition):
            raise FSMError(
                f"Rule for state {state.name!r} returned {type(transition).__name__}, expected Transition"
            )
        return transition

    def step(self, effect: Effect, state: Optional[State], element: Any) -> Any:
        """F[(new_state, outputs)] for one element."""
        current = state if state is not None else self.initial.materialize(element)
        transition = self.select(current, element)
        new_state = transition.apply(current)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"{current.name!r} --{element!r}--> {new_state.name!r}")
        return effect.map(transition.outputs(effect, new_state.data), lambda out: (new_state, out))

    def replay(self, elements: Iterable[Any], state: Optional[State] = None) -> Tuple[Optional[State], list]:
        """
        Run the machine over `elements` synchronously with pure outputs.
        Returns (final_state, outputs). Useful to inspect the final state,
        which pipeline evaluation discards.
        """
        from .dsl.effects import TryEffect

        effect = TryEffect()
        emitted: list = []
        for element in elements:
            state, outputs = effect.run_sync(self.step(effect, state, element))
            emitted.extend(outputs)
        return state, emitted
