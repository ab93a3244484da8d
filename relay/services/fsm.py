from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TypeVar

from relay.core.errors import ReleaseError
from relay.core.result import Err, Ok, Result

S = TypeVar("S")

StepHandler = Callable[[S], Awaitable[Result[S, ReleaseError]]]
GetStep = Callable[[S], str]
OnTransition = Callable[[str, str], None]


async def run_state_machine(
    *,
    initial_state: S,
    get_step: GetStep[S],
    handlers: Mapping[str, StepHandler[S]],
    order: Sequence[str],
    terminal: frozenset[str],
    on_transition: OnTransition | None = None,
) -> Result[S, ReleaseError]:
    """Drive ``initial_state`` through ``handlers`` until a terminal step.

    Each handler performs the work that leaves its step and returns the
    session in a later step. A handler returning an earlier (or the same)
    step is an error: states only move forward along ``order``.
    """
    rank = {step: i for i, step in enumerate(order)}
    current = initial_state

    while True:
        step = get_step(current)
        if step in terminal:
            return Ok(current)

        handler = handlers.get(step)
        if handler is None or step not in rank:
            return Err(ReleaseError(kind="invalid_input", message=f"unknown release step: {step}"))

        outcome = await handler(current)
        if isinstance(outcome, Err):
            return outcome

        nxt = get_step(outcome.value)
        if rank.get(nxt, -1) <= rank[step]:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"invalid release transition: {step} -> {nxt}",
                )
            )

        if on_transition is not None:
            on_transition(step, nxt)
        current = outcome.value
