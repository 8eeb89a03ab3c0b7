"""Resolution pipeline driver.

Stages run in a fixed order (normalize, objects, intents, gas). Every stage
and every intent resolver receives ``(data, options, next)`` and must await
``next()`` exactly once to let the pipeline continue; returning without
calling it stops the pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .core_resolver import normalize_inputs, resolve_object_references, set_gas_data
from .errors import (
    BuildCancelledError,
    IntentResolutionError,
    UnresolvedInputsRemainingError,
)
from .transaction_data import TransactionDataBuilder

logger = logging.getLogger(__name__)

Next = Callable[[], Awaitable[None]]
Resolver = Callable[[TransactionDataBuilder, "BuildOptions", Next], Awaitable[None]]


@dataclass
class BuildOptions:
    """Options for a single build.

    ``client`` provides chain state; it is only needed when the graph has
    something left to resolve. ``cancel_event`` aborts the build when set.
    """

    client: Any = None
    sender: Optional[str] = None
    only_transaction_kind: bool = False
    cancel_event: Optional[asyncio.Event] = None


class _Continuation:
    def __init__(self, name: str) -> None:
        self.name = name
        self.called = False

    async def __call__(self) -> None:
        if self.called:
            raise IntentResolutionError(self.name, "next() was called more than once")
        self.called = True


async def run_resolvers(
    data: TransactionDataBuilder,
    options: BuildOptions,
    steps: Sequence[Tuple[str, Resolver]],
) -> bool:
    """Run ``steps`` in order; return ``False`` when one of them stopped the pipeline."""

    for name, step in steps:
        continuation = _Continuation(name)
        logger.debug("Running resolution step %s", name)
        await step(data, options, continuation)
        data.validate()
        if not continuation.called:
            logger.debug("Resolution step %s did not continue; stopping pipeline", name)
            return False
    return True


def _intent_names(data: TransactionDataBuilder, indices: List[int]) -> List[str]:
    names: List[str] = []
    for index in indices:
        name = data.commands[index].name
        if name not in names:
            names.append(name)
    return names


def intents_stage(resolvers: Mapping[str, Sequence[Resolver]]) -> Resolver:
    """Build the stage that runs registered intent resolvers until no intent remains."""

    async def resolve_intents(data: TransactionDataBuilder, options: BuildOptions, next: Next) -> None:
        while True:
            _, pending = data.unresolved()
            if not pending:
                break
            names = _intent_names(data, pending)
            for name in names:
                if not resolvers.get(name):
                    raise IntentResolutionError(name, "no resolver is registered for this intent")
            steps = [
                (name, resolver)
                for name, registered in resolvers.items()
                if name in names
                for resolver in registered
            ]
            before = [data.commands[index] for index in pending]
            if not await run_resolvers(data, options, steps):
                return
            _, remaining = data.unresolved()
            for index in remaining:
                command = data.commands[index]
                if any(command is original for original in before):
                    raise IntentResolutionError(command.name, f"intent at command {index} was not resolved")

        inputs, _ = data.unresolved()
        if inputs:
            logger.debug("Resolving %d inputs introduced by intents", len(inputs))
            if not await run_resolvers(
                data,
                options,
                [("normalize", normalize_inputs), ("objects", resolve_object_references)],
            ):
                return
        await next()

    return resolve_intents


async def resolve_transaction_data(
    data: TransactionDataBuilder,
    options: BuildOptions,
    intent_resolvers: Mapping[str, Sequence[Resolver]] | None = None,
) -> None:
    """Run the full pipeline over ``data`` in place."""

    steps: List[Tuple[str, Resolver]] = [
        ("normalize", normalize_inputs),
        ("objects", resolve_object_references),
        ("intents", intents_stage(intent_resolvers or {})),
        ("gas", set_gas_data),
    ]
    await run_resolvers(data, options, steps)
    inputs, commands = data.unresolved()
    if inputs or commands:
        raise UnresolvedInputsRemainingError(inputs, commands)


async def run_cancellable(awaitable: Awaitable[Any], cancel_event: asyncio.Event | None) -> Any:
    """Await ``awaitable`` unless ``cancel_event`` is set first.

    When the event wins, the work is cancelled (including any in-flight
    collaborator calls) and :class:`BuildCancelledError` is raised.
    """

    if cancel_event is None:
        return await awaitable
    work = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise BuildCancelledError("Build was cancelled before it started")
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if not waiter.done():
            waiter.cancel()
    if work.done():
        return work.result()
    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    logger.debug("Build cancelled while resolving")
    raise BuildCancelledError("Build was cancelled")


def register_resolver(
    registry: Dict[str, List[Resolver]], name: str, resolver: Resolver
) -> None:
    """Add ``resolver`` under ``name`` unless that exact function is already registered."""

    registered = registry.setdefault(name, [])
    if resolver not in registered:
        registered.append(resolver)
