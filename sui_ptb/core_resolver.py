"""Built-in resolution stages: input normalization, object references and gas.

Each stage has the resolver signature ``async stage(data, options, next)``
and finishes by awaiting ``next()``. Stages only call the collaborator when
the graph actually needs data, so running them on a fully resolved graph
changes nothing and makes no calls.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from .data import (
    Argument,
    Command,
    ImmOrOwnedObject,
    Input,
    MoveCall,
    ObjectInput,
    ObjectRef,
    OpenSignature,
    Pure,
    Receiving,
    SharedObject,
    SplitCoins,
    TransferObjects,
    UnresolvedObject,
    UnresolvedPure,
    input_object_id,
)
from .errors import CollaboratorError, TransactionError, TransactionResolutionError
from .pure import encode_for_signature, encode_pure, is_tx_context
from .transaction_data import TransactionDataBuilder
from .utils import SUI_FRAMEWORK_ADDRESS, SUI_TYPE, normalize_sui_address, normalize_sui_object_id

if TYPE_CHECKING:  # pragma: no cover
    from .client import CoreClient, MoveFunction
    from .resolve import BuildOptions

logger = logging.getLogger(__name__)

MAX_OBJECTS_PER_FETCH = 50
MAX_GAS = 50_000_000_000
GAS_SAFE_OVERHEAD = 1000
MAX_GAS_OBJECTS = 256
RECEIVING_TYPE = f"{SUI_FRAMEWORK_ADDRESS}::transfer::Receiving"

Next = Callable[[], Awaitable[None]]


async def call_client(operation: str, awaitable: Awaitable[Any]) -> Any:
    """Await a collaborator call, wrapping its failures in :class:`CollaboratorError`."""

    try:
        return await awaitable
    except TransactionError:
        raise
    except Exception as exc:
        logger.error(
            "%s failed: %s", operation, exc, exc_info=logger.isEnabledFor(logging.DEBUG)
        )
        raise CollaboratorError(operation, exc) from exc


def require_client(options: "BuildOptions", purpose: str) -> "CoreClient":
    if options.client is None:
        raise TransactionResolutionError(f"A client is required to {purpose}")
    return options.client


def _chunks(values: Sequence[str], size: int) -> List[Sequence[str]]:
    return [values[start : start + size] for start in range(0, len(values), size)]


# Normalization -----------------------------------------------------------


def _needs_signature(data: TransactionDataBuilder, command: Command) -> bool:
    if not isinstance(command, MoveCall) or command.argument_types is not None:
        return False
    return any(
        isinstance(arg, Input) and isinstance(data.inputs[arg.index], (UnresolvedPure, UnresolvedObject))
        for arg in command.arguments
    )


async def _fetch_signatures(
    client: "CoreClient", calls: List[MoveCall]
) -> Dict[Tuple[str, str, str], "MoveFunction"]:
    targets = sorted({(call.package, call.module, call.function) for call in calls})
    functions = await asyncio.gather(
        *(
            call_client(
                f"get_move_function({package}::{module}::{function})",
                client.get_move_function(package, module, function),
            )
            for package, module, function in targets
        )
    )
    return dict(zip(targets, functions))


def _normalize_call_inputs(data: TransactionDataBuilder, call: MoveCall) -> None:
    for arg, signature in zip(call.arguments, call.argument_types or []):
        if not isinstance(arg, Input):
            continue
        value = data.inputs[arg.index]
        if not isinstance(value, UnresolvedPure):
            continue
        encoded = encode_for_signature(signature.body, value.value)
        if encoded is not None:
            data.inputs[arg.index] = Pure(encoded)
        elif signature.body.kind == "datatype" and isinstance(value.value, str):
            data.inputs[arg.index] = UnresolvedObject(object_id=normalize_sui_object_id(value.value))
        else:
            raise TransactionResolutionError(
                f"Cannot encode {value.value!r} for parameter of kind {signature.body.kind} in {call.target}"
            )


def _normalize_raw_arguments(data: TransactionDataBuilder) -> None:
    """Encode raw values used in positions whose type is fixed by the command."""

    def encode(arg: Argument, type_name: str) -> None:
        if isinstance(arg, Input) and isinstance(data.inputs[arg.index], UnresolvedPure):
            data.inputs[arg.index] = Pure(encode_pure(type_name, data.inputs[arg.index].value))

    for command in data.commands:
        if isinstance(command, SplitCoins):
            for amount in command.amounts:
                encode(amount, "u64")
        elif isinstance(command, TransferObjects):
            encode(command.address, "address")


async def normalize_inputs(data: TransactionDataBuilder, options: "BuildOptions", next: Next) -> None:
    """Fill the sender, normalize addresses and encode raw pure values."""

    if data.sender is None and options.sender is not None:
        data.sender = options.sender
    if data.sender is not None:
        data.sender = normalize_sui_address(data.sender)
    if data.gas_data.owner is not None:
        data.gas_data.owner = normalize_sui_address(data.gas_data.owner)

    calls = [command for command in data.commands if _needs_signature(data, command)]
    if calls:
        client = require_client(options, "resolve Move call argument types")
        functions = await _fetch_signatures(client, calls)
        for call in calls:
            parameters = list(functions[(call.package, call.module, call.function)].parameters)
            if parameters and is_tx_context(parameters[-1]):
                parameters.pop()
            if len(parameters) != len(call.arguments):
                raise TransactionResolutionError(
                    f"Incorrect number of arguments for {call.target}: "
                    f"expected {len(parameters)}, got {len(call.arguments)}"
                )
            call.argument_types = parameters
            _normalize_call_inputs(data, call)
        logger.debug("Resolved argument types for %d move calls", len(calls))

    _normalize_raw_arguments(data)
    await next()


# Object references -------------------------------------------------------


def _signature_for(command: Command, arg: Argument) -> Optional[OpenSignature]:
    if not isinstance(command, MoveCall) or command.argument_types is None:
        return None
    for position, candidate in enumerate(command.arguments):
        if candidate == arg and position < len(command.argument_types):
            return command.argument_types[position]
    return None


def is_used_as_mutable(data: TransactionDataBuilder, index: int) -> bool:
    mutable = False

    def check(arg: Argument, command: Command) -> None:
        nonlocal mutable
        if isinstance(command, MoveCall):
            signature = _signature_for(command, arg)
            if signature is None or signature.reference != "immutable":
                mutable = True
        else:
            mutable = True

    data.get_input_uses(index, check)
    return mutable


def is_used_as_receiving(data: TransactionDataBuilder, index: int) -> bool:
    receiving = False

    def check(arg: Argument, command: Command) -> None:
        nonlocal receiving
        signature = _signature_for(command, arg)
        if signature is None or signature.body.kind != "datatype" or not signature.body.type_name:
            return
        address, module, name = signature.body.type_name.split("::")
        if f"{normalize_sui_address(address)}::{module}::{name}" == RECEIVING_TYPE:
            receiving = True

    data.get_input_uses(index, check)
    return receiving


async def resolve_object_references(
    data: TransactionDataBuilder, options: "BuildOptions", next: Next
) -> None:
    """Turn unresolved object inputs into shared, receiving or owned references."""

    pending = [
        (index, value)
        for index, value in enumerate(data.inputs)
        if isinstance(value, UnresolvedObject)
    ]
    if not pending:
        await next()
        return

    to_fetch = sorted(
        {
            value.object_id
            for _, value in pending
            if value.initial_shared_version is None
            and (value.version is None or value.digest is None)
        }
    )
    objects: Dict[str, Any] = {}
    if to_fetch:
        client = require_client(options, "resolve object references")
        batches = await asyncio.gather(
            *(
                call_client(f"get_objects({len(chunk)} ids)", client.get_objects(list(chunk)))
                for chunk in _chunks(to_fetch, MAX_OBJECTS_PER_FETCH)
            )
        )
        invalid = []
        for chunk, infos in zip(_chunks(to_fetch, MAX_OBJECTS_PER_FETCH), batches):
            for object_id, info in zip(chunk, infos):
                if info is None:
                    invalid.append(object_id)
                else:
                    objects[object_id] = info
        if invalid:
            raise TransactionResolutionError(
                f"The following input objects are invalid: {', '.join(invalid)}"
            )
        logger.debug("Fetched %d objects in %d batches", len(objects), len(batches))

    for index, value in pending:
        info = objects.get(value.object_id)
        initial_shared_version = value.initial_shared_version
        if initial_shared_version is None and info is not None and info.is_shared:
            initial_shared_version = info.initial_shared_version
        if initial_shared_version is not None:
            resolved = SharedObject(
                object_id=value.object_id,
                initial_shared_version=initial_shared_version,
                mutable=bool(value.mutable) or is_used_as_mutable(data, index),
            )
        else:
            ref = ObjectRef(
                object_id=value.object_id,
                version=value.version if value.version is not None else info.version,
                digest=value.digest if value.digest is not None else info.digest,
            )
            resolved = Receiving(ref) if is_used_as_receiving(data, index) else ImmOrOwnedObject(ref)
        data.inputs[index] = ObjectInput(resolved)

    await next()


# Gas ---------------------------------------------------------------------


async def _set_gas_budget(data: TransactionDataBuilder, client: "CoreClient") -> None:
    dry_run_bytes = data.build(overrides={"gas_data": {"budget": MAX_GAS, "payment": []}})
    result = await call_client("simulate_transaction", client.simulate_transaction(dry_run_bytes))
    if not result.success:
        raise TransactionResolutionError(
            f"Dry run failed, could not automatically determine a budget: {result.error}"
        )
    safe_overhead = GAS_SAFE_OVERHEAD * data.gas_data.price
    base_computation = result.gas_used.computation_cost + safe_overhead
    budget = base_computation + result.gas_used.storage_cost - result.gas_used.storage_rebate
    data.gas_data.budget = max(budget, base_computation)
    logger.debug("Gas budget set to %d", data.gas_data.budget)


async def _set_gas_payment(data: TransactionDataBuilder, client: "CoreClient") -> None:
    owner = data.gas_data.owner or data.sender
    used_ids = {
        normalize_sui_object_id(object_id)
        for object_id in (input_object_id(value) for value in data.inputs)
        if object_id is not None
    }
    payment: List[ObjectRef] = []
    cursor = None
    while len(payment) < MAX_GAS_OBJECTS:
        page = await call_client("list_coins", client.list_coins(owner, SUI_TYPE, cursor))
        payment.extend(coin.ref for coin in page.data if coin.object_id not in used_ids)
        if not page.has_next_page:
            break
        cursor = page.next_cursor
    if not payment:
        raise TransactionResolutionError("No valid gas coins found for the transaction.")
    data.gas_data.payment = payment[:MAX_GAS_OBJECTS]


async def set_gas_data(data: TransactionDataBuilder, options: "BuildOptions", next: Next) -> None:
    """Fill gas price, budget, payment and owner for full builds."""

    if options.only_transaction_kind:
        await next()
        return
    if data.sender is None:
        raise TransactionResolutionError("Missing transaction sender")
    gas = data.gas_data
    if gas.owner is None:
        gas.owner = data.sender
    if gas.price is None or gas.budget is None or gas.payment is None:
        client = require_client(options, "resolve gas data")
        if gas.price is None:
            gas.price = int(
                await call_client("get_reference_gas_price", client.get_reference_gas_price())
            )
        if gas.budget is None:
            await _set_gas_budget(data, client)
        if gas.payment is None:
            await _set_gas_payment(data, client)
    await next()
