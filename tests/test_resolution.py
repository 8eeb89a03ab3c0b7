from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import base58
import pytest

from sui_ptb import BuildOptions, Commands, Transaction
from sui_ptb.client import Coin, CoinPage, GasUsed, MoveFunction, ObjectInfo, SimulationResult
from sui_ptb.core_resolver import GAS_SAFE_OVERHEAD
from sui_ptb.data import (
    ImmOrOwnedObject,
    Intent,
    MoveCall,
    ObjectInput,
    ObjectRef,
    Pure,
    Receiving,
    Result,
    SharedObject,
)
from sui_ptb.errors import (
    BuildCancelledError,
    CollaboratorError,
    IntentResolutionError,
    TransactionResolutionError,
    UnresolvedInputsRemainingError,
)
from sui_ptb.pure import encode_pure, normalized_type_to_signature
from sui_ptb.utils import SUI_TYPE, normalize_sui_address

SENDER = "0x" + "11" * 32
RECIPIENT = "0x" + "22" * 32
OWNED_ID = "0x" + "aa" * 32
SHARED_ID = "0x" + "bb" * 32
RECEIVED_ID = "0x" + "cc" * 32
GAS_COIN_IDS = ["0x" + "d1" * 32, "0x" + "d2" * 32]


def _digest(seed: int) -> str:
    return base58.b58encode(bytes([seed]) * 32).decode("ascii")


def _struct(address: str, module: str, name: str) -> dict:
    return {"Struct": {"address": address, "module": module, "name": name, "typeArguments": []}}


TX_CONTEXT = {"MutableReference": _struct("0x2", "tx_context", "TxContext")}


class StubClient:
    def __init__(
        self,
        objects: Optional[Dict[str, ObjectInfo]] = None,
        functions: Optional[Dict[str, List]] = None,
        coins: Optional[List[Coin]] = None,
        gas_price: int = 1000,
        simulation: Optional[SimulationResult] = None,
    ) -> None:
        self.objects = objects or {}
        self.functions = functions or {}
        self.coins = coins or []
        self.gas_price = gas_price
        self.simulation = simulation or SimulationResult(
            success=True,
            gas_used=GasUsed(computation_cost=1_000_000, storage_cost=2_000_000, storage_rebate=500_000),
        )
        self.calls: List[tuple] = []

    async def get_objects(self, object_ids):
        self.calls.append(("get_objects", list(object_ids)))
        return [self.objects.get(object_id) for object_id in object_ids]

    async def get_move_function(self, package, module, function):
        self.calls.append(("get_move_function", f"{module}::{function}"))
        parameters = [normalized_type_to_signature(param) for param in self.functions[function]]
        return MoveFunction(package=package, module=module, name=function, parameters=parameters)

    async def simulate_transaction(self, tx_bytes):
        self.calls.append(("simulate_transaction", len(tx_bytes)))
        return self.simulation

    async def get_reference_gas_price(self):
        self.calls.append(("get_reference_gas_price",))
        return self.gas_price

    async def list_coins(self, owner, coin_type, cursor=None):
        self.calls.append(("list_coins", coin_type, cursor))
        return CoinPage(data=[coin for coin in self.coins if coin.coin_type == coin_type])


def _owned(object_id: str, version: int = 5, seed: int = 1) -> ObjectInfo:
    return ObjectInfo(
        object_id=object_id, version=version, digest=_digest(seed), owner_kind="AddressOwner", owner=SENDER
    )


def _shared(object_id: str, initial_shared_version: int = 3) -> ObjectInfo:
    return ObjectInfo(
        object_id=object_id,
        version=40,
        digest=_digest(9),
        owner_kind="Shared",
        initial_shared_version=initial_shared_version,
    )


def _gas_coins() -> List[Coin]:
    return [
        Coin(object_id=object_id, version=7, digest=_digest(20 + i), balance=10**9, coin_type=SUI_TYPE)
        for i, object_id in enumerate(GAS_COIN_IDS)
    ]


def test_raw_arguments_are_encoded_from_move_signatures() -> None:
    client = StubClient(
        objects={OWNED_ID: _owned(OWNED_ID)},
        functions={
            "split": [{"MutableReference": _struct("0x2", "coin", "Coin")}, "U64", TX_CONTEXT],
        },
    )
    tx = Transaction()
    tx.move_call("0x2::pay::split", arguments=[OWNED_ID, 100], type_arguments=["0x2::sui::SUI"])

    asyncio.run(tx.build(client=client, only_transaction_kind=True))

    data = tx.get_data()
    assert data.inputs == [
        ObjectInput(ImmOrOwnedObject(ObjectRef(OWNED_ID, 5, _digest(1)))),
        Pure(encode_pure("u64", 100)),
    ]
    assert ("get_objects", [OWNED_ID]) in client.calls


def test_argument_count_mismatch_is_reported() -> None:
    client = StubClient(functions={"split": ["U64", "U64", TX_CONTEXT]})
    tx = Transaction()
    tx.move_call("0x2::pay::split", arguments=[100])

    with pytest.raises(TransactionResolutionError) as excinfo:
        asyncio.run(tx.build(client=client, only_transaction_kind=True))

    assert "expected 2, got 1" in str(excinfo.value)


def test_shared_objects_follow_reference_kind() -> None:
    client = StubClient(
        objects={SHARED_ID: _shared(SHARED_ID), RECEIVED_ID: _owned(RECEIVED_ID, seed=4)},
        functions={
            "read": [{"Reference": _struct("0x2", "clock", "Clock")}],
            "claim": [
                {"MutableReference": _struct("0x2", "kiosk", "Kiosk")},
                _struct("0x2", "transfer", "Receiving"),
            ],
        },
    )
    readonly = Transaction()
    readonly.move_call("0x2::clock::read", arguments=[readonly.object(SHARED_ID)])
    mutating = Transaction()
    mutating.move_call("0x2::kiosk::claim", arguments=[mutating.object(SHARED_ID), mutating.object(RECEIVED_ID)])

    asyncio.run(readonly.build(client=client, only_transaction_kind=True))
    asyncio.run(mutating.build(client=client, only_transaction_kind=True))

    assert readonly.get_data().inputs == [ObjectInput(SharedObject(SHARED_ID, 3, False))]
    assert mutating.get_data().inputs == [
        ObjectInput(SharedObject(SHARED_ID, 3, True)),
        ObjectInput(Receiving(ObjectRef(RECEIVED_ID, 5, _digest(4)))),
    ]


def test_objects_outside_move_calls_are_mutable() -> None:
    client = StubClient(objects={SHARED_ID: _shared(SHARED_ID)})
    tx = Transaction()
    tx.transfer_objects([tx.object(SHARED_ID)], RECIPIENT)

    asyncio.run(tx.build(client=client, only_transaction_kind=True))

    assert tx.get_data().inputs[0] == ObjectInput(SharedObject(SHARED_ID, 3, True))


def test_missing_objects_are_listed() -> None:
    client = StubClient()
    tx = Transaction()
    tx.transfer_objects([tx.object(OWNED_ID)], RECIPIENT)

    with pytest.raises(TransactionResolutionError) as excinfo:
        asyncio.run(tx.build(client=client, only_transaction_kind=True))

    assert f"The following input objects are invalid: {OWNED_ID}" in str(excinfo.value)


def test_object_lookups_are_chunked() -> None:
    ids = [normalize_sui_address(hex(i)) for i in range(1, 121)]
    client = StubClient(objects={object_id: _owned(object_id) for object_id in ids})
    tx = Transaction()
    tx.transfer_objects([tx.object(object_id) for object_id in ids], RECIPIENT)

    asyncio.run(tx.build(client=client, only_transaction_kind=True))

    sizes = [len(call[1]) for call in client.calls if call[0] == "get_objects"]
    assert sorted(sizes) == [20, 50, 50]


def test_full_build_fills_gas_data() -> None:
    client = StubClient(
        objects={OWNED_ID: _owned(OWNED_ID)},
        coins=_gas_coins() + [Coin(OWNED_ID, 5, _digest(1), 10**9, SUI_TYPE)],
    )
    tx = Transaction()
    tx.set_sender(SENDER)
    tx.transfer_objects([tx.object(OWNED_ID)], RECIPIENT)

    asyncio.run(tx.build(client=client))

    gas = tx.get_data().gas_data
    assert gas.price == 1000
    overhead = GAS_SAFE_OVERHEAD * 1000
    assert gas.budget == 1_000_000 + overhead + 2_000_000 - 500_000
    assert gas.owner == SENDER
    assert [ref.object_id for ref in gas.payment] == GAS_COIN_IDS


def test_budget_never_drops_below_computation() -> None:
    client = StubClient(
        coins=_gas_coins(),
        simulation=SimulationResult(
            success=True,
            gas_used=GasUsed(computation_cost=1_000, storage_cost=0, storage_rebate=5_000_000),
        ),
    )
    tx = Transaction()
    tx.split_coins(tx.gas, [1])

    asyncio.run(tx.build(client=client, sender=SENDER))

    assert tx.get_data().gas_data.budget == 1_000 + GAS_SAFE_OVERHEAD * 1000


def test_failed_dry_run_is_reported() -> None:
    client = StubClient(
        simulation=SimulationResult(success=False, gas_used=GasUsed(0, 0, 0), error="MoveAbort")
    )
    tx = Transaction()
    tx.set_sender(SENDER)
    tx.split_coins(tx.gas, [1])

    with pytest.raises(TransactionResolutionError) as excinfo:
        asyncio.run(tx.build(client=client))

    assert "MoveAbort" in str(excinfo.value)
    assert tx.get_data().gas_data.price is None


def test_no_gas_coins_is_reported() -> None:
    client = StubClient()
    tx = Transaction()
    tx.set_sender(SENDER)
    tx.set_gas_budget(1000)
    tx.split_coins(tx.gas, [1])

    with pytest.raises(TransactionResolutionError, match="No valid gas coins"):
        asyncio.run(tx.build(client=client))


def test_full_build_requires_sender() -> None:
    tx = Transaction()
    tx.split_coins(tx.gas, [1])

    with pytest.raises(TransactionResolutionError, match="sender"):
        asyncio.run(tx.build(client=StubClient()))


def test_building_twice_is_stable_and_makes_no_calls() -> None:
    client = StubClient(objects={OWNED_ID: _owned(OWNED_ID)}, coins=_gas_coins())
    tx = Transaction()
    tx.set_sender(SENDER)
    tx.transfer_objects([tx.object(OWNED_ID)], RECIPIENT)

    first = asyncio.run(tx.build(client=client))
    calls = list(client.calls)
    second = asyncio.run(tx.build(client=client))

    assert first == second
    assert client.calls == calls


def test_resolved_kind_build_needs_no_client() -> None:
    tx = Transaction()
    tx.transfer_objects([tx.object_ref(OWNED_ID, 1, _digest(1))], RECIPIENT)

    encoded = asyncio.run(tx.build(only_transaction_kind=True))

    assert encoded


def test_unresolved_objects_need_a_client() -> None:
    tx = Transaction()
    tx.transfer_objects([tx.object(OWNED_ID)], RECIPIENT)

    with pytest.raises(TransactionResolutionError, match="client is required"):
        asyncio.run(tx.build(only_transaction_kind=True))


def test_collaborator_failures_are_wrapped() -> None:
    class BrokenClient(StubClient):
        async def get_objects(self, object_ids):
            raise ConnectionError("node unreachable")

    tx = Transaction()
    tx.transfer_objects([tx.object(OWNED_ID)], RECIPIENT)
    before = tx.get_data()

    with pytest.raises(CollaboratorError) as excinfo:
        asyncio.run(tx.build(client=BrokenClient(), only_transaction_kind=True))

    assert isinstance(excinfo.value.cause, ConnectionError)
    assert excinfo.value.operation.startswith("get_objects")
    assert tx.get_data() == before


def test_cancelled_build_leaves_transaction_unchanged() -> None:
    class SlowClient(StubClient):
        def __init__(self) -> None:
            super().__init__()
            self.started = asyncio.Event()
            self.cancelled = False

        async def get_objects(self, object_ids):
            self.started.set()
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise

    async def scenario():
        client = SlowClient()
        cancel = asyncio.Event()
        tx = Transaction()
        tx.transfer_objects([tx.object(OWNED_ID)], RECIPIENT)
        before = tx.get_data()

        async def cancel_when_started():
            await client.started.wait()
            cancel.set()

        canceller = asyncio.ensure_future(cancel_when_started())
        with pytest.raises(BuildCancelledError):
            await tx.build(BuildOptions(client=client, only_transaction_kind=True, cancel_event=cancel))
        await canceller
        return client, tx, before

    client, tx, before = asyncio.run(scenario())

    assert client.cancelled
    assert tx.get_data() == before


def test_cancel_event_interrupts_pending_deferred_work() -> None:
    state = {"cancelled": False}

    async def slow(tx: Transaction):
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise
        return tx.split_coins(tx.gas, [1])

    async def scenario():
        cancel = asyncio.Event()
        tx = Transaction()
        tx.add(slow)
        before = tx.get_data()
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        with pytest.raises(BuildCancelledError):
            await asyncio.wait_for(
                tx.build(only_transaction_kind=True, cancel_event=cancel), timeout=1.0
            )
        return tx, before

    tx, before = asyncio.run(scenario())

    assert state["cancelled"]
    assert tx.get_data() == before


def test_intent_replaced_by_move_call_keeps_downstream_references() -> None:
    async def make_thing(data, options, next):
        for index, command in enumerate(data.commands):
            if isinstance(command, Intent) and command.name == "MakeThing":
                data.replace_command(index, Commands.move_call(target="0x2::thing::make"))
        await next()

    tx = Transaction()
    thing = tx.add_intent("MakeThing", make_thing)
    tx.transfer_objects([thing], RECIPIENT)

    asyncio.run(tx.build(only_transaction_kind=True))

    commands = tx.get_data().commands
    assert isinstance(commands[0], MoveCall)
    assert commands[0].function == "make"
    assert commands[1].objects == [Result(0)]


def test_intent_replaced_by_another_intent_resolves_in_a_later_pass() -> None:
    async def second(data, options, next):
        for index, command in enumerate(data.commands):
            if isinstance(command, Intent) and command.name == "Second":
                data.replace_command(index, Commands.move_call(target="0x2::thing::second"))
        await next()

    async def first(data, options, next):
        for index, command in enumerate(data.commands):
            if isinstance(command, Intent) and command.name == "First":
                data.replace_command(index, Commands.intent("Second"))
        await next()

    tx = Transaction()
    tx.add_intent_resolver("Second", second)
    thing = tx.add_intent("First", first)
    tx.transfer_objects([thing], RECIPIENT)

    asyncio.run(tx.build(only_transaction_kind=True))

    commands = tx.get_data().commands
    assert isinstance(commands[0], MoveCall)
    assert commands[0].function == "second"
    assert commands[1].objects == [Result(0)]


def test_system_state_object_resolves_without_fetching() -> None:
    tx = Transaction()
    tx.transfer_objects([tx.object.system()], RECIPIENT)

    asyncio.run(tx.build(only_transaction_kind=True))

    assert tx.get_data().inputs[0] == ObjectInput(
        SharedObject(normalize_sui_address("0x5"), 1, True)
    )


def test_resolver_that_stops_the_pipeline_leaves_intents() -> None:
    async def stop(data, options, next):
        return None

    tx = Transaction()
    tx.add_intent("Stop", stop)

    with pytest.raises(UnresolvedInputsRemainingError) as excinfo:
        asyncio.run(tx.build(only_transaction_kind=True))

    assert excinfo.value.commands == [0]


def test_resolver_calling_next_twice_is_rejected() -> None:
    async def twice(data, options, next):
        data.replace_command(0, Commands.move_call(target="0x2::thing::make"))
        await next()
        await next()

    tx = Transaction()
    tx.add_intent("Twice", twice)

    with pytest.raises(IntentResolutionError, match="more than once"):
        asyncio.run(tx.build(only_transaction_kind=True))


def test_resolver_leaving_its_intent_is_rejected() -> None:
    async def lazy(data, options, next):
        await next()

    tx = Transaction()
    tx.add_intent("Lazy", lazy)

    with pytest.raises(IntentResolutionError, match="was not resolved"):
        asyncio.run(tx.build(only_transaction_kind=True))


def test_intent_without_resolver_is_rejected() -> None:
    tx = Transaction()
    tx.add(Commands.intent("Orphan"))

    with pytest.raises(IntentResolutionError, match="no resolver"):
        asyncio.run(tx.build(only_transaction_kind=True))
