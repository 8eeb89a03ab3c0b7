from __future__ import annotations

import pytest

from sui_ptb import Commands, Transaction
from sui_ptb.data import (
    GasCoin,
    Input,
    MoveCall,
    NestedResult,
    ObjectInput,
    Pure,
    Result,
    SharedObject,
    SplitCoins,
    TransferObjects,
    UnresolvedObject,
)
from sui_ptb.errors import InvalidReferenceError, ResultNotAvailableError
from sui_ptb.pure import encode_pure
from sui_ptb.transaction_data import TransactionDataBuilder
from sui_ptb.utils import (
    SUI_CLOCK_OBJECT_ID,
    SUI_DENY_LIST_OBJECT_ID,
    SUI_RANDOM_OBJECT_ID,
    SUI_SYSTEM_STATE_OBJECT_ID,
    normalize_sui_address,
)

OBJECT_ID = "0x" + "ab" * 32
RECIPIENT = "0x" + "22" * 32


def test_same_object_id_is_deduplicated() -> None:
    tx = Transaction()

    first = tx.object(OBJECT_ID)
    second = tx.object(OBJECT_ID.upper().replace("0X", "0x"))
    short = tx.object("0x5")
    padded = tx.object("0x" + "0" * 63 + "5")

    assert first == second == Input(0)
    assert short == padded == Input(1)
    assert len(tx.get_data().inputs) == 2


def test_identical_pure_values_are_not_deduplicated() -> None:
    tx = Transaction()

    first = tx.pure.u64(7)
    second = tx.pure.u64(7)

    assert first != second
    assert tx.get_data().inputs == [Pure(encode_pure("u64", 7)), Pure(encode_pure("u64", 7))]


def test_unresolved_object_details_are_merged() -> None:
    builder = TransactionDataBuilder()

    builder.add_input(UnresolvedObject(object_id=OBJECT_ID))
    index = builder.add_input(UnresolvedObject(object_id=OBJECT_ID, version=4, digest="abc", mutable=True))

    assert index == Input(0)
    assert builder.inputs == [
        UnresolvedObject(object_id=OBJECT_ID, version=4, digest="abc", mutable=True)
    ]


def test_forward_reference_is_rejected_and_builder_stays_usable() -> None:
    tx = Transaction()

    with pytest.raises(InvalidReferenceError) as excinfo:
        tx.add(Commands.transfer_objects([Result(0)], GasCoin()))

    assert excinfo.value.index == 0
    assert excinfo.value.reference == Result(0)
    assert tx.get_data().commands == []

    coin = tx.split_coins(tx.gas, [100])
    tx.transfer_objects([coin], RECIPIENT)
    assert [command.kind for command in tx.get_data().commands] == ["SplitCoins", "TransferObjects"]


def test_missing_input_is_rejected() -> None:
    tx = Transaction()

    with pytest.raises(InvalidReferenceError):
        tx.add(Commands.merge_coins(Input(3), [GasCoin()]))


def test_split_coins_results_can_be_unpacked() -> None:
    tx = Transaction()

    first, second = tx.split_coins(tx.gas, [10, 20])
    tx.transfer_objects([first, second], RECIPIENT)

    transfer = tx.get_data().commands[1]
    assert transfer.objects == [NestedResult(0, 0), NestedResult(0, 1)]


def test_move_call_results_support_indexing_only() -> None:
    tx = Transaction()

    result = tx.move_call("0x2::kiosk::new")

    assert result[1].to_argument() == NestedResult(0, 1)
    with pytest.raises(TypeError):
        list(result)


def test_result_from_other_transaction_is_rejected() -> None:
    tx = Transaction()
    other = Transaction()
    coin = other.split_coins(other.gas, [1])

    with pytest.raises(ResultNotAvailableError) as excinfo:
        tx.transfer_objects([coin], RECIPIENT)

    assert "not available to use in the current transaction" in str(excinfo.value)


def test_move_call_normalizes_target_and_types() -> None:
    tx = Transaction()

    tx.move_call("0x2::coin::zero", type_arguments=["0x2::sui::SUI"])

    command = tx.get_data().commands[0]
    assert isinstance(command, MoveCall)
    assert command.package == "0x" + "0" * 63 + "2"
    assert command.type_arguments == ["0x" + "0" * 63 + "2::sui::SUI"]


def test_synchronous_function_runs_against_same_transaction() -> None:
    tx = Transaction()

    def split(inner: Transaction):
        assert inner is tx
        return inner.split_coins(inner.gas, [5])

    coin = tx.add(split)
    tx.transfer_objects([coin], RECIPIENT)

    data = tx.get_data()
    assert isinstance(data.commands[0], SplitCoins)
    assert isinstance(data.commands[1], TransferObjects)
    assert data.commands[1].objects == [Result(0)]


def test_replace_command_preserves_indices() -> None:
    builder = TransactionDataBuilder()
    builder.add_command(Commands.move_call(target="0x2::a::first"))
    builder.add_command(Commands.move_call(target="0x2::a::second", arguments=[Result(0)]))

    builder.replace_command(0, Commands.move_call(target="0x2::a::replacement"))

    assert builder.commands[0].function == "replacement"
    assert builder.commands[1].arguments == [Result(0)]


def test_replace_command_rejects_reference_to_itself() -> None:
    builder = TransactionDataBuilder()
    builder.add_command(Commands.move_call(target="0x2::a::first"))

    with pytest.raises(InvalidReferenceError):
        builder.replace_command(0, Commands.move_call(target="0x2::a::bad", arguments=[Result(0)]))


def test_sequence_replacement_remaps_later_references_and_handles() -> None:
    tx = Transaction()
    placeholder = tx.move_call("0x2::a::placeholder")
    tx.transfer_objects([placeholder], RECIPIENT)
    later = tx.move_call("0x2::a::later")
    tx.move_call("0x2::a::consume", arguments=[later])

    tx._data.replace_command(
        0,
        [Commands.move_call(target="0x2::a::one"), Commands.move_call(target="0x2::a::two")],
        result=NestedResult(1, 0),
    )

    commands = tx.get_data().commands
    assert [getattr(command, "function", None) for command in commands] == [
        "one",
        "two",
        None,
        "later",
        "consume",
    ]
    assert commands[2].objects == [NestedResult(1, 0)]
    assert commands[4].arguments == [Result(3)]
    assert placeholder.to_argument() == NestedResult(1, 0)
    assert later.to_argument() == Result(3)


def test_restore_then_append_continues_indices() -> None:
    tx = Transaction()
    tx.split_coins(tx.gas, [1])
    snapshot = tx.snapshot()

    tx.split_coins(tx.gas, [2])
    tx.restore(snapshot)
    result = tx.split_coins(tx.gas, [3])

    assert result.index == 1
    assert len(tx.get_data().commands) == 2


def test_snapshot_is_a_value_copy() -> None:
    tx = Transaction()
    tx.split_coins(tx.gas, [1])

    snapshot = tx.snapshot()
    snapshot.commands.clear()

    assert len(tx.get_data().commands) == 1


def test_gas_setters_normalize_addresses() -> None:
    tx = Transaction()
    tx.set_sender("0x5")
    tx.set_sender_if_not_set("0x6")
    tx.set_gas_owner("0x7")
    tx.set_gas_budget("1000")
    tx.set_expiration(3)

    data = tx.get_data()
    assert data.sender == "0x" + "0" * 63 + "5"
    assert data.gas_data.owner == "0x" + "0" * 63 + "7"
    assert data.gas_data.budget == 1000
    assert data.expiration.epoch == 3


def test_shared_object_reuse_raises_mutability() -> None:
    tx = Transaction()

    read = tx.shared_object_ref(OBJECT_ID, 1, False)
    write = tx.shared_object_ref(OBJECT_ID, 1, True)
    again = tx.shared_object_ref(OBJECT_ID, 1, False)

    assert read == write == again == Input(0)
    assert tx.get_data().inputs == [ObjectInput(SharedObject(OBJECT_ID, 1, True))]


def test_unresolved_mutable_reference_upgrades_shared_input() -> None:
    shared_first = Transaction()
    shared_first.shared_object_ref(OBJECT_ID, 3, False)
    shared_first.object(UnresolvedObject(OBJECT_ID, mutable=True))

    unresolved_first = Transaction()
    unresolved_first.object(UnresolvedObject(OBJECT_ID, mutable=True))
    unresolved_first.shared_object_ref(OBJECT_ID, 3, False)

    expected = [ObjectInput(SharedObject(OBJECT_ID, 3, True))]
    assert shared_first.get_data().inputs == expected
    assert unresolved_first.get_data().inputs == expected


def test_system_object_shortcuts() -> None:
    tx = Transaction()

    tx.move_call(
        "0x2::example::use_system",
        arguments=[tx.object.system(), tx.object.clock(), tx.object.random(), tx.object.deny_list()],
    )

    assert tx.get_data().inputs == [
        UnresolvedObject(SUI_SYSTEM_STATE_OBJECT_ID, initial_shared_version=1),
        ObjectInput(SharedObject(SUI_CLOCK_OBJECT_ID, 1, False)),
        UnresolvedObject(SUI_RANDOM_OBJECT_ID, mutable=False),
        UnresolvedObject(SUI_DENY_LIST_OBJECT_ID),
    ]
    assert SUI_SYSTEM_STATE_OBJECT_ID == normalize_sui_address("0x5")


@pytest.mark.parametrize("mutable", [True, False])
def test_system_object_shortcuts_with_explicit_mutability(mutable: bool) -> None:
    tx = Transaction()

    tx.object.system(mutable=mutable)
    tx.object.deny_list(mutable=mutable)

    assert tx.get_data().inputs == [
        ObjectInput(SharedObject(SUI_SYSTEM_STATE_OBJECT_ID, 1, mutable)),
        UnresolvedObject(SUI_DENY_LIST_OBJECT_ID, mutable=mutable),
    ]


def test_insert_transaction_deduplicates_inputs() -> None:
    main = Transaction()
    main.move_call("0x1::main::func", arguments=[main.object("0x123")])
    other = Transaction()
    other.move_call("0x2::other::func", arguments=[other.object("0x123")])

    main.insert_transaction(1, other)

    data = main.get_data()
    assert data.inputs == [UnresolvedObject(normalize_sui_address("0x123"))]
    assert data.commands[0].arguments == [Input(0)]
    assert data.commands[1].arguments == [Input(0)]


def test_insert_transaction_remaps_results_and_handles() -> None:
    main = Transaction()
    func1 = main.move_call("0x1::main::func1")
    func2 = main.move_call("0x1::main::func2", arguments=[func1])
    other = Transaction()
    step1 = other.move_call("0x2::other::step1", arguments=[other.pure.u64(5)])
    other.move_call("0x2::other::step2", arguments=[step1, other.gas])

    main.insert_transaction(1, other)

    data = main.get_data()
    assert [command.function for command in data.commands] == ["func1", "step1", "step2", "func2"]
    assert data.commands[1].arguments == [Input(0)]
    assert data.commands[2].arguments == [Result(1), GasCoin()]
    assert data.commands[3].arguments == [Result(0)]
    assert data.inputs == [Pure(encode_pure("u64", 5))]
    assert func1.to_argument() == Result(0)
    assert func2.to_argument() == Result(3)


def test_insert_transaction_raises_shared_mutability() -> None:
    main = Transaction()
    main.move_call("0x1::main::func", arguments=[main.shared_object_ref("0xabc", 1, False)])
    other = Transaction()
    other.move_call("0x2::other::func", arguments=[other.shared_object_ref("0xabc", 1, True)])

    main.insert_transaction(1, other.get_data())

    assert main.get_data().inputs == [
        ObjectInput(SharedObject(normalize_sui_address("0xabc"), 1, True))
    ]


def test_insert_transaction_at_either_end() -> None:
    at_start = Transaction()
    existing = at_start.move_call("0x1::main::func")
    at_end = Transaction()
    at_end.move_call("0x1::main::func")
    other = Transaction()
    other.move_call("0x1::insert::func")

    at_start.insert_transaction(0, other)
    at_end.insert_transaction(1, other)

    assert [command.module for command in at_start.get_data().commands] == ["insert", "main"]
    assert [command.module for command in at_end.get_data().commands] == ["main", "insert"]
    assert existing.to_argument() == Result(1)


def test_insert_transaction_rejects_out_of_range_index() -> None:
    tx = Transaction()
    tx.move_call("0x1::main::func")

    with pytest.raises(InvalidReferenceError):
        tx.insert_transaction(2, Transaction())
    assert len(tx.get_data().commands) == 1
