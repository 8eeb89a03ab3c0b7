"""Canonical binary encodings of transaction data.

Two layouts are produced: the kind-only ``TransactionKind`` (inputs and
commands) and the full ``TransactionData::V1`` envelope, which adds the
sender, gas data and expiration. Decoding is strict: unknown enum variants,
truncated input and trailing bytes raise :class:`~sui_ptb.errors.DecodeError`.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Callable, Dict, List

import base58

from .bcs import BcsError, BcsReader, BcsWriter
from .data import (
    Argument,
    Command,
    EpochExpiration,
    GasCoin,
    GasData,
    ImmOrOwnedObject,
    Input,
    Intent,
    MakeMoveVec,
    MergeCoins,
    MoveCall,
    NestedResult,
    ObjectInput,
    ObjectRef,
    Publish,
    Pure,
    Receiving,
    Result,
    SharedObject,
    SplitCoins,
    TransactionData,
    TransferObjects,
    Upgrade,
    check_argument,
)
from .errors import (
    DecodeError,
    IncompleteTransactionError,
    InvalidReferenceError,
    UnresolvedInputsRemainingError,
)
from .utils import StructTag, TypeTag, VectorTag, parse_type_tag, type_tag_to_string

logger = logging.getLogger(__name__)

TRANSACTION_DATA_INTENT = b"TransactionData::"
DIGEST_LENGTH = 32

_TYPE_TAG_PRIMITIVES = {
    "bool": 0,
    "u8": 1,
    "u64": 2,
    "u128": 3,
    "address": 4,
    "signer": 5,
    "u16": 8,
    "u32": 9,
    "u256": 10,
}
_TYPE_TAG_VECTOR = 6
_TYPE_TAG_STRUCT = 7
_TYPE_TAG_NAMES = {tag: name for name, tag in _TYPE_TAG_PRIMITIVES.items()}

_TRANSACTION_KIND_NAMES = ("ProgrammableTransaction", "ChangeEpoch", "Genesis", "ConsensusCommitPrologue")


# Type tags ---------------------------------------------------------------


def _write_type_tag(writer: BcsWriter, tag: TypeTag) -> None:
    if isinstance(tag, str):
        writer.write_uleb128(_TYPE_TAG_PRIMITIVES[tag])
    elif isinstance(tag, VectorTag):
        writer.write_uleb128(_TYPE_TAG_VECTOR)
        _write_type_tag(writer, tag.element)
    else:
        writer.write_uleb128(_TYPE_TAG_STRUCT)
        writer.write_address(tag.address)
        writer.write_string(tag.module)
        writer.write_string(tag.name)
        writer.write_vector(list(tag.type_params), _write_type_tag)


def _read_type_tag(reader: BcsReader) -> TypeTag:
    variant = reader.read_uleb128()
    if variant in _TYPE_TAG_NAMES:
        return _TYPE_TAG_NAMES[variant]
    if variant == _TYPE_TAG_VECTOR:
        return VectorTag(_read_type_tag(reader))
    if variant == _TYPE_TAG_STRUCT:
        return StructTag(
            address=reader.read_address(),
            module=reader.read_string(),
            name=reader.read_string(),
            type_params=tuple(reader.read_vector(_read_type_tag)),
        )
    raise DecodeError(f"Unknown TypeTag variant {variant}")


def _write_type_name(writer: BcsWriter, type_name: str) -> None:
    _write_type_tag(writer, parse_type_tag(type_name))


def _read_type_name(reader: BcsReader) -> str:
    return type_tag_to_string(_read_type_tag(reader))


# Arguments ---------------------------------------------------------------


def _write_argument(writer: BcsWriter, arg: Argument) -> None:
    if isinstance(arg, GasCoin):
        writer.write_uleb128(0)
    elif isinstance(arg, Input):
        writer.write_uleb128(1).write_u16(arg.index)
    elif isinstance(arg, Result):
        writer.write_uleb128(2).write_u16(arg.index)
    elif isinstance(arg, NestedResult):
        writer.write_uleb128(3).write_u16(arg.index).write_u16(arg.result_index)
    else:
        raise BcsError(f"Cannot encode argument {arg!r}")


def _read_argument(reader: BcsReader) -> Argument:
    variant = reader.read_uleb128()
    if variant == 0:
        return GasCoin()
    if variant == 1:
        return Input(reader.read_u16())
    if variant == 2:
        return Result(reader.read_u16())
    if variant == 3:
        return NestedResult(reader.read_u16(), reader.read_u16())
    raise DecodeError(f"Unknown Argument variant {variant}")


# Objects and inputs ------------------------------------------------------


def _write_digest(writer: BcsWriter, digest: str) -> None:
    raw = base58.b58decode(digest)
    if len(raw) != DIGEST_LENGTH:
        raise BcsError(f"Invalid digest length {len(raw)} for {digest}")
    writer.write_bytes(raw)


def _read_digest(reader: BcsReader) -> str:
    raw = reader.read_bytes()
    if len(raw) != DIGEST_LENGTH:
        raise DecodeError(f"Invalid digest length {len(raw)}")
    return base58.b58encode(raw).decode("ascii")


def _write_object_ref(writer: BcsWriter, ref: ObjectRef) -> None:
    writer.write_address(ref.object_id)
    writer.write_u64(ref.version)
    _write_digest(writer, ref.digest)


def _read_object_ref(reader: BcsReader) -> ObjectRef:
    return ObjectRef(
        object_id=reader.read_address(),
        version=reader.read_u64(),
        digest=_read_digest(reader),
    )


def _write_call_arg(writer: BcsWriter, value) -> None:
    if isinstance(value, Pure):
        writer.write_uleb128(0).write_bytes(value.bytes)
        return
    if not isinstance(value, ObjectInput):
        raise BcsError(f"Cannot encode unresolved input {value!r}")
    writer.write_uleb128(1)
    obj = value.object
    if isinstance(obj, ImmOrOwnedObject):
        writer.write_uleb128(0)
        _write_object_ref(writer, obj.ref)
    elif isinstance(obj, SharedObject):
        writer.write_uleb128(1)
        writer.write_address(obj.object_id)
        writer.write_u64(obj.initial_shared_version)
        writer.write_bool(obj.mutable)
    elif isinstance(obj, Receiving):
        writer.write_uleb128(2)
        _write_object_ref(writer, obj.ref)
    else:
        raise BcsError(f"Cannot encode object argument {obj!r}")


def _read_call_arg(reader: BcsReader):
    variant = reader.read_uleb128()
    if variant == 0:
        return Pure(reader.read_bytes())
    if variant != 1:
        raise DecodeError(f"Unknown CallArg variant {variant}")
    object_variant = reader.read_uleb128()
    if object_variant == 0:
        return ObjectInput(ImmOrOwnedObject(_read_object_ref(reader)))
    if object_variant == 1:
        return ObjectInput(
            SharedObject(
                object_id=reader.read_address(),
                initial_shared_version=reader.read_u64(),
                mutable=reader.read_bool(),
            )
        )
    if object_variant == 2:
        return ObjectInput(Receiving(_read_object_ref(reader)))
    raise DecodeError(f"Unknown ObjectArg variant {object_variant}")


# Commands ----------------------------------------------------------------


def _write_arguments(writer: BcsWriter, args: List[Argument]) -> None:
    writer.write_vector(args, _write_argument)


def _write_addresses(writer: BcsWriter, addresses: List[str]) -> None:
    writer.write_vector(addresses, lambda w, address: w.write_address(address))


def _write_modules(writer: BcsWriter, modules: List[bytes]) -> None:
    writer.write_vector(modules, lambda w, module: w.write_bytes(module))


def _write_command(writer: BcsWriter, command: Command) -> None:
    if isinstance(command, MoveCall):
        writer.write_uleb128(0)
        writer.write_address(command.package)
        writer.write_string(command.module)
        writer.write_string(command.function)
        writer.write_vector(command.type_arguments, _write_type_name)
        _write_arguments(writer, command.arguments)
    elif isinstance(command, TransferObjects):
        writer.write_uleb128(1)
        _write_arguments(writer, command.objects)
        _write_argument(writer, command.address)
    elif isinstance(command, SplitCoins):
        writer.write_uleb128(2)
        _write_argument(writer, command.coin)
        _write_arguments(writer, command.amounts)
    elif isinstance(command, MergeCoins):
        writer.write_uleb128(3)
        _write_argument(writer, command.destination)
        _write_arguments(writer, command.sources)
    elif isinstance(command, Publish):
        writer.write_uleb128(4)
        _write_modules(writer, command.modules)
        _write_addresses(writer, command.dependencies)
    elif isinstance(command, MakeMoveVec):
        writer.write_uleb128(5)
        writer.write_option(command.type, _write_type_name)
        _write_arguments(writer, command.elements)
    elif isinstance(command, Upgrade):
        writer.write_uleb128(6)
        _write_modules(writer, command.modules)
        _write_addresses(writer, command.dependencies)
        writer.write_address(command.package)
        _write_argument(writer, command.ticket)
    else:
        raise BcsError(f"Cannot encode command {command.kind}")


def _read_arguments(reader: BcsReader) -> List[Argument]:
    return reader.read_vector(_read_argument)


def _read_addresses(reader: BcsReader) -> List[str]:
    return reader.read_vector(lambda r: r.read_address())


def _read_modules(reader: BcsReader) -> List[bytes]:
    return reader.read_vector(lambda r: r.read_bytes())


def _read_move_call(reader: BcsReader) -> MoveCall:
    return MoveCall(
        package=reader.read_address(),
        module=reader.read_string(),
        function=reader.read_string(),
        type_arguments=reader.read_vector(_read_type_name),
        arguments=_read_arguments(reader),
    )


def _read_upgrade(reader: BcsReader) -> Upgrade:
    return Upgrade(
        modules=_read_modules(reader),
        dependencies=_read_addresses(reader),
        package=reader.read_address(),
        ticket=_read_argument(reader),
    )


_COMMAND_READERS: Dict[int, Callable[[BcsReader], Command]] = {
    0: _read_move_call,
    1: lambda r: TransferObjects(objects=_read_arguments(r), address=_read_argument(r)),
    2: lambda r: SplitCoins(coin=_read_argument(r), amounts=_read_arguments(r)),
    3: lambda r: MergeCoins(destination=_read_argument(r), sources=_read_arguments(r)),
    4: lambda r: Publish(modules=_read_modules(r), dependencies=_read_addresses(r)),
    5: lambda r: MakeMoveVec(type=r.read_option(_read_type_name), elements=_read_arguments(r)),
    6: _read_upgrade,
}


def _read_command(reader: BcsReader) -> Command:
    variant = reader.read_uleb128()
    read = _COMMAND_READERS.get(variant)
    if read is None:
        raise DecodeError(f"Unknown Command variant {variant}")
    return read(reader)


# Envelopes ---------------------------------------------------------------


def _ensure_resolved(data: TransactionData) -> None:
    inputs = [index for index, value in enumerate(data.inputs) if not isinstance(value, (Pure, ObjectInput))]
    intents = [index for index, command in enumerate(data.commands) if isinstance(command, Intent)]
    if inputs or intents:
        raise UnresolvedInputsRemainingError(inputs, intents)


def _write_kind(writer: BcsWriter, data: TransactionData) -> None:
    _ensure_resolved(data)
    writer.write_uleb128(0)
    writer.write_vector(data.inputs, _write_call_arg)
    writer.write_vector(data.commands, _write_command)


def _read_kind(reader: BcsReader, data: TransactionData) -> None:
    variant = reader.read_uleb128()
    if variant != 0:
        name = (
            _TRANSACTION_KIND_NAMES[variant]
            if variant < len(_TRANSACTION_KIND_NAMES)
            else str(variant)
        )
        raise DecodeError(f"Unsupported transaction kind {name}")
    data.inputs = reader.read_vector(_read_call_arg)
    data.commands = reader.read_vector(_read_command)


def validate_decoded_graph(data: TransactionData) -> None:
    input_count = len(data.inputs)
    try:
        for position, command in enumerate(data.commands):
            for arg in command.arguments_list():
                check_argument(arg, position, input_count)
    except InvalidReferenceError as exc:
        raise DecodeError(f"Decoded transaction is not a valid command graph: {exc}") from exc


def _run_encoder(fn: Callable[[BcsWriter], None]) -> bytes:
    writer = BcsWriter()
    try:
        fn(writer)
    except BcsError:
        raise
    except (ValueError, KeyError) as exc:
        raise BcsError(f"Unable to encode transaction: {exc}") from exc
    return writer.to_bytes()


def serialize_transaction_kind(data: TransactionData) -> bytes:
    """Encode only the ``TransactionKind`` part of ``data``."""

    encoded = _run_encoder(lambda writer: _write_kind(writer, data))
    logger.debug(
        "Encoded transaction kind with %d inputs and %d commands (%d bytes)",
        len(data.inputs),
        len(data.commands),
        len(encoded),
    )
    return encoded


def _missing_fields(data: TransactionData) -> List[str]:
    gas = data.gas_data
    missing = []
    if data.sender is None:
        missing.append("sender")
    if gas.budget is None:
        missing.append("gas budget")
    if gas.price is None:
        missing.append("gas price")
    if gas.payment is None:
        missing.append("gas payment")
    if gas.owner is None and data.sender is None:
        missing.append("gas owner")
    return missing


def serialize_transaction_data(data: TransactionData) -> bytes:
    """Encode ``data`` as ``TransactionData::V1``.

    The gas owner defaults to the sender. Raises
    :class:`IncompleteTransactionError` when sender or gas fields are missing.
    """

    missing = _missing_fields(data)
    if missing:
        raise IncompleteTransactionError(missing)
    gas: GasData = data.gas_data

    def write(writer: BcsWriter) -> None:
        writer.write_uleb128(0)
        _write_kind(writer, data)
        writer.write_address(data.sender)
        writer.write_vector(gas.payment, _write_object_ref)
        writer.write_address(gas.owner or data.sender)
        writer.write_u64(gas.price)
        writer.write_u64(gas.budget)
        if data.expiration is None:
            writer.write_uleb128(0)
        else:
            writer.write_uleb128(1).write_u64(data.expiration.epoch)

    encoded = _run_encoder(write)
    logger.debug("Encoded transaction data (%d bytes)", len(encoded))
    return encoded


def deserialize_transaction_kind(raw: bytes) -> TransactionData:
    reader = BcsReader(raw)
    data = TransactionData()
    _read_kind(reader, data)
    reader.expect_end()
    validate_decoded_graph(data)
    return data


def deserialize_transaction_data(raw: bytes) -> TransactionData:
    reader = BcsReader(raw)
    version = reader.read_uleb128()
    if version != 0:
        raise DecodeError(f"Unsupported TransactionData version V{version + 1}")
    data = TransactionData()
    _read_kind(reader, data)
    data.sender = reader.read_address()
    payment = reader.read_vector(_read_object_ref)
    owner = reader.read_address()
    price = reader.read_u64()
    budget = reader.read_u64()
    data.gas_data = GasData(budget=budget, price=price, owner=owner, payment=payment)
    expiration = reader.read_uleb128()
    if expiration == 1:
        data.expiration = EpochExpiration(reader.read_u64())
    elif expiration != 0:
        raise DecodeError(f"Unknown TransactionExpiration variant {expiration}")
    reader.expect_end()
    validate_decoded_graph(data)
    return data


def transaction_digest(tx_bytes: bytes) -> str:
    """Return the base58 digest identifying the encoded transaction data."""

    digest = hashlib.blake2b(TRANSACTION_DATA_INTENT + tx_bytes, digest_size=DIGEST_LENGTH).digest()
    return base58.b58encode(digest).decode("ascii")
