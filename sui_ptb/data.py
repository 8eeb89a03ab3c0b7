"""Data model for programmable transactions.

A transaction is an ordered list of inputs and an ordered list of commands.
Commands reference inputs and the results of earlier commands through
:class:`Argument` values; positions are identities, so a ``Result(3)`` always
means "whatever command sits at index 3". The model itself carries no
behaviour beyond the structural checks in :func:`check_argument`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import InvalidReferenceError


# Arguments ---------------------------------------------------------------


@dataclass(frozen=True)
class GasCoin:
    """Sentinel referring to the transaction's gas coin."""


@dataclass(frozen=True)
class Input:
    index: int


@dataclass(frozen=True)
class Result:
    index: int


@dataclass(frozen=True)
class NestedResult:
    index: int
    result_index: int


Argument = Union[GasCoin, Input, Result, NestedResult]
ARGUMENT_TYPES = (GasCoin, Input, Result, NestedResult)

ArgumentMapper = Callable[[Argument], Argument]


# Move signatures ---------------------------------------------------------


@dataclass(frozen=True)
class OpenSignatureBody:
    """Shape of a Move parameter type.

    ``kind`` is one of ``address``, ``bool``, ``u8`` … ``u256``, ``vector``,
    ``datatype``, ``typeParameter`` or ``unknown``.
    """

    kind: str
    vector: Optional["OpenSignatureBody"] = None
    type_name: Optional[str] = None
    type_parameters: tuple = ()
    index: Optional[int] = None


@dataclass(frozen=True)
class OpenSignature:
    body: OpenSignatureBody
    reference: Optional[str] = None  # "mutable", "immutable" or None


# Objects and inputs ------------------------------------------------------


@dataclass(frozen=True)
class ObjectRef:
    object_id: str
    version: int
    digest: str


@dataclass(frozen=True)
class ImmOrOwnedObject:
    ref: ObjectRef

    @property
    def object_id(self) -> str:
        return self.ref.object_id


@dataclass(frozen=True)
class SharedObject:
    object_id: str
    initial_shared_version: int
    mutable: bool


@dataclass(frozen=True)
class Receiving:
    ref: ObjectRef

    @property
    def object_id(self) -> str:
        return self.ref.object_id


ObjectArg = Union[ImmOrOwnedObject, SharedObject, Receiving]


@dataclass(frozen=True)
class Pure:
    bytes: bytes


@dataclass(frozen=True)
class ObjectInput:
    object: ObjectArg

    @property
    def object_id(self) -> str:
        return self.object.object_id


@dataclass(frozen=True)
class UnresolvedObject:
    object_id: str
    version: Optional[int] = None
    digest: Optional[str] = None
    initial_shared_version: Optional[int] = None
    mutable: Optional[bool] = None


@dataclass(frozen=True)
class UnresolvedPure:
    value: Any


CallArg = Union[Pure, ObjectInput, UnresolvedObject, UnresolvedPure]


# Commands ----------------------------------------------------------------


class Command:
    """Base class for command nodes."""

    @property
    def kind(self) -> str:
        return type(self).__name__

    def arguments_list(self) -> List[Argument]:
        raise NotImplementedError

    def map_arguments(self, fn: ArgumentMapper) -> None:
        """Replace every argument of this command with ``fn(argument)`` in place."""

        raise NotImplementedError


@dataclass
class MoveCall(Command):
    package: str
    module: str
    function: str
    type_arguments: List[str] = field(default_factory=list)
    arguments: List[Argument] = field(default_factory=list)
    argument_types: Optional[List[OpenSignature]] = field(default=None, compare=False)

    @property
    def target(self) -> str:
        return f"{self.package}::{self.module}::{self.function}"

    def arguments_list(self) -> List[Argument]:
        return list(self.arguments)

    def map_arguments(self, fn: ArgumentMapper) -> None:
        self.arguments = [fn(arg) for arg in self.arguments]


@dataclass
class TransferObjects(Command):
    objects: List[Argument]
    address: Argument

    def arguments_list(self) -> List[Argument]:
        return [*self.objects, self.address]

    def map_arguments(self, fn: ArgumentMapper) -> None:
        self.objects = [fn(arg) for arg in self.objects]
        self.address = fn(self.address)


@dataclass
class SplitCoins(Command):
    coin: Argument
    amounts: List[Argument]

    def arguments_list(self) -> List[Argument]:
        return [self.coin, *self.amounts]

    def map_arguments(self, fn: ArgumentMapper) -> None:
        self.coin = fn(self.coin)
        self.amounts = [fn(arg) for arg in self.amounts]


@dataclass
class MergeCoins(Command):
    destination: Argument
    sources: List[Argument]

    def arguments_list(self) -> List[Argument]:
        return [self.destination, *self.sources]

    def map_arguments(self, fn: ArgumentMapper) -> None:
        self.destination = fn(self.destination)
        self.sources = [fn(arg) for arg in self.sources]


@dataclass
class Publish(Command):
    modules: List[bytes]
    dependencies: List[str]

    def arguments_list(self) -> List[Argument]:
        return []

    def map_arguments(self, fn: ArgumentMapper) -> None:
        return None


@dataclass
class MakeMoveVec(Command):
    type: Optional[str]
    elements: List[Argument]

    def arguments_list(self) -> List[Argument]:
        return list(self.elements)

    def map_arguments(self, fn: ArgumentMapper) -> None:
        self.elements = [fn(arg) for arg in self.elements]


@dataclass
class Upgrade(Command):
    modules: List[bytes]
    dependencies: List[str]
    package: str
    ticket: Argument

    def arguments_list(self) -> List[Argument]:
        return [self.ticket]

    def map_arguments(self, fn: ArgumentMapper) -> None:
        self.ticket = fn(self.ticket)


@dataclass
class Intent(Command):
    """Named placeholder command replaced by a registered resolver before encoding."""

    name: str
    inputs: Dict[str, Union[Argument, List[Argument]]] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)

    def arguments_list(self) -> List[Argument]:
        args: List[Argument] = []
        for value in self.inputs.values():
            if isinstance(value, list):
                args.extend(value)
            else:
                args.append(value)
        return args

    def map_arguments(self, fn: ArgumentMapper) -> None:
        self.inputs = {
            key: [fn(arg) for arg in value] if isinstance(value, list) else fn(value)
            for key, value in self.inputs.items()
        }


# Transaction -------------------------------------------------------------


@dataclass
class GasData:
    budget: Optional[int] = None
    price: Optional[int] = None
    owner: Optional[str] = None
    payment: Optional[List[ObjectRef]] = None


@dataclass(frozen=True)
class EpochExpiration:
    epoch: int


@dataclass
class TransactionData:
    """Root aggregate describing a (possibly partially resolved) transaction."""

    version: int = 2
    sender: Optional[str] = None
    expiration: Optional[EpochExpiration] = None
    gas_data: GasData = field(default_factory=GasData)
    inputs: List[CallArg] = field(default_factory=list)
    commands: List[Command] = field(default_factory=list)


def check_argument(arg: Any, position: int, input_count: int) -> None:
    """Validate an argument used by the command at ``position``.

    Result references must point strictly backwards and input references must
    point at an existing input.
    """

    if isinstance(arg, GasCoin):
        return
    if isinstance(arg, Input):
        if not 0 <= arg.index < input_count:
            raise InvalidReferenceError(
                f"Command {position} references missing input {arg.index}",
                index=position,
                reference=arg,
            )
        return
    if isinstance(arg, (Result, NestedResult)):
        if not 0 <= arg.index < position:
            raise InvalidReferenceError(
                f"Command {position} references result of command {arg.index}, "
                "which does not precede it",
                index=position,
                reference=arg,
            )
        if isinstance(arg, NestedResult) and arg.result_index < 0:
            raise InvalidReferenceError(
                f"Command {position} uses negative result index {arg.result_index}",
                index=position,
                reference=arg,
            )
        return
    raise InvalidReferenceError(
        f"Command {position} has an invalid argument {arg!r}", index=position, reference=arg
    )


def input_object_id(value: CallArg) -> str | None:
    """Return the object id referenced by an object input, if any."""

    if isinstance(value, UnresolvedObject):
        return value.object_id
    if isinstance(value, ObjectInput):
        return value.object_id
    return None
