"""Mutable arena holding a transaction's inputs and commands.

Inputs and commands live in plain lists; a position is the identity of the
element stored there. Appending validates references against the append
position, replacing a single command overwrites its slot without moving
anything else, and every other mutation goes through :meth:`map_arguments`.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Callable, List, Sequence, Tuple

from .commands import command_summary
from .data import (
    Argument,
    CallArg,
    Command,
    Input,
    Intent,
    NestedResult,
    ObjectInput,
    Result,
    SharedObject,
    TransactionData,
    UnresolvedObject,
    UnresolvedPure,
    check_argument,
    input_object_id,
)
from .errors import InvalidReferenceError
from .utils import normalize_sui_object_id

logger = logging.getLogger(__name__)

# (position, size difference, argument now standing for the replaced command)
Splice = Tuple[int, int, Argument]


def _merge_unresolved(existing: UnresolvedObject, new: UnresolvedObject) -> UnresolvedObject:
    mutable = existing.mutable
    if new.mutable is not None:
        mutable = bool(existing.mutable) or new.mutable
    return replace(
        existing,
        version=existing.version if existing.version is not None else new.version,
        digest=existing.digest if existing.digest is not None else new.digest,
        initial_shared_version=(
            existing.initial_shared_version
            if existing.initial_shared_version is not None
            else new.initial_shared_version
        ),
        mutable=mutable,
    )


def _upgrade_shared(existing: ObjectInput, new: CallArg) -> ObjectInput:
    """Return ``existing`` made mutable when ``new`` asks for mutable access."""

    shared = existing.object
    if isinstance(new, ObjectInput) and isinstance(new.object, SharedObject):
        wants_mutable = new.object.mutable
    elif isinstance(new, UnresolvedObject):
        wants_mutable = bool(new.mutable)
    else:
        return existing
    if wants_mutable and not shared.mutable:
        return ObjectInput(replace(shared, mutable=True))
    return existing


def _shift_argument(arg: Argument, position: int, diff: int, result: Argument) -> Argument:
    if isinstance(arg, Result):
        if arg.index == position:
            return result
        if arg.index > position:
            return Result(arg.index + diff)
    elif isinstance(arg, NestedResult):
        if arg.index == position:
            if isinstance(result, Result):
                return NestedResult(result.index, arg.result_index)
            if isinstance(result, NestedResult) and arg.result_index == 0:
                return result
            raise InvalidReferenceError(
                f"Nested result {arg.result_index} of replaced command {position} has no counterpart",
                index=position,
                reference=arg,
            )
        if arg.index > position:
            return NestedResult(arg.index + diff, arg.result_index)
    return arg


class TransactionDataBuilder:
    """Owns a :class:`TransactionData` while it is being constructed or resolved."""

    def __init__(self, data: TransactionData | None = None) -> None:
        self.data = data if data is not None else TransactionData()
        self._splices: List[Splice] = []

    # Accessors ---------------------------------------------------------

    @property
    def inputs(self) -> List[CallArg]:
        return self.data.inputs

    @property
    def commands(self) -> List[Command]:
        return self.data.commands

    @property
    def sender(self) -> str | None:
        return self.data.sender

    @sender.setter
    def sender(self, value: str | None) -> None:
        self.data.sender = value

    @property
    def gas_data(self):
        return self.data.gas_data

    @property
    def expiration(self):
        return self.data.expiration

    @expiration.setter
    def expiration(self, value) -> None:
        self.data.expiration = value

    @property
    def generation(self) -> int:
        """Number of splices applied so far; result handles remember it."""

        return len(self._splices)

    # Appends -----------------------------------------------------------

    def add_input(self, value: CallArg) -> Input:
        """Append ``value`` or reuse the input already holding the same object."""

        object_id = input_object_id(value)
        if object_id is not None:
            object_id = normalize_sui_object_id(object_id)
            if isinstance(value, UnresolvedObject):
                value = replace(value, object_id=object_id)
            for index, existing in enumerate(self.inputs):
                existing_id = input_object_id(existing)
                if existing_id is None or normalize_sui_object_id(existing_id) != object_id:
                    continue
                if isinstance(existing, UnresolvedObject):
                    if isinstance(value, UnresolvedObject):
                        self.inputs[index] = _merge_unresolved(existing, value)
                    elif existing.mutable and isinstance(value.object, SharedObject):
                        self.inputs[index] = ObjectInput(replace(value.object, mutable=True))
                    else:
                        self.inputs[index] = value
                elif isinstance(existing.object, SharedObject):
                    self.inputs[index] = _upgrade_shared(existing, value)
                return Input(index)

        self.inputs.append(value)
        return Input(len(self.inputs) - 1)

    def add_command(self, command: Command) -> Result:
        position = len(self.commands)
        self._check_command(command, position)
        self.commands.append(command)
        logger.debug("Appended command %d %s", position, command_summary(command))
        return Result(position)

    def _check_command(self, command: Command, position: int) -> None:
        input_count = len(self.inputs)
        for arg in command.arguments_list():
            check_argument(arg, position, input_count)

    # Replacement -------------------------------------------------------

    def replace_command(
        self,
        index: int,
        replacement: Command | Sequence[Command],
        result: Argument | None = None,
    ) -> None:
        """Replace the command at ``index``.

        A single command overwrites the slot in place; nothing else moves. A
        sequence of commands is spliced into the slot: commands after it
        shift by ``len(replacement) - 1`` and references to the replaced
        command are redirected to ``result`` (the last inserted command by
        default).
        """

        if not 0 <= index < len(self.commands):
            raise InvalidReferenceError(f"No command at index {index}", index=index)

        if isinstance(replacement, Command):
            self._check_command(replacement, index)
            self.commands[index] = replacement
            logger.debug("Replaced command %d with %s", index, command_summary(replacement))
            return

        replacement = list(replacement)
        if not replacement:
            raise ValueError("Replacement must contain at least one command")
        for offset, command in enumerate(replacement):
            self._check_command(command, index + offset)
        diff = len(replacement) - 1
        target = result if result is not None else Result(index + diff)
        if diff == 0 and target == Result(index):
            self.commands[index] = replacement[0]
            return

        for position in range(index + 1, len(self.commands)):
            self.commands[position].map_arguments(
                lambda arg: _shift_argument(arg, index, diff, target)
            )
        self.commands[index : index + 1] = replacement
        self._splices.append((index, diff, target))
        logger.debug("Spliced %d commands at index %d", len(replacement), index)

    def insert_transaction(self, index: int, other: TransactionData) -> None:
        """Merge the inputs and commands of ``other`` in front of command ``index``.

        Object inputs are deduplicated against this graph, raising shared
        objects to mutable where either side needs it. References inside the
        inserted commands are rebased and commands from ``index`` on move past
        the inserted block.
        """

        if not 0 <= index <= len(self.commands):
            raise InvalidReferenceError(f"Cannot insert at command index {index}", index=index)
        inserted = copy.deepcopy(other.commands)
        for position, command in enumerate(inserted):
            for arg in command.arguments_list():
                check_argument(arg, position, len(other.inputs))
        input_map = [self.add_input(value).index for value in copy.deepcopy(other.inputs)]

        def rebase(arg: Argument) -> Argument:
            if isinstance(arg, Input):
                return Input(input_map[arg.index])
            if isinstance(arg, Result):
                return Result(arg.index + index)
            if isinstance(arg, NestedResult):
                return NestedResult(arg.index + index, arg.result_index)
            return arg

        for command in inserted:
            command.map_arguments(rebase)
        if not inserted:
            return

        # An insertion is a splice that keeps the command in front of it.
        splice: Splice = (index - 1, len(inserted), Result(index - 1))
        for position in range(index, len(self.commands)):
            self.commands[position].map_arguments(lambda arg: _shift_argument(arg, *splice))
        self.commands[index:index] = inserted
        self._splices.append(splice)
        logger.debug("Inserted %d commands at index %d", len(inserted), index)

    def remap_result(self, argument: Argument, generation: int) -> Argument:
        """Translate a result argument created at ``generation`` to the current layout."""

        for position, diff, target in self._splices[generation:]:
            argument = _shift_argument(argument, position, diff, target)
        return argument

    # Traversal ---------------------------------------------------------

    def map_arguments(self, fn: Callable[[Argument, Command, int], Argument]) -> None:
        for index, command in enumerate(self.commands):
            command.map_arguments(lambda arg, command=command, index=index: fn(arg, command, index))

    def get_input_uses(self, index: int, fn: Callable[[Argument, Command], None]) -> None:
        for command in self.commands:
            for arg in command.arguments_list():
                if isinstance(arg, Input) and arg.index == index:
                    fn(arg, command)

    def validate(self) -> None:
        """Check every reference in the graph; raises :class:`InvalidReferenceError`."""

        for position, command in enumerate(self.commands):
            self._check_command(command, position)

    def unresolved(self) -> Tuple[List[int], List[int]]:
        """Return indices of unresolved inputs and of remaining intent commands."""

        inputs = [
            index
            for index, value in enumerate(self.inputs)
            if isinstance(value, (UnresolvedObject, UnresolvedPure))
        ]
        intents = [index for index, command in enumerate(self.commands) if isinstance(command, Intent)]
        return inputs, intents

    def is_resolved(self) -> bool:
        inputs, intents = self.unresolved()
        return not inputs and not intents

    def has_resolved_objects(self) -> bool:
        return any(isinstance(value, ObjectInput) for value in self.inputs)

    # Copies ------------------------------------------------------------

    def snapshot(self) -> TransactionData:
        return copy.deepcopy(self.data)

    def restore(self, data: TransactionData) -> None:
        self.data = copy.deepcopy(data)
        self._splices = []

    def clone(self) -> "TransactionDataBuilder":
        other = TransactionDataBuilder(copy.deepcopy(self.data))
        other._splices = list(self._splices)
        return other

    # Encoding ----------------------------------------------------------

    def build(self, *, only_transaction_kind: bool = False, overrides: dict | None = None) -> bytes:
        """Encode the graph; see :mod:`sui_ptb.serializer`."""

        from .serializer import serialize_transaction_data, serialize_transaction_kind

        if only_transaction_kind:
            return serialize_transaction_kind(self.data)
        data = self.data
        if overrides:
            data = copy.deepcopy(self.data)
            for key, value in overrides.items():
                if key == "gas_data":
                    data.gas_data = replace(data.gas_data, **value)
                else:
                    setattr(data, key, value)
        return serialize_transaction_data(data)

    def get_digest(self) -> str:
        from .serializer import transaction_digest

        return transaction_digest(self.build())

    @classmethod
    def from_bytes(cls, data: bytes) -> "TransactionDataBuilder":
        from .serializer import deserialize_transaction_data

        return cls(deserialize_transaction_data(data))

    @classmethod
    def from_kind_bytes(cls, data: bytes) -> "TransactionDataBuilder":
        from .serializer import deserialize_transaction_kind

        return cls(deserialize_transaction_kind(data))
