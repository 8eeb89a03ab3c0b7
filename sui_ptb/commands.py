"""Factories for commands and inputs with normalized addresses and type tags."""

from __future__ import annotations

import base64
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Union

from .data import (
    Argument,
    ImmOrOwnedObject,
    Intent,
    MakeMoveVec,
    MergeCoins,
    MoveCall,
    ObjectInput,
    ObjectRef,
    Publish,
    Pure,
    Receiving,
    SharedObject,
    SplitCoins,
    TransferObjects,
    Upgrade,
)
from .utils import normalize_checked_address, normalize_type_tag, parse_move_target


def _module_bytes(module: Union[bytes, str, Sequence[int]]) -> bytes:
    if isinstance(module, (bytes, bytearray)):
        return bytes(module)
    if isinstance(module, str):
        return base64.b64decode(module)
    return bytes(module)


class Commands:
    """Build command nodes from already-normalized arguments."""

    @staticmethod
    def move_call(
        *,
        target: str | None = None,
        package: str | None = None,
        module: str | None = None,
        function: str | None = None,
        arguments: Iterable[Argument] = (),
        type_arguments: Iterable[str] = (),
    ) -> MoveCall:
        if target is not None:
            package, module, function = parse_move_target(target)
        if not (package and module and function):
            raise ValueError("move_call requires a target or package, module and function")
        return MoveCall(
            package=normalize_checked_address(package),
            module=module,
            function=function,
            type_arguments=[normalize_type_tag(tag) for tag in type_arguments],
            arguments=list(arguments),
        )

    @staticmethod
    def transfer_objects(objects: Iterable[Argument], address: Argument) -> TransferObjects:
        return TransferObjects(objects=list(objects), address=address)

    @staticmethod
    def split_coins(coin: Argument, amounts: Iterable[Argument]) -> SplitCoins:
        return SplitCoins(coin=coin, amounts=list(amounts))

    @staticmethod
    def merge_coins(destination: Argument, sources: Iterable[Argument]) -> MergeCoins:
        return MergeCoins(destination=destination, sources=list(sources))

    @staticmethod
    def publish(
        modules: Iterable[Union[bytes, str, Sequence[int]]], dependencies: Iterable[str]
    ) -> Publish:
        return Publish(
            modules=[_module_bytes(module) for module in modules],
            dependencies=[normalize_checked_address(dep) for dep in dependencies],
        )

    @staticmethod
    def upgrade(
        *,
        modules: Iterable[Union[bytes, str, Sequence[int]]],
        dependencies: Iterable[str],
        package: str,
        ticket: Argument,
    ) -> Upgrade:
        return Upgrade(
            modules=[_module_bytes(module) for module in modules],
            dependencies=[normalize_checked_address(dep) for dep in dependencies],
            package=normalize_checked_address(package),
            ticket=ticket,
        )

    @staticmethod
    def make_move_vec(*, elements: Iterable[Argument], type: str | None = None) -> MakeMoveVec:
        return MakeMoveVec(
            type=normalize_type_tag(type) if type is not None else None,
            elements=list(elements),
        )

    @staticmethod
    def intent(
        name: str,
        inputs: Mapping[str, Union[Argument, List[Argument]]] | None = None,
        data: Mapping[str, Any] | None = None,
    ) -> Intent:
        return Intent(name=name, inputs=dict(inputs or {}), data=dict(data or {}))


class Inputs:
    """Build resolved input values."""

    @staticmethod
    def pure(data: bytes) -> Pure:
        return Pure(bytes(data))

    @staticmethod
    def object_ref(object_id: str, version: int | str, digest: str) -> ObjectInput:
        return ObjectInput(
            ImmOrOwnedObject(
                ObjectRef(
                    object_id=normalize_checked_address(object_id),
                    version=int(version),
                    digest=digest,
                )
            )
        )

    @staticmethod
    def shared_object_ref(
        object_id: str, initial_shared_version: int | str, mutable: bool
    ) -> ObjectInput:
        return ObjectInput(
            SharedObject(
                object_id=normalize_checked_address(object_id),
                initial_shared_version=int(initial_shared_version),
                mutable=bool(mutable),
            )
        )

    @staticmethod
    def receiving_ref(object_id: str, version: int | str, digest: str) -> ObjectInput:
        return ObjectInput(
            Receiving(
                ObjectRef(
                    object_id=normalize_checked_address(object_id),
                    version=int(version),
                    digest=digest,
                )
            )
        )


def command_summary(command: Any) -> Dict[str, Any]:
    """Small description of a command for log records."""

    summary: Dict[str, Any] = {"kind": command.kind}
    if isinstance(command, MoveCall):
        summary["target"] = command.target
    elif isinstance(command, Intent):
        summary["intent"] = command.name
    return summary
