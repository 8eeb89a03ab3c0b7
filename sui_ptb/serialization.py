"""Structured JSON form of transaction data.

Documents use the version 2 layout: u64 values are strings, pure and module
bytes are base64 and enums are single-key objects. Version 1 documents are
upgraded on load; any other version is rejected.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, List, Mapping

from .data import (
    Argument,
    CallArg,
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
    UnresolvedObject,
    UnresolvedPure,
    Upgrade,
)
from .errors import DecodeError
from .serializer import validate_decoded_graph
from .utils import normalize_sui_address, normalize_type_tag, parse_move_target

logger = logging.getLogger(__name__)

SERIALIZED_VERSION = 2


def _u64(value: int | None) -> str | None:
    return None if value is None else str(value)


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


def _b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


# Encoding ----------------------------------------------------------------


def argument_to_dict(arg: Argument) -> Dict[str, Any]:
    if isinstance(arg, GasCoin):
        return {"GasCoin": True}
    if isinstance(arg, Input):
        return {"Input": arg.index}
    if isinstance(arg, Result):
        return {"Result": arg.index}
    if isinstance(arg, NestedResult):
        return {"NestedResult": [arg.index, arg.result_index]}
    raise TypeError(f"Not an argument: {arg!r}")


def _object_ref_to_dict(ref: ObjectRef) -> Dict[str, Any]:
    return {"objectId": ref.object_id, "version": str(ref.version), "digest": ref.digest}


def _input_to_dict(value: CallArg) -> Dict[str, Any]:
    if isinstance(value, Pure):
        return {"Pure": {"bytes": _b64(value.bytes)}}
    if isinstance(value, UnresolvedPure):
        return {"UnresolvedPure": {"value": value.value}}
    if isinstance(value, UnresolvedObject):
        return {
            "UnresolvedObject": {
                "objectId": value.object_id,
                "version": _u64(value.version),
                "digest": value.digest,
                "initialSharedVersion": _u64(value.initial_shared_version),
                "mutable": value.mutable,
            }
        }
    obj = value.object
    if isinstance(obj, ImmOrOwnedObject):
        return {"Object": {"ImmOrOwnedObject": _object_ref_to_dict(obj.ref)}}
    if isinstance(obj, Receiving):
        return {"Object": {"Receiving": _object_ref_to_dict(obj.ref)}}
    return {
        "Object": {
            "SharedObject": {
                "objectId": obj.object_id,
                "initialSharedVersion": str(obj.initial_shared_version),
                "mutable": obj.mutable,
            }
        }
    }


def _arguments(args: List[Argument]) -> List[Dict[str, Any]]:
    return [argument_to_dict(arg) for arg in args]


def _command_to_dict(command: Command) -> Dict[str, Any]:
    if isinstance(command, MoveCall):
        return {
            "MoveCall": {
                "package": command.package,
                "module": command.module,
                "function": command.function,
                "typeArguments": list(command.type_arguments),
                "arguments": _arguments(command.arguments),
            }
        }
    if isinstance(command, TransferObjects):
        return {
            "TransferObjects": {
                "objects": _arguments(command.objects),
                "address": argument_to_dict(command.address),
            }
        }
    if isinstance(command, SplitCoins):
        return {
            "SplitCoins": {
                "coin": argument_to_dict(command.coin),
                "amounts": _arguments(command.amounts),
            }
        }
    if isinstance(command, MergeCoins):
        return {
            "MergeCoins": {
                "destination": argument_to_dict(command.destination),
                "sources": _arguments(command.sources),
            }
        }
    if isinstance(command, Publish):
        return {
            "Publish": {
                "modules": [_b64(module) for module in command.modules],
                "dependencies": list(command.dependencies),
            }
        }
    if isinstance(command, MakeMoveVec):
        return {"MakeMoveVec": {"type": command.type, "elements": _arguments(command.elements)}}
    if isinstance(command, Upgrade):
        return {
            "Upgrade": {
                "modules": [_b64(module) for module in command.modules],
                "dependencies": list(command.dependencies),
                "package": command.package,
                "ticket": argument_to_dict(command.ticket),
            }
        }
    if isinstance(command, Intent):
        return {
            "$Intent": {
                "name": command.name,
                "inputs": {
                    key: _arguments(value) if isinstance(value, list) else argument_to_dict(value)
                    for key, value in command.inputs.items()
                },
                "data": dict(command.data),
            }
        }
    raise TypeError(f"Unknown command {command!r}")


def transaction_data_to_dict(data: TransactionData) -> Dict[str, Any]:
    """Return the version 2 structured form of ``data``."""

    gas = data.gas_data
    return {
        "version": SERIALIZED_VERSION,
        "sender": data.sender,
        "expiration": (
            None if data.expiration is None else {"Epoch": str(data.expiration.epoch)}
        ),
        "gasData": {
            "budget": _u64(gas.budget),
            "price": _u64(gas.price),
            "owner": gas.owner,
            "payment": (
                None if gas.payment is None else [_object_ref_to_dict(ref) for ref in gas.payment]
            ),
        },
        "inputs": [_input_to_dict(value) for value in data.inputs],
        "commands": [_command_to_dict(command) for command in data.commands],
    }


def transaction_data_to_json(data: TransactionData, **kwargs: Any) -> str:
    return json.dumps(transaction_data_to_dict(data), **kwargs)


# Decoding ----------------------------------------------------------------


def _single_key(value: Mapping[str, Any], what: str) -> tuple:
    if not isinstance(value, Mapping) or len(value) != 1:
        raise DecodeError(f"Expected a single-variant {what}, got {value!r}")
    return next(iter(value.items()))


def argument_from_dict(value: Mapping[str, Any]) -> Argument:
    if isinstance(value, Mapping) and "Input" in value:
        return Input(int(value["Input"]))
    variant, body = _single_key(value, "argument")
    if variant == "GasCoin":
        return GasCoin()
    if variant == "Result":
        return Result(int(body))
    if variant == "NestedResult":
        index, result_index = body
        return NestedResult(int(index), int(result_index))
    raise DecodeError(f"Unknown argument variant {variant}")


def _object_ref_from_dict(value: Mapping[str, Any]) -> ObjectRef:
    return ObjectRef(
        object_id=normalize_sui_address(value["objectId"]),
        version=int(value["version"]),
        digest=value["digest"],
    )


def _input_from_dict(value: Mapping[str, Any]) -> CallArg:
    variant, body = _single_key(value, "input")
    if variant == "Pure":
        return Pure(base64.b64decode(body["bytes"]))
    if variant == "UnresolvedPure":
        return UnresolvedPure(body["value"])
    if variant == "UnresolvedObject":
        return UnresolvedObject(
            object_id=normalize_sui_address(body["objectId"]),
            version=_optional_int(body.get("version")),
            digest=body.get("digest"),
            initial_shared_version=_optional_int(body.get("initialSharedVersion")),
            mutable=body.get("mutable"),
        )
    if variant == "Object":
        kind, ref = _single_key(body, "object")
        if kind == "ImmOrOwnedObject":
            return ObjectInput(ImmOrOwnedObject(_object_ref_from_dict(ref)))
        if kind == "Receiving":
            return ObjectInput(Receiving(_object_ref_from_dict(ref)))
        if kind == "SharedObject":
            return ObjectInput(
                SharedObject(
                    object_id=normalize_sui_address(ref["objectId"]),
                    initial_shared_version=int(ref["initialSharedVersion"]),
                    mutable=bool(ref["mutable"]),
                )
            )
        raise DecodeError(f"Unknown object variant {kind}")
    raise DecodeError(f"Unknown input variant {variant}")


def _argument_list(values: List[Any]) -> List[Argument]:
    return [argument_from_dict(value) for value in values]


def _command_from_dict(value: Mapping[str, Any]) -> Command:
    variant, body = _single_key(value, "command")
    if variant == "MoveCall":
        return MoveCall(
            package=normalize_sui_address(body["package"]),
            module=body["module"],
            function=body["function"],
            type_arguments=[normalize_type_tag(tag) for tag in body.get("typeArguments", [])],
            arguments=_argument_list(body.get("arguments", [])),
        )
    if variant == "TransferObjects":
        return TransferObjects(
            objects=_argument_list(body["objects"]), address=argument_from_dict(body["address"])
        )
    if variant == "SplitCoins":
        return SplitCoins(coin=argument_from_dict(body["coin"]), amounts=_argument_list(body["amounts"]))
    if variant == "MergeCoins":
        return MergeCoins(
            destination=argument_from_dict(body["destination"]),
            sources=_argument_list(body["sources"]),
        )
    if variant == "Publish":
        return Publish(
            modules=[base64.b64decode(module) for module in body["modules"]],
            dependencies=[normalize_sui_address(dep) for dep in body["dependencies"]],
        )
    if variant == "MakeMoveVec":
        type_name = body.get("type")
        return MakeMoveVec(
            type=normalize_type_tag(type_name) if type_name is not None else None,
            elements=_argument_list(body["elements"]),
        )
    if variant == "Upgrade":
        return Upgrade(
            modules=[base64.b64decode(module) for module in body["modules"]],
            dependencies=[normalize_sui_address(dep) for dep in body["dependencies"]],
            package=normalize_sui_address(body["package"]),
            ticket=argument_from_dict(body["ticket"]),
        )
    if variant == "$Intent":
        return Intent(
            name=body["name"],
            inputs={
                key: _argument_list(arg) if isinstance(arg, list) else argument_from_dict(arg)
                for key, arg in body.get("inputs", {}).items()
            },
            data=dict(body.get("data", {})),
        )
    raise DecodeError(f"Unknown command variant {variant}")


def _expiration_from_dict(value: Any) -> EpochExpiration | None:
    if value is None:
        return None
    variant, body = _single_key(value, "expiration")
    if variant == "None":
        return None
    if variant == "Epoch":
        return EpochExpiration(int(body))
    raise DecodeError(f"Unknown expiration variant {variant}")


def _v2_from_dict(doc: Mapping[str, Any]) -> TransactionData:
    gas = doc.get("gasData") or {}
    payment = gas.get("payment")
    sender = doc.get("sender")
    owner = gas.get("owner")
    return TransactionData(
        version=SERIALIZED_VERSION,
        sender=normalize_sui_address(sender) if sender else None,
        expiration=_expiration_from_dict(doc.get("expiration")),
        gas_data=GasData(
            budget=_optional_int(gas.get("budget")),
            price=_optional_int(gas.get("price")),
            owner=normalize_sui_address(owner) if owner else None,
            payment=None if payment is None else [_object_ref_from_dict(ref) for ref in payment],
        ),
        inputs=[_input_from_dict(value) for value in doc.get("inputs", [])],
        commands=[_command_from_dict(value) for value in doc.get("commands", [])],
    )


# Version 1 upgrade -------------------------------------------------------


def _v1_argument(value: Mapping[str, Any]) -> Dict[str, Any]:
    kind = value["kind"]
    if kind == "GasCoin":
        return {"GasCoin": True}
    if kind == "Input":
        return {"Input": int(value["index"])}
    if kind == "Result":
        return {"Result": int(value["index"])}
    if kind == "NestedResult":
        return {"NestedResult": [int(value["index"]), int(value["resultIndex"])]}
    raise DecodeError(f"Unknown v1 argument kind {kind}")


def _v1_arguments(values: List[Any]) -> List[Dict[str, Any]]:
    return [_v1_argument(value) for value in values]


def _v1_object_ref(value: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "objectId": value["objectId"],
        "version": str(value["version"]),
        "digest": value["digest"],
    }


def _v1_input(value: Mapping[str, Any]) -> Dict[str, Any]:
    raw = value.get("value")
    if isinstance(raw, Mapping) and "Pure" in raw:
        return {"Pure": {"bytes": _b64(bytes(raw["Pure"]))}}
    if isinstance(raw, Mapping) and "Object" in raw:
        kind, ref = _single_key(raw["Object"], "v1 object")
        if kind == "ImmOrOwned":
            return {"Object": {"ImmOrOwnedObject": _v1_object_ref(ref)}}
        if kind == "Receiving":
            return {"Object": {"Receiving": _v1_object_ref(ref)}}
        if kind == "Shared":
            return {
                "Object": {
                    "SharedObject": {
                        "objectId": ref["objectId"],
                        "initialSharedVersion": str(ref["initialSharedVersion"]),
                        "mutable": bool(ref["mutable"]),
                    }
                }
            }
        raise DecodeError(f"Unknown v1 object kind {kind}")
    if value.get("type") == "object":
        return {"UnresolvedObject": {"objectId": raw}}
    return {"UnresolvedPure": {"value": raw}}


def _v1_command(value: Mapping[str, Any]) -> Dict[str, Any]:
    kind = value["kind"]
    if kind == "MoveCall":
        package, module, function = parse_move_target(value["target"])
        return {
            "MoveCall": {
                "package": package,
                "module": module,
                "function": function,
                "typeArguments": list(value.get("typeArguments", [])),
                "arguments": _v1_arguments(value.get("arguments", [])),
            }
        }
    if kind == "TransferObjects":
        return {
            "TransferObjects": {
                "objects": _v1_arguments(value["objects"]),
                "address": _v1_argument(value["address"]),
            }
        }
    if kind == "SplitCoins":
        return {
            "SplitCoins": {
                "coin": _v1_argument(value["coin"]),
                "amounts": _v1_arguments(value["amounts"]),
            }
        }
    if kind == "MergeCoins":
        return {
            "MergeCoins": {
                "destination": _v1_argument(value["destination"]),
                "sources": _v1_arguments(value["sources"]),
            }
        }
    if kind in ("Publish", "Upgrade"):
        body = {
            "modules": [_b64(bytes(module)) for module in value["modules"]],
            "dependencies": list(value["dependencies"]),
        }
        if kind == "Upgrade":
            body["package"] = value["packageId"]
            body["ticket"] = _v1_argument(value["ticket"])
        return {kind: body}
    if kind == "MakeMoveVec":
        type_option = value.get("type") or {"None": None}
        return {
            "MakeMoveVec": {
                "type": type_option.get("Some"),
                "elements": _v1_arguments(value["objects"]),
            }
        }
    raise DecodeError(f"Unknown v1 command kind {kind}")


def upgrade_v1_document(doc: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate a version 1 document into the version 2 layout."""

    gas = doc.get("gasConfig") or {}
    expiration = doc.get("expiration")
    if isinstance(expiration, Mapping) and "Epoch" in expiration:
        expiration = {"Epoch": str(expiration["Epoch"])}
    else:
        expiration = None
    payment = gas.get("payment")
    return {
        "version": SERIALIZED_VERSION,
        "sender": doc.get("sender"),
        "expiration": expiration,
        "gasData": {
            "budget": _u64(_optional_int(gas.get("budget"))),
            "price": _u64(_optional_int(gas.get("price"))),
            "owner": gas.get("owner"),
            "payment": None if payment is None else [_v1_object_ref(ref) for ref in payment],
        },
        "inputs": [_v1_input(value) for value in doc.get("inputs", [])],
        "commands": [_v1_command(value) for value in doc.get("transactions", [])],
    }


def transaction_data_from_dict(doc: Mapping[str, Any]) -> TransactionData:
    """Load a version 1 or 2 document; raises :class:`DecodeError` otherwise."""

    if not isinstance(doc, Mapping):
        raise DecodeError(f"Expected a JSON object, got {type(doc).__name__}")
    version = doc.get("version")
    if type(version) is not int:
        raise DecodeError(f"Unsupported transaction document version {version!r}")
    try:
        if version == 1:
            logger.debug("Upgrading version 1 transaction document")
            doc = upgrade_v1_document(doc)
        elif version != SERIALIZED_VERSION:
            raise DecodeError(f"Unsupported transaction document version {version!r}")
        data = _v2_from_dict(doc)
    except DecodeError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeError(f"Malformed transaction document: {exc}") from exc
    validate_decoded_graph(data)
    return data


def transaction_data_from_json(payload: str | bytes | Mapping[str, Any]) -> TransactionData:
    if isinstance(payload, Mapping):
        return transaction_data_from_dict(payload)
    try:
        doc = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Invalid transaction JSON: {exc}") from exc
    return transaction_data_from_dict(doc)
