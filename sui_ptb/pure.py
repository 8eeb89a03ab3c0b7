"""Encoding of pure (non-object) values and Move parameter signatures."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

from .bcs import BcsError, BcsWriter
from .data import OpenSignature, OpenSignatureBody
from .utils import MOVE_STDLIB_ADDRESS, SUI_FRAMEWORK_ADDRESS, normalize_sui_address

PureEncoder = Callable[[BcsWriter, Any], Any]

_INTEGER_KINDS = ("u8", "u16", "u32", "u64", "u128", "u256")
_NORMALIZED_PRIMITIVES = {
    "Address": "address",
    "Bool": "bool",
    "U8": "u8",
    "U16": "u16",
    "U32": "u32",
    "U64": "u64",
    "U128": "u128",
    "U256": "u256",
}


def _int_encoder(kind: str) -> PureEncoder:
    return lambda writer, value: writer.write_int(kind, int(value))


def _write_bool(writer: BcsWriter, value: Any) -> None:
    writer.write_bool(value)


def _write_address(writer: BcsWriter, value: Any) -> None:
    writer.write_address(value)


def _write_string(writer: BcsWriter, value: Any) -> None:
    if not isinstance(value, str):
        raise BcsError(f"Expected a string, got {value!r}")
    writer.write_string(value)


def _write_byte_vector(writer: BcsWriter, value: Any) -> None:
    if isinstance(value, str):
        value = value.encode("utf-8")
    writer.write_bytes(bytes(value))


def _vector_of(encoder: PureEncoder) -> PureEncoder:
    return lambda writer, value: writer.write_vector(list(value), encoder)


def _option_of(encoder: PureEncoder) -> PureEncoder:
    return lambda writer, value: writer.write_option(value, encoder)


def pure_encoder(type_name: str) -> PureEncoder:
    """Return an encoder for a pure type name such as ``u64`` or ``vector<address>``."""

    type_name = type_name.strip()
    if type_name in _INTEGER_KINDS:
        return _int_encoder(type_name)
    if type_name == "bool":
        return _write_bool
    if type_name in ("address", "id"):
        return _write_address
    if type_name == "string":
        return _write_string
    if type_name == "vector<u8>":
        return _write_byte_vector
    if type_name.startswith("vector<") and type_name.endswith(">"):
        return _vector_of(pure_encoder(type_name[len("vector<") : -1]))
    if type_name.startswith("option<") and type_name.endswith(">"):
        return _option_of(pure_encoder(type_name[len("option<") : -1]))
    raise ValueError(f"Unsupported pure type: {type_name}")


def encode_pure(type_name: str, value: Any) -> bytes:
    writer = BcsWriter()
    pure_encoder(type_name)(writer, value)
    return writer.to_bytes()


def _split_type_name(type_name: str) -> tuple[str, str, str]:
    parts = type_name.split("::")
    if len(parts) != 3:
        raise ValueError(f"Invalid type name format: {type_name}")
    return normalize_sui_address(parts[0]), parts[1], parts[2]


def is_tx_context(signature: OpenSignature) -> bool:
    body = signature.body
    if body.kind != "datatype" or not body.type_name:
        return False
    package, module, name = _split_type_name(body.type_name)
    return package == SUI_FRAMEWORK_ADDRESS and module == "tx_context" and name == "TxContext"


def encoder_for_signature(body: OpenSignatureBody) -> Optional[PureEncoder]:
    """Return a pure encoder for a parameter type, or ``None`` for object types."""

    if body.kind in _INTEGER_KINDS:
        return _int_encoder(body.kind)
    if body.kind == "bool":
        return _write_bool
    if body.kind == "address":
        return _write_address
    if body.kind == "vector" and body.vector is not None:
        if body.vector.kind == "u8":
            return _write_byte_vector
        inner = encoder_for_signature(body.vector)
        return _vector_of(inner) if inner else None
    if body.kind == "datatype" and body.type_name:
        package, module, name = _split_type_name(body.type_name)
        if package == MOVE_STDLIB_ADDRESS:
            if (module, name) in (("ascii", "String"), ("string", "String")):
                return _write_string
            if (module, name) == ("option", "Option") and body.type_parameters:
                inner = encoder_for_signature(body.type_parameters[0])
                return _option_of(inner) if inner else None
        if package == SUI_FRAMEWORK_ADDRESS and (module, name) == ("object", "ID"):
            return _write_address
    return None


def encode_for_signature(body: OpenSignatureBody, value: Any) -> Optional[bytes]:
    encoder = encoder_for_signature(body)
    if encoder is None:
        return None
    writer = BcsWriter()
    encoder(writer, value)
    return writer.to_bytes()


def normalized_type_to_signature(normalized: Any) -> OpenSignature:
    """Convert a JSON-RPC normalized Move type into an :class:`OpenSignature`."""

    if isinstance(normalized, Mapping) and "Reference" in normalized:
        return OpenSignature(
            body=_normalized_body(normalized["Reference"]), reference="immutable"
        )
    if isinstance(normalized, Mapping) and "MutableReference" in normalized:
        return OpenSignature(
            body=_normalized_body(normalized["MutableReference"]), reference="mutable"
        )
    return OpenSignature(body=_normalized_body(normalized))


def _normalized_body(normalized: Any) -> OpenSignatureBody:
    if isinstance(normalized, str):
        kind = _NORMALIZED_PRIMITIVES.get(normalized)
        if kind is None:
            raise ValueError(f"Unexpected type {normalized}")
        return OpenSignatureBody(kind=kind)
    if isinstance(normalized, Mapping):
        if "Vector" in normalized:
            return OpenSignatureBody(kind="vector", vector=_normalized_body(normalized["Vector"]))
        if "Struct" in normalized:
            struct = normalized["Struct"]
            return OpenSignatureBody(
                kind="datatype",
                type_name=f"{struct['address']}::{struct['module']}::{struct['name']}",
                type_parameters=tuple(
                    _normalized_body(param) for param in struct.get("typeArguments", [])
                ),
            )
        if "TypeParameter" in normalized:
            return OpenSignatureBody(kind="typeParameter", index=int(normalized["TypeParameter"]))
    raise ValueError(f"Unexpected type {normalized!r}")


class PureBuilder:
    """Callable helper producing pure inputs.

    ``builder(raw_bytes)`` adds already encoded bytes, ``builder("u64", 5)``
    encodes by type name and the typed methods (``builder.u64(5)``,
    ``builder.address("0x2")`` …) are shorthands for the latter.
    """

    def __init__(self, add_pure: Callable[[bytes], Any]) -> None:
        self._add_pure = add_pure

    def __call__(self, type_or_bytes: Any, value: Any = None) -> Any:
        if isinstance(type_or_bytes, (bytes, bytearray)):
            return self._add_pure(bytes(type_or_bytes))
        return self._add_pure(encode_pure(type_or_bytes, value))

    def u8(self, value: int) -> Any:
        return self("u8", value)

    def u16(self, value: int) -> Any:
        return self("u16", value)

    def u32(self, value: int) -> Any:
        return self("u32", value)

    def u64(self, value: int) -> Any:
        return self("u64", value)

    def u128(self, value: int) -> Any:
        return self("u128", value)

    def u256(self, value: int) -> Any:
        return self("u256", value)

    def bool(self, value: bool) -> Any:
        return self("bool", value)

    def address(self, value: str) -> Any:
        return self("address", value)

    def id(self, value: str) -> Any:
        return self("id", value)

    def string(self, value: str) -> Any:
        return self("string", value)

    def vector(self, type_name: str, values: Any) -> Any:
        return self(f"vector<{type_name}>", values)

    def option(self, type_name: str, value: Any) -> Any:
        return self(f"option<{type_name}>", value)
