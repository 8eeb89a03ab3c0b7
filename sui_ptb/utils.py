"""Address, struct tag and type tag helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Tuple, Union

SUI_ADDRESS_LENGTH = 32
_HEX_RE = re.compile(r"^[0-9a-f]*$")
_PRIMITIVE_TYPES = {"bool", "u8", "u16", "u32", "u64", "u128", "u256", "address", "signer"}


def normalize_sui_address(value: str) -> str:
    """Return ``value`` as a lowercase, zero-padded ``0x`` address."""

    address = value.strip().lower()
    if address.startswith("0x"):
        address = address[2:]
    return "0x" + address.rjust(SUI_ADDRESS_LENGTH * 2, "0")


def is_valid_sui_address(value: str) -> bool:
    if not isinstance(value, str) or not value.startswith("0x"):
        return False
    body = value[2:]
    return len(body) == SUI_ADDRESS_LENGTH * 2 and bool(_HEX_RE.match(body))


def normalize_checked_address(value: str) -> str:
    """Normalize ``value`` and raise ``ValueError`` if it is not an address."""

    if not isinstance(value, str):
        raise ValueError(f"Expected an address string, got {value!r}")
    normalized = normalize_sui_address(value)
    if not is_valid_sui_address(normalized):
        raise ValueError(f"Invalid Sui address: {value}")
    return normalized


normalize_sui_object_id = normalize_sui_address

MOVE_STDLIB_ADDRESS = normalize_sui_address("0x1")
SUI_FRAMEWORK_ADDRESS = normalize_sui_address("0x2")
SUI_TYPE = f"{SUI_FRAMEWORK_ADDRESS}::sui::SUI"

SUI_SYSTEM_STATE_OBJECT_ID = normalize_sui_address("0x5")
SUI_CLOCK_OBJECT_ID = normalize_sui_address("0x6")
SUI_RANDOM_OBJECT_ID = normalize_sui_address("0x8")
SUI_DENY_LIST_OBJECT_ID = normalize_sui_address("0x403")


@dataclass(frozen=True)
class StructTag:
    address: str
    module: str
    name: str
    type_params: Tuple["TypeTag", ...] = ()


@dataclass(frozen=True)
class VectorTag:
    element: "TypeTag"


# Primitive tags are represented by their lowercase name.
TypeTag = Union[str, VectorTag, StructTag]


def _split_generic_params(body: str) -> List[str]:
    params: List[str] = []
    depth = 0
    current = ""
    for char in body:
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
        if char == "," and depth == 0:
            params.append(current.strip())
            current = ""
            continue
        current += char
    if current.strip():
        params.append(current.strip())
    return params


def parse_struct_tag(value: str) -> StructTag:
    """Parse ``0x2::coin::Coin<0x2::sui::SUI>`` style struct tags."""

    value = value.strip()
    generic_start = value.find("<")
    head = value if generic_start == -1 else value[:generic_start]
    parts = head.split("::")
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid struct tag: {value}")
    address, module, name = parts
    type_params: Tuple[TypeTag, ...] = ()
    if generic_start != -1:
        if not value.endswith(">"):
            raise ValueError(f"Invalid struct tag: {value}")
        type_params = tuple(
            parse_type_tag(param) for param in _split_generic_params(value[generic_start + 1 : -1])
        )
    return StructTag(
        address=normalize_checked_address(address),
        module=module,
        name=name,
        type_params=type_params,
    )


def parse_type_tag(value: str) -> TypeTag:
    value = value.strip()
    if value in _PRIMITIVE_TYPES:
        return value
    if value.startswith("vector<") and value.endswith(">"):
        return VectorTag(parse_type_tag(value[len("vector<") : -1]))
    if "::" in value:
        return parse_struct_tag(value)
    raise ValueError(f"Invalid type tag: {value}")


def type_tag_to_string(tag: TypeTag) -> str:
    if isinstance(tag, str):
        return tag
    if isinstance(tag, VectorTag):
        return f"vector<{type_tag_to_string(tag.element)}>"
    params = ""
    if tag.type_params:
        params = "<" + ", ".join(type_tag_to_string(param) for param in tag.type_params) + ">"
    return f"{tag.address}::{tag.module}::{tag.name}{params}"


def normalize_type_tag(value: str) -> str:
    return type_tag_to_string(parse_type_tag(value))


def normalize_struct_tag(value: str) -> str:
    return type_tag_to_string(parse_struct_tag(value))


def parse_move_target(target: str) -> Tuple[str, str, str]:
    """Split ``package::module::function`` into normalized parts."""

    parts = target.split("::")
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid move call target: {target}")
    package, module, function = parts
    return normalize_checked_address(package), module, function
