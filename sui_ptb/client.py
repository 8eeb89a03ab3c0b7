"""Collaborator contracts used by the resolution pipeline.

The pipeline talks to chain state only through :class:`CoreClient`. Any
object implementing these coroutines works; :class:`JsonRpcCoreClient`
implements them on top of :class:`~sui_ptb.rpc_client.SuiRPCClient`.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from .data import ObjectRef, OpenSignature
from .pure import normalized_type_to_signature
from .rpc_client import SuiRPCClient
from .utils import normalize_sui_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObjectInfo:
    """State of an on-chain object as needed to reference it."""

    object_id: str
    version: int
    digest: str
    owner_kind: str  # AddressOwner, ObjectOwner, Shared or Immutable
    owner: Optional[str] = None
    initial_shared_version: Optional[int] = None
    type: Optional[str] = None

    @property
    def is_shared(self) -> bool:
        return self.owner_kind == "Shared"

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef(self.object_id, self.version, self.digest)


@dataclass(frozen=True)
class Coin:
    object_id: str
    version: int
    digest: str
    balance: int
    coin_type: str

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef(self.object_id, self.version, self.digest)


@dataclass(frozen=True)
class CoinPage:
    data: List[Coin]
    next_cursor: Optional[str] = None
    has_next_page: bool = False


@dataclass(frozen=True)
class MoveFunction:
    package: str
    module: str
    name: str
    parameters: List[OpenSignature] = field(default_factory=list)
    type_parameter_count: int = 0
    is_entry: bool = False


@dataclass(frozen=True)
class GasUsed:
    computation_cost: int
    storage_cost: int
    storage_rebate: int
    non_refundable_storage_fee: int = 0


@dataclass(frozen=True)
class SimulationResult:
    success: bool
    gas_used: GasUsed
    error: Optional[str] = None


class CoreClient(Protocol):
    """State lookup, simulation and gas price collaborator."""

    async def get_objects(self, object_ids: Sequence[str]) -> List[Optional[ObjectInfo]]:
        """Return one entry per id, ``None`` for objects that do not exist."""

    async def get_move_function(self, package: str, module: str, function: str) -> MoveFunction:
        ...

    async def simulate_transaction(self, tx_bytes: bytes) -> SimulationResult:
        ...

    async def get_reference_gas_price(self) -> int:
        ...

    async def list_coins(
        self, owner: str, coin_type: str, cursor: Optional[str] = None
    ) -> CoinPage:
        ...


def parse_object_response(entry: Mapping[str, Any]) -> Optional[ObjectInfo]:
    """Convert one ``sui_multiGetObjects`` entry; ``None`` when it holds an error."""

    data = entry.get("data")
    if not data:
        return None
    owner = data.get("owner")
    owner_kind = "Immutable"
    owner_address = None
    initial_shared_version = None
    if isinstance(owner, Mapping):
        owner_kind = next(iter(owner))
        value = owner[owner_kind]
        if owner_kind == "Shared":
            initial_shared_version = int(value["initial_shared_version"])
        elif isinstance(value, str):
            owner_address = normalize_sui_address(value)
    return ObjectInfo(
        object_id=normalize_sui_address(data["objectId"]),
        version=int(data["version"]),
        digest=data["digest"],
        owner_kind=owner_kind,
        owner=owner_address,
        initial_shared_version=initial_shared_version,
        type=data.get("type"),
    )


def parse_coin(entry: Mapping[str, Any]) -> Coin:
    return Coin(
        object_id=normalize_sui_address(entry["coinObjectId"]),
        version=int(entry["version"]),
        digest=entry["digest"],
        balance=int(entry["balance"]),
        coin_type=entry["coinType"],
    )


def parse_simulation(response: Mapping[str, Any]) -> SimulationResult:
    effects = response.get("effects") or {}
    status = effects.get("status") or {}
    gas = effects.get("gasUsed") or {}
    return SimulationResult(
        success=status.get("status") == "success",
        error=status.get("error"),
        gas_used=GasUsed(
            computation_cost=int(gas.get("computationCost", 0)),
            storage_cost=int(gas.get("storageCost", 0)),
            storage_rebate=int(gas.get("storageRebate", 0)),
            non_refundable_storage_fee=int(gas.get("nonRefundableStorageFee", 0)),
        ),
    )


class JsonRpcCoreClient:
    """:class:`CoreClient` backed by the synchronous JSON-RPC client.

    Blocking requests run in worker threads so concurrent lookups overlap.
    """

    def __init__(self, rpc: SuiRPCClient) -> None:
        self.rpc = rpc

    @classmethod
    def from_env(cls) -> "JsonRpcCoreClient":
        return cls(SuiRPCClient.from_env())

    async def get_objects(self, object_ids: Sequence[str]) -> List[Optional[ObjectInfo]]:
        entries = await asyncio.to_thread(self.rpc.multi_get_objects, list(object_ids))
        return [parse_object_response(entry) for entry in entries]

    async def get_move_function(self, package: str, module: str, function: str) -> MoveFunction:
        response: Dict[str, Any] = await asyncio.to_thread(
            self.rpc.get_normalized_move_function, package, module, function
        )
        return MoveFunction(
            package=normalize_sui_address(package),
            module=module,
            name=function,
            parameters=[normalized_type_to_signature(param) for param in response.get("parameters", [])],
            type_parameter_count=len(response.get("typeParameters", [])),
            is_entry=bool(response.get("isEntry", False)),
        )

    async def simulate_transaction(self, tx_bytes: bytes) -> SimulationResult:
        encoded = base64.b64encode(tx_bytes).decode("ascii")
        response = await asyncio.to_thread(self.rpc.dry_run_transaction_block, encoded)
        return parse_simulation(response)

    async def get_reference_gas_price(self) -> int:
        return await asyncio.to_thread(self.rpc.get_reference_gas_price)

    async def list_coins(
        self, owner: str, coin_type: str, cursor: Optional[str] = None
    ) -> CoinPage:
        response = await asyncio.to_thread(self.rpc.get_coins, owner, coin_type, cursor)
        return CoinPage(
            data=[parse_coin(entry) for entry in response.get("data", [])],
            next_cursor=response.get("nextCursor"),
            has_next_page=bool(response.get("hasNextPage", False)),
        )
