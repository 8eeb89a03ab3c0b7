"""Coin-with-balance intent.

``coin_with_balance(balance)`` stands for "a coin of this type holding exactly
``balance``". The resolver turns each such intent into real commands:
a split of the gas coin for SUI, ``0x2::coin::zero`` for empty coins, and
otherwise a merge of the sender's coins followed by a split.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Set

from .commands import Commands, Inputs
from .data import Argument, GasCoin, Intent, NestedResult, ObjectInput, UnresolvedObject
from .core_resolver import call_client, require_client
from .errors import IntentResolutionError
from .pure import encode_pure
from .transaction_data import TransactionDataBuilder
from .utils import SUI_TYPE, normalize_struct_tag, normalize_sui_object_id

if TYPE_CHECKING:  # pragma: no cover
    from .client import Coin, CoreClient
    from .resolve import BuildOptions, Next
    from .transaction import Transaction, TransactionResult

logger = logging.getLogger(__name__)

COIN_WITH_BALANCE = "CoinWithBalance"
GAS_COIN_TYPE = "gas"


def coin_with_balance(
    balance: int, type: str = SUI_TYPE, use_gas_coin: bool = True
) -> Callable[["Transaction"], "TransactionResult"]:
    """Return a function adding a coin-with-balance intent to a transaction.

    Pass the returned function to :meth:`Transaction.add` or anywhere an
    argument is accepted.
    """

    if int(balance) < 0:
        raise ValueError(f"Balance must be non-negative, got {balance}")

    def add_coin(tx: "Transaction") -> "TransactionResult":
        coin_type = type if type == GAS_COIN_TYPE else normalize_struct_tag(type)
        if coin_type == SUI_TYPE and use_gas_coin:
            coin_type = GAS_COIN_TYPE
        return tx.add_intent(
            COIN_WITH_BALANCE,
            resolve_coin_balance,
            data={"type": coin_type, "balance": int(balance)},
        )

    return add_coin


def _used_object_ids(data: TransactionDataBuilder) -> Set[str]:
    used = set()
    for value in data.inputs:
        if isinstance(value, (ObjectInput, UnresolvedObject)):
            used.add(normalize_sui_object_id(value.object_id))
    return used


async def _coins_of_type(
    client: "CoreClient", owner: str, coin_type: str, balance: int, used_ids: Set[str]
) -> List["Coin"]:
    selected: List["Coin"] = []
    total = 0
    cursor = None
    while True:
        page = await call_client("list_coins", client.list_coins(owner, coin_type, cursor))
        for coin in page.data:
            if coin.object_id in used_ids:
                continue
            selected.append(coin)
            total += coin.balance
            if total >= balance:
                return selected
        if not page.has_next_page:
            raise IntentResolutionError(
                COIN_WITH_BALANCE, f"Insufficient balance of {coin_type} for owner {owner}"
            )
        cursor = page.next_cursor


async def resolve_coin_balance(
    data: TransactionDataBuilder, options: "BuildOptions", next: "Next"
) -> None:
    totals: Dict[str, int] = {}
    for command in data.commands:
        if isinstance(command, Intent) and command.name == COIN_WITH_BALANCE:
            coin_type = command.data["type"]
            totals[coin_type] = totals.get(coin_type, 0) + int(command.data["balance"])
    to_select = [
        coin_type for coin_type, total in totals.items() if coin_type != GAS_COIN_TYPE and total > 0
    ]

    coins_by_type: Dict[str, List["Coin"]] = {}
    if to_select:
        if data.sender is None:
            raise IntentResolutionError(COIN_WITH_BALANCE, "Sender must be set to select coins")
        client = require_client(options, "select coins")
        used_ids = _used_object_ids(data)
        selections = await asyncio.gather(
            *(
                _coins_of_type(client, data.sender, coin_type, totals[coin_type], used_ids)
                for coin_type in to_select
            )
        )
        coins_by_type = dict(zip(to_select, selections))

    merged: Dict[str, Argument] = {GAS_COIN_TYPE: GasCoin()}
    index = 0
    while index < len(data.commands):
        command = data.commands[index]
        if not isinstance(command, Intent) or command.name != COIN_WITH_BALANCE:
            index += 1
            continue
        coin_type = command.data["type"]
        balance = int(command.data["balance"])
        if balance == 0 and coin_type != GAS_COIN_TYPE:
            data.replace_command(
                index,
                Commands.move_call(target="0x2::coin::zero", type_arguments=[coin_type]),
            )
            index += 1
            continue

        replacement: List[Any] = []
        if coin_type not in merged:
            first, *rest = [
                data.add_input(Inputs.object_ref(coin.object_id, coin.version, coin.digest))
                for coin in coins_by_type[coin_type]
            ]
            if rest:
                replacement.append(Commands.merge_coins(first, rest))
            merged[coin_type] = first
        amount = data.add_input(Inputs.pure(encode_pure("u64", balance)))
        replacement.append(Commands.split_coins(merged[coin_type], [amount]))
        split_index = index + len(replacement) - 1
        data.replace_command(index, replacement, result=NestedResult(split_index, 0))
        logger.debug("Resolved %s intent at %d into %d commands", coin_type, index, len(replacement))
        index = split_index + 1

    await next()
