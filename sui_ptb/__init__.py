"""Programmable transaction construction for Sui."""

from .client import CoreClient, JsonRpcCoreClient
from .commands import Commands, Inputs
from .data import (
    GasCoin,
    Input,
    NestedResult,
    ObjectRef,
    Result,
    TransactionData,
)
from .errors import (
    BuildCancelledError,
    CollaboratorError,
    DecodeError,
    IncompleteTransactionError,
    IntentResolutionError,
    InvalidReferenceError,
    ResultNotAvailableError,
    TransactionError,
    TransactionResolutionError,
    UnresolvedInputsRemainingError,
)
from .intents import coin_with_balance
from .resolve import BuildOptions
from .transaction import NestedTransactionResult, ObjectBuilder, Transaction, TransactionResult
from .transaction_data import TransactionDataBuilder

__all__ = [
    "BuildCancelledError",
    "BuildOptions",
    "CollaboratorError",
    "Commands",
    "CoreClient",
    "DecodeError",
    "GasCoin",
    "IncompleteTransactionError",
    "Input",
    "Inputs",
    "IntentResolutionError",
    "InvalidReferenceError",
    "JsonRpcCoreClient",
    "NestedResult",
    "NestedTransactionResult",
    "ObjectBuilder",
    "ObjectRef",
    "Result",
    "ResultNotAvailableError",
    "Transaction",
    "TransactionData",
    "TransactionDataBuilder",
    "TransactionError",
    "TransactionResolutionError",
    "TransactionResult",
    "UnresolvedInputsRemainingError",
    "coin_with_balance",
]
