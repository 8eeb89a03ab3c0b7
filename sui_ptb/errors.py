"""Exceptions raised while constructing, resolving and encoding transactions."""

from __future__ import annotations

from typing import Any, Sequence


class TransactionError(RuntimeError):
    """Base class for every error raised by the transaction engine."""


class InvalidReferenceError(TransactionError):
    """Raised when an argument points at a command or input that is not available."""

    def __init__(self, message: str, *, index: int | None = None, reference: Any = None) -> None:
        super().__init__(message)
        self.index = index
        self.reference = reference


class ResultNotAvailableError(TransactionError):
    """Raised when a result handle belongs to a different transaction."""

    def __init__(self, reference: Any) -> None:
        super().__init__(f"{reference!r} is not available to use in the current transaction")
        self.reference = reference


class UnresolvedInputsRemainingError(TransactionError):
    """Raised when the resolution pipeline finishes with placeholders left in the graph."""

    def __init__(self, inputs: Sequence[int], commands: Sequence[int]) -> None:
        parts = []
        if inputs:
            parts.append(f"inputs {list(inputs)}")
        if commands:
            parts.append(f"intent commands {list(commands)}")
        super().__init__(f"Transaction still contains unresolved {' and '.join(parts)}")
        self.inputs = list(inputs)
        self.commands = list(commands)


class IntentResolutionError(TransactionError):
    """Raised when an intent resolver misbehaves or cannot resolve its intents."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(f"Intent {name}: {message}")
        self.name = name


class TransactionResolutionError(TransactionError):
    """Raised when the pipeline cannot complete a transaction from collaborator data."""


class IncompleteTransactionError(TransactionError):
    """Raised when a full encoding is requested for data missing sender or gas fields."""

    def __init__(self, missing: Sequence[str]) -> None:
        super().__init__(f"Missing transaction fields: {', '.join(missing)}")
        self.missing = list(missing)


class BuildCancelledError(TransactionError):
    """Raised when a build is cancelled through its cancellation signal."""


class CollaboratorError(TransactionError):
    """Wraps a failure raised by a state lookup, simulation or gas price call."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class DecodeError(TransactionError, ValueError):
    """Raised when serialized transaction data is malformed or unsupported."""
