"""Application-facing transaction builder."""

from __future__ import annotations

import base64
import functools
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping

from .commands import Commands, Inputs
from .data import (
    ARGUMENT_TYPES,
    Argument,
    CallArg,
    Command,
    EpochExpiration,
    GasCoin,
    ImmOrOwnedObject,
    Input,
    NestedResult,
    ObjectInput,
    ObjectRef,
    Pure,
    Receiving,
    Result,
    SharedObject,
    SplitCoins,
    TransactionData,
    UnresolvedObject,
    UnresolvedPure,
)
from .deferred import DeferredScheduler, PendingResult, iter_pending, substitute_pending
from .errors import InvalidReferenceError, ResultNotAvailableError, TransactionError
from .pure import PureBuilder, encode_pure
from .resolve import (
    BuildOptions,
    Resolver,
    register_resolver,
    resolve_transaction_data,
    run_cancellable,
)
from .serialization import (
    transaction_data_from_json,
    transaction_data_to_dict,
    transaction_data_to_json,
)
from .serializer import transaction_digest
from .transaction_data import TransactionDataBuilder
from .utils import (
    SUI_CLOCK_OBJECT_ID,
    SUI_DENY_LIST_OBJECT_ID,
    SUI_RANDOM_OBJECT_ID,
    SUI_SYSTEM_STATE_OBJECT_ID,
    normalize_checked_address,
    normalize_sui_object_id,
)

logger = logging.getLogger(__name__)


class TransactionResult:
    """Handle to the result of a command appended to a :class:`Transaction`.

    ``result[i]`` refers to the ``i``-th value of a command with several
    results. Results of ``split_coins`` can also be unpacked because their
    count is known.
    """

    def __init__(self, owner: "Transaction", index: int, generation: int, count: int | None = None) -> None:
        self.owner = owner
        self.index = index
        self.count = count
        self._generation = generation

    def to_argument(self) -> Argument:
        return self.owner._data.remap_result(Result(self.index), self._generation)

    def __getitem__(self, result_index: int) -> "NestedTransactionResult":
        if not isinstance(result_index, int) or result_index < 0:
            raise IndexError(f"Invalid result index {result_index!r}")
        if self.count is not None and result_index >= self.count:
            raise IndexError(f"Command {self.index} has only {self.count} results")
        return NestedTransactionResult(self, result_index)

    def __iter__(self) -> Iterator["NestedTransactionResult"]:
        if self.count is None:
            raise TypeError(
                f"The number of results of command {self.index} is unknown; index the result instead"
            )
        return (NestedTransactionResult(self, i) for i in range(self.count))

    def __repr__(self) -> str:
        return f"TransactionResult({self.index})"


class NestedTransactionResult:
    """Handle to one of several results of a command."""

    def __init__(self, parent: TransactionResult, result_index: int) -> None:
        self.parent = parent
        self.result_index = result_index

    @property
    def owner(self) -> "Transaction":
        return self.parent.owner

    def to_argument(self) -> Argument:
        return self.owner._data.remap_result(
            NestedResult(self.parent.index, self.result_index), self.parent._generation
        )

    def __repr__(self) -> str:
        return f"NestedTransactionResult({self.parent.index}, {self.result_index})"


_RESULT_HANDLES = (TransactionResult, NestedTransactionResult)


class ObjectBuilder:
    """Callable helper producing object inputs.

    ``builder(object_id)`` references any object; ``system()``, ``clock()``,
    ``random()`` and ``deny_list()`` reference the well-known shared objects.
    """

    def __init__(self, add_object: Callable[[Any], Argument]) -> None:
        self._add_object = add_object

    def __call__(self, value: Any) -> Argument:
        return self._add_object(value)

    def system(self, mutable: bool | None = None) -> Argument:
        if mutable is None:
            return self(UnresolvedObject(SUI_SYSTEM_STATE_OBJECT_ID, initial_shared_version=1))
        return self(SharedObject(SUI_SYSTEM_STATE_OBJECT_ID, 1, mutable))

    def clock(self) -> Argument:
        return self(SharedObject(SUI_CLOCK_OBJECT_ID, 1, False))

    def random(self) -> Argument:
        return self(UnresolvedObject(SUI_RANDOM_OBJECT_ID, mutable=False))

    def deny_list(self, mutable: bool | None = None) -> Argument:
        return self(UnresolvedObject(SUI_DENY_LIST_OBJECT_ID, mutable=mutable))


def _deferrable(method: Callable[..., Any]) -> Callable[..., Any]:
    """Defer a builder call until every pending handle among its arguments resolved."""

    @functools.wraps(method)
    def wrapper(self: "Transaction", *args: Any, **kwargs: Any) -> Any:
        args = self._prepare(args)
        kwargs = self._prepare(kwargs)
        waiting = iter_pending([args, kwargs])
        if waiting:
            return self._defer(waiting, lambda: wrapper(self, *args, **kwargs))
        return method(self, *substitute_pending(args), **substitute_pending(kwargs))

    return wrapper


class Transaction:
    """Builds a programmable transaction.

    Commands are appended through :meth:`add` or the typed helpers; inputs are
    deduplicated by object id. Functions may be passed wherever a command or
    argument is expected: synchronous ones run immediately against this
    transaction, asynchronous ones are scheduled and their commands land when
    they complete. :meth:`build` awaits outstanding work, resolves the graph
    and encodes it.
    """

    def __init__(self, data: TransactionDataBuilder | None = None) -> None:
        self._data = data if data is not None else TransactionDataBuilder()
        self._scheduler = DeferredScheduler()
        self._intent_resolvers: Dict[str, List[Resolver]] = {}
        self.pure = PureBuilder(self.add_pure)
        self.object = ObjectBuilder(self._object)

    # Constructors ------------------------------------------------------

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Transaction":
        """Restore a transaction from its full binary encoding."""

        return cls(TransactionDataBuilder.from_bytes(raw))

    @classmethod
    def from_kind(cls, raw: bytes | str) -> "Transaction":
        """Restore a transaction from a kind-only encoding (bytes or base64)."""

        if isinstance(raw, str):
            raw = base64.b64decode(raw)
        return cls(TransactionDataBuilder.from_kind_bytes(raw))

    @classmethod
    def from_json(cls, payload: str | bytes | Mapping[str, Any]) -> "Transaction":
        return cls(TransactionDataBuilder(transaction_data_from_json(payload)))

    @classmethod
    def from_serialized(cls, value: "bytes | str | Mapping[str, Any] | Transaction") -> "Transaction":
        """Restore from bytes, base64 bytes, a JSON document or another transaction."""

        if isinstance(value, Transaction):
            return cls(TransactionDataBuilder(value.snapshot()))
        if isinstance(value, (bytes, bytearray)):
            return cls.from_bytes(bytes(value))
        if isinstance(value, str) and not value.lstrip().startswith("{"):
            return cls.from_bytes(base64.b64decode(value))
        return cls.from_json(value)

    # Handles -----------------------------------------------------------

    @property
    def gas(self) -> GasCoin:
        return GasCoin()

    def _prepare(self, value: Any) -> Any:
        if isinstance(value, list):
            return [self._prepare(item) for item in value]
        if isinstance(value, tuple):
            return tuple(self._prepare(item) for item in value)
        if isinstance(value, dict):
            return {key: self._prepare(item) for key, item in value.items()}
        if inspect.iscoroutinefunction(value):
            return self._scheduler.schedule(lambda: value(self))
        if callable(value) and not isinstance(value, (type, PureBuilder)):
            produced = value(self)
            if inspect.isawaitable(produced):
                return self._scheduler.schedule(lambda: produced)
            return self._prepare(produced)
        return value

    def _defer(self, waiting: List[PendingResult], resume: Callable[[], Any]) -> PendingResult:
        async def wait_then_resume() -> Any:
            for pending in waiting:
                await pending
            return resume()

        logger.debug("Deferring command until %d pending results complete", len(waiting))
        return self._scheduler.schedule(wait_then_resume)

    def _argument(self, value: Any, kind: str | None = None) -> Argument:
        """Convert a handle or raw value into an argument of this transaction.

        ``kind`` selects how raw values are turned into inputs: ``"object"``
        treats strings as object ids, ``"raw"`` keeps the value for later
        encoding and any other value is a pure type name.
        """

        if isinstance(value, PendingResult):
            value = value.result()
        if isinstance(value, _RESULT_HANDLES):
            if value.owner is not self:
                raise ResultNotAvailableError(value)
            return value.to_argument()
        if isinstance(value, ARGUMENT_TYPES):
            return value
        if isinstance(value, (Pure, ObjectInput, UnresolvedObject, UnresolvedPure)):
            return self.add_input(value)
        if isinstance(value, (ObjectRef, ImmOrOwnedObject, SharedObject, Receiving)):
            return self.add_object(value)
        if isinstance(value, (bytes, bytearray)):
            return self.add_pure(bytes(value))
        if kind == "object" and isinstance(value, str):
            return self.object(value)
        if kind == "raw":
            return self.add_input(UnresolvedPure(value))
        if kind is not None and kind != "object":
            return self.add_pure(encode_pure(kind, value))
        raise InvalidReferenceError(f"Unsupported argument {value!r}", reference=value)

    def _arguments(self, values: Iterable[Any], kind: str | None = None) -> List[Argument]:
        return [self._argument(value, kind) for value in values]

    def _append(self, command: Command) -> TransactionResult:
        result = self._data.add_command(command)
        count = len(command.amounts) if isinstance(command, SplitCoins) else None
        return TransactionResult(self, result.index, self._data.generation, count)

    # Inputs ------------------------------------------------------------

    def add_input(self, value: CallArg) -> Input:
        return self._data.add_input(value)

    def add_pure(self, data: bytes) -> Input:
        return self._data.add_input(Inputs.pure(data))

    def add_object(self, ref: Any) -> Input:
        """Add an object input from an id, an :class:`ObjectRef` or an object argument."""

        if isinstance(ref, str):
            return self._data.add_input(UnresolvedObject(object_id=normalize_sui_object_id(ref)))
        if isinstance(ref, ObjectRef):
            return self._data.add_input(Inputs.object_ref(ref.object_id, ref.version, ref.digest))
        if isinstance(ref, (ImmOrOwnedObject, SharedObject, Receiving)):
            return self._data.add_input(ObjectInput(ref))
        if isinstance(ref, (ObjectInput, UnresolvedObject)):
            return self._data.add_input(ref)
        raise TypeError(f"Cannot use {ref!r} as an object input")

    def _object(self, value: Any) -> Argument:
        """Reference an object by id; details are resolved at build time."""

        if isinstance(value, str):
            return self.add_object(value)
        return self._argument(self._prepare(value), "object")

    def object_ref(self, object_id: str, version: int | str, digest: str) -> Input:
        return self._data.add_input(Inputs.object_ref(object_id, version, digest))

    def shared_object_ref(self, object_id: str, initial_shared_version: int | str, mutable: bool) -> Input:
        return self._data.add_input(Inputs.shared_object_ref(object_id, initial_shared_version, mutable))

    def receiving_ref(self, object_id: str, version: int | str, digest: str) -> Input:
        return self._data.add_input(Inputs.receiving_ref(object_id, version, digest))

    # Commands ----------------------------------------------------------

    def add(self, value: Any) -> Any:
        """Append a command, or run a function against this transaction.

        Returns a :class:`TransactionResult` for commands, the function's
        return value for synchronous functions and a :class:`PendingResult`
        for asynchronous ones or for commands waiting on pending results.
        """

        if isinstance(value, Command):
            return self._add_command(value)
        if not callable(value):
            raise TypeError(f"Expected a command or a function, got {value!r}")
        return self._prepare(value)

    def _add_command(self, command: Command) -> Any:
        command.map_arguments(self._prepare)
        waiting = iter_pending(command.arguments_list())
        if waiting:
            return self._defer(waiting, lambda: self._add_command(command))
        command.map_arguments(lambda arg: self._argument(substitute_pending(arg)))
        return self._append(command)

    @_deferrable
    def move_call(
        self,
        target: str | None = None,
        *,
        package: str | None = None,
        module: str | None = None,
        function: str | None = None,
        arguments: Iterable[Any] = (),
        type_arguments: Iterable[str] = (),
    ) -> TransactionResult:
        """Call a Move function.

        Raw Python values among ``arguments`` are encoded at build time from
        the function's parameter types.
        """

        command = Commands.move_call(
            target=target,
            package=package,
            module=module,
            function=function,
            arguments=self._arguments(arguments, "raw"),
            type_arguments=type_arguments,
        )
        return self._append(command)

    @_deferrable
    def transfer_objects(self, objects: Iterable[Any], address: Any) -> TransactionResult:
        if isinstance(address, str):
            address = normalize_checked_address(address)
        return self._append(
            Commands.transfer_objects(self._arguments(objects, "object"), self._argument(address, "address"))
        )

    @_deferrable
    def split_coins(self, coin: Any, amounts: Iterable[Any]) -> TransactionResult:
        return self._append(
            Commands.split_coins(self._argument(coin, "object"), self._arguments(amounts, "u64"))
        )

    @_deferrable
    def merge_coins(self, destination: Any, sources: Iterable[Any]) -> TransactionResult:
        return self._append(
            Commands.merge_coins(self._argument(destination, "object"), self._arguments(sources, "object"))
        )

    @_deferrable
    def make_move_vec(self, elements: Iterable[Any], type: str | None = None) -> TransactionResult:
        return self._append(
            Commands.make_move_vec(elements=self._arguments(elements, "object"), type=type)
        )

    def publish(self, modules: Iterable[Any], dependencies: Iterable[str]) -> TransactionResult:
        return self._append(Commands.publish(modules, dependencies))

    @_deferrable
    def upgrade(
        self,
        *,
        modules: Iterable[Any],
        dependencies: Iterable[str],
        package: str,
        ticket: Any,
    ) -> TransactionResult:
        return self._append(
            Commands.upgrade(
                modules=modules,
                dependencies=dependencies,
                package=package,
                ticket=self._argument(ticket, "object"),
            )
        )

    # Intents -----------------------------------------------------------

    def add_intent_resolver(self, name: str, resolver: Resolver) -> None:
        register_resolver(self._intent_resolvers, name, resolver)

    def add_intent(
        self,
        name: str,
        resolver: Resolver,
        inputs: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
    ) -> Any:
        """Append an intent command and register its resolver."""

        self.add_intent_resolver(name, resolver)
        return self._add_command(Commands.intent(name, inputs, data))

    # Metadata ----------------------------------------------------------

    def set_sender(self, sender: str) -> None:
        self._data.sender = normalize_checked_address(sender)

    def set_sender_if_not_set(self, sender: str) -> None:
        if self._data.sender is None:
            self.set_sender(sender)

    def set_expiration(self, epoch: int | EpochExpiration | None) -> None:
        if epoch is not None and not isinstance(epoch, EpochExpiration):
            epoch = EpochExpiration(int(epoch))
        self._data.expiration = epoch

    def set_gas_budget(self, budget: int) -> None:
        self._data.gas_data.budget = int(budget)

    def set_gas_price(self, price: int) -> None:
        self._data.gas_data.price = int(price)

    def set_gas_owner(self, owner: str) -> None:
        self._data.gas_data.owner = normalize_checked_address(owner)

    def set_gas_payment(self, payment: Iterable[ObjectRef]) -> None:
        self._data.gas_data.payment = [
            ObjectRef(normalize_checked_address(ref.object_id), int(ref.version), ref.digest)
            for ref in payment
        ]

    # Snapshots ---------------------------------------------------------

    def get_data(self) -> TransactionData:
        """Return a copy of the current transaction data."""

        return self._data.snapshot()

    def snapshot(self) -> TransactionData:
        return self._data.snapshot()

    def restore(self, data: TransactionData) -> None:
        self._data.restore(data)

    def insert_transaction(self, index: int, other: "Transaction | TransactionData") -> None:
        """Merge another transaction's inputs and commands in front of command ``index``.

        Intent resolvers registered on ``other`` carry over. Handles created
        on this transaction keep pointing at the same commands.
        """

        if isinstance(other, Transaction):
            if other._scheduler.has_pending:
                raise TransactionError("Cannot insert a transaction with pending deferred work")
            for name, resolvers in other._intent_resolvers.items():
                for resolver in resolvers:
                    register_resolver(self._intent_resolvers, name, resolver)
            other = other.get_data()
        self._data.insert_transaction(index, other)

    # Building ----------------------------------------------------------

    def _options(self, options: BuildOptions | None, overrides: Dict[str, Any]) -> BuildOptions:
        options = options or BuildOptions()
        for key, value in overrides.items():
            if value is not None:
                setattr(options, key, value)
        return options

    async def prepare(
        self, options: BuildOptions | None = None, **overrides: Any
    ) -> TransactionDataBuilder:
        """Await deferred work and resolve the graph.

        Resolution runs on a copy; the copy replaces the current graph only
        when every stage succeeded, so failed or cancelled builds leave the
        transaction as it was. ``cancel_event`` covers the wait for deferred
        work as well; outstanding deferred tasks are cancelled with the build.
        """

        options = self._options(options, overrides)
        return await run_cancellable(self._resolve(options), options.cancel_event)

    async def _resolve(self, options: BuildOptions) -> TransactionDataBuilder:
        await self._scheduler.wait_all()
        working = self._data.clone()
        await resolve_transaction_data(working, options, self._intent_resolvers)
        return working

    async def build(self, options: BuildOptions | None = None, **overrides: Any) -> bytes:
        """Resolve and encode the transaction.

        Keyword overrides (``client``, ``sender``, ``only_transaction_kind``,
        ``cancel_event``) take precedence over ``options``.
        """

        options = self._options(options, overrides)
        working = await self.prepare(options)
        encoded = working.build(only_transaction_kind=options.only_transaction_kind)
        self._data = working
        logger.debug(
            "Built transaction with %d inputs and %d commands (%d bytes)",
            len(working.inputs),
            len(working.commands),
            len(encoded),
        )
        return encoded

    async def get_digest(self, options: BuildOptions | None = None, **overrides: Any) -> str:
        return transaction_digest(await self.build(options, **overrides))

    def to_dict(self) -> Dict[str, Any]:
        """Return the structured form of the current graph.

        Raises :class:`TransactionError` while deferred work is outstanding;
        use :meth:`to_json` to wait for it.
        """

        if self._scheduler.has_pending:
            raise TransactionError("Transaction has pending deferred work; await to_json() instead")
        return transaction_data_to_dict(self._data.data)

    async def to_json(self, **kwargs: Any) -> str:
        await self._scheduler.wait_all()
        return transaction_data_to_json(self._data.data, **kwargs)

    def __repr__(self) -> str:
        return f"Transaction(inputs={len(self._data.inputs)}, commands={len(self._data.commands)})"
