"""Deferred construction: asynchronous functions feeding a transaction.

An asynchronous function added to a transaction becomes a :class:`DeferredTask`
and hands out a :class:`PendingResult` forward handle. Tasks start as soon as
an event loop is running; the graph is only touched in the synchronous
segments between awaits, so one task owns it at a time and commands land in
completion order.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from .errors import TransactionError

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class PendingResult:
    """Forward handle for the value an asynchronous function will produce.

    ``await pending`` waits for the task; once it finished successfully the
    handle can be passed anywhere its value is accepted.
    """

    def __init__(self, scheduler: "DeferredScheduler", task_id: str) -> None:
        self._scheduler = scheduler
        self.task_id = task_id

    @property
    def done(self) -> bool:
        return self._scheduler.is_done(self.task_id)

    def result(self) -> Any:
        return self._scheduler.result(self.task_id)

    def __await__(self):
        return self._scheduler.wait(self).__await__()

    def __repr__(self) -> str:
        state = "done" if self.done else "pending"
        return f"PendingResult({self.task_id}, {state})"


class DeferredTask:
    def __init__(self, task_id: str, factory: TaskFactory) -> None:
        self.task_id = task_id
        self.factory = factory
        self.task: Optional[asyncio.Task] = None

    @property
    def started(self) -> bool:
        return self.task is not None

    @property
    def finished(self) -> bool:
        return self.task is not None and self.task.done()

    def start(self, loop: asyncio.AbstractEventLoop) -> asyncio.Task:
        if self.task is None:
            self.task = loop.create_task(self.factory())
        return self.task


class DeferredScheduler:
    """Tracks the asynchronous work scheduled against one transaction."""

    def __init__(self) -> None:
        self._tasks: Dict[str, DeferredTask] = {}
        self._completed: List[str] = []

    def schedule(self, factory: TaskFactory) -> PendingResult:
        task_id = uuid.uuid4().hex
        deferred = DeferredTask(task_id, factory)
        self._tasks[task_id] = deferred
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            self._start(deferred, loop)
        logger.debug("Scheduled deferred task %s (started=%s)", task_id, deferred.started)
        return PendingResult(self, task_id)

    def _start(self, deferred: DeferredTask, loop: asyncio.AbstractEventLoop) -> asyncio.Task:
        if deferred.started:
            return deferred.task
        task = deferred.start(loop)
        task.add_done_callback(lambda _task, task_id=deferred.task_id: self._completed.append(task_id))
        return task

    def _get(self, task_id: str) -> DeferredTask:
        try:
            return self._tasks[task_id]
        except KeyError as exc:
            raise TransactionError(f"Unknown deferred task {task_id}") from exc

    def is_done(self, task_id: str) -> bool:
        deferred = self._get(task_id)
        task = deferred.task
        return task is not None and task.done() and not task.cancelled() and task.exception() is None

    def result(self, task_id: str) -> Any:
        if not self.is_done(task_id):
            raise TransactionError(f"Deferred task {task_id} has not completed")
        return self._get(task_id).task.result()

    @property
    def has_pending(self) -> bool:
        return any(not deferred.finished for deferred in self._tasks.values())

    async def wait(self, pending: PendingResult) -> Any:
        deferred = self._get(pending.task_id)
        task = self._start(deferred, asyncio.get_running_loop())
        return await task

    def _first_failure(self) -> BaseException | None:
        for task_id in self._completed:
            task = self._tasks[task_id].task
            if task.cancelled():
                return TransactionError(f"Deferred task {task_id} was cancelled before completing")
            exc = task.exception()
            if exc is not None:
                return exc
        return None

    async def _cancel_remaining(self) -> None:
        remaining = [
            deferred.task
            for deferred in self._tasks.values()
            if deferred.started and not deferred.task.done()
        ]
        for task in remaining:
            task.cancel()
        if remaining:
            await asyncio.gather(*remaining, return_exceptions=True)
        # Tasks that never started are dropped along with the failed build.
        for task_id, deferred in list(self._tasks.items()):
            if not deferred.started:
                del self._tasks[task_id]

    async def wait_all(self) -> None:
        """Run every outstanding task, including tasks spawned while waiting.

        The first task to fail determines the error raised; all other tasks
        are cancelled. Cancelling the wait itself cancels every outstanding
        task as well.
        """

        loop = asyncio.get_running_loop()
        while True:
            failure = self._first_failure()
            if failure is not None:
                logger.debug("Deferred task failed: %s", failure)
                await self._cancel_remaining()
                raise failure
            unfinished = [deferred for deferred in self._tasks.values() if not deferred.finished]
            if not unfinished:
                return
            tasks = [self._start(deferred, loop) for deferred in unfinished]
            try:
                await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            except asyncio.CancelledError:
                logger.debug("Cancelling %d outstanding deferred tasks", len(tasks))
                await self._cancel_remaining()
                raise


def iter_pending(values: Iterable[Any]) -> List[PendingResult]:
    """Return the pending handles in ``values`` that have not completed yet."""

    found: List[PendingResult] = []
    for value in values:
        if isinstance(value, PendingResult):
            if not value.done:
                found.append(value)
        elif isinstance(value, (list, tuple)):
            found.extend(iter_pending(value))
        elif isinstance(value, dict):
            found.extend(iter_pending(value.values()))
    return found


def substitute_pending(value: Any) -> Any:
    """Replace completed pending handles in ``value`` with their results."""

    if isinstance(value, PendingResult):
        return value.result()
    if isinstance(value, list):
        return [substitute_pending(item) for item in value]
    if isinstance(value, tuple):
        return tuple(substitute_pending(item) for item in value)
    if isinstance(value, dict):
        return {key: substitute_pending(item) for key, item in value.items()}
    return value
