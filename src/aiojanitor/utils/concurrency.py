"""Utility functions and classes related to launching fire-and-forget work
from synchronous code.
"""

from anyio import get_cancelled_exc_class, run as run_async
from anyio.abc import TaskGroup
from inspect import isawaitable
from itertools import count
from outcome import Error, Outcome, acapture, capture
from threading import Thread
from typing import Any, Awaitable, Callable, Optional, Union

from .typing import ErrorHandler

__all__ = (
    "Spawnable",
    "Spawner",
    "TaskGroupSpawner",
    "ThreadSpawner",
    "create_spawner",
)

#: Type alias for work items that can be handed to a spawner: either a
#: function (sync or async) to call with no arguments, or an awaitable that
#: was already created
Spawnable = Union[Callable[[], Any], Awaitable[Any]]


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable


async def _resolve_async(target: Spawnable) -> Any:
    value = target() if callable(target) else target
    if isawaitable(value):
        value = await value
    return value


def _resolve_sync(target: Spawnable) -> Any:
    value = target() if callable(target) else target
    if isawaitable(value):
        # We are in a worker thread so we need our own event loop
        value = run_async(_await, value)
    return value


def _report(result: Outcome, on_error: Optional[ErrorHandler]) -> None:
    if isinstance(result, Error) and on_error is not None:
        on_error(result.error)


class Spawner:
    """Base class for objects that start a unit of work in the background and
    return immediately, without waiting for the work to finish.
    """

    def spawn(self, target: Spawnable, on_error: Optional[ErrorHandler] = None):
        """Starts the given work item in the background.

        Parameters:
            target: the function to call with no arguments, or the awaitable
                to wait for. When the function returns an awaitable, it is
                waited for as well.
            on_error: function to call with the exception if the work item
                fails. Exceptions are never propagated to the caller of
                `spawn()`.
        """
        raise NotImplementedError


class ThreadSpawner(Spawner):
    """Spawner that runs each work item in a separate thread.

    The threads are not daemon threads by default so the interpreter waits for
    pending disposal work before it exits.

    Awaitables are waited for in a new event loop that is created in the
    worker thread, therefore they must not depend on objects bound to the
    event loop of the caller. Use a TaskGroupSpawner_ for those.
    """

    _counter = count(1)

    def __init__(self, *, daemon: bool = False, name: str = "aiojanitor-worker"):
        """Constructor.

        Parameters:
            daemon: whether the spawned threads should be daemon threads.
                Daemon threads are killed when the interpreter exits, even
                if their work item has not finished yet.
            name: prefix of the names of the spawned threads
        """
        self._daemon = daemon
        self._name = name

    @staticmethod
    def _run(target: Spawnable, on_error: Optional[ErrorHandler]) -> None:
        _report(capture(_resolve_sync, target), on_error)

    def spawn(
        self, target: Spawnable, on_error: Optional[ErrorHandler] = None
    ) -> Thread:
        thread = Thread(
            target=self._run,
            args=(target, on_error),
            name="{0}-{1}".format(self._name, next(self._counter)),
            daemon=self._daemon,
        )
        thread.start()
        return thread


class TaskGroupSpawner(Spawner):
    """Spawner that runs each work item as a new task in an anyio task group.

    `spawn()` must be called from the thread of the event loop that runs the
    task group.
    """

    _task_group: TaskGroup

    def __init__(self, task_group: TaskGroup):
        """Constructor.

        Parameters:
            task_group: the task group that the work items will be started in.
                It must already be running.
        """
        self._task_group = task_group

    @property
    def task_group(self) -> TaskGroup:
        """The task group that the work items are started in."""
        return self._task_group

    @staticmethod
    async def _run(target: Spawnable, on_error: Optional[ErrorHandler]) -> None:
        result = await acapture(_resolve_async, target)
        if isinstance(result, Error) and isinstance(
            result.error, get_cancelled_exc_class()
        ):
            # Cancellation must reach the task group
            result.unwrap()
        _report(result, on_error)

    def spawn(self, target: Spawnable, on_error: Optional[ErrorHandler] = None):
        self._task_group.start_soon(self._run, target, on_error)


def create_spawner(value: Any = None) -> Spawner:
    """Creates a spawner from the given value.

    Parameters:
        value: `None` to create a ThreadSpawner_, an existing Spawner_ to use
            it as is, or an anyio task group (or any object with a
            `start_soon()` method) to create a TaskGroupSpawner_ for it

    Raises:
        TypeError: if the value cannot be turned into a spawner
    """
    if value is None:
        return ThreadSpawner()
    elif isinstance(value, Spawner):
        return value
    elif isinstance(value, TaskGroup) or callable(getattr(value, "start_soon", None)):
        return TaskGroupSpawner(value)
    else:
        raise TypeError("Cannot create a spawner from {0!r}".format(value))
