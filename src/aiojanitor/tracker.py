"""Resource tracker that takes ownership of the disposal of resources and
disposes of all of them in a single call.
"""

import logging

from anyio import create_task_group, get_cancelled_exc_class
from contextlib import asynccontextmanager, contextmanager
from itertools import count
from typing import (
    Any,
    AsyncIterator,
    Dict,
    Iterator,
    List,
    NamedTuple,
    Optional,
    TypeVar,
)

from .categories import Category, categorize
from .disposers import DisposalContext
from .errors import TrackerDestroyed
from .utils.concurrency import Spawner, TaskGroupSpawner, create_spawner
from .utils.typing import ErrorHandler, ResourceKey, SlotName

__all__ = ("DisposalFailure", "ResourceTracker", "open_tracker")

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DisposalFailure(NamedTuple):
    """Record describing a resource that could not be disposed of."""

    #: The key of the entry in the tracker; when a child of a resource group
    #: fails, this is the key of the group
    key: ResourceKey

    #: The tracked resource
    item: Any

    #: The category of the tracked resource
    category: Category

    #: The error that was raised while disposing of the resource
    error: Exception


class _Entry(NamedTuple):
    item: Any
    category: Category
    name: Optional[SlotName] = None


class ResourceTracker:
    """Registry of resources whose disposal is the responsibility of the
    tracker.

    Resources are registered with `add()` and disposed of all at once with
    `collect()` or `destroy()`. The way a resource is disposed of depends on
    its category, which is inferred from the shape of the resource when it is
    registered:

    - functions are called in the background (fire-and-forget)
    - cancel scopes, task groups and futures are cancelled
    - objects with a ``destroy()``, ``dispose()`` or ``close()`` method are
      destroyed by calling that method
    - objects with a ``disconnect()`` or ``unsubscribe()`` method are
      disconnected
    - mappings and other collections are walked recursively and each of
      their values is disposed of

    The tracker is meant to be used by a single owner; it uses no locks.
    """

    _entries: Dict[ResourceKey, _Entry]
    _slots: Dict[SlotName, ResourceKey]
    _spawner: Spawner

    def __init__(
        self, spawner: Any = None, *, on_error: Optional[ErrorHandler] = None
    ):
        """Constructor.

        Creates an empty tracker.

        Parameters:
            spawner: object that starts fire-and-forget work (deferred
                functions and asynchronous destroy methods). `None` means to
                start them in separate threads; an anyio task group means to
                start them as tasks in the group. See `create_spawner()` for
                all the accepted values.
            on_error: function to call with the exception when a
                fire-and-forget work item fails. `None` means to log the
                error.
        """
        self._spawner = create_spawner(spawner)
        self._on_error = on_error

        self._entries = {}
        self._slots = {}
        self._keys = count(1)

        self._collecting = False
        self._destroyed = False

    def __contains__(self, item_or_key: Any) -> bool:
        return self._find_key(item_or_key) is not None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, tb) -> bool:
        self.destroy()
        return False

    def __getitem__(self, name: SlotName) -> Any:
        key = self._slots[name]
        return self._entries[key].item

    def __setitem__(self, name: SlotName, item: Any) -> None:
        """Tracks a resource in the slot with the given name.

        When the slot is already occupied by another resource, the previous
        occupant is disposed of first. Assigning `None` empties the slot.

        Raises:
            TrackerDestroyed: if the tracker was already destroyed
            UnsupportedResourceKind: if the new resource does not belong to
                any of the known resource categories. The previous occupant
                is kept in this case.
        """
        if not isinstance(name, str):
            raise TypeError("Slot names must be strings")

        self._ensure_not_destroyed()

        key = self._slots.get(name)
        if key is not None and self._entries[key].item is item:
            return

        category = categorize(item) if item is not None else None

        if key is not None:
            self._forget_and_dispose(key)

        if category is not None:
            self._store(item, category, name)

    def __delitem__(self, name: SlotName) -> None:
        """Disposes of the resource in the slot with the given name and empties
        the slot.

        Raises:
            KeyError: if the slot is empty
        """
        self._forget_and_dispose(self._slots[name])

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, item: Any) -> ResourceKey:
        """Registers a resource in the tracker.

        Parameters:
            item: the resource to register

        Returns:
            a key that identifies the registration; it can be passed to
            `remove()` later

        Raises:
            TrackerDestroyed: if the tracker was already destroyed
            UnsupportedResourceKind: if the resource does not belong to any of
                the known resource categories
        """
        self._ensure_not_destroyed()
        return self._store(item, categorize(item))

    def add_all(self, *items: Any) -> List[ResourceKey]:
        """Registers multiple resources in the tracker.

        Either all the resources are registered or none of them.

        Returns:
            the keys of the registrations, in the order of the resources
        """
        self._ensure_not_destroyed()
        categories = [categorize(item) for item in items]
        return [
            self._store(item, category) for item, category in zip(items, categories)
        ]

    def category_of(self, item_or_key: Any) -> Optional[Category]:
        """Returns the category of a tracked resource, given the resource
        itself, its key or the name of its slot.

        Returns:
            the category of the resource or `None` if the resource is not
            tracked
        """
        key = self._find_key(item_or_key)
        return self._entries[key].category if key is not None else None

    def collect(self) -> List[DisposalFailure]:
        """Disposes of all the resources tracked by the tracker and empties the
        tracker.

        The set of resources to dispose of is determined when the method is
        called. Resources removed by a disposal function before their turn are
        not disposed of. Resources added to the tracker by a disposal function
        while the collection is running are *not* disposed of, but they are
        still removed from the tracker when the collection finishes; callers
        should not rely on adding resources from disposal functions.

        Failures are isolated; a resource that fails to dispose of does not
        prevent the disposal of the others. Calling the method recursively from
        a disposal function has no effect.

        Returns:
            the list of resources that could not be disposed of, along with
            the corresponding errors. Failures of fire-and-forget work are not
            included here; they are reported to the error handler of the
            tracker instead.
        """
        if self._collecting or not self._entries:
            return []

        self._collecting = True
        failures: List[DisposalFailure] = []

        try:
            snapshot = list(self._entries.items())
            context = DisposalContext(self._spawner, self._on_error)

            for key, entry in snapshot:
                if self._entries.get(key) is not entry:
                    continue

                for error in context.dispose(entry.item, entry.category):
                    failures.append(
                        DisposalFailure(key, entry.item, entry.category, error)
                    )

            dropped = len(set(self._entries) - {key for key, _ in snapshot})
            if dropped:
                logger.debug(
                    "Dropping %d resource(s) added during collection", dropped
                )
        finally:
            self._entries.clear()
            self._slots.clear()
            self._collecting = False

        for failure in failures:
            self._log_failure(failure)

        return failures

    def destroy(self) -> List[DisposalFailure]:
        """Disposes of all the resources tracked by the tracker and marks the
        tracker as destroyed so no new resources can be added to it.

        Calling the method again on a destroyed tracker has no effect.

        Returns:
            the list of resources that could not be disposed of, along with
            the corresponding errors
        """
        if self._destroyed:
            return []

        failures = self.collect()
        self._destroyed = True
        return failures

    def give(self, item: T) -> T:
        """Registers a resource in the tracker and returns the resource itself.

        Raises:
            TrackerDestroyed: if the tracker was already destroyed
            UnsupportedResourceKind: if the resource does not belong to any of
                the known resource categories
        """
        self.add(item)
        return item

    @property
    def is_destroyed(self) -> bool:
        """Returns whether the tracker was destroyed."""
        return self._destroyed

    def remove(self, item_or_key: Any) -> bool:
        """Stops tracking a resource without disposing of it.

        The disposal of the resource becomes the responsibility of the caller
        again.

        Parameters:
            item_or_key: the key returned from `add()`, the name of the slot
                of the resource, or the resource itself. When a resource was
                registered multiple times, only its earliest registration is
                removed.

        Returns:
            whether a resource was removed. Removing a resource that is not
            tracked is not an error.
        """
        key = self._find_key(item_or_key)
        if key is None:
            return False

        self._forget(key)
        return True

    @contextmanager
    def scoped(self, item: T) -> Iterator[T]:
        """Context manager that registers a resource in the tracker when the
        context is entered, and disposes of the resource when the context is
        exited, unless the resource was disposed of or removed from the tracker
        in the meanwhile.
        """
        key = self.add(item)
        try:
            yield item
        finally:
            if key in self._entries:
                self._forget_and_dispose(key)

    def _ensure_not_destroyed(self) -> None:
        if self._destroyed:
            raise TrackerDestroyed()

    def _find_key(self, item_or_key: Any) -> Optional[ResourceKey]:
        if isinstance(item_or_key, int):
            return item_or_key if item_or_key in self._entries else None

        if isinstance(item_or_key, str):
            return self._slots.get(item_or_key)

        for key, entry in self._entries.items():
            if entry.item is item_or_key:
                return key

        return None

    def _forget(self, key: ResourceKey) -> _Entry:
        entry = self._entries.pop(key)
        if entry.name is not None:
            del self._slots[entry.name]
        return entry

    def _forget_and_dispose(self, key: ResourceKey) -> List[DisposalFailure]:
        entry = self._forget(key)
        context = DisposalContext(self._spawner, self._on_error)
        failures = [
            DisposalFailure(key, entry.item, entry.category, error)
            for error in context.dispose(entry.item, entry.category)
        ]
        for failure in failures:
            self._log_failure(failure)
        return failures

    @staticmethod
    def _log_failure(failure: DisposalFailure) -> None:
        logger.warning(
            "Failed to dispose of %s of type %s",
            failure.category.description,
            type(failure.item).__name__,
            exc_info=failure.error,
        )

    def _store(
        self, item: Any, category: Category, name: Optional[SlotName] = None
    ) -> ResourceKey:
        key = next(self._keys)
        self._entries[key] = _Entry(item, category, name)
        if name is not None:
            self._slots[name] = key
        return key


@asynccontextmanager
async def open_tracker(
    *, on_error: Optional[ErrorHandler] = None
) -> AsyncIterator[ResourceTracker]:
    """Async context manager that creates a resource tracker whose
    fire-and-forget work runs in a new anyio task group.

    The tracker is destroyed when the context is exited, and the context then
    waits for the fire-and-forget work that the tracker started to finish.
    This happens also when the body of the context raises an exception; the
    exception is re-raised as is once the work has finished. Cancellation is
    not waited for; it cancels the pending work as well.

    Parameters:
        on_error: function to call with the exception when a fire-and-forget
            work item fails. `None` means to log the error.
    """
    error: Optional[BaseException] = None

    async with create_task_group() as task_group:
        tracker = ResourceTracker(TaskGroupSpawner(task_group), on_error=on_error)
        try:
            yield tracker
        except (GeneratorExit, get_cancelled_exc_class()):
            tracker.destroy()
            raise
        except BaseException as ex:
            # Keep the error away from the task group so it does not cancel
            # the disposal work that destroy() is about to start
            error = ex

        tracker.destroy()

    if error is not None:
        raise error
