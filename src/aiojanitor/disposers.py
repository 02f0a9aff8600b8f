"""Disposal functions of the individual resource categories, and the table
that maps categories to them.
"""

import logging

from anyio.abc import TaskGroup
from inspect import isawaitable
from typing import Any, Callable, Dict, List, Optional, Set

from .categories import (
    Category,
    DESTROY_METHOD_NAMES,
    DISCONNECT_METHOD_NAMES,
    categorize,
    find_category,
    find_method,
    iter_children,
)
from .errors import GroupDisposalError, UnsupportedResourceKind
from .utils.concurrency import Spawnable, Spawner, create_spawner
from .utils.typing import ErrorHandler

__all__ = (
    "DisposalContext",
    "DisposerRegistry",
    "DisposerTable",
    "dispose",
    "find",
    "log_spawned_failure",
    "register",
)

logger = logging.getLogger(__name__)


def log_spawned_failure(error: BaseException) -> None:
    """Default error handler for fire-and-forget disposal work; logs the
    error with its traceback.
    """
    logger.warning("Background disposal work failed: %r", error, exc_info=error)


class DisposalContext:
    """State shared by the disposal functions during a single disposal pass.

    The context remembers which resource groups were already visited in the
    pass so that cyclic or shared groups are walked only once.
    """

    def __init__(self, spawner: Spawner, on_error: Optional[ErrorHandler] = None):
        """Constructor.

        Parameters:
            spawner: the spawner that fire-and-forget work is handed to
            on_error: function to call with the exception when a
                fire-and-forget work item fails. `None` means to log the
                error.
        """
        self._spawner = spawner
        self._on_error = on_error or log_spawned_failure
        self._visited: Set[int] = set()

    def dispose(self, item: Any, category: Category) -> List[Exception]:
        """Disposes of a single resource with the disposal function of the
        given category.

        Returns:
            the list of errors that happened while disposing of the resource.
            Errors of the children of resource groups are flattened into the
            list.
        """
        try:
            find(category)(item, self)
        except GroupDisposalError as ex:
            return list(ex.errors)
        except Exception as ex:
            return [ex]
        return []

    def enter_group(self, group: Any) -> bool:
        """Marks a resource group as visited in this pass.

        Returns:
            whether the group was not visited yet in this pass
        """
        identity = id(group)
        if identity in self._visited:
            return False
        self._visited.add(identity)
        return True

    def spawn(self, target: Spawnable) -> None:
        """Hands a work item to the spawner of the pass without waiting for
        it to finish.
        """
        self._spawner.spawn(target, self._on_error)


#: Type specification for disposal functions
Disposer = Callable[[Any, DisposalContext], None]


class DisposerTable:
    """Table that maps each resource category to the function that disposes
    of the resources in that category.
    """

    def __init__(self):
        self._disposers: Dict[Category, Disposer] = {}

    def __contains__(self, category: Category) -> bool:
        return category in self._disposers

    def __len__(self) -> int:
        return len(self._disposers)

    def find(self, category: Category) -> Disposer:
        """Returns the disposal function registered for the given category.

        Raises:
            KeyError: if there is no disposal function for the category
        """
        try:
            return self._disposers[category]
        except KeyError:
            raise KeyError(
                "No disposal function for category {0!r}".format(category)
            ) from None

    def missing(self) -> List[Category]:
        """Returns the categories that have no disposal function yet."""
        return [category for category in Category if category not in self]

    def register(self, category: Category) -> Callable[[Disposer], Disposer]:
        """Decorator factory that returns a decorator that registers a function
        as the disposal function of the given category.

        Raises:
            ValueError: if the category already has a disposal function
        """

        def decorator(func: Disposer) -> Disposer:
            if category in self._disposers:
                raise ValueError(
                    "Category {0!r} already has a disposal function".format(category)
                )
            self._disposers[category] = func
            return func

        return decorator

    def validate(self) -> None:
        """Checks that every category has a disposal function.

        Raises:
            RuntimeError: if some categories have no disposal function
        """
        missing = self.missing()
        if missing:
            raise RuntimeError(
                "No disposal function for categories: {0}".format(
                    ", ".join(category.name for category in missing)
                )
            )


#: Table that maps resource categories to the corresponding disposal functions
DisposerRegistry = DisposerTable()

find = DisposerRegistry.find
register = DisposerRegistry.register


def _call_and_spawn_result(
    method: Callable[[], Any], context: DisposalContext
) -> None:
    result = method()
    if isawaitable(result):
        context.spawn(result)


@register(Category.DEFERRED)
def _dispose_deferred(item: Callable[[], Any], context: DisposalContext) -> None:
    context.spawn(item)


@register(Category.TASK)
def _dispose_task(item: Any, context: DisposalContext) -> None:
    if isinstance(item, TaskGroup):
        item.cancel_scope.cancel()
    else:
        item.cancel()


@register(Category.OBJECT)
def _dispose_object(item: Any, context: DisposalContext) -> None:
    method = find_method(item, DESTROY_METHOD_NAMES)
    if method is None:
        raise UnsupportedResourceKind(item, "Object has no destroy method any more")
    _call_and_spawn_result(method, context)


@register(Category.SUBSCRIPTION)
def _dispose_subscription(item: Any, context: DisposalContext) -> None:
    method = find_method(item, DISCONNECT_METHOD_NAMES)
    if method is None:
        raise UnsupportedResourceKind(
            item, "Subscription has no disconnect method any more"
        )
    _call_and_spawn_result(method, context)


@register(Category.GROUP)
def _dispose_group(item: Any, context: DisposalContext) -> None:
    if not context.enter_group(item):
        return

    errors: List[Exception] = []
    for child in iter_children(item):
        category = find_category(child)
        if category is None:
            logger.debug("Skipping child of type %s in group", type(child).__name__)
            continue
        errors.extend(context.dispose(child, category))

    if errors:
        raise GroupDisposalError(item, errors)


DisposerRegistry.validate()


def dispose(
    item: Any,
    *,
    spawner: Any = None,
    on_error: Optional[ErrorHandler] = None,
) -> List[Exception]:
    """Disposes of a single resource without registering it in a tracker.

    Parameters:
        item: the resource to dispose of
        spawner: the spawner to hand fire-and-forget work to; see
            `create_spawner()` for the accepted values
        on_error: function to call with the exception when a fire-and-forget
            work item fails

    Returns:
        the list of errors that happened during the disposal

    Raises:
        UnsupportedResourceKind: if the object does not belong to any of the
            known resource categories
    """
    category = categorize(item)
    context = DisposalContext(create_spawner(spawner), on_error)
    return context.dispose(item, category)
