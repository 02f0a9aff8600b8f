"""Categories of resources that a resource tracker knows how to dispose of,
and the rule that assigns a category to an arbitrary object.
"""

from anyio import CancelScope
from anyio.abc import TaskGroup
from asyncio import Future as AsyncioFuture
from collections.abc import Collection, Mapping
from concurrent.futures import Future as ConcurrentFuture
from enum import IntEnum
from inspect import isclass
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .errors import UnsupportedResourceKind

__all__ = (
    "Category",
    "DESTROY_METHOD_NAMES",
    "DISCONNECT_METHOD_NAMES",
    "categorize",
    "find_category",
    "find_method",
    "iter_children",
)


#: Names of the methods that are used to destroy an owned object, in the
#: order they are looked up
DESTROY_METHOD_NAMES: Sequence[str] = ("destroy", "dispose", "close")

#: Names of the methods that are used to disconnect a subscription, in the
#: order they are looked up
DISCONNECT_METHOD_NAMES: Sequence[str] = ("disconnect", "unsubscribe")

#: Types whose instances are cancellable task handles
_task_types = (CancelScope, TaskGroup, AsyncioFuture, ConcurrentFuture)

#: Collection types that are never treated as resource groups
_atomic_types = (str, bytes, bytearray, memoryview)


class Category(IntEnum):
    """Enum representing the resource categories that a tracker can handle.

    The numeric values also define the precedence of the categories: when an
    object has the shape of more than one category, the one with the lowest
    value wins.
    """

    DEFERRED = 1
    TASK = 2
    OBJECT = 3
    SUBSCRIPTION = 4
    GROUP = 5

    @property
    def description(self) -> str:
        """Human-readable description of the category."""
        return _category_descriptions[self]


_category_descriptions = {
    Category.DEFERRED: "deferred callable",
    Category.TASK: "cancellable task",
    Category.OBJECT: "owned object",
    Category.SUBSCRIPTION: "subscription",
    Category.GROUP: "resource group",
}


def find_method(item: Any, names: Iterable[str]) -> Optional[Callable[[], Any]]:
    """Returns the first callable attribute of the given object from a list of
    attribute names.

    Parameters:
        item: the object to inspect
        names: the names of the attributes to look up, in order

    Returns:
        the first attribute that exists and is callable, or `None` if there is
        no such attribute
    """
    for name in names:
        method = getattr(item, name, None)
        if callable(method):
            return method
    return None


def find_category(item: Any) -> Optional[Category]:
    """Determines the category of the given object.

    Returns:
        the category of the object, or `None` if the object does not belong
        to any of the known categories
    """
    if isclass(item):
        return None

    if callable(item):
        return Category.DEFERRED

    if isinstance(item, _task_types):
        return Category.TASK

    if find_method(item, DESTROY_METHOD_NAMES) is not None:
        return Category.OBJECT

    if find_method(item, DISCONNECT_METHOD_NAMES) is not None:
        return Category.SUBSCRIPTION

    if isinstance(item, Mapping) or (
        isinstance(item, Collection) and not isinstance(item, _atomic_types)
    ):
        return Category.GROUP

    return None


def categorize(item: Any) -> Category:
    """Determines the category of the given object.

    Raises:
        UnsupportedResourceKind: if the object does not belong to any of the
            known categories
    """
    category = find_category(item)
    if category is None:
        raise UnsupportedResourceKind(item)
    return category


def iter_children(group: Any) -> List[Any]:
    """Returns the children of a resource group.

    The values of mappings are the children of the mapping; the items of any
    other collection are the children of the collection. The result is a
    copy so the group may be modified while the children are processed.
    """
    if isinstance(group, Mapping):
        return list(group.values())
    else:
        return list(group)
