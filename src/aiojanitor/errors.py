from typing import Any, List, Optional

__all__ = ("GroupDisposalError", "TrackerDestroyed", "UnsupportedResourceKind")


class UnsupportedResourceKind(TypeError):
    """Error thrown when an object is registered in a resource tracker but it
    does not belong to any of the resource categories that the tracker knows
    how to dispose of.
    """

    def __init__(self, item: Any, message: Optional[str] = None):
        message = message or "Cannot track object of type {0!r}".format(
            type(item).__name__
        )
        super().__init__(message)
        self.item = item


class TrackerDestroyed(RuntimeError):
    """Error thrown when a resource is registered in a resource tracker that
    has already been destroyed.
    """

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Resource tracker was already destroyed")


class GroupDisposalError(RuntimeError):
    """Error thrown when some of the children of a resource group could not
    be disposed of.

    The remaining children of the group are disposed of even if an earlier
    child fails; the errors are collected in the `errors` attribute.
    """

    def __init__(self, group: Any, errors: List[Exception]):
        super().__init__(
            "Failed to dispose of {0} item(s) in resource group".format(len(errors))
        )
        self.group = group
        self.errors = errors
