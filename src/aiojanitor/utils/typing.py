from typing import Callable


__all__ = ("ErrorHandler", "ResourceKey", "SlotName")

#: Type alias for functions that are notified about failed fire-and-forget
#: disposal work
ErrorHandler = Callable[[BaseException], None]

#: Type alias for the keys that a resource tracker hands out on registration
ResourceKey = int

#: Type alias for the names of the named slots of a resource tracker
SlotName = str
