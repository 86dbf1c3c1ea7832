"""
Event adapters.

A host "event" is either an `add_<name>` / `remove_<name>` accessor pair, or an
attribute holding a handler container (a list, a set, or an object with a
subscribe-style method pair or `+=` / `-=`). `EventAccess` hides which one;
`EventReplacer` owns a single active handler on top of it.
"""

import functools
import threading
from typing import Any, Callable, List, Optional

from reflected import reflected_access as access
from reflected.reflected_datatypes import MemberInfo

# Method pairs recognised on handler containers, in lookup order.
_CONTAINER_PAIRS = (
    ("connect", "disconnect"),
    ("subscribe", "unsubscribe"),
    ("add", "discard"),
    ("add", "remove"),
    ("append", "remove"),
)


def _bind_accessor(raw, owner: type, instance: Any):
    if isinstance(raw, staticmethod):
        return raw.__func__
    if isinstance(raw, classmethod):
        return raw.__get__(None, owner)
    return functools.partial(raw, instance)


def handler_function(handler):
    """The plain function behind a handler (bound methods unwrap to their function)."""
    return getattr(handler, "__func__", handler)


class EventAccess:
    """Attach and detach handlers on one host event.

    `instance` is the receiving object for instance events, None for static
    ones. Container events re-read the attribute on every call, so a host that
    rebinds it is followed. Raises TypeError when the event's current value
    cannot hold handlers.
    """

    def __init__(self, member: MemberInfo, instance: Any = None):
        self.member = member
        self.instance = instance
        if member.detail == "accessors":
            add, remove = member.obj
            self._attach = _bind_accessor(add, member.owner, instance)
            self._detach = _bind_accessor(remove, member.owner, instance)
            return
        self._container()

    def _holder(self):
        return self.member.owner if self.member.static else self.instance

    def _container(self):
        """The current container, with the method pair (or None for +=/-=) that drives it."""
        container = access.raw_get(self._holder(), self.member.stored_name)
        for add_name, remove_name in _CONTAINER_PAIRS:
            if callable(getattr(container, add_name, None)) and callable(getattr(container, remove_name, None)):
                return container, (add_name, remove_name)
        if hasattr(container, "__iadd__") and hasattr(container, "__isub__"):
            return container, None
        raise TypeError(f"{self.member.qualname} holds {type(container).__name__}, which cannot take handlers")

    @property
    def accessors(self) -> bool:
        return self.member.detail == "accessors"

    def attach(self, handler: Callable):
        if self.accessors:
            self._attach(handler)
            return
        container, pair = self._container()
        if pair is None:
            container += handler
            access.raw_set(self._holder(), self.member.stored_name, container)
        else:
            getattr(container, pair[0])(handler)

    def detach(self, handler: Callable):
        try:
            if self.accessors:
                self._detach(handler)
                return
            container, pair = self._container()
            if pair is None:
                container -= handler
                access.raw_set(self._holder(), self.member.stored_name, container)
            else:
                getattr(container, pair[1])(handler)
        except (ValueError, KeyError):
            # Already gone.
            pass

    def handlers(self) -> List[Callable]:
        """Currently attached handlers, when the container can be enumerated."""
        if self.accessors:
            return []
        container, _ = self._container()
        try:
            return list(container)
        except TypeError:
            return []


class EventReplacer:
    """Keeps exactly one handler of ours attached to a host event.

    `subscribe` swaps our handler; `replace` additionally detaches the host's
    own handlers accepted by `match` and `remove` puts them back. All changes
    happen under one lock.
    """

    def __init__(self, event: EventAccess, match: Optional[Callable[[Callable], bool]] = None):
        self.event = event
        self.match = match
        self._lock = threading.Lock()
        self._handler: Optional[Callable] = None
        self._displaced: List[Callable] = []

    @property
    def handler(self) -> Optional[Callable]:
        return self._handler

    @property
    def attached(self) -> bool:
        return self._handler is not None

    def subscribe(self, handler: Callable) -> Optional[Callable]:
        """Attach `handler`, detaching the one we held before. Returns the old one."""
        with self._lock:
            return self._swap(handler)

    def unsubscribe(self) -> Optional[Callable]:
        with self._lock:
            return self._swap(None)

    def replace(self, handler: Callable) -> Optional[Callable]:
        with self._lock:
            if self.match is not None and not self._displaced:
                for existing in self.event.handlers():
                    if existing is not self._handler and self.match(existing):
                        self.event.detach(existing)
                        self._displaced.append(existing)
            return self._swap(handler)

    def remove(self):
        """Detach our handler and restore whatever `replace` displaced."""
        with self._lock:
            self._swap(None)
            displaced, self._displaced = self._displaced, []
            for existing in displaced:
                self.event.attach(existing)

    def _swap(self, handler: Optional[Callable]) -> Optional[Callable]:
        previous = self._handler
        if previous is not None:
            self.event.detach(previous)
            self._handler = None
        if handler is not None:
            try:
                self.event.attach(handler)
            except Exception:
                # The host refused the new handler: put the old one back.
                if previous is not None:
                    self.event.attach(previous)
                    self._handler = previous
                raise
        self._handler = handler
        return previous

    def __repr__(self) -> str:
        return f"<EventReplacer {self.event.member.qualname} attached={self.attached}>"
