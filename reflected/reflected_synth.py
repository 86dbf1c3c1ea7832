"""
The callable synthesizer.

Turns a resolved `MemberInfo` into a `ReflectedCallable` of the requested
shape. The direct strategy hands out the underlying function or a tight
closure over it; the generic strategy routes every call through
`reflected_access`, and is used when a class hooks attribute access or
instance creation, when the member is a non-function descriptor, or when the
descriptor asks for it (`bypass`).
"""

import functools
import inspect
import logging
import operator
from typing import Any, Callable, Optional

from reflected import reflected_access as access
from reflected.reflected_datatypes import MemberInfo, MemberKind, Shape, SynthesisError
from reflected.reflected_events import EventAccess, EventReplacer, handler_function

logger = logging.getLogger(__name__)

DIRECT = "direct"
GENERIC = "generic"


class ReflectedCallable:
    """A synthesized callable installed into a binding slot."""
    __slots__ = ("_fn", "shape", "member", "strategy", "__weakref__")

    def __init__(self, fn: Callable, shape: Shape, member: MemberInfo, strategy: str):
        self._fn = fn
        self.shape = shape
        self.member = member
        self.strategy = strategy

    def __call__(self, *args, **kwargs):
        return self._fn(*args, **kwargs)

    @property
    def target(self) -> Callable:
        """The raw callable that does the work."""
        return self._fn

    def __repr__(self) -> str:
        return f"<ReflectedCallable {self.shape.value} {self.member.qualname} ({self.strategy})>"


class CallableSynthesizer:
    """Builds callables for resolved members, one handler per shape."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def _create_handlers(self):
        return {
            Shape.GETTER: self._getter,
            Shape.SETTER: self._setter,
            Shape.INVOKER: self._invoker,
            Shape.EVENT: self._event,
            Shape.MEMBER_INFO: self._member_info,
        }

    def synthesize(self, member: MemberInfo, shape: Shape, *, bypass: bool = False,
                   replace_target: Optional[Callable] = None) -> ReflectedCallable:
        """Raise SynthesisError when `member` cannot be used with `shape` at all."""
        shape = Shape(shape)
        if shape == Shape.EVENT:
            fn, strategy = self._event(member, bypass, replace_target)
        else:
            fn, strategy = self._handlers[shape](member, bypass)
        logger.debug("synthesized %s for %s (%s)", shape.value, member.qualname, strategy)
        return ReflectedCallable(fn, shape, member, strategy)

    # --- getters ---------------------------------------------------

    def _getter(self, member: MemberInfo, bypass: bool):
        name = member.stored_name
        owner = member.owner
        if member.kind == MemberKind.PROPERTY:
            prop = member.obj
            if isinstance(prop, property):
                if prop.fget is None:
                    raise SynthesisError(f"property {member.qualname} has no getter")
                if not bypass:
                    return prop.fget, DIRECT
            return (lambda obj: prop.__get__(obj, owner)), GENERIC

        if member.static:
            if bypass or access.meta_overrides(owner, "__getattribute__"):
                return (lambda: access.raw_get(owner, name)), GENERIC
            return (lambda: getattr(owner, name)), DIRECT

        if member.detail == "slot" and not bypass:
            slot = member.obj
            return (lambda obj: slot.__get__(obj, owner)), DIRECT
        if bypass or access.overrides(owner, "__getattribute__"):
            return (lambda obj: access.raw_get(obj, name)), GENERIC
        return operator.attrgetter(name), DIRECT

    # --- setters ---------------------------------------------------

    def _setter(self, member: MemberInfo, bypass: bool):
        name = member.stored_name
        owner = member.owner
        if member.kind == MemberKind.PROPERTY:
            prop = member.obj
            if isinstance(prop, functools.cached_property):
                # No __set__: writing the instance attribute replaces the cached value.
                return (lambda obj, value: access.raw_set(obj, prop.attrname or name, value)), GENERIC
            if prop.fset is None:
                raise SynthesisError(f"property {member.qualname} is read-only")
            if bypass:
                return (lambda obj, value: prop.__set__(obj, value)), GENERIC
            return prop.fset, DIRECT

        if member.static:
            if bypass or access.meta_overrides(owner, "__setattr__"):
                return (lambda value: access.raw_set(owner, name, value)), GENERIC
            return (lambda value: setattr(owner, name, value)), DIRECT

        if member.detail == "slot" and not bypass:
            slot = member.obj
            return slot.__set__, DIRECT
        if bypass or access.overrides(owner, "__setattr__"):
            return (lambda obj, value: access.raw_set(obj, name, value)), GENERIC
        return (lambda obj, value: setattr(obj, name, value)), DIRECT

    # --- invokers --------------------------------------------------

    def _invoker(self, member: MemberInfo, bypass: bool):
        if member.kind == MemberKind.CONSTRUCTOR:
            return self._constructor(member, bypass)

        raw = member.obj
        owner = member.owner
        if isinstance(raw, staticmethod):
            fn = raw.__func__
            if bypass:
                return (lambda *args, **kwargs: access.call_descriptor(raw, None, owner, args, kwargs)), GENERIC
            return fn, DIRECT
        if isinstance(raw, classmethod):
            if bypass:
                return (lambda *args, **kwargs: access.call_descriptor(raw, None, owner, args, kwargs)), GENERIC
            return raw.__get__(None, owner), DIRECT
        if member.detail == "callable":
            return raw, DIRECT
        if member.detail == "descriptor" or bypass:
            return (lambda obj, *args, **kwargs: access.call_descriptor(raw, obj, owner, args, kwargs)), GENERIC
        if not callable(raw):
            raise SynthesisError(f"{member.qualname} is not callable")
        # Plain functions and singledispatch implementations take the instance first.
        return raw, DIRECT

    def _constructor(self, member: MemberInfo, bypass: bool):
        cls = member.obj
        if inspect.isabstract(cls):
            raise SynthesisError(f"{member.owner.__qualname__} is abstract and cannot be constructed")
        if bypass or access.meta_overrides(cls, "__call__"):
            return (lambda *args, **kwargs: access.raw_construct(cls, args, kwargs)), GENERIC
        return cls, DIRECT

    # --- events ----------------------------------------------------

    def _event(self, member: MemberInfo, bypass: bool, replace_target: Optional[Callable] = None):
        match = None
        if replace_target is not None:
            target = handler_function(replace_target)
            match = lambda handler: handler_function(handler) is target
        strategy = DIRECT if member.detail == "accessors" and not bypass else GENERIC

        if member.static:
            try:
                event = EventAccess(member)
            except TypeError as e:
                raise SynthesisError(str(e)) from e
            return (lambda: EventReplacer(event, match)), strategy
        return (lambda obj: EventReplacer(EventAccess(member, obj), match)), strategy

    # --- member info -----------------------------------------------

    def _member_info(self, member: MemberInfo, bypass: bool):
        return (lambda: member), DIRECT
