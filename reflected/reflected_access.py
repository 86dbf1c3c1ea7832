"""
Low-level member access that bypasses a host class's own access hooks.

This is the only module that reaches around `__getattribute__`,
`__setattr__`, metaclass `__call__` and name mangling. Everything above it
goes through the callables built by `reflected_synth`; consumer code never
calls in here directly.
"""

import types
from typing import Any, Optional, Tuple

MISSING = object()


def is_private(name: str) -> bool:
    return name.startswith("__") and not name.endswith("__")


def mangle(owner: type, name: str) -> str:
    """Apply Python's private-name mangling for a name written inside `owner`."""
    if not is_private(name):
        return name
    stripped = owner.__name__.lstrip("_")
    if not stripped:
        return name
    return f"_{stripped}{name}"


def mro(cls: type) -> Tuple[type, ...]:
    return type.__dict__["__mro__"].__get__(cls)


def class_dict(cls: type):
    """The class namespace, read without going through a metaclass `__getattribute__`."""
    return type.__dict__["__dict__"].__get__(cls)


def lookup(cls: type, name: str) -> Tuple[Optional[type], Any]:
    """Find `name` along the MRO without invoking descriptors.

    Returns (declaring class, raw object), or (None, MISSING).
    """
    for klass in mro(cls):
        ns = class_dict(klass)
        if name in ns:
            return klass, ns[name]
    return None, MISSING


def overrides(cls: type, hook: str) -> bool:
    """True when `cls` customizes `hook` rather than inheriting object's version."""
    owner, _ = lookup(cls, hook)
    return owner is not None and owner is not object


def meta_overrides(cls: type, hook: str) -> bool:
    owner, _ = lookup(type(cls), hook)
    return owner is not None and owner not in (type, object)


def is_slot(raw: Any) -> bool:
    return isinstance(raw, types.MemberDescriptorType)


def has_get(raw: Any) -> bool:
    return lookup(type(raw), "__get__")[0] is not None


# -----------------------------------------------------------------
# Raw reads and writes
# -----------------------------------------------------------------

def raw_get(target: Any, name: str) -> Any:
    if isinstance(target, type):
        return type.__getattribute__(target, name)
    return object.__getattribute__(target, name)


def raw_set(target: Any, name: str, value: Any) -> None:
    if isinstance(target, type):
        type.__setattr__(target, name, value)
    else:
        object.__setattr__(target, name, value)


def raw_new(cls: type, args: tuple = (), kwargs: Optional[dict] = None) -> Any:
    owner, _ = lookup(cls, "__new__")
    if owner is object:
        return object.__new__(cls)
    return cls.__new__(cls, *args, **(kwargs or {}))


def raw_construct(cls: type, args: tuple = (), kwargs: Optional[dict] = None) -> Any:
    """Allocate and initialize an instance without going through `type(cls).__call__`."""
    kwargs = kwargs or {}
    instance = raw_new(cls, args, kwargs)
    # Same rule as type.__call__: only initialize instances of cls.
    if isinstance(instance, cls):
        owner, init = lookup(type(instance), "__init__")
        if owner is not object:
            init(instance, *args, **kwargs)
    return instance


def call_descriptor(raw: Any, target: Any, owner: type, args: tuple, kwargs: dict) -> Any:
    """Bind a class-level callable descriptor to `target` at call time and invoke it."""
    if has_get(raw):
        bound = raw.__get__(target, owner)
    else:
        bound = raw
    return bound(*args, **kwargs)
