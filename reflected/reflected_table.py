"""
Binding tables: the explicit declaration surface.

Code that needs a host internal declares it once, in a `BindingTable`, and
reads the slot after the binding pass:

    session = BindingTable("session", {
        "world_name": reflected_getter("hostapp.session:Session", "__world_name"),
        "add_player": reflected_method("hostapp.session:Session", "_add_player"),
    })

    session.world_name(some_session)

A slot reads as None until the manager installs a callable into it.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from reflected.reflected_datatypes import (
    DEFAULT_SHAPES, Descriptor, DuplicateSlot, MalformedDescriptor, MemberKind, Shape,
    Signature, TypeRef,
)
from reflected.reflected_serialize import deserialize


# =================================================================
# Marker helpers
# =================================================================

def _signature(params: Optional[Sequence[TypeRef]], returns: Optional[TypeRef]) -> Optional[Signature]:
    if params is None and returns is None:
        return None
    return Signature(tuple(params or ()), returns)


def reflected_getter(type: TypeRef, name: str, *, static: bool = False, property: bool = False,
                     returns: Optional[TypeRef] = None, bypass: bool = False) -> Descriptor:
    kind = MemberKind.PROPERTY if property else MemberKind.FIELD
    return Descriptor(type, name, kind, Shape.GETTER, static, _signature(None, returns), bypass=bypass)


def reflected_setter(type: TypeRef, name: str, *, static: bool = False, property: bool = False,
                     value: Optional[TypeRef] = None, bypass: bool = False) -> Descriptor:
    kind = MemberKind.PROPERTY if property else MemberKind.FIELD
    return Descriptor(type, name, kind, Shape.SETTER, static, _signature(None, value), bypass=bypass)


def reflected_method(type: TypeRef, name: str, *, params: Optional[Sequence[TypeRef]] = None,
                     returns: Optional[TypeRef] = None, bypass: bool = False) -> Descriptor:
    return Descriptor(type, name, MemberKind.METHOD, Shape.INVOKER, False, _signature(params, returns), bypass=bypass)


def reflected_static_method(type: TypeRef, name: str, *, params: Optional[Sequence[TypeRef]] = None,
                            returns: Optional[TypeRef] = None, bypass: bool = False) -> Descriptor:
    return Descriptor(type, name, MemberKind.METHOD, Shape.INVOKER, True, _signature(params, returns), bypass=bypass)


def reflected_constructor(type: TypeRef, *, params: Optional[Sequence[TypeRef]] = None,
                          bypass: bool = False) -> Descriptor:
    return Descriptor(type, "__init__", MemberKind.CONSTRUCTOR, Shape.INVOKER, True, _signature(params, None), bypass=bypass)


def reflected_event(type: TypeRef, name: str, *, static: bool = False,
                    replaces: Optional[Tuple[TypeRef, str]] = None) -> Descriptor:
    """`replaces` names the host method whose handler `EventReplacer.replace` swaps out."""
    return Descriptor(type, name, MemberKind.EVENT, Shape.EVENT, static, match=replaces)


def reflected_member_info(type: TypeRef, name: str, kind: Union[MemberKind, str], *, static: bool = False,
                          params: Optional[Sequence[TypeRef]] = None, returns: Optional[TypeRef] = None) -> Descriptor:
    kind = MemberKind(kind)
    if kind == MemberKind.CONSTRUCTOR:
        static = True
    return Descriptor(type, name, kind, Shape.MEMBER_INFO, static, _signature(params, returns))


def reflected_type_info(type: TypeRef) -> Descriptor:
    return Descriptor(type, "", MemberKind.TYPE_INFO, Shape.MEMBER_INFO, True)


# =================================================================
# The table
# =================================================================

class BindingTable:
    """Named slots, each declared with the descriptor that fills it."""

    def __init__(self, name: str, entries: Optional[Mapping[str, Descriptor]] = None):
        if not name:
            raise ValueError("a binding table needs a name")
        self.name = name
        self._descriptors: Dict[str, Descriptor] = {}
        self._slots: Dict[str, Optional[Callable]] = {}
        for slot, descriptor in (entries or {}).items():
            self.declare(slot, descriptor)

    def declare(self, slot: str, descriptor: Descriptor) -> Descriptor:
        if not isinstance(slot, str) or not slot.isidentifier():
            raise MalformedDescriptor(f"{self.name}: slot names must be identifiers, got {slot!r}")
        if not isinstance(descriptor, Descriptor):
            raise MalformedDescriptor(f"{self.name}.{slot}: expected a Descriptor, got {type(descriptor).__name__}")
        if slot in self._descriptors:
            raise DuplicateSlot(self.name, slot)
        bound = descriptor.bind_slot(self, slot)
        self._descriptors[slot] = bound
        self._slots[slot] = None
        return bound

    def _install(self, slot: str, fn: Callable):
        if slot not in self._slots:
            raise KeyError(slot)
        self._slots[slot] = fn

    def descriptor(self, slot: str) -> Descriptor:
        return self._descriptors[slot]

    def descriptors(self) -> List[Descriptor]:
        return list(self._descriptors.values())

    def is_bound(self, slot: str) -> bool:
        return self._slots[slot] is not None

    def get(self, slot: str, default: Any = None) -> Any:
        fn = self._slots.get(slot)
        return default if fn is None else fn

    def __getitem__(self, slot: str) -> Optional[Callable]:
        return self._slots[slot]

    def __getattr__(self, slot: str):
        # Only reached for names that are not regular attributes.
        slots = self.__dict__.get("_slots")
        if slots is not None and slot in slots:
            return slots[slot]
        raise AttributeError(slot)

    def __contains__(self, slot: object) -> bool:
        return slot in self._descriptors

    def __iter__(self) -> Iterator[str]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __repr__(self) -> str:
        bound = sum(1 for fn in self._slots.values() if fn is not None)
        return f"<BindingTable {self.name!r} slots={len(self)} bound={bound}>"


# =================================================================
# Loading tables from documents
# =================================================================

def _type_ref(value: Any) -> TypeRef:
    if not isinstance(value, str) or not value:
        raise MalformedDescriptor(f"type references in documents must be non-empty strings, got {value!r}")
    return value


def descriptor_from_dict(entry: Mapping[str, Any]) -> Descriptor:
    """Build a descriptor from one document entry.

    Keys: type, member, kind, shape, static, params, returns, match, bypass.
    """
    if not isinstance(entry, Mapping):
        raise MalformedDescriptor(f"binding entries must be mappings, got {type(entry).__name__}")
    unknown = set(entry) - {"type", "member", "kind", "shape", "static", "params", "returns", "match", "bypass"}
    if unknown:
        raise MalformedDescriptor(f"unknown binding keys: {', '.join(sorted(unknown))}")
    try:
        kind = MemberKind(entry.get("kind", "field"))
        shape = Shape(entry.get("shape") or DEFAULT_SHAPES[kind])
    except ValueError as e:
        raise MalformedDescriptor(str(e)) from e
    static = bool(entry.get("static", kind in (MemberKind.CONSTRUCTOR, MemberKind.TYPE_INFO)))
    member = entry.get("member", "__init__" if kind == MemberKind.CONSTRUCTOR else "")
    params = entry.get("params")
    if params is not None:
        params = [_type_ref(p) for p in params]
    returns = entry.get("returns")
    if returns is not None:
        returns = _type_ref(returns)
    match = entry.get("match")
    if match is not None:
        if not isinstance(match, Mapping) or "type" not in match or "member" not in match:
            raise MalformedDescriptor("match must be a mapping with 'type' and 'member'")
        match = (_type_ref(match["type"]), str(match["member"]))
    return Descriptor(
        _type_ref(entry.get("type")), str(member), kind, shape, static,
        _signature(params, returns), match, bool(entry.get("bypass", False)),
    )


def load_table(document: Union[str, bytes, Mapping[str, Any]], *, name: Optional[str] = None,
               fmt: Optional[str] = None) -> BindingTable:
    """Build a table from a parsed mapping or from JSON / YAML / TOML text.

    Document layout: `{name: ..., bindings: {slot: entry, ...}}`.
    """
    if isinstance(document, (str, bytes)):
        document = deserialize(document, fmt=fmt or "yaml")
    if not isinstance(document, Mapping):
        raise MalformedDescriptor("a binding table document must be a mapping")
    table_name = name or document.get("name")
    if not table_name:
        raise MalformedDescriptor("a binding table document needs a name")
    bindings = document.get("bindings") or {}
    if not isinstance(bindings, Mapping):
        raise MalformedDescriptor("'bindings' must be a mapping of slot name to entry")
    return BindingTable(str(table_name), {slot: descriptor_from_dict(entry) for slot, entry in bindings.items()})


def load_table_file(path: Union[str, os.PathLike]) -> BindingTable:
    path = os.fspath(path)
    ext = os.path.splitext(path)[1].lower()
    fmt = "json" if ext == ".json" else ("toml" if ext == ".toml" else "yaml")
    with open(path, "rb") as f:
        data = f.read()
    default_name = os.path.splitext(os.path.basename(path))[0]
    document = deserialize(data, fmt=fmt)
    if isinstance(document, Mapping) and not document.get("name"):
        document = dict(document, name=default_name)
    return load_table(document)
