"""
Defines the core data types for the reflected binding system.

A binding request (`Descriptor`) names a member of some host class that the
declaring code wants to reach. The resolver turns it into a `MemberInfo`
wrapped in a `ResolutionResult`; the manager records the final `Outcome`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Tuple, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from reflected.reflected_table import BindingTable

TypeRef = Union[type, str]


# =================================================================
# Exceptions
# =================================================================

class MalformedDescriptor(ValueError):
    """A descriptor whose declared shape cannot make sense for its member kind."""
    pass


class DuplicateSlot(KeyError):
    def __init__(self, table: str, slot: str):
        super().__init__(f"{table}.{slot}")
        self.table = table
        self.slot = slot


class UnknownDescriptor(KeyError):
    pass


class SynthesisError(Exception):
    """Raised by the synthesizer when a resolved member cannot serve the declared shape."""
    pass


class BindingFailed(RuntimeError):
    def __init__(self, report):
        super().__init__(f"{len(report.failures)} of {report.attempted} bindings failed")
        self.report = report


# =================================================================
# Enumerations
# =================================================================

class MemberKind(str, enum.Enum):
    FIELD = "field"
    PROPERTY = "property"
    METHOD = "method"
    CONSTRUCTOR = "constructor"
    EVENT = "event"
    TYPE_INFO = "type_info"


class Shape(str, enum.Enum):
    """The calling convention requested for a slot. Also the registry category."""
    GETTER = "getter"
    SETTER = "setter"
    INVOKER = "invoker"
    MEMBER_INFO = "member_info"
    EVENT = "event"


class ResolutionStatus(str, enum.Enum):
    RESOLVED = "Resolved"
    NOT_FOUND = "NotFound"
    AMBIGUOUS_OVERLOAD = "AmbiguousOverload"
    SIGNATURE_MISMATCH = "SignatureMismatch"


class FailureKind(str, enum.Enum):
    NOT_FOUND = "NotFound"
    AMBIGUOUS_OVERLOAD = "AmbiguousOverload"
    SIGNATURE_MISMATCH = "SignatureMismatch"
    SYNTHESIS_ERROR = "SynthesisError"

    @classmethod
    def from_status(cls, status: ResolutionStatus) -> 'FailureKind':
        return cls(status.value)


# Which member kinds each shape may be built from.
SHAPE_KINDS = {
    Shape.GETTER: frozenset({MemberKind.FIELD, MemberKind.PROPERTY}),
    Shape.SETTER: frozenset({MemberKind.FIELD, MemberKind.PROPERTY}),
    Shape.INVOKER: frozenset({MemberKind.METHOD, MemberKind.CONSTRUCTOR}),
    Shape.EVENT: frozenset({MemberKind.EVENT}),
    Shape.MEMBER_INFO: frozenset(MemberKind),
}

DEFAULT_SHAPES = {
    MemberKind.FIELD: Shape.GETTER,
    MemberKind.PROPERTY: Shape.GETTER,
    MemberKind.METHOD: Shape.INVOKER,
    MemberKind.CONSTRUCTOR: Shape.INVOKER,
    MemberKind.EVENT: Shape.EVENT,
    MemberKind.TYPE_INFO: Shape.MEMBER_INFO,
}


def type_ref_name(ref: Any) -> str:
    """Readable name for a class or a dotted type name."""
    if isinstance(ref, type):
        return f"{ref.__module__}.{ref.__qualname__}"
    if ref is None:
        return "None"
    return str(ref)


# =================================================================
# Binding requests
# =================================================================

@dataclass(frozen=True)
class Signature:
    """Expected parameter types (excluding the receiving instance) and return type."""
    params: Tuple[TypeRef, ...] = ()
    returns: Optional[TypeRef] = None

    def __post_init__(self):
        if not isinstance(self.params, tuple):
            object.__setattr__(self, "params", tuple(self.params))

    def __str__(self) -> str:
        args = ", ".join(type_ref_name(p) for p in self.params)
        ret = f" -> {type_ref_name(self.returns)}" if self.returns is not None else ""
        return f"({args}){ret}"


@dataclass(frozen=True)
class Slot:
    """The location in a binding table that receives a synthesized callable."""
    table: 'BindingTable'
    name: str

    def __str__(self) -> str:
        return f"{self.table.name}.{self.name}"


@dataclass(frozen=True)
class Descriptor:
    target_type: TypeRef
    member_name: str
    kind: MemberKind
    shape: Shape
    static: bool = False
    signature: Optional[Signature] = None
    # Event replacement target: (type, method name) of the handler to swap out.
    match: Optional[Tuple[TypeRef, str]] = None
    bypass: bool = False
    slot: Optional[Slot] = None

    def __post_init__(self):
        # Accept plain strings from hand-written tables and YAML documents.
        try:
            object.__setattr__(self, "kind", MemberKind(self.kind))
            object.__setattr__(self, "shape", Shape(self.shape))
        except ValueError as e:
            raise MalformedDescriptor(str(e)) from e
        if isinstance(self.match, list):
            object.__setattr__(self, "match", tuple(self.match))
        self._validate()

    def _validate(self):
        where = f"{type_ref_name(self.target_type)}.{self.member_name or '<type>'}"
        if not isinstance(self.target_type, (type, str)) or not self.target_type:
            raise MalformedDescriptor(f"{where}: target type must be a class or a type name")
        if self.kind not in SHAPE_KINDS[self.shape]:
            raise MalformedDescriptor(f"{where}: a {self.shape.value} cannot be built from a {self.kind.value}")
        if self.kind != MemberKind.TYPE_INFO and self.kind != MemberKind.CONSTRUCTOR and not self.member_name:
            raise MalformedDescriptor(f"{where}: member name is required for a {self.kind.value}")
        if self.kind in (MemberKind.CONSTRUCTOR, MemberKind.TYPE_INFO) and not self.static:
            raise MalformedDescriptor(f"{where}: a {self.kind.value} is always static")
        if self.signature is not None:
            if self.kind in (MemberKind.EVENT, MemberKind.TYPE_INFO):
                raise MalformedDescriptor(f"{where}: a {self.kind.value} takes no signature")
            if self.kind in (MemberKind.FIELD, MemberKind.PROPERTY) and self.signature.params:
                raise MalformedDescriptor(f"{where}: a {self.kind.value} signature declares only its value type")
        if self.match is not None:
            if self.kind != MemberKind.EVENT:
                raise MalformedDescriptor(f"{where}: only events take a replacement target")
            if not isinstance(self.match, tuple) or len(self.match) != 2 or not self.match[1]:
                raise MalformedDescriptor(f"{where}: replacement target must be (type, method name)")

    @property
    def category(self) -> Shape:
        return self.shape

    @property
    def type_name(self) -> str:
        return type_ref_name(self.target_type)

    @property
    def identity(self) -> str:
        member = self.member_name or "<type>"
        target = f"{self.type_name}.{member}"
        if self.slot is None:
            return target
        return f"{self.slot} -> {target}"

    def bind_slot(self, table: 'BindingTable', name: str) -> 'Descriptor':
        return replace(self, slot=Slot(table, name))

    def __str__(self) -> str:
        return f"{self.identity} ({self.kind.value} {self.shape.value})"


# =================================================================
# Resolution
# =================================================================

@dataclass(frozen=True)
class MemberInfo:
    """A member found on a host class.

    `name` is what was asked for, `stored_name` the attribute that actually
    holds it (differs for name-mangled privates). `obj` is the raw class-level
    object: function, property, staticmethod, slot descriptor, the class
    itself for constructors and type info, or an (add, remove) pair for
    accessor events.
    """
    name: str
    stored_name: str
    kind: MemberKind
    owner: type
    static: bool
    obj: Any = field(default=None, compare=False)
    detail: str = ""
    # Registered type of a singledispatch implementation.
    dispatch: Any = field(default=None, compare=False)

    @property
    def qualname(self) -> str:
        return f"{type_ref_name(self.owner)}.{self.stored_name}"


@dataclass(frozen=True)
class ResolutionResult:
    status: ResolutionStatus
    member: Optional[MemberInfo] = None
    detail: str = ""
    candidates: Tuple[MemberInfo, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED

    @classmethod
    def ok(cls, member: MemberInfo, candidates: Tuple[MemberInfo, ...] = ()) -> 'ResolutionResult':
        return cls(ResolutionStatus.RESOLVED, member, "", candidates or (member,))

    @classmethod
    def not_found(cls, detail: str) -> 'ResolutionResult':
        return cls(ResolutionStatus.NOT_FOUND, None, detail)

    @classmethod
    def ambiguous(cls, detail: str, candidates: Tuple[MemberInfo, ...] = ()) -> 'ResolutionResult':
        return cls(ResolutionStatus.AMBIGUOUS_OVERLOAD, None, detail, candidates)

    @classmethod
    def mismatch(cls, detail: str, candidates: Tuple[MemberInfo, ...] = ()) -> 'ResolutionResult':
        return cls(ResolutionStatus.SIGNATURE_MISMATCH, None, detail, candidates)


@dataclass(frozen=True)
class Outcome:
    """The terminal, recorded result of processing one descriptor."""
    descriptor: Descriptor
    success: bool
    failure: Optional[FailureKind] = None
    detail: str = ""
    callable: Any = field(default=None, compare=False)
