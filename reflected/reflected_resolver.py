"""
The type-system resolver.

Maps a `Descriptor` onto a member of a live host class. Lookups read class
namespaces directly (no descriptors are triggered, no host code runs), see
through private-name mangling, and treat "not there" as an ordinary result:
host classes change between versions and individual bindings are expected
to disappear from time to time.
"""

from __future__ import annotations

import ast
import functools
import inspect
import logging
import textwrap
import types
import typing
from types import FunctionType, ModuleType
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from reflected import reflected_access as access
from reflected.reflected_datatypes import (
    Descriptor, MemberInfo, MemberKind, ResolutionResult, Signature, TypeRef,
    type_ref_name,
)

logger = logging.getLogger(__name__)

AMBIGUITY_POLICIES = ("first", "error")

_EMPTY = inspect.Parameter.empty
_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
_CONSTRUCTOR_NAMES = ("", "__init__", "__new__")


# -----------------------------------------------------------------
# Type lookup helpers
# -----------------------------------------------------------------

def _namespace(obj) -> dict:
    if isinstance(obj, ModuleType):
        return vars(obj)
    return access.class_dict(obj)


def _walk(root, qualname: str) -> Optional[type]:
    """Follow a dotted qualname (`Outer.Inner`) from a module or class."""
    current = root
    for part in qualname.split("."):
        current = _namespace(current).get(part)
        if not isinstance(current, type):
            return None
    return current


def _classes(module: ModuleType) -> Iterator[type]:
    """Every class reachable from a module namespace, nested classes included."""
    seen = set()
    stack = [v for v in vars(module).values() if isinstance(v, type)]
    stack.reverse()
    while stack:
        cls = stack.pop()
        if id(cls) in seen:
            continue
        seen.add(id(cls))
        yield cls
        nested = [
            v for v in access.class_dict(cls).values()
            if isinstance(v, type) and v.__qualname__.startswith(cls.__qualname__ + ".")
        ]
        stack.extend(reversed(nested))


# -----------------------------------------------------------------
# Signature helpers
# -----------------------------------------------------------------

def _type_names(ref) -> FrozenSet[str]:
    if isinstance(ref, type):
        return frozenset({ref.__qualname__, ref.__name__, f"{ref.__module__}.{ref.__qualname__}"})
    if isinstance(ref, str):
        return frozenset({ref, ref.rsplit(".", 1)[-1]})
    return frozenset({repr(ref)})


def _is_open(ref) -> bool:
    return ref is _EMPTY or ref is None or ref is typing.Any or ref is object or ref in ("Any", "object", "typing.Any")


def _fit(source, target) -> Optional[int]:
    """Score how well a value of type `source` fits where `target` is expected.

    2 = same type, 1 = subclass, 0 = unconstrained, None = incompatible.
    """
    if _is_open(source) or _is_open(target):
        return 0
    origin = typing.get_origin(target)
    if origin is typing.Union or origin is types.UnionType:
        scores = [s for s in (_fit(source, arm) for arm in typing.get_args(target)) if s is not None]
        return max(scores) if scores else None
    # Parameterised generics compare by their runtime class: List[int] -> list.
    target = origin or target
    source = typing.get_origin(source) or source
    if source is target:
        return 2
    if isinstance(source, type) and isinstance(target, type):
        try:
            return 1 if issubclass(source, target) else None
        except TypeError:
            return None
    if _type_names(source) & _type_names(target):
        return 2
    return None


def _signature_of(obj) -> Optional[inspect.Signature]:
    try:
        return inspect.signature(obj, eval_str=True)
    except (NameError, SyntaxError, AttributeError):
        pass
    except (TypeError, ValueError):
        return None
    try:
        return inspect.signature(obj)
    except (TypeError, ValueError):
        return None


def _pair_params(params: List[inspect.Parameter], declared: Tuple) -> Optional[List[Tuple[inspect.Parameter, Any]]]:
    """Line declared argument types up with the parameters they would bind to."""
    positional = [p for p in params if p.kind in _POSITIONAL]
    var = next((p for p in params if p.kind == inspect.Parameter.VAR_POSITIONAL), None)
    if any(p.kind == inspect.Parameter.KEYWORD_ONLY and p.default is _EMPTY for p in params):
        return None
    required = [p for p in positional if p.default is _EMPTY]
    if len(declared) < len(required):
        return None
    if len(declared) > len(positional) and var is None:
        return None
    return [
        (positional[i] if i < len(positional) else var, d)
        for i, d in enumerate(declared)
    ]


def _annotations(cls: type) -> dict:
    try:
        return inspect.get_annotations(cls, eval_str=True)
    except (NameError, SyntaxError, AttributeError):
        pass
    except (TypeError, ValueError):
        return {}
    try:
        return inspect.get_annotations(cls)
    except (TypeError, ValueError):
        return {}


# -----------------------------------------------------------------
# The resolver
# -----------------------------------------------------------------

class TypeResolver:
    """Finds the member a descriptor names, across a fixed list of modules."""

    def __init__(self, modules: Iterable[ModuleType] = (), *, ambiguity: str = "first"):
        if ambiguity not in AMBIGUITY_POLICIES:
            raise ValueError(f"ambiguity must be one of {AMBIGUITY_POLICIES}, not {ambiguity!r}")
        self.ambiguity = ambiguity
        self.modules: List[ModuleType] = []
        self._types: Dict[str, Tuple[Optional[type], Optional[ResolutionResult]]] = {}
        self._assigned: Dict[type, FrozenSet[str]] = {}
        self.add_modules(modules)

    def add_modules(self, modules: Iterable[ModuleType]):
        for module in modules:
            if not any(module is m for m in self.modules):
                self.modules.append(module)
        self._types.clear()

    # --- types -----------------------------------------------------

    def find_type(self, ref: TypeRef) -> Tuple[Optional[type], Optional[ResolutionResult]]:
        """Return (class, None) or (None, failure result)."""
        if isinstance(ref, type):
            return ref, None
        if ref not in self._types:
            self._types[ref] = self._find_type_by_name(ref)
        return self._types[ref]

    def _module(self, name: str) -> Optional[ModuleType]:
        for module in self.modules:
            if module.__name__ == name:
                return module
        return None

    def _find_type_by_name(self, name: str):
        if ":" in name:
            module_name, _, qualname = name.partition(":")
            module = self._module(module_name)
            if module is None:
                return None, ResolutionResult.not_found(f"module {module_name!r} is not among the scanned modules")
            cls = _walk(module, qualname)
            if cls is None:
                return None, ResolutionResult.not_found(f"type {name!r} not found")
            return cls, None

        matches: List[type] = []
        # Fully qualified: the longest scanned module name that prefixes it.
        for module in sorted(self.modules, key=lambda m: len(m.__name__), reverse=True):
            prefix = module.__name__ + "."
            if name.startswith(prefix):
                cls = _walk(module, name[len(prefix):])
                if cls is not None:
                    matches.append(cls)
                    break
        if not matches:
            for module in self.modules:
                for cls in _classes(module):
                    if (cls.__qualname__ == name or cls.__name__ == name) and not any(cls is m for m in matches):
                        matches.append(cls)

        if not matches:
            return None, ResolutionResult.not_found(f"type {name!r} not found in {len(self.modules)} scanned modules")
        if len(matches) > 1:
            names = ", ".join(type_ref_name(m) for m in matches)
            return None, ResolutionResult.ambiguous(f"type name {name!r} matches {names}")
        return matches[0], None

    # --- members ---------------------------------------------------

    def resolve(self, descriptor: Descriptor) -> ResolutionResult:
        cls, failure = self.find_type(descriptor.target_type)
        if failure is not None:
            return failure

        if descriptor.kind == MemberKind.TYPE_INFO:
            info = MemberInfo(cls.__qualname__, cls.__qualname__, MemberKind.TYPE_INFO, cls, True, cls, "class")
            return ResolutionResult.ok(info)

        where = f"{type_ref_name(cls)}.{descriptor.member_name}"
        candidates = tuple(self.members(cls, descriptor.member_name, descriptor.kind))
        if not candidates:
            return ResolutionResult.not_found(f"no {descriptor.kind.value} {where}")

        matching = candidates
        if descriptor.signature is not None:
            scored = [(self.signature_score(c, descriptor.signature), c) for c in candidates]
            scored = [(s, c) for s, c in scored if s is not None]
            if not scored:
                return ResolutionResult.mismatch(f"{where} does not fit {descriptor.signature}", candidates)
            best = max(s for s, _ in scored)
            matching = tuple(c for s, c in scored if s == best)

        fitting = tuple(c for c in matching if c.static == descriptor.static)
        if not fitting:
            actual = "a static" if matching[0].static else "an instance"
            expected = "static" if descriptor.static else "instance"
            return ResolutionResult.mismatch(f"{where} is {actual} member, expected {expected}", matching)

        if len(fitting) > 1:
            if self.ambiguity == "error":
                names = ", ".join(f"{c.qualname}[{c.detail}]" for c in fitting)
                return ResolutionResult.ambiguous(f"{where} has {len(fitting)} candidates: {names}", fitting)
            logger.debug("%s: %d candidates, taking %s", where, len(fitting), fitting[0].qualname)
        return ResolutionResult.ok(fitting[0], fitting)

    def members(self, cls: type, name: str, kind: MemberKind) -> Iterator[MemberInfo]:
        finders = {
            MemberKind.FIELD: self._fields,
            MemberKind.PROPERTY: self._properties,
            MemberKind.METHOD: self._methods,
            MemberKind.CONSTRUCTOR: self._constructors,
            MemberKind.EVENT: self._events,
        }
        seen = set()
        for info in finders[kind](cls, name):
            key = (info.stored_name, info.static, info.detail if kind == MemberKind.METHOD else None)
            if key not in seen:
                seen.add(key)
                yield info

    def _stored_names(self, cls: type, name: str) -> List[str]:
        """The literal name, plus its mangled form for every class in the MRO."""
        names = [name]
        if access.is_private(name):
            for klass in access.mro(cls):
                if klass is object:
                    continue
                mangled = access.mangle(klass, name)
                if mangled not in names:
                    names.append(mangled)
        return names

    def _annotation_owner(self, cls: type, stored: str) -> Optional[type]:
        for klass in access.mro(cls):
            ann = _annotations(klass)
            if stored in ann and "ClassVar" not in str(ann[stored]):
                return klass
        return None

    def _assigned_owner(self, cls: type, stored: str) -> Optional[type]:
        for klass in access.mro(cls):
            if stored in self._assigned_names(klass):
                return klass
        return None

    def _assigned_names(self, klass: type) -> FrozenSet[str]:
        """Instance attributes assigned as `self.<name> = ...` in the class's methods."""
        if klass in self._assigned:
            return self._assigned[klass]
        names = set()
        try:
            tree = ast.parse(textwrap.dedent(inspect.getsource(klass)))
        except (OSError, TypeError, SyntaxError):
            tree = None
        if tree is not None and tree.body and isinstance(tree.body[0], ast.ClassDef):
            for item in tree.body[0].body:
                if not isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)) or not item.args.args:
                    continue
                decorators = {getattr(d, "id", None) for d in item.decorator_list}
                if decorators & {"staticmethod", "classmethod"}:
                    continue
                receiver = item.args.args[0].arg
                for node in ast.walk(item):
                    if isinstance(node, ast.Assign):
                        targets = list(node.targets)
                    elif isinstance(node, (ast.AnnAssign, ast.AugAssign)):
                        targets = [node.target]
                    else:
                        continue
                    while targets:
                        t = targets.pop()
                        if isinstance(t, (ast.Tuple, ast.List)):
                            targets.extend(t.elts)
                        elif isinstance(t, ast.Attribute) and isinstance(t.value, ast.Name) and t.value.id == receiver:
                            names.add(access.mangle(klass, t.attr))
        self._assigned[klass] = frozenset(names)
        return self._assigned[klass]

    def _instance_attribute(self, cls: type, name: str, stored: str, kind: MemberKind, detail: str) -> Iterator[MemberInfo]:
        owner = self._annotation_owner(cls, stored) or self._assigned_owner(cls, stored)
        if owner is not None:
            yield MemberInfo(name, stored, kind, owner, False, None, detail)

    def _fields(self, cls: type, name: str) -> Iterator[MemberInfo]:
        for stored in self._stored_names(cls, name):
            owner, raw = access.lookup(cls, stored)
            if owner is not None and access.is_slot(raw):
                yield MemberInfo(name, stored, MemberKind.FIELD, owner, False, raw, "slot")
                continue
            annotated = self._annotation_owner(cls, stored)
            if annotated is not None:
                yield MemberInfo(name, stored, MemberKind.FIELD, annotated, False, raw if owner else None, "annotation")
            # An annotated class value is both a class constant and an instance default.
            if owner is not None and not access.has_get(raw) and not callable(raw):
                yield MemberInfo(name, stored, MemberKind.FIELD, owner, True, raw, "class")
            if annotated is None:
                yield from self._instance_attribute(cls, name, stored, MemberKind.FIELD, "assigned")

    def _properties(self, cls: type, name: str) -> Iterator[MemberInfo]:
        for stored in self._stored_names(cls, name):
            owner, raw = access.lookup(cls, stored)
            if isinstance(raw, property):
                yield MemberInfo(name, stored, MemberKind.PROPERTY, owner, False, raw, "property")
            elif isinstance(raw, functools.cached_property):
                yield MemberInfo(name, stored, MemberKind.PROPERTY, owner, False, raw, "cached_property")

    def _methods(self, cls: type, name: str) -> Iterator[MemberInfo]:
        for stored in self._stored_names(cls, name):
            owner, raw = access.lookup(cls, stored)
            if owner is None:
                continue
            if isinstance(raw, staticmethod):
                yield MemberInfo(name, stored, MemberKind.METHOD, owner, True, raw, "staticmethod")
            elif isinstance(raw, classmethod):
                yield MemberInfo(name, stored, MemberKind.METHOD, owner, True, raw, "classmethod")
            elif isinstance(raw, functools.singledispatchmethod):
                static = isinstance(raw.func, (staticmethod, classmethod))
                for typ, impl in raw.dispatcher.registry.items():
                    label = getattr(typ, "__qualname__", repr(typ))
                    yield MemberInfo(name, stored, MemberKind.METHOD, owner, static, impl, f"dispatch[{label}]", typ)
            elif isinstance(raw, FunctionType):
                yield MemberInfo(name, stored, MemberKind.METHOD, owner, False, raw, "function")
            elif isinstance(raw, functools.partialmethod) or (access.has_get(raw) and callable(raw)):
                yield MemberInfo(name, stored, MemberKind.METHOD, owner, False, raw, "descriptor")
            elif callable(raw) and not isinstance(raw, type):
                yield MemberInfo(name, stored, MemberKind.METHOD, owner, True, raw, "callable")

    def _constructors(self, cls: type, name: str) -> Iterator[MemberInfo]:
        if name in _CONSTRUCTOR_NAMES or name == cls.__name__:
            yield MemberInfo("__init__", "__init__", MemberKind.CONSTRUCTOR, cls, True, cls, "class")

    def _events(self, cls: type, name: str) -> Iterator[MemberInfo]:
        add_owner, add = access.lookup(cls, f"add_{name}")
        remove_owner, remove = access.lookup(cls, f"remove_{name}")
        if add_owner is not None and remove_owner is not None and callable(getattr(add, "__func__", add)):
            static = isinstance(add, (staticmethod, classmethod))
            yield MemberInfo(name, name, MemberKind.EVENT, add_owner, static, (add, remove), "accessors")
        for stored in self._stored_names(cls, name):
            owner, raw = access.lookup(cls, stored)
            if owner is not None and not access.has_get(raw) and not isinstance(raw, type):
                yield MemberInfo(name, stored, MemberKind.EVENT, owner, True, raw, "container")
            yield from self._instance_attribute(cls, name, stored, MemberKind.EVENT, "container")

    # --- signatures ------------------------------------------------

    def signature_score(self, member: MemberInfo, signature: Signature) -> Optional[int]:
        """How well `member` fits a declared signature; None when it cannot."""
        if member.kind in (MemberKind.FIELD, MemberKind.PROPERTY):
            if signature.returns is None:
                return 0
            annotation = self._value_annotation(member)
            scores = [s for s in (_fit(annotation, signature.returns), _fit(signature.returns, annotation)) if s is not None]
            return max(scores) if scores else None

        target, drop_first = self._callable_target(member)
        sig = _signature_of(target)
        if sig is None:
            # Builtins without introspectable signatures fit anything.
            return 0
        params = list(sig.parameters.values())
        if drop_first:
            if not params or params[0].kind not in _POSITIONAL:
                return None
            params = params[1:]
        pairs = _pair_params(params, signature.params)
        if pairs is None:
            return None
        total = 0
        for index, (param, declared) in enumerate(pairs):
            annotation = param.annotation
            if index == 0 and member.dispatch is not None:
                annotation = member.dispatch
            score = _fit(declared, annotation)
            if score is None:
                return None
            total += score
        if signature.returns is not None:
            score = _fit(sig.return_annotation, signature.returns)
            if score is None:
                return None
            total += score
        return total

    def _callable_target(self, member: MemberInfo) -> Tuple[Any, bool]:
        raw = member.obj
        if member.kind == MemberKind.CONSTRUCTOR:
            return raw, False
        if isinstance(raw, staticmethod):
            return raw.__func__, False
        if isinstance(raw, classmethod):
            return raw.__func__, True
        if member.detail == "callable":
            return raw, False
        return raw, True

    def _value_annotation(self, member: MemberInfo):
        if member.kind == MemberKind.PROPERTY:
            getter = getattr(member.obj, "fget", None) or getattr(member.obj, "func", None)
            sig = _signature_of(getter) if getter is not None else None
            return sig.return_annotation if sig is not None else _EMPTY
        return _annotations(member.owner).get(member.stored_name, _EMPTY)
