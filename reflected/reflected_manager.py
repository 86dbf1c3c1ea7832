"""
The binding manager.

Discovers binding tables, resolves and synthesizes every descriptor once,
installs the callables into their slots and keeps a categorized record of
what happened. A failed binding leaves its slot empty and is recorded; it
never stops the rest of the pass.
"""

import logging
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from reflected.reflected_datatypes import (
    BindingFailed, Descriptor, FailureKind, MemberKind, Outcome, Shape,
    SynthesisError, UnknownDescriptor,
)
from reflected.reflected_resolver import TypeResolver
from reflected.reflected_synth import CallableSynthesizer
from reflected.reflected_table import BindingTable

logger = logging.getLogger(__name__)


# ===================================================================
# Report
# ===================================================================

@dataclass
class BindingFailure:
    identity: str
    kind: FailureKind
    detail: str = ""


@dataclass
class BindingReport:
    """Summary of a binding pass, meant for start-up logging by the host."""
    attempted: int = 0
    succeeded: int = 0
    failures: List[BindingFailure] = field(default_factory=list)
    categories: Dict[str, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed(self) -> int:
        return len(self.failures)

    def by_kind(self, kind: Union[FailureKind, str]) -> List[BindingFailure]:
        kind = FailureKind(kind)
        return [f for f in self.failures if f.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "categories": dict(self.categories),
            "failures": [
                {"binding": f.identity, "kind": f.kind.value, "detail": f.detail}
                for f in self.failures
            ],
        }

    def format(self) -> str:
        from reflected.reflected_printer import Printer
        return Printer().pformat(self)

    def log(self, log: Optional[logging.Logger] = None):
        log = log or logger
        for f in self.failures:
            log.warning("binding failed: %s [%s] %s", f.identity, f.kind.value, f.detail)
        log.info("bound %d of %d reflected members", self.succeeded, self.attempted)

    def raise_for_failures(self):
        if self.failures:
            raise BindingFailed(self)


# ===================================================================
# Manager
# ===================================================================

class BindingManager:
    """Runs the binding pass over a fixed set of modules and tables."""

    def __init__(self, modules: Iterable[ModuleType] = (), *, ambiguity: str = "first",
                 resolver: Optional[TypeResolver] = None,
                 synthesizer: Optional[CallableSynthesizer] = None):
        self.modules: List[ModuleType] = list(modules)
        self.resolver = resolver or TypeResolver(self.modules, ambiguity=ambiguity)
        self.synthesizer = synthesizer or CallableSynthesizer()
        self._tables: List[BindingTable] = []
        self._order: List[Descriptor] = []
        self._categories: Dict[Shape, List[Descriptor]] = {shape: [] for shape in Shape}
        self._outcomes: Dict[Descriptor, Outcome] = {}
        self._scanned: List[ModuleType] = []

    # --- discovery -------------------------------------------------

    def register(self, table: BindingTable) -> List[Descriptor]:
        """Add one table. Registering the same table twice is a no-op."""
        if any(table is t for t in self._tables):
            return []
        if not isinstance(table, BindingTable):
            raise TypeError(f"expected a BindingTable, got {type(table).__name__}")
        self._tables.append(table)
        added = table.descriptors()
        for descriptor in added:
            self._order.append(descriptor)
            self._categories[descriptor.category].append(descriptor)
        logger.debug("registered table %r with %d bindings", table.name, len(added))
        return added

    def discover(self, modules: Optional[Iterable[ModuleType]] = None) -> List[Descriptor]:
        """Collect every module-level BindingTable of each module, once per module."""
        modules = self.modules if modules is None else list(modules)
        self._add_modules(modules)
        found: List[Descriptor] = []
        for module in modules:
            if any(module is m for m in self._scanned):
                continue
            self._scanned.append(module)
            for value in list(vars(module).values()):
                if isinstance(value, BindingTable):
                    found.extend(self.register(value))
        return found

    def _add_modules(self, modules: List[ModuleType]):
        new = [m for m in modules if not any(m is known for known in self.modules)]
        if new:
            self.modules.extend(new)
        self.resolver.add_modules(modules)

    # --- processing ------------------------------------------------

    def process(self, descriptor: Descriptor) -> bool:
        """Bind one descriptor. Later calls return the recorded outcome."""
        recorded = self._outcomes.get(descriptor)
        if recorded is not None:
            return recorded.success
        if descriptor not in self._categories[descriptor.category]:
            if descriptor.slot is None:
                raise UnknownDescriptor(f"{descriptor.identity} is not declared in a binding table")
            self.register(descriptor.slot.table)
        outcome = self._bind(descriptor)
        self._outcomes[descriptor] = outcome
        if outcome.success:
            descriptor.slot.table._install(descriptor.slot.name, outcome.callable)
            logger.debug("bound %s", descriptor.identity)
        else:
            logger.warning("binding failed: %s [%s] %s", descriptor.identity, outcome.failure.value, outcome.detail)
        return outcome.success

    def _bind(self, descriptor: Descriptor) -> Outcome:
        result = self.resolver.resolve(descriptor)
        if not result.resolved:
            return Outcome(descriptor, False, FailureKind.from_status(result.status), result.detail)

        replace_target = None
        if descriptor.match is not None:
            match_type, match_name = descriptor.match
            target = self.resolver.resolve(
                Descriptor(match_type, match_name, MemberKind.METHOD, Shape.MEMBER_INFO, False)
            )
            if not target.resolved:
                target = self.resolver.resolve(
                    Descriptor(match_type, match_name, MemberKind.METHOD, Shape.MEMBER_INFO, True)
                )
            if not target.resolved:
                return Outcome(descriptor, False, FailureKind.from_status(target.status),
                               f"replacement target: {target.detail}")
            raw = target.member.obj
            replace_target = getattr(raw, "__func__", raw)

        try:
            fn = self.synthesizer.synthesize(
                result.member, descriptor.shape, bypass=descriptor.bypass, replace_target=replace_target,
            )
        except SynthesisError as e:
            return Outcome(descriptor, False, FailureKind.SYNTHESIS_ERROR, str(e))
        return Outcome(descriptor, True, callable=fn)

    def process_table(self, table: BindingTable) -> bool:
        self.register(table)
        results = [self.process(d) for d in table.descriptors()]
        return all(results)

    def process_all(self, modules: Optional[Iterable[ModuleType]] = None) -> BindingReport:
        """The binding pass: discover, then bind every known descriptor once."""
        self.discover(modules)
        for descriptor in list(self._order):
            self.process(descriptor)
        report = self.report
        logger.info("bound %d of %d reflected members", report.succeeded, report.attempted)
        return report

    # --- queries ---------------------------------------------------

    def outcome(self, descriptor: Descriptor) -> Optional[Outcome]:
        return self._outcomes.get(descriptor)

    @property
    def tables(self) -> Tuple[BindingTable, ...]:
        return tuple(self._tables)

    @property
    def descriptors(self) -> Tuple[Descriptor, ...]:
        return tuple(self._order)

    @property
    def getters(self) -> Tuple[Descriptor, ...]:
        return tuple(self._categories[Shape.GETTER])

    @property
    def setters(self) -> Tuple[Descriptor, ...]:
        return tuple(self._categories[Shape.SETTER])

    @property
    def invokers(self) -> Tuple[Descriptor, ...]:
        return tuple(self._categories[Shape.INVOKER])

    @property
    def member_info(self) -> Tuple[Descriptor, ...]:
        return tuple(self._categories[Shape.MEMBER_INFO])

    @property
    def events(self) -> Tuple[Descriptor, ...]:
        return tuple(self._categories[Shape.EVENT])

    @property
    def report(self) -> BindingReport:
        report = BindingReport()
        for shape, descriptors in self._categories.items():
            report.categories[shape.value] = len(descriptors)
        for descriptor in self._order:
            outcome = self._outcomes.get(descriptor)
            if outcome is None:
                continue
            report.attempted += 1
            if outcome.success:
                report.succeeded += 1
            else:
                report.failures.append(BindingFailure(descriptor.identity, outcome.failure, outcome.detail))
        return report
