"""
A pretty-printer for binding-system objects.
"""
import enum

from reflected.reflected_datatypes import (
    Descriptor, MemberInfo, Outcome, ResolutionResult, Signature, type_ref_name,
)
from reflected.reflected_manager import BindingReport
from reflected.reflected_table import BindingTable


class Printer:
    """Formats descriptors, resolutions and reports as readable text."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width
        self._handlers = self._create_handlers()

    def pformat(self, obj, level=0):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj, level)

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, type):
            return self._pformat_type
        if isinstance(obj, enum.Enum):
            return self._pformat_enum
        # Default to Python's repr for unknown types
        return lambda o, l: repr(o)

    def _create_handlers(self):
        return {
            Descriptor: self._pformat_descriptor,
            Signature: self._pformat_signature,
            MemberInfo: self._pformat_member_info,
            ResolutionResult: self._pformat_resolution,
            Outcome: self._pformat_outcome,
            BindingReport: self._pformat_report,
            BindingTable: self._pformat_table,
        }

    def _indent(self, level):
        return self._indent_char * level

    def _pformat_type(self, obj, level):
        return type_ref_name(obj)

    def _pformat_enum(self, obj, level):
        return str(obj.value)

    def _pformat_signature(self, obj, level):
        return str(obj)

    def _pformat_descriptor(self, obj, level):
        static = "static " if obj.static else ""
        text = f"{obj.identity} [{static}{obj.kind.value} {obj.shape.value}]"
        if obj.signature is not None:
            text += f" {self.pformat(obj.signature)}"
        if obj.match is not None:
            text += f" replaces {type_ref_name(obj.match[0])}.{obj.match[1]}"
        return text

    def _pformat_member_info(self, obj, level):
        static = "static " if obj.static else ""
        return f"{static}{obj.kind.value} {obj.qualname} ({obj.detail})"

    def _pformat_resolution(self, obj, level):
        if obj.resolved:
            return f"{obj.status.value}: {self.pformat(obj.member)}"
        lines = [f"{obj.status.value}: {obj.detail}"]
        for candidate in obj.candidates:
            lines.append(f"{self._indent(level + 1)}candidate {self.pformat(candidate)}")
        return "\n".join(lines)

    def _pformat_outcome(self, obj, level):
        if obj.success:
            strategy = getattr(obj.callable, "strategy", None)
            suffix = f" ({strategy})" if strategy else ""
            return f"ok {obj.descriptor.identity}{suffix}"
        return f"{obj.failure.value} {obj.descriptor.identity}: {obj.detail}"

    def _pformat_report(self, obj, level):
        pad = self._indent(level + 1)
        lines = [f"{self._indent(level)}bound {obj.succeeded} of {obj.attempted} reflected members"]
        if obj.categories:
            counts = ", ".join(f"{name}={count}" for name, count in obj.categories.items())
            lines.append(f"{pad}categories: {counts}")
        for failure in obj.failures:
            detail = f": {failure.detail}" if failure.detail else ""
            lines.append(f"{pad}{failure.kind.value} {failure.identity}{detail}")
        return "\n".join(lines)

    def _pformat_table(self, obj, level):
        lines = [f"{self._indent(level)}table {obj.name}"]
        for slot in obj:
            state = "bound" if obj.is_bound(slot) else "unbound"
            lines.append(f"{self._indent(level + 1)}{slot}: {self.pformat(obj.descriptor(slot))} {state}")
        return "\n".join(lines)
