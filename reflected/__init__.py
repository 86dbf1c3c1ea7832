"""
Reflected member binding.

Declare the host internals you need in a `BindingTable`, run one binding
pass with a `BindingManager` at start-up, then call the slots.
"""

from reflected.reflected_datatypes import (
    BindingFailed, Descriptor, DuplicateSlot, FailureKind, MalformedDescriptor,
    MemberInfo, MemberKind, Outcome, ResolutionResult, ResolutionStatus, Shape,
    Signature, SynthesisError, UnknownDescriptor,
)
from reflected.reflected_events import EventAccess, EventReplacer
from reflected.reflected_manager import BindingFailure, BindingManager, BindingReport
from reflected.reflected_resolver import TypeResolver
from reflected.reflected_synth import CallableSynthesizer, ReflectedCallable
from reflected.reflected_table import (
    BindingTable, load_table, load_table_file,
    reflected_constructor, reflected_event, reflected_getter, reflected_member_info,
    reflected_method, reflected_setter, reflected_static_method, reflected_type_info,
)

__all__ = [
    "BindingFailed", "BindingFailure", "BindingManager", "BindingReport", "BindingTable",
    "CallableSynthesizer", "Descriptor", "DuplicateSlot", "EventAccess", "EventReplacer",
    "FailureKind", "MalformedDescriptor", "MemberInfo", "MemberKind", "Outcome",
    "ReflectedCallable", "ResolutionResult", "ResolutionStatus", "Shape", "Signature",
    "SynthesisError", "TypeResolver", "UnknownDescriptor",
    "load_table", "load_table_file",
    "reflected_constructor", "reflected_event", "reflected_getter", "reflected_member_info",
    "reflected_method", "reflected_setter", "reflected_static_method", "reflected_type_info",
]
