"""Every binding the consumer tables declare must bind against the current host."""

import pytest

import consumer_bindings
import hostapp.server
import hostapp.session
from hostapp.server import Server
from hostapp.session import Session

from reflected import BindingManager, EventReplacer

MANAGER = BindingManager([hostapp.session, hostapp.server])
MANAGER.discover([consumer_bindings])

CATEGORIES = ("getters", "setters", "invokers", "member_info", "events")


def cases(*categories):
    return [
        pytest.param(descriptor, id=f"{name}:{descriptor.slot}")
        for name in categories
        for descriptor in getattr(MANAGER, name)
    ]


def slot_value(descriptor):
    return descriptor.slot.table[descriptor.slot.name]


# Host actions that fire each event, given the instance (None for static events).
FIRE = {
    "player_joined": lambda session: session._add_player("probe"),
    "saved": lambda session: session.save(),
    "started": lambda _: Server(Server.Config())._start(),
}

INSTANCES = {
    Session: lambda: Session("Harness"),
}


@pytest.mark.parametrize("descriptor", cases(*CATEGORIES))
def test_binding_processes(descriptor):
    ok = MANAGER.process(descriptor)
    assert ok, MANAGER.outcome(descriptor).detail
    assert slot_value(descriptor) is not None


@pytest.mark.parametrize("descriptor", cases("events"))
def test_event_replacer_attaches_a_reachable_handler(descriptor):
    assert MANAGER.process(descriptor)
    factory = slot_value(descriptor)

    instance = None
    if descriptor.static:
        replacer = factory()
    else:
        cls, _ = MANAGER.resolver.find_type(descriptor.target_type)
        if cls not in INSTANCES:
            pytest.skip(f"no instance of {cls.__qualname__} to attach to")
        instance = INSTANCES[cls]()
        replacer = factory(instance)
    assert isinstance(replacer, EventReplacer)

    calls = []
    try:
        replacer.replace(lambda *args: calls.append(args))
        assert replacer.attached
        FIRE[descriptor.slot.name](instance)
    finally:
        replacer.remove()
    assert len(calls) == 1


def test_static_slots_return_live_values():
    for descriptor in MANAGER.descriptors:
        MANAGER.process(descriptor)
    session_bindings = consumer_bindings.session_bindings
    server_bindings = consumer_bindings.server_bindings
    assert session_bindings.instance_count() == 42
    assert server_bindings.default_port() == 27016
    assert session_bindings.session_type().obj is Session


def test_the_whole_pass_binds():
    report = MANAGER.process_all()
    assert report.ok, report.format()
    assert report.attempted == len(MANAGER.descriptors)
