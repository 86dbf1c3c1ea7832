import threading

import pytest

import hostapp.server
import hostapp.session
from hostapp.server import Server
from hostapp.session import Session

from reflected import CallableSynthesizer, EventReplacer, TypeResolver, reflected_event
from reflected.reflected_events import handler_function

RESOLVER = TypeResolver([hostapp.session, hostapp.server])


class Signal:
    """Handler container driven with += and -=."""

    def __init__(self):
        self._handlers = []

    def __iadd__(self, handler):
        self._handlers.append(handler)
        return self

    def __isub__(self, handler):
        self._handlers.remove(handler)
        return self

    def __iter__(self):
        return iter(list(self._handlers))

    def fire(self, *args):
        for handler in self:
            handler(*args)


class Clock:
    tick = Signal()

    def __init__(self):
        self.alarms = set()


class Beacon:
    fired = []

    @classmethod
    def fire(cls, value):
        for handler in list(cls.fired):
            handler(value)


class Picky:
    """Accessor event whose add rejects handlers it does not like."""

    def __init__(self):
        self._handlers = []

    def add_changed(self, handler):
        if getattr(handler, "rejected", False):
            raise ValueError("handler rejected")
        self._handlers.append(handler)

    def remove_changed(self, handler):
        self._handlers.remove(handler)


def event_factory(type_ref, name, static=False, replace_target=None):
    result = RESOLVER.resolve(reflected_event(type_ref, name, static=static))
    assert result.resolved, result.detail
    return CallableSynthesizer().synthesize(result.member, "event", replace_target=replace_target)


@pytest.fixture
def server_state():
    started = list(Server.started)
    announcements = list(Server.announcements)
    yield
    Server.started[:] = started
    Server.announcements[:] = announcements


def start_server():
    server = Server(Server.Config())
    return server._start()


def test_subscribe_replaces_rather_than_stacks(server_state):
    replacer = event_factory("Server", "started", static=True)()
    calls = []
    first = lambda server: calls.append("first")
    second = lambda server: calls.append("second")

    assert replacer.subscribe(first) is None
    assert replacer.subscribe(second) is first
    assert Server.started == [Server._announce, second]

    start_server()
    assert calls == ["second"]
    assert Server.announcements[-1] == "started on 27016"


def test_unsubscribe_detaches_our_handler(server_state):
    replacer = event_factory("Server", "started", static=True)()
    handler = lambda server: None
    replacer.subscribe(handler)
    assert replacer.attached
    assert replacer.unsubscribe() is handler
    assert not replacer.attached
    assert Server.started == [Server._announce]


def test_replace_swaps_out_the_host_handler_and_remove_restores_it(server_state):
    factory = event_factory("Server", "started", static=True, replace_target=Server._announce)
    replacer = factory()
    seen = []
    before = len(Server.announcements)

    replacer.replace(lambda server: seen.append(server._config.port))
    start_server()
    assert seen == [27016]
    assert len(Server.announcements) == before

    replacer.remove()
    assert Server.started == [Server._announce]
    start_server()
    assert len(Server.announcements) == before + 1


def test_replace_without_match_keeps_host_handlers(server_state):
    replacer = event_factory("Server", "started", static=True)()
    replacer.replace(lambda server: None)
    assert Server._announce in Server.started
    replacer.remove()
    assert Server.started == [Server._announce]


def test_accessor_event_on_an_instance():
    session = Session("Events")
    factory = event_factory("Session", "player_joined")
    replacer = factory(session)
    joined = []

    replacer.subscribe(lambda s, name: joined.append(("a", name)))
    replacer.subscribe(lambda s, name: joined.append(("b", name)))
    session._add_player("ann")
    assert joined == [("b", "ann")]

    replacer.unsubscribe()
    session._add_player("bob")
    assert joined == [("b", "ann")]
    assert session._joined_handlers == []


def test_instance_list_container():
    session = Session("Saves")
    replacer = event_factory("Session", "on_saved")(session)
    saved = []
    replacer.subscribe(saved.append)
    assert session.save() == 1
    assert saved == [session]


def test_instance_set_container():
    clock = Clock()
    replacer = event_factory(Clock, "alarms")(clock)
    handler = lambda: None
    replacer.subscribe(handler)
    assert clock.alarms == {handler}
    replacer.unsubscribe()
    assert clock.alarms == set()


def test_static_container_with_operator_protocol():
    replacer = event_factory(Clock, "tick", static=True)()
    ticks = []
    try:
        replacer.subscribe(lambda n: ticks.append(("old", n)))
        replacer.subscribe(lambda n: ticks.append(("new", n)))
        Clock.tick.fire(1)
        assert ticks == [("new", 1)]
        assert len(replacer.event.handlers()) == 1
    finally:
        replacer.remove()
    assert list(Clock.tick) == []


def test_concurrent_subscribers_leave_exactly_one_handler(server_state):
    replacer = event_factory("Server", "started", static=True)()
    handlers = [lambda server, n=n: n for n in range(16)]
    barrier = threading.Barrier(len(handlers))

    def work(handler):
        barrier.wait()
        for _ in range(50):
            replacer.subscribe(handler)

    threads = [threading.Thread(target=work, args=(h,)) for h in handlers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    ours = [h for h in Server.started if h is not Server._announce]
    assert ours == [replacer.handler]


def test_static_container_rebound_by_the_host_is_followed(monkeypatch):
    monkeypatch.setattr(Beacon, "fired", [])
    factory = event_factory(Beacon, "fired", static=True)
    Beacon.fired = []
    calls = []
    replacer = factory()
    replacer.subscribe(calls.append)
    Beacon.fire(1)
    assert calls == [1]

    Beacon.fired = []
    replacer.subscribe(calls.append)
    Beacon.fire(2)
    assert calls == [1, 2]
    replacer.unsubscribe()
    assert Beacon.fired == []


def test_rejected_handler_keeps_the_previous_one_attached():
    picky = Picky()
    replacer = event_factory(Picky, "changed")(picky)
    good = lambda: None
    bad = lambda: None
    bad.rejected = True

    replacer.subscribe(good)
    with pytest.raises(ValueError):
        replacer.subscribe(bad)
    assert replacer.attached
    assert replacer.handler is good
    assert picky._handlers == [good]

    replacer.unsubscribe()
    assert picky._handlers == []


def test_rejected_first_handler_leaves_nothing_attached():
    picky = Picky()
    replacer = event_factory(Picky, "changed")(picky)
    bad = lambda: None
    bad.rejected = True
    with pytest.raises(ValueError):
        replacer.subscribe(bad)
    assert not replacer.attached
    assert picky._handlers == []


def test_handler_function_unwraps_bound_methods():
    session = Session("Bound")
    assert handler_function(session.save) is Session.save
    assert handler_function(Server._announce) is Server._announce


def test_replacer_repr():
    replacer = event_factory("Server", "started", static=True)()
    assert isinstance(replacer, EventReplacer)
    assert repr(replacer) == "<EventReplacer hostapp.server.Server.started attached=False>"
