import hostapp.server
import hostapp.session
from hostapp.session import Session

from reflected import (
    BindingManager, BindingTable, FailureKind, MemberKind, Signature, TypeResolver,
    reflected_event, reflected_getter, reflected_method, reflected_static_method,
)
from reflected.reflected_printer import Printer

HOST = [hostapp.session, hostapp.server]


def test_pformat_descriptor():
    table = BindingTable("session", {
        "make_id": reflected_static_method("Session", "_make_id", params=[int], returns=str),
        "started": reflected_event("Server", "started", static=True, replaces=("Server", "_announce")),
    })
    p = Printer()
    assert p.pformat(table.descriptor("make_id")) == (
        "session.make_id -> Session._make_id [static method invoker] (builtins.int) -> builtins.str"
    )
    assert p.pformat(table.descriptor("started")) == (
        "session.started -> Server.started [static event event] replaces Server._announce"
    )


def test_pformat_types_enums_and_signatures():
    p = Printer()
    assert p.pformat(Session) == "hostapp.session.Session"
    assert p.pformat(MemberKind.METHOD) == "method"
    assert p.pformat(Signature((str,), int)) == "(builtins.str) -> builtins.int"
    assert p.pformat(3) == "3"


def test_pformat_resolution():
    resolver = TypeResolver(HOST, ambiguity="error")
    p = Printer()
    ok = resolver.resolve(reflected_getter(Session, "world_name", property=True))
    assert p.pformat(ok) == "Resolved: property hostapp.session.Session.world_name (property)"

    failed = resolver.resolve(reflected_method("Codec", "encode"))
    lines = p.pformat(failed).splitlines()
    assert lines[0].startswith("AmbiguousOverload: ")
    assert lines[1] == "  candidate method hostapp.session.Codec.encode (dispatch[object])"
    assert len(lines) == 4


def test_pformat_outcome_and_report():
    table = BindingTable("t", {
        "make_id": reflected_static_method("Session", "_make_id"),
        "gone": reflected_getter("Session", "_gone"),
    })
    manager = BindingManager(HOST)
    manager.register(table)
    report = manager.process_all()
    p = Printer()

    assert p.pformat(manager.outcome(table.descriptor("make_id"))) == "ok t.make_id -> Session._make_id (direct)"
    assert p.pformat(manager.outcome(table.descriptor("gone"))).startswith("NotFound t.gone -> Session._gone: ")

    text = p.pformat(report)
    assert text.splitlines()[0] == "bound 1 of 2 reflected members"
    assert text.splitlines()[1] == "  categories: getter=1, setter=0, invoker=1, member_info=0, event=0"
    assert text.splitlines()[2].startswith("  NotFound t.gone -> Session._gone: no field")
    assert report.format() == text
    assert report.by_kind(FailureKind.NOT_FOUND)


def test_pformat_table_shows_binding_state():
    table = BindingTable("t", {"make_id": reflected_static_method("Session", "_make_id")})
    BindingManager(HOST).process_table(table)
    assert Printer().pformat(table).splitlines() == [
        "table t",
        "  make_id: t.make_id -> Session._make_id [static method invoker] bound",
    ]
