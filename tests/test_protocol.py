from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from lanwatch.errors import PersistenceError, ProtocolError
from lanwatch.models import DeviceRecord, Observation
from lanwatch.protocol import (
    COMMANDS,
    ProtocolEngine,
    Response,
    ResponseStatus,
    decode_response,
    encode_response,
    escape_field,
    tokenize,
    unescape_field,
)
from lanwatch.protocol.response import format_device, parse_device, split_escaped

MAC = "AA:BB:CC:DD:EE:01"


@pytest.fixture
def engine(context) -> ProtocolEngine:
    return ProtocolEngine(context)


def test_add_allowlist_del_scenario(engine):
    added = engine.execute(f"ADD {MAC.lower()} laptop 192.168.1.20")
    assert added.status is ResponseStatus.SUCCESS

    listed = engine.execute("ALLOWLIST")
    assert listed.status is ResponseStatus.SUCCESS
    assert [device.mac for device in listed.devices] == [MAC]
    assert listed.devices[0].known is True
    assert listed.devices[0].last_seen is None

    again = engine.execute(f"ADD {MAC}")
    assert again.status is ResponseStatus.DEVICE_ALREADY_EXISTS

    assert engine.execute(f"DEL {MAC}").status is ResponseStatus.SUCCESS
    assert engine.execute(f"DEL {MAC}").status is ResponseStatus.DEVICE_NOT_FOUND
    assert engine.execute("ALLOWLIST").devices == []


def test_add_invalid_mac_leaves_store_unchanged(engine, store):
    response = engine.execute("ADD not-a-mac")
    assert response.status is ResponseStatus.ERROR
    assert "Invalid MAC" in response.message
    assert store.count == 0


def test_add_with_trailing_tokens_fails_ip_validation(engine, store):
    response = engine.execute(f"ADD {MAC} laptop 192.168.1.20 extra")
    assert response.status is ResponseStatus.ERROR
    assert "Invalid IP" in response.message
    assert store.count == 0


def test_unknown_command_keeps_engine_usable(engine):
    response = engine.execute("FOO")
    assert response.status is ResponseStatus.INVALID_COMMAND
    for name in COMMANDS:
        assert name in response.message

    assert engine.execute("status").status is ResponseStatus.SUCCESS


@pytest.mark.parametrize("line", ["DEL", f"DEL {MAC} extra", "LIST now", "ADD"])
def test_arity_violations_report_usage(engine, line):
    response = engine.execute(line)
    assert response.status is ResponseStatus.ERROR
    assert "Usage:" in response.message


@pytest.mark.parametrize("line", ["", "   ", "\t"])
def test_blank_lines_are_ignored(engine, line):
    assert engine.execute(line) is None


def test_tokenize_keeps_remainder_in_last_token():
    assert tokenize("ADD  m h 1.2.3.4 extra") == ["ADD", "m", "h", "1.2.3.4 extra"]


def test_list_reflects_registry_and_reclassifies_after_add(engine, registry):
    registry.upsert(Observation(mac=MAC, ip="192.168.1.20", hostname="laptop"))

    before = engine.execute("LIST")
    assert [device.known for device in before.devices] == [False]

    engine.execute(f"ADD {MAC}")
    after = engine.execute("LIST")
    assert [device.known for device in after.devices] == [True]

    allowlist = engine.execute("ALLOWLIST")
    assert allowlist.devices[0].last_seen is not None


def test_quit_closes_connection(engine):
    response, close = engine.handle("QUIT")
    assert response.status is ResponseStatus.SUCCESS
    assert close is True
    assert engine.handle("LIST")[1] is False


def test_status_reports_counts(engine, registry):
    registry.upsert(Observation(mac=MAC, ip="192.168.1.20"))
    response = engine.execute("STATUS")
    assert response.status is ResponseStatus.SUCCESS
    assert "devices=1" in response.data
    assert "unknown=1" in response.data
    assert "allowlist=0" in response.data


def test_persistence_failure_returns_error(engine, store, monkeypatch):
    def _fail(_entries):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "_write", _fail)
    response = engine.execute(f"ADD {MAC}")
    assert response.status is ResponseStatus.ERROR
    assert "disk full" in response.message
    assert not store.contains(MAC)


def test_failed_add_keeps_registry_in_step_with_allowlist(engine, store, registry, monkeypatch):
    registry.upsert(Observation(mac=MAC, ip="192.168.1.20", hostname="laptop"))

    def _reclassify_then_fail(_entries):
        registry.reclassify()
        raise PersistenceError("disk full")

    monkeypatch.setattr(store, "_write", _reclassify_then_fail)
    response = engine.execute(f"ADD {MAC}")

    assert response.status is ResponseStatus.ERROR
    assert registry.get(MAC).known is False
    assert registry.get(MAC).known == store.contains(MAC)


def test_handler_crash_becomes_error(engine, registry, monkeypatch):
    def _boom():
        raise RuntimeError("unexpected")

    monkeypatch.setattr(registry, "all", _boom)
    response = engine.execute("LIST")
    assert response.status is ResponseStatus.ERROR
    assert engine.execute("STATUS").status is ResponseStatus.SUCCESS


def test_concurrent_adds_yield_one_success(engine):
    with ThreadPoolExecutor(max_workers=8) as pool:
        responses = list(pool.map(lambda _: engine.execute(f"ADD {MAC}"), range(10)))

    statuses = [response.status for response in responses]
    assert statuses.count(ResponseStatus.SUCCESS) == 1
    assert statuses.count(ResponseStatus.DEVICE_ALREADY_EXISTS) == 9


def test_escape_roundtrip_of_special_characters():
    text = "a|b:c\\d\nnext\rline"
    escaped = escape_field(text)
    assert "\n" not in escaped
    assert split_escaped(escaped) == [escaped]
    assert unescape_field(escaped) == text


def test_device_line_format():
    record = DeviceRecord(
        mac=MAC,
        ip="192.168.1.20",
        hostname="my|host:1",
        known=True,
        last_seen=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
    )
    line = format_device(record)

    assert line == (
        "MAC:AA:BB:CC:DD:EE:01|IP:192.168.1.20|HOSTNAME:my\\|host\\:1"
        "|KNOWN:true|LAST_SEEN:2026-01-01T12:00:00+00:00"
    )
    assert parse_device(line) == record


def test_device_line_without_ip_or_sighting():
    record = DeviceRecord(mac=MAC)
    line = format_device(record)
    assert "|IP:|" in line
    assert line.endswith("LAST_SEEN:never")
    assert parse_device(line) == record


def test_encode_omits_empty_sections():
    assert encode_response(Response.error("bad")) == "STATUS:ERROR\nMESSAGE:bad\nEND\n"
    assert encode_response(Response.success("none", devices=[])).splitlines() == [
        "STATUS:SUCCESS",
        "MESSAGE:none",
        "DEVICES:0",
        "END",
    ]


def test_decode_reads_back_a_device_list():
    response = Response.success(
        "Found 1 device(s)",
        devices=[DeviceRecord(mac=MAC, ip="10.0.0.2", hostname="Switch")],
        data="known=0;unknown=1",
    )
    decoded = decode_response(encode_response(response).splitlines())
    assert decoded == response


def test_decode_rejects_truncated_response():
    with pytest.raises(ProtocolError):
        decode_response(["STATUS:SUCCESS", "DEVICES:2", format_device(DeviceRecord(mac=MAC))])
    with pytest.raises(ProtocolError):
        decode_response(["STATUS:SUCCESS", "MESSAGE:no footer"])
