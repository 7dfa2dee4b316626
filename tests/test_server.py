from __future__ import annotations

import asyncio

from lanwatch.config import ServerConfig, Settings, StorageConfig
from lanwatch.protocol import FOOTER, KEEPALIVE_LINE, ProtocolClient, ResponseStatus
from lanwatch.server import LanwatchServer, build_context

MAC = "AA:BB:CC:DD:EE:01"


def _server(tmp_path, **server_options) -> LanwatchServer:
    settings = Settings(
        storage=StorageConfig(path=str(tmp_path / "data")),
        server=ServerConfig(host="127.0.0.1", port=0, **server_options),
    )
    return LanwatchServer(build_context(settings))


async def _read_until_footer(reader: asyncio.StreamReader) -> list[str]:
    lines: list[str] = []
    while True:
        raw = await asyncio.wait_for(reader.readline(), 2)
        line = raw.decode().rstrip("\n")
        lines.append(line)
        if line == FOOTER or not raw:
            return lines


def test_client_session_over_tcp(tmp_path):
    server = _server(tmp_path)

    async def scenario():
        await server.start()
        try:
            async with ProtocolClient("127.0.0.1", server.ports[0], timeout=5) as client:
                assert client.welcome.startswith("WELCOME lanwatch/")
                statuses = [
                    (await client.send(f"ADD {MAC.lower()} laptop")).status,
                    (await client.send("FOO")).status,
                    (await client.send("STATUS")).status,
                ]
                allowlist = await client.send("ALLOWLIST")
                bye = await client.send("QUIT")
        finally:
            await server.stop()
        return statuses, allowlist, bye

    statuses, allowlist, bye = asyncio.run(scenario())

    assert statuses == [
        ResponseStatus.SUCCESS,
        ResponseStatus.INVALID_COMMAND,
        ResponseStatus.SUCCESS,
    ]
    assert [device.hostname for device in allowlist.devices] == ["laptop"]
    assert bye.status is ResponseStatus.SUCCESS
    assert MAC in server.context.allowlist.path.read_text()


def test_idle_connection_gets_keepalive_then_closed(tmp_path):
    server = _server(tmp_path, read_timeout=0.05, timeout_retries=3)

    async def scenario():
        await server.start()
        try:
            reader, writer = await asyncio.open_connection("127.0.0.1", server.ports[0])
            welcome = await asyncio.wait_for(reader.readline(), 2)
            keepalive = await asyncio.wait_for(reader.readline(), 2)
            closed = await asyncio.wait_for(reader.readline(), 2)
            writer.close()
        finally:
            await server.stop()
        return welcome, keepalive, closed

    welcome, keepalive, closed = asyncio.run(scenario())
    assert welcome.startswith(b"WELCOME")
    assert keepalive.decode().strip() == KEEPALIVE_LINE
    assert closed == b""


def test_concurrent_clients_adding_same_mac(tmp_path):
    server = _server(tmp_path)

    async def add_once(port: int) -> ResponseStatus:
        async with ProtocolClient("127.0.0.1", port, timeout=5) as client:
            return (await client.send(f"ADD {MAC}")).status

    async def scenario():
        await server.start()
        try:
            port = server.ports[0]
            return await asyncio.gather(*(add_once(port) for _ in range(5)))
        finally:
            await server.stop()

    statuses = asyncio.run(scenario())
    assert statuses.count(ResponseStatus.SUCCESS) == 1
    assert statuses.count(ResponseStatus.DEVICE_ALREADY_EXISTS) == 4


def test_extra_clients_are_rejected_when_full(tmp_path):
    server = _server(tmp_path, max_connections=1)

    async def scenario():
        await server.start()
        try:
            port = server.ports[0]
            async with ProtocolClient("127.0.0.1", port, timeout=5):
                reader, writer = await asyncio.open_connection("127.0.0.1", port)
                lines = await _read_until_footer(reader)
                writer.close()
        finally:
            await server.stop()
        return lines

    lines = asyncio.run(scenario())
    assert lines[0] == "STATUS:ERROR"
    assert lines[-1] == FOOTER


def test_abrupt_disconnect_does_not_affect_other_clients(tmp_path):
    server = _server(tmp_path)

    async def scenario():
        await server.start()
        try:
            port = server.ports[0]
            _, rude_writer = await asyncio.open_connection("127.0.0.1", port)
            rude_writer.write(b"LIS")
            rude_writer.transport.abort()

            async with ProtocolClient("127.0.0.1", port, timeout=5) as client:
                return (await client.send("LIST")).status
        finally:
            await server.stop()

    assert asyncio.run(scenario()) is ResponseStatus.SUCCESS
