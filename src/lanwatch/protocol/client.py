from __future__ import annotations

import asyncio
import logging
import ssl
from collections.abc import Sequence
from types import TracebackType

from lanwatch.errors import ClientConnectionError

from .connection import ENCODING, KEEPALIVE_LINE
from .response import FOOTER, Response, decode_response

logger = logging.getLogger(__name__)


def client_ssl_context(cafile: str | None = None, insecure: bool = False) -> ssl.SSLContext:
    context = ssl.create_default_context(cafile=cafile)
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class ProtocolClient:
    """Minimal async client for the lanwatch command protocol."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self._ssl = ssl_context
        self._timeout = timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self.welcome = ""

    async def connect(self) -> str:
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port, ssl=self._ssl),
                self._timeout,
            )
        except (asyncio.TimeoutError, TimeoutError, OSError) as exc:
            raise ClientConnectionError(
                f"Could not connect to {self.host}:{self.port}: {exc}"
            ) from exc
        self.welcome = await self._read_line()
        logger.debug("Connected to %s:%d (%s)", self.host, self.port, self.welcome)
        return self.welcome

    async def send(self, command: str) -> Response:
        if self._writer is None:
            raise ClientConnectionError("Not connected")
        try:
            self._writer.write(f"{command}\n".encode(ENCODING))
            await self._writer.drain()
        except OSError as exc:
            raise ClientConnectionError(f"Send failed: {exc}") from exc

        lines: list[str] = []
        while True:
            line = await self._read_line()
            if not lines and line == KEEPALIVE_LINE:
                continue
            lines.append(line)
            if line == FOOTER:
                return decode_response(lines)

    async def close(self) -> None:
        if self._writer is None:
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, ssl.SSLError, OSError):
            pass
        self._reader = self._writer = None

    async def _read_line(self) -> str:
        assert self._reader is not None
        try:
            raw = await asyncio.wait_for(self._reader.readline(), self._timeout)
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise ClientConnectionError("Timed out waiting for the server") from exc
        except (ValueError, OSError) as exc:
            raise ClientConnectionError(f"Receive failed: {exc}") from exc
        if not raw:
            raise ClientConnectionError("Connection closed by server")
        return raw.decode(ENCODING, errors="replace").rstrip("\r\n")

    async def __aenter__(self) -> ProtocolClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


async def send_commands(
    host: str,
    port: int,
    commands: Sequence[str],
    *,
    ssl_context: ssl.SSLContext | None = None,
    timeout: float = 10.0,
) -> list[Response]:
    responses: list[Response] = []
    async with ProtocolClient(host, port, ssl_context=ssl_context, timeout=timeout) as client:
        for command in commands:
            responses.append(await client.send(command))
    return responses
