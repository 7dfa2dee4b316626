"""Per-client stream loop for the command protocol."""

import asyncio
import logging
import ssl
import time
from typing import TYPE_CHECKING

from lanwatch import __version__
from lanwatch.config import ServerConfig

from .context import ServerContext
from .engine import ProtocolEngine

if TYPE_CHECKING:
    from asyncio import StreamReader, StreamWriter

logger = logging.getLogger(__name__)

ENCODING = "utf-8"
KEEPALIVE_LINE = "PING"


def welcome_line() -> str:
    return f"WELCOME lanwatch/{__version__}"


class ConnectionHandler:
    """Reads command lines from one client and writes framed responses.

    The idle timer restarts on every received line. After the first timeout
    each further timeout sends a keepalive line; once ``timeout_retries``
    timeouts pile up the connection is closed.
    """

    def __init__(
        self,
        context: ServerContext,
        reader: "StreamReader",
        writer: "StreamWriter",
        *,
        read_timeout: float = 30.0,
        timeout_retries: int = 3,
        keepalive: bool = True,
    ) -> None:
        self._context = context
        self._engine = ProtocolEngine(context)
        self._reader = reader
        self._writer = writer
        self._read_timeout = read_timeout
        self._timeout_retries = timeout_retries
        self._keepalive = keepalive
        self._peer = writer.get_extra_info("peername")
        self.commands = 0

    @classmethod
    def from_config(
        cls,
        context: ServerContext,
        reader: "StreamReader",
        writer: "StreamWriter",
        config: ServerConfig,
    ) -> "ConnectionHandler":
        return cls(
            context,
            reader,
            writer,
            read_timeout=config.read_timeout,
            timeout_retries=config.timeout_retries,
            keepalive=config.keepalive,
        )

    async def run(self) -> None:
        stats = self._context.stats
        stats.connection_opened()
        started = time.monotonic()
        logger.info("Client connected: %s", self._peer)
        try:
            await self._send_line(welcome_line())
            await self._serve()
        except (ConnectionError, ssl.SSLError, OSError) as exc:
            logger.info("Connection to %s failed: %s", self._peer, exc)
        finally:
            stats.connection_closed()
            await self._close()
            logger.info(
                "Client %s disconnected after %.1fs, %d commands",
                self._peer,
                time.monotonic() - started,
                self.commands,
            )

    async def _serve(self) -> None:
        timeouts = 0
        while True:
            try:
                raw = await asyncio.wait_for(self._reader.readline(), self._read_timeout)
            except (asyncio.TimeoutError, TimeoutError):
                timeouts += 1
                if timeouts >= self._timeout_retries:
                    logger.info(
                        "Closing %s after %d read timeouts", self._peer, timeouts
                    )
                    return
                if self._keepalive and timeouts > 1:
                    await self._send_line(KEEPALIVE_LINE)
                continue
            except ValueError as exc:
                # readline() raises ValueError when the line exceeds the stream limit
                logger.warning("Dropping %s: %s", self._peer, exc)
                return

            if not raw:
                return
            timeouts = 0

            line = raw.decode(ENCODING, errors="replace").strip()
            response, close = await asyncio.to_thread(self._engine.handle, line)
            if response is None:
                continue
            self.commands += 1
            self._writer.write(response.encode().encode(ENCODING))
            await self._writer.drain()
            if close:
                return

    async def _send_line(self, line: str) -> None:
        self._writer.write(f"{line}\n".encode(ENCODING))
        await self._writer.drain()

    async def _close(self) -> None:
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, ssl.SSLError, OSError):
            pass
