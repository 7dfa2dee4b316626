"""Service runtime: listeners, connection tasks and the discovery scheduler."""

from __future__ import annotations

import asyncio
import logging
import ssl
from datetime import timedelta

from lanwatch.config import ServerConfig, Settings, allowlist_path_from_settings
from lanwatch.core import DeviceRegistry, DiscoveryPipeline, Scheduler
from lanwatch.protocol import ConnectionHandler, Response, ServerContext
from lanwatch.storage import AllowlistStore

logger = logging.getLogger(__name__)


def server_ssl_context(config: ServerConfig) -> ssl.SSLContext:
    if not config.certfile:
        raise ValueError("TLS listener requires server.certfile")
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(config.certfile, config.keyfile)
    return context


def build_context(settings: Settings) -> ServerContext:
    allowlist = AllowlistStore.open(allowlist_path_from_settings(settings))
    registry = DeviceRegistry(
        allowlist,
        ban_window=timedelta(seconds=settings.monitor.ban_seconds),
        auto_add=settings.monitor.auto_add,
    )
    return ServerContext(allowlist=allowlist, registry=registry, settings=settings)


class LanwatchServer:
    def __init__(self, context: ServerContext, scheduler: Scheduler | None = None) -> None:
        self.context = context
        self.scheduler = scheduler
        self._config = context.settings.server
        self._listeners: list[asyncio.Server] = []
        self._connections: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls, settings: Settings, *, discovery: bool = True) -> LanwatchServer:
        context = build_context(settings)
        scheduler = None
        if discovery:
            scheduler = Scheduler(
                DiscoveryPipeline.from_config(settings.monitor),
                context.registry,
                interval=settings.monitor.poll_seconds,
                stop_grace=settings.monitor.stop_grace,
            )
        return cls(context, scheduler)

    @property
    def ports(self) -> list[int]:
        return [
            sock.getsockname()[1]
            for listener in self._listeners
            for sock in listener.sockets
        ]

    async def start(self) -> None:
        config = self._config
        plain = await asyncio.start_server(self._handle_client, config.host, config.port)
        self._listeners.append(plain)
        logger.info("Listening on %s:%d", config.host, self.ports[-1])

        if config.tls_enabled:
            secure = await asyncio.start_server(
                self._handle_client,
                config.host,
                config.tls_port,
                ssl=server_ssl_context(config),
            )
            self._listeners.append(secure)
            logger.info("Listening on %s:%d (TLS)", config.host, self.ports[-1])

        if self.scheduler is not None:
            self.scheduler.start()

    async def stop(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        for listener in self._listeners:
            listener.close()
        for task in list(self._connections):
            task.cancel()
        if self._connections:
            await asyncio.gather(*self._connections, return_exceptions=True)
        for listener in self._listeners:
            await listener.wait_closed()
        self._listeners.clear()
        logger.info("Server stopped")

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await asyncio.gather(*(listener.serve_forever() for listener in self._listeners))
        finally:
            await self.stop()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        stats = self.context.stats
        if stats.active_connections >= self._config.max_connections:
            logger.warning(
                "Rejecting %s: %d connections already open",
                writer.get_extra_info("peername"),
                stats.active_connections,
            )
            await self._reject(writer)
            return

        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            await ConnectionHandler.from_config(
                self.context, reader, writer, self._config
            ).run()
        finally:
            if task is not None:
                self._connections.discard(task)

    async def _reject(self, writer: asyncio.StreamWriter) -> None:
        response = Response.error("Server busy, too many connections")
        try:
            writer.write(response.encode().encode("utf-8"))
            await writer.drain()
        except (ConnectionError, OSError):
            pass
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass


async def run_server(settings: Settings) -> None:
    server = LanwatchServer.from_settings(settings)
    await server.serve_forever()
