from __future__ import annotations

from .client import ProtocolClient, client_ssl_context, send_commands
from .commands import COMMANDS, CommandSpec, Request, parse_request, tokenize
from .connection import KEEPALIVE_LINE, ConnectionHandler, welcome_line
from .context import ServerContext, ServerStats, format_uptime
from .engine import ProtocolEngine
from .response import (
    FOOTER,
    Response,
    ResponseStatus,
    decode_response,
    encode_response,
    escape_field,
    unescape_field,
)

__all__ = [
    "COMMANDS",
    "FOOTER",
    "KEEPALIVE_LINE",
    "CommandSpec",
    "ConnectionHandler",
    "ProtocolClient",
    "ProtocolEngine",
    "Request",
    "Response",
    "ResponseStatus",
    "ServerContext",
    "ServerStats",
    "client_ssl_context",
    "decode_response",
    "encode_response",
    "escape_field",
    "format_uptime",
    "parse_request",
    "send_commands",
    "tokenize",
    "unescape_field",
    "welcome_line",
]
