from __future__ import annotations

import logging

from lanwatch.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ProtocolError,
    ValidationError,
)

from .commands import parse_request
from .context import ServerContext
from .response import Response, ResponseStatus

logger = logging.getLogger(__name__)


class ProtocolEngine:
    """Socket independent command dispatch.

    Every failure a client can provoke maps to a response status; the engine
    never raises for a bad request.
    """

    def __init__(self, context: ServerContext) -> None:
        self._context = context

    @property
    def context(self) -> ServerContext:
        return self._context

    def execute(self, line: str) -> Response | None:
        response, _ = self.handle(line)
        return response

    def handle(self, line: str) -> tuple[Response | None, bool]:
        """Run one request line; returns (response, close_connection)."""
        try:
            request = parse_request(line)
        except ProtocolError as exc:
            self._context.stats.command_processed()
            status = (
                ResponseStatus.INVALID_COMMAND if exc.unknown_command else ResponseStatus.ERROR
            )
            return Response(status=status, message=str(exc)), False
        if request is None:
            return None, False

        self._context.stats.command_processed()
        command = request.command
        logger.debug("Executing %s %s", command.name, " ".join(request.args))
        try:
            response = command.handler(self._context, request.args)
        except ValidationError as exc:
            response = Response.error(str(exc))
        except ConflictError as exc:
            response = Response.device_already_exists(str(exc))
        except NotFoundError as exc:
            response = Response.device_not_found(str(exc))
        except PersistenceError as exc:
            logger.error("%s failed to persist: %s", command.name, exc)
            response = Response.error(f"Could not save allowlist: {exc}")
        except Exception:
            logger.exception("Command %s failed", command.name)
            response = Response.error(f"Internal error while executing {command.name}")
        return response, command.closes_connection
