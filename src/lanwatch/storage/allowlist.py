from __future__ import annotations

import contextlib
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from lanwatch.errors import PersistenceError, ValidationError
from lanwatch.models import AllowlistEntry, normalize_mac, utcnow

logger = logging.getLogger(__name__)

COMMENT_PREFIX = "#"
FIELD_SEPARATOR = ","


@dataclass
class LoadReport:
    loaded: int = 0
    duplicates: int = 0
    malformed: int = 0


def parse_line(line: str) -> AllowlistEntry:
    """Parse one ``MAC,HOSTNAME,IP`` line; hostname and IP are optional."""
    parts = [part.strip() for part in line.split(FIELD_SEPARATOR)]
    if len(parts) > 3:
        raise ValidationError("line", line, "expected MAC,HOSTNAME,IP")
    mac = parts[0]
    hostname = parts[1] if len(parts) > 1 else None
    ip = parts[2] if len(parts) > 2 else None
    return AllowlistEntry.create(mac, hostname, ip)


def render_allowlist(entries: Iterable[AllowlistEntry]) -> str:
    lines = [
        "# lanwatch allowlist - format: MAC,HOSTNAME,IP",
        f"# generated: {utcnow().isoformat(timespec='seconds')}",
        "",
    ]
    for entry in entries:
        lines.append(FIELD_SEPARATOR.join([entry.mac, entry.hostname, entry.ip or ""]))
    lines.append("")
    return "\n".join(lines)


class AllowlistStore:
    """Durable set of authorized devices keyed by normalized MAC.

    Mutations are serialized by a write lock that is held across the file
    rewrite. Readers only take ``_lock``, which guards swapping the entry map,
    so ``contains`` and ``entries`` never wait on disk I/O. The map is replaced,
    never mutated in place.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._entries: dict[str, AllowlistEntry] = {}
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()

    @classmethod
    def open(cls, path: Path) -> AllowlistStore:
        store = cls(path)
        store.load()
        return store

    @property
    def path(self) -> Path:
        return self._path

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def load(self) -> LoadReport:
        report = LoadReport()
        with self._write_lock:
            if not self._path.exists():
                logger.info("Allowlist %s not found, creating an empty one", self._path)
                self._write({})
                self._publish({})
                return report

            entries: dict[str, AllowlistEntry] = {}
            try:
                text = self._path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise PersistenceError(f"Cannot read allowlist {self._path}: {exc}") from exc
            for lineno, raw in enumerate(text.splitlines(), start=1):
                line = raw.strip()
                if not line or line.startswith(COMMENT_PREFIX):
                    continue
                try:
                    entry = parse_line(line)
                except ValidationError as exc:
                    logger.warning("Malformed allowlist line %d skipped: %s", lineno, exc)
                    report.malformed += 1
                    continue
                if entry.mac in entries:
                    logger.warning(
                        "Duplicate MAC at allowlist line %d skipped: %s", lineno, entry.mac
                    )
                    report.duplicates += 1
                    continue
                entries[entry.mac] = entry
                report.loaded += 1
            self._publish(entries)

        logger.info(
            "Allowlist loaded: %d devices, %d duplicates, %d malformed",
            report.loaded,
            report.duplicates,
            report.malformed,
        )
        return report

    def contains(self, mac: str) -> bool:
        try:
            key = normalize_mac(mac)
        except ValidationError:
            return False
        with self._lock:
            return key in self._entries

    def get(self, mac: str) -> AllowlistEntry | None:
        try:
            key = normalize_mac(mac)
        except ValidationError:
            return None
        with self._lock:
            return self._entries.get(key)

    def entries(self) -> list[AllowlistEntry]:
        with self._lock:
            return list(self._entries.values())

    def add(self, entry: AllowlistEntry) -> bool:
        """Insert an entry; False if its MAC is already allowed.

        Raises PersistenceError when the file cannot be rewritten, in which
        case the store is left as it was before the call.
        """
        with self._transaction() as working:
            if entry.mac in working:
                logger.info("Device already allowed: %s", entry.mac)
                return False
            working[entry.mac] = entry
        logger.info("Device added to allowlist: %s", entry.compact())
        return True

    def remove(self, mac: str) -> bool:
        key = normalize_mac(mac)
        with self._transaction() as working:
            removed = working.pop(key, None)
            if removed is None:
                logger.info("Device not in allowlist: %s", key)
                return False
        logger.info("Device removed from allowlist: %s", removed.compact())
        return True

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[dict[str, AllowlistEntry]]:
        # The working copy is published only once it is on disk, so readers
        # never observe an entry set that a failed write would undo.
        with self._write_lock:
            snapshot = self._entries
            working = dict(snapshot)
            yield working
            if working == snapshot:
                return
            try:
                self._write(working)
            except PersistenceError:
                logger.error("Allowlist write failed, change discarded")
                raise
            self._publish(working)

    def _publish(self, entries: dict[str, AllowlistEntry]) -> None:
        with self._lock:
            self._entries = entries

    def _write(self, entries: dict[str, AllowlistEntry]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(render_allowlist(entries.values()))
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise PersistenceError(
                f"Failed to write allowlist {self._path}: {exc}"
            ) from exc
        logger.debug("Allowlist saved with %d devices", len(entries))
