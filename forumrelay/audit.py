"""Relay audit ledger, live mirror, exports and backup retention."""

from __future__ import annotations

import asyncio
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path

import structlog

from forumrelay.errors import AuditError, DeliveryError
from forumrelay.models import AuditEvent, Endpoint, EventKind
from forumrelay.store import MappingStore, append_line, topic_label
from forumrelay.transport import Transport

logger = structlog.get_logger(__name__)

DEFAULT_BACKUP_KEEP = 10
_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _endpoint_name(endpoint: Endpoint) -> str:
    if endpoint.display_name:
        return f"{endpoint.display_name}({endpoint.id})"
    return endpoint.id


def _export_stamp(now: datetime) -> str:
    """UTC timestamp safe for file names, e.g. ``2024-05-01T10-20-30-123Z``."""
    return now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"


class AuditLog:
    """Append-only relay log with export and bounded backups.

    Args:
        store: Mapping store used to render readable names.
        transport: Chat transport for the live mirror and exported documents.
        log_path: Audit ledger file (``forwardlog.log``).
        backup_dir: Directory receiving export copies.
        group_id: Forum supergroup id.
        log_thread_id: Topic mirroring each audit line (optional).
        owner_id: Operator receiving exported documents.
        backup_keep: Number of backups retained after each export.
        fallback_label: Label prefix for users without a display name.
    """

    def __init__(
        self,
        store: MappingStore,
        transport: Transport,
        log_path: str | Path,
        backup_dir: str | Path,
        group_id: str,
        log_thread_id: str | None = None,
        owner_id: str | None = None,
        backup_keep: int = DEFAULT_BACKUP_KEEP,
        fallback_label: str = "User",
    ):
        self._store = store
        self._transport = transport
        self.log_path = Path(log_path)
        self.backup_dir = Path(backup_dir)
        self._group_id = group_id
        self.log_thread_id = log_thread_id
        self._owner_id = owner_id
        self._backup_keep = backup_keep
        self._fallback_label = fallback_label

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render_source(self, event: AuditEvent) -> str:
        if event.source.type != "user":
            return "unknown source"
        prefix = "group member" if event.kind == EventKind.GROUP_TO_USER else "user"
        return f"{prefix} {_endpoint_name(event.source)}"

    def _render_destination(self, event: AuditEvent) -> str:
        dest = event.destination
        if dest.type == "topic":
            user_id = self._store.get_user(dest.id)
            record = self._store.get_record(user_id) if user_id else None
            if record is None:
                return f"topic {dest.id}(unknown topic)"
            name = topic_label(record.user_id, record.display_name, self._fallback_label)
            return f"topic {dest.id}({name})"
        record = self._store.get_record(dest.id)
        name = record.display_name if record else dest.display_name
        if name:
            return f"user {name}({dest.id})"
        return f"user {dest.id}"

    def render(self, event: AuditEvent) -> str:
        """Render an event as one audit line."""
        timestamp = event.timestamp.strftime(_TIMESTAMP_FORMAT)
        return (
            f"{timestamp} --- {event.kind.value}: "
            f"{self._render_source(event)} relayed to {self._render_destination(event)}"
        )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    async def log_event(self, event: AuditEvent) -> str:
        """Append the rendered event to the ledger and mirror it.

        Raises:
            AuditError: The ledger append failed. Mirror failures are only
                logged.
        """
        line = self.render(event)
        try:
            await asyncio.to_thread(append_line, self.log_path, line)
        except OSError as e:
            raise AuditError(f"Failed to append audit line: {e}") from e

        if self.log_thread_id:
            try:
                await self._transport.send_text(
                    self._group_id, line, thread_id=self.log_thread_id
                )
            except DeliveryError:
                logger.warning("Failed to mirror audit line to log topic")
        return line

    # ------------------------------------------------------------------
    # Export and retention
    # ------------------------------------------------------------------

    async def export_and_backup(self, source_file: str | Path, label: str) -> Path:
        """Back up ``source_file``, send it to the operator and sweep backups.

        The sweep runs whenever the copy succeeded so the retention bound
        holds even if delivery fails.

        Raises:
            AuditError: The backup copy could not be written.
        """
        source = Path(source_file)
        stamp = _export_stamp(datetime.now(timezone.utc))
        dest = self.backup_dir / f"{label}_{stamp}.json"

        try:
            await asyncio.to_thread(self._copy, source, dest)
        except OSError as e:
            raise AuditError(f"Failed to back up {source}: {e}") from e
        logger.info("Backed up ledger", source=str(source), backup=str(dest))

        try:
            if self._owner_id:
                await self._transport.send_document(
                    self._owner_id, source, caption=f"{label} complete - {stamp}"
                )
            else:
                logger.warning("No operator configured, export not delivered")
        except DeliveryError:
            logger.exception("Failed to deliver export", source=str(source))
        finally:
            await self.sweep_backups()
        return dest

    def _copy(self, source: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, dest)

    async def sweep_backups(self) -> list[str]:
        """Delete all but the newest ``backup_keep`` backups.

        Returns the names of deleted entries.
        """
        return await asyncio.to_thread(self._sweep)

    def _sweep(self) -> list[str]:
        try:
            entries = list(os.scandir(self.backup_dir))
        except FileNotFoundError:
            return []
        except OSError:
            logger.warning("Failed to list backups", path=str(self.backup_dir))
            return []

        dated: list[tuple[float, os.DirEntry]] = []
        for entry in entries:
            try:
                dated.append((entry.stat(follow_symlinks=False).st_mtime, entry))
            except OSError:
                # Removed by someone else while listing.
                continue
        dated.sort(key=lambda item: item[0], reverse=True)

        deleted: list[str] = []
        for _, entry in dated[self._backup_keep:]:
            try:
                if entry.is_dir(follow_symlinks=False):
                    shutil.rmtree(entry.path)
                else:
                    os.unlink(entry.path)
                deleted.append(entry.name)
            except OSError:
                logger.warning("Failed to delete old backup", path=entry.path)
        if deleted:
            logger.info("Pruned backups", count=len(deleted))
        return deleted
