"""
Backup, Restore and Reset

DESIGN DECISION: A backup is a plain copy of the SQLite file.
Every database carries an app signature in its _metadata table, and a
restore only goes ahead when the file carries OUR signature. This keeps
the user from replacing their data with an unrelated or corrupt file.

Restore never leaves the app without an open database: if anything
fails after the live file was replaced, the previous file is put back
and re-opened before the error is raised.
"""

import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import aiosqlite
import structlog

from trove.config import Settings, get_settings
from trove.models.account import utc_now
from trove.services.storage import BackupSignatureError, SQLiteDatabase, StorageError
from trove.services.storage.sqlite import APP_SIGNATURE_KEY

if TYPE_CHECKING:
    from trove.audit import AuditLogger


logger = structlog.get_logger(__name__)


class BackupService:
    """
    Creates and restores whole-database backups.

    Usage:
        backups = BackupService(db)
        path = await backups.create_backup(Path("~/backups").expanduser())
        await backups.restore_backup(path)
    """

    def __init__(
        self,
        database: SQLiteDatabase,
        settings: Optional[Settings] = None,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self._db = database
        self._settings = settings or get_settings()
        self._audit_logger = audit_logger

    def _backup_name(self) -> str:
        timestamp = utc_now().strftime("%Y%m%d-%H%M%S-%f")
        return f"{self._settings.app.backup_prefix}-{timestamp}.db"

    async def create_backup(self, directory: Path) -> Path:
        """
        Write a backup of the live database into `directory`.

        Returns:
            Path of the new backup file

        Raises:
            StorageError: If the directory or the file cannot be written
        """
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create backup directory {directory}: {e}") from e

        target = directory / self._backup_name()
        await self._db.vacuum_into(target)

        logger.info("backup_created", path=str(target))
        if self._audit_logger:
            await self._audit_logger.log_backup_created(str(target))
        return target

    async def verify_backup_signature(self, path: Path) -> bool:
        """
        Check that `path` is a database written by this application.

        Opens the file read-only. Missing files, non-database files and
        databases without our signature all yield False.
        """
        if not path.is_file():
            return False
        try:
            async with aiosqlite.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True) as conn:
                cursor = await conn.execute(
                    "SELECT value FROM _metadata WHERE key = ?",
                    (APP_SIGNATURE_KEY,),
                )
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.warning("backup_unreadable", path=str(path), error=str(e))
            return False

        return row is not None and row[0] == self._db.app_signature

    async def restore_backup(self, path: Path) -> None:
        """
        Replace the live database with the backup at `path`.

        Raises:
            BackupSignatureError: The file is not one of our backups
            StorageError: The file could not be copied into place
        """
        if not await self.verify_backup_signature(path):
            reason = "Invalid backup file: not created by this app or corrupted"
            if self._audit_logger:
                await self._audit_logger.log_restore_rejected(str(path), reason)
            raise BackupSignatureError(reason)

        live = self._db.path
        previous = live.with_name(f"{live.name}.pre-restore")

        await self._db.close()
        try:
            if live.exists():
                shutil.copyfile(live, previous)
            shutil.copyfile(path, live)
            await self._db.init()
            if not await self._db.verify_app_signature():
                raise BackupSignatureError("Restored database failed signature check")
        except (OSError, StorageError) as e:
            logger.error("restore_failed", path=str(path), error=str(e))
            await self._db.close()
            if previous.exists():
                shutil.copyfile(previous, live)
                previous.unlink()
            await self._db.init()
            if isinstance(e, StorageError):
                raise
            raise StorageError(f"Failed to restore backup: {e}") from e

        previous.unlink(missing_ok=True)
        logger.warning("backup_restored", path=str(path))
        if self._audit_logger:
            await self._audit_logger.log_backup_restored(str(path))

    async def reset_database(self) -> None:
        """Delete every account and transaction by recreating the database."""
        await self._db.reset()
        if self._audit_logger:
            await self._audit_logger.log_database_reset()
