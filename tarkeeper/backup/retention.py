"""
Retention policy enforcement for backups.

Deletes archives in the backup directory whose modification time is older
than the configured number of days. Only runs after a successful backup, so
a broken backup chain never loses its history.
"""

import os
import logging
from datetime import datetime, timedelta
from fnmatch import fnmatch
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger(__name__)

ARCHIVE_PATTERN = '*.tar.gz'


class RetentionManager:
    """
    Manages retention policy enforcement for a backup directory.

    Files that match the archive pattern and are older than retention_days
    are deleted. Subdirectories are not descended into.
    """

    def __init__(self, backup_dir: str, retention_days: int):
        """
        Initialize retention manager.

        Args:
            backup_dir: Directory holding the archives
            retention_days: Age in days after which archives are deleted
        """
        if retention_days < 0:
            raise ValueError(f"retention_days must be non-negative, got {retention_days}")

        self.backup_dir = Path(backup_dir)
        self.retention_days = retention_days
        self.deleted: List[str] = []
        self.failed: List[str] = []

    def prune(self, now: Optional[datetime] = None, keep: Optional[str] = None) -> int:
        """
        Delete expired archives.

        Args:
            now: Reference time (default: current time)
            keep: Path that must survive regardless of age (the archive
                just written)

        Returns:
            Number of archives deleted. Archives that could not be deleted
            are listed in self.failed and not counted.
        """
        cutoff = (now or datetime.now()) - timedelta(days=self.retention_days)
        keep_path = os.path.abspath(keep) if keep else None

        logger.info(f"Cleaning up backups older than {self.retention_days} days in {self.backup_dir}...")

        for file_path in self._expired_files(cutoff):
            if keep_path and os.path.abspath(file_path) == keep_path:
                continue
            try:
                file_path.unlink()
            except FileNotFoundError:
                # Removed by someone else in the meantime
                continue
            except OSError as e:
                logger.warning(f"WARNING: Failed to delete old backup {file_path}: {e}")
                self.failed.append(str(file_path))
                continue
            logger.info(f"Deleted old backup: {file_path}")
            self.deleted.append(str(file_path))

        logger.info(f"Cleanup complete. Deleted {len(self.deleted)} old backup(s).")
        if self.failed:
            logger.warning(f"WARNING: {len(self.failed)} old backup(s) could not be deleted.")

        return len(self.deleted)

    def _expired_files(self, cutoff: datetime) -> List[Path]:
        """
        List archive files modified before cutoff.

        Args:
            cutoff: Files modified strictly before this moment are expired

        Returns:
            Paths sorted by name
        """
        expired = []

        with os.scandir(self.backup_dir) as entries:
            for entry in entries:
                if not entry.is_file(follow_symlinks=False):
                    continue
                if not fnmatch(entry.name, ARCHIVE_PATTERN):
                    continue
                modified = datetime.fromtimestamp(entry.stat(follow_symlinks=False).st_mtime)
                if modified < cutoff:
                    expired.append(Path(entry.path))

        return sorted(expired)

