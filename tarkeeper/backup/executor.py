"""
Backup executor - orchestrates the complete backup workflow.

Workflow:
1. Load configuration (missing or invalid file: notify, fail)
2. Acquire the single-instance lock (busy: fail without notifying)
3. Apply command line overrides
4. Validate the source directory
5. Create the backup directory if needed
6. Create the compressed archive
7. Enforce the retention policy (only after a successful archive)
8. Notify the operator of the outcome
9. Release the lock (on every path once acquired)
"""

import os
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tarkeeper import configure_logging
from tarkeeper.config import BackupConfig, Config, ConfigError, ConfigMissingError, load_config
from tarkeeper.lock import LockGuard, LockBusyError, LockError
from tarkeeper.notifier import Notifier
from .compression import BackupArtifact, CompressionError, create_archive
from .retention import RetentionManager


logger = logging.getLogger(__name__)


class Outcome(Enum):
    """Terminal state of a backup run."""
    SUCCESS = 'success'
    CONFIG_MISSING = 'config_missing'
    CONFIG_INVALID = 'config_invalid'
    LOCK_BUSY = 'lock_busy'
    LOCK_FAILED = 'lock_failed'
    ARGUMENT_ERROR = 'argument_error'
    SOURCE_MISSING = 'source_missing'
    DEST_UNCREATABLE = 'dest_uncreatable'
    ARCHIVE_FAILED = 'archive_failed'


@dataclass(frozen=True)
class RunResult:
    """Result of a backup run."""
    outcome: Outcome
    artifact: Optional[BackupArtifact] = None
    deleted_count: int = 0
    error_message: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.outcome is Outcome.SUCCESS else 1


class BackupExecutor:
    """
    Runs the backup steps that follow configuration and locking.
    """

    def __init__(self, config: BackupConfig, notifier: Notifier):
        """
        Initialize backup executor.

        Args:
            config: Resolved and validated configuration
            notifier: Operator notifier
        """
        self.config = config
        self.notifier = notifier

    def execute(self) -> RunResult:
        """
        Execute the backup.

        Returns:
            RunResult describing the outcome; the operator has already been
            notified of it
        """
        source_dir = self.config.source_dir
        backup_dir = self.config.backup_dir

        if not os.path.isdir(source_dir):
            logger.error(f"FATAL: Source directory {source_dir} does not exist.")
            self.notifier.notify(
                "Backup FAILED: Source Directory Missing",
                f"The source directory {source_dir} could not be found. Backup aborted."
            )
            return RunResult(Outcome.SOURCE_MISSING, error_message=f"Source directory missing: {source_dir}")

        try:
            os.makedirs(backup_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"FATAL: Could not create backup directory {backup_dir}. ({e})")
            self.notifier.notify(
                "Backup FAILED: Cannot Create Backup Directory",
                f"The script failed to create the backup destination directory {backup_dir}. "
                f"Please check permissions."
            )
            return RunResult(Outcome.DEST_UNCREATABLE, error_message=str(e))

        try:
            artifact = create_archive(source_dir, backup_dir)
        except CompressionError as e:
            logger.error(f"FATAL: Archive creation failed: {e}")
            body = (
                f"The backup of {source_dir} failed. Archive creation exited with an error:\n"
                f"{e}\n"
                f"\n"
                f"Please check the log file for more details: {self.config.log_file}"
            )
            logger.info(body)
            self.notifier.notify(f"Backup FAILED for {source_dir}", body)
            return RunResult(Outcome.ARCHIVE_FAILED, error_message=str(e))

        logger.info(f"SUCCESS: Backup created successfully. Size: {artifact.size_human}.")

        retention = RetentionManager(backup_dir, self.config.retention_days)
        try:
            deleted_count = retention.prune(keep=artifact.path)
        except OSError as e:
            logger.error(f"ERROR: Could not scan {backup_dir} for old backups: {e}")
            deleted_count = 0

        body = self._success_body(artifact, deleted_count, retention.failed)
        logger.info(body)
        self.notifier.notify(f"Backup SUCCESSFUL for {source_dir}", body)

        return RunResult(Outcome.SUCCESS, artifact=artifact, deleted_count=deleted_count)

    def _success_body(self, artifact: BackupArtifact, deleted_count: int, failed: list) -> str:
        lines = [
            f"Backup of {self.config.source_dir} completed successfully.",
            "",
            f"Archive: {artifact.path}",
            f"Size: {artifact.size_human}",
            f"Old backups deleted: {deleted_count}",
        ]
        if failed:
            lines.append(f"Old backups that could not be deleted: {len(failed)}")
        lines += [
            "",
            f"Log file is available at {self.config.log_file}.",
        ]
        return '\n'.join(lines)


def execute_backup(config_path: Optional[str] = None,
                   source_dir: Optional[str] = None,
                   backup_dir: Optional[str] = None) -> RunResult:
    """
    Run one complete backup.

    Args:
        config_path: Configuration file (default: Config.CONFIG_FILE)
        source_dir: Override for SOURCE_DIR
        backup_dir: Override for BACKUP_DIR

    Returns:
        RunResult; use its exit_code as the process exit status
    """
    config_path = config_path or Config.CONFIG_FILE

    try:
        config = load_config(config_path)
    except ConfigMissingError as e:
        return _fail_before_lock(
            Outcome.CONFIG_MISSING,
            f"FATAL: Configuration file not found at {config_path}.",
            "Backup FAILED: Configuration Missing",
            f"The backup script could not find its configuration file at {config_path}. "
            f"Please restore it immediately.",
            str(e)
        )
    except ConfigError as e:
        return _fail_before_lock(
            Outcome.CONFIG_INVALID,
            f"FATAL: Invalid configuration: {e}",
            "Backup FAILED: Invalid Configuration",
            f"The backup script could not use its configuration file at {config_path}:\n{e}",
            str(e)
        )

    configure_logging(config.log_file)
    logger.info(f"Configuration loaded from {config_path}.")
    notifier = Notifier.from_config(config)

    try:
        with LockGuard(config.lock_file):
            config = config.with_overrides(source_dir=source_dir, backup_dir=backup_dir)
            try:
                config.validate()
            except ConfigError as e:
                logger.error(f"FATAL: Invalid configuration: {e}")
                notifier.notify(
                    "Backup FAILED: Invalid Configuration",
                    f"The backup configuration from {config_path} is incomplete:\n{e}"
                )
                return RunResult(Outcome.CONFIG_INVALID, error_message=str(e))

            return BackupExecutor(config, notifier).execute()

    except LockBusyError as e:
        logger.error("ERROR: Lock file exists. Another backup process may be running. Exiting.")
        return RunResult(Outcome.LOCK_BUSY, error_message=str(e))
    except LockError as e:
        logger.error(f"ERROR: {e}. Exiting.")
        return RunResult(Outcome.LOCK_FAILED, error_message=str(e))


def _fail_before_lock(outcome: Outcome, log_message: str, subject: str, body: str,
                      error_message: str) -> RunResult:
    """Report a configuration failure using the built-in defaults."""
    configure_logging(Config.LOG_FILE)
    logger.error(log_message)
    notifier = Notifier(
        recipient=Config.EMAIL_TO,
        smtp_host=Config.SMTP_HOST,
        smtp_port=Config.SMTP_PORT,
        sender=Config.MAIL_FROM
    )
    notifier.notify(subject, body)
    return RunResult(outcome, error_message=error_message)
