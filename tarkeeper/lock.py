"""
Single-instance lock for backup runs.

The lock is a marker file created with O_CREAT | O_EXCL, so checking for a
running instance and claiming the lock happen in one step.
"""

import os
import signal
import logging
from pathlib import Path


logger = logging.getLogger(__name__)

# Termination signals turned into SystemExit while the lock is held
RELEASE_SIGNALS = tuple(
    getattr(signal, name) for name in ('SIGTERM', 'SIGHUP') if hasattr(signal, name)
)


class LockError(Exception):
    """Raised when the lock cannot be taken."""
    pass


class LockBusyError(LockError):
    """Raised when another run already holds the lock."""
    pass


class LockGuard:
    """
    Exclusive marker-file lock.

    Use as a context manager so the marker is removed on every exit path:

        with LockGuard('/tmp/tarkeeper.lock'):
            ...
    """

    def __init__(self, path: str):
        """
        Initialize lock guard.

        Args:
            path: Location of the marker file
        """
        self.path = Path(path)
        self.held = False
        self._previous_handlers = {}

    def acquire(self):
        """
        Create the marker file.

        Raises:
            LockBusyError: If the marker already exists
            LockError: If the marker cannot be created
        """
        try:
            fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise LockBusyError(f"Lock file exists: {self.path}")
        except OSError as e:
            raise LockError(f"Cannot create lock file {self.path}: {e}")

        try:
            os.write(fd, f"{os.getpid()}\n".encode())
        finally:
            os.close(fd)

        self.held = True
        logger.info("Lock file created. Starting backup process.")

    def release(self):
        """Remove the marker file. Failures are logged, never raised."""
        if not self.held:
            return

        self.held = False
        logger.info("Script finished. Removing lock file.")
        try:
            self.path.unlink()
        except OSError as e:
            logger.error(f"ERROR: Failed to remove lock file: {self.path}. ({e})")

    def __enter__(self):
        # Handlers must be in place before the marker exists
        self._install_signal_handlers()
        try:
            self.acquire()
        except BaseException:
            self._restore_signal_handlers()
            raise
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        try:
            self.release()
        finally:
            self._restore_signal_handlers()
        return False

    def _install_signal_handlers(self):
        """Route termination signals through SystemExit so __exit__ runs."""
        for signum in RELEASE_SIGNALS:
            try:
                self._previous_handlers[signum] = signal.signal(signum, _raise_system_exit)
            except ValueError:
                # Not on the main thread (e.g. scheduler worker); nothing to install
                break

    def _restore_signal_handlers(self):
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers = {}


def _raise_system_exit(signum, frame):
    logger.error(f"Received signal {signum}, aborting backup.")
    raise SystemExit(128 + signum)
