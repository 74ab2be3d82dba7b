"""
Shared pytest fixtures for tarkeeper tests.

This module provides fixtures for:
- Source directory trees to back up
- Configuration files and resolved configurations
- A mocked SMTP relay
- Isolation of the built-in defaults and logging handlers
"""

import os
import logging
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from tarkeeper.config import BackupConfig, Config


@pytest.fixture(autouse=True)
def isolated_defaults(tmp_path, monkeypatch):
    """
    Point the built-in defaults at the test's temp directory.

    Keeps tests away from /etc, /var/log and /tmp/tarkeeper.lock.
    """
    monkeypatch.setattr(Config, 'CONFIG_FILE', str(tmp_path / 'default.conf'))
    monkeypatch.setattr(Config, 'LOG_FILE', str(tmp_path / 'default.log'))
    monkeypatch.setattr(Config, 'LOCK_FILE', str(tmp_path / 'default.lock'))
    yield
    logger = logging.getLogger('tarkeeper')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def mock_smtp():
    """
    Mock smtplib.SMTP used by the notifier.

    Yields the object send_message() is called on inside the `with` block.
    """
    with patch('tarkeeper.notifier.smtplib.SMTP') as mock_smtp_class:
        server = mock_smtp_class.return_value.__enter__.return_value
        yield server


@pytest.fixture
def sent_messages(mock_smtp):
    """Callable returning the EmailMessage objects sent so far."""
    def _sent():
        return [c.args[0] for c in mock_smtp.send_message.call_args_list]

    return _sent


@pytest.fixture
def source_tree(tmp_path):
    """
    Create a directory tree to back up.

    Creates:
    - data/app/file1.txt
    - data/app/file2.log
    - data/app/nested/file3.txt
    """
    source = tmp_path / 'data' / 'app'
    (source / 'nested').mkdir(parents=True)
    (source / 'file1.txt').write_text('Content 1')
    (source / 'file2.log').write_text('Log content')
    (source / 'nested' / 'file3.txt').write_text('Nested content')
    return source


@pytest.fixture
def backup_dir(tmp_path):
    """Path of the backup destination (not created)."""
    return tmp_path / 'backups'


@pytest.fixture
def lock_path(tmp_path):
    return tmp_path / 'backup.lock'


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / 'logs' / 'backup.log'


@pytest.fixture
def write_config(tmp_path, source_tree, backup_dir, lock_path, log_path):
    """
    Factory writing a config file.

    Keyword arguments replace or add KEY=value entries; pass None to drop a key.
    """
    def _write(name='backup.conf', **overrides):
        values = {
            'SOURCE_DIR': str(source_tree),
            'BACKUP_DIR': str(backup_dir),
            'RETENTION_DAYS': '7',
            'EMAIL_TO': 'ops@example.com',
            'LOG_FILE': str(log_path),
            'LOCK_FILE': str(lock_path),
        }
        values.update(overrides)
        lines = ['# tarkeeper test configuration']
        lines += [f'{key}="{value}"' for key, value in values.items() if value is not None]
        path = tmp_path / name
        path.write_text('\n'.join(lines) + '\n')
        return path

    return _write


@pytest.fixture
def config_file(write_config):
    return write_config()


@pytest.fixture
def backup_config(source_tree, backup_dir, lock_path, log_path):
    """Resolved configuration pointing at the test tree."""
    return BackupConfig(
        source_dir=str(source_tree),
        backup_dir=str(backup_dir),
        retention_days=7,
        email_to='ops@example.com',
        log_file=str(log_path),
        lock_file=str(lock_path)
    )


@pytest.fixture
def old_archive():
    """
    Factory creating an archive-looking file with a modification time in the past.

    Returns the path of the created file.
    """
    def _create(directory, name, days_old, now=None):
        now = now or datetime.now()
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_bytes(b'old archive')
        mtime = (now - timedelta(days=days_old)).timestamp()
        os.utime(path, (mtime, mtime))
        return path

    return _create
