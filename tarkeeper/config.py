"""
Configuration resolution for backup runs.

Values are merged in this order, later sources winning:
1. Built-in defaults (Config, overridable through environment variables)
2. The key=value config file
3. Command line overrides for the source and destination directories
"""

import os
import shlex
from dataclasses import dataclass, replace
from typing import Optional


class ConfigError(Exception):
    """Raised when the configuration file is unusable."""
    pass


class ConfigMissingError(ConfigError):
    """Raised when the configuration file does not exist."""
    pass


class Config:
    """Built-in defaults"""

    CONFIG_FILE = os.environ.get('TARKEEPER_CONFIG') or '/etc/tarkeeper/backup.conf'
    LOCK_FILE = os.environ.get('TARKEEPER_LOCK_FILE') or '/tmp/tarkeeper.lock'
    LOG_FILE = os.environ.get('TARKEEPER_LOG_FILE') or '/var/log/tarkeeper/backup.log'

    BACKUP_DIR = ''
    RETENTION_DAYS = 7
    EMAIL_TO = 'root@localhost'

    # Mail relay
    SMTP_HOST = 'localhost'
    SMTP_PORT = 25
    MAIL_FROM = 'tarkeeper@localhost'


# Config file key -> BackupConfig field
CONFIG_KEYS = {
    'SOURCE_DIR': 'source_dir',
    'BACKUP_DIR': 'backup_dir',
    'RETENTION_DAYS': 'retention_days',
    'EMAIL_TO': 'email_to',
    'LOG_FILE': 'log_file',
    'LOCK_FILE': 'lock_file',
    'SMTP_HOST': 'smtp_host',
    'SMTP_PORT': 'smtp_port',
    'MAIL_FROM': 'mail_from',
}

INTEGER_KEYS = {'RETENTION_DAYS', 'SMTP_PORT'}


@dataclass(frozen=True)
class BackupConfig:
    """Resolved configuration for a single backup run."""

    source_dir: str = ''
    backup_dir: str = Config.BACKUP_DIR
    retention_days: int = Config.RETENTION_DAYS
    email_to: str = Config.EMAIL_TO
    log_file: str = Config.LOG_FILE
    lock_file: str = Config.LOCK_FILE
    smtp_host: str = Config.SMTP_HOST
    smtp_port: int = Config.SMTP_PORT
    mail_from: str = Config.MAIL_FROM

    def with_overrides(self, source_dir: Optional[str] = None,
                       backup_dir: Optional[str] = None) -> 'BackupConfig':
        """
        Apply command line overrides.

        Args:
            source_dir: Value of -s/--source, if given
            backup_dir: Value of -d/--destination, if given

        Returns:
            New BackupConfig; self is left untouched
        """
        changes = {}
        if source_dir:
            changes['source_dir'] = source_dir
        if backup_dir:
            changes['backup_dir'] = backup_dir
        return replace(self, **changes)

    def validate(self):
        """
        Check that the fields a run cannot do without are present.

        Raises:
            ConfigError: If a required field is empty
        """
        if not self.source_dir:
            raise ConfigError("SOURCE_DIR is not set")
        if not self.backup_dir:
            raise ConfigError("BACKUP_DIR is not set")
        if self.retention_days < 0:
            raise ConfigError(f"RETENTION_DAYS must be non-negative, got {self.retention_days}")


def parse_config(text: str, source: str = '<string>') -> BackupConfig:
    """
    Parse key=value configuration text.

    Blank lines and comments are ignored, "export KEY=value" is accepted and
    values may be quoted. Nothing in the file is executed.

    Args:
        text: Configuration file contents
        source: Name used in error messages

    Returns:
        BackupConfig with file values applied on top of the defaults

    Raises:
        ConfigError: On malformed lines, unknown keys or bad integer values
    """
    values = {}

    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith('#'):
            continue

        if line.startswith('export '):
            line = line[len('export '):].lstrip()

        key, sep, raw_value = line.partition('=')
        key = key.strip()
        if not sep or not key:
            raise ConfigError(f"{source}:{lineno}: expected KEY=value, got {raw_line!r}")

        if key not in CONFIG_KEYS:
            raise ConfigError(f"{source}:{lineno}: unknown configuration key {key!r}")

        try:
            tokens = shlex.split(raw_value, comments=True)
        except ValueError as e:
            raise ConfigError(f"{source}:{lineno}: cannot parse value for {key}: {e}")

        if len(tokens) > 1:
            raise ConfigError(f"{source}:{lineno}: value for {key} must be a single word or quoted")

        value = tokens[0] if tokens else ''

        if key in INTEGER_KEYS:
            if not value.isdecimal():
                raise ConfigError(f"{source}:{lineno}: {key} must be a non-negative integer, got {value!r}")
            value = int(value)

        values[CONFIG_KEYS[key]] = value

    return BackupConfig(**values)


def load_config(path: str) -> BackupConfig:
    """
    Load configuration from a file.

    Args:
        path: Path to the configuration file

    Returns:
        BackupConfig

    Raises:
        ConfigMissingError: If the file does not exist
        ConfigError: If the file cannot be read or parsed
    """
    if not os.path.isfile(path):
        raise ConfigMissingError(f"Configuration file not found at {path}")

    try:
        with open(path, 'r') as f:
            text = f.read()
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}")

    return parse_config(text, source=path)
