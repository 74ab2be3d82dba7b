"""
Archive creation for backups.

A backup is a gzip compressed tar of the source directory, written to
{backup_dir}/backup_{YYYY-MM-DD_HH-MM-SS}.tar.gz. The top-level entry of the
archive is the source directory's basename, so extracting it recreates
{basename}/... rather than absolute paths.
"""

import os
import math
import tarfile
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = 'backup_'
ARCHIVE_EXTENSION = '.tar.gz'
TIMESTAMP_FORMAT = '%Y-%m-%d_%H-%M-%S'


class CompressionError(Exception):
    """Raised when archive creation fails."""
    pass


@dataclass(frozen=True)
class BackupArtifact:
    """A successfully written archive."""
    path: str
    timestamp_label: str
    size_bytes: int
    size_human: str


def create_archive(source_dir: str, backup_dir: str, now: Optional[datetime] = None) -> BackupArtifact:
    """
    Create a compressed archive of a directory.

    Args:
        source_dir: Directory to back up
        backup_dir: Existing directory the archive is written into
        now: Timestamp for the archive name (default: current time)

    Returns:
        BackupArtifact describing the new archive

    Raises:
        CompressionError: If archive creation fails. Any partially written
            file is removed first; a pre-existing file is left alone.
    """
    source = Path(source_dir)
    timestamp_label = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    archive_path = os.path.join(backup_dir, generate_archive_filename(timestamp_label))

    logger.info(f"Starting backup of {source_dir} to {archive_path}.")

    try:
        _create_tar(source, archive_path)
    except FileExistsError:
        raise CompressionError(f"Archive already exists: {archive_path}")
    except Exception as e:
        # Clean up partial archive on failure
        _remove_partial(archive_path)
        raise CompressionError(f"Failed to create archive: {e}")
    except BaseException:
        _remove_partial(archive_path)
        raise

    size_bytes = get_archive_size(archive_path)
    return BackupArtifact(
        path=archive_path,
        timestamp_label=timestamp_label,
        size_bytes=size_bytes,
        size_human=human_readable_size(size_bytes)
    )


def _create_tar(source: Path, archive_path: str):
    """
    Write the tar.gz archive.

    Opened with mode 'x:gz' so an existing archive is never overwritten.

    Args:
        source: Directory to add
        archive_path: Output archive path
    """
    source = Path(os.path.abspath(source))

    if not source.is_dir():
        raise CompressionError(f"Source is not a directory: {source}")

    arcname = source.name
    excluded = _self_arcname(source, archive_path)

    def skip_self(tarinfo):
        if excluded is not None and tarinfo.name == excluded:
            return None
        return tarinfo

    with tarfile.open(archive_path, 'x:gz') as tar:
        tar.add(str(source), arcname=arcname, recursive=True, filter=skip_self)


def _self_arcname(source: Path, archive_path: str) -> Optional[str]:
    """Archive member name of archive_path when it lies inside source."""
    archive = Path(os.path.abspath(archive_path))
    try:
        relative = archive.relative_to(source)
    except ValueError:
        return None
    return (Path(source.name) / relative).as_posix()


def _remove_partial(archive_path: str):
    if os.path.exists(archive_path):
        try:
            os.remove(archive_path)
        except OSError as e:
            logger.error(f"ERROR: Failed to remove partial archive {archive_path}: {e}")


def generate_archive_filename(timestamp_label: Optional[str] = None) -> str:
    """
    Generate a standardized archive filename.

    Format: backup_{YYYY-MM-DD_HH-MM-SS}.tar.gz

    Args:
        timestamp_label: Preformatted timestamp (default: current time)

    Returns:
        Filename (without path)
    """
    if timestamp_label is None:
        timestamp_label = datetime.now().strftime(TIMESTAMP_FORMAT)

    return f"{ARCHIVE_PREFIX}{timestamp_label}{ARCHIVE_EXTENSION}"


def human_readable_size(num_bytes: int) -> str:
    """
    Format a byte count the way `du -h` does.

    Sizes are rounded up: one decimal below 10 of a unit, whole numbers
    above. Plain bytes carry no suffix.

    Examples: 512 -> "512", 1536 -> "1.5K", 20000 -> "20K", 4404019 -> "4.2M"
    """
    if num_bytes < 1024:
        return str(num_bytes)

    value = float(num_bytes)
    for unit in ('K', 'M', 'G', 'T', 'P'):
        value /= 1024
        if value < 10:
            rounded = math.ceil(value * 10) / 10
            if rounded < 10:
                return f"{rounded:.1f}{unit}"
        rounded = math.ceil(value)
        if rounded < 1024 or unit == 'P':
            return f"{rounded}{unit}"


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Args:
        archive_path: Path to the archive file

    Returns:
        File size in bytes

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")
