"""
Backup module for tarkeeper.

This module handles the core backup functionality including:
- Compression
- Execution orchestration
- Retention policy enforcement
"""

from .executor import BackupExecutor, Outcome, RunResult, execute_backup
from .compression import BackupArtifact, create_archive
from .retention import RetentionManager

__all__ = [
    'BackupExecutor',
    'Outcome',
    'RunResult',
    'execute_backup',
    'BackupArtifact',
    'create_archive',
    'RetentionManager'
]
