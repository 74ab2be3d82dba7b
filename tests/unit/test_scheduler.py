"""
Unit tests for scheduler (tarkeeper/scheduler.py).

Tests APScheduler configuration for cron mode.
"""

from unittest.mock import MagicMock, patch

import pytest
from apscheduler.triggers.cron import CronTrigger

from tarkeeper import scheduler as scheduler_module
from tarkeeper.backup.executor import Outcome, RunResult


class TestSchedulerInitialization:
    """Test scheduler initialization."""

    def teardown_method(self):
        """Clean up after each test."""
        scheduler_module.scheduler = None

    @patch('tarkeeper.scheduler.BlockingScheduler')
    def test_init_scheduler(self, mock_scheduler_class):
        """Test scheduler initialization."""
        mock_scheduler = MagicMock()
        mock_scheduler_class.return_value = mock_scheduler

        result = scheduler_module.init_scheduler('0 2 * * *', 'a.conf', '/src', '/dst')

        assert result == mock_scheduler
        assert scheduler_module.scheduler == mock_scheduler

        call_kwargs = mock_scheduler_class.call_args[1]
        assert call_kwargs['job_defaults']['max_instances'] == 1
        assert call_kwargs['job_defaults']['coalesce'] is True

        mock_scheduler.add_job.assert_called_once()
        job_kwargs = mock_scheduler.add_job.call_args[1]
        assert job_kwargs['args'] == ['a.conf', '/src', '/dst']
        assert isinstance(job_kwargs['trigger'], CronTrigger)

    @patch('tarkeeper.scheduler.BlockingScheduler')
    def test_init_scheduler_only_once(self, mock_scheduler_class):
        """Test scheduler is only initialized once."""
        result1 = scheduler_module.init_scheduler('0 2 * * *')
        result2 = scheduler_module.init_scheduler('0 3 * * *')

        assert result1 == result2
        mock_scheduler_class.assert_called_once()

    @patch('tarkeeper.scheduler.BlockingScheduler')
    def test_init_scheduler_invalid_cron(self, mock_scheduler_class):
        with pytest.raises(ValueError):
            scheduler_module.init_scheduler('not a cron line')

        mock_scheduler_class.assert_not_called()
        assert scheduler_module.scheduler is None


class TestSchedulerLifecycle:
    """Test scheduler start/stop operations."""

    def setup_method(self):
        """Set up before each test."""
        self.mock_scheduler = MagicMock()
        self.mock_scheduler.running = True
        self.mock_scheduler.get_jobs.return_value = []
        scheduler_module.scheduler = self.mock_scheduler

    def teardown_method(self):
        """Clean up after each test."""
        scheduler_module.scheduler = None

    @patch('tarkeeper.scheduler.signal.signal')
    def test_start_scheduler_stops_on_interrupt(self, mock_signal):
        self.mock_scheduler.start.side_effect = KeyboardInterrupt

        scheduler_module.start_scheduler()

        self.mock_scheduler.shutdown.assert_called_once_with(wait=True)
        assert scheduler_module.scheduler is None

    @patch('tarkeeper.scheduler.signal.signal')
    def test_start_scheduler_stops_on_sigterm(self, mock_signal):
        self.mock_scheduler.start.side_effect = SystemExit(0)

        scheduler_module.start_scheduler()

        self.mock_scheduler.shutdown.assert_called_once_with(wait=True)

    def test_start_scheduler_not_initialized(self):
        scheduler_module.scheduler = None

        with pytest.raises(RuntimeError, match="not initialized"):
            scheduler_module.start_scheduler()

    def test_stop_scheduler_not_running(self):
        self.mock_scheduler.running = False

        scheduler_module.stop_scheduler()

        self.mock_scheduler.shutdown.assert_not_called()
        assert scheduler_module.scheduler is None


class TestExecuteBackupWrapper:
    """Test the job function run by the scheduler."""

    @patch('tarkeeper.scheduler.execute_backup')
    def test_wrapper_runs_backup(self, mock_execute):
        mock_execute.return_value = RunResult(Outcome.SUCCESS)

        scheduler_module._execute_backup_wrapper('a.conf', None, '/dst')

        mock_execute.assert_called_once_with('a.conf', None, '/dst')

    @patch('tarkeeper.scheduler.execute_backup')
    def test_wrapper_survives_crash(self, mock_execute):
        mock_execute.side_effect = RuntimeError("unexpected")

        scheduler_module._execute_backup_wrapper('a.conf', None, None)

        mock_execute.assert_called_once()

    def test_wrapper_end_to_end(self, config_file, lock_path, mock_smtp):
        scheduler_module._execute_backup_wrapper(str(config_file), None, None)

        mock_smtp.send_message.assert_called_once()
        assert not lock_path.exists()
