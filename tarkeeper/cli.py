"""Command line entry point for tarkeeper."""

import sys
import argparse
import logging
from typing import List, Optional

from tarkeeper import __version__, configure_logging
from tarkeeper.config import Config
from tarkeeper.backup.executor import Outcome, RunResult, execute_backup


logger = logging.getLogger(__name__)

DESCRIPTION = "Create compressed backups with logging, rotation, and notifications."


class BackupArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on bad arguments."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"Error: {message}\n")


def _required_value(value: str) -> str:
    if not value or value.startswith('-'):
        raise argparse.ArgumentTypeError("argument is missing")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = BackupArgumentParser(
        prog='tarkeeper',
        description=DESCRIPTION,
        allow_abbrev=False
    )
    parser.add_argument(
        '-c', '--config', metavar='FILE', type=_required_value,
        help=f"Path to a custom configuration file. (Default: {Config.CONFIG_FILE})"
    )
    parser.add_argument(
        '-s', '--source', metavar='DIR', type=_required_value,
        help="Override the source directory specified in the config file."
    )
    parser.add_argument(
        '-d', '--destination', metavar='DIR', type=_required_value,
        help="Override the backup destination directory."
    )
    parser.add_argument(
        '--cron', metavar='EXPR',
        help="Stay running and back up on this crontab schedule, e.g. '0 2 * * *'."
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run tarkeeper.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Process exit status: 0 on success, 1 on any fatal condition
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # --help and --version exit 0, argument errors exit 1
        if e.code:
            return RunResult(Outcome.ARGUMENT_ERROR).exit_code
        return 0

    configure_logging()

    if args.cron:
        from tarkeeper.scheduler import init_scheduler, start_scheduler

        try:
            init_scheduler(args.cron, args.config, args.source, args.destination)
        except ValueError as e:
            parser.print_usage(sys.stderr)
            print(f"Error: invalid cron expression {args.cron!r}: {e}", file=sys.stderr)
            return RunResult(Outcome.ARGUMENT_ERROR).exit_code
        logger.info(f"Starting tarkeeper {__version__} in cron mode")
        start_scheduler()
        return 0

    result = execute_backup(args.config, args.source, args.destination)
    return result.exit_code


if __name__ == '__main__':
    sys.exit(main())
