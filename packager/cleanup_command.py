"""Run a single package sweep from the command line.

Usage:
  python -m packager.cleanup_command [--staging-ttl-hours N]

Deletes expired packages and their archives, then exits. Intended for cron
when the in-process sweep task is disabled.
"""
import argparse
import sys

from common.logging_config import setup_logging
from packager.database import init_database
from packager.sweeper import PackageSweeper
from packager import utils


def parse_args(argv):
    parser = argparse.ArgumentParser(description="Delete expired packages and their files")
    parser.add_argument(
        '--staging-ttl-hours',
        type=int,
        default=None,
        help='Also purge staged uploads idle for this many hours (0 disables)',
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    logger = setup_logging('packager')

    init_database()

    sweeper = PackageSweeper(staging_ttl_hours=args.staging_ttl_hours)
    report = sweeper.run_once()

    logger.info("Expired packages cleaned up.")
    logger.info(f"Deleted packages: {report.deleted}")
    logger.info(f"Time of cleanup: {utils.utc_now().isoformat()}")

    return 1 if report.failed else 0


if __name__ == '__main__':
    sys.exit(main())
