#!/usr/bin/env python3
"""
Transfer favorites and playlists between Tidal, Qobuz and Spotify accounts.

Source and target accounts are read from a credentials file (credentials.md
by default) or from environment variables of the same names.
"""

import argparse
import sys
from datetime import datetime
from typing import Dict, List, Optional

from tunetransfer.errors import AuthExpired
from tunetransfer.library import export_library, fetch_library, restore_library, save_export
from tunetransfer.models import TRANSFER_ORDER, ItemType, Provider
from tunetransfer.providers import connect
from tunetransfer.providers.base import CatalogAdapter
from tunetransfer.report import TransferReport
from tunetransfer.transfer_service import TransferOptions, TransferService
from tunetransfer.utils.credentials import CredentialsError, min_interval_for, parse_credentials
from tunetransfer.utils.logger import setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Transfer favorites and playlists between streaming accounts',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dry run (match everything, change nothing)
  python transfer.py --dry-run

  # Only tracks and albums
  python transfer.py --types tracks albums

  # Back up the source library, then restore it into the target later
  python transfer.py --export backup.json
  python transfer.py --restore backup.json
        """
    )

    parser.add_argument(
        '--types',
        nargs='+',
        choices=[t.value for t in TRANSFER_ORDER],
        default=None,
        help='Item types to transfer (default: all)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Search and match without writing to the target account'
    )
    parser.add_argument(
        '--fallback-first-result',
        action='store_true',
        help='Use the first search result when no candidate scores high enough'
    )
    parser.add_argument(
        '--no-update-existing',
        action='store_true',
        help='Always create new playlists even if one with the same name exists'
    )
    parser.add_argument(
        '--credentials',
        default='credentials.md',
        help='Path to credentials file (default: credentials.md)'
    )
    parser.add_argument(
        '--log-file',
        default=None,
        help='Path to log file (default: transfer_logs/transfer_<timestamp>.log)'
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        '--export',
        metavar='PATH',
        help='Export the source library to a JSON file and exit'
    )
    mode.add_argument(
        '--restore',
        metavar='PATH',
        help='Restore a JSON export into the target account'
    )
    return parser


def connect_side(creds: Dict[str, str], side: str, logger) -> CatalogAdapter:
    """Authenticate the SOURCE or TARGET account described in the credentials."""
    provider = Provider(creds[f'{side}_PROVIDER'].strip().lower())
    options = {'min_interval': min_interval_for(creds, provider.value)}
    if provider == Provider.TIDAL:
        options['country_code'] = creds.get('TIDAL_COUNTRY_CODE')
    elif provider == Provider.QOBUZ:
        options['app_id'] = creds.get('QOBUZ_APP_ID')

    logger.info(f"Connecting {side.lower()} account ({provider.value})...")
    return connect(provider, creds[f'{side}_TOKEN'], user_id=creds.get(f'{side}_USER_ID'), **options)


def save_report(report: TransferReport, operation: str, logger) -> None:
    report_path = f"transfer_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
    report.save_to_file(report_path)
    logger.info(f"Report saved to: {report_path}")

    if report.failures:
        logger.info("\n" + report.format_failures(operation=operation))


def run(args: argparse.Namespace) -> int:
    """Execute the requested operation and return the exit code."""
    log_file = args.log_file
    if log_file is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = f"transfer_logs/transfer_{timestamp}.log"
    logger = setup_logger(log_file=log_file)
    logger.info(f"📝 Transfer log file: {log_file}")

    item_types: Optional[List[ItemType]] = [ItemType(t) for t in args.types] if args.types else None
    options = TransferOptions(
        dry_run=args.dry_run,
        fallback_to_first_result=args.fallback_first_result,
        update_existing=not args.no_update_existing
    )

    if args.export:
        required = ['SOURCE_PROVIDER', 'SOURCE_TOKEN']
    elif args.restore:
        required = ['TARGET_PROVIDER', 'TARGET_TOKEN']
    else:
        required = None

    operation = "restore" if args.restore else "transfer"
    try:
        logger.info(f"Loading credentials from {args.credentials}")
        creds = parse_credentials(args.credentials, required_keys=required)

        if args.export:
            source = connect_side(creds, 'SOURCE', logger)
            library = fetch_library(source, item_types)
            save_export(export_library(library, source.provider), args.export)
            logger.info("\n✅ Export completed successfully!")
            return 0

        if args.restore:
            target = connect_side(creds, 'TARGET', logger)
            report = restore_library(target, args.restore, item_types, options=options)
        else:
            source = connect_side(creds, 'SOURCE', logger)
            target = connect_side(creds, 'TARGET', logger)
            library = fetch_library(source, item_types)
            service = TransferService(source, target, options=options)
            report = service.run(library, item_types)

        save_report(report, operation, logger)

        if report.failed > 0:
            logger.warning("\n⚠️  Some items failed to transfer. See the failure report above.")
            return 1
        if report.skipped > 0:
            logger.info("\n✅ Transfer completed with some items not found on the target.")
        else:
            logger.info("\n✅ Transfer completed successfully!")
        return 0

    except AuthExpired as e:
        logger.error(f"\n❌ {e}")
        logger.error("Your access token was rejected or has expired. Log in again and update the credentials.")
        if e.report is not None:
            save_report(e.report, operation, logger)
        return 1
    except CredentialsError as e:
        logger.error(f"\n❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("\n\n⚠️  Transfer interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"\n❌ Fatal error: {e}")
        return 1


def main(argv: Optional[List[str]] = None):
    """Main entry point for the transfer CLI."""
    args = build_parser().parse_args(argv)
    sys.exit(run(args))


if __name__ == '__main__':
    main()
