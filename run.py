#!/usr/bin/env python3
"""
CLI for the Geographic Navigation Sequencer

Usage:
    python run.py --download-data                          # Fetch location_data.json
    python run.py --download-data --force                  # Fetch it again even if present
    python run.py --status                                 # Show current step
    python run.py --status --format query-city --country US
    python run.py --set-pages 3                            # Declare 3 pages for the current step
    python run.py --set-pages 3 --pages 1 2                # ...with pages 1 and 2 already done
    python run.py --page-done 3                            # Mark a page done
    python run.py --next                                   # Advance once the step is completed
    python run.py --add-query "Realtor" "Plumber"          # Add search queries
    python run.py --clear-queries                          # Remove user-added queries
    python run.py --reset                                  # Restart from the first step
    python run.py --reset-all                              # Restart and clear usage flags
    python run.py --debug                                  # Dump sequencer state
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from src.geodata.downloader import DataDownloader, ensure_location_data
from src.geodata.location_data import LocationDataSource
from src.navigation.formats import NavFormat
from src.navigation.sequencer import Sequencer
from src.shared.config_loader import DEFAULT_CONFIG_PATH, load_navigator_config, validate_config
from src.shared.exceptions import DownloadError, NavigatorError
from src.shared.logging_config import setup_logging
from src.store.entity_store import EntityStore


def setup_parser() -> argparse.ArgumentParser:
    """Setup command line argument parser"""
    parser = argparse.ArgumentParser(
        description="Geographic Navigation Sequencer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    # Setup
    data_group = parser.add_argument_group('data', 'Bootstrap dataset')
    data_group.add_argument(
        '--download-data',
        action='store_true',
        help='Download countries, cities and postal codes into the location data file'
    )
    data_group.add_argument(
        '--output', '-o',
        type=str,
        default=None,
        help='Output path for --download-data (default: data.location_file from config)'
    )
    data_group.add_argument(
        '--force',
        action='store_true',
        help='With --download-data, download even if the location data file already has data'
    )

    # Sequence selection
    parser.add_argument(
        '--format', '-f',
        type=str,
        choices=[f.value for f in NavFormat],
        default=None,
        help='Navigation format (default: navigation.format from config)'
    )
    parser.add_argument(
        '--country', '-c',
        type=str,
        default=None,
        help='Target country ISO2 code or "all" (default: navigation.target_country from config)'
    )
    parser.add_argument(
        '--db',
        type=str,
        default=None,
        help='SQLite database path (default: database.path from config)'
    )
    parser.add_argument(
        '--config',
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help=f'Configuration file (default: {DEFAULT_CONFIG_PATH})'
    )

    # Cursor
    cursor_group = parser.add_argument_group('cursor', 'Step and pagination control')
    cursor_group.add_argument(
        '--status',
        action='store_true',
        help='Print the current step as JSON'
    )
    cursor_group.add_argument(
        '--next',
        action='store_true',
        help='Advance to the next step (no-op until the current step is completed)'
    )
    cursor_group.add_argument(
        '--set-pages',
        type=int,
        default=None,
        metavar='TOTAL',
        help='Declare the page count of the current step'
    )
    cursor_group.add_argument(
        '--pages',
        type=int,
        nargs='+',
        default=[],
        metavar='N',
        help='Pages already done, used with --set-pages'
    )
    cursor_group.add_argument(
        '--page-done',
        type=int,
        default=None,
        metavar='N',
        help='Mark one page of the current step as done'
    )

    # Entities
    entity_group = parser.add_argument_group('queries', 'Search query management')
    entity_group.add_argument(
        '--add-query',
        type=str,
        nargs='+',
        default=[],
        metavar='TEXT',
        help='Add search queries (used by query-* formats)'
    )
    entity_group.add_argument(
        '--clear-queries',
        action='store_true',
        help='Delete user-added queries'
    )

    # Resets
    reset_group = parser.add_mutually_exclusive_group()
    reset_group.add_argument(
        '--reset',
        action='store_true',
        help='Delete all sessions and restart from the first step'
    )
    reset_group.add_argument(
        '--reset-all',
        action='store_true',
        help='Like --reset, and also clear usage flags'
    )

    # Logging
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Print sequencer state and log at DEBUG level'
    )
    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Log file path (default: logging.file from config)'
    )

    return parser


def apply_cli_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Let command line options take precedence over file and env settings"""
    overrides = {
        ('database', 'path'): args.db,
        ('navigation', 'format'): args.format,
        ('navigation', 'target_country'): args.country,
        ('logging', 'file'): args.log_file,
        ('logging', 'level'): 'DEBUG' if args.debug else None,
    }
    for (section, key), value in overrides.items():
        # Malformed sections are reported by validate_config()
        if value and isinstance(config.get(section), dict):
            config[section][key] = value
    return config


def validate_cli_options(args: argparse.Namespace) -> List[str]:
    """Validate option combinations argparse cannot express"""
    errors = []
    if args.pages and args.set_pages is None:
        errors.append("--pages requires --set-pages")
    if args.set_pages is not None and args.set_pages < 1:
        errors.append("--set-pages must be at least 1")
    if args.page_done is not None and args.page_done < 1:
        errors.append("--page-done must be at least 1")
    return errors


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def download_data(config: Dict[str, Any], output: Optional[str], force: bool = False) -> int:
    output_path = output or config['data']['location_file']
    downloader = DataDownloader(
        target_countries=config['download']['countries'],
        timeout=config['download']['timeout'],
    )
    try:
        if force:
            downloader.download_and_process(output_path)
        elif not ensure_location_data(output_path, downloader):
            print(f"Location data already present at {output_path} (use --force to download again)")
            return 0
    except DownloadError as e:
        logging.error(f"Download failed: {e}")
        return 1
    print(f"Location data written to {output_path}")
    return 0


def run_sequencer(config: Dict[str, Any], args: argparse.Namespace) -> int:
    """Apply the requested actions and print the resulting step"""
    store = EntityStore(config['database']['path'])
    try:
        sequencer = Sequencer(store, LocationDataSource(config['data']['location_file']))
        sequencer.init(config['navigation']['format'], config['navigation']['target_country'])

        if args.reset_all:
            sequencer.reset_all()
        elif args.reset:
            sequencer.reset_nav()

        if args.clear_queries:
            sequencer.clear_queries()
        if args.add_query:
            added = sequencer.add_queries(args.add_query)
            logging.info(f"{added} new queries")

        if args.set_pages is not None:
            sequencer.set_pagination(args.set_pages, args.pages)
        if args.page_done is not None:
            sequencer.mark_page_done(args.page_done)
        if args.next:
            sequencer.advance()

        if args.debug:
            print_json(sequencer.debug_info())

        response = sequencer.current()
        if response is None:
            print_json({'exhausted': sequencer.is_exhausted, 'steps': len(sequencer.sequence)})
        else:
            print_json(response.to_dict())
        return 0
    finally:
        store.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = setup_parser()
    args = parser.parse_args(argv)

    try:
        config = load_navigator_config(args.config)
    except ValueError as e:
        print(f"Configuration error: {e}")
        return 1
    config = apply_cli_overrides(config, args)

    config_errors = validate_config(config)
    if config_errors:
        print("Configuration errors found:")
        for error in config_errors:
            print(f"  - {error}")
        return 1

    cli_errors = validate_cli_options(args)
    if cli_errors:
        print("Invalid command line options:")
        for error in cli_errors:
            print(f"  - {error}")
        return 1

    setup_logging(
        config['logging']['file'],
        level=config['logging']['level'],
        console_level='DEBUG' if args.debug else None,
    )

    try:
        if args.download_data:
            return download_data(config, args.output, args.force)
        return run_sequencer(config, args)

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
    except (NavigatorError, ValueError) as e:
        logging.error(f"Navigation failed: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
