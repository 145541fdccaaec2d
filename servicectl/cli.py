"""
Command-line entry point.

Usage:
    servicectl [--config PATH] [--platform NAME] [-v] <install|uninstall|start|stop|restart|status>
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from servicectl.config import CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE, load_descriptor
from servicectl.controller import control
from servicectl.exceptions import ConfigurationMissingError, InvalidDescriptorError, ServiceOperation

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
VERBS = [operation.value for operation in ServiceOperation]

EXIT_CONFIGURATION_ERROR = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='servicectl',
        description='Install and control a program as a native OS service '
                    '(systemd, launchd or the Windows Service Control Manager).',
    )
    parser.add_argument(
        '--config', type=Path, default=None,
        help=f'JSON service configuration (default: ${CONFIG_ENV_VAR} or ./{DEFAULT_CONFIG_FILE})',
    )
    parser.add_argument(
        '--platform', default=None,
        help='target platform: linux, darwin or windows (default: the running one)',
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='enable debug logging')
    parser.add_argument('verb', nargs='?', metavar='{' + ','.join(VERBS) + '}', help='operation to run')
    return parser


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verb not in VERBS:
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    configure_logging(args.verbose)
    logger = logging.getLogger('servicectl')

    try:
        descriptor = load_descriptor(args.config)
    except (ConfigurationMissingError, InvalidDescriptorError) as e:
        logger.error('%s', e)
        return EXIT_CONFIGURATION_ERROR

    outcome = control(args.verb, descriptor, args.platform, logging.getLogger(f'servicectl.{descriptor.name}'))
    print(outcome)
    return outcome.status.exit_code


if __name__ == '__main__':
    sys.exit(main())
