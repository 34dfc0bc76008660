# -*- coding: utf-8 -*-
# SPDX-License-Identifier: FAFOL
# pylint: disable=logging-fstring-interpolation

"""Summarize Meazure hours by project and add some projections"""

import argparse
import logging
import sys

import arrow
import requests
from rich import print_json
from rich.console import Console
from rich.logging import RichHandler

from meazure import MeazureError, make_client
from meazure_config import CONFIG_FILE_NAME, get_config
from meazure_report import DATE_FORMAT, build_report


FORMAT = "%(message)s"

stderr = Console(stderr=True)


def say(message: str) -> None:
    """Status line on stderr, so stdout only ever carries the report"""
    stderr.print(message, markup=False, highlight=False)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level="DEBUG" if verbose else "WARNING",
        format=FORMAT,
        datefmt="[%X]",
        handlers=[RichHandler(console=stderr,
                              rich_tracebacks=True,
                              tracebacks_suppress=[requests])]
    )
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_current_month(now=None):
    """Calculate the bounds of the current local month.

    Args:
        now (arrow): the moment to take the month from (default `arrow.now()`)

    Returns a tuple with:
        from_date (str): the first day of the month, YYYY-MM-DD
        to_date (str): the last day of the month, YYYY-MM-DD

    """
    if now is None:
        now = arrow.now()
    start, end = now.span('month')
    return (start.format(DATE_FORMAT), end.format(DATE_FORMAT))


def iso_day(value: str) -> str:
    """argparse type for YYYY-MM-DD dates"""
    try:
        return arrow.get(value, DATE_FORMAT).format(DATE_FORMAT)
    except (ValueError, TypeError) as err:
        raise argparse.ArgumentTypeError(
            f'{value!r} is not a date like 2016-01-31') from err


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='meazure',
        description='Summarizes meazure hours by project and adds some projections.')
    parser.add_argument('-f', '--from', dest='from_date', type=iso_day,
                        help='From date e.g. 2016-01-01. Defaults to the beginning of the month')
    parser.add_argument('-t', '--to', dest='to_date', type=iso_day,
                        help='To date e.g. 2016-01-31. Defaults to the end of the month')
    parser.add_argument('-c', '--config', default=CONFIG_FILE_NAME,
                        help=f'Config file. Defaults to {CONFIG_FILE_NAME}')
    parser.add_argument('--format', choices=('json', 'table'), default='json',
                        help='Print the report as JSON (default) or as tables')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Debug logging')
    parser.add_argument('--strict', action='store_true',
                        help='Exit with status 1 on errors instead of 0')
    return parser.parse_args(argv)


def main(argv=None, session: requests.Session = None) -> int:
    """Main function"""
    args = parse_args(argv)
    setup_logging(args.verbose)

    from_date, to_date = get_current_month()
    from_date = args.from_date or from_date
    to_date = args.to_date or to_date
    error_status = 1 if args.strict else 0

    try:
        config = get_config(args.config)
        say(f'{config.uname}: {from_date} - {to_date}')

        client = make_client(config, session=session)
        handle = client.login(config.credentials)
        entries = client.fetch(handle, from_date, to_date)
        if not entries:
            say('No entries for that date range')
            return 0

        report = build_report(entries, config.rates, from_date, to_date)
    except MeazureError as err:
        logging.getLogger('meazure').debug('Run failed', exc_info=True)
        say(f'Error querying meazure: {err}')
        return error_status

    if args.format == 'table':
        Console().print(report)
    else:
        print_json(data=report.to_dict())
    return 0


if __name__ == '__main__':
    sys.exit(main())
