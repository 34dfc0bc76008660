# -*- coding: utf-8 -*-
# SPDX-License-Identifier: FAFOL

"""Hours, earnings and end-of-period projections from Meazure entries"""

from dataclasses import asdict, dataclass
from datetime import date as Date
from typing import Any, Dict, List, Mapping, Optional

import arrow
from rich.console import Console, ConsoleOptions, RenderResult
from rich.table import Table

from meazure import ProjectionError, TimeEntry


DATE_FORMAT = 'YYYY-MM-DD'
DEFAULT_RATE_KEY = '_default'
TOTAL_KEY = 'total'
TOTAL_PROJECT_KEY = 'total (project)'


def rate_for(rates: Mapping[str, float], project: str) -> float:
    """Hourly rate for a project, falling back to `_default` and then 0."""
    if project in rates:
        return rates[project]
    return rates.get(DEFAULT_RATE_KEY, 0.0)


def parse_day(day_str: str) -> Date:
    """Parse a YYYY-MM-DD range bound into a calendar date."""
    try:
        return arrow.get(day_str, DATE_FORMAT).date()
    except (ValueError, TypeError) as err:
        raise ProjectionError(f'Bad date {day_str!r}, expected {DATE_FORMAT}') from err


@dataclass
class Earnings:
    """Running hours and earnings for one project (or the total)."""
    hours: float = 0.0
    earnings: float = 0.0

    def merge(self, hours: float, earnings: float) -> None:
        self.hours += hours
        self.earnings += earnings


@dataclass
class Projection:
    week_days: int
    week_days_past: int
    percent_complete: int
    avg_earnings_per_day: float
    avg_hours_per_day: float
    estimated_earnings: float
    estimated_hours: float

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        # pylint: disable=unused-argument
        yield f'[b]Projections:[/b] {self.percent_complete}% of the period done'
        my_table = Table('Attribute', 'Value')
        my_table.add_row('week_days', str(self.week_days))
        my_table.add_row('week_days_past', str(self.week_days_past))
        my_table.add_row('avg_hours_per_day', f'{self.avg_hours_per_day:.2f}')
        my_table.add_row('avg_earnings_per_day', f'{self.avg_earnings_per_day:.2f}')
        my_table.add_row('estimated_hours', f'{self.estimated_hours:.2f}')
        my_table.add_row('estimated_earnings', f'{self.estimated_earnings:.2f}')
        yield my_table


@dataclass
class Report:
    hours: Dict[str, Earnings]
    projections: Projection

    def to_dict(self) -> Dict[str, Any]:
        """The JSON report, projects by name with the total last."""
        projects = sorted(key for key in self.hours if key != TOTAL_KEY)
        hours = {key: asdict(self.hours[key]) for key in projects}
        hours[TOTAL_KEY] = asdict(self.hours[TOTAL_KEY])
        return {
            'hours': hours,
            'projections': asdict(self.projections),
        }

    def __rich_console__(self, console: Console, options: ConsoleOptions) -> RenderResult:
        # pylint: disable=unused-argument
        my_table = Table('Project', 'Hours', 'Earnings')
        for project, earnings in self.to_dict()['hours'].items():
            label = f'[b]{project}[/b]' if project == TOTAL_KEY else project
            my_table.add_row(label,
                             f"{earnings['hours']:.2f}",
                             f"{earnings['earnings']:.2f}")
        yield my_table
        yield self.projections


def aggregate_hours(entries: List[TimeEntry], rates: Mapping[str, float]) -> Dict[str, Earnings]:
    """Fold entries into per-project and total hours and earnings.

    Args:
        entries (List[TimeEntry]): the entries to sum, in any order
        rates (Mapping[str, float]): hourly rate per project, with `_default`

    Returns:
        Dict[str, Earnings]: one bucket per project plus `total`; a project
            itself named `total` is reported as `total (project)`
    """
    agg: Dict[str, Earnings] = {}
    # a fixed fold order keeps the float sums identical for any input order
    for entry in sorted(entries, key=lambda e: (e.project, str(e.date), e.hours)):
        rate = rate_for(rates, entry.project)
        bucket = TOTAL_PROJECT_KEY if entry.project == TOTAL_KEY else entry.project
        for key in (bucket, TOTAL_KEY):
            agg.setdefault(key, Earnings()).merge(entry.hours, entry.hours * rate)
    return agg


def count_week_days(from_day: Date, to_day: Date, today: Date):
    """Count Monday-Friday days in the range, and those before `today`.

    Returns:
        tuple[int, int]: (week_days, week_days_past)
    """
    week_days = 0
    week_days_past = 0
    if from_day > to_day:
        return week_days, week_days_past
    for day in arrow.Arrow.range('day', arrow.get(from_day), arrow.get(to_day)):
        if day.weekday() < 5:
            week_days += 1
            if day.date() < today:
                week_days_past += 1
    return week_days, week_days_past


def make_projections(entries: List[TimeEntry],
                     total: Earnings,
                     from_date: str,
                     to_date: str,
                     today: Optional[Date] = None) -> Projection:
    """Project the full period from the weekdays booked so far.

    Today counts as elapsed only once an entry is booked for it.

    Args:
        entries (List[TimeEntry]): the period's entries
        total (Earnings): the `total` bucket from `aggregate_hours`
        from_date (str): first day of the period, YYYY-MM-DD
        to_date (str): last day of the period, YYYY-MM-DD
        today (date): the local date (default `arrow.now()`)

    Raises:
        ProjectionError: if the period has no weekdays, or none elapsed

    Returns:
        Projection: completion and linear estimates
    """
    if today is None:
        today = arrow.now().date()
    from_day = parse_day(from_date)
    to_day = parse_day(to_date)

    if any(entry.day == today for entry in entries):
        effective_today = arrow.get(today).shift(days=1).date()
    else:
        effective_today = today

    week_days, week_days_past = count_week_days(from_day, to_day, effective_today)
    if week_days == 0:
        raise ProjectionError(f'No weekdays between {from_date} and {to_date}')
    if week_days_past == 0:
        raise ProjectionError(f'No weekdays of {from_date}--{to_date} have passed yet, '
                              'nothing to project from')

    avg_hours_per_day = total.hours / week_days_past
    avg_earnings_per_day = total.earnings / week_days_past
    return Projection(
        week_days=week_days,
        week_days_past=week_days_past,
        percent_complete=100 * week_days_past // week_days,
        avg_earnings_per_day=avg_earnings_per_day,
        avg_hours_per_day=avg_hours_per_day,
        estimated_earnings=avg_earnings_per_day * week_days,
        estimated_hours=avg_hours_per_day * week_days,
    )


def build_report(entries: List[TimeEntry],
                 rates: Mapping[str, float],
                 from_date: str,
                 to_date: str,
                 today: Optional[Date] = None) -> Report:
    hours = aggregate_hours(entries, rates)
    projections = make_projections(entries, hours[TOTAL_KEY], from_date, to_date, today=today)
    return Report(hours=hours, projections=projections)
