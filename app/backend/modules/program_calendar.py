import logging
from datetime import date, timedelta
from enum import Enum
from typing import Iterator, List, Sequence

from pydantic import BaseModel

from ..models.db_models import InternshipProgram

logger = logging.getLogger(__name__)

# date.weekday(): Monday == 0 ... Sunday == 6
WEEKEND_DAYS = frozenset({5, 6})


class DayStatus(str, Enum):
    VALID = "valid"
    OUTSIDE_PERIOD = "outside_period"
    DISABLED = "disabled"
    WEEKEND = "weekend"


class ProgramDate(BaseModel):
    date: date
    is_disabled: bool
    is_weekend: bool


class MergedProgramDate(ProgramDate):
    programs: List[str]


def is_weekend(day: date) -> bool:
    return day.weekday() in WEEKEND_DAYS


def program_day_status(day: date, program: InternshipProgram, exclude_weekends: bool = True) -> DayStatus:
    """
    Classifies a calendar date against a program.

    The range check comes first, so a date outside the program is reported as
    such even when it also falls on a weekend. Explicitly disabled dates and the
    weekend rule are independent; neither overrides the other.
    """
    if day < program.start_date or day > program.end_date:
        return DayStatus.OUTSIDE_PERIOD
    if day in program.disabled_days:
        return DayStatus.DISABLED
    if exclude_weekends and is_weekend(day):
        return DayStatus.WEEKEND
    return DayStatus.VALID


def is_valid_program_day(day: date, program: InternshipProgram, exclude_weekends: bool = True) -> bool:
    """Returns True when a diary report may be submitted for ``day``."""
    return program_day_status(day, program, exclude_weekends) is DayStatus.VALID


def iter_program_days(program: InternshipProgram) -> Iterator[date]:
    current = program.start_date
    while current <= program.end_date:
        yield current
        current += timedelta(days=1)


def generate_program_dates(program: InternshipProgram) -> List[ProgramDate]:
    """One entry per calendar day from start_date to end_date, both inclusive."""
    disabled = set(program.disabled_days)
    return [
        ProgramDate(date=day, is_disabled=day in disabled, is_weekend=is_weekend(day))
        for day in iter_program_days(program)
    ]


def merge_program_dates(programs: Sequence[InternshipProgram]) -> List[MergedProgramDate]:
    """
    Merges the calendars of several programs linked to the same group.
    A date disabled by any program stays disabled.
    """
    merged = {}
    for program in programs:
        for program_date in generate_program_dates(program):
            existing = merged.get(program_date.date)
            if existing:
                existing.is_disabled = existing.is_disabled or program_date.is_disabled
                existing.programs.append(program.name)
            else:
                merged[program_date.date] = MergedProgramDate(**program_date.model_dump(), programs=[program.name])

    return [merged[day] for day in sorted(merged)]
