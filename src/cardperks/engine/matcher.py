from datetime import date
from itertools import combinations

from pydantic import BaseModel, Field

from cardperks.domain.models import Card, Program, WarningCode


class ProgramConflict(BaseModel):
    p1: str
    p2: str


class ProgramValidation(BaseModel):
    valid: bool
    conflicts: list[ProgramConflict] = Field(default_factory=list)


def _covers(program: Program, day: date) -> bool:
    return program.start_date <= day <= program.end_date


def find_applicable_program(card: Card, transaction_date: date) -> Program | None:
    """Most recently started program whose inclusive window holds the date."""
    ordered = sorted(card.programs, key=lambda program: program.start_date, reverse=True)
    return next((program for program in ordered if _covers(program, transaction_date)), None)


def find_fallback_program(card: Card, transaction_date: date) -> tuple[Program, WarningCode] | None:
    """Nearest-boundary program for a date outside every program's window.

    Dates after every program pick the latest-ending one, dates before every program
    the earliest-starting one. Dates in a gap between programs get nothing.
    """
    if not card.programs:
        return None

    latest = max(card.programs, key=lambda program: program.end_date)
    if transaction_date > latest.end_date:
        return latest, WarningCode.PROGRAM_EXPIRED

    earliest = min(card.programs, key=lambda program: program.start_date)
    if transaction_date < earliest.start_date:
        return earliest, WarningCode.PROGRAM_UPCOMING

    return None


def resolve_program(card: Card, transaction_date: date) -> Program | None:
    program = find_applicable_program(card, transaction_date)
    if program is not None:
        return program
    fallback = find_fallback_program(card, transaction_date)
    return fallback[0] if fallback else None


def get_active_programs(card: Card, reference_date: date | None = None) -> list[Program]:
    reference_date = reference_date or date.today()
    return [program for program in card.programs if _covers(program, reference_date)]


def has_overlap(p1: Program, p2: Program) -> bool:
    return p1.start_date <= p2.end_date and p2.start_date <= p1.end_date


def validate_programs(card: Card) -> ProgramValidation:
    conflicts = [
        ProgramConflict(p1=first.name, p2=second.name)
        for first, second in combinations(card.programs, 2)
        if has_overlap(first, second)
    ]
    return ProgramValidation(valid=not conflicts, conflicts=conflicts)


def get_remaining_days(program: Program, today: date | None = None) -> int:
    today = today or date.today()
    return max(0, (program.end_date - today).days)


def is_expired(program: Program, today: date | None = None) -> bool:
    return (today or date.today()) > program.end_date


def is_upcoming(program: Program, today: date | None = None) -> bool:
    return (today or date.today()) < program.start_date
