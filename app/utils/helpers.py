"""Shared request-parsing helpers.

parse_date_input: strict date parsing, raises ValueError
"""
from datetime import date, datetime


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Accepts YYYY-MM-DD or DD.MM.YYYY; empty input → None. Callers turn the
    ValueError into a ValidationError so a malformed date is rejected rather
    than silently dropped.
    """
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        try:
            return datetime.strptime(str(value), "%d.%m.%Y").date()
        except ValueError as exc:
            raise ValueError(
                "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
            ) from exc
