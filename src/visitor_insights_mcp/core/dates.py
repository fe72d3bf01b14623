"""Date token handling for analytics date ranges.

The analytics source accepts literal ``YYYY-MM-DD`` dates and the relative
tokens ``today``, ``yesterday`` and ``<N>daysAgo``. Tokens are passed through
to the source unchanged; they are only resolved locally to check ordering.
"""

import re
from datetime import date, datetime, timedelta

from visitor_insights_mcp.core.exceptions import InvalidDateRange

LITERAL_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
DAYS_AGO_PATTERN = re.compile(r"([0-9]+)daysAgo")


def resolve_date_token(token: str, today: date | None = None) -> date:
    """Resolve a date token to a calendar date.

    Args:
        token: ``YYYY-MM-DD``, ``today``, ``yesterday`` or ``<N>daysAgo``
        today: Reference date for relative tokens (defaults to the local date)

    Returns:
        The resolved date

    Raises:
        InvalidDateRange: If the token is not recognised
    """
    reference = today or date.today()

    if token == "today":
        return reference
    if token == "yesterday":
        return reference - timedelta(days=1)

    days_ago = DAYS_AGO_PATTERN.fullmatch(token)
    if days_ago:
        try:
            return reference - timedelta(days=int(days_ago.group(1)))
        except (OverflowError, ValueError):
            raise InvalidDateRange(f"Date offset out of range: {token}")

    if LITERAL_DATE_PATTERN.fullmatch(token):
        try:
            return datetime.strptime(token, "%Y-%m-%d").date()
        except ValueError:
            raise InvalidDateRange(f"Invalid calendar date: {token}")

    raise InvalidDateRange(
        f"Invalid date format: {token}. Expected YYYY-MM-DD, 'today', "
        "'yesterday' or '<N>daysAgo'"
    )


def validate_date_range(
    start_date: str, end_date: str, today: date | None = None
) -> tuple[date, date]:
    """Validate that both tokens parse and that start is not after end."""
    start = resolve_date_token(start_date, today)
    end = resolve_date_token(end_date, today)
    if start > end:
        raise InvalidDateRange(
            f"start_date {start_date} must be before or equal to end_date {end_date}"
        )
    return start, end
