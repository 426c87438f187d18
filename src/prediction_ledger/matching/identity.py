"""Turn raw schedule rows into matches with stable start times.

Schedule tables only print a kick-off time on the first match of each slot;
following rows leave the cell blank and inherit it. A cancelled match shows
"Abgesagt" instead of a time and also inherits the previous time, so its
start time depends on its position in the table. Because the start time is
part of the ledger key, lookups for cancelled matches should fall back to
``PredictionLedger.get_by_teams_only``.

Only the last seen time is tracked. A blank or cancelled row that follows a
day break still inherits the previous day's time.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from prediction_ledger.models.prediction import Match

logger = logging.getLogger(__name__)

CANCELLED_MARKER = "abgesagt"
SCHEDULE_TIMEZONE = ZoneInfo("Europe/Berlin")
SCHEDULE_TIME_FORMAT = "%d.%m.%y %H:%M"

# Start time for cancelled or blank rows before any time has been seen
SENTINEL_TIME = datetime(1970, 1, 1, tzinfo=UTC)


class RawMatchRow(BaseModel):
    """One schedule row as scraped: time cell text plus team names."""

    time_text: str = ""
    home_team: str
    away_team: str
    matchday: int | None = None


def is_cancelled_text(time_text: str) -> bool:
    """True when the time cell marks the match as cancelled."""
    return time_text.strip().lower() == CANCELLED_MARKER


def parse_match_time(time_text: str) -> datetime | None:
    """Parse a "dd.mm.yy HH:MM" schedule time in German local time.

    Returns None for blank or unparseable text.
    """
    text = time_text.strip()
    if not text:
        return None
    try:
        naive = datetime.strptime(text, SCHEDULE_TIME_FORMAT)
    except ValueError:
        return None
    return naive.replace(tzinfo=SCHEDULE_TIMEZONE)


def resolve_match_rows(
    rows: Iterable[RawMatchRow], matchday: int | None = None
) -> list[Match]:
    """Resolve start times and cancellation for rows in table order."""
    last_known_time = SENTINEL_TIME
    matches: list[Match] = []
    for row in rows:
        cancelled = is_cancelled_text(row.time_text)
        if not cancelled:
            parsed = parse_match_time(row.time_text)
            if parsed is not None:
                last_known_time = parsed
            elif row.time_text.strip():
                logger.warning(
                    "Unrecognised time %r for %s vs %s, inheriting previous time",
                    row.time_text,
                    row.home_team,
                    row.away_team,
                )
        else:
            logger.info(
                "%s vs %s is cancelled, using inherited time %s",
                row.home_team,
                row.away_team,
                last_known_time.isoformat(),
            )
        matches.append(
            Match(
                home_team=row.home_team,
                away_team=row.away_team,
                starts_at=last_known_time,
                matchday=row.matchday if row.matchday is not None else matchday,
                is_cancelled=cancelled,
            )
        )
    return matches
