from __future__ import annotations

import datetime

# 9:30-16:00 US Eastern expressed in UTC, without daylight-saving adjustment.
MARKET_OPEN_UTC = 14.5
MARKET_CLOSE_UTC = 21.0


def is_market_hours(now: datetime.datetime | None = None) -> bool:
    """Return True when ``now`` falls inside regular US equity trading hours."""
    if now is None:
        now = datetime.datetime.now(datetime.UTC)
    elif now.tzinfo is not None:
        now = now.astimezone(datetime.UTC)

    # Monday=0 ... Saturday=5, Sunday=6
    if now.weekday() >= 5:
        return False

    current_time = now.hour + now.minute / 60
    return MARKET_OPEN_UTC <= current_time < MARKET_CLOSE_UTC
