from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

# Standard cron numbering: 0 and 7 are Sunday.  APScheduler counts from
# Monday, so numeric weekdays are rewritten as names before parsing.
_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")
_RANGE = re.compile(r"(\d+)-(\d+)")

_MAX_LOOKBACK = timedelta(days=366 * 5)


def _translate_day_of_week(field: str) -> str:
    names: list[str] = []
    for part in field.split(","):
        body, slash, step = part.partition("/")
        if body == "*" and not slash:
            return "*"
        match = _RANGE.fullmatch(body)
        if body == "*":
            start, end = 0, 6
        elif match:
            start, end = int(match.group(1)), int(match.group(2))
        elif body.isdigit():
            start = int(body)
            end = 6 if slash else start
        else:
            names.append(part)
            continue
        if start > end or end > 7:
            raise ValueError(f"invalid day-of-week field: {field!r}")
        stride = int(step) if slash else 1
        if stride < 1:
            raise ValueError(f"invalid day-of-week step: {field!r}")
        names.extend(_WEEKDAYS[day] for day in range(start, end + 1, stride))
    return ",".join(dict.fromkeys(names))


def build_trigger(expr: str, timezone: Optional[str] = None) -> BaseTrigger:
    """Build a trigger from a five-field crontab expression.

    When both day-of-month and day-of-week are restricted, cron fires on
    days matching either field, so the two are split into separate
    triggers joined with :class:`OrTrigger`.
    """
    fields = expr.split()
    if len(fields) != 5:
        raise ValueError(f"expected 5 cron fields, got {len(fields)}: {expr!r}")
    fields[4] = _translate_day_of_week(fields[4])
    if fields[2] == "*" or fields[4] == "*":
        return CronTrigger.from_crontab(" ".join(fields), timezone=timezone)
    by_day = fields[:4] + ["*"]
    by_weekday = fields[:2] + ["*", fields[3], fields[4]]
    return OrTrigger([
        CronTrigger.from_crontab(" ".join(by_day), timezone=timezone),
        CronTrigger.from_crontab(" ".join(by_weekday), timezone=timezone),
    ])


def last_fire_time(trigger: BaseTrigger, now: datetime) -> Optional[datetime]:
    """Return the most recent fire time at or before ``now``.

    ``now`` must be timezone aware.  The search window doubles from one
    minute up to five years; ``None`` means the rule never fired in that
    span.
    """
    window = timedelta(minutes=1)
    while True:
        window = min(window, _MAX_LOOKBACK)
        fire = trigger.get_next_fire_time(None, now - window)
        if fire is not None and fire <= now:
            while True:
                following = trigger.get_next_fire_time(fire, now)
                if following is None or following > now:
                    return fire
                fire = following
        if window == _MAX_LOOKBACK:
            return None
        window *= 2
