"""Query window selection.

From the current history, picks a small fixed set of range and instant
queries that exercise both recent data (likely served from ingesters and
the results cache) and older data (likely served from long-term storage
and crossing compaction boundaries).
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Tuple

from canary.lib.errors import NoQueryableRangeError
from canary.lib.history import MetricHistory
from canary.lib.timeutil import max_time, min_time, rand_time

logger = logging.getLogger(__name__)

__all__ = ["QueryPlan", "get_query_time_ranges"]

ONE_HOUR = timedelta(hours=1)
ONE_DAY = timedelta(hours=24)
TWENTY_THREE_HOURS = timedelta(hours=23)


@dataclass
class QueryPlan:
    ranges: List[Tuple[datetime, datetime]] = field(default_factory=list)
    instants: List[datetime] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.ranges or self.instants)


def get_query_time_ranges(
    now: datetime,
    history: MetricHistory,
    max_query_age: timedelta,
    rng: random.Random | None = None,
) -> QueryPlan:
    """Return the range and instant queries to run for one profile.

    Raises:
        NoQueryableRangeError: If nothing verifiable has been written, or
            everything written is older than ``max_query_age``.
    """
    if history.query_min_time is None or history.query_max_time is None:
        logger.info("Skipped queries because there's no valid time range to query")
        raise NoQueryableRangeError("no valid time range to query")

    query_max_time = history.query_max_time

    # Honor the configured max age.
    adjusted_min_time = max_time(history.query_min_time, now - max_query_age)
    if query_max_time < adjusted_min_time:
        logger.info(
            "Skipped queries because there's no valid time range to query after "
            "honoring configured max query age (min_valid_time=%s, max_valid_time=%s, "
            "max_query_age=%s)",
            history.query_min_time,
            query_max_time,
            max_query_age,
        )
        raise NoQueryableRangeError(
            "no valid time range to query after honoring configured max query age"
        )

    plan = QueryPlan()

    # Last 1h.
    if query_max_time > now - ONE_HOUR:
        plan.ranges.append(
            (max_time(adjusted_min_time, now - ONE_HOUR), min_time(query_max_time, now))
        )
        plan.instants.append(min_time(query_max_time, now))

    # Last 24h, unless the valid range is already covered by the last 1h.
    if query_max_time > now - ONE_DAY and adjusted_min_time < now - ONE_HOUR:
        plan.ranges.append(
            (max_time(adjusted_min_time, now - ONE_DAY), min_time(query_max_time, now))
        )
        plan.instants.append(max_time(adjusted_min_time, now - ONE_DAY))

    # From last 24h to last 23h.
    if adjusted_min_time < now - TWENTY_THREE_HOURS and query_max_time > now - TWENTY_THREE_HOURS:
        plan.ranges.append(
            (
                max_time(adjusted_min_time, now - ONE_DAY),
                min_time(query_max_time, now - TWENTY_THREE_HOURS),
            )
        )

    # A random time range.
    rand_min_time = rand_time(adjusted_min_time, query_max_time, rng)
    plan.ranges.append((rand_min_time, rand_time(rand_min_time, query_max_time, rng)))
    plan.instants.append(rand_min_time)

    return plan
