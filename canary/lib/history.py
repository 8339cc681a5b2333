"""Per-profile write/read history.

Tracks where the next write goes and which time range is known to hold
only correctly written, verifiable data. ``None`` means "never set".

Invariant: query_min_time <= query_max_time <= last_written_timestamp
whenever the query bounds are set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from canary.lib.timeutil import align_timestamp_to_interval

logger = logging.getLogger(__name__)

__all__ = ["MetricHistory"]


@dataclass
class MetricHistory:
    last_written_timestamp: datetime | None = None
    query_min_time: datetime | None = None
    query_max_time: datetime | None = None

    def next_write_timestamp(self, now: datetime, interval: timedelta) -> datetime:
        """Timestamp of the next write: one interval after the last one,
        or ``now`` aligned to the interval if nothing was written yet."""
        if self.last_written_timestamp is None:
            return align_timestamp_to_interval(now, interval)
        return self.last_written_timestamp + interval

    def record_write_success(self, timestamp: datetime) -> None:
        self.last_written_timestamp = timestamp
        self.query_max_time = timestamp
        if self.query_min_time is None:
            self.query_min_time = timestamp

    def record_write_rejected(self, timestamp: datetime) -> None:
        """Move past a write the server refused with a client error.

        The series may be missing or partially written, so results can no
        longer be asserted across this point: the queryable range is reset.
        """
        self.last_written_timestamp = timestamp
        self.query_min_time = None
        self.query_max_time = None

    def restore(self, query_min_time: datetime, query_max_time: datetime) -> None:
        """Resume from a time range recovered from the store."""
        if query_min_time > query_max_time:
            raise ValueError(
                f"query_min_time {query_min_time} is after query_max_time {query_max_time}"
            )
        self.last_written_timestamp = query_max_time
        self.query_min_time = query_min_time
        self.query_max_time = query_max_time
