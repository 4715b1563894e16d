"""Period rollups over stored hourly rows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List

from app.schemas import HourlyValue, StatisticsBucket, StatisticsPeriod


def _daily(moment: datetime) -> str:
    return moment.date().isoformat()


def _weekly(moment: datetime) -> str:
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


def _monthly(moment: datetime) -> str:
    return moment.strftime("%Y-%m-01")


def _yearly(moment: datetime) -> str:
    return f"{moment.year:04d}"


def _hourly(moment: datetime) -> str:
    return moment.isoformat()


_BUCKETERS: Dict[StatisticsPeriod, Callable[[datetime], str]] = {
    StatisticsPeriod.daily: _daily,
    StatisticsPeriod.weekly: _weekly,
    StatisticsPeriod.monthly: _monthly,
    StatisticsPeriod.yearly: _yearly,
    StatisticsPeriod.custom: _hourly,
}


@dataclass
class _Bucket:
    sums: Dict[str, float] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)
    total_samples: int = 0


def summarize_hourly_values(
    rows: Iterable[HourlyValue], period: StatisticsPeriod
) -> List[StatisticsBucket]:
    """Average each reading over the rows of every period, newest period first."""
    bucket_for = _BUCKETERS[period]
    buckets: Dict[str, _Bucket] = {}

    for row in rows:
        if row.is_deleted:
            continue
        bucket = buckets.setdefault(bucket_for(row.hour_timestamp), _Bucket())
        for name, value in row.avg_value.items():
            bucket.sums[name] = bucket.sums.get(name, 0.0) + value
            bucket.counts[name] = bucket.counts.get(name, 0) + 1
        bucket.total_samples += row.sample_count

    return [
        StatisticsBucket(
            timestamp=key,
            avg_value={name: total / bucket.counts[name] for name, total in bucket.sums.items()},
            total_samples=bucket.total_samples,
        )
        for key, bucket in sorted(buckets.items(), reverse=True)
    ]
