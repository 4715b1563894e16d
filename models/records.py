"""Transient window state shared by the aggregation services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from app.schemas import HourlyValue

_AccumulatorT = TypeVar("_AccumulatorT", bound="_Accumulator")


@dataclass(slots=True)
class _Accumulator:
    count: int = 0
    values: Dict[str, float] = field(default_factory=dict)

    def _fold(self, readings: Mapping[str, float]) -> None:
        for name, value in readings.items():
            self.values[name] = self.values.get(name, 0.0) + value
        self.count += 1

    def averages(self) -> Dict[str, float]:
        """Per-reading sums divided by the number of folded entries."""
        if not self.count:
            return {}
        return {name: total / self.count for name, total in self.values.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "values": dict(self.values)}

    @classmethod
    def from_dict(
        cls: Type[_AccumulatorT], payload: Optional[Mapping[str, Any]]
    ) -> _AccumulatorT:
        if not payload:
            return cls()
        return cls(
            count=int(payload.get("count", 0)),
            values={str(k): float(v) for k, v in (payload.get("values") or {}).items()},
        )


@dataclass(slots=True)
class MinuteAccumulator(_Accumulator):
    """Running sums for the samples of one in-progress minute window."""

    def add(self, fields: Mapping[str, float]) -> None:
        self._fold(fields)


@dataclass(slots=True)
class HourAccumulator(_Accumulator):
    """Running sums of minute averages for one in-progress hour window."""

    def add_minute(self, minute_averages: Mapping[str, float]) -> None:
        self._fold(minute_averages)


@dataclass(slots=True)
class WindowProgress:
    """Outcome of folding a single sample into a device's windows."""

    minute_count: int
    minute_completed: bool = False
    hour_count: int = 0
    hour_completed: bool = False
    hour_averages: Dict[str, float] = field(default_factory=dict)
    sample_count: int = 0
    hourly_value: Optional[HourlyValue] = None
