"""Pydantic schemas for devices, links, readings and the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Datatype(str, Enum):
    """Value types a device component can report."""

    number = "NUMBER"
    boolean = "BOOLEAN"
    string = "STRING"


class LogicOperator(str, Enum):
    """Which half of an output's trigger condition a link contributes to."""

    and_ = "AND"
    or_ = "OR"


class OutputAction(str, Enum):
    turn_on = "turn_on"
    turn_off = "turn_off"


class StatisticsPeriod(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"
    custom = "custom"


class Instance(BaseModel):
    """One physical reading under a logical component."""

    index: str
    value: Any = None


class Component(BaseModel):
    """A logical sensor/actuator channel of a device's current value."""

    component_id: str
    datatype: Datatype = Datatype.number
    name: Optional[str] = None
    unit: Optional[str] = None
    instances: List[Instance] = Field(default_factory=list)


CurrentValue = List[Component]


class Device(BaseModel):
    """Device metadata as held by the durable store."""

    device_id: str
    serial_number: str
    space_id: Optional[int] = None
    account_id: Optional[str] = None
    name: Optional[str] = None
    power_status: bool = False
    is_deleted: bool = False


class DeviceLink(BaseModel):
    """An automation rule: input device condition -> output device action."""

    link_id: int = 0
    input_device_id: str
    output_device_id: str
    component_id: str
    value_active: str
    logic_operator: LogicOperator = LogicOperator.and_
    output_action: OutputAction = OutputAction.turn_on
    output_value: str = ""
    deleted_at: Optional[datetime] = None

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.input_device_id, self.output_device_id, self.component_id)


class HourlyValue(BaseModel):
    """Durable summary of one closed hour window."""

    hourly_value_id: int = 0
    device_serial: str
    space_id: Optional[int] = None
    hour_timestamp: datetime
    avg_value: Dict[str, float] = Field(default_factory=dict)
    sample_count: int = Field(..., ge=0)
    created_at: Optional[datetime] = None
    is_deleted: bool = False


class DeviceCommand(BaseModel):
    """Instruction handed to the real-time transport for an output device."""

    output_device_id: str
    device_serial: Optional[str] = None
    action: str
    value: Optional[str] = None
    triggered_by: str
    link_id: Optional[int] = None
    issued_at: datetime


class SampleIngestResponse(BaseModel):
    """Outcome of ingesting a single sample."""

    device_serial: str
    accepted: bool
    minute_count: int = 0
    minute_completed: bool = False
    hour_count: int = 0
    hour_completed: bool = False
    hourly_value: Optional[HourlyValue] = None
    commands: List[DeviceCommand] = Field(default_factory=list)


class BatchSample(BaseModel):
    model_config = ConfigDict(extra="forbid")

    device_serial: str = Field(..., min_length=1)
    fields: Dict[str, Any] = Field(default_factory=dict)


class BatchIngestRequest(BaseModel):
    samples: List[BatchSample] = Field(default_factory=list)


class BatchSampleResult(BaseModel):
    device_serial: str
    ok: bool
    pending: bool = False
    reason: Optional[str] = None
    minute_completed: bool = False
    hour_completed: bool = False


class BatchIngestResponse(BaseModel):
    processed: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    pending: int = Field(0, ge=0)
    results: List[BatchSampleResult] = Field(default_factory=list)


class CurrentValueResponse(BaseModel):
    device_id: str
    commands: List[DeviceCommand] = Field(default_factory=list)


class StatisticsBucket(BaseModel):
    """Averages of stored hourly rows for one reporting period."""

    timestamp: str
    avg_value: Dict[str, float] = Field(default_factory=dict)
    total_samples: int = Field(..., ge=0)
