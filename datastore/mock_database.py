from __future__ import annotations
import json
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from app.schemas import Device, DeviceLink, HourlyValue
from settings import get_settings


class MockDeviceDatabase:
    """Relational store stand-in holding devices, device links and hourly rows."""

    def __init__(self, name: str = "devices", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._devices: Dict[str, Device] = {}
        self._links: Dict[int, DeviceLink] = {}
        self._hourly_values: Dict[int, HourlyValue] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_device(self, device: Device) -> None:
        with self._lock:
            self._devices[device.device_id] = device.model_copy(deep=True)
            self._persist()

    def get_device(self, device_id: str) -> Optional[Device]:
        with self._lock:
            device = self._devices.get(device_id)
            if device is None or device.is_deleted:
                return None
            return device.model_copy(deep=True)

    def find_device(self, serial_number: str) -> Optional[Device]:
        """Look up an active device by its serial number."""

        with self._lock:
            for device in self._devices.values():
                if device.serial_number == serial_number and not device.is_deleted:
                    return device.model_copy(deep=True)
        return None

    def update_device_state(self, device_id: str, power_status: bool) -> Device:
        with self._lock:
            device = self._devices.get(device_id)
            if device is None or device.is_deleted:
                raise KeyError(f"Device {device_id!r} not found in store {self.name!r}.")
            updated = device.model_copy(update={"power_status": power_status})
            self._devices[device_id] = updated
            self._persist()
            return updated.model_copy(deep=True)

    def put_link(self, link: DeviceLink) -> DeviceLink:
        """Insert or replace a link, keeping identities unique among live links."""

        with self._lock:
            if link.deleted_at is None:
                for existing in self._links.values():
                    if (
                        existing.deleted_at is None
                        and existing.link_id != link.link_id
                        and existing.identity == link.identity
                    ):
                        raise ValueError(
                            "A link between these devices for this component already exists."
                        )
            stored = link
            if not link.link_id:
                stored = link.model_copy(update={"link_id": max(self._links, default=0) + 1})
            self._links[stored.link_id] = stored.model_copy(deep=True)
            self._persist()
            return stored.model_copy(deep=True)

    def find_links_by_input(self, device_id: str) -> List[DeviceLink]:
        with self._lock:
            return [
                link.model_copy(deep=True)
                for link in self._ordered_links()
                if link.input_device_id == device_id and link.deleted_at is None
            ]

    def find_links_by_output(self, device_id: str) -> List[DeviceLink]:
        with self._lock:
            return [
                link.model_copy(deep=True)
                for link in self._ordered_links()
                if link.output_device_id == device_id and link.deleted_at is None
            ]

    def create_hourly_value(self, row: HourlyValue) -> HourlyValue:
        with self._lock:
            created = row.model_copy(
                update={
                    "hourly_value_id": max(self._hourly_values, default=0) + 1,
                    "created_at": row.created_at or datetime.now(timezone.utc),
                }
            )
            self._hourly_values[created.hourly_value_id] = created
            self._persist()
            return created.model_copy(deep=True)

    def list_hourly_values(
        self,
        device_serial: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
    ) -> List[HourlyValue]:
        """Return live hourly rows, newest hour first."""

        with self._lock:
            rows = [
                row.model_copy(deep=True)
                for row in self._hourly_values.values()
                if not row.is_deleted
                and (device_serial is None or row.device_serial == device_serial)
                and (start_time is None or row.hour_timestamp >= start_time)
                and (end_time is None or row.hour_timestamp <= end_time)
            ]
        return sorted(rows, key=lambda row: row.hour_timestamp, reverse=True)

    def _ordered_links(self) -> List[DeviceLink]:
        return [self._links[link_id] for link_id in sorted(self._links)]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "devices": [item.model_dump(mode="json") for item in self._devices.values()],
            "links": [item.model_dump(mode="json") for item in self._ordered_links()],
            "hourly_values": [
                item.model_dump(mode="json") for item in self._hourly_values.values()
            ],
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for payload in data.get("devices", []):
            device = Device.model_validate(payload)
            self._devices[device.device_id] = device
        for payload in data.get("links", []):
            link = DeviceLink.model_validate(payload)
            self._links[link.link_id] = link
        for payload in data.get("hourly_values", []):
            row = HourlyValue.model_validate(payload)
            self._hourly_values[row.hourly_value_id] = row


@lru_cache
def build_default_database(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockDeviceDatabase:
    settings = get_settings()
    database_path = settings.datastore_persistence_path if path is None else path
    persistence = Path(database_path) if database_path else None
    return MockDeviceDatabase(name=name or "devices", persistence_path=persistence)
