"""Device-link automation: re-evaluate AND/OR trigger groups on value changes."""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from app.schemas import (
    Component,
    CurrentValue,
    Datatype,
    DeviceCommand,
    DeviceLink,
    Instance,
    LogicOperator,
    OutputAction,
)
from datastore.mock_database import MockDeviceDatabase
from models.errors import RuleEvaluationError
from services.conditions import matches
from services.dispatcher import ActionDispatcher
from storage.window_cache import CurrentValueStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def select_components(current_value: CurrentValue, component_id: str) -> CurrentValue:
    """Components carrying ``component_id``; a link never matches other readings."""
    return [component for component in current_value if component.component_id == component_id]


def combine(and_results: List[bool], or_results: List[bool]) -> bool:
    """An output fires when every AND link and at least one OR link hold.

    An empty half places no constraint.
    """
    and_ok = not and_results or all(and_results)
    or_ok = not or_results or any(or_results)
    return and_ok and or_ok


def resolve_output_command(link: DeviceLink) -> Tuple[str, Optional[str]]:
    """Derive the command action and value from a link's ``output_value``.

    ``output_value`` may be empty, a JSON object ``{"action": ..., "value": ...}``,
    an ``"action:value"`` pair, or a bare value.
    """
    action = link.output_action.value
    raw = (link.output_value or "").strip()
    if not raw:
        return action, None

    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = raw

    if isinstance(parsed, list):
        parsed = parsed[0] if parsed else None
    if parsed is None:
        return action, None
    if isinstance(parsed, dict):
        value = parsed.get("value")
        return str(parsed.get("action") or action), None if value is None else str(value)
    if isinstance(parsed, str) and ":" in parsed:
        name, value = parsed.split(":", 1)
        return name.strip() or action, value.strip() or None
    return action, str(parsed)


class AutomationEngine:
    """Evaluates the links guarding output devices and dispatches actions."""

    def __init__(
        self,
        database: MockDeviceDatabase,
        current_values: CurrentValueStore,
        dispatcher: ActionDispatcher,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.database = database
        self.current_values = current_values
        self.dispatcher = dispatcher
        self._clock = clock

    def on_value_change(self, device_id: str, current_value: CurrentValue) -> List[DeviceCommand]:
        """Re-evaluate every output linked to ``device_id``.

        Returns the commands dispatched. Failures are logged per output group
        and never raised.
        """
        try:
            links = self.database.find_links_by_input(device_id)
        except Exception:
            logger.exception("Failed to load device links", extra={"device_id": device_id})
            return []
        if not links:
            return []

        outputs: Dict[str, List[DeviceLink]] = {}
        for link in links:
            outputs.setdefault(link.output_device_id, []).append(link)

        commands: List[DeviceCommand] = []
        for output_device_id in outputs:
            try:
                command = self.evaluate_output(device_id, current_value, output_device_id)
            except RuleEvaluationError as exc:
                logger.error(
                    "Skipping output after evaluation failure",
                    extra={
                        "device_id": device_id,
                        "output_device_id": output_device_id,
                        "reason": exc.reason,
                    },
                )
                continue
            if command is not None:
                commands.append(command)
        return commands

    def evaluate_output(
        self,
        changed_device_id: str,
        changed_value: CurrentValue,
        output_device_id: str,
    ) -> Optional[DeviceCommand]:
        try:
            links = self.database.find_links_by_output(output_device_id)
            if not links:
                return None
            if not self._should_trigger(changed_device_id, changed_value, links):
                return None
            return self._trigger(links[0], changed_device_id)
        except RuleEvaluationError:
            raise
        except Exception as exc:
            raise RuleEvaluationError(output_device_id, str(exc)) from exc

    def _should_trigger(
        self,
        changed_device_id: str,
        changed_value: CurrentValue,
        links: List[DeviceLink],
    ) -> bool:
        values: Dict[str, Optional[CurrentValue]] = {changed_device_id: changed_value}
        and_results: List[bool] = []
        or_results: List[bool] = []

        for link in links:
            if link.input_device_id not in values:
                values[link.input_device_id] = self.current_values.get(link.input_device_id)
            value = values[link.input_device_id]

            if value is None:
                logger.debug(
                    "No current value for linked input",
                    extra={"device_id": link.input_device_id, "link_id": link.link_id},
                )
                result = False
            else:
                result = matches(select_components(value, link.component_id), link.value_active)

            if link.logic_operator is LogicOperator.or_:
                or_results.append(result)
            else:
                and_results.append(result)

        return combine(and_results, or_results)

    def _trigger(self, link: DeviceLink, changed_device_id: str) -> DeviceCommand:
        power_status = link.output_action is OutputAction.turn_on
        output_device = self.database.update_device_state(link.output_device_id, power_status)
        action, value = resolve_output_command(link)
        command = DeviceCommand(
            output_device_id=link.output_device_id,
            device_serial=output_device.serial_number,
            action=action,
            value=value,
            triggered_by=changed_device_id,
            link_id=link.link_id,
            issued_at=self._clock(),
        )
        self.dispatcher.send(link.output_device_id, command)
        return command


def fields_to_current_value(fields: Mapping[str, Any], index: str = "sensor_01") -> CurrentValue:
    """Translate a flat sample into one component per usable reading."""
    components: CurrentValue = []
    for name, value in fields.items():
        if isinstance(value, bool):
            datatype = Datatype.boolean
        elif isinstance(value, (int, float)):
            if math.isnan(value) or math.isinf(value):
                continue
            datatype = Datatype.number
        elif isinstance(value, str):
            datatype = Datatype.string
        else:
            continue
        components.append(
            Component(
                component_id=str(name),
                datatype=datatype,
                name=str(name),
                instances=[Instance(index=index, value=value)],
            )
        )
    return components
