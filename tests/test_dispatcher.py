from __future__ import annotations

import logging
from datetime import datetime, timezone

from app.schemas import DeviceCommand
from services.dispatcher import ActionDispatcher


def _command(output_device_id: str, action: str = "turn_on") -> DeviceCommand:
    return DeviceCommand(
        output_device_id=output_device_id,
        action=action,
        triggered_by="sensor",
        issued_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_listeners_receive_commands() -> None:
    dispatcher = ActionDispatcher()
    received = []
    dispatcher.subscribe(lambda device_id, command: received.append((device_id, command.action)))

    dispatcher.send("fan", _command("fan"))

    assert received == [("fan", "turn_on")]


def test_failing_listener_is_logged_and_others_still_run(caplog) -> None:
    dispatcher = ActionDispatcher()
    received = []

    def broken(device_id, command):
        raise ConnectionError("socket closed")

    dispatcher.subscribe(broken)
    dispatcher.subscribe(lambda device_id, command: received.append(device_id))

    with caplog.at_level(logging.ERROR):
        dispatcher.send("fan", _command("fan"))

    assert received == ["fan"]
    assert any(record.getMessage() == "Command listener failed" for record in caplog.records)


def test_recent_is_newest_first_and_drain_empties() -> None:
    dispatcher = ActionDispatcher(max_pending=2)
    for device_id in ("a", "b", "c"):
        dispatcher.send(device_id, _command(device_id))

    assert [command.output_device_id for command in dispatcher.recent()] == ["c", "b"]
    assert [command.output_device_id for command in dispatcher.recent(limit=1)] == ["c"]
    assert [command.output_device_id for command in dispatcher.drain()] == ["b", "c"]
    assert dispatcher.recent() == []
