"""Outbound command boundary between the automation engine and transports."""

from __future__ import annotations

import logging
from collections import deque
from threading import Lock
from typing import Callable, Deque, List

from app.schemas import DeviceCommand

logger = logging.getLogger(__name__)

CommandListener = Callable[[str, DeviceCommand], None]


class ActionDispatcher:
    """Fire-and-forget hand-off of device commands.

    Commands are kept in a bounded outbox and fanned out to subscribed
    listeners (socket emitters, MQTT publishers, ...). A failing listener is
    logged and never reaches the sender.
    """

    def __init__(self, max_pending: int = 1000) -> None:
        self._outbox: Deque[DeviceCommand] = deque(maxlen=max_pending)
        self._listeners: List[CommandListener] = []
        self._lock = Lock()

    def subscribe(self, listener: CommandListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def send(self, output_device_id: str, command: DeviceCommand) -> None:
        with self._lock:
            self._outbox.append(command)
            listeners = list(self._listeners)

        logger.info(
            "Dispatching device command",
            extra={
                "output_device_id": output_device_id,
                "action": command.action,
                "link_id": command.link_id,
            },
        )
        for listener in listeners:
            try:
                listener(output_device_id, command)
            except Exception:  # noqa: BLE001 - listeners must not break dispatch
                logger.exception(
                    "Command listener failed",
                    extra={"output_device_id": output_device_id, "action": command.action},
                )

    def recent(self, limit: int = 50) -> List[DeviceCommand]:
        """Most recent commands, newest first."""
        with self._lock:
            items = list(self._outbox)
        return [item.model_copy(deep=True) for item in reversed(items[-limit:])] if limit > 0 else []

    def drain(self) -> List[DeviceCommand]:
        """Remove and return every pending command in send order."""
        with self._lock:
            items = list(self._outbox)
            self._outbox.clear()
        return items
