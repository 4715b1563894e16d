"""Exceptions raised by the rollup and automation services."""

from __future__ import annotations


class TransientStoreError(RuntimeError):
    """A cache round trip failed or timed out and may succeed if retried."""


class DeviceNotFound(KeyError):
    """No active device is registered under the requested identifier."""

    def __init__(self, identifier: str) -> None:
        super().__init__(identifier)
        self.identifier = identifier

    def __str__(self) -> str:
        return f"Device {self.identifier!r} not found."


class RuleEvaluationError(RuntimeError):
    """Evaluating the links that guard one output device failed."""

    def __init__(self, output_device_id: str, reason: str) -> None:
        super().__init__(f"Failed to evaluate links for output {output_device_id!r}: {reason}")
        self.output_device_id = output_device_id
        self.reason = reason
