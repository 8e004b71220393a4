"""Protocols (interfaces) for the engine's external collaborators."""

from typing import Any, Protocol, runtime_checkable

from src.automation.domain.models import (
    ActuatorCommandRequest,
    AlertRequest,
    DispatchResult,
    Reading,
)


@runtime_checkable
class AlertSink(Protocol):
    """Interface for the external alert system."""

    async def send_alert(self, request: AlertRequest) -> None:
        """
        Deliver an alert.

        Raises:
            SinkRejectedError: If the alert system refuses the alert
            SinkUnavailableError: If the alert system cannot be reached
        """
        ...


@runtime_checkable
class ActuatorCommandSink(Protocol):
    """Interface for the channel carrying commands to actuators."""

    async def send_command(self, request: ActuatorCommandRequest) -> None:
        """
        Deliver an actuator command.

        Raises:
            SinkRejectedError: If the command is rejected
            SinkUnavailableError: If the channel cannot be reached
        """
        ...


@runtime_checkable
class DispatchObserver(Protocol):
    """Interface for the observability collaborator."""

    def record_dispatch(self, result: DispatchResult) -> None:
        """Record the outcome of one dispatch, successful or not."""
        ...

    def record_evaluation_error(self, rule_id: int, reading: Reading, error: Exception) -> None:
        """Record a fault while evaluating one rule against one reading."""
        ...


class RuleLoader(Protocol):
    """Interface for loading persisted rules."""

    async def load_rules(self, **kwargs) -> list[dict[str, Any]]:
        """
        Load rules from source.

        Returns:
            List of rule dictionaries, optionally carrying 'id' and 'last_fired_at'
        """
        ...
