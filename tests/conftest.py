"""Shared fixtures for the automation engine tests."""

from datetime import datetime, timedelta, timezone

import pytest

from src.automation.application.cooldown import CooldownTracker
from src.automation.application.dispatcher import ActionDispatcher
from src.automation.application.engine import EvaluationEngine
from src.automation.application.lifecycle import RuleLifecycleManager
from src.automation.application.rule_store import RuleStore
from src.automation.domain.models import Reading
from src.automation.infrastructure.observability import InMemoryDispatchLog
from src.automation.infrastructure.sinks import InMemoryActuatorSink, InMemoryAlertSink

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def reading():
    """Factory for readings observed ``minutes`` after T0."""

    def _reading(sensor_deployment_id: int, value: float, minutes: float = 0) -> Reading:
        return Reading(
            sensor_deployment_id=sensor_deployment_id,
            value=value,
            observed_at=T0 + timedelta(minutes=minutes),
        )

    return _reading


@pytest.fixture
def alert_rule():
    """Factory for create_alert rule payloads."""

    def _rule(**overrides) -> dict:
        payload = {
            "name": "High temperature",
            "sensor_deployment_id": 1,
            "operator": "gt",
            "threshold_value": 30.0,
            "action": {"type": "create_alert", "title": "Too hot", "severity": "warning"},
            "cooldown": "5m",
        }
        payload.update(overrides)
        return payload

    return _rule


@pytest.fixture
def actuator_rule():
    """Factory for trigger_actuator rule payloads."""

    def _rule(**overrides) -> dict:
        payload = {
            "name": "Lights on when dark",
            "sensor_deployment_id": 7,
            "operator": "lt",
            "threshold_value": 200.0,
            "action": {
                "type": "trigger_actuator",
                "target_deployment_id": 70,
                "command": "ON",
                "parameters": {"brightness": 80},
            },
            "cooldown": "5m",
        }
        payload.update(overrides)
        return payload

    return _rule


@pytest.fixture
def rule_store():
    return RuleStore()


@pytest.fixture
def cooldowns():
    return CooldownTracker()


@pytest.fixture
def lifecycle(rule_store, cooldowns):
    return RuleLifecycleManager(rule_store, cooldowns)


@pytest.fixture
def alert_sink():
    return InMemoryAlertSink()


@pytest.fixture
def actuator_sink():
    return InMemoryActuatorSink()


@pytest.fixture
def dispatch_log():
    return InMemoryDispatchLog()


@pytest.fixture
def dispatcher(alert_sink, actuator_sink, dispatch_log):
    return ActionDispatcher(alert_sink, actuator_sink, observer=dispatch_log, timeout_seconds=1.0)


@pytest.fixture
def engine(rule_store, cooldowns, dispatch_log):
    """Engine without a dispatcher: evaluation only, usable from sync tests."""
    return EvaluationEngine(rule_store, cooldowns, observer=dispatch_log)


@pytest.fixture
def dispatching_engine(rule_store, cooldowns, dispatcher, dispatch_log):
    """Engine wired to the in-memory sinks; needs a running event loop."""
    return EvaluationEngine(rule_store, cooldowns, dispatcher=dispatcher, observer=dispatch_log)
