"""Domain layer for the automation rule engine."""

from src.automation.domain.comparator import evaluate
from src.automation.domain.models import (
    ActionSpec,
    ActionType,
    ActuatorCommandRequest,
    AlertRequest,
    AlertSeverity,
    AutomationOverview,
    AutomationRule,
    ComparisonOperator,
    CreateAlert,
    DispatchResult,
    FireEvent,
    Reading,
    RuleStatistics,
    TriggerActuator,
)
from src.automation.domain.protocols import ActuatorCommandSink, AlertSink, DispatchObserver, RuleLoader
from src.automation.domain.schemas import RuleDefinition

__all__ = [
    "evaluate",
    "ActionSpec",
    "ActionType",
    "ActuatorCommandRequest",
    "AlertRequest",
    "AlertSeverity",
    "AutomationOverview",
    "AutomationRule",
    "ComparisonOperator",
    "CreateAlert",
    "DispatchResult",
    "FireEvent",
    "Reading",
    "RuleStatistics",
    "TriggerActuator",
    "ActuatorCommandSink",
    "AlertSink",
    "DispatchObserver",
    "RuleLoader",
    "RuleDefinition",
]
