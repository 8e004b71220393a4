"""Automation rule engine package."""

from src.automation.application import (
    ActionDispatcher,
    CooldownTracker,
    EvaluationEngine,
    ReadingWorkerPool,
    RuleLifecycleManager,
    RuleStore,
)
from src.automation.domain import AutomationRule, FireEvent, Reading, RuleDefinition
from src.automation.infrastructure import (
    CSVDispatchLog,
    HttpActuatorSink,
    HttpAlertSink,
    InMemoryActuatorSink,
    InMemoryAlertSink,
    InMemoryDispatchLog,
    JsonFileRuleLoader,
)

__all__ = [
    "ActionDispatcher",
    "CooldownTracker",
    "EvaluationEngine",
    "ReadingWorkerPool",
    "RuleLifecycleManager",
    "RuleStore",
    "AutomationRule",
    "FireEvent",
    "Reading",
    "RuleDefinition",
    "CSVDispatchLog",
    "HttpActuatorSink",
    "HttpAlertSink",
    "InMemoryActuatorSink",
    "InMemoryAlertSink",
    "InMemoryDispatchLog",
    "JsonFileRuleLoader",
]
