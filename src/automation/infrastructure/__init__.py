"""Infrastructure layer for the automation rule engine."""

from src.automation.infrastructure.logging import LoggingContext, configure_structured_logging
from src.automation.infrastructure.observability import CSVDispatchLog, InMemoryDispatchLog, build_overview
from src.automation.infrastructure.rule_loader import DictRuleLoader, JsonFileRuleLoader
from src.automation.infrastructure.sinks import (
    HttpActuatorSink,
    HttpAlertSink,
    InMemoryActuatorSink,
    InMemoryAlertSink,
)

__all__ = [
    "LoggingContext",
    "configure_structured_logging",
    "CSVDispatchLog",
    "InMemoryDispatchLog",
    "build_overview",
    "DictRuleLoader",
    "JsonFileRuleLoader",
    "HttpActuatorSink",
    "HttpAlertSink",
    "InMemoryActuatorSink",
    "InMemoryAlertSink",
]
