"""Application layer for the automation rule engine."""

from src.automation.application.cooldown import CooldownTracker
from src.automation.application.dispatcher import ActionDispatcher
from src.automation.application.engine import EvaluationEngine
from src.automation.application.lifecycle import RuleLifecycleManager
from src.automation.application.rule_store import RuleStore
from src.automation.application.workers import ReadingWorkerPool

__all__ = [
    "ActionDispatcher",
    "CooldownTracker",
    "EvaluationEngine",
    "ReadingWorkerPool",
    "RuleLifecycleManager",
    "RuleStore",
]
