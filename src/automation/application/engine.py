"""Evaluation engine: readings in, fire events out."""

from loguru import logger

from src.automation.application.cooldown import CooldownTracker
from src.automation.application.dispatcher import ActionDispatcher
from src.automation.application.rule_store import RuleStore
from src.automation.domain.comparator import evaluate
from src.automation.domain.exceptions import EngineStoppedError
from src.automation.domain.models import AutomationRule, FireEvent, Reading
from src.automation.domain.protocols import DispatchObserver
from src.automation.infrastructure.logging import LoggingContext


class EvaluationEngine:
    """
    Evaluates each incoming reading against the rules watching its deployment.

    ``on_reading`` performs no I/O: it compares, consults the cooldown gate
    and hands fire events to the dispatcher, which delivers them in
    background tasks. Rules watching the same deployment are evaluated
    independently and each one is gated by its own cooldown.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        cooldowns: CooldownTracker,
        dispatcher: ActionDispatcher | None = None,
        observer: DispatchObserver | None = None,
    ):
        """
        Initialize engine.

        Args:
            rule_store: Index of active rules by watched deployment
            cooldowns: Per-rule cooldown gate
            dispatcher: Receives fire events (evaluation only when omitted)
            observer: Notified of per-rule evaluation faults
        """
        self.rule_store = rule_store
        self.cooldowns = cooldowns
        self.dispatcher = dispatcher
        self.observer = observer

        self._stats = {
            "readings": 0,
            "evaluations": 0,
            "matches": 0,
            "suppressed": 0,
            "fired": 0,
            "errors": 0,
            "rejected_dispatches": 0,
        }

    def on_reading(self, reading: Reading) -> list[FireEvent]:
        """
        Evaluate one reading.

        A reading for a deployment nobody watches is a no-op. A fault while
        handling one rule is reported and does not stop the other rules.

        Returns:
            Fire events produced by this reading
        """
        self._stats["readings"] += 1
        rules = self.rule_store.rules_watching(reading.sensor_deployment_id)
        if not rules:
            return []

        events: list[FireEvent] = []

        with LoggingContext(sensor_deployment_id=reading.sensor_deployment_id):
            for rule in rules:
                try:
                    event = self._evaluate_rule(rule, reading)
                    if event is not None:
                        events.append(event)
                        if self.dispatcher is not None:
                            self._submit(event)
                except Exception as e:
                    self._stats["errors"] += 1
                    logger.error(f"Error evaluating rule {rule.id} on {reading}: {e}")
                    self._report_error(rule, reading, e)

        return events

    def _evaluate_rule(self, rule: AutomationRule, reading: Reading) -> FireEvent | None:
        self._stats["evaluations"] += 1

        if not evaluate(rule.operator, rule.threshold_value, reading.value):
            return None

        self._stats["matches"] += 1

        if not self.cooldowns.try_acquire(rule.id, reading.observed_at):
            self._stats["suppressed"] += 1
            logger.debug(
                f"Rule {rule.id} matched ({reading.value} {rule.operator.symbol} {rule.threshold_value}) "
                f"but is cooling down for {self.cooldowns.remaining(rule.id, reading.observed_at)}"
            )
            return None

        self._stats["fired"] += 1
        logger.info(
            f"🔔 Rule {rule.id} '{rule.name}' fired: "
            f"{reading.value} {rule.operator.symbol} {rule.threshold_value} -> {rule.action.type}"
        )

        return FireEvent(
            rule_id=rule.id,
            fired_at=reading.observed_at,
            observed_value=reading.value,
            action=rule.action,
            rule_name=rule.name,
            sensor_deployment_id=reading.sensor_deployment_id,
        )

    def _submit(self, event: FireEvent) -> None:
        try:
            self.dispatcher.submit(event)
        except EngineStoppedError as e:
            # The cooldown slot stays consumed, as for any failed dispatch
            self._stats["rejected_dispatches"] += 1
            self.dispatcher.reject(event, e)

    def _report_error(self, rule: AutomationRule, reading: Reading, error: Exception) -> None:
        if self.observer is None:
            return
        try:
            self.observer.record_evaluation_error(rule.id, reading, error)
        except Exception as e:
            logger.error(f"Observer failed to record evaluation error for rule {rule.id}: {e}")

    def get_statistics(self) -> dict:
        """Get statistics about engine state."""
        return {
            **self._stats,
            "num_rules": len(self.rule_store),
            "num_watched_deployments": len(self.rule_store.watched_deployments()),
            "in_flight_dispatches": self.dispatcher.in_flight if self.dispatcher else 0,
        }
