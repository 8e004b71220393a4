"""In-memory index of automation rules keyed by watched sensor deployment."""

import threading

from src.automation.domain.models import AutomationRule


class RuleStore:
    """
    Primary map of rules plus one watch-list per sensor deployment.

    Watch-lists are immutable tuples replaced wholesale under a writer lock,
    so ``rules_watching`` never takes the lock and never observes a
    half-updated list. Only active rules are indexed.
    """

    def __init__(self):
        self._rules: dict[int, AutomationRule] = {}
        self._watch_lists: dict[int, tuple[AutomationRule, ...]] = {}
        self._write_lock = threading.Lock()

    def rules_watching(self, sensor_deployment_id: int) -> list[AutomationRule]:
        """Get the active rules watching a sensor deployment."""
        return list(self._watch_lists.get(sensor_deployment_id, ()))

    def count_watching(self, sensor_deployment_id: int) -> int:
        """Count all rules (active or not) watching a sensor deployment."""
        return sum(1 for rule in self._rules.values() if rule.sensor_deployment_id == sensor_deployment_id)

    def upsert(self, rule: AutomationRule) -> None:
        """Insert or replace a rule, re-keying its watch-list entry."""
        with self._write_lock:
            previous = self._rules.get(rule.id)
            if previous is not None:
                self._unindex(previous)
            self._rules[rule.id] = rule
            if rule.is_active:
                self._index(rule)

    def remove(self, rule_id: int) -> AutomationRule | None:
        """Remove a rule entirely. Returns the removed rule, if any."""
        with self._write_lock:
            rule = self._rules.pop(rule_id, None)
            if rule is not None:
                self._unindex(rule)
            return rule

    def get(self, rule_id: int) -> AutomationRule | None:
        return self._rules.get(rule_id)

    def all(self) -> list[AutomationRule]:
        return sorted(self._rules.values(), key=lambda rule: rule.id)

    def watched_deployments(self) -> list[int]:
        return sorted(self._watch_lists)

    def _index(self, rule: AutomationRule) -> None:
        current = self._watch_lists.get(rule.sensor_deployment_id, ())
        updated = tuple(sorted((*current, rule), key=lambda r: r.id))
        self._watch_lists[rule.sensor_deployment_id] = updated

    def _unindex(self, rule: AutomationRule) -> None:
        current = self._watch_lists.get(rule.sensor_deployment_id, ())
        updated = tuple(r for r in current if r.id != rule.id)
        if updated:
            self._watch_lists[rule.sensor_deployment_id] = updated
        else:
            self._watch_lists.pop(rule.sensor_deployment_id, None)

    def __contains__(self, rule_id: int) -> bool:
        return rule_id in self._rules

    def __len__(self) -> int:
        return len(self._rules)
