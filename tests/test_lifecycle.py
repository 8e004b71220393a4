"""Tests for rule admission and lifecycle operations."""

from datetime import timedelta

import pytest

from src.automation.application.cooldown import CooldownTracker
from src.automation.application.lifecycle import RuleLifecycleManager
from src.automation.application.rule_store import RuleStore
from src.automation.domain.exceptions import RuleNotFoundError, RuleValidationError
from src.automation.domain.models import (
    AlertSeverity,
    ComparisonOperator,
    CreateAlert,
    TriggerActuator,
)
from src.automation.infrastructure.rule_loader import DictRuleLoader


class TestCreate:
    """Test RuleLifecycleManager.create"""

    def test_create_indexes_rule(self, lifecycle, rule_store, cooldowns, alert_rule):
        rule = lifecycle.create(alert_rule())

        assert rule.id == 1
        assert rule.operator is ComparisonOperator.GT
        assert isinstance(rule.action, CreateAlert)
        assert rule.cooldown == timedelta(minutes=5)
        assert rule.last_fired_at is None
        assert [r.id for r in rule_store.rules_watching(1)] == [1]
        assert rule.id in cooldowns

    def test_ids_are_sequential(self, lifecycle, alert_rule):
        ids = [lifecycle.create(alert_rule()).id for _ in range(3)]
        assert ids == [1, 2, 3]

    @pytest.mark.parametrize("raw", [">", "gt", "greater_than", "GT"])
    def test_operator_aliases_normalized(self, lifecycle, alert_rule, raw):
        assert lifecycle.create(alert_rule(operator=raw)).operator is ComparisonOperator.GT

    def test_default_cooldown(self, alert_rule):
        manager = RuleLifecycleManager(RuleStore(), CooldownTracker(), default_cooldown=timedelta(minutes=2))
        payload = alert_rule()
        del payload["cooldown"]

        assert manager.create(payload).cooldown == timedelta(minutes=2)

    def test_zero_cooldown_kept(self, lifecycle, alert_rule):
        assert lifecycle.create(alert_rule(cooldown="0")).cooldown == timedelta()

    def test_camel_case_payload(self, lifecycle):
        rule = lifecycle.create(
            {
                "name": "Soil moisture low",
                "sensorDeploymentId": 4,
                "operator": "<",
                "thresholdValue": 25,
                "isActive": True,
                "cooldownMinutes": 15,
                "action": {"type": "trigger_actuator", "targetDeploymentId": 40, "command": "OPEN"},
            }
        )

        assert rule.sensor_deployment_id == 4
        assert rule.cooldown == timedelta(minutes=15)
        assert rule.action == TriggerActuator(target_deployment_id=40, command="OPEN")

    def test_flat_alert_record(self, lifecycle):
        """Dashboard records carry action_type plus alert_* fields"""
        rule = lifecycle.create(
            {
                "name": "Too hot",
                "sensor_deployment_id": 2,
                "operator": ">",
                "threshold_value": 35,
                "action_type": "send_alert",
                "alert_title": "Temperature critical",
                "alert_message": "Greenhouse above 35C",
                "alert_severity": "critical",
                "actuator_command": None,
            }
        )

        assert rule.action == CreateAlert(
            title="Temperature critical",
            message="Greenhouse above 35C",
            severity=AlertSeverity.CRITICAL,
        )

    def test_flat_actuator_record(self, lifecycle):
        rule = lifecycle.create(
            {
                "name": "Pump on",
                "sensorDeploymentId": 3,
                "operator": "lt",
                "thresholdValue": 30,
                "actionType": "control_actuator",
                "targetDeploymentId": 30,
                "actuatorCommand": "ON",
                "actuatorParameters": {"duration": 60},
                "alertTitle": None,
            }
        )

        assert rule.action == TriggerActuator(target_deployment_id=30, command="ON", parameters={"duration": 60})


class TestAdmissionRejections:
    """Malformed rules never reach the store"""

    def assert_rejected(self, lifecycle, rule_store, payload, loc=None):
        with pytest.raises(RuleValidationError) as exc_info:
            lifecycle.create(payload)
        assert len(rule_store) == 0
        if loc is not None:
            assert loc in [err["loc"] for err in exc_info.value.details["errors"]]
        return exc_info.value

    def test_actuator_without_target(self, lifecycle, rule_store, actuator_rule):
        payload = actuator_rule(action={"type": "trigger_actuator", "command": "ON"})
        self.assert_rejected(lifecycle, rule_store, payload)

    def test_actuator_with_alert_fields(self, lifecycle, rule_store, actuator_rule):
        payload = actuator_rule(
            action={"type": "trigger_actuator", "target_deployment_id": 1, "command": "ON", "title": "x"}
        )
        self.assert_rejected(lifecycle, rule_store, payload)

    def test_alert_without_title(self, lifecycle, rule_store, alert_rule):
        self.assert_rejected(lifecycle, rule_store, alert_rule(action={"type": "create_alert"}))

    def test_unknown_operator(self, lifecycle, rule_store, alert_rule):
        self.assert_rejected(lifecycle, rule_store, alert_rule(operator="between"), loc="operator")

    def test_unknown_action_type(self, lifecycle, rule_store, alert_rule):
        payload = alert_rule(action_type="send_email", alert_title="x")
        self.assert_rejected(lifecycle, rule_store, payload)

    @pytest.mark.parametrize("threshold", [float("nan"), float("inf")])
    def test_non_finite_threshold(self, lifecycle, rule_store, alert_rule, threshold):
        self.assert_rejected(lifecycle, rule_store, alert_rule(threshold_value=threshold), loc="threshold_value")

    @pytest.mark.parametrize("cooldown", ["-5m", "soon"])
    def test_invalid_cooldown(self, lifecycle, rule_store, alert_rule, cooldown):
        self.assert_rejected(lifecycle, rule_store, alert_rule(cooldown=cooldown))

    def test_negative_cooldown_minutes(self, lifecycle, rule_store, alert_rule):
        payload = alert_rule(cooldown_minutes=-1)
        del payload["cooldown"]
        self.assert_rejected(lifecycle, rule_store, payload, loc="cooldown")

    def test_missing_deployment(self, lifecycle, rule_store, alert_rule):
        payload = alert_rule()
        del payload["sensor_deployment_id"]
        self.assert_rejected(lifecycle, rule_store, payload, loc="sensor_deployment_id")

    def test_capacity_per_deployment(self, alert_rule):
        store = RuleStore()
        manager = RuleLifecycleManager(store, CooldownTracker(), max_rules_per_deployment=2)
        manager.create(alert_rule())
        manager.create(alert_rule(is_active=False))

        with pytest.raises(RuleValidationError, match="Maximum 2 rules"):
            manager.create(alert_rule())

        assert len(store) == 2
        assert manager.create(alert_rule(sensor_deployment_id=2)).id == 3


class TestUpdate:
    """Test RuleLifecycleManager.update"""

    def test_partial_update(self, lifecycle, alert_rule):
        rule = lifecycle.create(alert_rule())

        updated = lifecycle.update(rule.id, {"threshold_value": 40})

        assert updated.threshold_value == 40.0
        assert updated.name == rule.name
        assert updated.action == rule.action
        assert updated.created_at == rule.created_at

    def test_rekey_deployment(self, lifecycle, rule_store, alert_rule):
        rule = lifecycle.create(alert_rule(sensor_deployment_id=1))

        lifecycle.update(rule.id, {"sensorDeploymentId": 9})

        assert rule_store.rules_watching(1) == []
        assert [r.id for r in rule_store.rules_watching(9)] == [rule.id]

    def test_update_cooldown_minutes(self, lifecycle, alert_rule):
        rule = lifecycle.create(alert_rule(cooldown="5m"))

        assert lifecycle.update(rule.id, {"cooldownMinutes": 1}).cooldown == timedelta(minutes=1)

    def test_replace_action_with_flat_fields(self, lifecycle, alert_rule):
        rule = lifecycle.create(alert_rule())

        updated = lifecycle.update(
            rule.id, {"action_type": "trigger_actuator", "target_deployment_id": 8, "actuator_command": "OFF"}
        )

        assert updated.action == TriggerActuator(target_deployment_id=8, command="OFF")

    def test_flat_update_keeps_unchanged_alert_fields(self, lifecycle, alert_rule):
        """A camelCase dashboard patch of one alert field keeps the others"""
        rule = lifecycle.create(
            alert_rule(action={"type": "create_alert", "title": "Motion", "message": "Zone A", "severity": "critical"})
        )

        updated = lifecycle.update(rule.id, {"actionType": "create_alert", "alertTitle": "Motion (zone A)"})

        assert updated.action == CreateAlert(title="Motion (zone A)", message="Zone A", severity=AlertSeverity.CRITICAL)

    def test_flat_update_keeps_unchanged_actuator_fields(self, lifecycle, actuator_rule):
        rule = lifecycle.create(actuator_rule())

        updated = lifecycle.update(rule.id, {"action_type": "control_actuator", "actuator_command": "OFF"})

        assert updated.action == TriggerActuator(target_deployment_id=70, command="OFF", parameters={"brightness": 80})

    def test_flat_fields_without_action_type_rejected(self, lifecycle, alert_rule):
        rule = lifecycle.create(alert_rule())

        with pytest.raises(RuleValidationError):
            lifecycle.update(rule.id, {"alert_title": "new"})

    def test_last_fired_at_is_read_only(self, lifecycle, alert_rule, t0):
        rule = lifecycle.create(alert_rule())

        with pytest.raises(RuleValidationError, match="last_fired_at"):
            lifecycle.update(rule.id, {"lastFiredAt": t0})

    def test_invalid_update_keeps_previous_version(self, lifecycle, rule_store, alert_rule):
        rule = lifecycle.create(alert_rule())

        with pytest.raises(RuleValidationError):
            lifecycle.update(rule.id, {"operator": "between"})

        assert rule_store.get(rule.id).operator is ComparisonOperator.GT

    def test_update_keeps_cooldown_clock(self, lifecycle, cooldowns, alert_rule, t0):
        rule = lifecycle.create(alert_rule())
        cooldowns.try_acquire(rule.id, t0)

        updated = lifecycle.update(rule.id, {"name": "renamed"})

        assert updated.last_fired_at == t0

    def test_unknown_rule(self, lifecycle):
        with pytest.raises(RuleNotFoundError):
            lifecycle.update(42, {"name": "x"})

    def test_upsert_creates_then_replaces(self, lifecycle, alert_rule):
        created = lifecycle.upsert(alert_rule(), rule_id=10)
        replaced = lifecycle.upsert(alert_rule(name="replaced"), rule_id=10)

        assert created.id == replaced.id == 10
        assert replaced.name == "replaced"
        assert lifecycle.create(alert_rule()).id == 11


class TestActivation:
    """Test activate/deactivate/remove"""

    def test_deactivate_and_activate(self, lifecycle, rule_store, alert_rule):
        rule = lifecycle.create(alert_rule())

        assert lifecycle.deactivate(rule.id).is_active is False
        assert rule_store.rules_watching(1) == []
        assert rule.id in rule_store

        assert lifecycle.activate(rule.id).is_active is True
        assert [r.id for r in rule_store.rules_watching(1)] == [rule.id]

    def test_reactivation_keeps_cooldown_clock(self, lifecycle, cooldowns, alert_rule, t0):
        rule = lifecycle.create(alert_rule())
        cooldowns.try_acquire(rule.id, t0)
        lifecycle.deactivate(rule.id)

        lifecycle.activate(rule.id)

        assert cooldowns.try_acquire(rule.id, t0 + timedelta(minutes=2)) is False
        assert cooldowns.try_acquire(rule.id, t0 + timedelta(minutes=5)) is True

    def test_reactivation_with_reset(self, lifecycle, cooldowns, alert_rule, t0):
        rule = lifecycle.create(alert_rule())
        cooldowns.try_acquire(rule.id, t0)
        lifecycle.deactivate(rule.id)

        lifecycle.activate(rule.id, reset_cooldown=True)

        assert cooldowns.try_acquire(rule.id, t0 + timedelta(minutes=1)) is True

    def test_remove(self, lifecycle, rule_store, cooldowns, alert_rule):
        rule = lifecycle.create(alert_rule())

        removed = lifecycle.remove(rule.id)

        assert removed.id == rule.id
        assert rule.id not in rule_store
        assert rule.id not in cooldowns
        with pytest.raises(RuleNotFoundError):
            lifecycle.get(rule.id)
        with pytest.raises(RuleNotFoundError):
            lifecycle.remove(rule.id)

    def test_list_rules_filters(self, lifecycle, alert_rule):
        lifecycle.create(alert_rule(sensor_deployment_id=1))
        lifecycle.create(alert_rule(sensor_deployment_id=2, is_active=False))
        lifecycle.create(alert_rule(sensor_deployment_id=2))

        assert [r.id for r in lifecycle.list_rules()] == [1, 2, 3]
        assert [r.id for r in lifecycle.list_rules(sensor_deployment_id=2)] == [2, 3]
        assert [r.id for r in lifecycle.list_rules(active=False)] == [2]


class TestRestore:
    """Test rehydrating persisted rules"""

    def test_restore_keeps_ids_and_last_fired(self, lifecycle, cooldowns, alert_rule, t0):
        records = [
            {**alert_rule(), "id": 7, "lastTriggered": "2024-06-01T12:00:00Z"},
            {**alert_rule(name="second"), "id": 3},
        ]

        restored = lifecycle.restore(records)

        assert [r.id for r in restored] == [7, 3]
        assert restored[0].last_fired_at == t0
        assert cooldowns.try_acquire(7, t0 + timedelta(minutes=1)) is False
        assert lifecycle.create(alert_rule()).id == 8

    def test_restore_skips_invalid_records(self, lifecycle, alert_rule):
        records = [
            alert_rule(operator="between"),
            {**alert_rule(), "id": 2, "last_fired_at": "not a timestamp"},
            alert_rule(name="valid"),
        ]

        restored = lifecycle.restore(records)

        assert [r.name for r in restored] == ["valid"]
        assert len(lifecycle.list_rules()) == 1

    @pytest.mark.asyncio
    async def test_load_from_loader(self, lifecycle, alert_rule, actuator_rule):
        loader = DictRuleLoader([alert_rule(), actuator_rule()])

        rules = await lifecycle.load_from(loader)

        assert [r.action_type for r in rules] == ["create_alert", "trigger_actuator"]
