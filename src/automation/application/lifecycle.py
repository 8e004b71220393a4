"""Rule lifecycle: the engine's only mutation surface for rules."""

import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger
from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from src.automation.application.cooldown import CooldownTracker
from src.automation.application.rule_store import RuleStore
from src.automation.domain.exceptions import RuleNotFoundError, RuleValidationError
from src.automation.domain.models import ActionSpec, AutomationRule, CreateAlert
from src.automation.domain.protocols import RuleLoader
from src.automation.domain.schemas import (
    ACTION_TYPE_ALIASES,
    LEGACY_ACTION_FIELDS,
    LEGACY_ACTUATOR_FIELDS,
    LEGACY_ALERT_FIELDS,
    RuleDefinition,
)

# Fields managed by the manager or the engine, never by callers
_READ_ONLY_FIELDS = {"id", "created_at", "updated_at"}


class RuleLifecycleManager:
    """
    Applies create/update/delete/activate/deactivate operations.

    Every rule is validated before it reaches the store, so a malformed
    rule never becomes visible to the engine. ``last_fired_at`` belongs to
    the cooldown tracker: rule snapshots returned here carry the tracker's
    current value, and callers cannot overwrite it.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        cooldowns: CooldownTracker,
        default_cooldown: timedelta = timedelta(minutes=5),
        max_rules_per_deployment: int = 50,
    ):
        self.rule_store = rule_store
        self.cooldowns = cooldowns
        self.default_cooldown = default_cooldown
        self.max_rules_per_deployment = max_rules_per_deployment
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def create(self, data: RuleDefinition | dict[str, Any]) -> AutomationRule:
        """
        Validate a definition and add it as a new rule.

        Raises:
            RuleValidationError: If the definition is malformed
        """
        definition = self._validate(data)
        with self._lock:
            self._check_capacity(definition.sensor_deployment_id)
            rule = self._build(next(self._ids), definition)
            self._commit(rule)

        logger.info(f"Automation rule created: {rule.id} '{rule.name}' ({rule.describe_condition()} -> {rule.action.type})")
        return self._snapshot(rule)

    def update(self, rule_id: int, changes: dict[str, Any]) -> AutomationRule:
        """
        Apply a partial update to an existing rule.

        Raises:
            RuleNotFoundError: If the rule does not exist
            RuleValidationError: If the updated rule is malformed
        """
        changes = {to_snake(key): value for key, value in changes.items()}
        if "last_fired_at" in changes:
            raise RuleValidationError("last_fired_at is managed by the engine", rule_id=rule_id)
        if LEGACY_ACTION_FIELDS & set(changes) and "action_type" not in changes:
            raise RuleValidationError(
                "Flat action fields require action_type; send a full 'action' instead",
                rule_id=rule_id,
            )

        with self._lock:
            current = self._require(rule_id)
            merged = self._definition_payload(current)
            if "action_type" in changes:
                merged.update(_flat_action_fields(current.action, changes["action_type"]))
            if "cooldown_minutes" in changes:
                merged.pop("cooldown")
            merged.update({k: v for k, v in changes.items() if k not in _READ_ONLY_FIELDS})

            definition = self._validate(merged, rule_id=rule_id)
            rule = self._build(rule_id, definition, created_at=current.created_at)
            if rule.sensor_deployment_id != current.sensor_deployment_id:
                self._check_capacity(rule.sensor_deployment_id, rule_id)
            self._commit(rule)

        logger.info(f"Automation rule updated: {rule_id}")
        return self._snapshot(rule)

    def upsert(self, data: RuleDefinition | dict[str, Any], rule_id: int | None = None) -> AutomationRule:
        """Replace the rule with ``rule_id`` or create a new one when it is unknown."""
        if rule_id is None or rule_id not in self.rule_store:
            return self.create(data) if rule_id is None else self._create_with_id(rule_id, data)

        definition = self._validate(data, rule_id=rule_id)
        with self._lock:
            current = self._require(rule_id)
            rule = self._build(rule_id, definition, created_at=current.created_at)
            if rule.sensor_deployment_id != current.sensor_deployment_id:
                self._check_capacity(rule.sensor_deployment_id, rule_id)
            self._commit(rule)

        logger.info(f"Automation rule replaced: {rule_id}")
        return self._snapshot(rule)

    def remove(self, rule_id: int) -> AutomationRule:
        """
        Delete a rule and its cooldown state.

        Raises:
            RuleNotFoundError: If the rule does not exist
        """
        with self._lock:
            rule = self.rule_store.remove(rule_id)
            if rule is None:
                raise RuleNotFoundError(rule_id)
            last_fired_at = self.cooldowns.last_fired_at(rule_id)
            self.cooldowns.forget(rule_id)

        logger.info(f"Automation rule deleted: {rule_id}")
        return rule.model_copy(update={"last_fired_at": last_fired_at})

    def activate(self, rule_id: int, reset_cooldown: bool = False) -> AutomationRule:
        """Put a rule back on the evaluation path, keeping its cooldown clock unless asked to reset it."""
        rule = self._set_active(rule_id, True)
        if reset_cooldown:
            self.cooldowns.reset(rule_id)
        return self._snapshot(rule)

    def deactivate(self, rule_id: int) -> AutomationRule:
        """Take a rule off the evaluation path while retaining it."""
        return self._snapshot(self._set_active(rule_id, False))

    def restore(self, records: list[dict[str, Any]]) -> list[AutomationRule]:
        """
        Rehydrate persisted rules, keeping their ids and last firing times.

        Invalid records are logged and skipped so one bad row cannot keep
        the rest of the fleet from being evaluated.
        """
        restored = []
        for record in records:
            rule_id = record.get("id")
            try:
                raw_last_fired = record.get("last_fired_at") or record.get("lastTriggered") or record.get("last_triggered")
                last_fired_at = _parse_timestamp(raw_last_fired) if raw_last_fired else None

                if rule_id is None:
                    rule = self.create(record)
                else:
                    rule = self._create_with_id(int(rule_id), record)
                if last_fired_at is not None:
                    self.cooldowns.register(rule.id, rule.cooldown, last_fired_at)
                    rule = self._snapshot(rule)
                restored.append(rule)
            except (RuleValidationError, ValueError, TypeError) as e:
                logger.error(f"Skipping persisted rule {rule_id if rule_id is not None else record.get('name')}: {e}")

        logger.info(f"Restored {len(restored)} automation rule(s) (out of {len(records)} records)")
        return restored

    async def load_from(self, loader: RuleLoader, **kwargs) -> list[AutomationRule]:
        """Load rules from a loader and restore them."""
        records = await loader.load_rules(**kwargs)
        return self.restore(records)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get(self, rule_id: int) -> AutomationRule:
        """
        Get a single rule.

        Raises:
            RuleNotFoundError: If the rule does not exist
        """
        return self._snapshot(self._require(rule_id))

    def list_rules(
        self, sensor_deployment_id: int | None = None, active: bool | None = None
    ) -> list[AutomationRule]:
        """Get all rules, optionally filtered by watched deployment and activity."""
        rules = self.rule_store.all()
        if sensor_deployment_id is not None:
            rules = [r for r in rules if r.sensor_deployment_id == sensor_deployment_id]
        if active is not None:
            rules = [r for r in rules if r.is_active == active]
        return [self._snapshot(r) for r in rules]

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _validate(self, data: RuleDefinition | dict[str, Any], rule_id: int | None = None) -> RuleDefinition:
        if isinstance(data, RuleDefinition):
            return data
        try:
            return RuleDefinition.model_validate(data)
        except ValidationError as e:
            errors = [
                {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            ]
            summary = "; ".join(f"{err['loc'] or 'rule'}: {err['msg']}" for err in errors)
            raise RuleValidationError(f"Invalid automation rule: {summary}", errors=errors, rule_id=rule_id) from e

    def _build(
        self, rule_id: int, definition: RuleDefinition, created_at: datetime | None = None
    ) -> AutomationRule:
        now = datetime.now(timezone.utc)
        return AutomationRule(
            id=rule_id,
            name=definition.name,
            description=definition.description,
            sensor_deployment_id=definition.sensor_deployment_id,
            operator=definition.operator,
            threshold_value=definition.threshold_value,
            action=definition.action,
            is_active=definition.is_active,
            cooldown=definition.cooldown.delta if definition.cooldown is not None else self.default_cooldown,
            created_at=created_at or now,
            updated_at=now,
        )

    def _create_with_id(self, rule_id: int, data: RuleDefinition | dict[str, Any]) -> AutomationRule:
        definition = self._validate(data, rule_id=rule_id)
        with self._lock:
            if rule_id in self.rule_store:
                raise RuleValidationError(f"Automation rule {rule_id} already exists", rule_id=rule_id)
            self._check_capacity(definition.sensor_deployment_id, rule_id)
            rule = self._build(rule_id, definition)
            self._commit(rule)
            # Keep generated ids clear of restored ones
            self._ids = itertools.count(max(rule_id + 1, next(self._ids)))

        logger.info(f"Automation rule created: {rule.id} '{rule.name}' ({rule.describe_condition()})")
        return self._snapshot(rule)

    def _set_active(self, rule_id: int, active: bool) -> AutomationRule:
        with self._lock:
            current = self._require(rule_id)
            if current.is_active == active:
                return current
            rule = current.model_copy(update={"is_active": active, "updated_at": datetime.now(timezone.utc)})
            self.rule_store.upsert(rule)

        logger.info(f"Automation rule {'activated' if active else 'deactivated'}: {rule_id}")
        return rule

    def _commit(self, rule: AutomationRule) -> None:
        # Register before indexing so the engine never sees a rule without a cooldown slot
        self.cooldowns.register(rule.id, rule.cooldown)
        self.rule_store.upsert(rule)

    def _check_capacity(self, sensor_deployment_id: int, rule_id: int | None = None) -> None:
        if self.rule_store.count_watching(sensor_deployment_id) >= self.max_rules_per_deployment:
            raise RuleValidationError(
                f"Maximum {self.max_rules_per_deployment} rules per sensor deployment reached "
                f"(deployment {sensor_deployment_id})",
                rule_id=rule_id,
            )

    def _require(self, rule_id: int) -> AutomationRule:
        rule = self.rule_store.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    def _snapshot(self, rule: AutomationRule) -> AutomationRule:
        return rule.model_copy(update={"last_fired_at": self.cooldowns.last_fired_at(rule.id)})

    @staticmethod
    def _definition_payload(rule: AutomationRule) -> dict[str, Any]:
        return {
            "name": rule.name,
            "description": rule.description,
            "sensor_deployment_id": rule.sensor_deployment_id,
            "operator": rule.operator,
            "threshold_value": rule.threshold_value,
            "action": rule.action.model_dump(),
            "is_active": rule.is_active,
            "cooldown": rule.cooldown,
        }


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _flat_action_fields(action: ActionSpec, action_type: Any) -> dict[str, Any]:
    """Current action as flat record fields, when the update keeps its variant."""
    if ACTION_TYPE_ALIASES.get(str(action_type).strip().lower()) != action.type:
        return {}
    mapping = LEGACY_ALERT_FIELDS if isinstance(action, CreateAlert) else LEGACY_ACTUATOR_FIELDS
    return {legacy_field: getattr(action, action_field) for legacy_field, action_field in mapping.items()}
