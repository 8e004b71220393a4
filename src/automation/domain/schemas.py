"""Pydantic schemas for rule admission."""

from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_snake

from src.automation.domain.models import ActionSpec, ActionType, ComparisonOperator
from src.automation.domain.time import TimeDelta

# action_type spellings found in the dashboard forms and seed data
ACTION_TYPE_ALIASES = {
    "create_alert": ActionType.CREATE_ALERT,
    "send_alert": ActionType.CREATE_ALERT,
    "trigger_actuator": ActionType.TRIGGER_ACTUATOR,
    "control_actuator": ActionType.TRIGGER_ACTUATOR,
}

# Flat record field -> tagged action field
LEGACY_ALERT_FIELDS = {
    "alert_title": "title",
    "alert_message": "message",
    "alert_severity": "severity",
}
LEGACY_ACTUATOR_FIELDS = {
    "target_deployment_id": "target_deployment_id",
    "actuator_command": "command",
    "actuator_parameters": "parameters",
}
LEGACY_ACTION_FIELDS = set(LEGACY_ALERT_FIELDS) | set(LEGACY_ACTUATOR_FIELDS)


def normalize_rule_payload(data: dict[str, Any]) -> dict[str, Any]:
    """
    Bring a rule payload into the tagged shape.

    Accepts camelCase keys and the flat record used by the dashboard
    (``action_type`` plus ``alert_*`` or ``actuator_*`` fields) and
    returns snake_case keys with a nested ``action`` dict.

    Raises:
        ValueError: If ``action_type`` names an unsupported action
    """
    data = {to_snake(key): value for key, value in data.items()}

    if isinstance(data.get("action"), dict):
        data["action"] = {to_snake(key): value for key, value in data["action"].items()}

    if "action_type" in data:
        raw_type = data.pop("action_type")
        action_type = ACTION_TYPE_ALIASES.get(str(raw_type).strip().lower())
        if action_type is None:
            raise ValueError(f"Unsupported action type: {raw_type!r}")

        mapping = LEGACY_ALERT_FIELDS if action_type == ActionType.CREATE_ALERT else LEGACY_ACTUATOR_FIELDS
        action: dict[str, Any] = {"type": action_type.value}
        for legacy_field, action_field in mapping.items():
            value = data.get(legacy_field)
            if value is not None:
                action[action_field] = value
        data["action"] = action

    for legacy_field in LEGACY_ACTION_FIELDS:
        data.pop(legacy_field, None)

    if data.get("cooldown") is None and data.get("cooldown_minutes") is not None:
        data["cooldown"] = timedelta(minutes=float(data["cooldown_minutes"]))
    data.pop("cooldown_minutes", None)

    return data


class RuleDefinition(BaseModel):
    """Schema for creating or replacing an automation rule."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=255, description="Rule name")
    description: str = Field("", description="Free text, no semantic effect")
    sensor_deployment_id: int = Field(..., description="Sensor deployment the condition reads")
    operator: ComparisonOperator
    threshold_value: float = Field(..., allow_inf_nan=False)
    action: ActionSpec
    is_active: bool = True
    cooldown: TimeDelta | None = Field(None, description="Minimum spacing between firings, e.g. '5m'")

    @model_validator(mode="before")
    @classmethod
    def _normalize_payload(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return normalize_rule_payload(data)
        return data

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, value: Any) -> ComparisonOperator:
        return ComparisonOperator.normalize(value)

    @field_validator("description", mode="before")
    @classmethod
    def _empty_description(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("cooldown")
    @classmethod
    def _non_negative_cooldown(cls, value: TimeDelta | None) -> TimeDelta | None:
        if value is not None and value.delta < timedelta():
            raise ValueError("cooldown must not be negative")
        return value
