"""Domain models for the automation rule engine."""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ComparisonOperator(StrEnum):
    """Comparison applied between an observed value and a rule threshold."""

    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EQ = "eq"
    NEQ = "neq"

    @classmethod
    def normalize(cls, value: Any) -> "ComparisonOperator":
        """
        Map any spelling used by the dashboard forms or seed data to an operator.

        Raises:
            ValueError: If the spelling is not a supported comparison
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        try:
            return _OPERATOR_ALIASES[key]
        except KeyError:
            raise ValueError(f"Unsupported comparison operator: {value!r}") from None

    @property
    def symbol(self) -> str:
        return _OPERATOR_SYMBOLS[self]


_OPERATOR_SYMBOLS = {
    ComparisonOperator.GT: ">",
    ComparisonOperator.GTE: ">=",
    ComparisonOperator.LT: "<",
    ComparisonOperator.LTE: "<=",
    ComparisonOperator.EQ: "==",
    ComparisonOperator.NEQ: "!=",
}

_OPERATOR_ALIASES = {
    "gt": ComparisonOperator.GT,
    ">": ComparisonOperator.GT,
    "greater_than": ComparisonOperator.GT,
    "gte": ComparisonOperator.GTE,
    ">=": ComparisonOperator.GTE,
    "≥": ComparisonOperator.GTE,
    "greater_than_or_equal": ComparisonOperator.GTE,
    "lt": ComparisonOperator.LT,
    "<": ComparisonOperator.LT,
    "less_than": ComparisonOperator.LT,
    "lte": ComparisonOperator.LTE,
    "<=": ComparisonOperator.LTE,
    "≤": ComparisonOperator.LTE,
    "less_than_or_equal": ComparisonOperator.LTE,
    "eq": ComparisonOperator.EQ,
    "==": ComparisonOperator.EQ,
    "=": ComparisonOperator.EQ,
    "equals": ComparisonOperator.EQ,
    "neq": ComparisonOperator.NEQ,
    "!=": ComparisonOperator.NEQ,
    "≠": ComparisonOperator.NEQ,
    "not_equals": ComparisonOperator.NEQ,
}


class AlertSeverity(StrEnum):
    """Severity of an alert raised by a rule."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ActionType(StrEnum):
    """Discriminator of the action union."""

    CREATE_ALERT = "create_alert"
    TRIGGER_ACTUATOR = "trigger_actuator"


class CreateAlert(BaseModel):
    """Raise an alert when the rule fires."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["create_alert"] = "create_alert"
    title: str = Field(..., min_length=1, max_length=255)
    message: str = ""
    severity: AlertSeverity = AlertSeverity.WARNING


class TriggerActuator(BaseModel):
    """Send a command to an actuator deployment when the rule fires."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["trigger_actuator"] = "trigger_actuator"
    target_deployment_id: int
    command: str = Field(..., min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)


ActionSpec = Annotated[CreateAlert | TriggerActuator, Field(discriminator="type")]


class AutomationRule(BaseModel):
    """
    A threshold rule watching one sensor deployment.

    Instances are immutable snapshots: lifecycle operations replace the
    stored rule instead of mutating it, so a reader holding a rule always
    sees one consistent version of it.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str = ""
    sensor_deployment_id: int
    operator: ComparisonOperator
    threshold_value: float = Field(allow_inf_nan=False)
    action: ActionSpec
    is_active: bool = True
    cooldown: timedelta = timedelta(minutes=5)
    last_fired_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def action_type(self) -> ActionType:
        return ActionType(self.action.type)

    def describe_condition(self) -> str:
        """Human-readable condition, e.g. "deployment 7 < 200.0"."""
        return f"deployment {self.sensor_deployment_id} {self.operator.symbol} {self.threshold_value}"


def _as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC so every timestamp is comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class Reading:
    """A single sensor measurement delivered to the engine."""

    sensor_deployment_id: int
    value: float
    observed_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "observed_at", _as_utc(self.observed_at))


@dataclass(frozen=True)
class FireEvent:
    """A rule whose condition held and whose cooldown gate was acquired."""

    rule_id: int
    fired_at: datetime
    observed_value: float
    action: CreateAlert | TriggerActuator
    rule_name: str = ""
    sensor_deployment_id: int | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for DataFrame/storage."""
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "sensor_deployment_id": self.sensor_deployment_id,
            "fired_at": self.fired_at,
            "observed_value": self.observed_value,
            "action_type": self.action.type,
        }


class AlertRequest(BaseModel):
    """Payload delivered to the alert sink."""

    title: str
    message: str
    severity: AlertSeverity
    rule_id: int
    observed_value: float
    fired_at: datetime
    source: str = "automation_rule"


class ActuatorCommandRequest(BaseModel):
    """Payload delivered to the actuator command sink."""

    target_deployment_id: int
    command: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    rule_id: int
    fired_at: datetime


@dataclass
class DispatchResult:
    """Outcome of delivering one fire event to its sink."""

    rule_id: int
    action_type: ActionType
    fired_at: datetime
    success: bool
    error: Exception | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for DataFrame/storage."""
        return {
            "rule_id": self.rule_id,
            "action_type": str(self.action_type),
            "fired_at": self.fired_at,
            "success": self.success,
            "error": str(self.error) if self.error else None,
            "error_type": type(self.error).__name__ if self.error else None,
            "duration_ms": self.duration_ms,
        }


@dataclass
class RuleStatistics:
    """Per-rule dispatch counters shown next to each rule in the dashboard."""

    rule_id: int
    trigger_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    evaluation_errors: int = 0
    last_triggered: datetime | None = None
    last_error: str | None = None

    @property
    def success_rate(self) -> float | None:
        if not self.trigger_count:
            return None
        return self.success_count / self.trigger_count

    def to_dict(self) -> dict:
        return {**asdict(self), "success_rate": self.success_rate}


class AutomationOverview(BaseModel):
    """Fleet-wide automation summary for the dashboard overview card."""

    total_rules: int = 0
    active_rules: int = 0
    inactive_rules: int = 0
    fired: int = 0
    successful_dispatches: int = 0
    failed_dispatches: int = 0
    evaluation_errors: int = 0
    unread_alerts: int = 0

