import math
import re
from datetime import timedelta
from typing import Any, Self

from pydantic_core import CoreSchema, core_schema

from src.automation.domain.time.unit import TimeUnit

_TIMEDELTA_ARGS = {
    TimeUnit.ms: "milliseconds",
    TimeUnit.s: "seconds",
    TimeUnit.m: "minutes",
    TimeUnit.h: "hours",
    TimeUnit.d: "days",
}


class TimeDelta:
    """Duration written the way rule authors type it: "30s", "5m", "1h30m"."""

    __REGEX_PATTERN = rf"(\d+(?:\.\d+)?)({TimeUnit.get_regex_pattern()})"

    delta: timedelta

    def __init__(self, delta: str | timedelta | int | float, strict: bool = True) -> None:
        if isinstance(delta, str):
            self.delta = self.__class__.__parse_delta_str(delta, strict)
        elif isinstance(delta, timedelta):
            self.delta = delta
        else:
            if not math.isfinite(delta):
                raise ValueError(f"Duration must be finite: {delta}")
            self.delta = timedelta(seconds=delta)

    @classmethod
    def __parse_delta_str(cls, delta_str: str, strict: bool = True) -> timedelta:
        delta_str = delta_str.strip()

        if not delta_str or delta_str == "0":
            return timedelta()

        if delta_str.startswith("-"):
            raise ValueError(f"Negative durations are not allowed: {delta_str}")

        # Bare numbers are seconds
        if re.fullmatch(r"\d+(?:\.\d+)?", delta_str):
            return timedelta(seconds=float(delta_str))

        matches = re.findall(cls.__REGEX_PATTERN, delta_str)

        if not matches:
            raise ValueError(f"Invalid duration format: {delta_str}")

        if strict:
            consumed = "".join(f"{value}{unit}" for value, unit in matches)
            if consumed != delta_str.replace(" ", ""):
                raise ValueError(f"Invalid characters in duration: {delta_str}")

        return sum(
            (timedelta(**{_TIMEDELTA_ARGS[TimeUnit(unit)]: float(value)}) for value, unit in matches),
            timedelta(),
        )

    def delta_to_units(self) -> dict[TimeUnit, int]:
        """Split the duration into whole days, hours, minutes, seconds and milliseconds."""
        minutes, seconds = divmod(int(self.delta.total_seconds()), 60)
        hours, minutes = divmod(minutes, 60)
        days, hours = divmod(hours, 24)
        return {
            TimeUnit.d: days,
            TimeUnit.h: hours,
            TimeUnit.m: minutes,
            TimeUnit.s: seconds,
            TimeUnit.ms: self.delta.microseconds // 1000,
        }

    def __str__(self) -> str:
        parts = [f"{value}{unit}" for unit, value in self.delta_to_units().items() if value]
        return "".join(parts) or "0"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, TimeDelta):
            return self.delta == other.delta
        if isinstance(other, timedelta):
            return self.delta == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.delta)

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls._validate,
            core_schema.union_schema(
                [
                    core_schema.is_instance_schema(cls),
                    core_schema.str_schema(),
                    core_schema.is_instance_schema(timedelta),
                    core_schema.float_schema(),
                ]
            ),
            serialization=core_schema.to_string_ser_schema(),
        )

    @classmethod
    def _validate(cls, value: Any) -> Self:
        return value if isinstance(value, cls) else cls(value)


def parse_duration(value: str | timedelta | int | float) -> timedelta:
    """Parse a duration string, number of seconds or timedelta into a timedelta."""
    return TimeDelta(value).delta
