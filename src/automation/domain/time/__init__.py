from src.automation.domain.time.delta import TimeDelta, parse_duration
from src.automation.domain.time.unit import TimeUnit

__all__ = ["TimeDelta", "TimeUnit", "parse_duration"]
