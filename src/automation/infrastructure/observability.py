"""Dispatch logs feeding the operator-facing dashboards."""

from collections.abc import Iterable
from datetime import datetime, timezone

import pandas as pd
from loguru import logger

from src.automation.domain.models import (
    AutomationOverview,
    AutomationRule,
    DispatchResult,
    Reading,
    RuleStatistics,
)
from src.automation.domain.protocols import DispatchObserver


class InMemoryDispatchLog(DispatchObserver):
    """Keeps every dispatch outcome and evaluation fault in memory."""

    def __init__(self):
        self.results: list[DispatchResult] = []
        self.evaluation_errors: list[dict] = []
        self._statistics: dict[int, RuleStatistics] = {}

    def record_dispatch(self, result: DispatchResult) -> None:
        """Record one dispatch outcome and update the rule's counters."""
        self.results.append(result)

        stats = self._stats_for(result.rule_id)
        stats.trigger_count += 1
        if stats.last_triggered is None or result.fired_at > stats.last_triggered:
            stats.last_triggered = result.fired_at
        if result.success:
            stats.success_count += 1
        else:
            stats.failure_count += 1
            stats.last_error = str(result.error) if result.error else None

    def record_evaluation_error(self, rule_id: int, reading: Reading, error: Exception) -> None:
        """Record a fault while evaluating a rule."""
        self.evaluation_errors.append(
            {
                "rule_id": rule_id,
                "sensor_deployment_id": reading.sensor_deployment_id,
                "value": reading.value,
                "observed_at": reading.observed_at,
                "error": str(error),
                "error_type": type(error).__name__,
                "recorded_at": datetime.now(timezone.utc),
            }
        )
        stats = self._stats_for(rule_id)
        stats.evaluation_errors += 1
        stats.last_error = str(error)

    def _stats_for(self, rule_id: int) -> RuleStatistics:
        if rule_id not in self._statistics:
            self._statistics[rule_id] = RuleStatistics(rule_id=rule_id)
        return self._statistics[rule_id]

    def rule_statistics(self, rule_id: int) -> RuleStatistics:
        """Get the counters of one rule (zeros if it never fired)."""
        return self._statistics.get(rule_id, RuleStatistics(rule_id=rule_id))

    def failures(self) -> list[DispatchResult]:
        return [r for r in self.results if not r.success]

    def to_dataframe(self) -> pd.DataFrame:
        """Convert stored dispatch results to DataFrame."""
        if not self.results:
            return pd.DataFrame()

        return pd.DataFrame([result.to_dict() for result in self.results])

    def statistics_dataframe(self) -> pd.DataFrame:
        """Per-rule counters as a DataFrame indexed by rule id."""
        if not self._statistics:
            return pd.DataFrame()

        df = pd.DataFrame([stats.to_dict() for stats in self._statistics.values()])
        return df.set_index("rule_id").sort_index()

    def clear(self):
        """Clear all stored results."""
        self.results.clear()
        self.evaluation_errors.clear()
        self._statistics.clear()

    def __len__(self):
        return len(self.results)


class CSVDispatchLog(InMemoryDispatchLog):
    """Dispatch log that also appends results to a CSV file incrementally."""

    def __init__(self, filepath: str, mode: str = "w", buffer_size: int = 100):
        """
        Initialize CSV log.

        Args:
            filepath: Path to CSV file
            mode: 'w' for overwrite, 'a' for append
            buffer_size: Write every N results
        """
        super().__init__()
        self.filepath = filepath
        self._buffer: list[DispatchResult] = []
        self._buffer_size = buffer_size
        self._header_written = mode == "a"

    def record_dispatch(self, result: DispatchResult) -> None:
        """Record and buffer a result, writing when the buffer is full."""
        super().record_dispatch(result)
        self._buffer.append(result)

        if len(self._buffer) >= self._buffer_size:
            self.flush()

    def flush(self):
        """Write buffered results to CSV."""
        if not self._buffer:
            return

        df = pd.DataFrame([result.to_dict() for result in self._buffer])

        df.to_csv(
            self.filepath,
            mode="a" if self._header_written else "w",
            header=not self._header_written,
            index=False,
        )

        self._header_written = True
        self._buffer.clear()
        logger.debug(f"Flushed {len(df)} dispatch results to {self.filepath}")

    def close(self):
        """Write any results still buffered."""
        self.flush()

    def __del__(self):
        """Ensure buffer is flushed on destruction."""
        self.flush()

    def read_csv(self) -> pd.DataFrame:
        """Read all results written so far."""
        try:
            return pd.read_csv(self.filepath)
        except FileNotFoundError:
            return pd.DataFrame()


def build_overview(
    rules: Iterable[AutomationRule],
    dispatch_log: InMemoryDispatchLog,
    unread_alerts: int = 0,
) -> AutomationOverview:
    """Summarize rules and dispatch outcomes for the dashboard overview card."""
    rules = list(rules)
    active = sum(1 for rule in rules if rule.is_active)
    failed = len(dispatch_log.failures())

    return AutomationOverview(
        total_rules=len(rules),
        active_rules=active,
        inactive_rules=len(rules) - active,
        fired=len(dispatch_log),
        successful_dispatches=len(dispatch_log) - failed,
        failed_dispatches=failed,
        evaluation_errors=len(dispatch_log.evaluation_errors),
        unread_alerts=unread_alerts,
    )
