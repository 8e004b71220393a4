"""Per-rule cooldown gate."""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger


@dataclass
class _CooldownSlot:
    cooldown: timedelta
    last_fired_at: datetime | None = None


class CooldownTracker:
    """
    Decides whether a rule may fire at a given instant.

    Holds one slot per rule in a single map guarded by a lock. The lock only
    covers an O(1) read-compare-write, so unrelated rules never wait on each
    other for longer than a dictionary lookup.
    """

    def __init__(self):
        self._slots: dict[int, _CooldownSlot] = {}
        self._lock = threading.Lock()

    def register(self, rule_id: int, cooldown: timedelta, last_fired_at: datetime | None = None) -> None:
        """
        Register a rule or update its cooldown.

        An already registered rule keeps its last firing time unless a new
        one is given, so updates and reactivation never reset the clock.
        """
        with self._lock:
            slot = self._slots.get(rule_id)
            if slot is None:
                self._slots[rule_id] = _CooldownSlot(cooldown=cooldown, last_fired_at=last_fired_at)
                return
            slot.cooldown = cooldown
            if last_fired_at is not None:
                slot.last_fired_at = last_fired_at

    def forget(self, rule_id: int) -> None:
        """Drop all cooldown state for a rule."""
        with self._lock:
            self._slots.pop(rule_id, None)

    def try_acquire(self, rule_id: int, now: datetime) -> bool:
        """
        Record ``now`` as the rule's last firing if its cooldown has elapsed.

        Returns:
            True if the caller may fire the rule, False if the rule is still
            cooling down or is not registered
        """
        with self._lock:
            slot = self._slots.get(rule_id)
            if slot is None:
                return False
            if slot.last_fired_at is not None and now - slot.last_fired_at < slot.cooldown:
                return False
            slot.last_fired_at = now
            return True

    def last_fired_at(self, rule_id: int) -> datetime | None:
        """Get the last firing time of a rule."""
        slot = self._slots.get(rule_id)
        return slot.last_fired_at if slot else None

    def remaining(self, rule_id: int, now: datetime) -> timedelta:
        """Time left before the rule may fire again (zero when it may fire now)."""
        slot = self._slots.get(rule_id)
        if slot is None or slot.last_fired_at is None:
            return timedelta()
        return max(timedelta(), slot.cooldown - (now - slot.last_fired_at))

    def reset(self, rule_id: int) -> None:
        """Clear the last firing time so the rule may fire on its next match."""
        with self._lock:
            slot = self._slots.get(rule_id)
            if slot is not None:
                slot.last_fired_at = None
        logger.debug(f"Cooldown reset for rule {rule_id}")

    def __contains__(self, rule_id: int) -> bool:
        return rule_id in self._slots

    def __len__(self) -> int:
        return len(self._slots)
