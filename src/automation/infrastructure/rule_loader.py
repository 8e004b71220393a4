"""Rule loaders for loading persisted or seed rules."""

import json
from pathlib import Path
from typing import Any

from loguru import logger

from src.automation.domain.protocols import RuleLoader


class JsonFileRuleLoader(RuleLoader):
    """Load rules from a JSON file: a list of rules or ``{"rules": [...]}``."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load_rules(self, **kwargs) -> list[dict[str, Any]]:
        """
        Load rules from the file.

        Args:
            **kwargs: ``only_active=True`` drops inactive rules

        Returns:
            List of rule dictionaries
        """
        with self.path.open(encoding="utf-8") as f:
            data = json.load(f)

        rules = data.get("rules", []) if isinstance(data, dict) else data
        if not isinstance(rules, list):
            raise ValueError(f"Expected a list of rules in {self.path}")

        if kwargs.get("only_active"):
            rules = [r for r in rules if r.get("is_active", r.get("isActive", True))]

        logger.info(f"Loaded {len(rules)} rules from {self.path}")
        return rules


class DictRuleLoader(RuleLoader):
    """Simple loader that returns pre-provided rules."""

    def __init__(self, rules: list[dict[str, Any]]):
        """Initialize with rule list."""
        self.rules = rules

    async def load_rules(self, **kwargs) -> list[dict[str, Any]]:
        """Return the provided rules."""
        logger.info(f"Loaded {len(self.rules)} rules from dict")
        return list(self.rules)
