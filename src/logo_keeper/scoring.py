"""Rule-based relevance scoring for scraped logo candidates."""

import importlib
import logging
from pathlib import Path
from typing import Callable


logger = logging.getLogger(__name__)


class ScoringEngine:
    """Loads rule functions from the rules package and sums their points.

    Each category directory under ``rules/`` may hold ``bonus.py`` and
    ``penalty.py`` modules with one function per rule, plus ``bonuses.txt`` /
    ``penalties.txt`` assigning each function its point value. A rule returns
    a bool (full value or nothing) or a number used as a multiplier.
    """

    def __init__(self, rules_dir: Path | None = None):
        self.rules: list[tuple[Callable, str, int]] = []
        self.rule_values: dict[str, int] = {}
        self._load_all_rules(rules_dir or Path(__file__).parent / "rules")

    def _load_all_rules(self, rules_dir: Path) -> None:
        """Load all scoring rules from the rules directory."""
        for category_dir in sorted(rules_dir.iterdir()):
            if not category_dir.is_dir() or category_dir.name.startswith("__"):
                continue

            for rule_type, values_name in (("bonus", "bonuses.txt"), ("penalty", "penalties.txt")):
                values_file = category_dir / values_name
                if not values_file.exists():
                    continue

                values = self._load_rule_values(values_file)
                self.rule_values.update(values)

                module_path = f"{__package__}.rules.{category_dir.name}.{rule_type}"
                try:
                    module = importlib.import_module(module_path)
                except ImportError as e:
                    logger.debug(f"Could not load {rule_type} rules from {module_path}: {e}")
                    continue
                self._load_rules_from_module(module, category_dir.name, rule_type, values)

    @staticmethod
    def _load_rule_values(values_file: Path) -> dict[str, int]:
        """Parse '<points> <function_name>' lines, ignoring comments."""
        values = {}
        for line in values_file.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split(None, 1)
            if len(parts) == 2:
                value, function_name = parts
                values[function_name.strip()] = int(value)
        return values

    def _load_rules_from_module(
        self, module, category: str, rule_type: str, rule_values: dict[str, int]
    ) -> None:
        """Register every public function defined in module that has a value."""
        for attr_name in sorted(dir(module)):
            if attr_name.startswith("_") or attr_name not in rule_values:
                continue

            attr = getattr(module, attr_name)
            if callable(attr) and getattr(attr, "__module__", None) == module.__name__:
                description = attr.__doc__.strip() if attr.__doc__ else attr_name
                rule_label = f"{category}/{rule_type}: {description}"
                self.rules.append((attr, rule_label, rule_values[attr_name]))
                logger.debug(f"Loaded rule: {rule_label} (value: {rule_values[attr_name]})")

    def calculate_score(self, url: str, **kwargs) -> tuple[int, list[tuple[str, int]]]:
        """
        Calculate cumulative score by applying all rules.

        Returns:
            Tuple of (total_score, rule_details) where rule_details is a list
            of (rule_label, score_contribution) tuples for debugging/logging.
        """
        total_score = 0
        rule_details = []

        for rule_func, rule_label, rule_value in self.rules:
            try:
                rule_applies = rule_func(url=url, **kwargs)
            except Exception as e:
                logger.warning(f"Error applying rule '{rule_label}': {e}")
                continue

            if isinstance(rule_applies, bool):
                score_contribution = rule_value if rule_applies else 0
            elif isinstance(rule_applies, (int, float)):
                score_contribution = int(rule_value * rule_applies)
            else:
                score_contribution = 0

            if score_contribution != 0:
                total_score += score_contribution
                rule_details.append((rule_label, score_contribution))

        return total_score, rule_details


_scoring_engine: ScoringEngine | None = None


def get_scoring_engine() -> ScoringEngine:
    """Get the shared scoring engine, loading rules on first use."""
    global _scoring_engine
    if _scoring_engine is None:
        _scoring_engine = ScoringEngine()
    return _scoring_engine
