"""Alert rule conditions.

A condition decides whether an evaluation should fire a rule::

    {}                                          # fail or warn fires
    {"verdicts": ["fail"]}                      # only fail fires
    {"verdict": "fail", "metric": "row_count", "operator": ">", "value": 100}

The metric clause is optional; when present it must also hold. A metric
the evaluation does not have never fires.
"""

from __future__ import annotations

import operator as op
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from dbqa.core.enums import Verdict
from dbqa.core.errors import AlertRuleError
from dbqa.evaluation.evaluator import Evaluation
from dbqa.evaluation.metrics import is_number

OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">": op.gt,
    ">=": op.ge,
    "<": op.lt,
    "<=": op.le,
    "==": op.eq,
    "!=": op.ne,
}

DEFAULT_VERDICTS = frozenset({Verdict.FAIL, Verdict.WARN})

_KEYS = {"verdicts", "verdict", "metric", "operator", "value"}


@dataclass(frozen=True)
class AlertCondition:
    """Parsed alert condition."""

    verdicts: frozenset[Verdict] = DEFAULT_VERDICTS
    metric: str | None = None
    operator: str | None = None
    value: float | None = None

    @classmethod
    def parse(cls, spec: Any) -> AlertCondition:
        """Parse a stored condition.

        Raises:
            AlertRuleError: The condition is malformed.
        """
        if spec is None:
            return cls()
        if not isinstance(spec, dict):
            raise AlertRuleError(f"Condition must be a mapping, got {type(spec).__name__}")
        unknown = set(spec) - _KEYS
        if unknown:
            raise AlertRuleError(f"Unknown condition keys: {sorted(unknown)}")
        if "verdicts" in spec and "verdict" in spec:
            raise AlertRuleError("Use either 'verdict' or 'verdicts', not both")

        raw = spec.get("verdicts", spec.get("verdict"))
        if raw is None:
            verdicts = DEFAULT_VERDICTS
        else:
            items = [raw] if isinstance(raw, str) else raw
            if not isinstance(items, list) or not items:
                raise AlertRuleError("Condition verdicts must be a non-empty list")
            try:
                verdicts = frozenset(Verdict(str(v).lower()) for v in items)
            except ValueError as e:
                raise AlertRuleError(f"Unknown verdict in condition: {raw!r}") from e
            if Verdict.PASS in verdicts:
                raise AlertRuleError("A condition cannot fire on a pass verdict")

        metric = spec.get("metric")
        operator = spec.get("operator")
        value = spec.get("value")
        clause = [metric is not None, operator is not None, value is not None]
        if any(clause) and not all(clause):
            raise AlertRuleError("Metric clause needs 'metric', 'operator' and 'value'")
        if metric is not None:
            if not isinstance(metric, str) or not metric:
                raise AlertRuleError(f"Condition metric must be a name, got {metric!r}")
            if operator not in OPERATORS:
                raise AlertRuleError(f"Unknown condition operator: {operator!r}")
            if not is_number(value):
                raise AlertRuleError(f"Condition value must be a number, got {value!r}")
            value = float(value)

        return cls(verdicts=verdicts, metric=metric, operator=operator, value=value)

    def matches(self, evaluation: Evaluation) -> bool:
        if evaluation.verdict not in self.verdicts:
            return False
        if self.metric is None:
            return True
        actual = evaluation.metrics.get(self.metric)
        if not is_number(actual):
            return False
        return OPERATORS[self.operator](float(actual), self.value)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"verdicts": sorted(v.value for v in self.verdicts)}
        if self.metric is not None:
            result.update(metric=self.metric, operator=self.operator, value=self.value)
        return result
