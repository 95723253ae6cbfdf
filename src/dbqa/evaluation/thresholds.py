"""Threshold and expected-result specifications.

A threshold specification is either one bound spec or a mapping of
metric names to bound specs::

    {"max": 0}
    {"metric": "null_ratio", "max": 0.05, "warn_max": 0.01}
    {"min": 10, "max": 100, "exclusive": true}
    {"metrics": {"row_count": {"min": 1}, "duplicate_count": {"max": 0}}}

Bounds are inclusive unless ``exclusive`` is true or ``comparator`` is
``"exclusive"``. A value outside ``min``/``max`` fails; a value inside
them but outside ``warn_min``/``warn_max`` warns.

Parsing is strict: anything that cannot be interpreted raises
:class:`~dbqa.core.errors.EvaluationError` instead of silently passing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from dbqa.core.enums import Verdict
from dbqa.core.errors import EvaluationError

_BOUND_KEYS = {"metric", "min", "max", "warn_min", "warn_max", "exclusive", "comparator"}


def _number(spec: dict[str, Any], key: str) -> float | None:
    value = spec.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise EvaluationError(f"Threshold {key!r} must be a number, got {value!r}") from e
    return float(value)


@dataclass(frozen=True)
class Bound:
    """Bounds for one metric."""

    metric: str | None = None
    min: float | None = None
    max: float | None = None
    warn_min: float | None = None
    warn_max: float | None = None
    exclusive: bool = False

    @classmethod
    def parse(cls, spec: Any, metric: str | None = None) -> Bound:
        if not isinstance(spec, dict):
            raise EvaluationError(f"Threshold spec must be a mapping, got {type(spec).__name__}")
        unknown = set(spec) - _BOUND_KEYS
        if unknown:
            raise EvaluationError(f"Unknown threshold keys: {sorted(unknown)}")

        comparator = spec.get("comparator")
        if comparator not in (None, "inclusive", "exclusive"):
            raise EvaluationError(f"Unknown threshold comparator: {comparator!r}")
        exclusive = spec.get("exclusive", False)
        if not isinstance(exclusive, bool):
            raise EvaluationError("Threshold 'exclusive' must be true or false")

        name = spec.get("metric", metric)
        if name is not None and not isinstance(name, str):
            raise EvaluationError(f"Threshold metric must be a string, got {name!r}")

        bound = cls(
            metric=name,
            min=_number(spec, "min"),
            max=_number(spec, "max"),
            warn_min=_number(spec, "warn_min"),
            warn_max=_number(spec, "warn_max"),
            exclusive=exclusive or comparator == "exclusive",
        )
        if bound.min is not None and bound.max is not None and bound.min > bound.max:
            raise EvaluationError(f"Threshold min {bound.min} is greater than max {bound.max}")
        if (
            bound.warn_min is not None
            and bound.warn_max is not None
            and bound.warn_min > bound.warn_max
        ):
            raise EvaluationError(
                f"Threshold warn_min {bound.warn_min} is greater than warn_max {bound.warn_max}"
            )
        if not bound.has_bounds:
            raise EvaluationError("Threshold spec declares no bounds")
        return bound

    @property
    def has_bounds(self) -> bool:
        return any(v is not None for v in (self.min, self.max, self.warn_min, self.warn_max))

    def _below(self, value: float, limit: float) -> bool:
        return value <= limit if self.exclusive else value < limit

    def _above(self, value: float, limit: float) -> bool:
        return value >= limit if self.exclusive else value > limit

    def check(self, value: float) -> tuple[Verdict, str | None]:
        """Verdict for ``value`` plus a human-readable reason when not passing."""
        name = self.metric or "value"
        if self.min is not None and self._below(value, self.min):
            return Verdict.FAIL, f"{name}={value:g} below min {self.min:g}"
        if self.max is not None and self._above(value, self.max):
            return Verdict.FAIL, f"{name}={value:g} above max {self.max:g}"
        if self.warn_min is not None and self._below(value, self.warn_min):
            return Verdict.WARN, f"{name}={value:g} below warn_min {self.warn_min:g}"
        if self.warn_max is not None and self._above(value, self.warn_max):
            return Verdict.WARN, f"{name}={value:g} above warn_max {self.warn_max:g}"
        return Verdict.PASS, None


def parse_thresholds(spec: Any) -> list[Bound]:
    """Parse a query's threshold specification into bounds.

    ``None`` and ``{}`` mean "no thresholds".
    """
    if spec is None or spec == {}:
        return []
    if not isinstance(spec, dict):
        raise EvaluationError(f"Thresholds must be a mapping, got {type(spec).__name__}")
    if "metrics" in spec:
        extra = set(spec) - {"metrics"}
        if extra:
            raise EvaluationError(f"Unexpected keys next to 'metrics': {sorted(extra)}")
        per_metric = spec["metrics"]
        if not isinstance(per_metric, dict) or not per_metric:
            raise EvaluationError("Threshold 'metrics' must be a non-empty mapping")
        return [Bound.parse(bounds, metric=str(name)) for name, bounds in per_metric.items()]
    return [Bound.parse(spec)]


def validate_expected(expected: Any) -> None:
    """Reject expected results that are neither a mapping nor a list of mappings."""
    if expected is None or isinstance(expected, dict):
        return
    if isinstance(expected, list):
        for item in expected:
            if not isinstance(item, dict):
                raise EvaluationError("Expected result rows must be mappings")
        return
    raise EvaluationError(
        f"Expected result must be a mapping or a list of rows, got {type(expected).__name__}"
    )
