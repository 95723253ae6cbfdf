"""Threshold evaluator.

Turns raw result rows plus a query's ``expected_result`` and
``thresholds`` into derived metrics and a pass / warn / fail verdict.

Rules:
    - Every threshold bound and the expected-result comparison produce a
      verdict; the evaluation verdict is the worst of them.
    - No thresholds and no expectation is a pass, except for
      ``sensitive_data_exposure`` queries which fail on any match.
    - ``expected_result`` ``{}`` or ``None`` means no expectation; ``[]``
      expects an empty result, so an empty result with it passes.
    - A dict expectation is compared with the first row, a list
      expectation with the whole (unordered) row set. Mismatch fails and
      ``match_ratio`` reports how much matched.
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from dbqa.connections.protocol import Row
from dbqa.core.enums import ExecutionStatus, QueryCategory, Verdict
from dbqa.core.errors import EvaluationError
from dbqa.core.models import Query
from dbqa.core.serialize import json_safe
from dbqa.evaluation.metrics import compute_metrics, is_number, primary_metric
from dbqa.evaluation.thresholds import Bound, parse_thresholds, validate_expected


@dataclass
class Evaluation:
    """Verdict, metrics and the reasons behind a non-pass verdict."""

    verdict: Verdict
    metrics: dict[str, Any] = field(default_factory=dict)
    reasons: list[str] = field(default_factory=list)

    @property
    def status(self) -> ExecutionStatus:
        """Execution status implied by the verdict (warn still succeeds)."""
        return ExecutionStatus.FAILURE if self.verdict == Verdict.FAIL else ExecutionStatus.SUCCESS

    def to_metrics(self) -> dict[str, Any]:
        merged = dict(self.metrics)
        merged["verdict"] = self.verdict.value
        if self.reasons:
            merged["reasons"] = list(self.reasons)
        return merged


def worst(verdicts: list[Verdict]) -> Verdict:
    result = Verdict.PASS
    for verdict in verdicts:
        if verdict > result:
            result = verdict
    return result


def _normalise(value: Any) -> Any:
    if is_number(value):
        return float(value)
    return json_safe(value)


def _lookup(row: Row, key: str) -> tuple[bool, Any]:
    if key in row:
        return True, row[key]
    lowered = key.lower()
    for column, value in row.items():
        if str(column).lower() == lowered:
            return True, value
    return False, None


def _row_matches(expected: dict[str, Any], row: Row) -> tuple[int, int]:
    """(matched keys, total keys) of ``expected`` against ``row``.

    A one-key expectation against a one-column row compares the only value
    whatever the column is called, so ``{"count": 0}`` matches an unaliased
    ``count(*)`` column.
    """
    if len(expected) == 1 and len(row) == 1:
        [(key, want)] = expected.items()
        found, got = _lookup(row, key)
        if not found:
            [got] = row.values()
        return int(_normalise(got) == _normalise(want)), 1
    matched = 0
    for key, want in expected.items():
        found, got = _lookup(row, key)
        if found and _normalise(got) == _normalise(want):
            matched += 1
    return matched, len(expected)


def _canonical(expected_keys: list[str], row: Row) -> str:
    values = {}
    for key in expected_keys:
        found, got = _lookup(row, key)
        values[key] = _normalise(got) if found else "<missing>"
    return json.dumps(values, sort_keys=True, default=str)


class ThresholdEvaluator:
    """Evaluates query results against thresholds and expected results.

    Example:
        >>> evaluator = ThresholdEvaluator()
        >>> query = Query(thresholds={"max": 0}, expected_result={"count": 0})
        >>> evaluation = evaluator.evaluate(query, [{"count": 3}])
        >>> evaluation.verdict
        <Verdict.FAIL: 'fail'>
    """

    def validate(self, query: Query) -> list[Bound]:
        """Parse a query's specs, raising ``EvaluationError`` if malformed."""
        validate_expected(query.expected_result)
        bounds = parse_thresholds(query.thresholds)
        if not bounds and query.category == QueryCategory.SENSITIVE_DATA_EXPOSURE:
            bounds = [Bound(metric="sensitive_match_count", max=0)]
        return bounds

    def evaluate(
        self,
        query: Query,
        rows: list[Row],
        now: datetime | None = None,
    ) -> Evaluation:
        """Evaluate ``rows`` for ``query``.

        A threshold whose metric cannot be computed from an empty result
        fails with a reason.

        Raises:
            EvaluationError: The thresholds or expected result are malformed,
                or a threshold names a metric a non-empty result does not have.
        """
        bounds = self.validate(query)
        metrics: dict[str, Any] = dict(compute_metrics(rows, query.category, now))
        verdicts: list[Verdict] = []
        reasons: list[str] = []

        expected = query.expected_result
        if expected is not None and expected != {}:
            verdict, ratio, reason = self._compare_expected(expected, rows)
            metrics["match_ratio"] = ratio
            verdicts.append(verdict)
            if reason:
                reasons.append(reason)

        for bound in bounds:
            name = bound.metric or primary_metric(query.category, metrics)
            if name not in metrics and not rows:
                verdicts.append(Verdict.FAIL)
                reasons.append(f"{name} cannot be measured: the result is empty")
                continue
            if name not in metrics:
                raise EvaluationError(
                    f"Threshold metric {name!r} is not available for this result"
                ).with_context(query_id=query.id)
            value = metrics[name]
            if not is_number(value):
                raise EvaluationError(f"Metric {name!r} is not numeric").with_context(
                    query_id=query.id
                )
            verdict, reason = replace(bound, metric=name).check(float(value))
            verdicts.append(verdict)
            if reason:
                reasons.append(reason)

        return Evaluation(verdict=worst(verdicts), metrics=metrics, reasons=reasons)

    def _compare_expected(
        self, expected: dict[str, Any] | list[dict[str, Any]], rows: list[Row]
    ) -> tuple[Verdict, float, str | None]:
        if isinstance(expected, dict):
            if not rows:
                return Verdict.FAIL, 0.0, "expected a row but the result is empty"
            matched, total = _row_matches(expected, rows[0])
            ratio = matched / total
            if matched == total:
                return Verdict.PASS, 1.0, None
            return Verdict.FAIL, ratio, f"first row matches {matched}/{total} expected values"

        if not expected:
            if not rows:
                return Verdict.PASS, 1.0, None
            return Verdict.FAIL, 0.0, f"expected no rows, got {len(rows)}"

        keys = sorted({key for item in expected for key in item})
        want = Counter(_canonical(keys, item) for item in expected)
        got = Counter(_canonical(keys, row) for row in rows)
        matched = sum((want & got).values())
        ratio = matched / max(len(expected), len(rows))
        if want == got:
            return Verdict.PASS, 1.0, None
        return (
            Verdict.FAIL,
            ratio,
            f"{matched} of {len(expected)} expected rows matched ({len(rows)} returned)",
        )
