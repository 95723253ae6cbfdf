"""Tests for alert rule conditions."""

from __future__ import annotations

import pytest

from dbqa.alerting.conditions import AlertCondition
from dbqa.core.enums import Verdict
from dbqa.core.errors import AlertRuleError
from dbqa.evaluation import Evaluation


def _evaluation(verdict: Verdict, **metrics) -> Evaluation:
    return Evaluation(verdict=verdict, metrics=metrics)


class TestParse:
    def test_default_fires_on_fail_and_warn(self):
        condition = AlertCondition.parse({})
        assert condition.matches(_evaluation(Verdict.FAIL))
        assert condition.matches(_evaluation(Verdict.WARN))
        assert not condition.matches(_evaluation(Verdict.PASS))

    def test_none_is_default(self):
        assert AlertCondition.parse(None) == AlertCondition()

    def test_single_verdict(self):
        condition = AlertCondition.parse({"verdict": "fail"})
        assert condition.verdicts == frozenset({Verdict.FAIL})
        assert not condition.matches(_evaluation(Verdict.WARN))

    @pytest.mark.parametrize(
        "spec",
        [
            "fail",
            {"severity": "high"},
            {"verdict": "fail", "verdicts": ["warn"]},
            {"verdicts": []},
            {"verdicts": ["pass"]},
            {"verdicts": ["broken"]},
            {"metric": "row_count", "operator": ">"},
            {"metric": "row_count", "operator": "~", "value": 1},
            {"metric": "row_count", "operator": ">", "value": "many"},
        ],
    )
    def test_malformed(self, spec):
        with pytest.raises(AlertRuleError):
            AlertCondition.parse(spec)


class TestMetricClause:
    def test_metric_must_hold(self):
        condition = AlertCondition.parse(
            {"verdict": "fail", "metric": "row_count", "operator": ">", "value": 100}
        )
        assert condition.matches(_evaluation(Verdict.FAIL, row_count=150))
        assert not condition.matches(_evaluation(Verdict.FAIL, row_count=50))

    def test_missing_metric_never_fires(self):
        condition = AlertCondition.parse({"metric": "latency", "operator": ">=", "value": 1})
        assert not condition.matches(_evaluation(Verdict.FAIL, row_count=5))

    def test_to_dict(self):
        condition = AlertCondition.parse({"verdicts": ["warn", "fail"], "metric": "x", "operator": "==", "value": 2})
        assert condition.to_dict() == {
            "verdicts": ["fail", "warn"],
            "metric": "x",
            "operator": "==",
            "value": 2.0,
        }
