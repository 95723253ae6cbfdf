"""Threshold evaluation of query results."""

from dbqa.evaluation.evaluator import Evaluation, ThresholdEvaluator, worst
from dbqa.evaluation.metrics import compute_metrics, primary_metric
from dbqa.evaluation.thresholds import Bound, parse_thresholds, validate_expected

__all__ = [
    "Evaluation",
    "ThresholdEvaluator",
    "worst",
    "compute_metrics",
    "primary_metric",
    "Bound",
    "parse_thresholds",
    "validate_expected",
]
