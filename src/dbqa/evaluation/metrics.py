"""Derived metrics for query results.

Generic metrics are computed for every result; a few categories add
their own. All metric values are plain floats/ints so they can be stored
in the result's JSON ``metrics`` column.

======================  ==========================================================
Metric                  Meaning
======================  ==========================================================
row_count               Number of rows returned
column_count            Number of distinct column names across rows
null_count              Cells that are NULL
null_ratio              null_count / (row_count * column_count), 0.0 when empty
distinct_count          Number of distinct rows
distinct_ratio          distinct_count / row_count, 1.0 when empty
duplicate_count         row_count - distinct_count
value                   The single cell of a 1x1 numeric result
<column>                Each numeric column of a single-row result whose name
                        is not one of the metrics above
staleness_seconds       Age of the newest timestamp (timeliness)
sensitive_match_count   Cells that look like emails, SSNs or card numbers
======================  ==========================================================
"""

from __future__ import annotations

import json
import re
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from dbqa.connections.protocol import Row
from dbqa.core.enums import QueryCategory

GENERIC_METRICS = (
    "row_count",
    "column_count",
    "null_count",
    "null_ratio",
    "distinct_count",
    "distinct_ratio",
    "duplicate_count",
)

CATEGORY_PRIMARY_METRIC: dict[QueryCategory, str] = {
    QueryCategory.COMPLETENESS: "null_ratio",
    QueryCategory.UNIQUENESS: "duplicate_count",
    QueryCategory.TIMELINESS: "staleness_seconds",
    QueryCategory.SENSITIVE_DATA_EXPOSURE: "sensitive_match_count",
}

SENSITIVE_PATTERNS: dict[str, re.Pattern[str]] = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "card": re.compile(r"\b(?:\d[ -]?){12,18}\d\b"),
}


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _luhn_ok(candidate: str) -> bool:
    digits = [int(c) for c in candidate if c.isdigit()]
    if not 13 <= len(digits) <= 19:
        return False
    total = 0
    for i, digit in enumerate(reversed(digits)):
        if i % 2:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def count_sensitive(text: str) -> int:
    """Number of sensitive-looking matches in ``text``."""
    count = len(SENSITIVE_PATTERNS["email"].findall(text))
    count += len(SENSITIVE_PATTERNS["ssn"].findall(text))
    count += sum(1 for m in SENSITIVE_PATTERNS["card"].findall(text) if _luhn_ok(m))
    return count


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str) and len(value) >= 10 and value[4:5] == "-":
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def _row_key(row: Row) -> str:
    return json.dumps(
        {str(k): row[k] for k in sorted(row, key=str)}, sort_keys=True, default=str
    )


def compute_metrics(
    rows: list[Row],
    category: QueryCategory,
    now: datetime | None = None,
) -> dict[str, float | int]:
    """Compute generic and category metrics for ``rows``."""
    row_count = len(rows)
    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)

    cells = row_count * len(columns)
    null_count = sum(1 for row in rows for col in columns if row.get(col) is None)
    distinct_count = len({_row_key(row) for row in rows})

    metrics: dict[str, float | int] = {
        "row_count": row_count,
        "column_count": len(columns),
        "null_count": null_count,
        "null_ratio": (null_count / cells) if cells else 0.0,
        "distinct_count": distinct_count,
        "distinct_ratio": (distinct_count / row_count) if row_count else 1.0,
        "duplicate_count": row_count - distinct_count,
    }

    if row_count == 1:
        numeric = {str(k): float(v) for k, v in rows[0].items() if is_number(v)}
        for name, number in numeric.items():
            # computed metrics keep their meaning over same-named columns
            metrics.setdefault(name, number)
        if len(columns) == 1 and numeric:
            metrics["value"] = next(iter(numeric.values()))

    if category == QueryCategory.TIMELINESS:
        newest = None
        for row in rows:
            for value in row.values():
                stamp = _as_datetime(value)
                if stamp is not None and (newest is None or stamp > newest):
                    newest = stamp
        if newest is not None:
            current = now or datetime.now(UTC)
            metrics["staleness_seconds"] = max(0.0, (current - newest).total_seconds())

    if category == QueryCategory.SENSITIVE_DATA_EXPOSURE:
        metrics["sensitive_match_count"] = sum(
            count_sensitive(value)
            for row in rows
            for value in row.values()
            if isinstance(value, str)
        )

    return metrics


def primary_metric(category: QueryCategory, metrics: dict[str, Any]) -> str:
    """Metric a threshold applies to when it names none.

    A single-cell result is measured by its value. Otherwise the category
    decides, even when this result lacks that metric: a timeliness check
    without a timestamp must not quietly become a row count check.
    """
    if "value" in metrics:
        return "value"
    return CATEGORY_PRIMARY_METRIC.get(category, "row_count")
