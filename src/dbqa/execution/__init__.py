"""Query execution: executor, in-flight registry and the check runner."""

from dbqa.execution.executor import ExecutionOutcome, QueryExecutor, build_payload
from dbqa.execution.inflight import InFlightRegistry, RunHandle
from dbqa.execution.runner import CheckRunner, RunReport

__all__ = [
    "CheckRunner",
    "ExecutionOutcome",
    "InFlightRegistry",
    "QueryExecutor",
    "RunHandle",
    "RunReport",
    "build_payload",
]
