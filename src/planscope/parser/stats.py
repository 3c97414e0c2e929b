"""
Whole-plan statistics.

Rendering scales bars against the largest value in the plan, so the
aggregator computes one maximum per metric over every node, CTE subtrees
included. A metric no node defines stays None; it is never filled with 0,
because "no data" and "measured zero" render differently.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

from planscope.parser.models import Plan, PlanContent, PlanNode, PlanStats

logger = logging.getLogger(__name__)

_LEADING_INT_RE = re.compile(r"^\s*~?\s*([+-]?\d[\d,]*)")


def parse_int(value: Any) -> int | None:
    """
    Integer from a cardinality value: ``1200``, ``"1200"``, ``"~1,200"``.

    Like a lenient ``parseInt``: reads the leading integer and ignores the
    rest. Returns None when there is no leading integer.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _LEADING_INT_RE.match(str(value))
    if not match:
        return None
    return int(match.group(1).replace(",", ""))


def _max_of(nodes: list[PlanNode], read: Callable[[PlanNode], Any]) -> Any:
    values = [value for value in (read(node) for node in nodes) if value is not None]
    if not values:
        return None
    return max(values)


def max_estimated_rows(nodes: list[PlanNode]) -> int | None:
    """
    Largest estimated cardinality from ``extra_info``.

    Unparseable estimates compare as 0. The stored result is the
    winning node's own raw value, parsed once.
    """
    with_estimate = [node for node in nodes if node.estimated_rows is not None]
    if not with_estimate:
        return None
    winner = max(with_estimate, key=lambda node: parse_int(node.estimated_rows) or 0)
    return parse_int(winner.estimated_rows)


def calculate_maximums(plan: Plan) -> PlanStats:
    """Fill the maxima of ``plan.stats`` from every node in the plan."""
    nodes = plan.all_nodes
    stats = plan.stats

    stats.max_rows = _max_of(nodes, lambda node: node.operator_cardinality)
    stats.max_rows_scanned = _max_of(nodes, lambda node: node.operator_rows_scanned)
    stats.max_result = _max_of(nodes, lambda node: node.result_set_size)
    stats.max_duration = _max_of(nodes, lambda node: node.operator_timing)
    stats.max_estimated_rows = max_estimated_rows(nodes)

    logger.debug(
        "Plan maxima: rows=%s scanned=%s estimated=%s result=%s duration=%s",
        stats.max_rows,
        stats.max_rows_scanned,
        stats.max_estimated_rows,
        stats.max_result,
        stats.max_duration,
    )
    return stats


def calculate_execution_time(plan: Plan, content: PlanContent) -> float | None:
    """
    Top-level elapsed time of the plan.

    Only taken from what the input reports (``Execution Time``, or the
    older ``Total runtime``). Profiler JSON carries no such figure, in
    which case this stays None rather than being derived from node timings.
    """
    execution_time = content.execution_time
    if execution_time is None:
        execution_time = content.total_runtime
    if isinstance(execution_time, (int, float)):
        plan.stats.execution_time = float(execution_time)
    return plan.stats.execution_time
