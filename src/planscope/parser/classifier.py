"""
Operator type classification.

Plan text spells most of a scan node's identity into its label:
``Parallel Index Only Scan Backward using orders_pkey on orders o``. This
module pulls the structured pieces out of such labels with an ordered list of
rules. The first rule that matches wins; the parallel-prefix strip and the
join-modifier rewrite then cascade over whatever type resulted.

Ordering matters more than pattern precision here: a relation literally
named ``Join`` is claimed by the scan rule before the join rewrite ever sees
the label.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Callable


@dataclass(frozen=True)
class TypeClassification:
    """Structured fields extracted from a raw operator label."""

    operator_type: str
    relation_name: str | None = None
    alias: str | None = None
    index_name: str | None = None
    cte_name: str | None = None
    function_name: str | None = None
    join_type: str | None = None
    parallel_aware: bool | None = None

    def fields(self) -> dict[str, object]:
        """Extracted fields that are set, keyed by model field name."""
        return {
            name: value
            for name, value in self.__dict__.items()
            if value is not None
        }


@dataclass(frozen=True)
class ClassificationRule:
    """A label pattern plus the function that turns its match into fields."""

    name: str
    pattern: re.Pattern[str]
    extract: Callable[[re.Match[str]], TypeClassification]


def _scan(m: re.Match[str]) -> TypeClassification:
    return TypeClassification(m.group(1), relation_name=m.group(2), alias=m.group(3))


def _bitmap_index(m: re.Match[str]) -> TypeClassification:
    return TypeClassification(m.group(1), index_name=m.group(2))


def _index(m: re.Match[str]) -> TypeClassification:
    return TypeClassification(
        m.group(1),
        index_name=m.group(2),
        relation_name=m.group(3),
        alias=m.group(4),
    )


def _cte(m: re.Match[str]) -> TypeClassification:
    return TypeClassification(m.group(1), cte_name=m.group(2), alias=m.group(3))


def _function(m: re.Match[str]) -> TypeClassification:
    return TypeClassification(m.group(1), function_name=m.group(2), alias=m.group(3))


def _subquery(m: re.Match[str]) -> TypeClassification:
    return TypeClassification(m.group(1), alias=m.group(2))


RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "scan",
        re.compile(
            r"^((?:Parallel\s+)?(?:Seq\sScan|Tid.*Scan|Bitmap\s+Heap\s+Scan"
            r"|(?:Async\s+)?Foreign\s+Scan|Update|Insert|Delete))"
            r"\son\s(\S+)(?:\s+(\S+))?$"
        ),
        _scan,
    ),
    ClassificationRule(
        "bitmap_index_scan",
        re.compile(r"^(Bitmap\s+Index\s+Scan)\son\s(\S+)$"),
        _bitmap_index,
    ),
    ClassificationRule(
        "index_scan",
        re.compile(
            r"^((?:Parallel\s+)?Index(?:\sOnly)?\sScan(?:\sBackward)?)"
            r"\susing\s(\S+)\son\s(\S+)(?:\s+(\S+))?$"
        ),
        _index,
    ),
    ClassificationRule(
        "cte_scan",
        re.compile(r"^(CTE\sScan)\son\s(\S+)(?:\s+(\S+))?$"),
        _cte,
    ),
    ClassificationRule(
        "function_scan",
        re.compile(r"^(Function\sScan)\son\s(\S+)(?:\s+(\S+))?$"),
        _function,
    ),
    ClassificationRule(
        "subquery_scan",
        re.compile(r"^(Subquery\sScan)\son\s(.+)$"),
        _subquery,
    ),
)

_PARALLEL_RE = re.compile(r"^Parallel\s+(.*)$")
_JOIN_RE = re.compile(r"^(.*)\sJoin$")
_JOIN_MODIFIER_RE = re.compile(r"^(.*?)\s+(Full|Left|Right|Anti)$")


def classify(label: str) -> TypeClassification:
    """
    Extract structured fields from a raw operator label.

    Labels that match no rule pass through unchanged with nothing extracted.

    Example:
        >>> classify("Parallel Seq Scan on orders o")
        TypeClassification(operator_type='Seq Scan', relation_name='orders',
            alias='o', ..., parallel_aware=True)
        >>> classify("Hash Left Join").join_type
        'Left'
    """
    result = TypeClassification(label)
    for rule in RULES:
        match = rule.pattern.match(label)
        if match:
            result = rule.extract(match)
            break

    parallel = _PARALLEL_RE.match(result.operator_type)
    if parallel:
        result = replace(result, operator_type=parallel.group(1), parallel_aware=True)

    join = _JOIN_RE.match(result.operator_type)
    if join:
        base = join.group(1)
        modifier = _JOIN_MODIFIER_RE.match(base)
        if modifier:
            result = replace(
                result,
                operator_type=f"{modifier.group(1)} Join",
                join_type=modifier.group(2),
            )

    return result
