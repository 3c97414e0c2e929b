"""
Parser for line-oriented EXPLAIN text.

Works in two phases:

1. ``split_into_lines`` reflows physical lines into logical ones, undoing
   the force-wrapping some clients apply at a fixed width.
2. ``TextPlanBuilder`` walks the logical lines and rebuilds the tree from
   indentation. It keeps a stack of ``(depth, frame)`` pairs for the path
   from the root to the line being read; every line first closes all
   frames at its depth or deeper, then attaches to whatever is on top.

Lines are one of: node line (``->  Hash Join  (cost=...) (actual ...)``),
SubPlan/InitPlan marker, CTE marker, or ``Key: Value`` extra info for the
innermost node. Anything else is skipped.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field

from planscope.exceptions import ParseError, UnsupportedConstructError
from planscope.parser.config import DEFAULT_CONFIG, ParserConfig
from planscope.parser.models import (
    NodeProp,
    PlanContent,
    PlanNode,
    PropertyBag,
    SortGroups,
    SortSpaceMemory,
)
from planscope.parser.splitting import split_balanced

logger = logging.getLogger(__name__)


# =============================================================================
# Line reflow
# =============================================================================

_HEADER_KEYWORD_RE = re.compile(
    r"^(?:Total\s+runtime|Planning\s+time|Execution\s+time|Time|Filter|Output|JIT)",
    re.I,
)
_OUTPUT_RE = re.compile(r"^\s*Output", re.I)
_NON_BLANK_START_RE = re.compile(r"^\S")
_PAREN_START_RE = re.compile(r"^\s*\(")


def _indent_of(line: str) -> int:
    match = re.search(r"\S", line)
    return match.start() if match else -1


def _closing_first(line: str) -> bool:
    closing = line.find(")")
    return closing != -1 and closing < line.find("(")


def split_into_lines(text: str) -> list[str]:
    """
    Split text into logical lines, re-joining force-wrapped ones.

    A physical line is glued onto the previous logical line when it closes
    more parentheses than it opens, when it starts at column 0 or with
    ``(`` or with a ``)`` before any ``(``, or when it follows an
    ``Output`` line at a different indentation. Lines starting with a
    known header keyword (``Planning time``, ``JIT`` ...) always start a
    new logical line.
    """
    out: list[str] = []

    for line in re.split(r"\r?\n", text):
        if line.count(")") > line.count("("):
            # Tail of a cost/actual tuple wrapped onto its own line
            if out:
                out[-1] += line
            else:
                out.append(line)
        elif _HEADER_KEYWORD_RE.match(line):
            out.append(line)
        elif (
            _NON_BLANK_START_RE.match(line)
            or _PAREN_START_RE.match(line)
            or _closing_first(line)
        ):
            # Only the first node may start at column 0
            if out:
                out[-1] += line
            else:
                out.append(line)
        elif out and _OUTPUT_RE.match(out[-1]) and _indent_of(out[-1]) != _indent_of(line):
            # Wrapped output column list
            out[-1] += line
        else:
            out.append(line)

    return out


# =============================================================================
# Line grammar
# =============================================================================


def _estimate(tag: str) -> str:
    return (
        rf"\(cost=(?P<{tag}_startup_cost>\d+\.\d+)\.\.(?P<{tag}_total_cost>\d+\.\d+)"
        rf"\s+rows=(?P<{tag}_plan_rows>\d+)\s+width=(?P<{tag}_plan_width>\d+)\)"
    )


def _actual(tag: str) -> str:
    return (
        rf"(?:actual\stime=(?P<{tag}_time_first>\d+\.\d+)\.\.(?P<{tag}_time_last>\d+\.\d+)"
        rf"\srows=(?P<{tag}_rows>\d+(?:\.\d+)?)\sloops=(?P<{tag}_loops>\d+)"
        rf"|actual\srows=(?P<{tag}_rows_only>\d+(?:\.\d+)?)\sloops=(?P<{tag}_loops_only>\d+)"
        rf"|(?P<{tag}_never>never\s+executed))"
    )


# The combined cost+actual alternative is tried before cost-only and actual-only
_NODE_RE = re.compile(
    r"^(?P<prefix>\s*->\s*|\s*)"
    r"(?P<type>[^\r\n\t\f\v:(]*?)\s*"
    r"(?:"
    rf"(?:{_estimate('full')}\s+\({_actual('full')}\))"
    rf"|(?:{_estimate('est')})"
    rf"|(?:\({_actual('act')}\))"
    r")\s*$"
)
_SUBPLAN_RE = re.compile(r"^(\s*)((?:Sub|Init)Plan)\s*(?:\d+\s*)?\s*(?:\(returns.*\)\s*)?$")
_CTE_RE = re.compile(r"^(\s*)CTE\s+(\S+)\s*$")
_EXTRA_RE = re.compile(r"^(\s*)(\S.*\S)\s*$")
_EMPTY_RE = re.compile(r"^\s*$")
_HEADER_RE = re.compile(r"^\s*(QUERY|---|#).*$")

_INT_RE = re.compile(r"[+-]?\d+")
_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_MS_SUFFIX_RE = re.compile(r"\s*ms$")


def coerce_number(value: str) -> int | float | str:
    """
    Convert a value to a number when the whole string is one.

    Any finite number counts, zero included. Integers stay ``int``.
    Everything else (``12kB``, ``(a = b)``, ``NaN``) comes back unchanged.
    """
    text = value.strip()
    if _INT_RE.fullmatch(text):
        return int(text)
    if _NUMBER_RE.fullmatch(text):
        number = float(text)
        if math.isfinite(number):
            return number
    return value


def _title_case(name: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in name.split())


def _first(match: re.Match[str], *groups: str) -> str | None:
    for group in groups:
        value = match.group(group)
        if value is not None:
            return value
    return None


def _rows(value: str) -> int:
    # Newer servers print fractional average rows (rows=10.00)
    return int(round(float(value)))


def node_from_match(match: re.Match[str]) -> PlanNode:
    """Build a node from a matched node line."""
    node = PlanNode.from_label(match.group("type"))

    startup_cost = _first(match, "full_startup_cost", "est_startup_cost")
    if startup_cost is not None:
        node.startup_cost = float(startup_cost)
        node.total_cost = float(_first(match, "full_total_cost", "est_total_cost"))
        node.plan_rows = int(_first(match, "full_plan_rows", "est_plan_rows"))
        node.plan_width = int(_first(match, "full_plan_width", "est_plan_width"))

    time_first = _first(match, "full_time_first", "act_time_first")
    if time_first is not None:
        node.actual_startup_time = float(time_first)
        node.operator_timing = float(_first(match, "full_time_last", "act_time_last"))

    rows = _first(match, "full_rows", "full_rows_only", "act_rows", "act_rows_only")
    if rows is not None:
        node.operator_cardinality = _rows(rows)
        node.actual_loops = int(
            _first(match, "full_loops", "full_loops_only", "act_loops", "act_loops_only")
        )

    if _first(match, "full_never", "act_never") is not None:
        node.actual_loops = 0
        node.operator_cardinality = 0
        node.operator_timing = 0.0

    return node


# =============================================================================
# Extra-info sub-parsers
# =============================================================================

_SORT_KEY_RE = re.compile(r"^\s*((?:Sort|Presorted) Key):\s+(.*)")
_SORT_METHOD_RE = re.compile(r"^(\s*)Sort Method:\s+(.*)\s+(Memory|Disk):\s+(?:(\S*)kB)\s*$")
_TIMING_RE = re.compile(r"^(\s*)Timing:\s+(.*)$")
_TIMING_PHASE_RE = re.compile(r"^(\S+)\s+([+-]?\d+(?:\.\d+)?)")
_SORT_GROUPS_RE = re.compile(
    r"^\s*([\w-]+) Groups:\s+(\d+)\s+Sort Methods?:\s+(.*)"
    r"\s+Average Memory:\s+(\d+)kB\s+Peak Memory:\s+(\d+)kB.*$"
)


def parse_sort_key(text: str, element: PropertyBag) -> bool:
    """``Sort Key: a, lower(b)`` -> ordered list of expressions."""
    match = _SORT_KEY_RE.match(text)
    if not match:
        return False
    element.set(match.group(1), [part.strip() for part in split_balanced(match.group(2), ",")])
    return True


def parse_sort_method(text: str, element: PropertyBag) -> bool:
    """``Sort Method: quicksort  Memory: 25kB``."""
    match = _SORT_METHOD_RE.match(text)
    if not match:
        return False
    element.set(NodeProp.SORT_METHOD, match.group(2).strip())
    space_used = coerce_number(match.group(4))
    # "Memory: kB" carries no figure
    if isinstance(space_used, int):
        element.set(NodeProp.SORT_SPACE_USED, space_used)
    element.set(NodeProp.SORT_SPACE_TYPE, match.group(3))
    return True


def parse_timing(text: str, element: PropertyBag) -> bool:
    """JIT ``Timing: Generation 0.340 ms, Inlining 0.000 ms, ...`` -> phase map."""
    match = _TIMING_RE.match(text)
    if not match:
        return False
    phases: dict[str, float] = {}
    for option in re.split(r"\s*,\s*", match.group(2)):
        phase = _TIMING_PHASE_RE.match(option)
        if phase:
            phases[phase.group(1)] = float(phase.group(2))
        else:
            logger.debug("Skipping unreadable timing phase: %r", option)
    element.set(NodeProp.TIMING, phases)
    return True


def parse_sort_groups(text: str, element: PropertyBag) -> bool:
    """
    Incremental Sort groups block.

    ``Full-sort Groups: 312500  Sort Method: quicksort  Average Memory: 26kB  Peak Memory: 26kB``

    Raises:
        UnsupportedConstructError: If the group kind is neither
            ``Full-sort`` nor ``Pre-sorted``.
    """
    match = _SORT_GROUPS_RE.match(text)
    if not match:
        return False

    groups = SortGroups(
        group_count=int(match.group(2)),
        sort_methods_used=[method.strip() for method in match.group(3).split(",")],
        sort_space_memory=SortSpaceMemory(
            average_sort_space_used=int(match.group(4)),
            peak_sort_space_used=int(match.group(5)),
        ),
    )

    kind = match.group(1)
    if kind == "Full-sort":
        element.set(NodeProp.FULL_SORT_GROUPS, groups)
    elif kind == "Pre-sorted":
        element.set(NodeProp.PRE_SORTED_GROUPS, groups)
    else:
        raise UnsupportedConstructError("sort groups method", kind)
    return True


EXTRA_INFO_PARSERS = (
    parse_sort_key,
    parse_sort_method,
    parse_timing,
    parse_sort_groups,
)


# =============================================================================
# Tree build
# =============================================================================


@dataclass
class _Frame:
    """An open scope: a node, or a SubPlan/InitPlan/CTE marker under a node."""

    node: PlanNode | None
    kind: str = "subnode"
    name: str | None = None


@dataclass
class TextPlanBuilder:
    """
    Builds one PlanContent from one text report.

    Holds all the state of a single parse; create a new builder per report.
    """

    config: ParserConfig = DEFAULT_CONFIG
    holder: PlanContent = field(default_factory=PlanContent)
    stack: list[tuple[int, _Frame]] = field(default_factory=list)

    def build(self, text: str) -> PlanContent:
        for line in split_into_lines(text):
            self.feed(line)

        if not self.holder.has_root:
            raise ParseError(
                "Unable to parse plan",
                detail="No plan node line found in the input",
                source="text",
            )
        return self.holder

    def feed(self, line: str) -> None:
        line = re.sub(r"\"\s*$", "", line)
        line = re.sub(r"^\s*\"", "", line)
        line = line.replace("\t", " " * self.config.tab_width)

        stripped = line.lstrip()
        depth = len(line) - len(stripped)
        line = stripped

        if _EMPTY_RE.match(line) or _HEADER_RE.match(line):
            return

        node_match = _NODE_RE.match(line)
        subplan_match = _SUBPLAN_RE.match(line)
        cte_match = _CTE_RE.match(line)

        if node_match and not subplan_match and not cte_match:
            self.add_node(depth, node_from_match(node_match))
        elif subplan_match:
            self.open_marker(depth, subplan_match.group(2).lower(), subplan_match.group(0))
        elif cte_match:
            self.open_marker(depth, "initplan", f"CTE {cte_match.group(2)}")
        else:
            extra_match = _EXTRA_RE.match(line)
            if extra_match:
                self.add_extra(depth, line, extra_match.group(2))
            else:
                logger.debug("Skipping unrecognized line: %r", line)

    def close_scopes(self, depth: int, *, close_all: bool = False) -> None:
        self.stack = [
            (d, frame) for d, frame in self.stack
            if not (close_all or d >= depth)
        ]

    def add_node(self, depth: int, node: PlanNode) -> None:
        frame = _Frame(node)

        if not self.stack:
            if self.holder.has_root:
                logger.debug("Skipping node outside the plan tree: %s", node.operator_type)
                return
            self.stack.append((depth, frame))
            self.holder.children.append(node)
            return

        self.close_scopes(depth)
        if not self.stack or self.stack[-1][1].node is None:
            logger.debug("Skipping node with no parent: %s", node.operator_type)
            return

        parent = self.stack[-1][1]
        self.stack.append((depth, frame))

        if parent.kind == "initplan":
            node.parent_relationship = "InitPlan"
            node.subplan_name = parent.name
        elif parent.kind == "subplan":
            node.parent_relationship = "SubPlan"
            node.subplan_name = parent.name
        parent.node.children.append(node)

    def open_marker(self, depth: int, kind: str, name: str) -> None:
        self.close_scopes(depth)
        owner = self.stack[-1][1].node if self.stack else None
        self.stack.append((depth, _Frame(owner, kind, name)))

    def add_extra(self, depth: int, line: str, text: str) -> None:
        # Global info (planning/execution time) sits at depth 1 even when
        # the first node was at depth 0, so depth 1 closes everything
        self.close_scopes(depth, close_all=depth == 1)

        element: PropertyBag | None
        if self.stack:
            element = self.stack[-1][1].node
        else:
            element = self.holder
        if element is None:
            return

        # Until the first node, lines after "Query Text:" belong to the query
        if element is self.holder and not self.holder.has_root and self.holder.query_text:
            self.holder.query_text += "\n" + line
            return

        key, _, value = text.partition(": ")
        if not value:
            return

        for parse in EXTRA_INFO_PARSERS:
            if parse(text, element):
                return

        value = _MS_SUFFIX_RE.sub("", value)
        if " runtime" in key or " time" in key:
            key = _title_case(key)
        element.set(key, coerce_number(value))


def parse_text(text: str, config: ParserConfig | None = None) -> PlanContent:
    """
    Build a plan tree from EXPLAIN text.

    Args:
        text: Cleaned-up report text (see ``cleanup_source``)
        config: Parser configuration; only ``tab_width`` is used here

    Returns:
        PlanContent whose single child is the root node.

    Raises:
        ParseError: If no node line was found
        UnsupportedConstructError: On a sort groups block of unknown kind
    """
    return TextPlanBuilder(config=config or DEFAULT_CONFIG).build(text)
