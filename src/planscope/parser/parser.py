"""
Entry points for turning a raw plan report into a Plan.

This module handles:
- Cleaning up pasted report text
- Sniffing the format: whole-string JSON, JSON embedded in other text,
  or line-oriented EXPLAIN text
- Numbering nodes and computing whole-plan statistics
- Enforcing resource limits to keep pathological inputs bounded

Error handling philosophy: Fail fast with clear messages. A report we
cannot build a tree from raises ParseError; no partial plan is returned.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path

from planscope.exceptions import ParseError, ResourceLimitError
from planscope.parser.cleanup import cleanup_source
from planscope.parser.config import DEFAULT_CONFIG, ParserConfig
from planscope.parser.json_reducer import (
    content_from_json,
    extract_json_block,
    has_embedded_json,
    is_json,
)
from planscope.parser.models import Plan, PlanContent, PlanNode
from planscope.parser.stats import calculate_execution_time, calculate_maximums
from planscope.parser.text import parse_text

logger = logging.getLogger(__name__)

PLAN_ID_PREFIX = "plan_"

# A non-blank character followed by a run of 2+ blanks inside a line
_QUERY_WHITESPACE_RE = re.compile(r"(\S)(?!$)(\s{2,})", re.M)


def from_source(source: str, config: ParserConfig | None = None) -> PlanContent:
    """
    Build the root holder from a raw report, whatever its format.

    Args:
        source: Report text: JSON, text with a JSON block inside, or
            EXPLAIN text
        config: Parser configuration

    Returns:
        PlanContent whose children are the top-level node(s)

    Raises:
        ParseError: If no plan can be built from the input
        ResourceLimitError: If a JSON plan nests deeper than max_depth
    """
    config = config or DEFAULT_CONFIG
    source = cleanup_source(source)

    if is_json(source):
        logger.debug("Detected JSON plan input")
        return content_from_json(source, max_depth=config.max_depth)
    if has_embedded_json(source):
        logger.debug("Detected JSON plan embedded in text")
        return content_from_json(extract_json_block(source), max_depth=config.max_depth)

    logger.debug("Parsing plan as EXPLAIN text")
    return parse_text(source, config)


def number_nodes(roots: list[PlanNode]) -> int:
    """
    Assign ids in pre-order, starting at 1, across ``roots`` in order.

    Also writes each node's revised row counts (per-loop rows times
    loops). Returns the number of nodes seen.
    """
    next_id = 1
    for root in roots:
        for node in root.iter_nodes():
            node.node_id = next_id
            next_id += 1
            if node.actual_loops is not None:
                if node.operator_cardinality is not None:
                    node.actual_rows_revised = node.operator_cardinality * node.actual_loops
                if node.plan_rows is not None:
                    node.plan_rows_revised = node.plan_rows * node.actual_loops
    return next_id - 1


def create_plan(name: str, content: PlanContent, query: str = "") -> Plan:
    """
    Wrap a root holder into a Plan with ids and statistics.

    The last top-level child is the plan's content; any children before
    it are CTE roots. Ids start at 1 on the content root and continue
    through the CTE subtrees.

    Raises:
        ParseError: If ``content`` holds no node
    """
    if not content.children:
        raise ParseError(
            "Invalid plan",
            detail="The plan content contains no node",
            source="structure",
        )

    if not query:
        query = content.query_text or content.query_name or ""
    query = _QUERY_WHITESPACE_RE.sub(r"\1 ", query)

    created_on = datetime.now()
    *ctes, root = content.children

    plan = Plan(
        id=PLAN_ID_PREFIX + str(int(created_on.timestamp() * 1000)),
        name=name or f"plan created on {created_on:%a %b %d %Y}",
        created_on=created_on,
        query=query,
        content=root,
        ctes=ctes,
        metadata=content.model_dump(
            by_alias=True,
            exclude={"children"},
            exclude_none=True,
        ),
    )

    count = number_nodes([root, *ctes])
    calculate_maximums(plan)
    calculate_execution_time(plan, content)

    logger.debug("Created plan %s with %d node(s)", plan.id, count)
    return plan


def parse_plan(
    source: str,
    name: str = "",
    query: str = "",
    config: ParserConfig | None = None,
) -> Plan:
    """
    Parse a plan report into a Plan.

    Args:
        source: The raw report (EXPLAIN text or profiler JSON)
        name: Display name; defaults to "plan created on <date>"
        query: Query text; defaults to the query found in the report
        config: Parser configuration with resource limits. If None,
            uses DEFAULT_CONFIG.

    Returns:
        Plan: Numbered node tree plus statistics

    Raises:
        ParseError: If the input is not a plan or exceeds the limits
        UnsupportedConstructError: If the input uses a construct we
            recognize but do not handle

    Example:
        >>> plan = parse_plan(explain_text)
        >>> plan.content.operator_type
        'Hash Join'
        >>> plan.stats.max_rows
        1200
    """
    config = config or DEFAULT_CONFIG

    _check_input_size(len(source.encode("utf-8")), config)

    content = from_source(source, config)
    _check_tree_depth(content, config)

    plan = create_plan(name, content, query)
    _check_node_count(plan, config)
    return plan


def parse_plan_file(
    path: str | Path,
    name: str = "",
    query: str = "",
    config: ParserConfig | None = None,
) -> Plan:
    """
    Parse a plan report from a file.

    Provides better error messages for file-specific issues. The display
    name defaults to the file name.

    Raises:
        ParseError: If the file cannot be read or parsed
    """
    config = config or DEFAULT_CONFIG
    filepath = Path(path)

    if not filepath.exists():
        raise ParseError(f"File not found: {filepath}", source="file_read")

    if not filepath.is_file():
        raise ParseError(f"Path is not a file: {filepath}", source="file_read")

    _check_input_size(filepath.stat().st_size, config)

    try:
        content = filepath.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ParseError(
            f"Cannot read file: {filepath}",
            detail=str(e),
            source="file_read",
        ) from e

    if not content.strip():
        raise ParseError(f"File is empty: {filepath}", source="file_read")

    return parse_plan(content, name=name or filepath.name, query=query, config=config)


def _check_input_size(size_bytes: int, config: ParserConfig) -> None:
    size_mb = size_bytes / (1024 * 1024)
    if size_mb > config.max_input_size_mb:
        raise ResourceLimitError(
            f"Input too large: {size_mb:.1f}MB (max {config.max_input_size_mb}MB)",
            detail="Use a smaller plan or increase max_input_size_mb in config",
        )


def _check_tree_depth(content: PlanContent, config: ParserConfig) -> None:
    """Measure depth iteratively so a runaway tree cannot exhaust the stack."""
    pending = [(child, 1) for child in content.children]
    while pending:
        node, depth = pending.pop()
        if depth > config.max_depth:
            raise ResourceLimitError(
                f"Plan too deeply nested: depth {depth} (max {config.max_depth})",
                detail="This may indicate a pathological query or corrupted plan output",
            )
        pending.extend((child, depth + 1) for child in node.children)


def _check_node_count(plan: Plan, config: ParserConfig) -> None:
    node_count = plan.node_count
    if node_count > config.max_nodes:
        raise ResourceLimitError(
            f"Plan too large: {node_count:,} nodes (max {config.max_nodes:,})",
            detail="Consider a simpler query or increase max_nodes in config",
        )
