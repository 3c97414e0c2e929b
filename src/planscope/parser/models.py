"""
Pydantic models for parsed execution plans.

The structure is:
- PlanNode: Recursive operator node with typed well-known fields plus an
  open bag of vendor-specific extras
- PlanContent: Synthetic root holder produced by either ingestion path
- PlanStats: Whole-plan maxima used for proportional scaling
- Plan: The aggregate root handed to rendering layers

Plans arrive with two key vocabularies: profiler JSON uses snake_case keys
(``operator_cardinality``, ``extra_info``) and EXPLAIN text uses Title Case
keys (``Plan Rows``, ``Sort Key``). Fields keep the wire key as their alias,
so ``model_dump(by_alias=True)`` reproduces what came in.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from planscope.parser.classifier import classify


class NodeProp(str, Enum):
    """Wire keys for node properties that the engine reads or writes."""

    # Profiler keys
    NODE_TYPE = "operator_type"
    ACTUAL_ROWS = "operator_cardinality"
    ACTUAL_TIME = "operator_timing"
    PLANS = "children"
    CPU_TIME = "cpu_time"
    CUMULATIVE_CARDINALITY = "cumulative_cardinality"
    CUMULATIVE_ROWS_SCANNED = "cumulative_rows_scanned"
    OPERATOR_ROWS_SCANNED = "operator_rows_scanned"
    RESULT_SET_SIZE = "result_set_size"
    EXTRA_INFO = "extra_info"
    ESTIMATED_ROWS = "Estimated Cardinality"

    # EXPLAIN text keys
    STARTUP_COST = "Startup Cost"
    TOTAL_COST = "Total Cost"
    PLAN_ROWS = "Plan Rows"
    PLAN_WIDTH = "Plan Width"
    ACTUAL_STARTUP_TIME = "Actual Startup Time"
    ACTUAL_LOOPS = "Actual Loops"
    RELATION_NAME = "Relation Name"
    ALIAS = "Alias"
    INDEX_NAME = "Index Name"
    CTE_NAME = "CTE Name"
    FUNCTION_NAME = "Function Name"
    JOIN_TYPE = "Join Type"
    PARALLEL_AWARE = "Parallel Aware"
    SUBPLAN_NAME = "Subplan Name"
    PARENT_RELATIONSHIP = "Parent Relationship"
    SORT_KEY = "Sort Key"
    PRESORTED_KEY = "Presorted Key"
    SORT_METHOD = "Sort Method"
    SORT_SPACE_USED = "Sort Space Used"
    SORT_SPACE_TYPE = "Sort Space Type"
    FULL_SORT_GROUPS = "Full-sort Groups"
    PRE_SORTED_GROUPS = "Pre-sorted Groups"
    TIMING = "Timing"

    # Computed while building the plan
    NODE_ID = "nodeId"
    ACTUAL_ROWS_REVISED = "*Actual Rows Revised"
    PLAN_ROWS_REVISED = "*Plan Rows Revised"

    # Plan holder keys
    QUERY_TEXT = "Query Text"
    QUERY_NAME = "query_name"
    PLANNING_TIME = "Planning Time"
    EXECUTION_TIME = "Execution Time"
    TOTAL_RUNTIME = "Total Runtime"


class PropertyBag(BaseModel):
    """
    Base for models addressed by wire key.

    Known keys resolve to typed fields; anything else lives in the pydantic
    extras map. No validation happens on ``set``: the bag is open so vendor
    output with unexpected keys still loads.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
    )

    @classmethod
    def field_for_key(cls, key: str) -> str | None:
        """Model field name for a wire key (or field name), if it is a known one."""
        for name, info in cls.model_fields.items():
            if key == name or key == info.alias:
                return name
        return None

    def get(self, key: str | NodeProp, default: Any = None) -> Any:
        key = key.value if isinstance(key, NodeProp) else key
        name = self.field_for_key(key)
        if name is not None:
            value = getattr(self, name)
            return default if value is None else value
        return (self.__pydantic_extra__ or {}).get(key, default)

    def set(self, key: str | NodeProp, value: Any) -> None:
        key = key.value if isinstance(key, NodeProp) else key
        name = self.field_for_key(key)
        if name is not None:
            setattr(self, name, value)
            return
        if self.__pydantic_extra__ is None:
            self.__pydantic_extra__ = {}
        self.__pydantic_extra__[key] = value

    def has(self, key: str | NodeProp) -> bool:
        return self.get(key) is not None


class SortSpaceMemory(BaseModel):
    """Memory figures of an incremental sort groups block, in kB."""

    model_config = ConfigDict(populate_by_name=True)

    average_sort_space_used: int = Field(..., alias="Average Sort Space Used")
    peak_sort_space_used: int = Field(..., alias="Peak Sort Space Used")


class SortGroups(BaseModel):
    """A ``Full-sort Groups`` or ``Pre-sorted Groups`` block of an Incremental Sort."""

    model_config = ConfigDict(populate_by_name=True)

    group_count: int = Field(..., alias="Group Count")
    sort_methods_used: list[str] = Field(..., alias="Sort Methods Used")
    sort_space_memory: SortSpaceMemory = Field(..., alias="Sort Space Memory")


class PlanNode(PropertyBag):
    """
    One operator in the execution plan tree.

    Children are kept in execution/display order and never re-sorted. The
    operator label is classified once, at construction: a label like
    ``Parallel Seq Scan on orders o`` is stored as ``Seq Scan`` with the
    relation, alias and parallel flag pulled out into their own fields.
    Fields already supplied by the input are not overwritten by the
    classifier.
    """

    node_id: int | None = Field(default=None, alias="nodeId")

    operator_type: str | None = Field(
        default=None,
        alias="operator_type",
        description="Operator name; absent only on synthetic roots",
    )

    # =========================================================================
    # Profiler metrics
    # =========================================================================

    operator_cardinality: int | None = Field(
        default=None,
        alias="operator_cardinality",
        description="Actual rows returned to the parent",
    )
    operator_timing: float | None = Field(
        default=None,
        alias="operator_timing",
        description="Actual time spent in the operator",
    )
    operator_rows_scanned: int | None = Field(default=None, alias="operator_rows_scanned")
    result_set_size: int | None = Field(default=None, alias="result_set_size")
    cpu_time: float | None = Field(default=None, alias="cpu_time")
    cumulative_cardinality: int | None = Field(default=None, alias="cumulative_cardinality")
    cumulative_rows_scanned: int | None = Field(default=None, alias="cumulative_rows_scanned")
    extra_info: dict[str, Any] = Field(
        default_factory=dict,
        alias="extra_info",
        description="Operator-specific metrics (estimated cardinality, projections ...)",
    )

    # =========================================================================
    # Cost estimate and actual-stats tuples from EXPLAIN text
    # =========================================================================

    startup_cost: float | None = Field(default=None, alias="Startup Cost")
    total_cost: float | None = Field(default=None, alias="Total Cost")
    plan_rows: int | None = Field(default=None, alias="Plan Rows")
    plan_width: int | None = Field(default=None, alias="Plan Width")
    actual_startup_time: float | None = Field(default=None, alias="Actual Startup Time")
    actual_loops: int | None = Field(default=None, alias="Actual Loops")

    # =========================================================================
    # Classified from the operator label
    # =========================================================================

    relation_name: str | None = Field(default=None, alias="Relation Name")
    alias: str | None = Field(default=None, alias="Alias")
    index_name: str | None = Field(default=None, alias="Index Name")
    cte_name: str | None = Field(default=None, alias="CTE Name")
    function_name: str | None = Field(default=None, alias="Function Name")
    join_type: str | None = Field(default=None, alias="Join Type")
    parallel_aware: bool | None = Field(default=None, alias="Parallel Aware")

    # Set from SubPlan / InitPlan / CTE markers
    subplan_name: str | None = Field(default=None, alias="Subplan Name")
    parent_relationship: str | None = Field(default=None, alias="Parent Relationship")

    # =========================================================================
    # Structured extra-info blocks
    # =========================================================================

    sort_key: list[str] | None = Field(default=None, alias="Sort Key")
    presorted_key: list[str] | None = Field(default=None, alias="Presorted Key")
    sort_method: str | None = Field(default=None, alias="Sort Method")
    sort_space_used: int | None = Field(default=None, alias="Sort Space Used")
    sort_space_type: str | None = Field(default=None, alias="Sort Space Type")
    full_sort_groups: SortGroups | None = Field(default=None, alias="Full-sort Groups")
    pre_sorted_groups: SortGroups | None = Field(default=None, alias="Pre-sorted Groups")
    timing_phases: dict[str, float] | None = Field(default=None, alias="Timing")

    # =========================================================================
    # Derived
    # =========================================================================

    actual_rows_revised: int | None = Field(default=None, alias="*Actual Rows Revised")
    plan_rows_revised: int | None = Field(default=None, alias="*Plan Rows Revised")

    children: list[PlanNode] = Field(default_factory=list, alias="children")

    @field_validator("extra_info", mode="before")
    @classmethod
    def _coerce_extra_info(cls, value: Any) -> Any:
        # Older profilers emit extra_info as one preformatted string
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            return {"Text": value}
        return value

    @model_validator(mode="after")
    def _classify_operator_type(self) -> PlanNode:
        if self.operator_type:
            for name, value in classify(self.operator_type).fields().items():
                if name == "operator_type" or getattr(self, name) is None:
                    setattr(self, name, value)
        return self

    @classmethod
    def from_label(cls, label: str | None = None) -> PlanNode:
        """
        Construct a node from a raw operator label.

        Without a label this is a bare node with no classified fields.
        """
        if not label:
            return cls()
        return cls(operator_type=label)

    @property
    def estimated_rows(self) -> Any:
        """Raw estimated cardinality from extra_info (often a string)."""
        return self.extra_info.get(NodeProp.ESTIMATED_ROWS.value)

    @property
    def never_executed(self) -> bool:
        """A node the executor never reached: zero loops."""
        return self.actual_loops == 0

    def iter_nodes(self) -> list[PlanNode]:
        """All nodes of this subtree, depth-first, pre-order."""
        nodes = [self]
        for child in self.children:
            nodes.extend(child.iter_nodes())
        return nodes

    def depth(self) -> int:
        """Number of levels in this subtree (a leaf has depth 1)."""
        if not self.children:
            return 1
        return 1 + max(child.depth() for child in self.children)


class PlanContent(PropertyBag):
    """
    Synthetic root holder returned by both ingestion paths.

    ``children`` holds the top-level node (optionally preceded by CTE
    roots). Plan-wide properties, such as planning time or the JIT block of
    EXPLAIN text, or the query name of profiler JSON, live alongside.
    """

    children: list[PlanNode] = Field(default_factory=list, alias="children")
    query_text: str | None = Field(default=None, alias="Query Text")
    query_name: str | None = Field(default=None, alias="query_name")
    planning_time: float | None = Field(default=None, alias="Planning Time")
    execution_time: float | None = Field(default=None, alias="Execution Time")
    total_runtime: float | None = Field(default=None, alias="Total Runtime")

    @property
    def has_root(self) -> bool:
        return bool(self.children)


class PlanStats(BaseModel):
    """
    Whole-plan maxima.

    Each maximum is None when no node defines the underlying field, which
    consumers must read as "not applicable" rather than zero.
    """

    model_config = ConfigDict(populate_by_name=True)

    execution_time: float | None = Field(default=None, alias="executionTime")
    max_rows: int | None = Field(default=None, alias="maxRows")
    max_rows_scanned: int | None = Field(default=None, alias="maxRowsScanned")
    max_estimated_rows: int | None = Field(default=None, alias="maxEstimatedRows")
    max_result: int | None = Field(default=None, alias="maxResult")
    max_duration: float | None = Field(default=None, alias="maxDuration")


class Plan(BaseModel):
    """
    A parsed plan: metadata, node tree and statistics.

    Rendering layers read this but never mutate node ids or tree shape.

    Usage:
        plan = parse_plan(raw_text)
        for node in plan.all_nodes:
            print(node.node_id, node.operator_type)
        print(plan.stats.max_rows)
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    created_on: datetime = Field(..., alias="createdOn")
    query: str = ""
    content: PlanNode
    ctes: list[PlanNode] = Field(default_factory=list)
    stats: PlanStats = Field(default_factory=PlanStats, alias="planStats")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Plan-wide properties from the root holder",
    )

    def iter_roots(self) -> Iterator[PlanNode]:
        yield self.content
        yield from self.ctes

    @property
    def all_nodes(self) -> list[PlanNode]:
        """Every node reachable from the content and from each CTE subtree."""
        nodes: list[PlanNode] = []
        for root in self.iter_roots():
            nodes.extend(root.iter_nodes())
        return nodes

    @property
    def node_count(self) -> int:
        return len(self.all_nodes)

    def find_node(self, node_id: int) -> PlanNode | None:
        for node in self.all_nodes:
            if node.node_id == node_id:
                return node
        return None

    def find_node_by_subplan_name(self, subplan_name: str) -> PlanNode | None:
        for node in self.all_nodes:
            if node.subplan_name == subplan_name:
                return node
        return None
