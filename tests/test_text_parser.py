"""
Tests for the EXPLAIN text parser.

Test philosophy:
- Node lines in every shape the server prints (costs, actuals, both,
  never executed)
- Tree shape from indentation, including SubPlan/InitPlan/CTE markers
- Extra-info lines routed to the right node or to the plan holder
- Structured sub-parsers (sort keys, sort method, JIT timing, sort groups)
"""

from __future__ import annotations

from pathlib import Path

import pytest

from planscope.exceptions import ParseError, UnsupportedConstructError
from planscope.parser.cleanup import cleanup_source
from planscope.parser.config import ParserConfig
from planscope.parser.models import PlanContent, PlanNode
from planscope.parser.text import (
    coerce_number,
    parse_sort_groups,
    parse_sort_key,
    parse_sort_method,
    parse_text,
    parse_timing,
    split_into_lines,
)

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_text(name: str) -> PlanContent:
    """Clean up and parse a text fixture."""
    source = (FIXTURES_DIR / name).read_text(encoding="utf-8")
    return parse_text(cleanup_source(source))


# =============================================================================
# Line reflow
# =============================================================================


class TestSplitIntoLines:

    def test_wrapped_tuple_is_rejoined(self) -> None:
        text = " Seq Scan on t  (cost=0.00..1.01\n rows=1 width=4)"

        assert split_into_lines(text) == [" Seq Scan on t  (cost=0.00..1.01 rows=1 width=4)"]

    def test_indented_lines_stay_separate(self) -> None:
        text = " Hash  (cost=0.00..1.00 rows=1 width=4)\n   Buckets: 1024"

        assert split_into_lines(text) == [
            " Hash  (cost=0.00..1.00 rows=1 width=4)",
            "   Buckets: 1024",
        ]

    def test_header_keyword_starts_new_line(self) -> None:
        text = "Result  (cost=0.00..0.01 rows=1 width=4)\nPlanning time: 0.1 ms\nExecution time: 0.2 ms"

        assert split_into_lines(text) == [
            "Result  (cost=0.00..0.01 rows=1 width=4)",
            "Planning time: 0.1 ms",
            "Execution time: 0.2 ms",
        ]

    def test_column_zero_continuation_is_glued(self) -> None:
        text = "Result  (cost=0.00..0.01 rows=1 width=4)\nwrapped tail"

        assert split_into_lines(text) == ["Result  (cost=0.00..0.01 rows=1 width=4)wrapped tail"]


# =============================================================================
# Number coercion
# =============================================================================


class TestCoerceNumber:

    @pytest.mark.parametrize("value,expected", [
        ("0", 0),
        ("42", 42),
        ("-3", -3),
        ("1.5", 1.5),
        ("0.000", 0.0),
        ("1e3", 1000.0),
        (" 7 ", 7),
    ])
    def test_numbers(self, value: str, expected: object) -> None:
        result = coerce_number(value)

        assert result == expected
        assert type(result) is type(expected)

    @pytest.mark.parametrize("value", ["12kB", "(a = b)", "NaN", "inf", "", "quicksort"])
    def test_non_numbers_unchanged(self, value: str) -> None:
        assert coerce_number(value) == value


# =============================================================================
# Node lines
# =============================================================================


class TestNodeLines:

    def test_costs_only(self) -> None:
        content = parse_text(" Seq Scan on orders  (cost=0.00..35.50 rows=2550 width=4)")
        node = content.children[0]

        assert node.operator_type == "Seq Scan"
        assert node.relation_name == "orders"
        assert node.startup_cost == 0.0
        assert node.total_cost == 35.5
        assert node.plan_rows == 2550
        assert node.plan_width == 4
        assert node.operator_cardinality is None
        assert node.actual_loops is None

    def test_costs_and_actuals(self) -> None:
        content = parse_text(
            " Seq Scan on orders  (cost=0.00..35.50 rows=2550 width=4) "
            "(actual time=0.010..0.400 rows=2550 loops=1)"
        )
        node = content.children[0]

        assert node.plan_rows == 2550
        assert node.actual_startup_time == 0.01
        assert node.operator_timing == 0.4
        assert node.operator_cardinality == 2550
        assert node.actual_loops == 1

    def test_actuals_only(self) -> None:
        content = parse_text(" Seq Scan on t  (actual time=0.010..0.020 rows=3 loops=2)")
        node = content.children[0]

        assert node.startup_cost is None
        assert node.operator_timing == 0.02
        assert node.operator_cardinality == 3
        assert node.actual_loops == 2

    def test_actual_rows_without_timing(self) -> None:
        content = parse_text(" Seq Scan on t  (actual rows=3 loops=1)")
        node = content.children[0]

        assert node.operator_cardinality == 3
        assert node.actual_loops == 1
        assert node.operator_timing is None

    def test_fractional_actual_rows(self) -> None:
        content = parse_text(" Seq Scan on t  (actual time=0.010..0.020 rows=2.00 loops=4)")

        assert content.children[0].operator_cardinality == 2

    def test_never_executed(self) -> None:
        content = parse_text(" Seq Scan on t  (cost=0.00..1.01 rows=1 width=4) (never executed)")
        node = content.children[0]

        assert node.never_executed
        assert node.actual_loops == 0
        assert node.operator_cardinality == 0
        assert node.operator_timing == 0.0
        assert node.plan_rows == 1

    def test_tab_indentation(self) -> None:
        content = parse_text(
            "Hash  (cost=0.00..1.00 rows=1 width=4)\n"
            "\t->  Seq Scan on t  (cost=0.00..1.00 rows=1 width=4)",
            ParserConfig(tab_width=8),
        )

        assert len(content.children) == 1
        assert content.children[0].children[0].relation_name == "t"


# =============================================================================
# Tree shape
# =============================================================================


class TestTreeShape:

    def test_hash_join_tree(self) -> None:
        content = load_text("hash_join.txt")
        root = content.children[0]

        assert len(content.children) == 1
        assert root.operator_type == "Hash Join"
        assert [child.operator_type for child in root.children] == ["Seq Scan", "Hash"]
        assert root.children[0].relation_name == "a"
        assert root.children[1].children[0].relation_name == "b"

    def test_extra_info_attaches_to_innermost_node(self) -> None:
        content = load_text("hash_join.txt")
        root = content.children[0]
        hash_node = root.children[1]

        assert root.get("Hash Cond") == "(a.id = b.id)"
        assert hash_node.get("Buckets") == "1024  Batches: 1  Memory Usage: 9kB"
        assert root.children[0].get("Buckets") is None

    def test_global_info_attaches_to_holder(self) -> None:
        content = load_text("hash_join.txt")

        assert content.planning_time == 0.1
        assert content.execution_time == 0.06

    def test_pgadmin_quoted_plan(self) -> None:
        content = load_text("pgadmin_quoted.txt")
        root = content.children[0]

        assert root.relation_name == "orders"
        assert root.get("Filter") == "(amount > 100)"
        assert root.get("Rows Removed by Filter") == 12
        assert content.planning_time == 0.08
        assert content.execution_time == 0.6

    def test_subplan_and_cte_markers(self) -> None:
        content = load_text("subplan_cte.txt")
        root = content.children[0]
        cte_child, subplan_child, plain_child = root.children

        assert root.operator_type == "CTE Scan"
        assert root.cte_name == "recent"

        assert cte_child.relation_name == "orders"
        assert cte_child.parent_relationship == "InitPlan"
        assert cte_child.subplan_name == "CTE recent"

        assert subplan_child.operator_type == "Index Only Scan"
        assert subplan_child.parent_relationship == "SubPlan"
        assert subplan_child.subplan_name == "SubPlan 1"
        assert subplan_child.get("Heap Fetches") == 0

        assert plain_child.relation_name == "audit"
        assert plain_child.parent_relationship is None
        assert plain_child.never_executed

    def test_second_top_level_node_is_skipped(self) -> None:
        content = parse_text(
            " Result  (cost=0.00..0.01 rows=1 width=4)\n"
            " Planning Time: 0.1 ms\n"
            " Result  (cost=0.00..0.02 rows=1 width=4)\n"
        )

        assert len(content.children) == 1
        assert content.children[0].total_cost == 0.01

    def test_query_text_continuation(self) -> None:
        content = parse_text(
            " Query Text: select *\n"
            "   from t\n"
            " Seq Scan on t  (cost=0.00..1.01 rows=1 width=4)\n"
        )

        assert content.query_text == "select *\nfrom t"
        assert content.children[0].relation_name == "t"

    def test_runtime_keys_title_cased(self) -> None:
        content = parse_text(
            " Result  (cost=0.00..0.01 rows=1 width=4)\n"
            " Total runtime: 0.5 ms\n"
        )

        assert content.total_runtime == 0.5


class TestMalformedText:

    def test_no_node_line(self) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_text("hello world")

        assert exc_info.value.source == "text"
        assert "Unable to parse plan" in str(exc_info.value)

    def test_empty_text(self) -> None:
        with pytest.raises(ParseError):
            parse_text("")

    def test_unknown_sort_groups_kind(self) -> None:
        source = (FIXTURES_DIR / "unsupported_sort_groups.txt").read_text(encoding="utf-8")

        with pytest.raises(UnsupportedConstructError) as exc_info:
            parse_text(cleanup_source(source))

        assert exc_info.value.value == "Weird-sort"


# =============================================================================
# Extra-info sub-parsers
# =============================================================================


class TestExtraInfoParsers:

    def test_sort_key_respects_parentheses(self) -> None:
        node = PlanNode()

        assert parse_sort_key("Sort Key: t.a, lower(t.b), coalesce(x, y) DESC", node)
        assert node.sort_key == ["t.a", "lower(t.b)", "coalesce(x, y) DESC"]

    def test_presorted_key(self) -> None:
        node = PlanNode()

        assert parse_sort_key("Presorted Key: t.a", node)
        assert node.presorted_key == ["t.a"]

    def test_sort_method_memory(self) -> None:
        node = PlanNode()

        assert parse_sort_method("Sort Method: quicksort  Memory: 25kB", node)
        assert node.sort_method == "quicksort"
        assert node.sort_space_used == 25
        assert node.sort_space_type == "Memory"

    def test_sort_method_disk(self) -> None:
        node = PlanNode()

        assert parse_sort_method("Sort Method: external merge  Disk: 1024kB", node)
        assert node.sort_method == "external merge"
        assert node.sort_space_used == 1024
        assert node.sort_space_type == "Disk"

    def test_sort_method_without_figure(self) -> None:
        node = PlanNode()

        assert parse_sort_method("Sort Method: quicksort  Memory: kB", node)
        assert node.sort_method == "quicksort"
        assert node.sort_space_used is None
        assert node.sort_space_type == "Memory"
        assert '"Sort Space Used"' not in node.model_dump_json(by_alias=True, exclude_none=True)

    def test_timing_phases(self) -> None:
        content = PlanContent()

        assert parse_timing(
            "Timing: Generation 0.340 ms, Inlining 0.000 ms, Total 3.040 ms",
            content,
        )
        assert content.get("Timing") == {"Generation": 0.34, "Inlining": 0.0, "Total": 3.04}

    def test_sort_groups(self) -> None:
        node = PlanNode()

        assert parse_sort_groups(
            "Pre-sorted Groups: 3  Sort Methods: top-N heapsort, quicksort  "
            "Average Memory: 27kB  Peak Memory: 28kB",
            node,
        )
        groups = node.pre_sorted_groups
        assert groups is not None
        assert groups.group_count == 3
        assert groups.sort_methods_used == ["top-N heapsort", "quicksort"]
        assert groups.sort_space_memory.average_sort_space_used == 27
        assert groups.sort_space_memory.peak_sort_space_used == 28

    def test_parsers_decline_other_lines(self) -> None:
        node = PlanNode()

        assert not parse_sort_key("Filter: (a > 1)", node)
        assert not parse_sort_method("Filter: (a > 1)", node)
        assert not parse_timing("Filter: (a > 1)", node)
        assert not parse_sort_groups("Filter: (a > 1)", node)

    def test_incremental_sort_fixture(self) -> None:
        content = load_text("incremental_sort.txt")
        root = content.children[0]

        assert root.sort_key == ["t.a", "lower(t.b)"]
        assert root.presorted_key == ["t.a"]
        assert root.full_sort_groups is not None
        assert root.full_sort_groups.group_count == 4
        assert root.full_sort_groups.sort_methods_used == ["quicksort"]
        assert content.get("Functions") == 4
        assert content.get("Timing")["Emission"] == 2.5
        assert content.execution_time == 4.0
