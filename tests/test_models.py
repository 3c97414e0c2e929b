"""Tests for the node model: wire-key access, classification on construction, traversal."""

from __future__ import annotations

from planscope.parser.models import NodeProp, PlanContent, PlanNode


class TestPropertyAccess:

    def test_known_key_routes_to_field(self) -> None:
        node = PlanNode()
        node.set("Plan Rows", 10)

        assert node.plan_rows == 10
        assert node.get(NodeProp.PLAN_ROWS) == 10
        assert node.has("Plan Rows")

    def test_unknown_key_goes_to_extras(self) -> None:
        node = PlanNode()
        node.set("Rows Removed by Filter", 12)

        assert node.get("Rows Removed by Filter") == 12
        assert node.model_dump(by_alias=True)["Rows Removed by Filter"] == 12

    def test_missing_key_default(self) -> None:
        node = PlanNode()

        assert node.get("Nope") is None
        assert node.get("Nope", "x") == "x"
        assert node.get(NodeProp.RELATION_NAME, "none") == "none"
        assert not node.has("Nope")

    def test_field_name_also_accepted(self) -> None:
        assert PlanNode.field_for_key("plan_rows") == "plan_rows"
        assert PlanNode.field_for_key("Plan Rows") == "plan_rows"
        assert PlanNode.field_for_key("Heap Fetches") is None

    def test_holder_keys(self) -> None:
        content = PlanContent()
        content.set("Planning Time", 0.5)
        content.set("Functions", 4)

        assert content.planning_time == 0.5
        assert content.get("Functions") == 4
        assert not content.has_root


class TestClassificationOnConstruction:

    def test_label_is_classified(self) -> None:
        node = PlanNode.from_label("Parallel Seq Scan on orders o")

        assert node.operator_type == "Seq Scan"
        assert node.relation_name == "orders"
        assert node.alias == "o"
        assert node.parallel_aware is True

    def test_input_fields_not_overwritten(self) -> None:
        node = PlanNode.model_validate({
            "operator_type": "Seq Scan on orders o",
            "Relation Name": "public.orders",
        })

        assert node.operator_type == "Seq Scan"
        assert node.relation_name == "public.orders"
        assert node.alias == "o"

    def test_bare_node(self) -> None:
        node = PlanNode.from_label()

        assert node.operator_type is None
        assert node.relation_name is None

    def test_extra_info_coercion(self) -> None:
        assert PlanNode.model_validate({"extra_info": None}).extra_info == {}
        assert PlanNode.model_validate({"extra_info": ""}).extra_info == {}
        assert PlanNode.model_validate({"extra_info": "a > 1"}).extra_info == {"Text": "a > 1"}


class TestTraversal:

    def test_pre_order_and_depth(self) -> None:
        root = PlanNode.model_validate({
            "operator_type": "A",
            "children": [
                {"operator_type": "B", "children": [{"operator_type": "C"}]},
                {"operator_type": "D"},
            ],
        })

        assert [node.operator_type for node in root.iter_nodes()] == ["A", "B", "C", "D"]
        assert root.depth() == 3
        assert root.children[1].depth() == 1

    def test_never_executed(self) -> None:
        assert PlanNode(actual_loops=0).never_executed
        assert not PlanNode(actual_loops=1).never_executed
        assert not PlanNode().never_executed
