"""Plan report parsing: EXPLAIN text and profiler JSON."""

from planscope.parser.config import DEFAULT_CONFIG, STRICT_CONFIG, ParserConfig
from planscope.parser.models import NodeProp, Plan, PlanContent, PlanNode, PlanStats
from planscope.parser.parser import create_plan, from_source, parse_plan, parse_plan_file

__all__ = [
    "NodeProp",
    "Plan",
    "PlanContent",
    "PlanNode",
    "PlanStats",
    "create_plan",
    "from_source",
    "parse_plan",
    "parse_plan_file",
    "ParserConfig",
    "DEFAULT_CONFIG",
    "STRICT_CONFIG",
]
