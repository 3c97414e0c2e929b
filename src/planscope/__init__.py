"""planscope - Parse database query plan reports into a numbered node tree."""

__version__ = "0.1.0"
__license__ = "MIT"

# Exception hierarchy (import first so other modules can use it)
from planscope.exceptions import (
    PlanscopeError,
    ParseError,
    ResourceLimitError,
    UnsupportedConstructError,
    ConfigurationError,
)

from planscope.config import Config, get_config, reset_config
from planscope.parser import (
    DEFAULT_CONFIG,
    STRICT_CONFIG,
    ParserConfig,
    Plan,
    PlanContent,
    PlanNode,
    PlanStats,
    create_plan,
    parse_plan,
    parse_plan_file,
)

__all__ = [
    "__version__",
    # Exceptions
    "PlanscopeError",
    "ParseError",
    "ResourceLimitError",
    "UnsupportedConstructError",
    "ConfigurationError",
    # Configuration
    "Config",
    "get_config",
    "reset_config",
    "ParserConfig",
    "DEFAULT_CONFIG",
    "STRICT_CONFIG",
    # Plans
    "Plan",
    "PlanContent",
    "PlanNode",
    "PlanStats",
    "create_plan",
    "parse_plan",
    "parse_plan_file",
]
