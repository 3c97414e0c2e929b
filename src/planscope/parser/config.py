"""
Parser configuration with resource limits.

The parser itself has no cancellation or timeout contract, so callers bound
latency by bounding input. These limits catch pathological inputs before
they turn into multi-GB strings or trees too deep to walk. The defaults are
generous for normal usage.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ParserConfig(BaseModel):
    """
    Configuration for the plan parser with resource limits.

    Attributes:
        max_input_size_mb: Maximum size of the raw report text.
        max_nodes: Maximum number of plan nodes (content plus CTE subtrees).
        max_depth: Maximum tree depth (nesting level).
        tab_width: Number of spaces a tab counts for when measuring
            indentation in text plans.

    Example:
        # Use defaults
        config = ParserConfig()

        # Stricter limits for a web API
        config = ParserConfig(max_input_size_mb=10, max_nodes=1000)
    """

    model_config = ConfigDict(frozen=True)

    max_input_size_mb: float = Field(
        default=100.0,
        gt=0,
        description="Maximum input size in megabytes",
    )

    max_nodes: int = Field(
        default=50_000,
        gt=0,
        description="Maximum number of plan nodes",
    )

    max_depth: int = Field(
        default=100,
        gt=0,
        description="Maximum tree depth (nesting level)",
    )

    tab_width: int = Field(
        default=4,
        ge=1,
        description="Spaces per tab when measuring indentation",
    )


DEFAULT_CONFIG = ParserConfig()

# Stricter limits for web API / untrusted input
STRICT_CONFIG = ParserConfig(
    max_input_size_mb=10.0,
    max_nodes=5_000,
    max_depth=50,
)
