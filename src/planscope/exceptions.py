"""
Package-level exception hierarchy for planscope.

All exceptions inherit from PlanscopeError, enabling:
- Catching all planscope errors with a single except clause
- Rich context fields for debugging (source, detail, config_key, etc.)
- Structured serialization via to_dict() for JSON error responses

Hierarchy:
    PlanscopeError
    ├── ParseError                 – The input is not a plan we can build a tree from
    │   └── ResourceLimitError     – The input exceeds the configured parser limits
    ├── UnsupportedConstructError  – A recognized construct we do not handle
    └── ConfigurationError         – Invalid settings
"""

from __future__ import annotations

from typing import Any


class PlanscopeError(Exception):
    """
    Base exception for all planscope errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error responses."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Parse Errors ─────────────────────────────────────────────────────────


class ParseError(PlanscopeError):
    """
    Failed to build a plan tree from the input.

    This is the "could not parse plan" condition: text parsing finished
    without a root node, JSON input had no node under ``children``, or the
    input could not be decoded at all.

    Attributes:
        detail: Technical details for debugging (optional).
        source: Where the error occurred (e.g. "text", "json_decode").
    """

    def __init__(
        self,
        message: str,
        *,
        detail: str | None = None,
        source: str = "unknown",
    ) -> None:
        self.detail = detail
        self.source = source
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}\n\nDetails: {self.detail}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["detail"] = self.detail
        result["source"] = self.source
        return result


class ResourceLimitError(ParseError):
    """Input is larger, wider or deeper than ParserConfig allows."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message, detail=detail, source="resource_limit")


# ── Unsupported Constructs ───────────────────────────────────────────────


class UnsupportedConstructError(PlanscopeError):
    """
    A recognized-but-unhandled variant appeared in the input.

    Attributes:
        construct: The construct family (e.g. "sort groups").
        value: The offending value.
    """

    def __init__(self, construct: str, value: str) -> None:
        self.construct = construct
        self.value = value
        super().__init__(f"Unsupported {construct}: {value!r}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["construct"] = self.construct
        result["value"] = self.value
        return result


# ── Configuration Errors ─────────────────────────────────────────────────


class ConfigurationError(PlanscopeError):
    """
    Error in planscope configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result
