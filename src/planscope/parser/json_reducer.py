"""
Duplicate-key tolerant JSON reduction.

Some producers serialize parallel workers as repeated keys instead of an
array::

    {"Workers": {"Worker Number": 0, ...}, "Workers": {"Worker Number": 1, ...}}

A plain ``json.loads`` keeps only the last one. Here decoding is split in
two: ``json`` tokenizes the text with an ``object_pairs_hook`` that keeps
every pair, then ``DuplicateKeyReducer`` replays the document as
open/key/value/close events and rebuilds it on a stack of open containers.
When a key repeats inside one object, the repeated value is deep-merged
into the first one instead of replacing it.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from planscope.exceptions import ParseError, ResourceLimitError
from planscope.parser.models import NodeProp, PlanContent

logger = logging.getLogger(__name__)


class _ObjectPairs(list):
    """Key/value pairs of one JSON object, in order, duplicates kept."""


def _decode(source: str) -> Any:
    try:
        return json.loads(source, object_pairs_hook=_ObjectPairs)
    except RecursionError as e:
        raise ResourceLimitError(
            "Plan too deeply nested: JSON nesting exceeds the decoder limit",
            detail="This may indicate a pathological query or corrupted plan output",
        ) from e


def deep_merge(target: Any, source: Any) -> Any:
    """
    Merge ``source`` into ``target`` in place and return ``target``.

    Objects merge key by key and arrays index by index, recursively; any
    other value in ``source`` replaces the one in ``target``.
    """
    if isinstance(target, dict) and isinstance(source, dict):
        for key, value in source.items():
            if key in target:
                target[key] = deep_merge(target[key], value)
            else:
                target[key] = value
        return target
    if isinstance(target, list) and isinstance(source, list):
        for index, value in enumerate(source):
            if index < len(target):
                target[index] = deep_merge(target[index], value)
            else:
                target.append(value)
        return target
    return source


@dataclass
class _Container:
    """An open object or array on the reducer stack."""

    value: dict[str, Any] | list[Any]
    key: str | None = None
    duplicate_of: Any = None
    has_duplicate: bool = False


class DuplicateKeyReducer:
    """
    Rebuilds a JSON document from parse events, merging duplicate keys.

    Feed it ``open_object`` / ``key`` / ``value`` / ``open_array`` /
    ``close`` events in document order (``feed`` does that for a decoded
    document); ``result`` holds the root once the outermost container
    closes. A repeated scalar key keeps the last value.
    """

    def __init__(self) -> None:
        self.stack: list[_Container] = []
        self.result: Any = None
        self.merged_keys = 0

    # -- events ---------------------------------------------------------------

    def open_object(self) -> None:
        self.stack.append(_Container({}))

    def open_array(self) -> None:
        self.stack.append(_Container([]))

    def key(self, name: str) -> None:
        current = self.stack[-1]
        if not isinstance(current.value, dict):
            raise ParseError(
                f"Key {name!r} outside of an object",
                source="json_decode",
            )
        if name in current.value:
            current.duplicate_of = current.value[name]
            current.has_duplicate = True
        else:
            current.value[name] = None
        current.key = name

    def value(self, value: Any) -> None:
        if not self.stack:
            self.result = value
            return
        current = self.stack[-1]
        if isinstance(current.value, list):
            current.value.append(value)
            return
        current.has_duplicate = False
        current.duplicate_of = None
        current.value[current.key] = value

    def close(self) -> None:
        popped = self.stack.pop().value
        if not self.stack:
            self.result = popped
            return

        current = self.stack[-1]
        if isinstance(current.value, list):
            current.value.append(popped)
            return

        if current.has_duplicate:
            logger.debug("Merging duplicate key %r", current.key)
            current.value[current.key] = deep_merge(current.duplicate_of, popped)
            current.has_duplicate = False
            current.duplicate_of = None
            self.merged_keys += 1
        else:
            current.value[current.key] = popped

    # -- driving ---------------------------------------------------------------

    def feed(self, node: Any) -> None:
        """
        Replay a decoded document (objects as _ObjectPairs) as events.

        Works off an explicit stack of pending events, so document depth
        is bounded by memory rather than the interpreter's recursion limit.
        """
        pending: list[tuple[str, Any]] = [("node", node)]
        while pending:
            kind, item = pending.pop()
            if kind == "key":
                self.key(item)
            elif kind == "close":
                self.close()
            elif isinstance(item, _ObjectPairs):
                self.open_object()
                pending.append(("close", None))
                for name, child in reversed(item):
                    pending.append(("node", child))
                    pending.append(("key", name))
            elif isinstance(item, list):
                self.open_array()
                pending.append(("close", None))
                pending.extend(("node", child) for child in reversed(item))
            else:
                self.value(item)


def reduce_json(source: str) -> Any:
    """
    Decode JSON text, merging duplicate keys at each object level.

    An outer array is unwrapped to its first element.

    Raises:
        ParseError: If the text is not well-formed JSON (this includes
            containers left open at end of input)
        ResourceLimitError: If the document nests deeper than the
            decoder can follow

    Example:
        >>> reduce_json('{"a": {"x": 1}, "a": {"y": 2}}')
        {'a': {'x': 1, 'y': 2}}
    """
    try:
        decoded = _decode(source)
    except json.JSONDecodeError as e:
        raise ParseError(
            "Invalid JSON format",
            detail=f"Line {e.lineno}, column {e.colno}: {e.msg}",
            source="json_decode",
        ) from e

    reducer = DuplicateKeyReducer()
    try:
        reducer.feed(decoded)
    except RecursionError as e:
        # deep_merge of a very deep duplicated subtree
        raise ResourceLimitError(
            "Plan too deeply nested: duplicate keys could not be merged",
            detail="This may indicate a pathological query or corrupted plan output",
        ) from e

    root = reducer.result
    if isinstance(root, list):
        root = root[0] if root else None
    return root


def is_json(source: str) -> bool:
    """True if the whole string decodes to a JSON object or array."""
    try:
        decoded = _decode(source)
    except json.JSONDecodeError:
        return False
    # Objects decode to _ObjectPairs, a list subclass
    return isinstance(decoded, list)


_EMBEDDED_JSON_RE = re.compile(r"^(\s*)(\[|\{)\s*\n.*?\1(\]|\})\s*", re.M | re.S)
_OPENING_LINE_RE = re.compile(r"^(\s*)(\[|\{)\s*$")


def has_embedded_json(source: str) -> bool:
    """True if a bare ``[``/``{`` line is followed by a closing line at the same indent."""
    return _EMBEDDED_JSON_RE.search(source) is not None


def extract_json_block(source: str) -> str:
    """
    Cut an embedded JSON document out of surrounding text.

    Finds the first line that is only ``[`` or ``{``, then the first later
    line that is only ``]`` or ``}`` with the same leading whitespace, and
    returns the lines in between (inclusive). Doubled double quotes, which
    pgAdmin adds when copying, are collapsed.
    """
    lines = re.split(r"[\r\n]+", source)

    prefix = ""
    first = 0
    for index, line in enumerate(lines):
        match = _OPENING_LINE_RE.match(line)
        if match:
            prefix = match.group(1)
            first = index
            break

    closing = re.compile("^" + re.escape(prefix) + r"(\]|\})\s*$")
    last = len(lines) - 1
    for index in range(first, len(lines)):
        if closing.match(lines[index]):
            last = index
            break

    return "\n".join(lines[first:last + 1]).replace('""', '"')


def _check_nesting(root: dict[str, Any], max_depth: int) -> None:
    """Reject node trees deeper than ``max_depth`` before model validation."""
    pending = [(child, 1) for child in _child_nodes(root)]
    while pending:
        node, depth = pending.pop()
        if depth > max_depth:
            raise ResourceLimitError(
                f"Plan too deeply nested: depth {depth} (max {max_depth})",
                detail="This may indicate a pathological query or corrupted plan output",
            )
        pending.extend((child, depth + 1) for child in _child_nodes(node))


def _child_nodes(node: Any) -> list[Any]:
    if not isinstance(node, dict):
        return []
    children = node.get(NodeProp.PLANS.value)
    return children if isinstance(children, list) else []


def content_from_json(source: str, max_depth: int | None = None) -> PlanContent:
    """
    Build a PlanContent from profiler JSON.

    With ``max_depth`` set, the raw document's node tree is measured
    before any model is built.

    Raises:
        ParseError: If the document has no node under ``children`` or a
            node fails validation
        ResourceLimitError: If the node tree is deeper than ``max_depth``
    """
    root = reduce_json(source)
    if not isinstance(root, dict):
        raise ParseError(
            f"Expected a JSON object, got {type(root).__name__}",
            source="structure",
        )
    if max_depth is not None:
        _check_nesting(root, max_depth)

    try:
        content = PlanContent.model_validate(root)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = " -> ".join(str(x) for x in error["loc"])
            errors.append(f"  {loc}: {error['msg']}")
        raise ParseError(
            "Plan validation failed",
            detail="\n".join(errors),
            source="validation",
        ) from e

    if not content.has_root:
        raise ParseError(
            "Missing 'children' - no plan node found in JSON input",
            source="structure",
        )
    return content
