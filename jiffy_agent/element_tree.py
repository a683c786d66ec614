"""Bounded traversal over a foreign accessibility tree.

The monitored application's UI tree is owned by another process and can
change between two consecutive reads: nodes vanish, attribute reads fail,
and web containers host independently rooted subtrees. The walker only
sees the tree through the ``ElementNode`` capability interface so it can
run against live AXUIElements (see ``macos.AXElement``) or against a JSON
snapshot (``SnapshotElement``) in replay mode and tests.

Traversal rules:
    - Pre-order: a node's own text is yielded before its descendants
    - Depth is capped (default 15); deeper nodes are silently skipped
    - Web areas restart the depth budget, bounded by a nesting cap
    - Any failing read counts as "no value" and the walk continues
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterator, Mapping, NamedTuple, Optional, Protocol, Sequence, Union

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 15

# Each web area restarts the depth budget; nested web areas beyond this
# count are walked without another restart so self-similar chains terminate.
MAX_WEB_AREA_NESTING = 4


class AXRole:
    """Accessibility role tags relevant to content capture."""

    TEXT_AREA = "AXTextArea"
    TEXT_FIELD = "AXTextField"
    STATIC_TEXT = "AXStaticText"
    WEB_AREA = "AXWebArea"

    TEXT_ROLES = frozenset({TEXT_AREA, TEXT_FIELD, STATIC_TEXT})


class AXAttribute:
    """Accessibility attribute names read by the walker."""

    ROLE = "AXRole"
    CHILDREN = "AXChildren"
    VALUE = "AXValue"
    DESCRIPTION = "AXDescription"
    WINDOWS = "AXWindows"


class ElementNode(Protocol):
    """Capability interface over one node of a foreign UI tree.

    Implementations may raise from any method when the underlying node
    disappeared or is not readable; the walker treats that as absence.
    """

    def role(self) -> Optional[str]:
        ...

    def children(self) -> Sequence["ElementNode"]:
        ...

    def attribute(self, name: str) -> Optional[Any]:
        ...


class TextNode(NamedTuple):
    """Text-bearing node yielded by the walker."""

    text: str
    role: str


def _safe_role(node: ElementNode) -> Optional[str]:
    try:
        role = node.role()
    except Exception as e:
        logger.debug(f"Role read failed: {e}")
        return None
    return role if isinstance(role, str) else None


def _safe_children(node: ElementNode) -> Sequence[ElementNode]:
    try:
        children = node.children()
    except Exception as e:
        logger.debug(f"Children read failed: {e}")
        return ()
    return children or ()


def _safe_string_attribute(node: ElementNode, name: str) -> Optional[str]:
    try:
        value = node.attribute(name)
    except Exception as e:
        logger.debug(f"Attribute {name} read failed: {e}")
        return None
    return value if isinstance(value, str) else None


def get_text_value(node: ElementNode) -> Optional[str]:
    """Read a node's text: the value attribute, falling back to description."""
    text = _safe_string_attribute(node, AXAttribute.VALUE)
    if text:
        return text
    return _safe_string_attribute(node, AXAttribute.DESCRIPTION)


def walk_text_nodes(root: ElementNode, max_depth: int = DEFAULT_MAX_DEPTH) -> Iterator[TextNode]:
    """Yield ``(text, role)`` for every text-bearing node under ``root``.

    Args:
        root: Root node (usually the target application's first window)
        max_depth: Nodes at this depth or deeper are not visited

    Yields:
        TextNode for each text area, text field or static text with a
        non-empty value or description, in pre-order
    """
    # (node, depth, web_area_nesting)
    stack: list[tuple[ElementNode, int, int]] = [(root, 0, 0)]

    while stack:
        node, depth, nesting = stack.pop()
        if depth >= max_depth:
            continue

        role = _safe_role(node)

        if role in AXRole.TEXT_ROLES:
            text = get_text_value(node)
            if text:
                yield TextNode(text=text, role=role)

        if role == AXRole.WEB_AREA and nesting < MAX_WEB_AREA_NESTING:
            child_depth, child_nesting = 0, nesting + 1
        else:
            child_depth, child_nesting = depth + 1, nesting

        children = _safe_children(node)
        # Reverse so the first child is popped first (pre-order)
        for child in reversed(list(children)):
            stack.append((child, child_depth, child_nesting))


class SnapshotElement:
    """ElementNode backed by a plain dict (JSON tree snapshot).

    Snapshot format::

        {"role": "AXWindow", "children": [
            {"role": "AXTextArea", "value": "hello"},
            {"role": "AXStaticText", "description": "fallback text"}
        ]}

    Extra attributes can be given under ``"attributes"``.
    """

    _ATTRIBUTE_KEYS = {
        AXAttribute.ROLE: "role",
        AXAttribute.VALUE: "value",
        AXAttribute.DESCRIPTION: "description",
    }

    def __init__(self, data: Mapping[str, Any]) -> None:
        self._data = data

    def role(self) -> Optional[str]:
        return self._data.get("role")

    def children(self) -> Sequence["SnapshotElement"]:
        return [SnapshotElement(child) for child in self._data.get("children", ())]

    def attribute(self, name: str) -> Optional[Any]:
        key = self._ATTRIBUTE_KEYS.get(name)
        if key is not None:
            return self._data.get(key)
        if name == AXAttribute.CHILDREN:
            return self.children()
        return self._data.get("attributes", {}).get(name)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SnapshotElement":
        """Load a snapshot from a JSON file."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Tree snapshot root must be an object: {path}")
        return cls(data)
