"""
SGF game-record parser.

Turns raw SGF text into an immutable tree of RecordNode objects. Tokenising
is delegated to sgfmill's grammar module so that escaped brackets inside
values are never split; this module only enforces the root delimiters and
shapes the coarse parse into a node tree.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from sgfmill import sgf_grammar

from .errors import FormatError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordNode:
    """
    One node of an SGF game tree.

    properties maps a property identifier (e.g. "B", "AB", "KM") to its raw
    values in document order. Repeated occurrences of a key within a node
    are concatenated. The first child is the main line; later children are
    alternative variations.
    """
    properties: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    children: Tuple['RecordNode', ...] = ()

    def has(self, key: str) -> bool:
        return key in self.properties

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value of a property, or default if absent."""
        values = self.properties.get(key)
        if not values:
            return default
        return values[0]

    def get_all(self, key: str) -> Tuple[str, ...]:
        """Return every value of a property (empty tuple if absent)."""
        return self.properties.get(key, ())

    @property
    def first_child(self) -> Optional['RecordNode']:
        return self.children[0] if self.children else None

    def main_line(self) -> Iterator['RecordNode']:
        """Yield this node and then the first child at each level."""
        node: Optional[RecordNode] = self
        while node is not None:
            yield node
            node = node.first_child


def _decode(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _build_node(raw_properties: Dict, children: Tuple[RecordNode, ...]) -> RecordNode:
    properties = {
        ident: tuple(_decode(v) for v in values)
        for ident, values in raw_properties.items()
    }
    return RecordNode(properties=properties, children=children)


def _build_tree(game_tree: sgf_grammar.Coarse_game_tree) -> RecordNode:
    """Convert a coarse sgfmill game tree (sequence + variations) to nodes."""
    children = tuple(_build_tree(child) for child in game_tree.children)
    node = None
    for raw_properties in reversed(game_tree.sequence):
        node = _build_node(raw_properties, children)
        children = (node,)
    if node is None:
        raise FormatError("empty node sequence")
    return node


def parse_record(text: str) -> RecordNode:
    """
    Parse SGF text into a RecordNode tree.

    Only the first game of a collection is returned.

    Args:
        text: Raw SGF content

    Returns:
        Root RecordNode

    Raises:
        FormatError: If the root delimiters are missing or the content
                     cannot be tokenised
    """
    content = text.strip()
    if not content or content[0] != "(" or content[-1] != ")":
        raise FormatError("missing root delimiters")

    data = content.encode("utf-8")
    try:
        game_tree = sgf_grammar.parse_sgf_game(data)
    except ValueError as e:
        fragment = content[:40] + ("..." if len(content) > 40 else "")
        raise FormatError(f"unparseable game record ({e}): {fragment}")

    # Only the first game tree is read; anything after it is dropped
    _, end = sgf_grammar.tokenise(data)
    trailing = data[end:].strip()
    if trailing:
        logger.debug(
            f"Ignoring {len(trailing)} byte(s) after the first game tree: "
            f"{trailing[:40].decode('utf-8', errors='replace')!r}"
        )

    return _build_tree(game_tree)


def load_record(file_path: str) -> RecordNode:
    """
    Load and parse an SGF file from disk.

    Args:
        file_path: Path to the SGF file

    Returns:
        Root RecordNode (same as parse_record)
    """
    with open(file_path, "rb") as f:
        content = f.read().decode("utf-8", errors="replace")
    return parse_record(content)


def count_variations(root: RecordNode) -> int:
    """Count the alternative branches (children beyond the first) in a tree."""
    total = 0
    stack: List[RecordNode] = [root]
    while stack:
        node = stack.pop()
        total += max(len(node.children) - 1, 0)
        stack.extend(node.children)
    return total
