# MIT License
# Copyright (c) 2025 Hashborn

"""
Trie node model.

A node is one of Branch, Extension or Leaf. A HashRef stands in for any of
them until it is resolved through a NodeStore. Children whose encoding is
shorter than 32 bytes are embedded inline in their parent instead of being
referenced by hash.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

import rlp
from rlp.exceptions import RLPException

from .common import BranchSlot, InvalidNode, DecodeError, NodeKind
from ..trie.nibbles import Nibbles, decode_hex_prefix, encode_hex_prefix


@dataclass(frozen=True)
class HashRef:
    hash: bytes

    kind = NodeKind.HASH


@dataclass(frozen=True)
class Leaf:
    key: Nibbles
    value: bytes

    kind = NodeKind.LEAF


@dataclass(frozen=True)
class Extension:
    key: Nibbles
    child: "TrieNode"

    kind = NodeKind.EXTENSION


@dataclass(frozen=True)
class Branch:
    children: Tuple[Optional["TrieNode"], ...]
    value: bytes = b""

    kind = NodeKind.BRANCH

    def __post_init__(self):
        if len(self.children) != 16:
            raise InvalidNode(f"Branch must have 16 children, got {len(self.children)}")


TrieNode = Union[Branch, Extension, Leaf, HashRef]


def decode_node(raw: bytes) -> TrieNode:
    """Decode the RLP encoding of a stored trie node."""
    if not raw:
        raise DecodeError("Empty node encoding")
    try:
        item = rlp.decode(raw)
    except RLPException as e:
        raise DecodeError(f"Invalid RLP in trie node: {e}")
    if not isinstance(item, list):
        raise InvalidNode(f"Trie node must be an RLP list, got {len(item)} raw bytes")
    return _decode_structure(item)

def _decode_structure(items: list) -> TrieNode:
    if len(items) == BranchSlot.VALUE + 1:
        value = items[BranchSlot.VALUE]
        if not isinstance(value, bytes):
            raise InvalidNode("Branch value slot must be a byte string")
        children = tuple(_decode_child(c) for c in items[:BranchSlot.VALUE])
        return Branch(children=children, value=value)

    if len(items) == 2:
        encoded_key, payload = items
        if not isinstance(encoded_key, bytes):
            raise InvalidNode("Short node key must be a byte string")
        try:
            key, is_leaf = decode_hex_prefix(encoded_key)
        except ValueError as e:
            raise InvalidNode(str(e))
        if is_leaf:
            if not isinstance(payload, bytes):
                raise InvalidNode("Leaf value must be a byte string")
            return Leaf(key=key, value=payload)
        child = _decode_child(payload)
        if child is None:
            raise InvalidNode("Extension node without a child")
        return Extension(key=key, child=child)

    raise InvalidNode(f"Unknown trie node with {len(items)} items")

def _decode_child(item) -> Optional[TrieNode]:
    if isinstance(item, list):
        return _decode_structure(item)
    if item == b"":
        return None
    if len(item) == 32:
        return HashRef(item)
    raise InvalidNode(f"Invalid child reference of length {len(item)}")

def encode_node(node: TrieNode) -> bytes:
    """Canonical encoding; exact inverse of decode_node."""
    if isinstance(node, HashRef):
        raise InvalidNode("A hash reference has no encoding of its own")
    return rlp.encode(_to_structure(node))

def _to_structure(node: TrieNode):
    if isinstance(node, Branch):
        return [_child_item(c) for c in node.children] + [node.value]
    if isinstance(node, Extension):
        return [encode_hex_prefix(node.key, is_leaf=False), _child_item(node.child)]
    if isinstance(node, Leaf):
        return [encode_hex_prefix(node.key, is_leaf=True), node.value]
    raise InvalidNode(f"Unknown trie node type: {type(node).__name__}")

def _child_item(child: Optional[TrieNode]):
    if child is None:
        return b""
    if isinstance(child, HashRef):
        return child.hash
    return _to_structure(child)
