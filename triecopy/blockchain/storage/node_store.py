from typing import Optional, Tuple

from .db import StorageDB
from ...protocol.types.common import MissingNode
from ...protocol.types.node import HashRef, TrieNode, decode_node


class NodeStore:
    """Read access to content-addressed trie nodes and code blobs."""

    def __init__(self, db: StorageDB):
        self.db = db
        self.reads = 0

    def resolve(self, node_hash: bytes) -> Tuple[TrieNode, bytes]:
        """
        Loads and decodes the node stored under its content hash.

        Raises:
            MissingNode: If the hash is absent from the store
            DecodeError: If the stored bytes are not a valid node
        """
        raw = self.db.get(node_hash)
        self.reads += 1
        if not raw:
            raise MissingNode(node_hash)
        return decode_node(raw), raw

    def resolve_ref(self, node: TrieNode) -> Tuple[TrieNode, Optional[bytes]]:
        """Resolves a HashRef; inline nodes are returned as-is with no raw bytes."""
        if isinstance(node, HashRef):
            return self.resolve(node.hash)
        return node, None

    def get_code(self, code_hash: bytes) -> bytes:
        code = self.db.get(code_hash)
        self.reads += 1
        if code is None:
            raise MissingNode(code_hash, context="code")
        return code
