from typing import Iterator, Optional, Sequence, Tuple

import rlp
from rlp.exceptions import RLPException
from rlp.sedes import binary

from ..storage.node_store import NodeStore
from ...protocol.config.params import BLANK_ROOT, EMPTY_STORAGE_ROOTS
from ...protocol.crypto.hash import secure_key
from ...protocol.trie.nibbles import TERMINATOR, key_to_path, nibbles_to_bytes
from ...protocol.types.account import Account
from ...protocol.types.common import DecodeError, InvalidNode
from ...protocol.types.node import Branch, Extension, HashRef, Leaf, TrieNode


class StateView:
    """
    Read-only logical view of the account trie at one state root.

    Accounts and storage slots are addressed by their secure (hashed) keys.
    Unresolvable references raise MissingNode.
    """

    def __init__(self, nodes: NodeStore, root: bytes):
        self.nodes = nodes
        self.root = root

    def open(self) -> "StateView":
        """Resolves the root node; raises MissingNode if the root is not stored."""
        if self.root != BLANK_ROOT:
            self.nodes.resolve(self.root)
        return self

    # --- Accounts ---

    def get_account(self, address: bytes) -> Optional[Account]:
        return self.get_account_by_hash(secure_key(address))

    def get_account_by_hash(self, hashed_address: bytes) -> Optional[Account]:
        raw = self.lookup(self.root, hashed_address)
        if raw is None:
            return None
        return Account.decode(raw)

    def iter_accounts(self) -> Iterator[Tuple[bytes, Account]]:
        for hashed_address, raw in self.iter_leaves(self.root):
            yield hashed_address, Account.decode(raw)

    def get_code(self, account: Account) -> bytes:
        if not account.has_code():
            return b""
        return self.nodes.get_code(account.code_hash)

    # --- Storage ---

    def get_storage(self, account: Account, hashed_slot: bytes) -> bytes:
        """Decoded value of a storage slot; b"" when unset."""
        if not account.has_storage():
            return b""
        raw = self.lookup(account.storage_root, hashed_slot)
        if raw is None:
            return b""
        return decode_slot_value(raw)

    def iter_storage(self, account: Account) -> Iterator[Tuple[bytes, bytes]]:
        """Yields (hashed slot, decoded value) in key order."""
        if not account.has_storage():
            return
        for hashed_slot, raw in self.iter_leaves(account.storage_root):
            yield hashed_slot, decode_slot_value(raw)

    # --- Trie primitives ---

    def lookup(self, root: bytes, key: bytes) -> Optional[bytes]:
        """Raw leaf value stored under key in the trie at root."""
        if root in EMPTY_STORAGE_ROOTS:
            return None
        path = key_to_path(key)
        node, _ = self.nodes.resolve(root)
        pos = 0
        while True:
            if isinstance(node, Branch):
                nibble = path[pos]
                if nibble == TERMINATOR:
                    return node.value or None
                child = node.children[nibble]
                if child is None:
                    return None
                node, _ = self.nodes.resolve_ref(child)
                pos += 1
            elif isinstance(node, Extension):
                end = pos + len(node.key)
                if path[pos:end] != node.key:
                    return None
                node, _ = self.nodes.resolve_ref(node.child)
                pos = end
            elif isinstance(node, Leaf):
                if path[pos:-1] != node.key:
                    return None
                return node.value
            else:
                raise InvalidNode(f"Unexpected node {node!r} during lookup")

    def iter_leaves(self, root: bytes) -> Iterator[Tuple[bytes, bytes]]:
        """Yields (key, raw value) for every leaf under root, in key order."""
        if root in EMPTY_STORAGE_ROOTS:
            return
        node, _ = self.nodes.resolve(root)
        yield from self._iter_node(node, ())

    def _iter_node(self, node: TrieNode, path: Sequence[int]) -> Iterator[Tuple[bytes, bytes]]:
        if isinstance(node, HashRef):
            node, _ = self.nodes.resolve(node.hash)
        if isinstance(node, Branch):
            if node.value:
                yield nibbles_to_bytes(path), node.value
            for i, child in enumerate(node.children):
                if child is not None:
                    yield from self._iter_node(child, tuple(path) + (i,))
        elif isinstance(node, Extension):
            yield from self._iter_node(node.child, tuple(path) + node.key)
        elif isinstance(node, Leaf):
            yield nibbles_to_bytes(tuple(path) + node.key), node.value
        else:
            raise InvalidNode(f"Unexpected node {node!r} during iteration")


def decode_slot_value(raw: bytes) -> bytes:
    try:
        return rlp.decode(raw, sedes=binary)
    except RLPException as e:
        raise DecodeError(f"Invalid storage value encoding 0x{raw.hex()}: {e}")
