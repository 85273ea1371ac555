# MIT License
# Copyright (c) 2025 Hashborn

"""
Reachability Walker

Copies the closure of trie nodes reachable from a state root into the
destination store, either for the whole state or along the path of
selected accounts. Every node is queued only after its whole subtree has
been queued, and the root is persisted last.
"""

import logging
from typing import Iterable, List, Sequence

from .session import CopyStats, MigrationSession
from ..storage.node_store import NodeStore
from ..observability import metrics
from ...protocol.config.params import BLANK_ROOT
from ...protocol.trie.nibbles import Nibbles, TERMINATOR, account_path, nibbles_to_bytes
from ...protocol.types.account import Account
from ...protocol.types.common import DecodeError, InvalidNode
from ...protocol.types.node import Branch, Extension, HashRef, Leaf, TrieNode

logger = logging.getLogger(__name__)


class ReachabilityWalker:
    def __init__(self, source: NodeStore, session: MigrationSession):
        self.source = source
        self.session = session

    @property
    def stats(self) -> CopyStats:
        return self.session.stats

    # --- Full-state copy ---

    def copy_state(self, root: bytes, account_mode: bool = True) -> CopyStats:
        """
        Copies every node reachable from root.

        Args:
            root: State root (or any trie root) to copy
            account_mode: Decode leaves as accounts and follow their storage and code

        Raises:
            MissingNode: If any reachable node is absent at the source
            DecodeError: If a node or account cannot be decoded
        """
        logger.info(f"Copying full state at root 0x{root.hex()}")
        if root == BLANK_ROOT:
            logger.info("Root is the empty trie, nothing to copy")
            return self.stats
        node, raw = self.source.resolve(root)
        self._process(node, (), account_mode)
        self.session.persist_root(root, raw)
        logger.info(
            f"Copied root 0x{root.hex()}: {self.stats.nodes} nodes, "
            f"{self.stats.storage_nodes} storage nodes, {self.stats.accounts} accounts, "
            f"{self.stats.code_blobs} code blobs ({self.stats.code_cache_hits} dedup hits), "
            f"{self.source.reads} source reads"
        )
        return self.stats

    def _process(self, node: TrieNode, path: Nibbles, account_mode: bool):
        if isinstance(node, Branch):
            for i, child in enumerate(node.children):
                if child is not None:
                    self._copy_child(child, path + (i,), account_mode)
            if node.value and account_mode:
                self._copy_account(node.value, path)
        elif isinstance(node, Extension):
            self._copy_child(node.child, path + node.key, account_mode)
        elif isinstance(node, Leaf):
            if account_mode:
                self._copy_account(node.value, path + node.key)
        else:
            raise InvalidNode(f"Unexpected node {node!r} at path {_fmt_path(path)}")

    def _copy_child(self, child: TrieNode, path: Nibbles, account_mode: bool):
        if isinstance(child, HashRef):
            node, raw = self.source.resolve(child.hash)
            self._process(node, path, account_mode)
            # Queued only after the whole subtree below it
            self._queue_node(child.hash, raw, storage=not account_mode)
        else:
            self._process(child, path, account_mode)

    # --- Targeted copy ---

    def copy_address(self, root: bytes, address: bytes) -> bool:
        """
        Copies the nodes on the path of one account, plus its storage and code.

        Returns:
            True if the account exists under root
        """
        return not self.copy_addresses(root, [address])

    def copy_addresses(self, root: bytes, addresses: Iterable[bytes]) -> List[bytes]:
        """
        Targeted copy of several accounts under the same root.

        Returns:
            Addresses that were not found in the trie
        """
        addresses = list(addresses)
        if root == BLANK_ROOT:
            logger.info(f"Root is the empty trie, none of {len(addresses)} accounts present")
            return addresses
        node, raw = self.source.resolve(root)
        missing = []
        for address in addresses:
            if not self._find(node, account_path(address), 0):
                logger.debug(f"Account 0x{address.hex()} not present under root 0x{root.hex()}")
                missing.append(address)
        self.session.persist_root(root, raw)
        logger.info(
            f"Copied {len(addresses) - len(missing)}/{len(addresses)} accounts at root 0x{root.hex()}: "
            f"{self.stats.nodes} nodes, {self.stats.storage_nodes} storage nodes, "
            f"{self.stats.code_blobs} code blobs"
        )
        return missing

    def _find(self, node: TrieNode, path: Sequence[int], pos: int) -> bool:
        if isinstance(node, Branch):
            nibble = path[pos]
            if nibble == TERMINATOR:
                if not node.value:
                    return False
                self._copy_account(node.value, tuple(path))
                return True
            child = node.children[nibble]
            if child is None:
                return False
            return self._follow(child, path, pos + 1)
        if isinstance(node, Extension):
            end = pos + len(node.key)
            if tuple(path[pos:end]) != node.key:
                return False
            return self._follow(node.child, path, end)
        if isinstance(node, Leaf):
            if tuple(path[pos:-1]) != node.key:
                return False
            self._copy_account(node.value, tuple(path))
            return True
        raise InvalidNode(f"Unexpected node {node!r} at path {_fmt_path(path[:pos])}")

    def _follow(self, child: TrieNode, path: Sequence[int], pos: int) -> bool:
        if isinstance(child, HashRef):
            node, raw = self.source.resolve(child.hash)
            found = self._find(node, path, pos)
            self._queue_node(child.hash, raw, storage=False)
            return found
        return self._find(child, path, pos)

    # --- Account handling ---

    def _copy_account(self, value: bytes, path: Sequence[int]):
        try:
            account = Account.decode(value)
        except DecodeError:
            logger.error(f"Failed to decode account at path {_fmt_path(path)}: 0x{value.hex()}")
            raise
        self.stats.accounts += 1
        metrics.accounts_visited_total.inc()

        if account.has_storage():
            node, raw = self.source.resolve(account.storage_root)
            self._process(node, (), account_mode=False)
            self._queue_node(account.storage_root, raw, storage=True)

        if account.has_code():
            self._copy_code(account.code_hash)

    def _copy_code(self, code_hash: bytes):
        if code_hash in self.session.code_cache:
            self.stats.code_cache_hits += 1
            metrics.code_cache_hits_total.inc()
            return
        code = self.source.get_code(code_hash)
        self.session.put(code_hash, code)
        self.session.code_cache.add(code_hash)
        self.stats.code_blobs += 1
        metrics.code_blobs_copied_total.inc()
        logger.debug(f"Copied code 0x{code_hash.hex()} ({len(code)} bytes)")

    def _queue_node(self, node_hash: bytes, raw: bytes, storage: bool):
        self.session.put(node_hash, raw)
        if storage:
            self.stats.storage_nodes += 1
            metrics.nodes_copied_total.labels(trie="storage").inc()
        else:
            self.stats.nodes += 1
            metrics.nodes_copied_total.labels(trie="account").inc()


def _fmt_path(path: Sequence[int]) -> str:
    path = tuple(p for p in path if p != TERMINATOR)
    if len(path) % 2 == 0:
        return "0x" + nibbles_to_bytes(path).hex()
    return "".join(f"{n:x}" for n in path)
