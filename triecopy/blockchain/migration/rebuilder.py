# MIT License
# Copyright (c) 2025 Hashborn

"""
Account Rebuilder

Copies state at the logical level: accounts, code and storage are read
through a StateView and inserted into freshly built tries. The raw source
node encodings are never reused, so agreement of the rebuilt root with the
source root independently validates the node-level copy.
"""

import logging
from typing import Dict, Iterable, Optional

import rlp
from trie import HexaryTrie

from .session import MigrationSession
from ..core.state import StateView
from ...protocol.config.params import BLANK_ROOT, EMPTY_CODE_HASH
from ...protocol.crypto.hash import keccak256, secure_key
from ...protocol.types.account import Account
from ...protocol.types.common import RootMismatch

logger = logging.getLogger(__name__)


class AccountRebuilder:
    def __init__(self, source: StateView, session: MigrationSession):
        self.source = source
        self.session = session

    def rebuild(self, addresses: Iterable[bytes], expected_root: Optional[bytes] = None) -> bytes:
        """
        Rebuilds the given accounts into the destination and commits the new trie.

        Args:
            addresses: Accounts to copy; absent accounts are skipped
            expected_root: Root the rebuild must reproduce (default: source root)

        Returns:
            The committed root hash

        Raises:
            RootMismatch: If the rebuilt root differs from expected_root
            MissingNode: If source state needed for an account is absent
        """
        expected = expected_root if expected_root is not None else self.source.root
        fresh: Dict[bytes, bytes] = {}
        code_blobs: Dict[bytes, bytes] = {}
        seen = set()
        copied = 0

        account_trie = HexaryTrie(fresh)
        with account_trie.squash_changes() as batch_trie:
            for address in addresses:
                if address in seen:
                    continue
                seen.add(address)
                account = self.source.get_account(address)
                if account is None:
                    logger.info(f"Account 0x{address.hex()} absent at source, skipping")
                    continue
                rebuilt = self._rebuild_account(account, fresh, code_blobs)
                batch_trie[secure_key(address)] = rebuilt.encode()
                copied += 1

        new_root = account_trie.root_hash
        logger.info(
            f"Rebuilt {copied} accounts: from root 0x{expected.hex()} to root 0x{new_root.hex()}"
        )
        if new_root != expected:
            logger.error(f"Rebuilt root does not match after {copied} accounts")
            raise RootMismatch(expected, new_root)

        self._commit(new_root, fresh, code_blobs)
        return new_root

    def _rebuild_account(self, account: Account, fresh: Dict[bytes, bytes],
                         code_blobs: Dict[bytes, bytes]) -> Account:
        storage_trie = HexaryTrie(fresh)
        with storage_trie.squash_changes() as batch_storage:
            for hashed_slot, value in self.source.iter_storage(account):
                batch_storage[hashed_slot] = rlp.encode(value)

        code = self.source.get_code(account)
        code_hash = EMPTY_CODE_HASH
        if code:
            code_hash = keccak256(code)
            code_blobs[code_hash] = code

        return Account(
            nonce=account.nonce,
            balance=account.balance,
            storage_root=storage_trie.root_hash,
            code_hash=code_hash,
        )

    def _commit(self, new_root: bytes, fresh: Dict[bytes, bytes], code_blobs: Dict[bytes, bytes]):
        for code_hash, code in code_blobs.items():
            if code_hash in self.session.code_cache:
                continue
            self.session.put(code_hash, code)
            self.session.code_cache.add(code_hash)
            self.session.stats.code_blobs += 1

        for key, value in fresh.items():
            if key not in (new_root, BLANK_ROOT):
                self.session.put(key, value)
                self.session.stats.nodes += 1

        if new_root == BLANK_ROOT:
            self.session.flush()
        else:
            self.session.persist_root(new_root, fresh[new_root])
