# MIT License
# Copyright (c) 2025 Hashborn

"""
Consensus Snapshot Passthrough

Consensus snapshots are stored under "posv-" + block hash. They are copied
byte-for-byte; the only check is that the blob is well-formed JSON.
"""

import json
import logging
import sqlite3
from typing import Optional

from ..core.chain import ChainReader
from ..storage.db import StorageDB
from ..observability import metrics
from ...protocol.config.params import SNAPSHOT_PREFIX

logger = logging.getLogger(__name__)


class SnapshotPassthrough:
    """
    Copies consensus snapshot blobs between stores without interpreting them.

    Snapshots are auxiliary: a malformed or unwritable blob is logged and
    skipped, never fatal to a migration.
    """

    def __init__(self, source: StorageDB, destination: Optional[StorageDB] = None):
        """
        Initialize snapshot passthrough.

        Args:
            source: Store to read snapshot blobs from
            destination: Store to copy them into (None for read-only use)
        """
        self.source = source
        self.destination = destination

    @staticmethod
    def key(block_hash: bytes) -> bytes:
        return SNAPSHOT_PREFIX + block_hash

    def load(self, block_hash: bytes) -> Optional[bytes]:
        """
        Load the snapshot blob stored for a block.

        Returns:
            Verbatim blob bytes, or None if absent or malformed
        """
        blob = self.source.get(self.key(block_hash))
        if blob is None:
            return None
        try:
            json.loads(blob)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning(f"Malformed snapshot at 0x{block_hash.hex()}: {e}")
            metrics.snapshots_skipped_total.inc()
            return None
        return blob

    def exists(self, block_hash: bytes) -> bool:
        return self.load(block_hash) is not None

    def copy(self, block_hash: bytes) -> bool:
        """
        Copy one snapshot blob verbatim.

        Returns:
            True if a blob was copied
        """
        if self.destination is None:
            raise RuntimeError("SnapshotPassthrough has no destination store")
        blob = self.load(block_hash)
        if blob is None:
            return False
        try:
            self.destination.put(self.key(block_hash), blob)
        except sqlite3.Error as e:
            logger.warning(f"Failed to save snapshot at 0x{block_hash.hex()}: {e}")
            metrics.snapshots_skipped_total.inc()
            return False
        metrics.snapshots_copied_total.inc()
        return True

    def copy_range(self, chain: ChainReader, from_number: int, to_number: int) -> int:
        """
        Copy the snapshots of every canonical block in [from_number, to_number].

        Returns:
            Number of snapshots copied
        """
        copied = 0
        for number in range(to_number, from_number - 1, -1):
            block_hash = chain.get_canonical_hash(number)
            if block_hash is None:
                continue
            if self.copy(block_hash):
                logger.info(f"Copied snapshot at hash 0x{block_hash.hex()} number {number}")
                copied += 1
        logger.info(f"Copied {copied} snapshots for blocks {from_number}..{to_number}")
        return copied
