# MIT License
# Copyright (c) 2025 Hashborn

"""
Migration Session

Owns everything a single migration run mutates: the destination write
batch, the write counters and the code deduplication cache.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from ..storage.db import StorageDB
from ..observability import metrics
from ...protocol.config.params import DEFAULT_CONFIG, MigrationConfig

logger = logging.getLogger(__name__)


class CodeDeduplicator:
    """
    Bounded LRU set of code hashes already written to the destination.

    A miss only costs a redundant (idempotent) write, so eviction never
    affects correctness.
    """

    def __init__(self, capacity: int = 10_000):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._lru: "OrderedDict[bytes, None]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __contains__(self, code_hash: bytes) -> bool:
        if code_hash in self._lru:
            self._lru.move_to_end(code_hash)
            self.hits += 1
            return True
        self.misses += 1
        return False

    def add(self, code_hash: bytes):
        self._lru[code_hash] = None
        self._lru.move_to_end(code_hash)
        while len(self._lru) > self.capacity:
            self._lru.popitem(last=False)

    def __len__(self) -> int:
        return len(self._lru)


@dataclass
class CopyStats:
    nodes: int = 0
    storage_nodes: int = 0
    code_blobs: int = 0
    code_cache_hits: int = 0
    accounts: int = 0
    bytes_written: int = 0
    flushes: int = 0


class MigrationSession:
    """
    Batched, exclusively-owned writer for the destination store.

    Durability rule: a root node is only written after every pending write
    has been flushed, so a root is never visible without its content.
    """

    def __init__(self, destination: StorageDB, config: Optional[MigrationConfig] = None):
        self.destination = destination
        self.config = config or DEFAULT_CONFIG
        self.batch = destination.new_batch()
        self.code_cache = CodeDeduplicator(self.config.code_cache_size)
        self.stats = CopyStats()
        self._closed = False

    def put(self, key: bytes, value: bytes):
        """Buffers a write; flushes every config.batch_size entries."""
        if self._closed:
            raise RuntimeError("Migration session is closed")
        self.batch.put(key, value)
        self.stats.bytes_written += len(value)
        metrics.bytes_written_total.inc(len(value))
        if len(self.batch) >= self.config.batch_size:
            self.flush()

    def flush(self):
        if not len(self.batch):
            return
        self.batch.write()
        logger.debug(f"Flushed {len(self.batch)} entries to {self.destination.db_path}")
        self.batch.reset()
        self.stats.flushes += 1
        metrics.batch_flushes_total.inc()

    def persist_root(self, root_hash: bytes, raw: bytes):
        """Flushes all pending content, then writes the root node itself."""
        self.flush()
        self.destination.put(root_hash, raw)
        self.stats.bytes_written += len(raw)
        metrics.bytes_written_total.inc(len(raw))
        metrics.roots_persisted_total.inc()
        logger.info(f"Persisted root 0x{root_hash.hex()}")

    def discard(self):
        """Drops buffered writes that were not flushed yet."""
        if len(self.batch):
            logger.warning(f"Discarding {len(self.batch)} unflushed writes")
        self.batch.reset()

    def close(self):
        self._closed = True

    def __enter__(self) -> "MigrationSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.flush()
        else:
            self.discard()
        self.close()
