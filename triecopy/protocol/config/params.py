# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict

import rlp

from ..crypto.hash import keccak256

# Global Constants
HASH_LENGTH = 32
ADDRESS_LENGTH = 20

# Root of a trie with no entries: keccak256(rlp(b""))
BLANK_ROOT = keccak256(rlp.encode(b""))
# keccak256(b""): code hash of accounts without code
EMPTY_CODE_HASH = keccak256(b"")
ZERO_HASH = b"\x00" * HASH_LENGTH

# Storage roots that mean "no storage trie to copy"
EMPTY_STORAGE_ROOTS = frozenset({BLANK_ROOT, EMPTY_CODE_HASH, ZERO_HASH})
# Code hashes that mean "no code blob to copy"
EMPTY_CODE_HASHES = frozenset({EMPTY_CODE_HASH, ZERO_HASH})

# Key prefix of consensus snapshot blobs (prefix + block hash)
SNAPSHOT_PREFIX = b"posv-"


class MigrationConfig:
    def __init__(self,
                 name: str,
                 batch_size: int = 1000,
                 code_cache_size: int = 10_000,
                 # Retention scan params
                 retention_length: int = 100,
                 max_backup_span: int = 2000,
                 scan_offset: int = 0,
                 require_backup_root: bool = True,
                 # Post-migration maintenance
                 compact_after_copy: bool = True):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if code_cache_size <= 0:
            raise ValueError(f"code_cache_size must be positive, got {code_cache_size}")
        self.name = name
        self.batch_size = batch_size
        self.code_cache_size = code_cache_size
        self.retention_length = retention_length
        self.max_backup_span = max_backup_span
        self.scan_offset = scan_offset
        self.require_backup_root = require_backup_root
        self.compact_after_copy = compact_after_copy

    def __repr__(self) -> str:
        return (
            f"MigrationConfig(name={self.name!r}, batch_size={self.batch_size}, "
            f"retention_length={self.retention_length}, max_backup_span={self.max_backup_span})"
        )

CONFIGS: Dict[str, MigrationConfig] = {
    # Copies the latest openable root plus an older backup root.
    "copy": MigrationConfig(
        name="copy",
        retention_length=100,
        max_backup_span=2000,
        require_backup_root=True,
    ),
    # Copies only the latest openable root, skipping the freshest blocks
    # whose state may not be flushed yet.
    "clean": MigrationConfig(
        name="clean",
        retention_length=100,
        max_backup_span=5000,
        scan_offset=50,
        require_backup_root=False,
    ),
}

DEFAULT_CONFIG = CONFIGS["clean"]
