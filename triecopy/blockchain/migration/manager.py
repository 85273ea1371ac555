# MIT License
# Copyright (c) 2025 Hashborn

"""
Migration Manager

Runs the copy and verification operations end to end:
retention scan -> snapshot passthrough -> state copy -> optional
rebuild cross-check -> compaction.
"""

import logging
import os
import tempfile
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .comparator import ComparisonReport, StateComparator
from .rebuilder import AccountRebuilder
from .scanner import RetentionPlan, RetentionScanner
from .session import CopyStats, MigrationSession
from .walker import ReachabilityWalker
from ..core.chain import ChainReader
from ..core.state import StateView
from ..snapshot import SnapshotPassthrough
from ..storage.db import StorageDB
from ..storage.node_store import NodeStore
from ...protocol.config.params import DEFAULT_CONFIG, MigrationConfig
from ...protocol.crypto.addresses import load_address_list

logger = logging.getLogger(__name__)


def _parse_root(value):
    if value is None or isinstance(value, bytes):
        return value
    text = value[2:] if value.startswith(("0x", "0X")) else value
    return bytes.fromhex(text)


class MigrationParams(BaseModel):
    source_path: str = Field(..., description="Source key-value store (read-only)")
    destination_path: str = Field(..., description="Destination key-value store")
    retention_length: Optional[int] = Field(default=None, ge=0, description="Minimum distance of the backup root (default: config)")
    address_list_path: Optional[str] = Field(default=None, description="Addresses for a targeted copy")
    root: Optional[bytes] = Field(default=None, description="Explicit state root (skips the scan)")
    verify_rebuild: bool = Field(default=False, description="Cross-check with a logical rebuild")
    compact: bool = Field(default=True, description="Compact the destination afterwards")

    @field_validator("root", mode="before")
    @classmethod
    def _root_hex(cls, v):
        root = _parse_root(v)
        if root is not None and len(root) != 32:
            raise ValueError(f"root must be 32 bytes, got {len(root)}")
        return root


class VerificationParams(BaseModel):
    source_path: str
    destination_path: str
    root: bytes
    address_list_path: str

    @field_validator("root", mode="before")
    @classmethod
    def _root_hex(cls, v):
        root = _parse_root(v)
        if root is None or len(root) != 32:
            raise ValueError("root must be a 32-byte hash")
        return root


class MigrationResult(BaseModel):
    roots: List[bytes] = Field(default_factory=list)
    plan: Optional[RetentionPlan] = None
    snapshots_copied: int = 0
    missing_addresses: List[bytes] = Field(default_factory=list)
    rebuilt_root: Optional[bytes] = None
    nodes: int = 0
    storage_nodes: int = 0
    code_blobs: int = 0
    accounts: int = 0
    bytes_written: int = 0


class MigrationManager:
    """
    Coordinates one migration (or verification) run.

    The destination must not be written by anything else while a run is in
    progress. An aborted run leaves only complete roots behind; rerun the
    whole migration to finish it.
    """

    def __init__(self, config: Optional[MigrationConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def migrate(self, params: MigrationParams) -> MigrationResult:
        logger.info(f"Migrating {params.source_path} -> {params.destination_path} ({self.config!r})")
        addresses = load_address_list(params.address_list_path) if params.address_list_path else None

        with StorageDB(params.source_path, read_only=True) as source_db, \
                StorageDB(params.destination_path) as dest_db:
            nodes = NodeStore(source_db)
            result = MigrationResult()

            if params.root is not None:
                roots = [params.root]
            else:
                chain = ChainReader(source_db)
                snapshots = SnapshotPassthrough(source_db, dest_db)
                scanner = RetentionScanner(chain, nodes, snapshots, self.config)
                # A targeted copy only needs the latest root
                plan = scanner.scan(
                    retention_length=params.retention_length,
                    require_backup_root=self.config.require_backup_root and addresses is None,
                )
                result.plan = plan
                result.snapshots_copied = snapshots.copy_range(
                    chain, plan.backup_number, plan.latest.block_number
                )
                roots = [plan.latest.state_root]
                if plan.backup_root is not None:
                    roots.append(plan.backup_root.state_root)

            with MigrationSession(dest_db, self.config) as session:
                walker = ReachabilityWalker(nodes, session)
                for root in roots:
                    if addresses is not None:
                        result.missing_addresses = walker.copy_addresses(root, addresses)
                    else:
                        walker.copy_state(root)
                self._record_stats(result, session.stats)
            result.roots = roots

            if params.verify_rebuild:
                if addresses is None:
                    raise ValueError("verify_rebuild requires an address list")
                result.rebuilt_root = self._rebuild_check(nodes, roots[0], addresses)

            if params.compact and self.config.compact_after_copy:
                logger.info("Compacting destination store")
                dest_db.compact()

        logger.info(
            f"Migration finished: roots {[f'0x{r.hex()}' for r in result.roots]}, "
            f"{result.nodes} nodes, {result.storage_nodes} storage nodes, {result.code_blobs} code blobs"
        )
        return result

    def _rebuild_check(self, nodes: NodeStore, root: bytes, addresses: List[bytes]) -> bytes:
        """Rebuilds the accounts into a scratch store; raises RootMismatch on divergence."""
        with tempfile.TemporaryDirectory(prefix="triecopy-rebuild-") as scratch_dir:
            scratch_path = os.path.join(scratch_dir, "rebuild.db")
            with StorageDB(scratch_path) as scratch_db, MigrationSession(scratch_db, self.config) as session:
                rebuilder = AccountRebuilder(StateView(nodes, root), session)
                return rebuilder.rebuild(addresses, expected_root=root)

    def verify(self, params: VerificationParams) -> ComparisonReport:
        addresses = load_address_list(params.address_list_path)
        logger.info(
            f"Verifying {len(addresses)} addresses at root 0x{params.root.hex()}: "
            f"{params.source_path} vs {params.destination_path}"
        )
        with StorageDB(params.source_path, read_only=True) as source_db, \
                StorageDB(params.destination_path, read_only=True) as dest_db:
            source = StateView(NodeStore(source_db), params.root)
            destination = StateView(NodeStore(dest_db), params.root)
            comparator = StateComparator(source, destination, self.config.code_cache_size)
            return comparator.compare(addresses)

    @staticmethod
    def _record_stats(result: MigrationResult, stats: CopyStats):
        result.nodes = stats.nodes
        result.storage_nodes = stats.storage_nodes
        result.code_blobs = stats.code_blobs
        result.accounts = stats.accounts
        result.bytes_written = stats.bytes_written
