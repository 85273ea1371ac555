# MIT License
# Copyright (c) 2025 Hashborn

"""
Retention Scanner

Walks the canonical chain backward from the head to find the most recent
state root whose trie is still present at the source, and the block from
which chain data (and consensus snapshots) should be kept.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from ..core.chain import ChainReader
from ..storage.node_store import NodeStore
from ..snapshot import SnapshotPassthrough
from ..observability import metrics
from ...protocol.config.params import BLANK_ROOT, DEFAULT_CONFIG, MigrationConfig
from ...protocol.types.account import RootReference
from ...protocol.types.common import MissingNode, ScanInconclusive

logger = logging.getLogger(__name__)


class RetentionPlan(BaseModel):
    head_number: int
    latest: RootReference
    backup_root: Optional[RootReference] = None
    backup_number: int

    def describe(self) -> str:
        backup = self.backup_root.describe() if self.backup_root else "none"
        return (
            f"latest {self.latest.describe()}, backup root {backup}, "
            f"backup number {self.backup_number}, head {self.head_number}"
        )


class RetentionScanner:
    """
    Heuristic search for safe copy boundaries.

    Only a missing root node is read as "pruned"; any other failure while
    opening a root (e.g. an undecodable node) aborts the scan.
    """

    def __init__(self, chain: ChainReader, nodes: NodeStore, snapshots: SnapshotPassthrough,
                 config: Optional[MigrationConfig] = None):
        self.chain = chain
        self.nodes = nodes
        self.snapshots = snapshots
        self.config = config or DEFAULT_CONFIG

    def scan(self, head_number: Optional[int] = None, retention_length: Optional[int] = None,
             require_backup_root: Optional[bool] = None) -> RetentionPlan:
        """
        Scan backward from the head.

        Args:
            head_number: Block to start from (default: source head block)
            retention_length: Minimum distance between latest and backup roots
            require_backup_root: Also look for an older openable root

        Raises:
            ScanInconclusive: If history is exhausted before both boundaries are found
        """
        if head_number is None:
            head_number = self.chain.get_head_header().number
        if retention_length is None:
            retention_length = self.config.retention_length
        if require_backup_root is None:
            require_backup_root = self.config.require_backup_root

        number = max(head_number - self.config.scan_offset, 0)
        logger.info(f"Scanning for retention boundaries from block {number} (head {head_number})")

        latest: Optional[RootReference] = None
        backup_root: Optional[RootReference] = None
        backup_number: Optional[int] = None

        while number >= 0:
            metrics.blocks_scanned_total.inc()
            block_hash = self.chain.get_canonical_hash(number)
            header = self.chain.get_header(block_hash, number) if block_hash else None
            if header is None:
                raise ScanInconclusive(f"Canonical header for block {number} is missing")

            if self.snapshots.exists(block_hash):
                backup_number = number

            if self._is_openable(header.state_root):
                ref = RootReference(block_number=number, block_hash=block_hash, state_root=header.state_root)
                if latest is None:
                    latest = ref
                    logger.info(f"Latest openable root {ref.describe()}")
                    if backup_number is not None and number < backup_number:
                        backup_number = number
                elif (require_backup_root and backup_root is None
                      and ref.state_root != latest.state_root
                      and number < latest.block_number - retention_length):
                    backup_root = ref
                    logger.info(f"Backup root {ref.describe()}")
                    if backup_number is not None and number < backup_number:
                        backup_number = number

            if (latest is not None and backup_number is not None
                    and (backup_root is not None or not require_backup_root)):
                break
            number -= 1
        else:
            raise ScanInconclusive(
                f"Scanned back to genesis without boundaries: latest root "
                f"{latest.describe() if latest else 'not found'}, "
                f"backup number {backup_number}, backup root "
                f"{backup_root.describe() if backup_root else 'not found'}"
            )

        floor = max(latest.block_number - self.config.max_backup_span, 0)
        if backup_number < floor:
            logger.info(f"Clamping backup number {backup_number} to {floor}")
            backup_number = floor

        plan = RetentionPlan(
            head_number=head_number,
            latest=latest,
            backup_root=backup_root,
            backup_number=backup_number,
        )
        metrics.update_plan_metrics(plan)
        logger.info(f"Retention plan: {plan.describe()}")
        return plan

    def _is_openable(self, root: bytes) -> bool:
        if root == BLANK_ROOT:
            return True
        try:
            self.nodes.resolve(root)
        except MissingNode:
            return False
        return True
