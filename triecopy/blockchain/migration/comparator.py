# MIT License
# Copyright (c) 2025 Hashborn

"""
State Comparator

Read-only verification that a destination store holds the same logical
state as the source for a set of accounts at one root.
"""

import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from .session import CodeDeduplicator
from ..core.state import StateView
from ..observability import metrics
from ...protocol.crypto.hash import keccak256
from ...protocol.types.common import DecodeError, MismatchReason, MissingNode

logger = logging.getLogger(__name__)


class AddressMismatch(BaseModel):
    address: bytes
    reason: MismatchReason
    detail: str = ""

    def describe(self) -> str:
        text = f"0x{self.address.hex()}: {self.reason.value}"
        if self.detail:
            text += f" ({self.detail})"
        return text


class ComparisonReport(BaseModel):
    root: bytes
    checked: int = 0
    mismatches: List[AddressMismatch] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.mismatches

    @property
    def mismatched_addresses(self) -> List[bytes]:
        return [m.address for m in self.mismatches]


class StateComparator:
    def __init__(self, source: StateView, destination: StateView, code_cache_size: int = 10_000):
        if source.root != destination.root:
            raise ValueError("Source and destination views must share the same root")
        self.source = source
        self.destination = destination
        self._verified_code = CodeDeduplicator(code_cache_size)

    def compare(self, addresses: Iterable[bytes]) -> ComparisonReport:
        """
        Checks every address and reports all mismatches.

        Raises:
            MissingNode, DecodeError: Only for source-side state
        """
        report = ComparisonReport(root=self.source.root)
        for address in addresses:
            report.checked += 1
            metrics.addresses_checked_total.inc()
            mismatch = self.check_address(address)
            if mismatch is not None:
                logger.warning(f"State mismatch {mismatch.describe()}")
                metrics.record_mismatch(mismatch.reason)
                report.mismatches.append(mismatch)
        logger.info(
            f"Compared {report.checked} addresses at root 0x{report.root.hex()}: "
            f"{len(report.mismatches)} mismatches"
        )
        return report

    def check_address(self, address: bytes) -> Optional[AddressMismatch]:
        """
        Compares one account, its code and its storage.

        Destination nodes that are missing or do not decode are reported as
        mismatches; the same failures on the source side propagate.

        Returns:
            None when consistent (or absent at the source), else the first mismatch
        """
        source_account = self.source.get_account(address)
        if source_account is None:
            return None

        try:
            dest_account = self.destination.get_account(address)
        except (MissingNode, DecodeError) as e:
            return self._unreadable(address, e)
        if dest_account is None:
            return AddressMismatch(address=address, reason=MismatchReason.MISSING_ACCOUNT)

        if source_account.encode() != dest_account.encode():
            return AddressMismatch(
                address=address,
                reason=MismatchReason.ACCOUNT_ENCODING,
                detail=f"source {source_account!r}, destination {dest_account!r}",
            )

        mismatch = self._check_code(address, dest_account.code_hash) if dest_account.has_code() else None
        if mismatch is not None:
            return mismatch

        for hashed_slot, value in self.source.iter_storage(source_account):
            try:
                dest_value = self.destination.get_storage(dest_account, hashed_slot)
            except (MissingNode, DecodeError) as e:
                return self._unreadable(address, e)
            if dest_value != value:
                return AddressMismatch(
                    address=address,
                    reason=MismatchReason.STORAGE,
                    detail=f"slot 0x{hashed_slot.hex()}: 0x{value.hex()} != 0x{dest_value.hex()}",
                )
        return None

    def _check_code(self, address: bytes, code_hash: bytes) -> Optional[AddressMismatch]:
        if code_hash in self._verified_code:
            return None
        code = self.destination.nodes.db.get(code_hash)
        if not code:
            return AddressMismatch(
                address=address,
                reason=MismatchReason.MISSING_CODE,
                detail=f"code 0x{code_hash.hex()}",
            )
        if keccak256(code) != code_hash:
            return AddressMismatch(
                address=address,
                reason=MismatchReason.CODE_MISMATCH,
                detail=f"code 0x{code_hash.hex()} hashes to 0x{keccak256(code).hex()}",
            )
        self._verified_code.add(code_hash)
        return None

    @staticmethod
    def _unreadable(address: bytes, error: Exception) -> AddressMismatch:
        reason = MismatchReason.MISSING_NODE if isinstance(error, MissingNode) else MismatchReason.CORRUPT_NODE
        return AddressMismatch(address=address, reason=reason, detail=str(error))
