# MIT License
# Copyright (c) 2025 Hashborn

"""
State Migration

Copies a reachable slice of the state trie between stores and verifies
the result.
"""

from .session import CodeDeduplicator, CopyStats, MigrationSession
from .walker import ReachabilityWalker
from .rebuilder import AccountRebuilder
from .comparator import AddressMismatch, ComparisonReport, StateComparator
from .scanner import RetentionPlan, RetentionScanner
from .manager import MigrationManager, MigrationParams, MigrationResult, VerificationParams

__all__ = [
    "CodeDeduplicator",
    "CopyStats",
    "MigrationSession",
    "ReachabilityWalker",
    "AccountRebuilder",
    "AddressMismatch",
    "ComparisonReport",
    "StateComparator",
    "RetentionPlan",
    "RetentionScanner",
    "MigrationManager",
    "MigrationParams",
    "MigrationResult",
    "VerificationParams",
]
