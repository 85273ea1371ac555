# MIT License
# Copyright (c) 2025 Hashborn

"""
Consensus snapshot passthrough.

Copies opaque consensus snapshot blobs alongside migrated state.
"""

from .passthrough import SnapshotPassthrough

__all__ = ["SnapshotPassthrough"]
