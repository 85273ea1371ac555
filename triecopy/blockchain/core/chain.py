# MIT License
# Copyright (c) 2025 Hashborn

"""
Read-only access to chain metadata stored next to the state trie.

Keys follow the go-ethereum rawdb schema used by the source node. Only the
lookups the migration needs are implemented; replicating blocks, bodies or
total difficulty belongs to the node's own tooling.
"""

import struct
from dataclasses import dataclass
from typing import Optional

import rlp
from rlp.exceptions import RLPException

from ..storage.db import StorageDB
from ...protocol.types.common import DecodeError


class ChainKeys:
    HeadBlock = b'LastBlock'

    headerPrefix = b'h'
    headerNumberPrefix = b'H'
    headerHashSuffix = b'n'

    @classmethod
    def canonical_hash(cls, block_number: int) -> bytes:
        "The key to get the hash of the canonical header with the given block number"
        return cls.headerPrefix + struct.pack('>Q', block_number) + cls.headerHashSuffix

    @classmethod
    def block_number(cls, header_hash: bytes) -> bytes:
        "The key to get the block number of the header with the given hash"
        return cls.headerNumberPrefix + header_hash

    @classmethod
    def block_header(cls, block_number: int, header_hash: bytes) -> bytes:
        return cls.headerPrefix + struct.pack('>Q', block_number) + header_hash


@dataclass(frozen=True)
class HeaderRef:
    """The header fields the migration relies on."""
    number: int
    parent_hash: bytes
    state_root: bytes


class ChainReader:
    # Positions in the RLP header list
    PARENT_HASH_INDEX = 0
    STATE_ROOT_INDEX = 3
    NUMBER_INDEX = 8

    def __init__(self, db: StorageDB):
        self.db = db

    def get_head_block_hash(self) -> Optional[bytes]:
        return self.db.get(ChainKeys.HeadBlock)

    def get_block_number(self, block_hash: bytes) -> Optional[int]:
        raw = self.db.get(ChainKeys.block_number(block_hash))
        if raw is None:
            return None
        if len(raw) != 8:
            raise DecodeError(f"Invalid block number encoding for 0x{block_hash.hex()}")
        return struct.unpack('>Q', raw)[0]

    def get_canonical_hash(self, block_number: int) -> Optional[bytes]:
        return self.db.get(ChainKeys.canonical_hash(block_number))

    def get_header(self, block_hash: bytes, block_number: int) -> Optional[HeaderRef]:
        raw = self.db.get(ChainKeys.block_header(block_number, block_hash))
        if raw is None:
            return None
        try:
            fields = rlp.decode(raw)
        except RLPException as e:
            raise DecodeError(f"Invalid header RLP at #{block_number}: {e}")
        if not isinstance(fields, list) or len(fields) <= self.NUMBER_INDEX:
            raise DecodeError(f"Header at #{block_number} has too few fields")
        number = int.from_bytes(fields[self.NUMBER_INDEX], 'big')
        if number != block_number:
            raise DecodeError(f"Header stored at #{block_number} claims number {number}")
        return HeaderRef(
            number=number,
            parent_hash=fields[self.PARENT_HASH_INDEX],
            state_root=fields[self.STATE_ROOT_INDEX],
        )

    def get_head_header(self) -> HeaderRef:
        """Header of the current head block."""
        head = self.get_head_block_hash()
        if head is None:
            raise DecodeError("Source store has no head block pointer")
        number = self.get_block_number(head)
        if number is None:
            raise DecodeError(f"Head block 0x{head.hex()} has no number entry")
        header = self.get_header(head, number)
        if header is None:
            raise DecodeError(f"Head header #{number} is missing")
        return header

    def get_canonical_header(self, block_number: int) -> Optional[HeaderRef]:
        block_hash = self.get_canonical_hash(block_number)
        if block_hash is None:
            return None
        return self.get_header(block_hash, block_number)
