# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, ConfigDict, Field, field_validator
import rlp
from rlp.exceptions import RLPException
from rlp.sedes import Binary, CountableList, big_endian_int, binary

from .common import DecodeError
from ..config.params import BLANK_ROOT, EMPTY_CODE_HASH, EMPTY_CODE_HASHES, EMPTY_STORAGE_ROOTS

_hash32 = Binary.fixed_length(32)
ACCOUNT_SEDES = CountableList(binary)


class Account(BaseModel):
    """Account object as stored in a leaf of the state trie."""
    model_config = ConfigDict(frozen=True)

    nonce: int = Field(default=0, ge=0, lt=2**64)
    balance: int = Field(default=0, ge=0)
    storage_root: bytes = BLANK_ROOT
    code_hash: bytes = EMPTY_CODE_HASH

    @field_validator("storage_root", "code_hash")
    @classmethod
    def _check_hash(cls, v: bytes) -> bytes:
        if len(v) != 32:
            raise ValueError(f"expected 32-byte hash, got {len(v)} bytes")
        return v

    def encode(self) -> bytes:
        return rlp.encode([
            big_endian_int.serialize(self.nonce),
            big_endian_int.serialize(self.balance),
            _hash32.serialize(self.storage_root),
            _hash32.serialize(self.code_hash),
        ])

    @classmethod
    def decode(cls, raw: bytes) -> "Account":
        try:
            fields = rlp.decode(raw, sedes=ACCOUNT_SEDES)
            if len(fields) != 4:
                raise DecodeError(f"Account must have 4 fields, got {len(fields)}")
            nonce, balance, storage_root, code_hash = fields
            return cls(
                nonce=big_endian_int.deserialize(nonce),
                balance=big_endian_int.deserialize(balance),
                storage_root=_hash32.deserialize(storage_root),
                code_hash=_hash32.deserialize(code_hash),
            )
        except (RLPException, ValueError) as e:
            raise DecodeError(f"Failed to decode account: {e}")

    def has_storage(self) -> bool:
        return self.storage_root not in EMPTY_STORAGE_ROOTS

    def has_code(self) -> bool:
        return self.code_hash not in EMPTY_CODE_HASHES

    def is_empty(self) -> bool:
        return self.nonce == 0 and self.balance == 0 and not self.has_code()


class RootReference(BaseModel):
    """Identifies one trie snapshot of the chain."""
    block_number: int = Field(..., ge=0)
    block_hash: bytes
    state_root: bytes

    def describe(self) -> str:
        return f"#{self.block_number} root=0x{self.state_root.hex()}"
