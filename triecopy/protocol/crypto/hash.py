# MIT License
# Copyright (c) 2025 Hashborn

from eth_hash.auto import keccak


def keccak256(data: bytes) -> bytes:
    """Returns Keccak-256 hash of bytes."""
    return keccak(data)

def secure_key(key: bytes) -> bytes:
    """Hashes a raw trie key (address or storage slot) into its secure form."""
    return keccak256(key)
