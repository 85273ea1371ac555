# MIT License
# Copyright (c) 2025 Hashborn

"""
Trie path encoding.

Keys are addressed in the trie as sequences of 4-bit nibbles. A full key
path ends with the terminator nibble 16; node key fragments on disk use the
compact hex-prefix encoding.
"""

from typing import Sequence, Tuple

from ..crypto.hash import secure_key

TERMINATOR = 16

Nibbles = Tuple[int, ...]


def bytes_to_nibbles(data: bytes) -> Nibbles:
    """Convert bytes to a tuple of nibbles (high half first)."""
    nibbles = []
    for byte in data:
        nibbles.append(byte >> 4)
        nibbles.append(byte & 0x0F)
    return tuple(nibbles)

def nibbles_to_bytes(nibbles: Sequence[int]) -> bytes:
    """Convert nibbles back to bytes. Must have even length."""
    if len(nibbles) % 2 != 0:
        raise ValueError(f"Cannot convert odd-length nibble path ({len(nibbles)}) to bytes")
    result = bytearray()
    for i in range(0, len(nibbles), 2):
        result.append((nibbles[i] << 4) | nibbles[i + 1])
    return bytes(result)

def has_terminator(path: Sequence[int]) -> bool:
    return len(path) > 0 and path[-1] == TERMINATOR

def key_to_path(key: bytes) -> Nibbles:
    """Full lookup path for a key: its nibbles followed by the terminator."""
    return bytes_to_nibbles(key) + (TERMINATOR,)

def path_to_key(path: Sequence[int]) -> bytes:
    if has_terminator(path):
        path = path[:-1]
    return nibbles_to_bytes(path)

def account_path(address: bytes) -> Nibbles:
    """Lookup path of an account (or storage slot) in a secure trie."""
    return key_to_path(secure_key(address))

def encode_hex_prefix(nibbles: Sequence[int], is_leaf: bool) -> bytes:
    """
    Compact (hex-prefix) encoding of a key fragment.

    The first nibble carries the flags: 2 if the fragment belongs to a leaf,
    plus 1 if the fragment has odd length (no padding nibble follows).
    """
    flag = 2 if is_leaf else 0
    if len(nibbles) % 2 == 1:
        prefix = [flag + 1]
    else:
        prefix = [flag, 0]
    return nibbles_to_bytes(prefix + list(nibbles))

def decode_hex_prefix(data: bytes) -> Tuple[Nibbles, bool]:
    """Decode a compact key fragment. Returns (nibbles, is_leaf)."""
    if not data:
        raise ValueError("Empty hex-prefix key")
    nibbles = bytes_to_nibbles(data)
    flag = nibbles[0]
    if flag > 3:
        raise ValueError(f"Invalid hex-prefix flag nibble: {flag}")
    is_leaf = flag >= 2
    if flag % 2 == 1:
        return nibbles[1:], is_leaf
    if nibbles[1] != 0:
        raise ValueError("Non-zero padding nibble in even-length hex-prefix key")
    return nibbles[2:], is_leaf

