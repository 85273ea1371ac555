# MIT License
# Copyright (c) 2025 Hashborn

from pathlib import Path
from typing import List, Union

from eth_utils import is_hex_address, to_canonical_address, to_checksum_address

from ..config.params import ADDRESS_LENGTH


def parse_address(value: Union[str, bytes]) -> bytes:
    """Parses a hex (or raw 20-byte) address into canonical bytes."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != ADDRESS_LENGTH:
            raise ValueError(f"Invalid address length: {len(value)}")
        return bytes(value)

    text = value.strip()
    if not text.startswith(("0x", "0X")):
        text = "0x" + text
    if not is_hex_address(text):
        raise ValueError(f"Invalid hex address: {value!r}")
    return to_canonical_address(text)

def format_address(address: bytes) -> str:
    return to_checksum_address(address)

def load_address_list(path: Union[str, Path]) -> List[bytes]:
    """
    Reads a newline-delimited list of hex addresses.

    Blank lines and lines starting with '#' are ignored. Duplicate addresses
    are kept once, in first-seen order.
    """
    addresses: List[bytes] = []
    seen = set()
    with open(path, "r") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                addr = parse_address(line)
            except ValueError as e:
                raise ValueError(f"{path}:{lineno}: {e}")
            if addr in seen:
                continue
            seen.add(addr)
            addresses.append(addr)
    return addresses
