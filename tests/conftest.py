import os
import shutil
import struct
import tempfile
from types import SimpleNamespace

import pytest
import rlp
from eth_utils import int_to_big_endian
from trie import HexaryTrie

from triecopy.blockchain.storage.db import StorageDB
from triecopy.protocol.config.params import EMPTY_CODE_HASH
from triecopy.protocol.crypto.hash import keccak256, secure_key
from triecopy.protocol.types.account import Account

ADDR_A = bytes.fromhex("a1" * 20)
ADDR_B = bytes.fromhex("b2" * 20)
ADDR_C = bytes.fromhex("c3" * 20)
ADDR_D = bytes.fromhex("d4" * 20)

# Shared by A and B
TOKEN_CODE = bytes.fromhex("6080604052348015600f57600080fd5b50603f80601d6000396000f3fe")


def slot_key(slot: int) -> bytes:
    return secure_key(slot.to_bytes(32, "big"))


def build_state(db: StorageDB, accounts: dict) -> bytes:
    """
    Writes a state trie into db the way a node does, without pruning, so
    stale intermediate nodes stay behind next to the live ones.
    """
    nodes = {}
    state = HexaryTrie(nodes)
    for address, fields in accounts.items():
        storage = HexaryTrie(nodes)
        for slot, value in fields.get("storage", {}).items():
            storage[slot_key(slot)] = rlp.encode(int_to_big_endian(value))
        code = fields.get("code", b"")
        code_hash = EMPTY_CODE_HASH
        if code:
            code_hash = keccak256(code)
            nodes[code_hash] = code
        account = Account(
            nonce=fields.get("nonce", 0),
            balance=fields.get("balance", 0),
            storage_root=storage.root_hash,
            code_hash=code_hash,
        )
        state[secure_key(address)] = account.encode()
    db.write_batch(nodes.items())
    return state.root_hash


def put_header(db: StorageDB, number: int, state_root: bytes, parent_hash: bytes = b"\x00" * 32) -> bytes:
    """Stores a canonical header using the rawdb key layout; returns its hash."""
    header = rlp.encode([
        parent_hash,
        b"\x00" * 32,               # uncles
        b"\x00" * 20,               # coinbase
        state_root,
        b"\x00" * 32,               # tx root
        b"\x00" * 32,               # receipt root
        b"\x00" * 256,              # bloom
        int_to_big_endian(1),       # difficulty
        int_to_big_endian(number),
        int_to_big_endian(8_000_000),
        b"",
        int_to_big_endian(1_600_000_000 + number),
        b"",
        b"\x00" * 32,
        b"\x00" * 8,
    ])
    block_hash = keccak256(header)
    encoded_number = struct.pack(">Q", number)
    db.put(b"h" + encoded_number + block_hash, header)
    db.put(b"h" + encoded_number + b"n", block_hash)
    db.put(b"H" + block_hash, encoded_number)
    return block_hash


def build_chain(db: StorageDB, state_roots: list) -> list:
    """Canonical chain with one block per state root; the last block is the head."""
    hashes = []
    parent = b"\x00" * 32
    for number, root in enumerate(state_roots):
        parent = put_header(db, number, root, parent)
        hashes.append(parent)
    db.put(b"LastBlock", hashes[-1])
    return hashes


@pytest.fixture
def workdir():
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir)

@pytest.fixture
def source_db(workdir):
    db = StorageDB(os.path.join(workdir, "source.db"))
    yield db
    db.close()

@pytest.fixture
def dest_db(workdir):
    db = StorageDB(os.path.join(workdir, "dest.db"))
    yield db
    db.close()

@pytest.fixture
def sample_accounts():
    return {
        ADDR_A: {
            "nonce": 7,
            "balance": 10**18,
            "code": TOKEN_CODE,
            "storage": {0: 1, 1: 0xdeadbeef, 5: 2**200},
        },
        ADDR_B: {
            "nonce": 1,
            "balance": 5,
            "code": TOKEN_CODE,
            "storage": {0: 42, 3: 7},
        },
        ADDR_C: {"nonce": 3, "balance": 123456789},
    }

@pytest.fixture
def sample_state(source_db, sample_accounts):
    """Source store holding accounts A, B (same code) and C (no code)."""
    root = build_state(source_db, sample_accounts)
    return SimpleNamespace(
        root=root,
        accounts=sample_accounts,
        a=ADDR_A,
        b=ADDR_B,
        c=ADDR_C,
        d=ADDR_D,
    )
