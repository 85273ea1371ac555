import os

import pytest
import rlp

from triecopy.blockchain.core.state import StateView
from triecopy.blockchain.storage.node_store import NodeStore
from triecopy.protocol.config.params import BLANK_ROOT, EMPTY_CODE_HASH, ZERO_HASH
from triecopy.protocol.crypto.addresses import load_address_list, parse_address
from triecopy.protocol.trie.nibbles import (
    TERMINATOR,
    account_path,
    bytes_to_nibbles,
    decode_hex_prefix,
    encode_hex_prefix,
    key_to_path,
    nibbles_to_bytes,
    path_to_key,
)
from triecopy.protocol.types.account import Account
from triecopy.protocol.types.common import DecodeError, InvalidNode, NodeKind
from triecopy.protocol.types.node import Branch, Extension, HashRef, Leaf, decode_node, encode_node


# --- Nibbles and hex-prefix ---

def test_nibble_conversion():
    assert bytes_to_nibbles(b"\x12\xab") == (1, 2, 0xA, 0xB)
    assert nibbles_to_bytes((1, 2, 0xA, 0xB)) == b"\x12\xab"
    with pytest.raises(ValueError):
        nibbles_to_bytes((1, 2, 3))

def test_key_paths_end_with_terminator():
    path = key_to_path(b"\xff")
    assert path == (0xF, 0xF, TERMINATOR)
    assert path_to_key(path) == b"\xff"
    assert len(account_path(b"\x01" * 20)) == 65

@pytest.mark.parametrize("nibbles,is_leaf,encoded", [
    ((1, 2, 3, 4, 5), False, "112345"),
    ((0, 1, 2, 3, 4, 5), False, "00012345"),
    ((0, 0xF, 1, 0xC, 0xB, 8), True, "200f1cb8"),
    ((0xF, 1, 0xC, 0xB, 8), True, "3f1cb8"),
    ((), True, "20"),
])
def test_hex_prefix_vectors(nibbles, is_leaf, encoded):
    assert encode_hex_prefix(nibbles, is_leaf).hex() == encoded
    assert decode_hex_prefix(bytes.fromhex(encoded)) == (nibbles, is_leaf)

@pytest.mark.parametrize("data", [b"", b"\x40", b"\x01\x23"])
def test_hex_prefix_rejects_malformed(data):
    with pytest.raises(ValueError):
        decode_hex_prefix(data)


# --- Node model ---

def _walk_raw(nodes: NodeStore, node_hash: bytes, seen: list):
    node, raw = nodes.resolve(node_hash)
    seen.append(raw)
    pending = [node]
    while pending:
        current = pending.pop()
        if isinstance(current, Branch):
            children = [c for c in current.children if c is not None]
        elif isinstance(current, Extension):
            children = [current.child]
        else:
            children = []
        for child in children:
            if isinstance(child, HashRef):
                _walk_raw(nodes, child.hash, seen)
            else:
                pending.append(child)

def test_stored_nodes_reencode_identically(sample_state, source_db):
    nodes = NodeStore(source_db)
    raws = []
    _walk_raw(nodes, sample_state.root, raws)
    account = StateView(nodes, sample_state.root).get_account(sample_state.a)
    _walk_raw(nodes, account.storage_root, raws)

    assert len(raws) > 3
    for raw in raws:
        assert encode_node(decode_node(raw)) == raw

def test_inline_children_roundtrip():
    inline_leaf = Leaf(key=(3, 4), value=b"v")
    children = [None] * 16
    children[2] = inline_leaf
    children[9] = HashRef(b"\x11" * 32)
    branch = Branch(children=tuple(children), value=b"")
    ext = Extension(key=(1, 0xA), child=branch)

    decoded = decode_node(encode_node(ext))
    assert decoded == ext
    assert decoded.kind == NodeKind.EXTENSION
    assert decoded.child.kind == NodeKind.BRANCH
    assert decoded.child.children[2] == inline_leaf
    assert decoded.child.children[9].hash == b"\x11" * 32

def test_branch_requires_sixteen_children():
    with pytest.raises(InvalidNode):
        Branch(children=(None,) * 15)

def test_hash_ref_has_no_encoding():
    with pytest.raises(InvalidNode):
        encode_node(HashRef(b"\x00" * 32))

@pytest.mark.parametrize("raw,error", [
    (b"", DecodeError),
    (b"\xf8", DecodeError),
    (b"\xc0", InvalidNode),
    (b"\x83abc", InvalidNode),
    (rlp.encode([b"abcde"] + [b""] * 16), InvalidNode),
    (rlp.encode([b"\x00\x01", b""]), InvalidNode),
    (rlp.encode([b"\x40", b"x"]), InvalidNode),
])
def test_decode_rejects_malformed_nodes(raw, error):
    with pytest.raises(error):
        decode_node(raw)


# --- Accounts ---

def test_account_roundtrip_and_flags():
    account = Account(nonce=5, balance=2**70, storage_root=b"\x01" * 32, code_hash=b"\x02" * 32)
    assert Account.decode(account.encode()) == account
    assert account.has_storage() and account.has_code()

    plain = Account(nonce=0, balance=0)
    assert plain.storage_root == BLANK_ROOT
    assert plain.code_hash == EMPTY_CODE_HASH
    assert not plain.has_storage() and not plain.has_code()
    assert plain.is_empty()
    assert not Account(storage_root=ZERO_HASH, code_hash=ZERO_HASH).has_code()

@pytest.mark.parametrize("raw", [
    rlp.encode([b"\x01", b"\x02", b"\x03"]),
    rlp.encode([b"\x01", b"\x02", b"\x03" * 31, b"\x04" * 32]),
    b"\x01\x02",
])
def test_account_decode_errors(raw):
    with pytest.raises(DecodeError):
        Account.decode(raw)


# --- Address lists ---

def test_load_address_list(workdir):
    path = os.path.join(workdir, "addresses.txt")
    with open(path, "w") as f:
        f.write("# accounts to migrate\n")
        f.write("0x" + "a1" * 20 + "\n")
        f.write("\n")
        f.write("B2" * 20 + "\n")
        f.write("0x" + "a1" * 20 + "\n")

    assert load_address_list(path) == [b"\xa1" * 20, b"\xb2" * 20]

def test_load_address_list_reports_line(workdir):
    path = os.path.join(workdir, "addresses.txt")
    with open(path, "w") as f:
        f.write("0x" + "a1" * 20 + "\n")
        f.write("not-an-address\n")

    with pytest.raises(ValueError, match=":2:"):
        load_address_list(path)

def test_parse_address_bytes_length():
    assert parse_address(b"\x01" * 20) == b"\x01" * 20
    with pytest.raises(ValueError):
        parse_address(b"\x01" * 19)
