import os

import pytest

from conftest import ADDR_A, ADDR_B, ADDR_C, ADDR_D, build_state

from triecopy.blockchain.core.state import StateView
from triecopy.blockchain.migration.comparator import StateComparator
from triecopy.blockchain.migration.rebuilder import AccountRebuilder
from triecopy.blockchain.migration.session import MigrationSession
from triecopy.blockchain.migration.walker import ReachabilityWalker
from triecopy.blockchain.storage.db import StorageDB
from triecopy.blockchain.storage.node_store import NodeStore
from triecopy.protocol.crypto.hash import keccak256

SHARED_CODE = bytes(range(50))


@pytest.fixture
def scenario(source_db):
    accounts = {
        ADDR_A: {"balance": 10},
        ADDR_B: {"nonce": 1, "balance": 20, "code": SHARED_CODE, "storage": {1: 100, 2: 200}},
        ADDR_C: {"nonce": 2, "balance": 30, "code": SHARED_CODE, "storage": {1: 300, 7: 700}},
        ADDR_D: {"nonce": 9, "balance": 40},
    }
    return build_state(source_db, accounts)

def _compare(source_db, dest_db, root, addresses):
    return StateComparator(
        StateView(NodeStore(source_db), root),
        StateView(NodeStore(dest_db), root),
    ).compare(addresses)

def _code_blobs(db):
    return [key for key, value in db.conn.execute("SELECT key, value FROM kv") if value == SHARED_CODE]


def test_full_copy_scenario(scenario, source_db, dest_db):
    with MigrationSession(dest_db) as session:
        stats = ReachabilityWalker(NodeStore(source_db), session).copy_state(scenario)

    assert _compare(source_db, dest_db, scenario, [ADDR_A, ADDR_B, ADDR_C]).ok
    assert stats.code_blobs == 1
    assert _code_blobs(dest_db) == [keccak256(SHARED_CODE)]

    dest = StateView(NodeStore(dest_db), scenario)
    assert dest.get_code(dest.get_account(ADDR_B)) == SHARED_CODE
    assert dest.get_code(dest.get_account(ADDR_C)) == SHARED_CODE

def test_destination_missing_an_account(scenario, source_db, dest_db):
    with MigrationSession(dest_db) as session:
        missing = ReachabilityWalker(NodeStore(source_db), session).copy_addresses(
            scenario, [ADDR_A, ADDR_B, ADDR_C]
        )
    assert missing == []

    report = _compare(source_db, dest_db, scenario, [ADDR_A, ADDR_B, ADDR_C, ADDR_D])
    assert not report.ok
    assert report.mismatched_addresses == [ADDR_D]

def test_single_account_targeted_copy_reproduces_root(source_db, dest_db):
    root = build_state(source_db, {ADDR_A: {"balance": 10}})

    with MigrationSession(dest_db) as session:
        assert ReachabilityWalker(NodeStore(source_db), session).copy_address(root, ADDR_A)

    # The whole trie is A's path, so the destination holds the complete root
    dest = StateView(NodeStore(dest_db), root)
    assert [address for address, _ in dest.iter_accounts()] == [keccak256(ADDR_A)]
    assert _compare(source_db, dest_db, root, [ADDR_A]).ok

def test_rebuild_agrees_with_node_copy(scenario, source_db, dest_db, workdir):
    with MigrationSession(dest_db) as session:
        ReachabilityWalker(NodeStore(source_db), session).copy_state(scenario)

    # Rebuild from the copied store into a third one
    with StorageDB(os.path.join(workdir, "rebuilt.db")) as rebuilt_db:
        with MigrationSession(rebuilt_db) as session:
            rebuilder = AccountRebuilder(StateView(NodeStore(dest_db), scenario), session)
            new_root = rebuilder.rebuild([ADDR_A, ADDR_B, ADDR_C, ADDR_D])
        assert new_root == scenario
        assert _compare(source_db, rebuilt_db, scenario, [ADDR_A, ADDR_B, ADDR_C, ADDR_D]).ok
