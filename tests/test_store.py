import calendar
import datetime
import hashlib
import os
import sqlite3

import pytest

from looplib.loopdb.contracts import LoopInContract, LoopOutContract
from looplib.loopdb.store import (
    DB_FILE_NAME,
    LATEST_DB_VERSION,
    DatabaseReversionError,
    SqliteSwapStore,
)
from looplib.loopdb.swapstate import SwapCost, SwapState, SwapStateData
from looplib.swap.net import MAIN_NET_PARAMS, encode_p2sh_address

SENDER_KEY = bytes([1] * 32 + [2])
RECEIVER_KEY = bytes([1] * 32 + [3])
TEST_PREIMAGE = bytes([1, 1, 1, 1, 2, 2, 2, 2, 3, 3, 3, 3, 4, 4, 4, 4] * 2)
SWAP_HASH = hashlib.sha256(TEST_PREIMAGE).digest()


def _unix_ns(*args) -> int:
    return calendar.timegm(datetime.datetime(*args).timetuple()) * 10**9


TEST_TIME = _unix_ns(2018, 1, 9, 14, 0, 0)
INITIATION_TIME = _unix_ns(2018, 11, 1, 0, 0, 0)


def _loop_out_contract() -> LoopOutContract:
    return LoopOutContract(
        amount_requested=100,
        preimage=TEST_PREIMAGE,
        cltv_expiry=144,
        sender_key=SENDER_KEY,
        receiver_key=RECEIVER_KEY,
        max_miner_fee=10,
        max_swap_fee=20,
        initiation_height=99,
        initiation_time=INITIATION_TIME,
        max_prepay_routing_fee=40,
        prepay_invoice="prepayinvoice",
        dest_addr=encode_p2sh_address(bytes([0]), MAIN_NET_PARAMS),
        swap_invoice="swapinvoice",
        max_swap_routing_fee=30,
        sweep_conf_target=2,
    )


def _loop_in_contract() -> LoopInContract:
    return LoopInContract(
        amount_requested=100,
        preimage=TEST_PREIMAGE,
        cltv_expiry=144,
        sender_key=SENDER_KEY,
        receiver_key=RECEIVER_KEY,
        max_miner_fee=10,
        max_swap_fee=20,
        initiation_height=99,
        initiation_time=INITIATION_TIME,
        htlc_conf_target=2,
        loop_in_channel=123,
        external_htlc=True,
    )


def _check(swaps, expected_contract, expected_state):
    assert len(swaps) == 1
    assert swaps[0].contract == expected_contract
    assert swaps[0].state().state == expected_state


def test_loop_out_store(tmp_path):
    store = SqliteSwapStore(tmp_path, MAIN_NET_PARAMS)
    assert store.fetch_loop_out_swaps() == []

    contract = _loop_out_contract()
    store.create_loop_out(SWAP_HASH, contract)
    _check(store.fetch_loop_out_swaps(), contract, SwapState.INITIATED)

    with pytest.raises(ValueError):
        store.create_loop_out(SWAP_HASH, contract)
    _check(store.fetch_loop_out_swaps(), contract, SwapState.INITIATED)

    store.update_loop_out(SWAP_HASH, TEST_TIME, SwapStateData(SwapState.PREIMAGE_REVEALED))
    _check(store.fetch_loop_out_swaps(), contract, SwapState.PREIMAGE_REVEALED)

    store.update_loop_out(
        SWAP_HASH, TEST_TIME, SwapStateData(SwapState.FAIL_INSUFFICIENT_VALUE)
    )
    _check(store.fetch_loop_out_swaps(), contract, SwapState.FAIL_INSUFFICIENT_VALUE)
    store.close()

    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as reopened:
        _check(
            reopened.fetch_loop_out_swaps(), contract, SwapState.FAIL_INSUFFICIENT_VALUE
        )


def test_loop_in_store(tmp_path):
    store = SqliteSwapStore(tmp_path, MAIN_NET_PARAMS)
    assert store.fetch_loop_in_swaps() == []

    contract = _loop_in_contract()
    store.create_loop_in(SWAP_HASH, contract)
    _check(store.fetch_loop_in_swaps(), contract, SwapState.INITIATED)

    with pytest.raises(ValueError):
        store.create_loop_in(SWAP_HASH, contract)
    _check(store.fetch_loop_in_swaps(), contract, SwapState.INITIATED)

    store.update_loop_in(SWAP_HASH, TEST_TIME, SwapStateData(SwapState.PREIMAGE_REVEALED))
    _check(store.fetch_loop_in_swaps(), contract, SwapState.PREIMAGE_REVEALED)

    store.update_loop_in(
        SWAP_HASH, TEST_TIME, SwapStateData(SwapState.FAIL_INSUFFICIENT_VALUE)
    )
    _check(store.fetch_loop_in_swaps(), contract, SwapState.FAIL_INSUFFICIENT_VALUE)
    store.close()

    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as reopened:
        _check(
            reopened.fetch_loop_in_swaps(), contract, SwapState.FAIL_INSUFFICIENT_VALUE
        )


def test_loop_in_and_out_are_separate(tmp_path):
    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as store:
        store.create_loop_in(SWAP_HASH, _loop_in_contract())
        assert store.fetch_loop_out_swaps() == []
        with pytest.raises(LookupError):
            store.update_loop_out(SWAP_HASH, TEST_TIME, SwapStateData())


def test_events_keep_time_cost_and_order(tmp_path):
    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as store:
        store.create_loop_in(SWAP_HASH, _loop_in_contract())
        store.update_loop_in(SWAP_HASH, 1, SwapStateData(SwapState.HTLC_PUBLISHED))
        cost = SwapCost(server=-5, onchain=7, offchain=3)
        store.update_loop_in(SWAP_HASH, 2, SwapStateData(SwapState.SUCCESS, cost))
        (swap,) = store.fetch_loop_in_swaps()
    assert swap.hash == SWAP_HASH
    assert [event.state_data.state for event in swap.events] == [
        SwapState.HTLC_PUBLISHED,
        SwapState.SUCCESS,
    ]
    assert swap.events[-1].state_data.cost == cost
    assert swap.last_update_time() == 2


def test_hash_preimage_mismatch(tmp_path):
    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as store:
        with pytest.raises(ValueError, match="hash and preimage do not match"):
            store.create_loop_out(bytes(32), _loop_out_contract())
        assert store.fetch_loop_out_swaps() == []


def test_update_unknown_swap(tmp_path):
    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as store:
        with pytest.raises(LookupError):
            store.update_loop_in(SWAP_HASH, TEST_TIME, SwapStateData())


def test_version_new(tmp_path):
    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as store:
        assert store.db_version() == LATEST_DB_VERSION
    assert LATEST_DB_VERSION == 1


def test_creates_missing_directory(tmp_path):
    target = tmp_path / "nested" / "dir"
    with SqliteSwapStore(target, MAIN_NET_PARAMS) as store:
        assert store.db_version() == LATEST_DB_VERSION
    assert os.path.exists(target / DB_FILE_NAME)


def test_version_migrated(tmp_path):
    conn = sqlite3.connect(tmp_path / DB_FILE_NAME)
    conn.execute("CREATE TABLE meta (key BLOB PRIMARY KEY, value BLOB NOT NULL)")
    conn.commit()
    conn.close()

    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as store:
        assert store.db_version() == LATEST_DB_VERSION


def test_migration_appends_zero_costs(tmp_path):
    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as store:
        store.create_loop_in(SWAP_HASH, _loop_in_contract())

    old_event = (TEST_TIME).to_bytes(8, "big") + bytes([SwapState.HTLC_PUBLISHED])
    conn = sqlite3.connect(tmp_path / DB_FILE_NAME)
    conn.execute("DELETE FROM meta")
    conn.execute(
        "INSERT INTO updates (bucket, hash, seq, value) VALUES (?, ?, ?, ?)",
        ("loop-in", SWAP_HASH, 1, old_event),
    )
    conn.commit()
    conn.close()

    with SqliteSwapStore(tmp_path, MAIN_NET_PARAMS) as store:
        assert store.db_version() == LATEST_DB_VERSION
        (swap,) = store.fetch_loop_in_swaps()
    (event,) = swap.events
    assert event.time == TEST_TIME
    assert event.state_data.state == SwapState.HTLC_PUBLISHED
    assert event.state_data.cost == SwapCost(0, 0, 0)


def test_refuses_reversion(tmp_path):
    SqliteSwapStore(tmp_path, MAIN_NET_PARAMS).close()

    conn = sqlite3.connect(tmp_path / DB_FILE_NAME)
    conn.execute(
        "UPDATE meta SET value = ? WHERE key = ?",
        ((LATEST_DB_VERSION + 1).to_bytes(4, "big"), b"dbp"),
    )
    conn.commit()
    conn.close()

    with pytest.raises(DatabaseReversionError):
        SqliteSwapStore(tmp_path, MAIN_NET_PARAMS)