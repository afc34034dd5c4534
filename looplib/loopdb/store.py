"""Persistent swap store kept in a SQLite database file."""

from __future__ import annotations

import abc
import hashlib
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Callable, Iterator

from looplib.loopdb.contracts import (
    Loop,
    LoopIn,
    LoopInContract,
    LoopOut,
    LoopOutContract,
    deserialize_loop_event,
    deserialize_loop_in_contract,
    deserialize_loop_out_contract,
    serialize_loop_event,
    serialize_loop_in_contract,
    serialize_loop_out_contract,
)
from looplib.loopdb.swapstate import SwapStateData
from looplib.swap.net import ChainParams

log = logging.getLogger(__name__)

DB_FILE_NAME = "loop.db"

# Buckets holding all pending and completed swaps, keyed by swap hash.
LOOP_OUT_BUCKET = "uncharge-swaps"
LOOP_IN_BUCKET = "loop-in"

META_TABLE = "meta"
DB_VERSION_KEY = b"dbp"

# Three zeroed int64 cost fields appended to every update by migration 1.
_EMPTY_COSTS = bytes(3 * 8)

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS swaps ("
    " bucket TEXT NOT NULL, hash BLOB NOT NULL, contract BLOB NOT NULL,"
    " PRIMARY KEY (bucket, hash))",
    "CREATE TABLE IF NOT EXISTS updates ("
    " bucket TEXT NOT NULL, hash BLOB NOT NULL, seq INTEGER NOT NULL,"
    " value BLOB NOT NULL, PRIMARY KEY (bucket, hash, seq))",
)


class DatabaseReversionError(Exception):
    """Raised when the database is newer than this code understands."""

    def __init__(self) -> None:
        super().__init__("channel db cannot revert to prior version")


class SwapStore(abc.ABC):
    """Storage for pending, completed and failed swaps."""

    @abc.abstractmethod
    def fetch_loop_out_swaps(self) -> list[LoopOut]:
        """Return all loop out swaps in the store."""

    @abc.abstractmethod
    def create_loop_out(self, swap_hash: bytes, contract: LoopOutContract) -> None:
        """Add an initiated loop out swap."""

    @abc.abstractmethod
    def update_loop_out(self, swap_hash: bytes, time_ns: int, state: SwapStateData) -> None:
        """Append a state update to a loop out swap."""

    @abc.abstractmethod
    def fetch_loop_in_swaps(self) -> list[LoopIn]:
        """Return all loop in swaps in the store."""

    @abc.abstractmethod
    def create_loop_in(self, swap_hash: bytes, contract: LoopInContract) -> None:
        """Add an initiated loop in swap."""

    @abc.abstractmethod
    def update_loop_in(self, swap_hash: bytes, time_ns: int, state: SwapStateData) -> None:
        """Append a state update to a loop in swap."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close the underlying database."""


def _migrate_costs_for_bucket(conn: sqlite3.Connection, bucket: str) -> None:
    rows = conn.execute(
        "SELECT hash, seq, value FROM updates WHERE bucket = ?", (bucket,)
    ).fetchall()
    for swap_hash, seq, value in rows:
        conn.execute(
            "UPDATE updates SET value = ? WHERE bucket = ? AND hash = ? AND seq = ?",
            (bytes(value) + _EMPTY_COSTS, bucket, swap_hash, seq),
        )


def _migrate_costs(conn: sqlite3.Connection) -> None:
    """Append zeroed cost fields to every stored swap update."""
    _migrate_costs_for_bucket(conn, LOOP_IN_BUCKET)
    _migrate_costs_for_bucket(conn, LOOP_OUT_BUCKET)


_MIGRATIONS: list[Callable[[sqlite3.Connection], None]] = [_migrate_costs]

LATEST_DB_VERSION = len(_MIGRATIONS)


class SqliteSwapStore(SwapStore):
    """Swap store backed by a SQLite file inside a directory."""

    def __init__(self, db_path: str | os.PathLike, chain_params: ChainParams) -> None:
        os.makedirs(db_path, mode=0o700, exist_ok=True)
        path = os.path.join(db_path, DB_FILE_NAME)
        if not os.path.exists(path):
            os.close(os.open(path, os.O_CREAT | os.O_WRONLY, 0o600))

        self.chain_params = chain_params
        self._conn = sqlite3.connect(path, isolation_level=None)
        try:
            self._initialize()
            self._sync_versions()
        except BaseException:
            self._conn.close()
            raise

    def __enter__(self) -> "SqliteSwapStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        self._conn.execute("BEGIN IMMEDIATE")
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    def _meta_exists(self, conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (META_TABLE,),
        ).fetchone()
        return row is not None

    def _set_db_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            f"CREATE TABLE IF NOT EXISTS {META_TABLE} "
            "(key BLOB PRIMARY KEY, value BLOB NOT NULL)"
        )
        conn.execute(
            f"INSERT OR REPLACE INTO {META_TABLE} (key, value) VALUES (?, ?)",
            (DB_VERSION_KEY, version.to_bytes(4, "big")),
        )

    def _initialize(self) -> None:
        with self._transaction() as conn:
            # An existing meta table means the database is initialized and
            # carries its own version.
            if not self._meta_exists(conn):
                log.info("Initializing new database with version %d", LATEST_DB_VERSION)
                self._set_db_version(conn, LATEST_DB_VERSION)
            for statement in _SCHEMA:
                conn.execute(statement)

    def db_version(self) -> int:
        """Return the schema version recorded in the database."""
        if not self._meta_exists(self._conn):
            raise LookupError("bucket does not exist")
        row = self._conn.execute(
            f"SELECT value FROM {META_TABLE} WHERE key = ?", (DB_VERSION_KEY,)
        ).fetchone()
        # No version key means version zero.
        return 0 if row is None else int.from_bytes(bytes(row[0])[:4], "big")

    def _sync_versions(self) -> None:
        current = self.db_version()
        log.info(
            "Checking for schema update: latest_version=%d, db_version=%d",
            LATEST_DB_VERSION,
            current,
        )
        if current > LATEST_DB_VERSION:
            log.error(
                "Refusing to revert from db_version=%d to lower version=%d",
                current,
                LATEST_DB_VERSION,
            )
            raise DatabaseReversionError()
        if current == LATEST_DB_VERSION:
            return

        log.info("Performing database schema migration")
        with self._transaction() as conn:
            for number, migration in enumerate(_MIGRATIONS[current:], start=current + 1):
                log.info("Applying migration #%d", number)
                try:
                    migration(conn)
                except Exception:
                    log.info("Unable to apply migration #%d", number)
                    raise
            self._set_db_version(conn, LATEST_DB_VERSION)

    def _fetch_swaps(self, bucket: str) -> Iterator[tuple[bytes, Loop]]:
        swaps = self._conn.execute(
            "SELECT hash, contract FROM swaps WHERE bucket = ? ORDER BY hash",
            (bucket,),
        ).fetchall()
        for swap_hash, contract_bytes in swaps:
            rows = self._conn.execute(
                "SELECT value FROM updates WHERE bucket = ? AND hash = ? ORDER BY seq",
                (bucket, swap_hash),
            ).fetchall()
            events = [deserialize_loop_event(bytes(value)) for (value,) in rows]
            yield bytes(contract_bytes), Loop(hash=bytes(swap_hash), events=events)

    def fetch_loop_out_swaps(self) -> list[LoopOut]:
        return [
            LoopOut(
                hash=loop.hash,
                events=loop.events,
                contract=deserialize_loop_out_contract(contract, self.chain_params),
            )
            for contract, loop in self._fetch_swaps(LOOP_OUT_BUCKET)
        ]

    def fetch_loop_in_swaps(self) -> list[LoopIn]:
        return [
            LoopIn(
                hash=loop.hash,
                events=loop.events,
                contract=deserialize_loop_in_contract(contract),
            )
            for contract, loop in self._fetch_swaps(LOOP_IN_BUCKET)
        ]

    def _create_loop(self, bucket: str, swap_hash: bytes, contract_bytes: bytes) -> None:
        with self._transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM swaps WHERE bucket = ? AND hash = ?",
                (bucket, swap_hash),
            ).fetchone()
            if exists is not None:
                raise ValueError(f"swap {swap_hash.hex()} already exists")
            conn.execute(
                "INSERT INTO swaps (bucket, hash, contract) VALUES (?, ?, ?)",
                (bucket, swap_hash, contract_bytes),
            )

    @staticmethod
    def _check_hash(swap_hash: bytes, preimage: bytes) -> bytes:
        swap_hash = bytes(swap_hash)
        if swap_hash != hashlib.sha256(bytes(preimage)).digest():
            raise ValueError("hash and preimage do not match")
        return swap_hash

    def create_loop_out(self, swap_hash: bytes, contract: LoopOutContract) -> None:
        swap_hash = self._check_hash(swap_hash, contract.preimage)
        self._create_loop(LOOP_OUT_BUCKET, swap_hash, serialize_loop_out_contract(contract))

    def create_loop_in(self, swap_hash: bytes, contract: LoopInContract) -> None:
        swap_hash = self._check_hash(swap_hash, contract.preimage)
        self._create_loop(LOOP_IN_BUCKET, swap_hash, serialize_loop_in_contract(contract))

    def _update_loop(
        self, bucket: str, swap_hash: bytes, time_ns: int, state: SwapStateData
    ) -> None:
        swap_hash = bytes(swap_hash)
        value = serialize_loop_event(time_ns, state)
        with self._transaction() as conn:
            exists = conn.execute(
                "SELECT 1 FROM swaps WHERE bucket = ? AND hash = ?",
                (bucket, swap_hash),
            ).fetchone()
            if exists is None:
                raise LookupError("swap not found")
            (last,) = conn.execute(
                "SELECT COALESCE(MAX(seq), 0) FROM updates WHERE bucket = ? AND hash = ?",
                (bucket, swap_hash),
            ).fetchone()
            conn.execute(
                "INSERT INTO updates (bucket, hash, seq, value) VALUES (?, ?, ?, ?)",
                (bucket, swap_hash, last + 1, value),
            )

    def update_loop_out(self, swap_hash: bytes, time_ns: int, state: SwapStateData) -> None:
        self._update_loop(LOOP_OUT_BUCKET, swap_hash, time_ns, state)

    def update_loop_in(self, swap_hash: bytes, time_ns: int, state: SwapStateData) -> None:
        self._update_loop(LOOP_IN_BUCKET, swap_hash, time_ns, state)

    def close(self) -> None:
        self._conn.close()