"""Bitcoin transactions and their wire encoding."""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field

MAX_TX_IN_SEQUENCE_NUM = 0xFFFFFFFF


@dataclass(frozen=True)
class OutPoint:
    """Reference to a transaction output."""

    hash: bytes = bytes(32)
    index: int = 0


@dataclass
class TxIn:
    """Transaction input."""

    previous_out_point: OutPoint = field(default_factory=OutPoint)
    signature_script: bytes = b""
    witness: list[bytes] = field(default_factory=list)
    sequence: int = MAX_TX_IN_SEQUENCE_NUM


@dataclass
class TxOut:
    """Transaction output."""

    value: int = 0
    pk_script: bytes = b""


def _var_int(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    if value <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", value)
    return b"\xff" + struct.pack("<Q", value)


def _var_bytes(data: bytes) -> bytes:
    return _var_int(len(data)) + data


@dataclass
class MsgTx:
    """A bitcoin transaction."""

    version: int = 1
    tx_in: list[TxIn] = field(default_factory=list)
    tx_out: list[TxOut] = field(default_factory=list)
    lock_time: int = 0

    def has_witness(self) -> bool:
        """Return whether any input carries witness data."""
        return any(txin.witness for txin in self.tx_in)

    def tx_hash(self) -> bytes:
        """Return the double-sha256 of the witness-free serialization."""
        raw = self._serialize(with_witness=False)
        return hashlib.sha256(hashlib.sha256(raw).digest()).digest()

    def _serialize(self, with_witness: bool) -> bytes:
        segwit = with_witness and self.has_witness()
        parts = [struct.pack("<i", self.version)]
        if segwit:
            parts.append(b"\x00\x01")
        parts.append(_var_int(len(self.tx_in)))
        for txin in self.tx_in:
            parts.append(txin.previous_out_point.hash)
            parts.append(struct.pack("<I", txin.previous_out_point.index))
            parts.append(_var_bytes(txin.signature_script))
            parts.append(struct.pack("<I", txin.sequence))
        parts.append(_var_int(len(self.tx_out)))
        for txout in self.tx_out:
            parts.append(struct.pack("<q", txout.value))
            parts.append(_var_bytes(txout.pk_script))
        if segwit:
            for txin in self.tx_in:
                parts.append(_var_int(len(txin.witness)))
                parts.extend(_var_bytes(item) for item in txin.witness)
        parts.append(struct.pack("<I", self.lock_time))
        return b"".join(parts)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    def read(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise ValueError("unexpected end of transaction data")
        chunk = self._data[self._pos : end]
        self._pos = end
        return chunk

    def unpack(self, fmt: str) -> int:
        (value,) = struct.unpack(fmt, self.read(struct.calcsize(fmt)))
        return value

    def var_int(self) -> int:
        prefix = self.read(1)[0]
        if prefix < 0xFD:
            return prefix
        fmt, minimum = {
            0xFD: ("<H", 0xFD),
            0xFE: ("<I", 0x10000),
            0xFF: ("<Q", 0x100000000),
        }[prefix]
        value = self.unpack(fmt)
        if value < minimum:
            raise ValueError("non-canonical varint")
        return value

    def var_bytes(self) -> bytes:
        return self.read(self.var_int())


def _read_txin(reader: _Reader) -> TxIn:
    out_hash = reader.read(32)
    index = reader.unpack("<I")
    script = reader.var_bytes()
    sequence = reader.unpack("<I")
    return TxIn(OutPoint(out_hash, index), script, [], sequence)


def _read_txout(reader: _Reader) -> TxOut:
    value = reader.unpack("<q")
    return TxOut(value, reader.var_bytes())


def encode_tx(tx: MsgTx) -> bytes:
    """Serialize a transaction, including witness data when present."""
    return tx._serialize(with_witness=True)


def decode_tx(raw: bytes) -> MsgTx:
    """Parse a serialized transaction that may carry witness data."""
    reader = _Reader(raw)
    version = reader.unpack("<i")
    count = reader.var_int()
    segwit = False
    if count == 0:
        flag = reader.read(1)[0]
        if flag != 0x01:
            raise ValueError(f"witness tx but flag byte is {flag:#x}")
        segwit = True
        count = reader.var_int()
    inputs = [_read_txin(reader) for _ in range(count)]
    outputs = [_read_txout(reader) for _ in range(reader.var_int())]
    if segwit:
        for txin in inputs:
            txin.witness = [reader.var_bytes() for _ in range(reader.var_int())]
    lock_time = reader.unpack("<I")
    return MsgTx(version, inputs, outputs, lock_time)


def get_script_output(tx: MsgTx, pk_script: bytes) -> tuple[OutPoint, int]:
    """Locate the output paying to pk_script and return its outpoint and value."""
    for index, output in enumerate(tx.tx_out):
        if output.pk_script == pk_script:
            return OutPoint(tx.tx_hash(), index), output.value
    raise ValueError("cannot determine outpoint")


def get_tx_input_by_outpoint(tx: MsgTx, outpoint: OutPoint) -> TxIn:
    """Return the input of tx that spends the given outpoint."""
    for txin in tx.tx_in:
        if txin.previous_out_point == outpoint:
            return txin
    raise LookupError("input not found")