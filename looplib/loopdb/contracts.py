"""Swap contracts, swap events and their binary storage encoding."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Optional

from looplib.loopdb.swapstate import SwapCost, SwapState, SwapStateData
from looplib.swap.net import Address, ChainParams, decode_address

KEY_LENGTH = 33
PREIMAGE_LENGTH = 32

# Largest string accepted when reading a length-prefixed string.
MAX_VAR_STRING_LENGTH = 32 * 1024 * 1024

_EVENT_FORMAT = ">qBqqq"


def itob(value: int) -> bytes:
    """Return the 8-byte big endian representation of value."""
    return value.to_bytes(8, "big")


@dataclass(kw_only=True)
class SwapContract:
    """Base data persisted for a pending swap. Times are unix nanoseconds."""

    preimage: bytes = bytes(PREIMAGE_LENGTH)
    amount_requested: int = 0
    sender_key: bytes = bytes(KEY_LENGTH)
    receiver_key: bytes = bytes(KEY_LENGTH)
    cltv_expiry: int = 0
    max_swap_fee: int = 0
    max_miner_fee: int = 0
    initiation_height: int = 0
    initiation_time: int = 0


@dataclass(kw_only=True)
class LoopInContract(SwapContract):
    """Persisted data of a loop in swap."""

    htlc_conf_target: int = 0
    # Channel to charge; None means any channel.
    loop_in_channel: Optional[int] = None
    external_htlc: bool = False


@dataclass(kw_only=True)
class LoopOutContract(SwapContract):
    """Persisted data of a loop out swap."""

    dest_addr: Optional[Address] = None
    swap_invoice: str = ""
    max_swap_routing_fee: int = 0
    sweep_conf_target: int = 0
    # Channel to loop out; None means any channel.
    uncharge_channel: Optional[int] = None
    prepay_invoice: str = ""
    max_prepay_routing_fee: int = 0


@dataclass
class LoopEvent:
    """A state change of a swap at a point in time (unix nanoseconds)."""

    state_data: SwapStateData = field(default_factory=SwapStateData)
    time: int = 0


@dataclass(kw_only=True)
class Loop:
    """Fields shared by loop in and loop out swaps."""

    hash: bytes = bytes(32)
    events: list[LoopEvent] = field(default_factory=list)

    def last_update(self) -> Optional[LoopEvent]:
        """Return the most recent event, or None if there is none."""
        return self.events[-1] if self.events else None

    def state(self) -> SwapStateData:
        """Return the most recent state of this swap."""
        last = self.last_update()
        if last is None:
            return SwapStateData(state=SwapState.INITIATED)
        return last.state_data


@dataclass(kw_only=True)
class LoopIn(Loop):
    """A loop in contract together with its updates."""

    contract: LoopInContract = field(default_factory=LoopInContract)

    def last_update_time(self) -> int:
        """Return the time of the last update, or the initiation time."""
        last = self.last_update()
        return self.contract.initiation_time if last is None else last.time


@dataclass(kw_only=True)
class LoopOut(Loop):
    """A loop out contract together with its updates."""

    contract: LoopOutContract = field(default_factory=LoopOutContract)

    def last_update_time(self) -> int:
        """Return the time of the last update, or the initiation time."""
        last = self.last_update()
        return self.contract.initiation_time if last is None else last.time


def _pack(fmt: str, *values) -> bytes:
    try:
        return struct.pack(fmt, *values)
    except struct.error as exc:
        raise ValueError(f"value out of range: {exc}") from None


def _var_int(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    if value <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", value)
    return b"\xff" + struct.pack("<Q", value)


def _var_string(text: str) -> bytes:
    data = text.encode("utf-8", "surrogateescape")
    return _var_int(len(data)) + data


def _key_bytes(key: bytes, what: str) -> bytes:
    key = bytes(key)
    if len(key) != KEY_LENGTH:
        raise ValueError(f"{what} has invalid length")
    return key


def _preimage_bytes(preimage: bytes) -> bytes:
    preimage = bytes(preimage)
    if len(preimage) != PREIMAGE_LENGTH:
        raise ValueError("preimage has invalid length")
    return preimage


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    def read(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise ValueError("unexpected end of data")
        chunk = self._data[self._pos : end]
        self._pos = end
        return chunk

    def unpack(self, fmt: str):
        (value,) = struct.unpack(fmt, self.read(struct.calcsize(fmt)))
        return value

    def key(self, what: str) -> bytes:
        remaining = len(self._data) - self._pos
        if remaining == 0:
            raise ValueError("unexpected end of data")
        if remaining < KEY_LENGTH:
            raise ValueError(f"{what} has invalid length")
        return self.read(KEY_LENGTH)

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

    def var_string(self) -> str:
        length = self.var_int()
        if length > MAX_VAR_STRING_LENGTH:
            raise ValueError("variable length string is too long")
        return self.read(length).decode("utf-8", "surrogateescape")


def _state(value: int) -> SwapState:
    try:
        return SwapState(value)
    except ValueError:
        raise ValueError(f"unknown swap state {value}") from None


def serialize_loop_event(time_ns: int, state: SwapStateData) -> bytes:
    """Encode a swap state update."""
    return _pack(
        _EVENT_FORMAT,
        time_ns,
        int(state.state),
        state.cost.server,
        state.cost.onchain,
        state.cost.offchain,
    )


def deserialize_loop_event(value: bytes) -> LoopEvent:
    """Decode a swap state update."""
    reader = _Reader(value)
    time_ns = reader.unpack(">q")
    state = _state(reader.unpack(">B"))
    cost = SwapCost(
        server=reader.unpack(">q"),
        onchain=reader.unpack(">q"),
        offchain=reader.unpack(">q"),
    )
    return LoopEvent(SwapStateData(state, cost), time_ns)


def serialize_loop_in_contract(contract: LoopInContract) -> bytes:
    """Encode a loop in contract."""
    return b"".join(
        [
            _pack(">q", contract.initiation_time),
            _preimage_bytes(contract.preimage),
            _pack(">q", contract.amount_requested),
            _key_bytes(contract.sender_key, "sender key"),
            _key_bytes(contract.receiver_key, "receiver key"),
            _pack(">i", contract.cltv_expiry),
            _pack(">q", contract.max_miner_fee),
            _pack(">q", contract.max_swap_fee),
            _pack(">i", contract.initiation_height),
            _pack(">i", contract.htlc_conf_target),
            _pack(">Q", contract.loop_in_channel or 0),
            _pack(">?", contract.external_htlc),
        ]
    )


def deserialize_loop_in_contract(value: bytes) -> LoopInContract:
    """Decode a loop in contract."""
    reader = _Reader(value)
    initiation_time = reader.unpack(">q")
    preimage = reader.read(PREIMAGE_LENGTH)
    amount_requested = reader.unpack(">q")
    sender_key = reader.key("sender key")
    receiver_key = reader.key("receiver key")
    cltv_expiry = reader.unpack(">i")
    max_miner_fee = reader.unpack(">q")
    max_swap_fee = reader.unpack(">q")
    initiation_height = reader.unpack(">i")
    htlc_conf_target = reader.unpack(">i")
    channel = reader.unpack(">Q")
    external_htlc = reader.read(1)[0] != 0
    return LoopInContract(
        preimage=preimage,
        amount_requested=amount_requested,
        sender_key=sender_key,
        receiver_key=receiver_key,
        cltv_expiry=cltv_expiry,
        max_swap_fee=max_swap_fee,
        max_miner_fee=max_miner_fee,
        initiation_height=initiation_height,
        initiation_time=initiation_time,
        htlc_conf_target=htlc_conf_target,
        loop_in_channel=channel or None,
        external_htlc=external_htlc,
    )


def serialize_loop_out_contract(contract: LoopOutContract) -> bytes:
    """Encode a loop out contract."""
    if contract.dest_addr is None:
        raise ValueError("destination address is missing")
    return b"".join(
        [
            _pack(">q", contract.initiation_time),
            _preimage_bytes(contract.preimage),
            _pack(">q", contract.amount_requested),
            _var_string(contract.prepay_invoice),
            _key_bytes(contract.sender_key, "sender key"),
            _key_bytes(contract.receiver_key, "receiver key"),
            _pack(">i", contract.cltv_expiry),
            _pack(">q", contract.max_miner_fee),
            _pack(">q", contract.max_swap_fee),
            _pack(">q", contract.max_prepay_routing_fee),
            _pack(">i", contract.initiation_height),
            _var_string(contract.dest_addr.encode()),
            _var_string(contract.swap_invoice),
            _pack(">i", contract.sweep_conf_target),
            _pack(">q", contract.max_swap_routing_fee),
            _pack(">Q", contract.uncharge_channel or 0),
        ]
    )


def deserialize_loop_out_contract(
    value: bytes, chain_params: ChainParams
) -> LoopOutContract:
    """Decode a loop out contract whose address belongs to chain_params."""
    reader = _Reader(value)
    initiation_time = reader.unpack(">q")
    preimage = reader.read(PREIMAGE_LENGTH)
    amount_requested = reader.unpack(">q")
    prepay_invoice = reader.var_string()
    sender_key = reader.key("sender key")
    receiver_key = reader.key("receiver key")
    cltv_expiry = reader.unpack(">i")
    max_miner_fee = reader.unpack(">q")
    max_swap_fee = reader.unpack(">q")
    max_prepay_routing_fee = reader.unpack(">q")
    initiation_height = reader.unpack(">i")
    dest_addr = decode_address(reader.var_string(), chain_params)
    swap_invoice = reader.var_string()
    sweep_conf_target = reader.unpack(">i")
    max_swap_routing_fee = reader.unpack(">q")
    channel = reader.unpack(">Q")
    return LoopOutContract(
        preimage=preimage,
        amount_requested=amount_requested,
        sender_key=sender_key,
        receiver_key=receiver_key,
        cltv_expiry=cltv_expiry,
        max_swap_fee=max_swap_fee,
        max_miner_fee=max_miner_fee,
        initiation_height=initiation_height,
        initiation_time=initiation_time,
        dest_addr=dest_addr,
        swap_invoice=swap_invoice,
        max_swap_routing_fee=max_swap_routing_fee,
        sweep_conf_target=sweep_conf_target,
        uncharge_channel=channel or None,
        prepay_invoice=prepay_invoice,
        max_prepay_routing_fee=max_prepay_routing_fee,
    )