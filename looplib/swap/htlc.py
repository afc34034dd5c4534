"""On-chain swap htlc scripts and witnesses."""

from __future__ import annotations

import enum
import hashlib
import struct
from dataclasses import dataclass

from Crypto.Hash import RIPEMD160

from looplib.swap.net import (
    MAIN_NET_PARAMS,
    Address,
    ChainParams,
    encode_p2sh_address,
    encode_p2wsh_address,
    hash160,
)

# Key family used to derive keys that can spend the htlc.
KEY_FAMILY = 99

KEY_LENGTH = 33
HASH_LENGTH = 32

SIGHASH_ALL = 0x01

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_1NEGATE = 0x4F
OP_1 = 0x51
OP_IF = 0x63
OP_ELSE = 0x67
OP_ENDIF = 0x68
OP_DROP = 0x75
OP_SIZE = 0x82
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC
OP_CHECKLOCKTIMEVERIFY = 0xB1


class HtlcOutputType(enum.IntEnum):
    """Output type of the published htlc."""

    P2WSH = 0
    NP2WSH = 1


def _ripemd160(data: bytes) -> bytes:
    return RIPEMD160.new(data).digest()


def _check_length(value: bytes, length: int, what: str) -> bytes:
    value = bytes(value)
    if len(value) != length:
        raise ValueError(f"{what} must be {length} bytes")
    return value


def _push_data(data: bytes) -> bytes:
    size = len(data)
    if size == 0 or (size == 1 and data[0] == 0):
        return bytes([OP_0])
    if size == 1 and 1 <= data[0] <= 16:
        return bytes([OP_1 + data[0] - 1])
    if size == 1 and data[0] == 0x81:
        return bytes([OP_1NEGATE])
    if size <= 75:
        return bytes([size]) + data
    if size <= 0xFF:
        return bytes([OP_PUSHDATA1, size]) + data
    if size <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + struct.pack("<H", size) + data
    return bytes([OP_PUSHDATA4]) + struct.pack("<I", size) + data


def _script_num(value: int) -> bytes:
    if value == 0:
        return b""
    negative = value < 0
    magnitude = abs(value)
    result = bytearray()
    while magnitude:
        result.append(magnitude & 0xFF)
        magnitude >>= 8
    if result[-1] & 0x80:
        result.append(0x80 if negative else 0x00)
    elif negative:
        result[-1] |= 0x80
    return bytes(result)


def _push_int(value: int) -> bytes:
    if value == 0:
        return bytes([OP_0])
    if value == -1 or 1 <= value <= 16:
        return bytes([OP_1 + value - 1])
    return _push_data(_script_num(value))


def swap_htlc_script(
    cltv_expiry: int, sender_key: bytes, receiver_key: bytes, swap_hash: bytes
) -> bytes:
    """Return the htlc witness script.

    OP_SIZE 32 OP_EQUAL
    OP_IF
       OP_HASH160 <ripemd160(swap_hash)> OP_EQUALVERIFY <receiver key>
    OP_ELSE
       OP_DROP <cltv timeout> OP_CHECKLOCKTIMEVERIFY OP_DROP <sender key>
    OP_ENDIF
    OP_CHECKSIG
    """
    sender_key = _check_length(sender_key, KEY_LENGTH, "sender key")
    receiver_key = _check_length(receiver_key, KEY_LENGTH, "receiver key")
    swap_hash = _check_length(swap_hash, HASH_LENGTH, "swap hash")
    return b"".join(
        [
            bytes([OP_SIZE]),
            _push_int(32),
            bytes([OP_EQUAL, OP_IF, OP_HASH160]),
            _push_data(_ripemd160(swap_hash)),
            bytes([OP_EQUALVERIFY]),
            _push_data(receiver_key),
            bytes([OP_ELSE, OP_DROP]),
            _push_int(cltv_expiry),
            bytes([OP_CHECKLOCKTIMEVERIFY, OP_DROP]),
            _push_data(sender_key),
            bytes([OP_ENDIF, OP_CHECKSIG]),
        ]
    )


@dataclass(frozen=True)
class Htlc:
    """Htlc scripts and address from the receiver's perspective."""

    script: bytes
    pk_script: bytes
    hash: bytes
    output_type: HtlcOutputType
    chain_params: ChainParams
    address: Address
    sig_script: bytes

    def gen_success_witness(self, receiver_sig: bytes, preimage: bytes) -> list[bytes]:
        """Return the witness that spends the htlc with the preimage."""
        if hashlib.sha256(bytes(preimage)).digest() != self.hash:
            raise ValueError("preimage doesn't match hash")
        return [bytes(receiver_sig) + bytes([SIGHASH_ALL]), bytes(preimage), self.script]

    def is_success_witness(self, witness: list[bytes]) -> bool:
        """Return whether a witness stack redeems the htlc through the success path."""
        if len(witness) != 3:
            return False
        return bytes(witness[1]) != b"\x00"

    def gen_timeout_witness(self, sender_sig: bytes) -> list[bytes]:
        """Return the witness that spends the htlc after the timeout."""
        return [bytes(sender_sig) + bytes([SIGHASH_ALL]), b"\x00", self.script]

    def max_success_witness_size(self) -> int:
        """Worst-case size of a success witness."""
        # element count, sig length, sig, preimage length, preimage,
        # script length, script
        return 1 + 1 + 73 + 1 + 33 + 1 + len(self.script)

    def max_timeout_witness_size(self) -> int:
        """Worst-case size of a timeout witness."""
        # element count, sig length, sig, zero length, zero,
        # script length, script
        return 1 + 1 + 73 + 1 + 1 + 1 + len(self.script)


def new_htlc(
    cltv_expiry: int,
    sender_key: bytes,
    receiver_key: bytes,
    swap_hash: bytes,
    output_type: HtlcOutputType,
    chain_params: ChainParams,
) -> Htlc:
    """Build the htlc for the given swap parameters and output type."""
    try:
        output_type = HtlcOutputType(output_type)
    except ValueError:
        raise ValueError("unknown output type") from None

    script = swap_htlc_script(cltv_expiry, sender_key, receiver_key, swap_hash)
    p2wsh_pk_script = bytes([OP_0]) + _push_data(hashlib.sha256(script).digest())

    if output_type is HtlcOutputType.NP2WSH:
        pk_script = (
            bytes([OP_HASH160]) + _push_data(hash160(p2wsh_pk_script)) + bytes([OP_EQUAL])
        )
        sig_script = _push_data(p2wsh_pk_script)
        address = encode_p2sh_address(p2wsh_pk_script, chain_params)
    else:
        pk_script = p2wsh_pk_script
        sig_script = b""
        address = encode_p2wsh_address(p2wsh_pk_script[2:], chain_params)

    return Htlc(
        script=script,
        pk_script=pk_script,
        hash=bytes(swap_hash),
        output_type=output_type,
        chain_params=chain_params,
        address=address,
        sig_script=sig_script,
    )


# Template used for fee estimation; the maximum cltv value gives the
# worst-case script size.
QUOTE_HTLC = new_htlc(
    -1, bytes(KEY_LENGTH), bytes(KEY_LENGTH), bytes(HASH_LENGTH),
    HtlcOutputType.P2WSH, MAIN_NET_PARAMS,
)