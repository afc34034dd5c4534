"""Bitcoin network parameters and address encoding."""

from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass

from Crypto.Hash import RIPEMD160


@dataclass(frozen=True)
class ChainParams:
    """Address-relevant parameters of a bitcoin network."""

    name: str
    pubkey_hash_addr_id: int
    script_hash_addr_id: int
    bech32_hrp: str


MAIN_NET_PARAMS = ChainParams("mainnet", 0x00, 0x05, "bc")
TEST_NET3_PARAMS = ChainParams("testnet3", 0x6F, 0xC4, "tb")
REGRESSION_NET_PARAMS = ChainParams("regtest", 0x6F, 0xC4, "bcrt")
SIM_NET_PARAMS = ChainParams("simnet", 0x3F, 0x7B, "sb")

_NETWORKS = {
    "mainnet": MAIN_NET_PARAMS,
    "testnet": TEST_NET3_PARAMS,
    "regtest": REGRESSION_NET_PARAMS,
    "simnet": SIM_NET_PARAMS,
}

_KNOWN_HRPS = frozenset(params.bech32_hrp for params in _NETWORKS.values())

_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
_BECH32_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)


def chain_params_from_network(network: str) -> ChainParams:
    """Return the chain parameters for a network name."""
    try:
        return _NETWORKS[network]
    except KeyError:
        raise ValueError("unknown network") from None


def hash160(data: bytes) -> bytes:
    """Return ripemd160(sha256(data))."""
    return RIPEMD160.new(hashlib.sha256(data).digest()).digest()


def _sha256d(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def _base58_encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, remainder = divmod(number, 58)
        digits.append(_BASE58_ALPHABET[remainder])
    leading = len(data) - len(data.lstrip(b"\x00"))
    return "1" * leading + "".join(reversed(digits))


def _base58_decode(text: str) -> bytes:
    number = 0
    for char in text:
        index = _BASE58_ALPHABET.find(char)
        if index < 0:
            raise ValueError(f"invalid base58 character {char!r}")
        number = number * 58 + index
    body = number.to_bytes((number.bit_length() + 7) // 8, "big")
    leading = len(text) - len(text.lstrip("1"))
    return b"\x00" * leading + body


def _bech32_polymod(values: list[int]) -> int:
    checksum = 1
    for value in values:
        top = checksum >> 25
        checksum = ((checksum & 0x1FFFFFF) << 5) ^ value
        for bit, generator in enumerate(_BECH32_GENERATORS):
            if (top >> bit) & 1:
                checksum ^= generator
    return checksum


def _bech32_hrp_expand(hrp: str) -> list[int]:
    return [ord(char) >> 5 for char in hrp] + [0] + [ord(char) & 31 for char in hrp]


def _convert_bits(data, from_bits: int, to_bits: int, pad: bool) -> list[int]:
    accumulator = 0
    bits = 0
    result = []
    max_value = (1 << to_bits) - 1
    max_accumulator = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise ValueError("invalid data for bit conversion")
        accumulator = ((accumulator << from_bits) | value) & max_accumulator
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            result.append((accumulator >> bits) & max_value)
    if pad:
        if bits:
            result.append((accumulator << (to_bits - bits)) & max_value)
    elif bits >= from_bits or (accumulator << (to_bits - bits)) & max_value:
        raise ValueError("invalid padding in bech32 data")
    return result


def _bech32_encode(hrp: str, data: list[int]) -> str:
    values = _bech32_hrp_expand(hrp) + data
    polymod = _bech32_polymod(values + [0] * 6) ^ 1
    checksum = [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]
    return hrp + "1" + "".join(_BECH32_CHARSET[d] for d in data + checksum)


def _bech32_decode(text: str) -> tuple[str, list[int]]:
    if any(ord(char) < 33 or ord(char) > 126 for char in text):
        raise ValueError("invalid character in bech32 string")
    if text.lower() != text and text.upper() != text:
        raise ValueError("bech32 string has mixed case")
    text = text.lower()
    separator = text.rfind("1")
    if separator < 1 or separator + 7 > len(text) or len(text) > 90:
        raise ValueError("invalid bech32 string length")
    hrp = text[:separator]
    try:
        data = [_BECH32_CHARSET.index(char) for char in text[separator + 1 :]]
    except ValueError:
        raise ValueError("invalid bech32 character") from None
    if _bech32_polymod(_bech32_hrp_expand(hrp) + data) != 1:
        raise ValueError("invalid bech32 checksum")
    return hrp, data[:-6]


class AddressType(enum.Enum):
    """Kind of script an address pays to."""

    P2PKH = "p2pkh"
    P2SH = "p2sh"
    P2WPKH = "p2wpkh"
    P2WSH = "p2wsh"


_PAYLOAD_LENGTHS = {
    AddressType.P2PKH: 20,
    AddressType.P2SH: 20,
    AddressType.P2WPKH: 20,
    AddressType.P2WSH: 32,
}


@dataclass(frozen=True)
class Address:
    """A bitcoin address: its type, hash payload and network."""

    address_type: AddressType
    payload: bytes
    params: ChainParams

    def __post_init__(self) -> None:
        expected = _PAYLOAD_LENGTHS[self.address_type]
        if len(self.payload) != expected:
            raise ValueError(
                f"{self.address_type.value} payload must be {expected} bytes"
            )

    def encode(self) -> str:
        """Return the textual form of the address."""
        if self.address_type in (AddressType.P2WPKH, AddressType.P2WSH):
            data = [0] + _convert_bits(self.payload, 8, 5, True)
            return _bech32_encode(self.params.bech32_hrp, data)
        if self.address_type is AddressType.P2PKH:
            prefix = self.params.pubkey_hash_addr_id
        else:
            prefix = self.params.script_hash_addr_id
        body = bytes([prefix]) + self.payload
        return _base58_encode(body + _sha256d(body)[:4])

    def __str__(self) -> str:
        return self.encode()


def encode_p2sh_address(script: bytes, params: ChainParams) -> Address:
    """Return the pay-to-script-hash address of a serialized script."""
    return Address(AddressType.P2SH, hash160(script), params)


def encode_p2wsh_address(program: bytes, params: ChainParams) -> Address:
    """Return the pay-to-witness-script-hash address of a 32-byte program."""
    return Address(AddressType.P2WSH, bytes(program), params)


def _decode_segwit(address: str, params: ChainParams) -> Address:
    hrp, data = _bech32_decode(address)
    if hrp != params.bech32_hrp:
        raise ValueError("address is not for the expected network")
    if not data:
        raise ValueError("empty segwit data")
    if data[0] != 0:
        raise ValueError(f"unsupported witness version {data[0]}")
    program = bytes(_convert_bits(data[1:], 5, 8, False))
    if len(program) == 20:
        return Address(AddressType.P2WPKH, program, params)
    if len(program) == 32:
        return Address(AddressType.P2WSH, program, params)
    raise ValueError("invalid witness program length")


def decode_address(address: str, params: ChainParams) -> Address:
    """Parse an address string that must belong to the given network."""
    lowered = address.lower()
    separator = lowered.rfind("1")
    if separator > 1 and lowered[:separator] in _KNOWN_HRPS:
        return _decode_segwit(address, params)

    raw = _base58_decode(address)
    if len(raw) != 25:
        raise ValueError("invalid address length")
    body, checksum = raw[:-4], raw[-4:]
    if _sha256d(body)[:4] != checksum:
        raise ValueError("invalid address checksum")
    prefix, payload = body[0], body[1:]
    if prefix == params.pubkey_hash_addr_id:
        return Address(AddressType.P2PKH, payload, params)
    if prefix == params.script_hash_addr_id:
        return Address(AddressType.P2SH, payload, params)
    raise ValueError("unknown address type")