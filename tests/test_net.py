import pytest

from looplib.swap.net import (
    MAIN_NET_PARAMS,
    REGRESSION_NET_PARAMS,
    SIM_NET_PARAMS,
    TEST_NET3_PARAMS,
    Address,
    AddressType,
    chain_params_from_network,
    decode_address,
    encode_p2sh_address,
    encode_p2wsh_address,
    hash160,
)


@pytest.mark.parametrize(
    "network, params",
    [
        ("mainnet", MAIN_NET_PARAMS),
        ("testnet", TEST_NET3_PARAMS),
        ("regtest", REGRESSION_NET_PARAMS),
        ("simnet", SIM_NET_PARAMS),
    ],
)
def test_chain_params_from_network(network, params):
    assert chain_params_from_network(network) is params


def test_unknown_network():
    with pytest.raises(ValueError, match="unknown network"):
        chain_params_from_network("nonet")


def test_hash160_of_empty():
    assert hash160(b"") == bytes.fromhex("b472a266d0bd89c13706a4132ccfb16f7c3b9fcb")


def test_decode_bech32_p2wpkh_uppercase():
    text = "BC1QW508D6QEJXTDG4Y5R3ZARVARY0C5XW7KV8F3T4"
    address = decode_address(text, MAIN_NET_PARAMS)
    assert address.address_type is AddressType.P2WPKH
    assert address.payload == bytes.fromhex("751e76e8199196d454941c45d1b3a323f1433bd6")
    assert address.encode() == text.lower()


def test_encode_testnet_p2wsh():
    program = bytes.fromhex(
        "1863143c14c5166804bd19203356da136c985678cd4d27a1b8c6329604903262"
    )
    address = encode_p2wsh_address(program, TEST_NET3_PARAMS)
    assert (
        str(address)
        == "tb1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3q0sl5k7"
    )
    assert decode_address(str(address), TEST_NET3_PARAMS) == address


def test_p2sh_round_trip():
    address = encode_p2sh_address(bytes([0]), MAIN_NET_PARAMS)
    assert address.address_type is AddressType.P2SH
    assert address.payload == hash160(bytes([0]))
    assert decode_address(address.encode(), MAIN_NET_PARAMS) == address


@pytest.mark.parametrize("params", [TEST_NET3_PARAMS, REGRESSION_NET_PARAMS, SIM_NET_PARAMS])
def test_p2pkh_round_trip(params):
    address = Address(AddressType.P2PKH, bytes(range(20)), params)
    assert decode_address(str(address), params) == address


def test_bech32_wrong_network():
    address = encode_p2wsh_address(bytes(32), MAIN_NET_PARAMS)
    with pytest.raises(ValueError):
        decode_address(str(address), TEST_NET3_PARAMS)


def test_base58_wrong_network():
    address = Address(AddressType.P2PKH, bytes(20), SIM_NET_PARAMS)
    with pytest.raises(ValueError, match="unknown address type"):
        decode_address(str(address), MAIN_NET_PARAMS)


def test_bech32_bad_checksum():
    with pytest.raises(ValueError, match="checksum"):
        decode_address("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t5", MAIN_NET_PARAMS)


def test_bech32_mixed_case():
    with pytest.raises(ValueError, match="mixed case"):
        decode_address("bc1qW508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4", MAIN_NET_PARAMS)


def test_base58_bad_checksum():
    text = str(encode_p2sh_address(b"abc", MAIN_NET_PARAMS))
    corrupted = text[:-1] + ("2" if text[-1] != "2" else "3")
    with pytest.raises(ValueError):
        decode_address(corrupted, MAIN_NET_PARAMS)


def test_p2wsh_program_length_checked():
    with pytest.raises(ValueError):
        encode_p2wsh_address(bytes(20), MAIN_NET_PARAMS)