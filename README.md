# looplib

Building blocks for loop-in and loop-out submarine swaps: on-chain HTLC
scripts, swap fee arithmetic, bitcoin address and transaction encoding, and a
persistent store that keeps swap contracts together with their state history.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Modules

### `looplib.version`

- `version(commit="")` returns the version string, e.g. `"0.2.2-alpha commit=abc"`.
- `normalize_ver_string(value)` drops every character that is not allowed in a
  semantic-versioning pre-release string.

### `looplib.swap.net`

- `ChainParams` holds the address prefixes and bech32 prefix of a network.
  `chain_params_from_network(name)` accepts `"mainnet"`, `"testnet"`,
  `"regtest"` and `"simnet"`, and raises `ValueError` for anything else.
- `Address` (with an `AddressType` of `P2PKH`, `P2SH`, `P2WPKH` or `P2WSH`)
  checks its payload length; `Address.encode()` (also `str(address)`) gives the
  base58check or bech32 text.
- `encode_p2sh_address(script, params)` and
  `encode_p2wsh_address(program, params)` build addresses;
  `decode_address(text, params)` parses one and raises `ValueError` when it is
  malformed or belongs to another network.
- `hash160(data)` is ripemd160 of sha256.

### `looplib.swap.fees`

- `calc_fee(amount, fee_base, fee_rate)` returns
  `fee_base + amount * fee_rate / 1_000_000`, with the rate part truncated
  toward zero.
- `fee_rate_as_percentage(fee_rate)` converts a parts-per-million rate to a
  percentage.

### `looplib.swap.tx`

- `MsgTx`, `TxIn`, `TxOut` and `OutPoint` dataclasses.
  `MsgTx.tx_hash()` is the double sha256 of the witness-free serialization;
  `MsgTx.has_witness()` tells whether any input carries witness data.
- `encode_tx(tx)` / `decode_tx(raw)` handle the witness serialization;
  `decode_tx` raises `ValueError` on truncated or malformed data.
- `get_script_output(tx, pk_script)` returns `(OutPoint, value)` of the output
  paying to the script, or raises `ValueError`.
- `get_tx_input_by_outpoint(tx, outpoint)` returns the spending input, or
  raises `LookupError`.

### `looplib.swap.htlc`

- `swap_htlc_script(cltv_expiry, sender_key, receiver_key, swap_hash)` returns
  the HTLC witness script (33-byte keys, 32-byte hash).
- `new_htlc(cltv_expiry, sender_key, receiver_key, swap_hash, output_type,
  chain_params)` returns an `Htlc` for `HtlcOutputType.P2WSH` or
  `HtlcOutputType.NP2WSH` (nested in P2SH), holding `script`, `pk_script`,
  `sig_script` and `address`.
- `Htlc.gen_success_witness(sig, preimage)` (raises `ValueError` when the
  preimage does not hash to the swap hash), `Htlc.gen_timeout_witness(sig)`,
  `Htlc.is_success_witness(witness)`, and the worst-case sizes
  `Htlc.max_success_witness_size()` / `Htlc.max_timeout_witness_size()`.
- `QUOTE_HTLC` is a template HTLC for fee estimation; `KEY_FAMILY` is the key
  family used for swap keys.

### `looplib.loopdb.swapstate`

- `SwapState` (`INITIATED`, `PREIMAGE_REVEALED`, `SUCCESS`,
  `FAIL_OFFCHAIN_PAYMENTS`, `FAIL_TIMEOUT`, `FAIL_SWEEP_TIMEOUT`,
  `FAIL_INSUFFICIENT_VALUE`, `FAIL_TEMPORARY`, `HTLC_PUBLISHED`,
  `INVOICE_SETTLED`); `SwapState.state_type()` returns a `SwapStateType`
  (`PENDING`, `SUCCESS`, `FAIL`).
- `SwapCost` (`server`, `onchain`, `offchain`) and `SwapStateData`
  (`state`, `cost`).

### `looplib.loopdb.contracts`

- `SwapContract`, `LoopInContract` and `LoopOutContract` hold the persisted
  swap terms (keyword-only dataclasses; times are unix nanoseconds).
- `LoopEvent`, `Loop`, `LoopIn` and `LoopOut` hold a contract with its
  updates; `Loop.state()` and `Loop.last_update()` give the latest state, and
  `last_update_time()` falls back to the contract's initiation time.
- `serialize_loop_event` / `deserialize_loop_event`,
  `serialize_loop_in_contract` / `deserialize_loop_in_contract`,
  `serialize_loop_out_contract` / `deserialize_loop_out_contract(value,
  chain_params)` and `itob(value)` implement the binary storage encoding.

### `looplib.loopdb.store`

- `SwapStore` is the abstract store interface.
- `SqliteSwapStore(db_path, chain_params)` creates the directory if needed and
  keeps `loop.db` in it. It records a schema version, applies migrations on
  open, and raises `DatabaseReversionError` when the database is newer than
  the code. It can be used as a context manager.
- `create_loop_in` / `create_loop_out` raise `ValueError` when the hash does
  not match the preimage or the swap already exists; `update_loop_in` /
  `update_loop_out` append an event and raise `LookupError` for an unknown
  swap; `fetch_loop_in_swaps` / `fetch_loop_out_swaps` return all swaps with
  their events in order; `db_version()` reports the schema version.

## Example

```python
import hashlib

from looplib.loopdb.contracts import LoopInContract
from looplib.loopdb.store import SqliteSwapStore
from looplib.loopdb.swapstate import SwapState, SwapStateData
from looplib.swap.net import chain_params_from_network

params = chain_params_from_network("mainnet")
preimage = bytes(range(32))
swap_hash = hashlib.sha256(preimage).digest()

contract = LoopInContract(
    preimage=preimage,
    amount_requested=100_000,
    sender_key=bytes(33),
    receiver_key=bytes(33),
    cltv_expiry=700,
    max_swap_fee=1_000,
    max_miner_fee=5_000,
    initiation_height=600,
    initiation_time=0,
    htlc_conf_target=2,
)

with SqliteSwapStore("/tmp/loopdata", params) as store:
    store.create_loop_in(swap_hash, contract)
    store.update_loop_in(swap_hash, 1, SwapStateData(state=SwapState.HTLC_PUBLISHED))
    for swap in store.fetch_loop_in_swaps():
        print(swap.state().state)
```

## What this package does not do

It does not run swaps. There is no client for a swap server, no connection to
a lightning or bitcoin node, no transaction signing, fee estimation, sweeping
or publishing, and no command-line program or daemon. It provides the scripts,
encodings, state definitions and storage on which such a program can be built.