"""Swap states, their classification and accrued swap costs."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class SwapStateType(enum.IntEnum):
    """Broad category a swap state falls into."""

    PENDING = 0
    SUCCESS = 1
    FAIL = 2


class SwapState(enum.IntEnum):
    """State of a swap; the union of loop in and loop out states."""

    # The server has been contacted and the payments have been started.
    INITIATED = 0
    # Publication of the sweep tx has been attempted; the preimage is no
    # longer secret.
    PREIMAGE_REVEALED = 1
    # The sweep confirmed and the server pulled the off-chain htlc.
    SUCCESS = 2
    # No route satisfying the payment restrictions could be found.
    FAIL_OFFCHAIN_PAYMENTS = 3
    # The on-chain htlc did not confirm in time.
    FAIL_TIMEOUT = 4
    # The server revoked the htlc before it was swept.
    FAIL_SWEEP_TIMEOUT = 5
    # The published htlc held less than the requested amount.
    FAIL_INSUFFICIENT_VALUE = 6
    # An internal error stopped the swap; not a final state.
    FAIL_TEMPORARY = 7
    # The client published the on-chain htlc.
    HTLC_PUBLISHED = 8
    # The server paid the swap invoice.
    INVOICE_SETTLED = 9

    def state_type(self) -> SwapStateType:
        """Return the category of this state."""
        if self in _PENDING_STATES:
            return SwapStateType.PENDING
        if self is SwapState.SUCCESS:
            return SwapStateType.SUCCESS
        return SwapStateType.FAIL

    def __str__(self) -> str:
        return _STATE_NAMES.get(self, "Unknown")


_PENDING_STATES = frozenset(
    {
        SwapState.INITIATED,
        SwapState.HTLC_PUBLISHED,
        SwapState.PREIMAGE_REVEALED,
        SwapState.FAIL_TEMPORARY,
    }
)

_STATE_NAMES = {
    SwapState.INITIATED: "Initiated",
    SwapState.PREIMAGE_REVEALED: "PreimageRevealed",
    SwapState.HTLC_PUBLISHED: "HtlcPublished",
    SwapState.SUCCESS: "Success",
    SwapState.FAIL_OFFCHAIN_PAYMENTS: "FailOffchainPayments",
    SwapState.FAIL_TIMEOUT: "FailTimeout",
    SwapState.FAIL_SWEEP_TIMEOUT: "FailSweepTimeout",
    SwapState.FAIL_INSUFFICIENT_VALUE: "FailInsufficientValue",
    SwapState.FAIL_TEMPORARY: "FailTemporary",
    SwapState.INVOICE_SETTLED: "InvoiceSettled",
}


@dataclass
class SwapCost:
    """Breakdown of the swap costs, in satoshis."""

    server: int = 0
    onchain: int = 0
    offchain: int = 0


@dataclass
class SwapStateData:
    """Persistent description of the current swap state."""

    state: SwapState = SwapState.INITIATED
    cost: SwapCost = field(default_factory=SwapCost)