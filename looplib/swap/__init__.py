"""HTLC scripts, swap fees, networks, addresses and transaction helpers."""