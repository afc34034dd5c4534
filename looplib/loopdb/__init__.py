"""Swap states, contract encoding and a SQLite-backed swap store."""