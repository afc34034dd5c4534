"""Submarine swap primitives and a persistent swap store."""

__version__ = "0.2.2"