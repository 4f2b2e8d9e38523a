"""Solana whale wallet tracker: poll, classify, track positions, notify."""

__version__ = "1.0.0"
