"""Single-pair threshold trading bot for Jupiter on Solana."""

__version__ = "1.0.0"
