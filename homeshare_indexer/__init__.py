"""Reorg-safe indexer for property crowdfunding and profit distribution contracts."""

__version__ = "0.1.0"
