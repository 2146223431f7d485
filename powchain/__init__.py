"""A small proof-of-work blockchain node: blocks, chain, TCP peer network, miner and CLI."""

__version__ = "0.1.0"