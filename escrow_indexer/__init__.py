"""Escrow contract indexer: scans the chain, queues escrow events, projects state."""

__version__ = "0.1.0"
