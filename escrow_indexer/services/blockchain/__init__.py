"""
Blockchain access.

HTTP JSON-RPC reads and the WebSocket head feed.
"""

from escrow_indexer.services.blockchain.chain_client import ChainClient
from escrow_indexer.services.blockchain.head_subscriber import HeadSubscriber

__all__ = [
    "ChainClient",
    "HeadSubscriber",
]
