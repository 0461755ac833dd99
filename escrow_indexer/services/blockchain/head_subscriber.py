"""
New block header subscription.

Connects to the node over WebSocket, subscribes to newHeads and
yields block numbers. Reconnects with exponential backoff and jitter.
"""

import asyncio
import json
import random
from collections.abc import AsyncIterator
from typing import Any

import websockets
from loguru import logger

from escrow_indexer.config.constants import (
    WS_JITTER_MAX,
    WS_PING_INTERVAL,
    WS_PING_TIMEOUT,
    WS_RECONNECT_BASE_DELAY,
    WS_RECONNECT_MAX_DELAY,
    WS_SUBSCRIPTION_TIMEOUT,
)

_SUBSCRIBE_REQUEST = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "eth_subscribe",
    "params": ["newHeads"],
}


def parse_head_number(message: dict[str, Any]) -> int | None:
    """
    Extract block number from an eth_subscription notification.

    Args:
        message: Decoded JSON-RPC message

    Returns:
        Block number, or None for any other message
    """
    if message.get("method") != "eth_subscription":
        return None
    result = message.get("params", {}).get("result") or {}
    number = result.get("number")
    if number is None:
        return None
    if isinstance(number, str):
        return int(number, 16)
    return int(number)


def reconnect_delay(attempt: int) -> float:
    """Backoff before reconnect attempt N (1-based)."""
    delay = WS_RECONNECT_BASE_DELAY * (2 ** (attempt - 1))
    return min(delay + random.uniform(0, WS_JITTER_MAX), WS_RECONNECT_MAX_DELAY)


class HeadSubscriber:
    """Push feed of new chain heads."""

    def __init__(self, ws_url: str) -> None:
        self.ws_url = ws_url
        self.connected = False

    async def heads(self) -> AsyncIterator[int]:
        """
        Yield block numbers of new heads until cancelled.

        Connection errors never escape; the subscriber reconnects.
        """
        attempt = 0
        while True:
            try:
                async for number in self._subscribe_once():
                    attempt = 0
                    yield number
                logger.warning("[Heads] Subscription stream ended, reconnecting")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[Heads] Subscription error: {e}")
            finally:
                self.connected = False

            attempt += 1
            delay = reconnect_delay(attempt)
            logger.info(f"[Heads] Reconnecting in {delay:.1f}s (attempt {attempt})")
            await asyncio.sleep(delay)

    async def _subscribe_once(self) -> AsyncIterator[int]:
        logger.info(f"[Heads] Connecting to {self.ws_url}...")
        async with websockets.connect(
            self.ws_url,
            ping_interval=WS_PING_INTERVAL,
            ping_timeout=WS_PING_TIMEOUT,
        ) as ws:
            await ws.send(json.dumps(_SUBSCRIBE_REQUEST))
            response = json.loads(
                await asyncio.wait_for(ws.recv(), timeout=WS_SUBSCRIPTION_TIMEOUT)
            )
            if "error" in response:
                raise ConnectionError(f"eth_subscribe rejected: {response['error']}")

            self.connected = True
            logger.info(f"[Heads] Subscribed to newHeads: {response.get('result')}")

            async for raw_message in ws:
                try:
                    number = parse_head_number(json.loads(raw_message))
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning(f"[Heads] Invalid message: {e}")
                    continue
                if number is not None:
                    yield number
