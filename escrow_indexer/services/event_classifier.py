"""
Escrow Event Classifier.

Maps a log's first topic (keccak of the event signature) to an escrow
event type and decodes the non-indexed arguments of known events.

Adding a tracked event means adding one EventSpec to DEFAULT_EVENT_SPECS.
"""

import json
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak
from loguru import logger

from escrow_indexer.models.enums import EscrowEventType

Decoder = Callable[[bytes], dict[str, Any]]


def to_bytes(value: Any) -> bytes:
    """
    Normalize a hex string or bytes-like value to bytes.

    Args:
        value: "0x..." string, HexBytes, bytes or bytearray

    Returns:
        Raw bytes
    """
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        return bytes.fromhex(text)
    return bytes(value)


def to_hex(value: Any) -> str:
    """Normalize a hex string or bytes-like value to 0x-prefixed lower hex."""
    return "0x" + to_bytes(value).hex()


def _hex_or_raw(value: Any) -> str:
    try:
        return to_hex(value)
    except (TypeError, ValueError):
        return str(value)


def _normalize_abi_value(typ: str, val: Any) -> Any:
    # uint256 does not fit JSON numbers safely; keep big ints as strings
    if typ == "address":
        return str(val).lower()
    if typ.startswith("uint") or typ.startswith("int"):
        return str(val) if typ.endswith("256") else int(val)
    if typ.startswith("bytes"):
        return to_hex(val)
    return val


def abi_decoder(names: Sequence[str], types: Sequence[str]) -> Decoder:
    """
    Build a decoder for non-indexed event arguments.

    Args:
        names: Argument names, in ABI order
        types: Argument ABI types, in ABI order

    Returns:
        Function decoding log data into a dict
    """
    def decode(data: bytes) -> dict[str, Any]:
        if not types:
            return {}
        values = abi_decode(list(types), data)
        return {
            name: _normalize_abi_value(typ, val)
            for name, typ, val in zip(names, types, values, strict=True)
        }

    return decode


@dataclass(frozen=True)
class EventSpec:
    """Known escrow event: type, canonical signature and data decoder."""

    event_type: EscrowEventType
    signature: str
    decoder: Decoder = field(default=abi_decoder((), ()), compare=False)

    @property
    def topic0(self) -> bytes:
        """keccak256 of the canonical signature."""
        return keccak(text=self.signature)


DEFAULT_EVENT_SPECS: tuple[EventSpec, ...] = (
    EventSpec(
        EscrowEventType.ESCROW_CREATED,
        "EscrowCreated(address,address,address,uint256,uint256)",
        abi_decoder(
            ("seller", "buyer", "token", "amount", "timeout"),
            ("address", "address", "address", "uint256", "uint256"),
        ),
    ),
    EventSpec(
        EscrowEventType.FUNDED,
        "Funded(address,uint256)",
        abi_decoder(("buyer", "amount"), ("address", "uint256")),
    ),
    EventSpec(EscrowEventType.CONFIRMED_BY_SELLER, "ConfirmedBySeller()"),
    EventSpec(EscrowEventType.CANCELLED_BY_SELLER, "CancelledBySeller()"),
    EventSpec(EscrowEventType.TIMED_OUT, "TimedOut()"),
)


class EventRegistry:
    """
    Registry of known event signatures.

    classify() is pure and stateless with respect to chain data:
    the same topic always yields the same type, and any hash that
    is not registered yields Unknown.
    """

    def __init__(self, specs: Iterable[EventSpec] = DEFAULT_EVENT_SPECS) -> None:
        self._by_topic: dict[bytes, EventSpec] = {}
        self._by_type: dict[EscrowEventType, EventSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: EventSpec) -> None:
        """
        Add an event spec.

        Raises:
            ValueError: If the signature or type is already registered
        """
        if spec.topic0 in self._by_topic or spec.event_type in self._by_type:
            raise ValueError(f"Event already registered: {spec.signature}")
        self._by_topic[spec.topic0] = spec
        self._by_type[spec.event_type] = spec

    def classify(self, topics: Sequence[Any]) -> EscrowEventType:
        """
        Classify a log by its first topic.

        Args:
            topics: Log topics (hex strings or bytes)

        Returns:
            Matching event type, or UNKNOWN
        """
        if not topics:
            return EscrowEventType.UNKNOWN
        try:
            topic0 = to_bytes(topics[0])
        except (TypeError, ValueError):
            return EscrowEventType.UNKNOWN
        spec = self._by_topic.get(topic0)
        if spec is None:
            return EscrowEventType.UNKNOWN
        return spec.event_type

    def decode(
        self,
        event_type: EscrowEventType,
        topics: Sequence[Any],
        data: Any,
    ) -> dict[str, Any]:
        """
        Build the job payload for a classified log.

        The raw topics and data are always included so the effect can be
        re-derived later without reading the chain. Decoded fields are
        added when the data matches the registered signature.

        Args:
            event_type: Result of classify()
            topics: Log topics
            data: Log data

        Returns:
            Payload dict
        """
        payload: dict[str, Any] = {"topics": [_hex_or_raw(t) for t in topics]}
        try:
            raw = to_bytes(data or b"")
        except (TypeError, ValueError):
            logger.warning(f"[Classifier] Log data is not hex: {data!r:.80}")
            payload["data"] = str(data)
            return payload
        payload["data"] = to_hex(raw)

        spec = self._by_type.get(event_type)
        if spec is None:
            return payload

        try:
            payload.update(spec.decoder(raw))
        except (DecodingError, ValueError) as e:
            logger.warning(
                f"[Classifier] Could not decode {spec.signature} data: {e}"
            )
        return payload

    def signatures(self) -> dict[str, str]:
        """
        Get registered signatures.

        Returns:
            Dict of event name -> topic0 hex
        """
        return {
            spec.event_type.value: to_hex(spec.topic0)
            for spec in self._by_type.values()
        }


def encode_payload(payload: dict[str, Any]) -> str:
    """Serialize a payload for the ledger raw_data column."""
    return json.dumps(payload, sort_keys=True)


def decode_payload(raw_data: str) -> dict[str, Any]:
    """Parse a ledger raw_data value."""
    return json.loads(raw_data)
