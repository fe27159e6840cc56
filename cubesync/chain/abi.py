"""
Minimal ABI helpers: function calldata encoding, return decoding and
event log decoding on top of eth_abi.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, encode_hex, function_signature_to_4byte_selector, keccak

from cubesync.core.exceptions import PermanentRemoteError


@dataclass(frozen=True)
class ContractFunction:
    """A single contract function fragment."""
    name: str
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()
    output_names: Tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, args: Sequence[Any] = ()) -> str:
        """Build 0x-prefixed calldata for this function."""
        if len(args) != len(self.inputs):
            raise PermanentRemoteError(
                f"{self.name} expects {len(self.inputs)} args, got {len(args)}",
                {"function": self.signature}
            )
        try:
            payload = encode(list(self.inputs), list(args)) if self.inputs else b""
        except Exception as e:
            raise PermanentRemoteError(
                f"Cannot encode arguments for {self.signature}: {e}",
                {"function": self.signature}
            )
        return encode_hex(self.selector + payload)

    def decode_output(self, data: Any) -> Any:
        """
        Decode return data.

        Single outputs are unwrapped, named multi-value outputs come back as a
        dict, anything else as a tuple.
        """
        raw = _to_bytes(data)
        if not self.outputs:
            return None
        if not raw:
            raise PermanentRemoteError(
                f"{self.signature} returned no data",
                {"function": self.signature}
            )
        try:
            values = decode(list(self.outputs), raw)
        except DecodingError as e:
            raise PermanentRemoteError(
                f"Cannot decode {self.signature} result: {e}",
                {"function": self.signature}
            )

        if len(self.outputs) == 1:
            return values[0]
        if self.output_names:
            return dict(zip(self.output_names, values))
        return tuple(values)


@dataclass(frozen=True)
class EventInput:
    name: str
    type: str
    indexed: bool = False


@dataclass(frozen=True)
class ContractEvent:
    """A single contract event fragment."""
    name: str
    inputs: Tuple[EventInput, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(i.type for i in self.inputs)})"

    @property
    def topic(self) -> str:
        return encode_hex(keccak(text=self.signature))

    def encode_topic_filter(self, **indexed_values: Any) -> List[Any]:
        """Build a topics array filtering on the given indexed arguments."""
        topics: List[Any] = [self.topic]
        for item in (i for i in self.inputs if i.indexed):
            if item.name in indexed_values:
                topics.append(encode_hex(encode([item.type], [indexed_values[item.name]])))
            else:
                topics.append(None)
        while topics and topics[-1] is None:
            topics.pop()
        return topics

    def decode_log(self, log: Dict[str, Any]) -> Dict[str, Any]:
        """Decode a raw log dict (topics + data) into named arguments."""
        topics = log.get("topics") or []
        if not topics or str(topics[0]).lower() != self.topic.lower():
            raise PermanentRemoteError(
                f"Log is not a {self.name} event",
                {"topics": topics}
            )

        indexed = [i for i in self.inputs if i.indexed]
        plain = [i for i in self.inputs if not i.indexed]
        if len(topics) - 1 < len(indexed):
            raise PermanentRemoteError(f"Truncated {self.name} log topics", {"topics": topics})

        args: Dict[str, Any] = {}
        try:
            for item, topic in zip(indexed, topics[1:]):
                args[item.name] = decode([item.type], _to_bytes(topic))[0]
            if plain:
                values = decode([i.type for i in plain], _to_bytes(log.get("data")))
                args.update(zip((i.name for i in plain), values))
        except DecodingError as e:
            raise PermanentRemoteError(f"Cannot decode {self.name} log: {e}")
        return args


def _to_bytes(data: Any) -> bytes:
    if data is None:
        return b""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        if data in ("", "0x"):
            return b""
        return decode_hex(data)
    raise PermanentRemoteError(f"Unexpected return data type: {type(data).__name__}")
