"""
Serializers for checkpoint and metadata payloads.

The store keeps payloads in TEXT columns and never looks inside them. Any
object exposing ``serialize(value) -> str`` and ``deserialize(str) -> value``
can be injected.

Provided implementations:
- JsonSerializer: plain JSON (default for CheckpointStore)
- LangGraphSerializer: wraps a LangGraph serde (``dumps_typed``/``loads_typed``),
  used by the LangGraph saver adapters
"""

import base64
import json
from typing import Any, Optional, Protocol, runtime_checkable

from langgraph.checkpoint.serde.base import SerializerProtocol
from langgraph.checkpoint.serde.jsonplus import JsonPlusSerializer

TYPE_SEPARATOR = ":"


@runtime_checkable
class Serializer(Protocol):
    """Text codec for opaque payloads."""

    def serialize(self, value: Any) -> str:
        ...

    def deserialize(self, data: str) -> Any:
        ...


class JsonSerializer:
    """
    JSON codec.

    Only JSON-native values survive a round trip (dicts, lists, str, numbers,
    bools, None). Anything else fails in ``serialize`` instead of being
    silently coerced.
    """

    def __init__(self, ensure_ascii: bool = False):
        self.ensure_ascii = ensure_ascii

    def serialize(self, value: Any) -> str:
        return json.dumps(value, ensure_ascii=self.ensure_ascii)

    def deserialize(self, data: Optional[str]) -> Any:
        if data is None:
            return None
        return json.loads(data)


class LangGraphSerializer:
    """
    Adapter from a LangGraph serde to the text codec interface.

    LangGraph serializers produce ``(type, bytes)`` pairs. They are stored as
    ``"<type>:<base64 bytes>"`` so binary encodings (msgpack, pickle) fit the
    TEXT columns.
    """

    def __init__(self, serde: Optional[SerializerProtocol] = None):
        self.serde = serde or JsonPlusSerializer()

    def serialize(self, value: Any) -> str:
        type_, data = self.serde.dumps_typed(value)
        encoded = base64.b64encode(data).decode("ascii")
        return f"{type_}{TYPE_SEPARATOR}{encoded}"

    def deserialize(self, data: Optional[str]) -> Any:
        if data is None:
            return None

        type_, separator, encoded = data.partition(TYPE_SEPARATOR)
        if not separator:
            raise ValueError(f"Missing type prefix in serialized payload: {data[:32]!r}")

        return self.serde.loads_typed((type_, base64.b64decode(encoded, validate=True)))
