"""
Codecs for structured cache payloads.

The cache never inspects payload types itself. A codec turns a value into
text before it is stored and back again on read; the envelope records which
codec produced the text.
"""

from __future__ import annotations

from typing import Any, Generic, Protocol, TypeVar

import orjson
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from agricache.exceptions import SerializationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class Codec(Protocol):
    """Encode values to text and decode them back."""

    name: str

    def encode(self, value: Any) -> str: ...

    def decode(self, text: str) -> Any: ...


class JSONCodec:
    """JSON codec backed by orjson. Handles dicts, lists, dataclasses, datetimes."""

    name = "json"

    def encode(self, value: Any) -> str:
        try:
            return orjson.dumps(value).decode("utf-8")
        except orjson.JSONEncodeError as e:
            raise SerializationError(
                "Value is not JSON serializable",
                context={"codec": self.name, "type": type(value).__name__},
            ) from e

    def decode(self, text: str) -> Any:
        try:
            return orjson.loads(text)
        except orjson.JSONDecodeError as e:
            raise SerializationError(
                "Payload is not valid JSON", context={"codec": self.name}
            ) from e


class PydanticCodec(Generic[ModelT]):
    """Codec for a single pydantic model type.

    Decoding validates the payload against the model, so stale payloads
    written under an older schema surface as SerializationError (a miss).
    """

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model
        self.name = f"pydantic:{model.__name__}"

    def encode(self, value: ModelT) -> str:
        if not isinstance(value, self.model):
            raise SerializationError(
                "Value does not match codec model",
                context={"codec": self.name, "type": type(value).__name__},
            )
        return value.model_dump_json()

    def decode(self, text: str) -> ModelT:
        try:
            return self.model.model_validate_json(text)
        except PydanticValidationError as e:
            raise SerializationError(
                "Payload does not validate against model",
                context={"codec": self.name, "errors": e.error_count()},
            ) from e


def encoded_size(text: str) -> int:
    """Byte length of the UTF-8 encoding of ``text``."""
    return len(text.encode("utf-8"))
