"""JSON payload codec for Discord IPC frames."""

import json
from typing import Any

from pydantic import BaseModel

from .errors import DeserializationFailed, ProtocolViolation, SerializationFailed


class JSONCodec:
    """Compact UTF-8 JSON, as Discord expects it."""

    def encode(self, data: Any) -> bytes:
        """Encode data to JSON bytes.

        Args:
            data: pydantic model or JSON-compatible value

        Returns:
            UTF-8 encoded JSON bytes

        Raises:
            SerializationFailed: If ``data`` holds values JSON cannot represent
        """
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json", by_alias=True)

        try:
            return json.dumps(data, separators=(",", ":"), allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationFailed(exc) from exc

    def decode(self, data: bytes) -> Any:
        """Decode JSON bytes to data.

        Args:
            data: UTF-8 encoded JSON bytes

        Returns:
            Decoded value

        Raises:
            ProtocolViolation: If ``data`` is not valid UTF-8
            DeserializationFailed: If ``data`` is not valid JSON
        """
        try:
            json_str = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolViolation(f"payload is not valid UTF-8: {exc}") from exc

        try:
            return json.loads(json_str)
        except json.JSONDecodeError as exc:
            raise DeserializationFailed(exc, payload=data) from exc


json_codec = JSONCodec()
