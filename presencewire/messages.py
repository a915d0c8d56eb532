"""JSON message bodies exchanged inside FRAME and HANDSHAKE frames."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .constants import IPC_VERSION, Event


class HandshakePayload(BaseModel):
    """First message on a fresh connection."""

    v: int = Field(IPC_VERSION, ge=1, description="IPC protocol version")
    client_id: str = Field(..., min_length=1, description="Application id, numeric string")


class CommandMessage(BaseModel):
    """A request; ``args`` is passed through untouched."""

    cmd: str = Field(..., description="Command name, e.g. SET_ACTIVITY")
    args: Any = Field(default_factory=dict, description="Command arguments")
    nonce: str = Field(..., min_length=1, description="Correlation token")

    def to_dict(self) -> dict[str, Any]:
        # model_dump would coerce args; send them exactly as given
        return {"cmd": self.cmd, "args": self.args, "nonce": self.nonce}


class Response(BaseModel):
    """A reply or dispatch from Discord."""

    model_config = ConfigDict(extra="allow")

    cmd: str | None = None
    data: Any = None
    evt: str | None = None
    nonce: str | None = None

    @property
    def is_error(self) -> bool:
        return self.evt == Event.ERROR

    @property
    def is_ready(self) -> bool:
        return self.evt == Event.READY

    @property
    def error_code(self) -> int:
        data = self.data if isinstance(self.data, dict) else {}
        try:
            return int(data.get("code", 0))
        except (TypeError, ValueError):
            return 0

    @property
    def error_message(self) -> str:
        data = self.data if isinstance(self.data, dict) else {}
        return str(data.get("message", "Unknown error"))
