"""Connection configuration."""

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    DEFAULT_RETRY_INTERVAL,
    IPC_VERSION,
    MAX_IPC_SOCKETS,
    MAX_PAYLOAD_LIMIT,
    MAX_PAYLOAD_SIZE,
    MIN_PAYLOAD_LIMIT,
)


class IpcConfig(BaseModel):
    """Tunables for discovery, connect polling and inbound frame limits."""

    model_config = ConfigDict(frozen=True)

    max_sockets: int = Field(MAX_IPC_SOCKETS, ge=1, le=MAX_IPC_SOCKETS, description="Ordinals probed per location")
    retry_interval: float = Field(
        DEFAULT_RETRY_INTERVAL, gt=0, le=10.0, description="Discovery poll interval while a connect timeout runs"
    )
    max_payload_size: int = Field(
        MAX_PAYLOAD_SIZE, ge=MIN_PAYLOAD_LIMIT, le=MAX_PAYLOAD_LIMIT, description="Largest accepted inbound payload"
    )
    ipc_version: int = Field(IPC_VERSION, ge=1, description="Handshake protocol version")
    fallthrough: bool = Field(False, description="Try the next discovered endpoint when one refuses")

    @classmethod
    def fast_connect(cls) -> "IpcConfig":
        """Probe only the first three ordinals and poll faster."""
        return cls(max_sockets=3, retry_interval=0.05)

    @classmethod
    def extended(cls) -> "IpcConfig":
        """Probe every ordinal and poll more patiently."""
        return cls(max_sockets=MAX_IPC_SOCKETS, retry_interval=0.2)
