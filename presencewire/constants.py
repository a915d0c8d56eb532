"""Discord IPC protocol constants and enums."""

from enum import IntEnum

# ----------------------------------------------------------------------------
# Protocol constants
# ----------------------------------------------------------------------------

IPC_VERSION = 1
HEADER_SIZE = 8  # opcode:u32le + length:u32le
MAX_IPC_SOCKETS = 10  # discord-ipc-0 .. discord-ipc-9
IPC_SOCKET_PREFIX = "discord-ipc-"
WINDOWS_PIPE_ROOT = "\\\\.\\pipe\\"

# ----------------------------------------------------------------------------
# Opcodes
# ----------------------------------------------------------------------------


class Opcode(IntEnum):
    """Frame opcodes carried in the first header field."""

    HANDSHAKE = 0
    FRAME = 1
    CLOSE = 2
    PING = 3
    PONG = 4


# ----------------------------------------------------------------------------
# Command and event names
# ----------------------------------------------------------------------------


class Command:
    """RPC command names sent in the ``cmd`` field."""

    SET_ACTIVITY = "SET_ACTIVITY"
    SUBSCRIBE = "SUBSCRIBE"
    UNSUBSCRIBE = "UNSUBSCRIBE"
    DISPATCH = "DISPATCH"


class Event:
    """Event names received in the ``evt`` field."""

    READY = "READY"
    ERROR = "ERROR"


# ----------------------------------------------------------------------------
# Discovery locations
# ----------------------------------------------------------------------------

RUNTIME_DIR_ENV = "XDG_RUNTIME_DIR"
TEMP_DIR_ENVS = ("TMPDIR", "TMP", "TEMP")
FALLBACK_TEMP_DIR = "/tmp"

# Sandboxed installs publish their socket below the runtime dir
SANDBOX_APP_DIRS = (
    "app/com.discordapp.Discord",
    "app/com.discordapp.DiscordCanary",
    "snap.discord",
)

# ----------------------------------------------------------------------------
# Limits and defaults
# ----------------------------------------------------------------------------

MAX_PAYLOAD_SIZE = 16 << 20  # 16 MiB
MIN_PAYLOAD_LIMIT = 1 << 10  # 1 KiB
MAX_PAYLOAD_LIMIT = 100 << 20  # 100 MiB
DEFAULT_RETRY_INTERVAL = 0.1  # seconds
