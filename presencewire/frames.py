"""Discord IPC frame structures and serialization.

Wire format, all integers little-endian u32::

    [opcode][length][payload: length bytes]
"""

import struct
from dataclasses import dataclass

from .constants import HEADER_SIZE, Opcode
from .errors import ProtocolContext, ProtocolViolation, SocketClosed
from .steps import ReadExact, Steps, remaining

_HEADER = struct.Struct("<II")

# ----------------------------------------------------------------------------
# Frame structure
# ----------------------------------------------------------------------------


@dataclass
class Frame:
    """One length-prefixed protocol message.

    ``opcode`` stays a plain int so that unknown values survive decoding; the
    session layer decides what to do with them.
    """

    opcode: int
    payload: bytes = b""

    @property
    def known_opcode(self) -> Opcode | None:
        """The :class:`Opcode` member, or None for unrecognized values."""
        try:
            return Opcode(self.opcode)
        except ValueError:
            return None


# ----------------------------------------------------------------------------
# Frame serialization/deserialization
# ----------------------------------------------------------------------------


def pack_frame(frame: Frame) -> bytes:
    """Pack a Frame into the binary wire format.

    Args:
        frame: The frame to serialize

    Returns:
        Exactly ``8 + len(frame.payload)`` bytes

    Raises:
        ProtocolViolation: If the opcode or the payload length does not fit a u32
    """
    try:
        header = _HEADER.pack(frame.opcode, len(frame.payload))
    except struct.error as exc:
        raise ProtocolViolation(
            f"frame does not fit the u32 header: {exc}",
            ProtocolContext(received_opcode=frame.opcode, payload_size=len(frame.payload)),
        ) from exc
    return header + frame.payload


def encode_frame(opcode: int, payload: bytes = b"") -> bytes:
    """Shorthand for ``pack_frame(Frame(opcode, payload))``."""
    return pack_frame(Frame(opcode=opcode, payload=payload))


def unpack_header(header: bytes) -> tuple[int, int]:
    """Split an 8-byte header into ``(opcode, length)``.

    Raises:
        ProtocolViolation: If ``header`` is not exactly 8 bytes long
    """
    if len(header) != HEADER_SIZE:
        raise ProtocolViolation(
            f"frame header must be {HEADER_SIZE} bytes, got {len(header)}",
            ProtocolContext(payload_size=len(header)),
        )
    opcode, length = _HEADER.unpack(header)
    return opcode, length


def unpack_frame(data: bytes) -> Frame:
    """Decode one complete frame held in memory.

    Args:
        data: Header plus payload, nothing more

    Returns:
        The decoded frame

    Raises:
        ProtocolViolation: If ``data`` is truncated or has trailing bytes
    """
    if len(data) < HEADER_SIZE:
        raise ProtocolViolation(
            f"truncated header: {len(data)} of {HEADER_SIZE} bytes",
            ProtocolContext(payload_size=len(data)),
        )
    opcode, length = unpack_header(data[:HEADER_SIZE])
    body = data[HEADER_SIZE:]
    if len(body) < length:
        raise ProtocolViolation(
            f"truncated payload: {len(body)} of {length} bytes",
            ProtocolContext(received_opcode=opcode, payload_size=length),
        )
    if len(body) > length:
        raise ProtocolViolation(
            f"{len(body) - length} trailing bytes after payload",
            ProtocolContext(received_opcode=opcode, payload_size=length),
        )
    return Frame(opcode=opcode, payload=bytes(body))


def parse_frame(deadline: float | None = None, max_payload_size: int | None = None) -> Steps[Frame]:
    """Read one frame from a stream, as I/O steps.

    A clean end of stream before the first header byte is reported as
    :class:`SocketClosed`. A stream that ends anywhere inside a frame is a
    :class:`ProtocolViolation`; a short frame is never returned.

    Args:
        deadline: Optional monotonic deadline bounding both reads
        max_payload_size: Optional upper bound on the declared length

    Returns:
        The decoded frame
    """
    try:
        header = yield ReadExact(HEADER_SIZE, timeout=remaining(deadline))
    except SocketClosed as exc:
        if exc.partial:
            raise ProtocolViolation(
                f"truncated header: {len(exc.partial)} of {HEADER_SIZE} bytes",
                ProtocolContext(payload_size=len(exc.partial)),
            ) from exc
        raise
    opcode, length = unpack_header(header)

    if max_payload_size is not None and length > max_payload_size:
        raise ProtocolViolation(
            f"payload size {length} exceeds maximum allowed size of {max_payload_size} bytes",
            ProtocolContext(received_opcode=opcode, payload_size=length),
        )

    if not length:
        return Frame(opcode=opcode)

    try:
        payload = yield ReadExact(length, timeout=remaining(deadline))
    except SocketClosed as exc:
        raise ProtocolViolation(
            f"truncated payload: {len(exc.partial)} of {length} bytes",
            ProtocolContext(received_opcode=opcode, payload_size=length),
        ) from exc
    return Frame(opcode=opcode, payload=payload)
