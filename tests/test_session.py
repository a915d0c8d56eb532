"""Tests for the handshake/session state machine over scripted transports."""

import pytest

from conftest import (
    CLIENT_ID,
    ENDPOINT,
    AsyncScriptedTransport,
    ScriptedTransport,
    frame,
    ready_frame,
    reply_frame,
)
from presencewire import (
    ConnectionFailed,
    ConnectionTimeout,
    DiscordError,
    Endpoint,
    HandshakeFailed,
    InvalidOpcode,
    InvalidResponse,
    IpcConfig,
    NoValidSocket,
    Opcode,
    ProtocolViolation,
    SerializationFailed,
    Session,
    SessionState,
    SocketClosed,
    SocketDiscoveryFailed,
    TransportFamily,
    json_codec,
    run_async,
    run_blocking,
)
from presencewire import session as session_module


def connected(*inbound: bytes, config: IpcConfig | None = None) -> tuple[Session, ScriptedTransport]:
    session = Session(CLIENT_ID, config)
    transport = ScriptedTransport(ready_frame(), *inbound)
    run_blocking(session.connect(ENDPOINT), transport)
    return session, transport


def endpoint(ordinal: int) -> Endpoint:
    return Endpoint(TransportFamily.DOMAIN_SOCKET, f"/tmp/discord-ipc-{ordinal}", ordinal)


# ----------------------------------------------------------------------------
# connect / handshake
# ----------------------------------------------------------------------------


def test_connect_reaches_ready() -> None:
    """READY dispatch moves Disconnected -> Ready and returns its data."""
    session = Session(CLIENT_ID)
    transport = ScriptedTransport(ready_frame({"v": 1, "user": {"username": "loopback"}}))
    assert session.state is SessionState.DISCONNECTED

    data = run_blocking(session.connect(ENDPOINT), transport)

    assert session.state is SessionState.READY
    assert data["user"]["username"] == "loopback"
    assert session.ready_data == data
    assert session.endpoint == ENDPOINT
    assert transport.opened == [ENDPOINT]


def test_handshake_frame_contents() -> None:
    _, transport = connected()

    handshake = transport.sent[0]
    assert handshake.opcode == Opcode.HANDSHAKE
    assert json_codec.decode(handshake.payload) == {"v": 1, "client_id": CLIENT_ID}


def test_handshake_error_event() -> None:
    """An ERROR dispatch becomes DiscordError with Discord's code and message."""
    session = Session(CLIENT_ID)
    error = {"cmd": "DISPATCH", "evt": "ERROR", "data": {"code": 4000, "message": "Invalid Client ID"}}
    transport = ScriptedTransport(frame(Opcode.FRAME, error))

    with pytest.raises(DiscordError) as exc_info:
        run_blocking(session.connect(ENDPOINT), transport)

    assert exc_info.value.code == 4000
    assert exc_info.value.message == "Invalid Client ID"
    assert session.state is SessionState.CLOSED
    assert transport.shutdowns == 1


def test_handshake_close_frame_with_code() -> None:
    session = Session(CLIENT_ID)
    transport = ScriptedTransport(frame(Opcode.CLOSE, {"code": 4000, "message": "Invalid Client ID"}))

    with pytest.raises(DiscordError) as exc_info:
        run_blocking(session.connect(ENDPOINT), transport)

    assert exc_info.value.code == 4000


def test_handshake_without_ready() -> None:
    """Anything but READY fails the handshake with the raw payload attached."""
    body = {"cmd": "DISPATCH", "evt": "SOMETHING_ELSE", "data": None}
    session = Session(CLIENT_ID)

    with pytest.raises(HandshakeFailed) as exc_info:
        run_blocking(session.connect(ENDPOINT), ScriptedTransport(frame(Opcode.FRAME, body)))

    assert exc_info.value.payload == json_codec.encode(body)
    assert session.state is SessionState.CLOSED


def test_handshake_wrong_opcode() -> None:
    session = Session(CLIENT_ID)

    with pytest.raises(HandshakeFailed):
        run_blocking(session.connect(ENDPOINT), ScriptedTransport(frame(Opcode.PONG, b"")))


def test_handshake_garbage_payload() -> None:
    session = Session(CLIENT_ID)

    with pytest.raises(HandshakeFailed) as exc_info:
        run_blocking(session.connect(ENDPOINT), ScriptedTransport(frame(Opcode.FRAME, b"[1, 2")))

    assert exc_info.value.payload == b"[1, 2"


def test_handshake_peer_hangs_up() -> None:
    session = Session(CLIENT_ID)

    with pytest.raises(SocketClosed):
        run_blocking(session.connect(ENDPOINT), ScriptedTransport())

    assert session.state is SessionState.CLOSED


def test_handshake_uses_configured_version() -> None:
    session = Session(CLIENT_ID, IpcConfig(ipc_version=2))
    transport = ScriptedTransport(ready_frame())

    run_blocking(session.connect(ENDPOINT), transport)

    assert json_codec.decode(transport.sent[0].payload)["v"] == 2


def test_empty_client_id_rejected() -> None:
    with pytest.raises(ValueError):
        Session("")


def test_connect_twice_is_misuse() -> None:
    session, transport = connected()

    with pytest.raises(RuntimeError):
        run_blocking(session.connect(ENDPOINT), transport)


def test_connect_after_close() -> None:
    """CLOSED sessions may connect again."""
    session, transport = connected()
    run_blocking(session.close(), transport)

    transport.feed(ready_frame())
    run_blocking(session.connect(ENDPOINT), transport)

    assert session.state is SessionState.READY


# ----------------------------------------------------------------------------
# target resolution and timeouts
# ----------------------------------------------------------------------------


def test_auto_discovery_nothing_found(monkeypatch) -> None:
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: [])
    session = Session(CLIENT_ID)

    with pytest.raises(NoValidSocket):
        run_blocking(session.connect(), ScriptedTransport())

    assert session.state is SessionState.CLOSED


def test_auto_discovery_picks_first(monkeypatch) -> None:
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: [endpoint(1), endpoint(4)])
    session = Session(CLIENT_ID)
    transport = ScriptedTransport(ready_frame())

    run_blocking(session.connect(), transport)

    assert transport.opened == [endpoint(1)]


def test_discovery_uses_configured_socket_count(monkeypatch) -> None:
    seen = []
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: seen.append(max_sockets) or [endpoint(0)])

    run_blocking(Session(CLIENT_ID, IpcConfig.fast_connect()).connect(), ScriptedTransport(ready_frame()))

    assert seen == [3]


def test_no_fallthrough_by_default(monkeypatch) -> None:
    """Without the opt-in only the first endpoint is tried."""
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: [endpoint(0), endpoint(1)])
    transport = ScriptedTransport(ready_frame(), refuse={endpoint(0).address})

    with pytest.raises(ConnectionFailed) as exc_info:
        run_blocking(Session(CLIENT_ID).connect(), transport)

    assert isinstance(exc_info.value.os_error, ConnectionRefusedError)
    assert transport.opened == []


def test_fallthrough_to_next_endpoint(monkeypatch) -> None:
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: [endpoint(0), endpoint(1)])
    session = Session(CLIENT_ID, IpcConfig(fallthrough=True))
    transport = ScriptedTransport(ready_frame(), refuse={endpoint(0).address})

    run_blocking(session.connect(), transport)

    assert session.endpoint == endpoint(1)


def test_fallthrough_exhausted(monkeypatch) -> None:
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: [endpoint(0), endpoint(1)])
    transport = ScriptedTransport(refuse={endpoint(0).address, endpoint(1).address})

    with pytest.raises(SocketDiscoveryFailed) as exc_info:
        run_blocking(Session(CLIENT_ID, IpcConfig(fallthrough=True)).connect(), transport)

    assert exc_info.value.attempted == [endpoint(0).address, endpoint(1).address]
    assert isinstance(exc_info.value.last_error, ConnectionRefusedError)


def test_ordinal_target(monkeypatch) -> None:
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: [endpoint(0), endpoint(3)])
    transport = ScriptedTransport(ready_frame())

    run_blocking(Session(CLIENT_ID).connect(3), transport)

    assert transport.opened == [endpoint(3)]


def test_ordinal_target_absent(monkeypatch) -> None:
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: [endpoint(0)])

    with pytest.raises(NoValidSocket):
        run_blocking(Session(CLIENT_ID).connect(4), ScriptedTransport())


def test_ordinal_target_out_of_range() -> None:
    with pytest.raises(ValueError):
        run_blocking(Session(CLIENT_ID).connect(10), ScriptedTransport())


def test_path_target_skips_discovery(monkeypatch) -> None:
    def fail(max_sockets):
        raise AssertionError("discovery must not run for explicit paths")

    monkeypatch.setattr(session_module, "discover", fail)
    transport = ScriptedTransport(ready_frame())

    run_blocking(Session(CLIENT_ID).connect("/custom/discord-ipc-0"), transport)

    assert transport.opened[0].address == "/custom/discord-ipc-0"


def test_timeout_polls_discovery_until_found(monkeypatch) -> None:
    """While nothing is found, discovery is re-polled every retry_interval."""
    results = [[], [], [endpoint(0)]]
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: results.pop(0))
    sleeps: list[float] = []
    session = Session(CLIENT_ID, IpcConfig(retry_interval=0.25))

    run_blocking(session.connect(timeout=30), ScriptedTransport(ready_frame()), sleep=sleeps.append)

    assert sleeps == [0.25, 0.25]
    assert session.state is SessionState.READY


def test_timeout_while_nothing_found(monkeypatch) -> None:
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: [])
    session = Session(CLIENT_ID, IpcConfig(retry_interval=0.01))

    with pytest.raises(ConnectionTimeout) as exc_info:
        run_blocking(session.connect(timeout=0.05), ScriptedTransport())

    assert exc_info.value.timeout == 0.05
    assert isinstance(exc_info.value.last_error, NoValidSocket)
    assert session.state is SessionState.CLOSED


def test_timeout_during_handshake() -> None:
    session = Session(CLIENT_ID)

    with pytest.raises(ConnectionTimeout) as exc_info:
        run_blocking(session.connect(ENDPOINT, timeout=1.0), ScriptedTransport(stall=True))

    assert isinstance(exc_info.value.last_error, TimeoutError)
    assert session.state is SessionState.CLOSED


# ----------------------------------------------------------------------------
# commands
# ----------------------------------------------------------------------------


def test_send_command_before_ready() -> None:
    with pytest.raises(RuntimeError):
        run_blocking(Session(CLIENT_ID).send_command("SET_ACTIVITY", {}), ScriptedTransport())


def test_matching_nonce_succeeds() -> None:
    session, transport = connected(reply_frame("abc", data={"state": "ok"}))

    response = run_blocking(session.send_command("SET_ACTIVITY", {"pid": 1, "activity": None}, nonce="abc"), transport)

    assert response.nonce == "abc"
    assert response.data == {"state": "ok"}
    sent = json_codec.decode(transport.sent[-1].payload)
    assert sent == {"cmd": "SET_ACTIVITY", "args": {"pid": 1, "activity": None}, "nonce": "abc"}
    assert session.state is SessionState.READY


def test_mismatched_nonce() -> None:
    """A reply for another request is an InvalidResponse."""
    session, transport = connected(reply_frame("xyz"))

    with pytest.raises(InvalidResponse):
        run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="abc"), transport)

    assert session.state is SessionState.CLOSED


def test_missing_nonce() -> None:
    session, transport = connected(reply_frame(None))

    with pytest.raises(InvalidResponse):
        run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="abc"), transport)


def test_generated_nonces_are_unique() -> None:
    session, transport = connected()
    nonces = set()
    for _ in range(50):
        transport.outbound.clear()
        with pytest.raises(SocketClosed):
            run_blocking(session.send_command("SUBSCRIBE", {}), transport)
        nonces.add(json_codec.decode(transport.sent[0].payload)["nonce"])
        session.reset()
        transport.feed(ready_frame())
        run_blocking(session.connect(ENDPOINT), transport)

    assert len(nonces) == 50
    assert all(len(nonce) == 32 for nonce in nonces)


def test_error_response_keeps_session_ready() -> None:
    error = {"code": 4002, "message": "child \"activity\" fails"}
    session, transport = connected(reply_frame("n1", data=error, evt="ERROR"))

    with pytest.raises(DiscordError) as exc_info:
        run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="n1"), transport)

    assert exc_info.value.code == 4002
    assert session.state is SessionState.READY


def test_unserializable_args_keep_session_ready() -> None:
    session, transport = connected()
    written = len(transport.outbound)

    with pytest.raises(SerializationFailed):
        run_blocking(session.send_command("SET_ACTIVITY", {"x": float("inf")}), transport)

    assert len(transport.outbound) == written
    assert session.state is SessionState.READY


def test_ping_is_answered_while_waiting() -> None:
    session, transport = connected(frame(Opcode.PING, b"beat"), reply_frame("n1"))

    run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="n1"), transport)

    pongs = [f for f in transport.sent if f.opcode == Opcode.PONG]
    assert [p.payload for p in pongs] == [b"beat"]


def test_close_frame_while_waiting() -> None:
    session, transport = connected(frame(Opcode.CLOSE, b"{}"))

    with pytest.raises(SocketClosed):
        run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="n1"), transport)

    assert session.state is SessionState.CLOSED


def test_close_frame_with_reason_while_waiting() -> None:
    session, transport = connected(frame(Opcode.CLOSE, {"code": 1000, "message": "bye"}))

    with pytest.raises(DiscordError) as exc_info:
        run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="n1"), transport)

    assert exc_info.value.code == 1000
    assert session.state is SessionState.CLOSED


def test_unknown_opcode() -> None:
    session, transport = connected(frame(9, b""))

    with pytest.raises(InvalidOpcode) as exc_info:
        run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="n1"), transport)

    assert exc_info.value.opcode == 9
    assert isinstance(exc_info.value, ProtocolViolation)
    assert session.state is SessionState.CLOSED


def test_unexpected_known_opcode() -> None:
    session, transport = connected(frame(Opcode.HANDSHAKE, b"{}"))

    with pytest.raises(InvalidResponse):
        run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="n1"), transport)


def test_truncated_response() -> None:
    """A response cut short is a protocol violation, and the session closes."""
    session, transport = connected(reply_frame("n1", data="x" * 100)[:-10])

    with pytest.raises(ProtocolViolation):
        run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="n1"), transport)

    assert session.state is SessionState.CLOSED


def test_oversized_response() -> None:
    session, transport = connected(reply_frame("n1", data="x" * 2048), config=IpcConfig(max_payload_size=1024))

    with pytest.raises(ProtocolViolation):
        run_blocking(session.send_command("SET_ACTIVITY", {}, nonce="n1"), transport)


def test_socket_closed_during_command() -> None:
    session, transport = connected()
    transport.fail_writes = True

    with pytest.raises(SocketClosed):
        run_blocking(session.send_command("SET_ACTIVITY", {}), transport)

    assert session.state is SessionState.CLOSED


# ----------------------------------------------------------------------------
# raw frames
# ----------------------------------------------------------------------------


def test_send_frame_writes_json_payload() -> None:
    session, transport = connected()

    run_blocking(session.send_frame(Opcode.PING, {"n": 1}), transport)

    last = transport.sent[-1]
    assert last.opcode == Opcode.PING
    assert json_codec.decode(last.payload) == {"n": 1}
    assert session.state is SessionState.READY


def test_recv_frame_returns_ping_unanswered() -> None:
    session, transport = connected(frame(Opcode.PING, {"beat": 3}), frame(Opcode.PONG, b""))
    written = len(transport.outbound)

    assert run_blocking(session.recv_frame(), transport) == (Opcode.PING, {"beat": 3})
    assert run_blocking(session.recv_frame(), transport) == (Opcode.PONG, None)
    assert len(transport.outbound) == written


def test_recv_close_frame_closes_session() -> None:
    session, transport = connected(frame(Opcode.CLOSE, {"code": 1000, "message": "bye"}))

    opcode, body = run_blocking(session.recv_frame(), transport)

    assert opcode is Opcode.CLOSE
    assert body == {"code": 1000, "message": "bye"}
    assert session.state is SessionState.CLOSED


def test_recv_frame_unknown_opcode() -> None:
    session, transport = connected(frame(9, b"{}"))

    with pytest.raises(InvalidOpcode):
        run_blocking(session.recv_frame(), transport)

    assert session.state is SessionState.CLOSED


def test_raw_frames_require_ready() -> None:
    session = Session(CLIENT_ID)
    transport = ScriptedTransport()

    with pytest.raises(RuntimeError):
        run_blocking(session.send_frame(Opcode.PING), transport)
    with pytest.raises(RuntimeError):
        run_blocking(session.recv_frame(), transport)


def test_unserializable_frame_keeps_session_ready() -> None:
    session, transport = connected()
    written = len(transport.outbound)

    with pytest.raises(SerializationFailed):
        run_blocking(session.send_frame(Opcode.FRAME, {"x": float("nan")}), transport)

    assert len(transport.outbound) == written
    assert session.state is SessionState.READY


# ----------------------------------------------------------------------------
# close
# ----------------------------------------------------------------------------


def test_close_sends_close_frame() -> None:
    session, transport = connected()

    run_blocking(session.close(), transport)

    assert transport.sent[-1].opcode == Opcode.CLOSE
    assert transport.sent[-1].payload == b"{}"
    assert transport.shutdowns == 1
    assert session.state is SessionState.CLOSED


def test_close_ignores_send_failure() -> None:
    session, transport = connected()
    transport.fail_writes = True

    run_blocking(session.close(), transport)

    assert session.state is SessionState.CLOSED
    assert transport.shutdowns == 1


def test_close_when_never_connected() -> None:
    session = Session(CLIENT_ID)
    transport = ScriptedTransport()

    run_blocking(session.close(), transport)

    assert transport.outbound == b""
    assert session.state is SessionState.CLOSED


# ----------------------------------------------------------------------------
# same protocol code, async driver
# ----------------------------------------------------------------------------


@pytest.mark.anyio
async def test_async_driver_runs_same_protocol(monkeypatch) -> None:
    results = [[], [endpoint(2)]]
    monkeypatch.setattr(session_module, "discover", lambda max_sockets: results.pop(0))
    session = Session(CLIENT_ID, IpcConfig(retry_interval=0.5))
    transport = AsyncScriptedTransport(ready_frame(), reply_frame("abc"), reply_frame("abc"))

    await run_async(session.connect(timeout=10), transport)
    response = await run_async(session.send_command("SET_ACTIVITY", {}, nonce="abc"), transport)

    assert response.nonce == "abc"
    assert transport.sleeps == [0.5]

    with pytest.raises(InvalidResponse):
        await run_async(session.send_command("SET_ACTIVITY", {}, nonce="xyz"), transport)
    assert session.state is SessionState.CLOSED
