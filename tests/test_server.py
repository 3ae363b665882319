from __future__ import annotations

import asyncio

import pytest
import websockets

from chatrelay import config
from chatrelay.envelope import CommandKind, Envelope, decode_envelope, encode_envelope
from chatrelay.router import Router
from chatrelay.server import RelayServer, create_ssl_context, start_server


async def _recv(ws) -> Envelope:
    return decode_envelope(await asyncio.wait_for(ws.recv(), timeout=2.0))


async def _send(ws, kind: CommandKind, *fields: str) -> None:
    await ws.send(encode_envelope(Envelope.of(kind, *fields)))


@pytest.mark.asyncio
async def test_relay_over_real_websockets() -> None:
    started: list[bool] = []
    server = RelayServer(Router(), on_server_started=lambda: started.append(True))
    await server.start("127.0.0.1", 0)
    assert started == [True]
    assert server.protocol == "ws"
    uri = f"ws://127.0.0.1:{server.port}"

    async with websockets.connect(uri) as ana, websockets.connect(uri) as bob:
        await _send(ana, CommandKind.CONNECT_REQUEST, "ana")
        assert (await _recv(ana)).fields == ("1 - ana",)

        await _send(bob, CommandKind.CONNECT_REQUEST, "bob")
        assert (await _recv(bob)).fields == ("2 - bob", "1 - ana")
        assert await _recv(ana) == Envelope.of(CommandKind.NEW_USER_ONLINE, "2 - bob")

        await _send(ana, CommandKind.MESSAGE, "1 - ana", "2 - bob", "hello", "100")
        assert await _recv(bob) == Envelope.of(CommandKind.MESSAGE, "1 - ana", "2 - bob", "hello", "100")

        await _send(bob, CommandKind.PING)
        assert (await _recv(bob)).kind is CommandKind.PONG

        await server.close()
        assert (await _recv(ana)).kind is CommandKind.SERVER_SHUTTING_DOWN
        assert (await _recv(bob)).kind is CommandKind.SERVER_SHUTTING_DOWN

    assert server.port is None


@pytest.mark.asyncio
async def test_start_server_runs_until_cancelled() -> None:
    started = asyncio.Event()
    task = asyncio.create_task(start_server("127.0.0.1", 0, on_server_started=started.set))
    await asyncio.wait_for(started.wait(), timeout=2.0)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


def test_missing_certificates_fall_back_to_plain_ws(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "CERT_FILE", str(tmp_path / "cert.pem"))
    monkeypatch.setattr(config, "KEY_FILE", str(tmp_path / "key.pem"))

    assert create_ssl_context() is None


@pytest.mark.asyncio
async def test_enable_ssl_without_certificates_still_starts(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "ENABLE_SSL", True)
    monkeypatch.setattr(config, "CERT_FILE", str(tmp_path / "cert.pem"))
    monkeypatch.setattr(config, "KEY_FILE", str(tmp_path / "key.pem"))

    server = RelayServer()
    await server.start("127.0.0.1", 0)
    try:
        assert server.protocol == "ws"
        assert server.port
    finally:
        await server.close()
