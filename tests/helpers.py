from __future__ import annotations

import asyncio

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from chatrelay.envelope import CommandKind, Envelope, decode_envelope, encode_envelope
from chatrelay.router import Router

_HANG_UP = object()


class FakeTransport:
    """In-memory stand-in for a websockets connection: async recv()/send()/close()."""

    def __init__(self, remote_address=("127.0.0.1", 50000)) -> None:
        self.remote_address = remote_address
        self._inbox: asyncio.Queue = asyncio.Queue()
        self.sent: list[str] = []
        self.closed = False
        self.close_calls = 0
        self.fail_sends = False

    async def recv(self):
        item = await self._inbox.get()
        if item is _HANG_UP:
            # Keep failing on later reads, like a closed socket.
            self._inbox.put_nowait(_HANG_UP)
            raise ConnectionClosedOK(None, None)
        return item

    async def send(self, message: str) -> None:
        if self.closed or self.fail_sends:
            raise ConnectionClosedError(None, None)
        self.sent.append(message)

    async def close(self) -> None:
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_HANG_UP)

    def feed(self, kind: CommandKind, *fields: str) -> None:
        self._inbox.put_nowait(encode_envelope(Envelope.of(kind, *fields)))

    def feed_raw(self, raw) -> None:
        self._inbox.put_nowait(raw)

    def hang_up(self) -> None:
        self._inbox.put_nowait(_HANG_UP)

    @property
    def envelopes(self) -> list[Envelope]:
        return [decode_envelope(message) for message in self.sent]

    def received(self, kind: CommandKind) -> list[Envelope]:
        return [env for env in self.envelopes if env.kind is kind]


class FakeClient:
    def __init__(self, transport: FakeTransport, task: asyncio.Task) -> None:
        self.transport = transport
        self.task = task

    @property
    def identity(self) -> str:
        return self.transport.received(CommandKind.CONNECTION_ACCEPTED)[0].fields[0]

    def received(self, kind: CommandKind) -> list[Envelope]:
        return self.transport.received(kind)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


async def settle(rounds: int = 20) -> None:
    """Give every runnable task a few turns of the event loop."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def connect(router: Router, nickname: str) -> FakeClient:
    transport = FakeTransport()
    transport.feed(CommandKind.CONNECT_REQUEST, nickname)
    task = asyncio.create_task(router.handle_connection(transport))
    await wait_until(lambda: transport.received(CommandKind.CONNECTION_ACCEPTED))
    # Let the NEW_USER_ONLINE fan-out finish before the test continues.
    await settle()
    return FakeClient(transport, task)


async def close_all(router: Router, *clients: FakeClient) -> None:
    await router.shutdown()
    for client in clients:
        client.transport.hang_up()
    await asyncio.wait_for(asyncio.gather(*(c.task for c in clients)), timeout=1.0)
