# chatrelay/server.py
# The accept side of the relay.
# Responsibilities include:
# - Setting up the SSL context for Secure WebSockets (WSS) if configured.
# - Listening for WebSocket connections and handing each one to the Router, which runs
#   it as its own task.
# - Signalling "server started" to an optional console callback.
# - Shutting down: SERVER_SHUTTING_DOWN to every client, teardown of every session,
#   then release of the listening socket.

import asyncio          # For the event loop the server runs on.
import logging          # For logging server events, warnings, and errors.
import ssl              # For creating SSL contexts for WSS.
from typing import Callable, Optional

import websockets       # The WebSocket library used for the transport.

from chatrelay import config
from chatrelay.router import Router


def create_ssl_context() -> Optional[ssl.SSLContext]:
    """
    Build a TLS server context from config.CERT_FILE / config.KEY_FILE.

    Returns:
        ssl.SSLContext | None: None if the files are missing or unusable, in which case the
        server falls back to unencrypted WS.
    """
    try:
        logging.info(f"Attempting to load SSL cert: {config.CERT_FILE}")
        logging.info(f"Attempting to load SSL key: {config.KEY_FILE}")
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(config.CERT_FILE, config.KEY_FILE)
        logging.info("SSL context created successfully. Server will use WSS.")
        return ssl_context
    except FileNotFoundError:
        logging.error(f"SSL Error: Certificate or Key file not found (Cert: '{config.CERT_FILE}', Key: '{config.KEY_FILE}'). Disabling SSL, falling back to WS.")
    except (ssl.SSLError, OSError):
        logging.exception("SSL Error: Failed to create SSL context. Disabling SSL, falling back to WS.")
    return None


class RelayServer:
    """
    WebSocket front end of a Router.

    Args:
        router: The Router connections are handed to. A fresh one is created if omitted.
        on_server_started: Called once the listening socket is bound (e.g. to update a console).
    """

    def __init__(self, router: Optional[Router] = None, on_server_started: Optional[Callable[[], None]] = None):
        self.router = router if router is not None else Router()
        self.on_server_started = on_server_started
        self._server = None
        self.protocol = "ws"

    async def _connection_handler(self, websocket):
        # One invocation (and one task) per connection; returns when the session is torn down.
        await self.router.handle_connection(websocket)

    async def start(self, host: str, port: int) -> None:
        """Bind and start accepting connections. Raises OSError if the port cannot be bound."""
        ssl_context = create_ssl_context() if config.ENABLE_SSL else None
        self.protocol = "wss" if ssl_context else "ws"

        logging.info(f"Starting server on {self.protocol}://{host}:{port}")
        logging.info(f"Maximum WebSocket message size set to: {config.MAX_MESSAGE_SIZE} bytes")
        logging.info(f"Server Debug Logging: {'ENABLED' if config.DEBUG else 'DISABLED'}")

        self._server = await websockets.serve(
            self._connection_handler,
            host,
            port,
            ssl=ssl_context,                   # The SSL context, or None for plain WS.
            max_size=config.MAX_MESSAGE_SIZE,  # Largest frame a client may send.
        )
        logging.info(f"Server started on port {self.port}")
        if self.on_server_started is not None:
            self.on_server_started()

    @property
    def port(self) -> Optional[int]:
        """Port actually bound (useful when started with port 0)."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def serve_forever(self) -> None:
        """Block until the server is closed."""
        if self._server is None:
            raise RuntimeError("RelayServer.start() must be called first")
        await self._server.wait_closed()

    async def close(self) -> None:
        """Disconnect every client, then release the listening socket."""
        if self._server is None:
            return
        await self.router.shutdown()
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logging.info("Server closed")


async def start_server(host: str, port: int, on_server_started: Optional[Callable[[], None]] = None) -> None:
    """
    Run a relay on host:port until cancelled (e.g. Ctrl+C through asyncio.run).

    Args:
        host (str): The hostname or IP address to bind to.
        port (int): The port number to bind to.
        on_server_started: Optional callback fired once listening.
    """
    server = RelayServer(on_server_started=on_server_started)
    try:
        await server.start(host, port)
    except OSError:
        # Common OS-level startup failure, like "Address already in use".
        logging.exception(f"OSError starting server on {host}:{port} - Is the port already in use?")
        raise

    try:
        await server.serve_forever()
    except asyncio.CancelledError:
        logging.info("Server task cancelled, shutting down.")
        raise
    finally:
        await server.close()
