# chatrelay/main.py
# Main entry point for starting the relay (`python -m chatrelay.main`, or the `chatrelay`
# console script). It sets up logging, reads HOST/PORT from the config module, and runs
# the asynchronous server defined in chatrelay/server.py until interrupted.

import asyncio  # Runs the server's event loop.
import logging  # Console logging for the server process.

from chatrelay import config, server

# Configure basic logging for the server process. DEBUG traffic logs are still gated by config.DEBUG.
logging.basicConfig(level=logging.INFO, format=config.LOG_FORMAT)


def main() -> None:
    logging.info("Attempting to start relay from main.py...")
    try:
        logging.info(f"Using HOST={config.HOST}, PORT={config.PORT}")
        asyncio.run(server.start_server(config.HOST, config.PORT))
    except KeyboardInterrupt:
        # Ctrl+C in the terminal running the server.
        logging.info("Server stopped manually via KeyboardInterrupt.")
    except Exception:
        # Anything else that escaped the server (port in use, unexpected crash).
        logging.exception("Server failed to start or crashed in main.py")


if __name__ == "__main__":
    main()
