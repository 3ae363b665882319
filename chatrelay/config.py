# chatrelay/config.py
# This file centralizes configuration settings for the chatrelay WebSocket server.
# Modules read these values as `config.NAME` at call time, so they can be overridden
# (e.g. monkeypatched in tests) without reloading anything.

import os # Import the 'os' module to help construct file paths reliably across different operating systems.

# --- Network Configuration ---

# HOST: The IP address the relay should listen on.
# - '0.0.0.0': Listen on all available network interfaces.
# - '127.0.0.1' or 'localhost': Listen only on the local machine.
HOST = '0.0.0.0'

# PORT: The TCP port number the relay should listen on.
PORT = 5678

# --- SSL Configuration ---
# Settings related to enabling Secure WebSockets (WSS) using TLS certificates.

# CERT_DIR: The directory where the certificate files (cert.pem, key.pem) are expected.
# Calculated relative to this file's location (chatrelay/ -> ../certs/).
CERT_DIR = os.path.join(os.path.dirname(__file__), '..', 'certs')

# CERT_FILE: The certificate file (public key and chain). Must exist if ENABLE_SSL is True.
CERT_FILE = os.path.join(CERT_DIR, 'cert.pem')

# KEY_FILE: The private key matching CERT_FILE. Must exist if ENABLE_SSL is True.
KEY_FILE = os.path.join(CERT_DIR, 'key.pem')

# ENABLE_SSL: Master switch for WSS.
# - True: serve wss:// (falls back to ws:// if the files above are missing or invalid).
# - False: serve plain ws:// (local testing, or TLS terminated by a proxy in front).
ENABLE_SSL = False

# --- Protocol Limits ---

# MAX_MESSAGE_SIZE: Largest incoming WebSocket frame accepted, in bytes.
# Envelopes are short JSON documents, so 64 KB leaves plenty of room for message bodies.
MAX_MESSAGE_SIZE = 64 * 1024

# INACTIVITY_THRESHOLD_SECONDS: A session whose last inbound frame is older than this
# is reported as inactive by ConnectionSession.is_active(). Informational only:
# the relay never disconnects a client for being idle.
INACTIVITY_THRESHOLD_SECONDS = 5 * 60

# --- Logging Configuration ---

# LOG_FORMAT: Format used for console logging configured in main.py.
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

# SINK_LOG_FORMAT / SINK_DATE_FORMAT: Format of the lines handed to an attached log sink
# (see chatrelay/logsink.py), e.g. "[2024-05-01 12:00:00] Server started on port 5678".
SINK_LOG_FORMAT = '[%(asctime)s] %(message)s'
SINK_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# --- Debugging Configuration ---

# DEBUG: Verbose traffic logging.
# - True: log every envelope sent and received (including message bodies).
# - False: only connections, registrations, routing misses, warnings and errors are logged.
DEBUG = False
