# chatrelay/logsink.py
# Bridge between the relay's logging and an external console.
# A console (GUI window, TUI pane, test double...) only needs a `write(line)` method; the
# handler below formats every log record as "[YYYY-mm-dd HH:MM:SS] message" and hands it over.

import logging
from typing import Protocol

from chatrelay import config


class LogSink(Protocol):
    def write(self, line: str) -> None: ...


class LogSinkHandler(logging.Handler):
    """logging.Handler forwarding formatted records to a LogSink."""

    def __init__(self, sink: LogSink, level: int = logging.INFO):
        super().__init__(level)
        self.sink = sink
        self.setFormatter(logging.Formatter(config.SINK_LOG_FORMAT, datefmt=config.SINK_DATE_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.sink.write(self.format(record))
        except Exception:
            # Standard logging behavior: report via handleError, never raise into the caller.
            self.handleError(record)


def attach_log_sink(sink: LogSink, level: int = logging.INFO) -> LogSinkHandler:
    """Install a LogSinkHandler on the root logger and return it (pass it to detach_log_sink)."""
    handler = LogSinkHandler(sink, level)
    logging.getLogger().addHandler(handler)
    return handler


def detach_log_sink(handler: LogSinkHandler) -> None:
    logging.getLogger().removeHandler(handler)
