from __future__ import annotations

import logging
import re

import pytest

from chatrelay.logsink import LogSinkHandler, attach_log_sink, detach_log_sink
from tests.helpers import close_all, connect


class ListSink:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def write(self, line: str) -> None:
        self.lines.append(line)


class BrokenSink:
    def write(self, line: str) -> None:
        raise RuntimeError("console gone")


LINE = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] ")


def test_handler_formats_lines_with_timestamp_prefix() -> None:
    sink = ListSink()
    logger = logging.getLogger("chatrelay.test.sink")
    logger.propagate = False
    handler = LogSinkHandler(sink)
    logger.addHandler(handler)
    try:
        logger.warning("Server started on port 5678")
    finally:
        logger.removeHandler(handler)

    assert len(sink.lines) == 1
    assert LINE.match(sink.lines[0])
    assert sink.lines[0].endswith("Server started on port 5678")


def test_handler_respects_level() -> None:
    sink = ListSink()
    logger = logging.getLogger("chatrelay.test.level")
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    handler = LogSinkHandler(sink, level=logging.WARNING)
    logger.addHandler(handler)
    try:
        logger.info("quiet")
        logger.error("loud")
    finally:
        logger.removeHandler(handler)

    assert [line.split("] ", 1)[1] for line in sink.lines] == ["loud"]


def test_broken_sink_does_not_raise(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(logging, "raiseExceptions", False)
    logger = logging.getLogger("chatrelay.test.broken")
    logger.propagate = False
    handler = LogSinkHandler(BrokenSink())
    logger.addHandler(handler)
    try:
        logger.warning("still fine")
    finally:
        logger.removeHandler(handler)


@pytest.mark.asyncio
async def test_attached_sink_receives_relay_activity(router) -> None:
    sink = ListSink()
    root = logging.getLogger()
    previous_level = root.level
    root.setLevel(logging.INFO)
    handler = attach_log_sink(sink)
    try:
        ana = await connect(router, "ana")
        await close_all(router, ana)
    finally:
        detach_log_sink(handler)
        root.setLevel(previous_level)

    assert any("Identifier '1 - ana' registered successfully" in line for line in sink.lines)
    assert handler not in root.handlers
