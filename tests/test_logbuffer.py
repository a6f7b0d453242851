import logging

import pytest

from filechat.core.logbuffer import LogBuffer, attach_log_buffer


def test_buffer_keeps_only_the_newest_entries():
    buffer = LogBuffer(capacity=3)
    for i in range(5):
        buffer.log(f"line {i}")
    assert [e["message"] for e in buffer.get_logs()] == ["line 2", "line 3", "line 4"]


def test_subscribers_get_current_list_and_updates():
    buffer = LogBuffer(capacity=50)
    buffer.log("before")
    seen = []
    unsubscribe = buffer.subscribe(seen.append)
    assert [e["message"] for e in seen[0]] == ["before"]

    buffer.log("oops", "error")
    assert seen[-1][-1]["type"] == "error"
    buffer.clear()
    assert seen[-1] == []

    unsubscribe()
    buffer.log("after")
    assert len(seen) == 3


def test_disabled_buffer_ignores_entries():
    buffer = LogBuffer(enabled=False)
    buffer.log("ignored")
    assert buffer.get_logs() == []


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        LogBuffer(capacity=0)


def test_handler_maps_levels():
    buffer = LogBuffer(capacity=10)
    handler = attach_log_buffer(buffer, "filechat.tests.logbuffer")
    log = logging.getLogger("filechat.tests.logbuffer")
    try:
        log.info("hello")
        log.warning("careful")
        log.error("broken")
    finally:
        log.removeHandler(handler)
    assert [e["type"] for e in buffer.get_logs()] == ["info", "warn", "error"]
    assert buffer.get_logs()[0]["message"].endswith("hello")
