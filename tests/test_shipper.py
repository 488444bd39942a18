"""
Log shipper: batching, envelope wrapping, failure handling and file tailing.
"""

import queue
import time
from unittest.mock import Mock, patch

import pytest
import requests

from fraglog.envelope import extract_canonical
from fraglog.shipper import LogShipper, tail_file

from conftest import GG_LINE, HEADER


@pytest.fixture
def post():
    with patch("fraglog.shipper.requests.post") as p:
        p.return_value.status_code = 200
        yield p


def sent_lines(post):
    out = []
    for c in post.call_args_list:
        out.extend(c.kwargs["data"].decode("utf-8").split("\n"))
    return out


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


class TestLogShipper:

    def test_batches_lines_to_source_endpoint(self, post):
        shipper = LogShipper("http://collector:8080/", "srv-a", key="k", flush_s=0.05)
        shipper.emit(GG_LINE + "\n")
        shipper.emit("   \n")
        shipper.emit(HEADER + 'World triggered "Round_Start"\r\n')
        shipper.q.join()

        assert sent_lines(post) == [GG_LINE, HEADER + 'World triggered "Round_Start"']
        call = post.call_args
        assert call.args[0] == "http://collector:8080/logs/srv-a"
        assert call.kwargs["params"] == {"key": "k"}
        assert call.kwargs["headers"]["Content-Type"].startswith("text/plain")

    def test_envelope_round_trips(self, post):
        shipper = LogShipper("http://collector", "srv-a", envelope=True, flush_s=0.05)
        shipper.emit(GG_LINE)
        shipper.q.join()

        [line] = sent_lines(post)
        assert line != GG_LINE
        assert shipper.correlation_id in line
        assert extract_canonical(line) == GG_LINE

    def test_full_queue_drops(self, post):
        shipper = LogShipper("http://collector", "srv-a", flush_s=0.05)
        # the worker stays parked on the old queue
        shipper.q = queue.Queue(maxsize=1)
        shipper.emit(GG_LINE)
        shipper.emit(GG_LINE)
        assert shipper.dropped == 1
        assert shipper.q.qsize() == 1


class TestSend:

    def test_connection_error(self, post):
        post.side_effect = requests.ConnectionError("refused")
        shipper = LogShipper("http://collector", "srv-a")
        assert shipper.send([GG_LINE]) is False

    def test_refused_status(self, post):
        post.return_value.status_code = 401
        post.return_value.text = "invalid or inactive source"
        shipper = LogShipper("http://collector", "srv-a")
        assert shipper.send([GG_LINE]) is False

    def test_ok(self, post):
        shipper = LogShipper("http://collector", "srv-a")
        assert shipper.send([GG_LINE]) is True
        assert post.call_args.kwargs["params"] is None


class TestTailFile:

    def test_ships_existing_and_appended_lines(self, tmp_path):
        path = tmp_path / "server.log"
        path.write_text(GG_LINE + "\n", encoding="utf-8")
        shipper = Mock()

        handle = tail_file(str(path), shipper, from_start=True)
        assert handle.path == str(path)
        assert wait_for(lambda: shipper.emit.call_count >= 1)

        with open(path, "a", encoding="utf-8") as f:
            f.write(HEADER + 'World triggered "Round_Start"\n')
        assert wait_for(lambda: shipper.emit.call_count >= 2)

        lines = [c.args[0].rstrip("\n") for c in shipper.emit.call_args_list]
        assert lines[:2] == [GG_LINE, HEADER + 'World triggered "Round_Start"']

    def test_missing_file_keeps_retrying(self, tmp_path):
        shipper = Mock()
        path = tmp_path / "later.log"
        handle = tail_file(str(path), shipper, from_start=True)
        assert handle.thread.is_alive()

        path.write_text(GG_LINE + "\n", encoding="utf-8")
        assert wait_for(lambda: shipper.emit.call_count >= 1)
