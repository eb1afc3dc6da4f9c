"""Tests for command serialization and result correlation."""

import threading

import pytest

from cp_debugger.bridge.correlator import CommandCorrelator
from cp_debugger.bridge.records import classify
from cp_debugger.exceptions import (
    CommandCancelledError,
    CommandError,
    SessionNotActiveError,
)


class RecordingWriter:
    def __init__(self):
        self.lines = []

    def __call__(self, text):
        self.lines.append(text)


@pytest.fixture
def writer():
    return RecordingWriter()


@pytest.fixture
def correlator(writer):
    return CommandCorrelator(writer, timeout=5.0)


class TestSend:
    def test_first_command_written_with_token(self, correlator, writer):
        correlator.send("-exec-next")
        assert writer.lines == ["1-exec-next\n"]
        assert correlator.busy

    def test_one_in_flight_fifo(self, correlator, writer):
        first = correlator.send("-gdb-set confirm off")
        second = correlator.send("-gdb-set pagination off")
        third = correlator.send("-stack-list-frames")

        assert writer.lines == ["1-gdb-set confirm off\n"]
        assert correlator.queued == 2

        correlator.on_record(classify("1^done"))
        assert first.done()
        assert not second.done()
        assert writer.lines[-1] == "2-gdb-set pagination off\n"

        correlator.on_record(classify("2^done"))
        correlator.on_record(classify("3^done,stack=[]"))
        assert second.done() and third.done()
        assert writer.lines == [
            "1-gdb-set confirm off\n",
            "2-gdb-set pagination off\n",
            "3-stack-list-frames\n",
        ]
        assert not correlator.busy

    def test_concurrent_senders_keep_one_in_flight(self, correlator, writer):
        barrier = threading.Barrier(20)
        futures = []
        futures_lock = threading.Lock()

        def sender(i):
            barrier.wait()
            future = correlator.send(f"-data-evaluate-expression \"x{i}\"")
            with futures_lock:
                futures.append(future)

        threads = [threading.Thread(target=sender, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert len(futures) == 20
        assert len(writer.lines) == 1
        assert correlator.queued == 19

        resolved = []
        for future in futures:
            future.add_done_callback(lambda f: resolved.append(f.result().token))

        for token in range(1, 21):
            assert writer.lines[-1].startswith(f"{token}-data-evaluate-expression")
            correlator.on_record(classify(f"{token}^done"))
            assert len(writer.lines) == min(token + 1, 20)

        assert resolved == list(range(1, 21))
        assert not correlator.busy

    def test_no_writer_raises(self):
        correlator = CommandCorrelator()
        with pytest.raises(SessionNotActiveError):
            correlator.send("-exec-run")


class TestCompletion:
    def test_done_resolves_with_payload(self, correlator):
        future = correlator.send('-data-evaluate-expression "n"')
        completed = correlator.on_record(classify('1^done,value="5"'))
        assert completed
        result = future.result(timeout=1)
        assert result.get("value") == "5"
        assert not result.timed_out

    def test_any_non_error_result_completes(self, correlator):
        future = correlator.send("-exec-run")
        correlator.on_record(classify("1^running"))
        assert future.result(timeout=1).message == "running"

    def test_error_rejects(self, correlator):
        future = correlator.send('-data-evaluate-expression "nope"')
        correlator.on_record(classify('1^error,msg="No symbol \\"nope\\" in current context."'))
        with pytest.raises(CommandError) as exc_info:
            future.result(timeout=1)
        assert exc_info.value.msg == 'No symbol "nope" in current context.'
        assert exc_info.value.command == '-data-evaluate-expression "nope"'

    def test_untokened_result_completes_in_flight(self, correlator):
        future = correlator.send("-exec-interrupt")
        correlator.on_record(classify("^done"))
        assert future.done()

    def test_mismatched_token_ignored(self, correlator):
        future = correlator.send("-exec-next")
        assert not correlator.on_record(classify("9^done"))
        assert not future.done()

    def test_async_records_do_not_complete(self, correlator):
        future = correlator.send("-exec-next")
        correlator.on_record(classify('*running,thread-id="all"'))
        correlator.on_record(classify("(gdb)"))
        assert not future.done()

    def test_console_text_collected(self, correlator):
        future = correlator.send("-interpreter-exec console \"info line\"")
        correlator.on_record(classify('~"Line 5 of \\"a.cpp\\"\\n"'))
        correlator.on_record(classify("1^done"))
        assert future.result(timeout=1).console_output == ['Line 5 of "a.cpp"\n']

    def test_result_with_nothing_in_flight(self, correlator):
        assert not correlator.on_record(classify("^done"))


class TestTimeout:
    def test_timeout_resolves_empty_and_advances(self, writer):
        correlator = CommandCorrelator(writer, timeout=0.05)
        first = correlator.send("-exec-next")
        second = correlator.send("-stack-list-frames")

        result = first.result(timeout=2)
        assert result.timed_out
        assert result.payload is None
        assert writer.lines[-1] == "2-stack-list-frames\n"

        # the late reply for the timed-out command is ignored
        correlator.on_record(classify("1^done"))
        assert not second.done()
        correlator.on_record(classify("2^done"))
        assert second.done()


class TestFlush:
    def test_flush_cancels_queued(self, correlator):
        in_flight = correlator.send("-exec-continue")
        queued = correlator.send("-stack-list-frames")

        assert correlator.flush() == 1
        with pytest.raises(CommandCancelledError):
            queued.result(timeout=1)
        assert not in_flight.done()

    def test_detach_cancels_in_flight(self, correlator):
        in_flight = correlator.send("-exec-continue")
        correlator.detach()
        with pytest.raises(CommandCancelledError):
            in_flight.result(timeout=1)
        assert not correlator.is_active

    def test_write_failure_fails_command(self):
        def broken(text):
            raise OSError("broken pipe")

        correlator = CommandCorrelator(broken, timeout=5.0)
        future = correlator.send("-exec-run")
        with pytest.raises(SessionNotActiveError):
            future.result(timeout=1)
        assert not correlator.busy
