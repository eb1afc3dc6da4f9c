"""Tests for MI line framing, record classification and string quoting."""

import pytest

from cp_debugger.bridge.records import (
    LineBuffer,
    MiDemultiplexer,
    MiRecord,
    RecordKind,
    classify,
    exit_code_of,
    quote_mi_string,
)


class TestClassify:
    def test_prompt(self):
        assert classify("(gdb)").kind == RecordKind.PROMPT
        assert classify("(gdb) ").kind == RecordKind.PROMPT

    def test_done(self):
        rec = classify('^done,value="42"')
        assert rec.kind == RecordKind.DONE
        assert rec.is_result
        assert rec.fields == {"value": "42"}

    def test_done_with_token(self):
        rec = classify('17^done,value="42"')
        assert rec.kind == RecordKind.DONE
        assert rec.token == 17

    def test_connected_and_exit_are_successful_results(self):
        assert classify("^connected").kind == RecordKind.DONE
        assert classify("^exit").kind == RecordKind.DONE
        assert classify("^exit").is_result

    def test_error(self):
        rec = classify('3^error,msg="No symbol \\"x\\" in current context."')
        assert rec.kind == RecordKind.ERROR
        assert rec.is_result
        assert rec.token == 3
        assert rec.fields["msg"] == 'No symbol "x" in current context.'

    def test_result_running(self):
        rec = classify("5^running")
        assert rec.kind == RecordKind.RUNNING
        assert rec.is_result

    def test_async_running(self):
        rec = classify('*running,thread-id="all"')
        assert rec.kind == RecordKind.RUNNING
        assert not rec.is_result

    def test_stopped_breakpoint(self):
        rec = classify(
            '*stopped,reason="breakpoint-hit",disp="keep",bkptno="1",'
            'frame={addr="0x1189",func="main",args=[],file="a.cpp",'
            'fullname="/work/a.cpp",line="5"},thread-id="1",stopped-threads="all"'
        )
        assert rec.kind == RecordKind.STOPPED
        assert rec.fields["bkptno"] == "1"
        assert rec.fields["frame"]["line"] == "5"

    @pytest.mark.parametrize("reason", ["exited", "exited-normally", "exited-signalled"])
    def test_stopped_with_exit_reason_is_exit(self, reason):
        rec = classify(f'*stopped,reason="{reason}"')
        assert rec.kind == RecordKind.EXIT

    def test_breakpoint_notifications(self):
        created = classify(
            '=breakpoint-created,bkpt={number="2",type="breakpoint",'
            'file="a.cpp",line="7"}'
        )
        assert created.kind == RecordKind.BREAKPOINT_CREATED
        assert created.fields["bkpt"]["number"] == "2"

        modified = classify('=breakpoint-modified,bkpt={number="2",line="8"}')
        assert modified.kind == RecordKind.BREAKPOINT_MODIFIED

        deleted = classify('=breakpoint-deleted,id="2"')
        assert deleted.kind == RecordKind.BREAKPOINT_DELETED
        assert deleted.fields["id"] == "2"

    def test_thread_group_exited(self):
        rec = classify('=thread-group-exited,id="i1",exit-code="0"')
        assert rec.kind == RecordKind.EXIT
        assert rec.message == "thread-group-exited"

    def test_thread_exited(self):
        rec = classify('=thread-exited,id="1",group-id="i1"')
        assert rec.kind == RecordKind.EXIT
        assert rec.message == "thread-exited"

    def test_other_notifications(self):
        rec = classify('=library-loaded,id="/lib/x86_64-linux-gnu/libc.so.6"')
        assert rec.kind == RecordKind.NOTIFY

    def test_streams(self):
        console = classify('~"GNU gdb (GDB) 14.2\\n"')
        assert console.kind == RecordKind.CONSOLE
        assert console.text == "GNU gdb (GDB) 14.2\n"

        assert classify('&"warning: no symbols\\n"').kind == RecordKind.LOG
        assert classify('@"hello\\n"').kind == RecordKind.TARGET

    def test_plain_exit_text(self):
        rec = classify("[Inferior 1 (process 42) exited with code 01]")
        assert rec.kind == RecordKind.EXIT

    def test_unknown(self):
        rec = classify("hello from the program")
        assert rec.kind == RecordKind.UNKNOWN
        assert rec.text == "hello from the program"


class TestExitCode:
    def test_octal_exit_code_field(self):
        rec = classify('=thread-group-exited,id="i1",exit-code="012"')
        assert exit_code_of(rec) == 10

    def test_missing_code_is_zero(self):
        rec = classify('*stopped,reason="exited-normally"')
        assert exit_code_of(rec) == 0

    def test_code_from_text(self):
        rec = classify("[Inferior 1 (process 42) exited with code 03]")
        assert exit_code_of(rec) == 3

    def test_stopped_exit_code(self):
        rec = classify('*stopped,reason="exited",exit-code="01"')
        assert exit_code_of(rec) == 1

    def test_non_octal_falls_back_to_decimal(self):
        rec = MiRecord(kind=RecordKind.EXIT, line="", payload={"exit-code": "9"})
        assert exit_code_of(rec) == 9


class TestQuoting:
    def test_plain(self):
        assert quote_mi_string("a.cpp:5") == '"a.cpp:5"'

    def test_escapes(self):
        assert quote_mi_string('say "hi"\n') == '"say \\"hi\\"\\n"'
        assert quote_mi_string("C:\\src\\a.cpp") == '"C:\\\\src\\\\a.cpp"'

    def test_console_text_round_trips(self):
        value = 'x == "a\\b"\t'
        rec = classify("~" + quote_mi_string(value))
        assert rec.text == value


class TestLineBuffer:
    def test_split_across_chunks(self):
        buf = LineBuffer()
        assert buf.feed(b'^done,val') == []
        assert buf.feed(b'ue="1"\n(gdb)\n') == ['^done,value="1"', "(gdb)"]

    def test_crlf(self):
        buf = LineBuffer()
        assert buf.feed(b"(gdb)\r\n") == ["(gdb)"]

    def test_multibyte_split(self):
        data = '~"caf\u00e9"\n'.encode()
        buf = LineBuffer()
        assert buf.feed(data[:6]) == []
        assert buf.feed(data[6:]) == ['~"caf\u00e9"']

    def test_flush(self):
        buf = LineBuffer()
        buf.feed(b"(gdb)")
        assert buf.flush() == ["(gdb)"]
        assert buf.flush() == []


class TestMiDemultiplexer:
    def test_in_order_and_skips_blank(self):
        seen = []
        demux = MiDemultiplexer(seen.append)
        demux.feed(b'~"a"\n\n*running,thread-id="all"\n(gd')
        demux.feed(b"b)\n")
        assert [r.kind for r in seen] == [
            RecordKind.CONSOLE,
            RecordKind.RUNNING,
            RecordKind.PROMPT,
        ]

    def test_handler_error_does_not_stop_dispatch(self):
        seen = []

        def handler(record):
            if record.kind == RecordKind.CONSOLE:
                raise RuntimeError("boom")
            seen.append(record)

        demux = MiDemultiplexer(handler)
        demux.feed(b'~"a"\n(gdb)\n')
        assert [r.kind for r in seen] == [RecordKind.PROMPT]
