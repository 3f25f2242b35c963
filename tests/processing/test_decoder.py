"""Tests for encoding recovery and line splitting."""

import codecs
import io

from logsight.processing.decoder import LogDecoder, decode_line, split_lines
from logsight.processing.parser import LogParser


def test_decode_utf8_lines():
    data = "2024-01-20 ERROR boom\n2024-01-20 INFO fine\n".encode("utf-8")

    assert LogDecoder().decode(data) == ["2024-01-20 ERROR boom", "2024-01-20 INFO fine"]


def test_decode_empty_input_yields_no_lines():
    assert LogDecoder().decode(b"") == []


def test_split_lines_handles_crlf_and_keeps_lone_cr():
    assert split_lines("a\r\nb\rc\nlast") == ["a", "b\rc", "last"]


def test_split_lines_trailing_newline_does_not_add_empty_line():
    assert split_lines("one\ntwo\n") == ["one", "two"]


def test_decode_utf8_bom_is_stripped():
    data = codecs.BOM_UTF8 + "ERROR café\n".encode("utf-8")

    assert LogDecoder().decode(data) == ["ERROR café"]


def test_decode_utf16_le_with_bom():
    data = codecs.BOM_UTF16_LE + "ERROR one\r\nWARN two\r\n".encode("utf-16-le")

    assert LogDecoder().decode(data) == ["ERROR one", "WARN two"]


def test_decode_utf16_be_with_bom():
    data = codecs.BOM_UTF16_BE + "INFO ready\n".encode("utf-16-be")

    assert LogDecoder().decode(data) == ["INFO ready"]


def test_invalid_utf8_line_falls_back_to_windows_1252():
    data = b"ERROR caf\xe9 closed\nINFO ok\n"

    assert LogDecoder().decode(data) == ["ERROR café closed", "INFO ok"]


def test_fallback_applies_per_line():
    data = "INFO naïve\n".encode("utf-8") + b"ERROR na\xefve\n"

    assert LogDecoder().decode(data) == ["INFO naïve", "ERROR naïve"]


def test_bytes_undefined_in_windows_1252_use_iso_8859_2():
    # 0x81 has no Windows-1252 mapping but is a C1 control in ISO-8859-2
    assert decode_line(b"\x81abc") == "\x81abc"


def test_decode_caps_lines():
    data = "\n".join(f"INFO line {i}" for i in range(10)).encode("utf-8")

    lines = LogDecoder(max_lines=3).decode(data)

    assert lines == ["INFO line 0", "INFO line 1", "INFO line 2"]


def test_decode_never_exceeds_max_lines_on_fallback_path():
    data = b"\n".join(b"ERROR caf\xe9 %d" % i for i in range(50))

    assert len(LogDecoder(max_lines=7).decode(data)) == 7


def test_decode_stream_keeps_blank_lines():
    stream = io.BytesIO(b"ERROR a\n\n   \nINFO b\r\n")

    assert LogDecoder().decode_stream(stream) == ["ERROR a", "", "   ", "INFO b"]


def test_streamed_lines_keep_source_line_numbers():
    stream = io.BytesIO(b"INFO a\n\n\nERROR b\n")

    entries = LogParser().parse_lines(LogDecoder().decode_stream(stream))

    assert [(e.line_number, e.level) for e in entries] == [(1, "INFO"), (4, "ERROR")]


def test_decode_stream_stops_at_line_limit():
    stream = io.BytesIO(b"".join(b"INFO %d\n" % i for i in range(100)))

    lines = LogDecoder(max_lines=5).decode_stream(stream)

    assert lines == ["INFO 0", "INFO 1", "INFO 2", "INFO 3", "INFO 4"]


def test_decode_stream_utf16_with_bom():
    stream = io.BytesIO(codecs.BOM_UTF16_LE + "ERROR x\nINFO y\n".encode("utf-16-le"))

    assert LogDecoder().decode_stream(stream) == ["ERROR x", "INFO y"]


def test_decode_stream_recovers_legacy_encoding():
    stream = io.BytesIO(b"ERROR caf\xe9\n")

    assert LogDecoder().decode_stream(stream) == ["ERROR café"]
