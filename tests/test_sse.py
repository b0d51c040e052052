import json

import pytest

from enigma.errors import StreamInterruptedError
from enigma.sse import DONE, SSEDecoder, parse_line


def frame(content) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}, ensure_ascii=False)


# ----------------------------------------------------------------------
# parse_line
# ----------------------------------------------------------------------

def test_parse_line_content():
    assert parse_line('data: {"choices":[{"delta":{"content":"Hello"}}]}') == "Hello"


def test_parse_line_done():
    assert parse_line("data: [DONE]") is DONE


@pytest.mark.parametrize(
    "line",
    [
        "",
        "   ",
        ": keep-alive",
        "data: {bad json}",
        "event: message",
        "data:{\"choices\":[]}",
        'data: {"choices":[]}',
        'data: {"choices":[{"delta":{}}]}',
        'data: {"choices":[{"delta":{"content":null}}]}',
        'data: {"choices":[{"delta":{"content":42}}]}',
        "data: [1, 2]",
    ],
)
def test_parse_line_skips(line):
    assert parse_line(line) is None


def test_parse_line_tolerates_crlf():
    assert parse_line(frame("hi") + "\r") == "hi"
    assert parse_line("data: [DONE]\r") is DONE


# ----------------------------------------------------------------------
# SSEDecoder
# ----------------------------------------------------------------------

def test_feed_emits_complete_lines_in_order():
    decoder = SSEDecoder()
    body = f"{frame('Hel')}\n\n{frame('lo')}\n\n".encode()
    assert decoder.feed(body) == ["Hel", "lo"]
    assert not decoder.done


def test_feed_holds_partial_line_until_newline():
    decoder = SSEDecoder()
    line = frame("split")
    assert decoder.feed(line[:10]) == []
    assert decoder.feed(line[10:]) == []
    assert decoder.feed("\n") == ["split"]


def test_done_stops_decoding_and_discards_rest():
    decoder = SSEDecoder()
    body = f"{frame('a')}\ndata: [DONE]\n{frame('late')}\n{frame('tail')}"
    assert decoder.feed(body) == ["a"]
    assert decoder.done
    assert decoder.feed(f"{frame('more')}\n") == []
    assert decoder.finish() is None


def test_finish_flushes_trailing_line_once():
    decoder = SSEDecoder()
    assert decoder.feed(f"{frame('one')}\n{frame('two')}") == ["one"]
    assert decoder.finish() == "two"
    assert decoder.finish() is None


def test_finish_ignores_blank_tail():
    decoder = SSEDecoder()
    decoder.feed(f"{frame('one')}\n   ")
    assert decoder.finish() is None


def test_comments_and_malformed_frames_are_skipped():
    decoder = SSEDecoder()
    body = f": ping\n{frame('x')}\ndata: {{oops\n{frame('y')}\n"
    assert decoder.feed(body) == ["x", "y"]


def test_multibyte_character_split_across_chunks():
    decoder = SSEDecoder()
    raw = (frame("héllo ☃") + "\n").encode("utf-8")
    cut = raw.index("☃".encode("utf-8")) + 1
    assert decoder.feed(raw[:cut]) == []
    assert decoder.feed(raw[cut:]) == ["héllo ☃"]


def test_fail_wraps_original_message():
    decoder = SSEDecoder()
    decoder.feed("data: {\"partial")
    err = decoder.fail(ConnectionResetError("connection reset by peer"))
    assert isinstance(err, StreamInterruptedError)
    assert err.code == "STREAM_INTERRUPTED"
    assert "connection reset by peer" in str(err)
    assert decoder.finish() is None
