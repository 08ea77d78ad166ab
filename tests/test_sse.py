import pytest

from llmrelay.errors import StreamDecodeFailed
from llmrelay.sse import SSEDecoder, SSEFrame


class TestSSEDecoder:
    def test_single_frame(self):
        decoder = SSEDecoder()
        assert decoder.feed(b'data: {"a":1}\n\n') == [SSEFrame(event=None, data='{"a":1}')]

    def test_frame_split_across_chunks(self):
        decoder = SSEDecoder()
        assert decoder.feed(b'data: {"a"') == []
        assert decoder.feed(b':1}\n') == []
        assert decoder.pending
        assert decoder.feed(b"\n") == [SSEFrame(None, '{"a":1}')]
        assert not decoder.pending

    def test_several_frames_in_one_chunk(self):
        frames = SSEDecoder().feed(b"data: one\n\ndata: two\n\ndata: thr")
        assert [f.data for f in frames] == ["one", "two"]

    def test_event_field(self):
        frames = SSEDecoder().feed(b"event: message_start\ndata: {}\n\n")
        assert frames == [SSEFrame(event="message_start", data="{}")]

    def test_event_does_not_leak_into_next_frame(self):
        frames = SSEDecoder().feed(b"event: ping\ndata: 1\n\ndata: 2\n\n")
        assert frames[1].event is None

    def test_multiline_data_joined(self):
        frames = SSEDecoder().feed(b"data: line1\ndata: line2\n\n")
        assert frames[0].data == "line1\nline2"

    def test_crlf_line_endings(self):
        frames = SSEDecoder().feed(b"data: hello\r\n\r\n")
        assert frames == [SSEFrame(None, "hello")]

    def test_comments_and_ids_ignored(self):
        decoder = SSEDecoder()
        assert decoder.feed(b": keep-alive\n\n") == []
        assert decoder.feed(b"id: 7\nretry: 1000\ndata: x\n\n") == [SSEFrame(None, "x")]

    def test_multibyte_character_split(self):
        decoder = SSEDecoder()
        assert decoder.feed(b"data: caf\xc3") == []
        assert decoder.feed(b"\xa9\n\n") == [SSEFrame(None, "café")]

    def test_flush_delivers_unterminated_frame(self):
        decoder = SSEDecoder()
        assert decoder.feed(b"data: [DONE]") == []
        assert decoder.flush() == [SSEFrame(None, "[DONE]")]
        assert decoder.flush() == []

    def test_oversized_frame_raises(self):
        decoder = SSEDecoder(max_frame_bytes=16)
        with pytest.raises(StreamDecodeFailed, match="exceeds 16 bytes"):
            decoder.feed(b"data: " + b"x" * 32)
