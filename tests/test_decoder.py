"""Tests for analytics_xray.capture.decoder — request body decoding."""

from __future__ import annotations

from analytics_xray.capture.decoder import decode_request_body
from analytics_xray.models.results import Err, Ok


class TestDecodeRequestBody:
    """Tests for decode_request_body()."""

    def test_none_is_no_body(self) -> None:
        result = decode_request_body(None)
        assert isinstance(result, Err)
        assert result.kind == "no_body"

    def test_empty_list_is_no_body(self) -> None:
        result = decode_request_body([])
        assert isinstance(result, Err)
        assert result.kind == "no_body"

    def test_chunks_without_bytes_are_no_body(self) -> None:
        result = decode_request_body([{"file": "/tmp/upload"}])
        assert isinstance(result, Err)
        assert result.kind == "no_body"

    def test_empty_bytes_are_no_body(self) -> None:
        result = decode_request_body([b""])
        assert isinstance(result, Err)
        assert result.kind == "no_body"

    def test_single_chunk(self) -> None:
        assert decode_request_body([b'{"a":1}']) == Ok('{"a":1}')

    def test_chunks_concatenated_in_order(self) -> None:
        result = decode_request_body([b'{"bat', bytearray(b'ch":'), memoryview(b"[]}")])
        assert result == Ok('{"batch":[]}')

    def test_upload_data_mappings(self) -> None:
        result = decode_request_body([{"bytes": b"hello "}, {"file": "x"}, {"bytes": b"world"}])
        assert result == Ok("hello world")

    def test_multibyte_character_split_across_chunks(self) -> None:
        encoded = "café".encode()
        result = decode_request_body([encoded[:4], encoded[4:]])
        assert result == Ok("café")

    def test_malformed_utf8_is_replaced(self) -> None:
        result = decode_request_body([b"ok\xff"])
        assert isinstance(result, Ok)
        assert result.value.startswith("ok")
        assert "�" in result.value
