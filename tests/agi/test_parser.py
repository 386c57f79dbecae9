"""Unit tests for AGI header block parsing."""

import asyncio

import pytest

from agi_gateway.agi.parser import (
    MAX_HEADER_LINES,
    parse_header_lines,
    read_header_block,
    separate_line_into_key_value_pair,
)
from agi_gateway.errors import ProtocolParseError
from conftest import header_bytes, make_reader


class TestSeparateLine:

    @pytest.mark.parametrize("line,expected", [
        ("agi_channel: SIP/100-1", ("agi_channel", "SIP/100-1")),
        ("agi_channel:SIP/100-1", ("agi_channel", "SIP/100-1")),
        ("agi_request: agi://host:4573/x", ("agi_request", "agi://host:4573/x")),
        ("agi_accountcode: ", ("agi_accountcode", "")),
        ("agi_callerid:  padded", ("agi_callerid", " padded")),
    ])
    def test_valid_lines(self, line, expected):
        assert separate_line_into_key_value_pair(line) == expected

    @pytest.mark.parametrize("line", ["no colon here", ": missing key"])
    def test_malformed_lines(self, line):
        with pytest.raises(ProtocolParseError):
            separate_line_into_key_value_pair(line)


class TestParseHeaderLines:

    def test_stops_at_blank_line(self):
        result = parse_header_lines(["agi_a: 1", "agi_b: 2", "", "ignored: 3"])
        assert result == {"agi_a": "1", "agi_b": "2"}

    def test_later_duplicate_wins(self):
        assert parse_header_lines(["k: 1", "k: 2", ""]) == {"k": "2"}

    def test_truncated_block(self):
        with pytest.raises(ProtocolParseError):
            parse_header_lines(["agi_a: 1"])

    def test_empty_block(self):
        assert parse_header_lines([""]) == {}


class TestReadHeaderBlock:

    @pytest.mark.asyncio
    async def test_reads_block(self, sample_header_lines):
        reader = make_reader(header_bytes(sample_header_lines) + b"ANSWER\n")
        result = await read_header_block(reader)
        assert result["agi_channel"] == "SIP/mytrunk-jb12c88a"
        assert len(result) == len(sample_header_lines)
        # the rest of the stream belongs to the AGI session
        assert await reader.readline() == b"ANSWER\n"

    @pytest.mark.asyncio
    async def test_crlf_lines(self):
        reader = make_reader(b"agi_a: 1\r\nagi_b: 2\r\n\r\n")
        assert await read_header_block(reader) == {"agi_a": "1", "agi_b": "2"}

    @pytest.mark.asyncio
    async def test_eof_before_blank_line(self):
        reader = make_reader(header_bytes(["agi_a: 1"], terminated=False))
        with pytest.raises(ProtocolParseError):
            await read_header_block(reader)

    @pytest.mark.asyncio
    async def test_eof_mid_line(self):
        reader = make_reader(b"agi_a: 1\nagi_b: 2")
        with pytest.raises(ProtocolParseError):
            await read_header_block(reader)

    @pytest.mark.asyncio
    async def test_malformed_line(self):
        reader = make_reader(b"agi_a: 1\ngarbage\n\n")
        with pytest.raises(ProtocolParseError):
            await read_header_block(reader)

    @pytest.mark.asyncio
    async def test_too_many_lines(self):
        lines = [f"agi_k{i}: {i}" for i in range(MAX_HEADER_LINES + 1)]
        reader = make_reader(header_bytes(lines))
        with pytest.raises(ProtocolParseError):
            await read_header_block(reader)

    @pytest.mark.asyncio
    async def test_overlong_line(self):
        reader = asyncio.StreamReader(limit=64)
        reader.feed_data(b"agi_a: " + b"x" * 200 + b"\n\n")
        reader.feed_eof()
        with pytest.raises(ProtocolParseError):
            await read_header_block(reader)
