import asyncio

import pytest


SAMPLE_HEADER_LINES = [
    "agi_network: yes",
    "agi_network_script: sandbox",
    "agi_request: agi://10.0.0.5/sandbox?caller_tag=vip&failed_reason=5",
    "agi_channel: SIP/mytrunk-jb12c88a",
    "agi_language: en",
    "agi_type: SIP",
    "agi_uniqueid: 1215039989.47033",
    "agi_version: 1.4.19",
    "agi_callerid: 5555551234",
    "agi_calleridname: Jane Doe",
    "agi_callingpres: 0",
    "agi_callingani2: 0",
    "agi_callington: 2",
    "agi_callingtns: 0",
    "agi_dnid: 1000",
    "agi_rdnis: unknown",
    "agi_context: adhearsion-sandbox",
    "agi_extension: 1000",
    "agi_priority: 1",
    "agi_enhanced: 0.0",
    "agi_accountcode: ",
    "agi_threadid: -1224959088",
]


def header_bytes(lines, terminated=True):
    text = "\n".join(lines) + "\n"
    if terminated:
        text += "\n"
    return text.encode("ascii")


def with_overrides(**overrides):
    """Sample header lines with some agi_ variables replaced."""
    lines = []
    for line in SAMPLE_HEADER_LINES:
        key = line.split(":", 1)[0][len("agi_"):]
        if key in overrides:
            value = overrides.pop(key)
            if value is not None:
                lines.append(f"agi_{key}: {value}")
        else:
            lines.append(line)
    lines.extend(f"agi_{key}: {value}" for key, value in overrides.items() if value is not None)
    return lines


class FakeWriter:
    """Stand-in for asyncio.StreamWriter."""

    def __init__(self, peer=("127.0.0.1", 40000)):
        self.peer = peer
        self.close_count = 0

    def get_extra_info(self, name, default=None):
        if name == "peername":
            return self.peer
        return default

    def close(self):
        self.close_count += 1

    def is_closing(self):
        return self.close_count > 0

    async def wait_closed(self):
        return None


def make_reader(data: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader


@pytest.fixture
def sample_header_lines():
    return list(SAMPLE_HEADER_LINES)


@pytest.fixture
def fake_writer():
    return FakeWriter()
