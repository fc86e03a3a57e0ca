import asyncio
import socket
from dataclasses import dataclass, field
from typing import List

import pytest

from pulse_client import Endpoint


STATUS_TEXT = """\
Memory blocks currently allocated: 1, size: 63.9 KiB.
Memory blocks allocated during the whole lifetime: 4092, size: 61.7 MiB.
Default sink name: alsa_output.pci-0000_00_1f.3.analog-stereo
Default source name: alsa_input.pci-0000_00_1f.3.analog-stereo
2 sink(s) available.
    index: 0
\tname: <alsa_output.hdmi-stereo>
\tstate: SUSPENDED
\tvolume: front-left: 65536 / 100% / 0.00 dB,   front-right: 65536 / 100% / 0.00 dB
\t        balance 0.00
  * index: 1
\tname: <alsa_output.pci-0000_00_1f.3.analog-stereo>
\tstate: RUNNING
\tvolume: front-left: 42950 /  66% / -10.87 dB,   front-right: 42950 /  66% / -10.87 dB
\t        balance 0.00
\tbase volume: 65536 / 100% / 0.00 dB
2 source(s) available.
    index: 0
\tname: <alsa_output.pci-0000_00_1f.3.analog-stereo.monitor>
\tvolume: front-left: 65536 / 100% / 0.00 dB,   front-right: 65536 / 100% / 0.00 dB
  * index: 1
\tname: <alsa_input.pci-0000_00_1f.3.analog-stereo>
\tvolume: front-left: 6554 /  10% / -60.00 dB,   front-right: 6554 /  10% / -60.00 dB
\tbase volume: 65536 / 100% / 0.00 dB
0 sink input(s) available.
0 source output(s) available.
"""


@pytest.fixture
def status_text():
    return STATUS_TEXT


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@dataclass
class FakeCli:
    """Loopback stand-in for module-cli-protocol-tcp that records lines."""
    endpoint: Endpoint
    lines: List[str] = field(default_factory=list)

    async def wait_for_lines(self, count: int, timeout: float = 2.0) -> List[str]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while len(self.lines) < count:
            if loop.time() > deadline:
                raise AssertionError(f"expected {count} lines, got {self.lines!r}")
            await asyncio.sleep(0.01)
        return self.lines


@pytest.fixture
async def cli_server():
    writers = []
    fake = None

    async def handle(reader, writer):
        writers.append(writer)
        writer.write(b'Welcome to PulseAudio! Use "help" for usage information.\n>>> ')
        await writer.drain()
        while True:
            line = await reader.readline()
            if not line:
                break
            fake.lines.append(line.decode("utf-8"))
            writer.write(b">>> ")
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    fake = FakeCli(Endpoint("127.0.0.1", port))
    yield fake

    for writer in writers:
        writer.close()
    server.close()
    await server.wait_closed()
