"""
PulseAudio Remote Volume Client
Controls the default sink/source volume of a remote PulseAudio server
through its CLI TCP port and reads current volumes from its HTTP status page.
"""

import asyncio
import logging
import math
import re
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Set

import aiohttp
from zeroconf import ServiceBrowser, ServiceStateChange, Zeroconf

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration
# ============================================================================

@dataclass(frozen=True)
class Endpoint:
    """Host/port pair for one of the two server channels."""
    host: str
    port: int

    def url(self, path: str = "/") -> str:
        """Build an http URL on this endpoint."""
        return f"http://{self.host}:{self.port}{path}"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class ClientConfig:
    """Client configuration parameters."""
    NAME: str = "PulseAudio"
    CLI_HOST: str = "127.0.0.1"
    CLI_PORT: int = 4712
    HTTP_HOST: str = "127.0.0.1"
    HTTP_PORT: int = 4714
    FETCH_TIMEOUT: float = 5.0  # seconds
    CONNECT_TIMEOUT: float = 5.0  # seconds

    @property
    def cli_endpoint(self) -> Endpoint:
        return Endpoint(self.CLI_HOST, int(self.CLI_PORT))

    @property
    def http_endpoint(self) -> Endpoint:
        return Endpoint(self.HTTP_HOST, int(self.HTTP_PORT))


# ============================================================================
# Errors
# ============================================================================

class VolumeClientError(Exception):
    """Base class for client failures."""


class ChannelConnectionError(VolumeClientError):
    """The command connection could not be established."""


class SendError(VolumeClientError):
    """A command could not be written to the command connection."""


class FetchError(VolumeClientError):
    """The HTTP status query failed."""


class DecodeError(FetchError):
    """The status response was empty or not valid UTF-8."""


# ============================================================================
# Volume Scaling
# ============================================================================

class DeviceClass(Enum):
    """Playback (sink) or capture (source) device."""
    SINK = "sink"
    SOURCE = "source"

    @property
    def default_name(self) -> str:
        return "@DEFAULT_SINK@" if self is DeviceClass.SINK else "@DEFAULT_SOURCE@"

    def volume_command(self, native: int) -> str:
        """CLI command setting the default device of this class to `native`."""
        return f"set-{self.value}-volume {self.default_name} {native}"


class VolumeScaler:
    """
    Converts between UI percentages (0-100) and PulseAudio's native
    linear volume (0-65536, where 65536 is 100%).
    """

    NATIVE_MAX = 65536
    PERCENT_MAX = 100

    @staticmethod
    def to_native(percent: float) -> int:
        """Percentage to native volume, clamped and truncated toward zero."""
        if not math.isfinite(percent):
            raise ValueError(f"Volume must be a finite percentage, got {percent!r}")
        percent = max(0, min(VolumeScaler.PERCENT_MAX, percent))
        return int(percent / 100.0 * 65536.0)


# ============================================================================
# Status Parsing
# ============================================================================

@dataclass(frozen=True)
class StatusSnapshot:
    """Default sink/source volumes read from one status report."""
    sink_volume_percent: float = 0.0
    source_volume_percent: float = 0.0


class _Section(Enum):
    NONE = 0
    SINKS = 1
    SOURCES = 2


class StatusParser:
    """
    Fetches the server's /status page over HTTP and extracts the volume
    of the default sink and default source.
    """

    SINKS_HEADER = "sink(s) available."
    SOURCES_HEADER = "source(s) available."
    DEFAULT_MARKER = "* index:"
    VOLUME_PREFIX = "volume:"

    _volume_re = re.compile(r"\bvolume:.*?(\d+)%", re.IGNORECASE)

    def __init__(self, endpoint: Endpoint, timeout: float = 5.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session

    async def fetch_status(self) -> str:
        """GET /status and return the body as text. Raises FetchError."""
        url = self.endpoint.url("/status")
        logger.debug(f"Fetching {url}")
        try:
            if self.session is not None:
                body = await self._get(self.session, url)
            else:
                async with aiohttp.ClientSession() as session:
                    body = await self._get(session, url)
        except asyncio.TimeoutError as e:
            raise FetchError(f"Timed out after {self.timeout}s fetching {url}") from e
        except aiohttp.ClientError as e:
            raise FetchError(f"Failed to fetch {url}: {e}") from e

        if not body:
            raise DecodeError(f"Empty response from {url}")
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Response from {url} is not valid UTF-8: {e}") from e

    async def _get(self, session: aiohttp.ClientSession, url: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with session.get(url, timeout=timeout) as resp:
            resp.raise_for_status()
            return await resp.read()

    @staticmethod
    def parse_volumes(text: str) -> StatusSnapshot:
        """
        Scan a status report line by line.

        A section header switches between sinks and sources. A line starting
        with "* index:" arms the scanner; the next "volume:" line in a known
        section then supplies that section's percentage. A later default
        marker in the same section overwrites the earlier value.
        """
        section = _Section.NONE
        armed = False
        sink_volume = 0.0
        source_volume = 0.0

        for line in (raw.strip() for raw in text.split("\n")):
            if StatusParser.SINKS_HEADER in line:
                section = _Section.SINKS
                continue
            if StatusParser.SOURCES_HEADER in line:
                section = _Section.SOURCES
                continue

            if line.startswith(StatusParser.DEFAULT_MARKER):
                armed = True
            if line.startswith(StatusParser.VOLUME_PREFIX) and armed:
                volume = StatusParser.extract_percent(line)
                if section is _Section.SINKS:
                    sink_volume = volume
                elif section is _Section.SOURCES:
                    source_volume = volume
                armed = False

        return StatusSnapshot(sink_volume, source_volume)

    @staticmethod
    def extract_percent(line: str) -> float:
        """First integer directly followed by '%' on a volume line, else 0."""
        match = StatusParser._volume_re.search(line)
        if match is None:
            return 0.0
        return float(match.group(1))

    async def get_volumes(self) -> StatusSnapshot:
        """Fetch and parse a fresh status report."""
        text = await self.fetch_status()
        logger.debug(f"Got status from {self.endpoint}:\n{text}")
        snapshot = self.parse_volumes(text)
        logger.info(
            f"Parsed volumes: sink={snapshot.sink_volume_percent:g}%, "
            f"source={snapshot.source_volume_percent:g}%"
        )
        return snapshot


# ============================================================================
# Command Channel
# ============================================================================

class ChannelState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"


StateCallback = Callable[[ChannelState, Optional[ChannelConnectionError]], None]
SendErrorCallback = Callable[[str, SendError], None]


class CommandChannel:
    """
    Line-oriented TCP connection to the PulseAudio CLI module.

    Commands are fire-and-forget: `send_command` returns a task the caller
    may ignore. Failures are logged and passed to `on_send_error`; awaiting
    the task raises the SendError instead.
    """

    def __init__(self, endpoint: Endpoint, connect_timeout: float = 5.0,
                 on_state_change: Optional[StateCallback] = None,
                 on_send_error: Optional[SendErrorCallback] = None):
        self.endpoint = endpoint
        self.connect_timeout = connect_timeout
        self.on_state_change = on_state_change
        self.on_send_error = on_send_error
        self.state = ChannelState.IDLE
        self.last_error: Optional[ChannelConnectionError] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._reply_task: Optional[asyncio.Task] = None
        self._pending_sends: Set[asyncio.Task] = set()

    def _set_state(self, state: ChannelState,
                   error: Optional[ChannelConnectionError] = None):
        self.state = state
        if error is not None:
            self.last_error = error

        if state is ChannelState.READY:
            logger.info(f"Connected to {self.endpoint}")
        elif state is ChannelState.FAILED:
            logger.error(f"Failed to connect: {error}")
        else:
            logger.debug(f"Command channel {self.endpoint}: {state.value}")

        if self.on_state_change:
            self.on_state_change(state, error)

    def connect(self) -> asyncio.Task:
        """Start connecting; progress is reported through on_state_change."""
        self._teardown()
        logger.info(f"Connecting to {self.endpoint}")
        self.last_error = None
        self._set_state(ChannelState.CONNECTING)
        self._connect_task = asyncio.create_task(self._establish())
        return self._connect_task

    async def _establish(self):
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.endpoint.host, self.endpoint.port),
                timeout=self.connect_timeout,
            )
        except asyncio.CancelledError:
            # superseded attempts leave the state to their replacement
            if self._connect_task is asyncio.current_task():
                self._set_state(ChannelState.CANCELLED)
            raise
        except asyncio.TimeoutError:
            self._set_state(ChannelState.FAILED, ChannelConnectionError(
                f"Timed out after {self.connect_timeout}s connecting to {self.endpoint}"))
            return
        except OSError as e:
            self._set_state(ChannelState.FAILED, ChannelConnectionError(
                f"Cannot connect to {self.endpoint}: {e}"))
            return

        self._reply_task = asyncio.create_task(self._read_replies(self._reader))
        self._set_state(ChannelState.READY)

    async def _read_replies(self, reader: asyncio.StreamReader):
        """Log whatever the CLI prints back; replies are not interpreted."""
        try:
            while True:
                # the CLI prompt ">>> " has no trailing newline
                data = await reader.read(4096)
                if not data:
                    logger.info(f"Server closed command connection {self.endpoint}")
                    return
                logger.debug(f"CLI: {data.decode('utf-8', errors='replace').rstrip()}")
        except OSError as e:
            logger.debug(f"Reply reader stopped: {e}")

    def send_command(self, text: str) -> asyncio.Task:
        """Write `text` plus a newline without waiting for the result."""
        task = asyncio.create_task(self._send(text))
        self._pending_sends.add(task)
        task.add_done_callback(lambda t: self._report_send_result(text, t))
        return task

    async def _send(self, text: str):
        if self._connect_task is not None and not self._connect_task.done():
            # queue behind the establishment attempt in progress
            await asyncio.wait({self._connect_task})

        writer = self._writer
        if self.state is not ChannelState.READY or writer is None or writer.is_closing():
            raise SendError(f"No connection to {self.endpoint} (state: {self.state.value})")

        try:
            writer.write(f"{text}\n".encode("utf-8"))
            await writer.drain()
        except (OSError, RuntimeError) as e:
            raise SendError(f"Error sending command {text!r}: {e}") from e
        logger.debug(f"Command sent: {text}")

    def _report_send_result(self, text: str, task: asyncio.Task):
        self._pending_sends.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(str(error))
        if self.on_send_error and isinstance(error, SendError):
            self.on_send_error(text, error)

    def set_volume(self, percent: float, device_class: DeviceClass) -> asyncio.Task:
        """Set the default sink or source volume."""
        native = VolumeScaler.to_native(percent)
        return self.send_command(device_class.volume_command(native))

    def _teardown(self):
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
        if self._reply_task is not None:
            self._reply_task.cancel()
            self._reply_task = None
        if self._writer is not None:
            self._writer.close()
        self._reader = None
        self._writer = None

    async def close(self):
        """Release the connection. Pending sends fail with SendError."""
        writer = self._writer
        pending = {t for t in (self._connect_task, self._reply_task) if t is not None}
        self._teardown()

        if pending:
            await asyncio.wait(pending)
        if writer is not None:
            try:
                await writer.wait_closed()
            except OSError as e:
                logger.debug(f"Error while closing {self.endpoint}: {e}")

        if self.state is not ChannelState.CANCELLED:
            self._set_state(ChannelState.CANCELLED)


# ============================================================================
# Discovery - mDNS
# ============================================================================

class mDNSDiscovery:
    """Finds a PulseAudio server advertised over mDNS (module-zeroconf-publish)."""

    SERVICE_TYPE = "_pulse-server._tcp.local."

    def __init__(self, timeout: float = 3.0):
        self.timeout = timeout
        self.host: Optional[str] = None
        self._found = threading.Event()

    def _on_service_state_change(self, zeroconf: Zeroconf, service_type: str,
                                 name: str, state_change: ServiceStateChange):
        if state_change is not ServiceStateChange.Added or self._found.is_set():
            return
        info = zeroconf.get_service_info(service_type, name)
        if info is None:
            return
        addresses = info.parsed_addresses()
        if addresses:
            self.host = addresses[0]
            logger.info(f"mDNS: found {name} at {self.host}")
            self._found.set()

    def find_host(self) -> Optional[str]:
        """Browse for up to `timeout` seconds; returns an address or None."""
        zeroconf = Zeroconf()
        browser = ServiceBrowser(zeroconf, self.SERVICE_TYPE,
                                 handlers=[self._on_service_state_change])
        try:
            if not self._found.wait(self.timeout):
                logger.warning(f"mDNS: no {self.SERVICE_TYPE} found within {self.timeout}s")
        finally:
            browser.cancel()
            zeroconf.close()
        return self.host


# ============================================================================
# Client
# ============================================================================

class PulseAudioClient:
    """Volume control for one PulseAudio server."""

    def __init__(self, config: ClientConfig = None,
                 on_state_change: Optional[StateCallback] = None,
                 on_send_error: Optional[SendErrorCallback] = None):
        self.config = config or ClientConfig()
        self.channel = CommandChannel(
            self.config.cli_endpoint,
            connect_timeout=self.config.CONNECT_TIMEOUT,
            on_state_change=on_state_change,
            on_send_error=on_send_error,
        )
        self.status = StatusParser(self.config.http_endpoint,
                                   timeout=self.config.FETCH_TIMEOUT)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self.connect()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def connect(self) -> asyncio.Task:
        """Open the command connection."""
        return self.channel.connect()

    def set_volume(self, percent: float, device_class: DeviceClass) -> asyncio.Task:
        """Send a volume change; returns the send task."""
        return self.channel.set_volume(percent, device_class)

    async def get_volumes(self) -> StatusSnapshot:
        """Current default sink/source volumes. Raises FetchError."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        self.status.session = self._session
        return await self.status.get_volumes()

    async def close(self):
        """Close the command connection and the HTTP session."""
        await self.channel.close()
        if self._session is not None:
            await self._session.close()
            self._session = None
            self.status.session = None


async def run_client(config: ClientConfig = None) -> StatusSnapshot:
    """Print the server's current volumes."""
    client = PulseAudioClient(config)
    try:
        snapshot = await client.get_volumes()
    finally:
        await client.close()
    print(f"Output volume: {snapshot.sink_volume_percent:g}%")
    print(f"Input volume:  {snapshot.source_volume_percent:g}%")
    return snapshot


def main():
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    try:
        asyncio.run(run_client())
    except VolumeClientError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
