"""
PulseAudio Remote Volume Client - Configuration Examples
This file shows configuration presets for common server setups.
"""

import logging
from dataclasses import replace
from typing import Dict

from pulse_client import ClientConfig

logger = logging.getLogger(__name__)


# ============================================================================
# Example 1: Local Server (Default)
# ============================================================================
# module-cli-protocol-tcp port=4712, module-http-protocol-tcp port=4714
LOCAL_CONFIG = ClientConfig(
    NAME="Local PulseAudio",
    CLI_HOST="127.0.0.1",
    CLI_PORT=4712,
    HTTP_HOST="127.0.0.1",
    HTTP_PORT=4714,
)


# ============================================================================
# Example 2: Server in a Container
# ============================================================================
# Ports published by the container on the host
DOCKER_CONFIG = ClientConfig(
    NAME="Container PulseAudio",
    CLI_HOST="localhost",
    CLI_PORT=14712,
    HTTP_HOST="localhost",
    HTTP_PORT=14714,
)


# ============================================================================
# Example 3: Headless Box on the LAN
# ============================================================================
LAN_CONFIG = ClientConfig(
    NAME="Living Room PulseAudio",
    CLI_HOST="192.168.1.50",
    CLI_PORT=4712,
    HTTP_HOST="192.168.1.50",
    HTTP_PORT=4714,
    FETCH_TIMEOUT=8.0,  # wifi
    CONNECT_TIMEOUT=8.0,
)


CONFIGS: Dict[str, ClientConfig] = {
    'local': LOCAL_CONFIG,
    'docker': DOCKER_CONFIG,
    'lan': LAN_CONFIG,
}

DESCRIPTIONS: Dict[str, str] = {
    'local': "Server on this machine (default ports)",
    'docker': "Server in a container, ports published as 14712/14714",
    'lan': "Headless server on the local network",
}


# ============================================================================
# Configuration Selection Helper
# ============================================================================
def get_config(name: str) -> ClientConfig:
    """
    Get a configuration by name.

    Args:
        name: Configuration name
               - 'local': Server on this machine
               - 'docker': Server in a container
               - 'lan': Server on the local network

    Returns:
        A copy of the preset, safe to modify
    """
    if name not in CONFIGS:
        logger.warning(f"Unknown configuration: {name} (available: {', '.join(CONFIGS)})")
        name = 'local'

    return replace(CONFIGS[name])


def list_configs() -> Dict[str, str]:
    """Preset names and their descriptions."""
    return dict(DESCRIPTIONS)


if __name__ == "__main__":
    print("PulseAudio Remote Volume - Available Configurations\n")

    for name, description in list_configs().items():
        config = get_config(name)
        print(f"- {name:10} - {description}")
        print(f"  CLI:  {config.cli_endpoint}")
        print(f"  HTTP: {config.http_endpoint}")
        print()
