"""
PulseAudio Remote Volume - Command Line Launcher
Reads or sets the default sink/source volume of a PulseAudio server.
"""

import asyncio
import sys
import argparse
import logging

from pulse_client import (
    ClientConfig,
    DeviceClass,
    PulseAudioClient,
    VolumeClientError,
    mDNSDiscovery,
    run_client,
)
from config_examples import get_config, list_configs

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Setup logging with optional verbose output."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


async def get_volumes(config: ClientConfig) -> int:
    """Print the current default sink and source volumes."""
    await run_client(config)
    return 0


async def set_volume(config: ClientConfig, device_class: DeviceClass, percent: float) -> int:
    """Connect, send one volume command and wait for it to be written."""
    async with PulseAudioClient(config) as client:
        await client.set_volume(percent, device_class)

    print(f"{device_class.value.capitalize()} volume set to {percent:g}%")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='PulseAudio remote volume control',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python start.py get                          # Show volumes of the local server
  python start.py set sink 40                  # Output volume to 40%
  python start.py -c lan set source 75         # Input volume on the LAN preset
  python start.py --cli-host 10.0.0.2 get      # Override one endpoint
  python start.py --discover get               # Find the server via mDNS
  python start.py --list-configs               # List available configurations
        """
    )

    parser.add_argument(
        '-c', '--config',
        type=str,
        default='local',
        help='Configuration preset (default: local)'
    )

    parser.add_argument(
        '--cli-host',
        type=str,
        help='CLI TCP host (overrides config)'
    )

    parser.add_argument(
        '--cli-port',
        type=int,
        help='CLI TCP port (overrides config, default: 4712)'
    )

    parser.add_argument(
        '--http-host',
        type=str,
        help='HTTP status host (overrides config)'
    )

    parser.add_argument(
        '--http-port',
        type=int,
        help='HTTP status port (overrides config, default: 4714)'
    )

    parser.add_argument(
        '--timeout',
        type=float,
        help='Network timeout in seconds (overrides config)'
    )

    parser.add_argument(
        '--discover',
        action='store_true',
        help='Look up the server host via mDNS (_pulse-server._tcp)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--list-configs',
        action='store_true',
        help='List available configurations'
    )

    actions = parser.add_subparsers(dest='action')
    actions.add_parser('get', help='Show current volumes')

    set_parser = actions.add_parser('set', help='Set a volume')
    set_parser.add_argument(
        'device',
        choices=[d.value for d in DeviceClass],
        help='sink (output) or source (input)'
    )
    set_parser.add_argument(
        'percent',
        type=float,
        help='Volume in percent (0-100)'
    )

    return parser


def resolve_config(args: argparse.Namespace) -> ClientConfig:
    """Preset plus command-line overrides."""
    config = get_config(args.config)

    if args.discover:
        host = mDNSDiscovery().find_host()
        if host:
            config.CLI_HOST = host
            config.HTTP_HOST = host

    if args.cli_host is not None:
        config.CLI_HOST = args.cli_host

    if args.cli_port is not None:
        config.CLI_PORT = args.cli_port

    if args.http_host is not None:
        config.HTTP_HOST = args.http_host

    if args.http_port is not None:
        config.HTTP_PORT = args.http_port

    if args.timeout is not None:
        config.FETCH_TIMEOUT = args.timeout
        config.CONNECT_TIMEOUT = args.timeout

    return config


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_configs:
        print("\nAvailable configurations:\n")
        for name, desc in list_configs().items():
            print(f"  {name:10} - {desc}")
        print("\nUsage: python start.py -c <config_name> get\n")
        return 0

    if args.action is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    config = resolve_config(args)
    logger.debug(f"CLI: {config.cli_endpoint}, HTTP: {config.http_endpoint}")

    try:
        if args.action == 'get':
            return asyncio.run(get_volumes(config))
        return asyncio.run(set_volume(config, DeviceClass(args.device), args.percent))
    except (VolumeClientError, ValueError) as e:
        logger.error(f"{e}", exc_info=args.verbose)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
