#!/usr/bin/env python3
"""
Player Gateway - Main Entry Point

Started by the simulator as the controller of one robot player. Serves the
robot's devices to a remote controller until the simulation ends.

Configuration is read from the environment, see ``player_gateway.config``.

Usage:
    python -m player_gateway.main 10001 127.0.0.1 controller.local
"""

import argparse
import logging
import sys

from .config import GatewayConfig
from .errors import GatewaySetupError
from .gateway import PlayerGateway
from .monitor import MonitorServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Network gateway of a simulated robot player",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "port",
        type=int,
        help="TCP port the remote controller connects to",
    )
    parser.add_argument(
        "allowed_hosts",
        nargs="*",
        help="Hostnames allowed to connect",
    )
    parser.add_argument(
        "--monitor-port",
        type=int,
        default=None,
        help="Serve /health and /stats on this port (overrides GATEWAY_MONITOR_PORT)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def run(gateway: PlayerGateway, host) -> None:
    """Step the gateway until the simulation stops."""
    while host.step() != -1:
        gateway.step()


def main(argv=None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    # Only importable inside a simulator-started controller
    from .webots_host import WebotsHost

    monitor = None
    try:
        config = GatewayConfig.from_env()
        if args.monitor_port is not None:
            config.monitor_port = args.monitor_port
        host = WebotsHost()
        gateway = PlayerGateway(host, args.port, args.allowed_hosts, config)
        gateway.start()
    except GatewaySetupError as e:
        logger.error(f"Cannot start gateway: {e}")
        sys.exit(1)

    if config.monitor_port is not None:
        monitor = MonitorServer(gateway, config.monitor_port)
        monitor.start()

    try:
        run(gateway, host)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        gateway.stop()
        if monitor:
            monitor.stop()


if __name__ == "__main__":
    main()
