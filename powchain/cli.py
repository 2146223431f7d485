"""Command line entry point: start a node, its server and its miner."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import threading

from .chain import Blockchain
from .config import Config, ConfigError, default_config, load
from .manager import Manager, NetworkError
from .miner import start

log = logging.getLogger(__name__)

DEFAULT_PORT = 8080


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="powchain", description="Run a proof-of-work node.")
    parser.add_argument("--config", default="config.yaml", help="Path to configuration file")
    parser.add_argument(
        "--init-host", default="", help="Initial peer host for joining network"
    )
    parser.add_argument(
        "--init-port", type=int, default=0, help="Initial peer port for joining network"
    )
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Port to listen on")
    return parser.parse_args(argv)


def _setup(args: argparse.Namespace) -> tuple[Config, Manager]:
    """Load the configuration and build the node's chain and network manager."""
    try:
        config = load(args.config)
    except ConfigError as exc:
        log.warning("Failed to load config: %s, using defaults", exc)
        config = default_config()

    if args.port != DEFAULT_PORT:
        config.network.port = args.port

    blockchain = Blockchain(
        config.blockchain.difficulty_calculation_blocks, config.blockchain.target_block_time
    )

    if args.init_host and args.init_port != 0:
        manager = Manager.joining(config.network, blockchain, args.init_host, args.init_port)
    else:
        genesis = blockchain.create_genesis_block()
        log.info("Created genesis block: %s", genesis.hash)
        manager = Manager(config.network, blockchain)
    return config, manager


def _serve(manager: Manager) -> None:
    try:
        manager.start_server()
    except NetworkError as exc:
        log.critical("%s", exc)
        os._exit(1)


def main(argv: list[str] | None = None) -> int:
    """Run a node until interrupted."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    args = _parse_args(argv)
    try:
        config, manager = _setup(args)
    except NetworkError as exc:
        log.error("%s", exc)
        return 1

    threading.Thread(target=_serve, args=(manager,), daemon=True).start()
    log.info("P2P Network started on port %d", config.network.port)

    try:
        start(manager, config.miner)
    except KeyboardInterrupt:
        log.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())