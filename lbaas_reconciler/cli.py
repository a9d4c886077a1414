"""Argument parsing, configuration loading, and daemon bootstrap."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import load_config
from .daemon import Daemon
from .exceptions import ConfigError, LBaaSReconcilerError
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lbaas-reconciler",
        description="Reconciles Anexia LBaaS load balancers onto configured services",
    )
    parser.add_argument(
        "-c", "--config",
        required=True,
        help="Path to the YAML configuration file",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run a single reconciliation cycle and exit",
    )
    mode.add_argument(
        "--check",
        action="store_true",
        help="Print the resources that would be created and destroyed, change nothing",
    )
    mode.add_argument(
        "--status",
        action="store_true",
        help="Print the addresses and ports bound for every service",
    )
    mode.add_argument(
        "--validate",
        action="store_true",
        help="Validate the configuration file and exit",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load config (minimal logging until config is loaded)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(config.logging)

    if args.validate:
        logger.info("Configuration is valid")
        return 0

    daemon = Daemon(config)

    try:
        if args.check:
            print(json.dumps(daemon.check(), indent=2))
        elif args.status:
            print(json.dumps(daemon.status(), indent=2))
        elif args.once:
            logger.info("Running single reconciliation cycle (--once)")
            daemon.run_once()
        else:
            daemon.run()
    except LBaaSReconcilerError as exc:
        logger.error("Fatal error: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
