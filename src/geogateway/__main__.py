"""
=============================================================================
COMMAND-LINE INTERFACE
=============================================================================

    python -m geogateway                     # serve (default)
    python -m geogateway serve --bind :8080
    python -m geogateway lookup --address "Los Angeles"
    python -m geogateway lookup --latlng 34.05,-118.24

``serve`` runs until SIGINT or SIGTERM and exits 0 after the graceful
shutdown. ``lookup`` runs one query through the configured backend and
prints the first result as JSON: exit 0 on a result, 1 when there are
none, 2 when the lookup failed.

=============================================================================
"""

import argparse
import json
import sys
from typing import List, Optional

from . import __version__
from .app import create_app
from .config import GatewayConfig
from .geocoding.client import QueryType, geocoder_from_config
from .geocoding.models import OutcomeKind
from .lifecycle import LifecycleController
from .server import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geogateway",
        description="HTTP gateway for geocoding lookups",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  geogateway                                  # Serve on $BIND_ADDRESS or :5000
  geogateway serve --bind 127.0.0.1:8080      # Custom bind address
  GEOCODE_MODE=live geogateway serve          # Call the real provider
  geogateway lookup --address "Los Angeles"   # One-off forward lookup
  geogateway lookup --latlng 34.05,-118.24    # One-off reverse lookup
        """
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: $LOG_LEVEL or INFO)"
    )

    parser.add_argument(
        "--mode",
        choices=["fixture", "live"],
        default=None,
        help="Geocoding backend (default: $GEOCODE_MODE or fixture)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"geogateway {__version__}"
    )

    subcommands = parser.add_subparsers(dest="command")

    serve = subcommands.add_parser("serve", help="Run the HTTP gateway (default)")
    serve.add_argument(
        "--bind", "-b",
        default=None,
        help="host:port to listen on (default: $BIND_ADDRESS or :5000)"
    )

    lookup = subcommands.add_parser("lookup", help="Run a single geocoding query")
    query = lookup.add_mutually_exclusive_group(required=True)
    query.add_argument("--address", help="Address to geocode")
    query.add_argument("--latlng", help="\"lat,lng\" to reverse geocode")

    return parser


def config_from_args(args: argparse.Namespace) -> GatewayConfig:
    """Environment first, then command-line overrides."""
    config = GatewayConfig.from_env()

    if getattr(args, "bind", None):
        config.bind_address = args.bind
    if args.log_level:
        config.log_level = args.log_level
    if args.mode:
        config.geocode_mode = args.mode

    config.validate()
    return config


def run_serve(config: GatewayConfig) -> int:
    server = create_app(config)
    return LifecycleController(server).run()


def run_lookup(config: GatewayConfig, args: argparse.Namespace) -> int:
    if args.address is not None:
        query_type, value = QueryType.ADDRESS, args.address
    else:
        query_type, value = QueryType.LATLNG, args.latlng

    outcome = geocoder_from_config(config).lookup(query_type, value)

    if outcome.kind is OutcomeKind.OK:
        print(json.dumps(outcome.result.to_dict(), indent=2))
        return 0

    if outcome.kind is OutcomeKind.EMPTY:
        print(f"No results (status {outcome.status})", file=sys.stderr)
        return 1

    print(f"Lookup failed: {outcome.error}", file=sys.stderr)
    return 2


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    setup_logging(config.log_level)

    if args.command == "lookup":
        return run_lookup(config, args)

    return run_serve(config)


if __name__ == "__main__":
    sys.exit(main())
