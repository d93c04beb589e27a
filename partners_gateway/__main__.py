#!/usr/bin/env python3
"""
Enable running the gateway via: python -m partners_gateway

Usage:
    python -m partners_gateway serve [--host H] [--port P] [--log-level L]
    python -m partners_gateway sign METHOD PATH [QUERY]
    python -m partners_gateway version
"""

from __future__ import annotations

import argparse
import sys

from partners_gateway.__version__ import PACKAGE_NAME, __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m partners_gateway", description=__doc__.splitlines()[1])
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP gateway")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--log-level", default=None)
    serve.add_argument("--text-logs", action="store_true", help="Human-readable logs instead of JSON")

    sign = sub.add_parser("sign", help="Print an Authorization header using the configured keys")
    sign.add_argument("method")
    sign.add_argument("path")
    sign.add_argument("query", nargs="?", default=None)

    sub.add_parser("version", help="Print the version")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Route to the selected command."""
    args = _build_parser().parse_args(argv)

    if args.command == "version":
        print(f"{PACKAGE_NAME} {__version__}")
        return 0

    from partners_gateway.config import GatewayConfig
    from partners_gateway.exceptions import ConfigurationError

    try:
        config = GatewayConfig.from_env()
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    if args.command == "sign":
        from partners_gateway.signing import Signer

        try:
            access_key, secret_key = config.require_credentials()
        except ConfigurationError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        credential = Signer(timestamp_format=config.timestamp_format).sign(
            args.method.upper(), args.path, args.query, access_key, secret_key
        )
        print(credential.authorization_header)
        return 0

    from partners_gateway.logging_config import configure_logging
    from partners_gateway.server import run

    configure_logging(level=getattr(args, "log_level", None), json_output=False if getattr(args, "text_logs", False) else None)
    run(config.with_overrides(host=getattr(args, "host", None), port=getattr(args, "port", None)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
