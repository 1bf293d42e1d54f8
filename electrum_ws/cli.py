"""
Command line entry point.

    python -m electrum_ws --url wss://electrum.example.org:50004 server.version my-wallet 1.4
    python -m electrum_ws --subscribe blockchain.headers
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from .client import ElectrumWS
from .config import Config, setup_logging
from .errors import ElectrumWSError


logger = logging.getLogger("electrum_ws.cli")


def parse_param(value: str) -> Any:
    """Decode a parameter as JSON, falling back to the plain string."""
    try:
        return json.loads(value)
    except ValueError:
        return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="electrum_ws",
        description="Send a request to an Electrum server over WebSocket"
    )
    parser.add_argument("method", help="Electrum method, e.g. blockchain.estimatefee")
    parser.add_argument("params", nargs="*", help="Method parameters (JSON or plain strings)")
    parser.add_argument("--url", help="Server URL (defaults to ELECTRUM_WS_URL)")
    parser.add_argument("--token", help="Authentication token appended to the URL")
    parser.add_argument("--subscribe", action="store_true",
                        help="Subscribe to METHOD and print pushes until interrupted")
    parser.add_argument("--verbose", action="store_true", help="Log every lifecycle event")
    return parser


def _print(value: Any) -> None:
    print(json.dumps(value, indent=2, sort_keys=True))


async def run(args: argparse.Namespace, config: Config) -> int:
    """
    Execute one CLI invocation.

    Returns:
        Process exit code
    """
    options = config.options
    if args.token:
        options.token = args.token
    if args.verbose:
        options.verbose = True

    params: List[Any] = [parse_param(p) for p in args.params]
    client = ElectrumWS(args.url or config.endpoint, options, transport_config=config.transport)

    async with client:
        try:
            if not args.subscribe:
                _print(await client.request(args.method, *params))
                return 0

            def on_push(*payload: Any) -> None:
                _print(list(payload))

            await client.wait_connected()
            await client.subscribe(args.method, on_push, *params)
            await asyncio.Event().wait()
        except ElectrumWSError as e:
            logger.error(f"{args.method} failed: {e}")
            return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = Config.from_env()
    setup_logging(level=getattr(logging, config.log_level.upper(), logging.INFO))

    try:
        return asyncio.run(run(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
