from __future__ import annotations

import argparse
import logging
import os

from .app import create_app
from .call_log import DEFAULT_CAPACITY
from .config import DEFAULT_CONFIG_PATH, DEFAULT_PORT, GUMROAD_API_BASE, TokenStore, bool_env, int_env

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Gumroad license dashboard")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the dashboard web server")
    serve.add_argument("--host", default=os.getenv("GUMDASH_HOST", "127.0.0.1"))
    serve.add_argument("--port", type=int, default=int_env("PORT", DEFAULT_PORT))
    serve.add_argument("--config", default=os.getenv("GUMDASH_CONFIG", DEFAULT_CONFIG_PATH))
    serve.add_argument("--api-base", default=os.getenv("GUMDASH_API_BASE", GUMROAD_API_BASE))
    serve.add_argument("--history-size", type=int, default=int_env("GUMDASH_HISTORY_SIZE", DEFAULT_CAPACITY))
    serve.add_argument("--verbose", action=argparse.BooleanOptionalAction, default=bool_env("GUMDASH_VERBOSE", False))
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    if args.command == "serve":
        configure_logging(bool(args.verbose))
        token_store = TokenStore(args.config)
        app = create_app(
            token_store,
            api_base=args.api_base,
            history_size=max(1, int(args.history_size)),
            verbose=bool(args.verbose),
        )
        logger.info("Server starting on %s:%d", args.host, args.port)
        if token_store.is_configured():
            logger.info("Visit http://localhost:%d to access the application", args.port)
        else:
            logger.info("Visit http://localhost:%d/setup to configure your Gumroad token", args.port)
        app.run(host=args.host, port=int(args.port), debug=False, use_reloader=False, threaded=True)
        raise SystemExit(0)
    raise SystemExit(1)
