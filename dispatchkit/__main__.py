"""
Serve a route table.

    python -m dispatchkit myapp.routes:ROUTES
"""

import argparse
import importlib
import sys

from .app import AppKit
from .config import config
from .core.logging_config import setup_logging


def load_routes(target: str):
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Expected 'module:attribute', got {target!r}")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="dispatchkit", description="Serve a dispatchkit route table")
    parser.add_argument("routes", help="Route table as module:attribute")
    parser.add_argument("--host", default=None, help="Override APP_HOST")
    parser.add_argument("--port", type=int, default=None, help="Override APP_PORT")
    args = parser.parse_args(argv)

    setup_logging(config.LOG_CONFIG_PATH or None, config.LOG_LEVEL)

    try:
        routes = load_routes(args.routes)
    except (ImportError, AttributeError, ValueError) as e:
        sys.stderr.write(f"Failed to load routes: {e}\n")
        return 2

    app_config = config
    overrides = {}
    if args.host:
        overrides["APP_HOST"] = args.host
    if args.port:
        overrides["APP_PORT"] = args.port
    if overrides:
        app_config = config.model_copy(update=overrides)

    AppKit(routes, config=app_config).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
