"""
FILEKV - Command Line Entry Point

    python -m filekv [--config FILE] [--host H] [--port P] [--storage-root DIR]
                     [--threaded] [--log-level LEVEL]
"""

import argparse
import logging
import sys
from typing import List, Optional

from filekv.app import run
from filekv.config.settings import ServerConfig
from filekv.core.errors import ResourceSetupError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filekv",
        description="Key-value server storing one file per record.",
    )
    parser.add_argument("--config", help="YAML or JSON configuration file")
    parser.add_argument("--host", help="address to bind")
    parser.add_argument("--port", type=int, help="port to bind")
    parser.add_argument("--storage-root", help="directory holding record files")
    parser.add_argument(
        "--threaded",
        action="store_true",
        default=None,
        help="serve each connection in its own thread",
    )
    parser.add_argument("--log-level", help="logging level (DEBUG, INFO, ...)")
    return parser


def load_config(args: argparse.Namespace) -> ServerConfig:
    """Load config file/env, then apply command line overrides."""
    config = ServerConfig.load(args.config)
    overrides = {
        "host": args.host,
        "port": args.port,
        "storage_root": args.storage_root,
        "threaded": args.threaded,
        "log_level": args.log_level,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        config.validate()
    except (FileNotFoundError, ValueError) as e:
        print(f"filekv: configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        run(config)
    except ResourceSetupError as e:
        logging.getLogger("filekv").critical(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
