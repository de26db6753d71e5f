# Copyright 2022 TIER IV, INC. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.


from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvloop
from pydantic import ValidationError

from . import run_mirror_proxy
from ._logging import configure_logging, shutdown_logging
from .config import config as cfg
from .errors import ServerBindFailed
from .settings import ENV_PREFIX, load_settings

# NOTE: this module might run as __main__
logger = logging.getLogger("mirror_proxy.main")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mirror_proxy",
        description=(
            "caching mirror proxy, serves files from local cache and fills "
            "the cache from upstream on miss. "
            f"Each option can also be set by env with prefix {ENV_PREFIX}."
        ),
    )
    # NOTE: default of each option is None, so that env settings are not shadowed.
    parser.add_argument("--host", help=f"server listen ip (default: {cfg.LISTEN_HOST})")
    parser.add_argument(
        "--port", help=f"server listen port (default: {cfg.LISTEN_PORT})", type=int
    )
    parser.add_argument(
        "--cache-dir", help=f"where to store the cache entries (default: {cfg.CACHE_DIR})"
    )
    parser.add_argument(
        "--upstream", help=f"base URL of the upstream server (default: {cfg.UPSTREAM})"
    )
    parser.add_argument(
        "--timeout",
        help=f"timeout of requesting upstream in ms (default: {cfg.FETCH_TIMEOUT_MS})",
        type=int,
    )
    parser.add_argument("--log-file", help=f"log file location (default: {cfg.LOG_FILE})")
    parser.add_argument(
        "--log-level",
        help=f"(default: {cfg.LOG_LEVEL})",
        choices=("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
    )
    parser.add_argument(
        "--max-concurrent-requests",
        help=f"(default: {cfg.MAX_CONCURRENT_REQUESTS})",
        type=int,
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(
            LISTEN_HOST=args.host,
            LISTEN_PORT=args.port,
            CACHE_DIR=args.cache_dir,
            UPSTREAM=args.upstream,
            FETCH_TIMEOUT_MS=args.timeout,
            LOG_FILE=args.log_file,
            LOG_LEVEL=args.log_level,
            MAX_CONCURRENT_REQUESTS=args.max_concurrent_requests,
        )
    except ValidationError as e:
        parser.exit(2, f"invalid settings: {e}\n")

    configure_logging(settings.LOG_FILE, level=settings.LOG_LEVEL)
    try:
        uvloop.install()
        asyncio.run(run_mirror_proxy(settings))
    except ServerBindFailed as e:
        logger.error(f"Server Error: {e}")
        return 1
    finally:
        shutdown_logging()
    return 0


if __name__ == "__main__":
    sys.exit(main())
