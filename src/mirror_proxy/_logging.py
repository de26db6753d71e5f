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
"""Configure the logging for mirror_proxy.

Log records are rendered as ``[<ISO-8601 timestamp>] [<LEVEL>] <message>``,
appended to the log file and mirrored to stdout.

All handlers are driven by one QueueListener thread, so lines coming from
concurrent requests are never interleaved.
"""


from __future__ import annotations

import atexit
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from queue import Queue

from .config import config as cfg

ROOT_LOGGER_NAME = "mirror_proxy"

_LEVEL_NAMES = {logging.WARNING: "WARN", logging.CRITICAL: "FATAL"}


class MirrorLogFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(fmt="[%(asctime)s] [%(levelname)s] %(message)s")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        _ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return _ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def formatMessage(self, record: logging.LogRecord) -> str:
        _levelname = _LEVEL_NAMES.get(record.levelno, record.levelname)
        return self._style._fmt % {
            "asctime": record.asctime,
            "levelname": _levelname,
            "message": record.message,
        }


class _LoggingSetup:
    def __init__(self) -> None:
        self.listener: logging.handlers.QueueListener | None = None
        self.queue_handler: logging.handlers.QueueHandler | None = None


_setup = _LoggingSetup()


def configure_logging(
    log_file: str | Path,
    *,
    level: str | int = cfg.LOG_LEVEL,
    max_backlog: int = cfg.LOG_BACKLOG,
) -> logging.Logger:
    """Configure the mirror_proxy logger with file and stdout sinks.

    Calling this function again replaces the previous configuration.

    Returns:
        The configured mirror_proxy root logger.
    """
    shutdown_logging()

    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    fmt = MirrorLogFormatter()
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setFormatter(fmt)
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(fmt)

    que: Queue[logging.LogRecord] = Queue(maxsize=max_backlog)
    queue_handler = logging.handlers.QueueHandler(que)
    listener = logging.handlers.QueueListener(
        que, file_handler, stdout_handler, respect_handler_level=False
    )
    listener.start()

    _logger = logging.getLogger(ROOT_LOGGER_NAME)
    _logger.setLevel(level)
    _logger.addHandler(queue_handler)
    # don't double log with the root logger's handlers
    _logger.propagate = False

    _setup.listener, _setup.queue_handler = listener, queue_handler
    return _logger


def shutdown_logging() -> None:
    """Flush pending records and detach the handlers installed by configure_logging."""
    listener, queue_handler = _setup.listener, _setup.queue_handler
    _setup.listener = _setup.queue_handler = None

    if queue_handler:
        _logger = logging.getLogger(ROOT_LOGGER_NAME)
        _logger.removeHandler(queue_handler)
        _logger.propagate = True
        _logger.setLevel(logging.NOTSET)
    if listener:
        listener.stop()
        for _handler in listener.handlers:
            _handler.close()


atexit.register(shutdown_logging)
