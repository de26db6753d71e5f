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
"""Local directory cache that mirrors the upstream's path namespace."""


from __future__ import annotations

import logging
import os
from os import PathLike
from pathlib import Path

import anyio
from anyio.to_thread import run_sync

from .config import config as cfg
from .errors import (
    InvalidRequestPath,
    LocalReadFailure,
    LocalWriteFailure,
    PathOutsideCacheRoot,
)
from .utils import local_relpath, normalize_request_path

logger = logging.getLogger(__name__)


def _unlink_no_error(fpath: Path) -> None:
    try:
        fpath.unlink(missing_ok=True)
    except Exception:
        pass


class CacheStore:
    """Map request paths to cache entries under <base_dir>.

    A cache entry is a plain file, the existence of the file is the only
    validity signal. No metadata is stored alongside.

    NOTE: there is no locking between concurrent writes to the same entry,
        the last write wins. Each write is an atomic replace of a fully
        written tmp file, so a reader never observes a partial entry.

    Attributes:
        base_dir: the resolved cache root.
    """

    def __init__(self, base_dir: str | PathLike) -> None:
        self._base_dir = Path(base_dir).resolve()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def prepare(self) -> None:
        """Create the cache root if needed, cleanup tmp files left by previous run."""
        if not self._base_dir.is_dir():
            self._base_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created cache folder: {self._base_dir}")
            return

        for tmp_f in self._base_dir.rglob(f"{cfg.TMP_FILE_PREFIX}*"):
            if tmp_f.is_file():
                logger.debug(f"remove unfinished tmp file: {tmp_f}")
                _unlink_no_error(tmp_f)

    def resolve(self, request_path: str) -> Path:
        """Map <request_path> to the absolute path of its cache entry.

        Raises:
            InvalidRequestPath if <request_path> is malformed.
            PathOutsideCacheRoot if the local path escapes the cache root,
                e.g., through a symlink inside the cache.
        """
        _relpath = local_relpath(normalize_request_path(request_path))
        if any(_part.startswith(cfg.TMP_FILE_PREFIX) for _part in _relpath.split("/")):
            raise InvalidRequestPath(f"reserved name in path: {request_path!r}")

        _local_path = (self._base_dir / _relpath).resolve()
        if not _local_path.is_relative_to(self._base_dir):
            raise PathOutsideCacheRoot(
                f"{request_path!r} resolves to {_local_path}, outside of {self._base_dir}"
            )
        return _local_path

    async def exists(self, local_path: Path) -> bool:
        return await anyio.Path(local_path).is_file()

    async def read(self, local_path: Path) -> bytes:
        """
        Raises:
            LocalReadFailure on any failure during reading.
        """
        try:
            async with await anyio.open_file(local_path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise LocalReadFailure(f"failed to read {local_path}: {e!r}") from e

    def _write_in_thread(self, local_path: Path, data: bytes) -> None:
        tmp_f = local_path.parent / (
            f"{cfg.TMP_FILE_PREFIX}{local_path.name}_{os.urandom(4).hex()}"
        )
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_f, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_f, local_path)
        except Exception as e:
            _unlink_no_error(tmp_f)
            raise LocalWriteFailure(f"failed to save {local_path}: {e!r}") from e

    async def write(self, local_path: Path, data: bytes) -> None:
        """Write <data> as the cache entry at <local_path>.

        Missing intermediate directories are created.

        Raises:
            LocalWriteFailure on any failure during writing.
        """
        await run_sync(self._write_in_thread, local_path, data)
