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

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from http import HTTPStatus
from pathlib import Path

from anyio.to_thread import run_sync
from multidict import CIMultiDict

from ._consts import (
    CONTENT_TYPE_TEXT_PLAIN,
    HEADER_CONTENT_LENGTH,
    HEADER_CONTENT_TYPE,
    HOP_BY_HOP_HEADERS,
)
from .cache_store import CacheStore
from .content_type import resolve_for_path
from .errors import (
    InvalidRequestPath,
    LocalReadFailure,
    LocalWriteFailure,
    PathOutsideCacheRoot,
    UpstreamNetworkError,
    UpstreamTimeout,
)
from .fetcher import UpstreamFetcher, UpstreamResponse
from .single_flight import SingleFlight
from .utils import normalize_request_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MirrorResponse:
    status: int
    headers: CIMultiDict[str] = field(default_factory=CIMultiDict)
    body: bytes = b""


def text_response(status: HTTPStatus, msg: str | None = None) -> MirrorResponse:
    """Helper method for constructing the plain text response for errors."""
    return MirrorResponse(
        status=int(status),
        headers=CIMultiDict({HEADER_CONTENT_TYPE: CONTENT_TYPE_TEXT_PLAIN}),
        body=(msg or status.phrase).encode("utf-8"),
    )


def relay_upstream_response(resp: UpstreamResponse) -> MirrorResponse:
    """Relay upstream's status, headers and body to the client.

    Hop-by-hop headers only apply to the upstream connection, and content-length
    will be re-calculated against the buffered body, they are not relayed.
    """
    headers: CIMultiDict[str] = CIMultiDict()
    for _name, _value in resp.headers.items():
        _lower_name = _name.lower()
        if _lower_name in HOP_BY_HOP_HEADERS or _lower_name == HEADER_CONTENT_LENGTH:
            continue
        headers.add(_name, _value)
    return MirrorResponse(status=resp.status, headers=headers, body=resp.body)


class MirrorCache:
    """Serve requests from the local cache, fill the cache from upstream on miss.

    For each request path:
    1. cache hit: serve the cached file with content-type by its extension.
    2. cache miss: fetch from upstream. On success, the body is written to
        the cache BEFORE responding, so a served response is always a cached one.
        Error and redirect responses from upstream are relayed but never cached.

    Concurrent misses on the same path share one upstream fetch and one cache write.

    Attributes:
        cache_store: the local cache.
        fetcher: the upstream fetcher.
    """

    def __init__(self, *, cache_store: CacheStore, fetcher: UpstreamFetcher) -> None:
        self._lock = asyncio.Lock()
        self._closed = True
        self._cache_store = cache_store
        self._fetcher = fetcher
        self._on_going_caching: SingleFlight[MirrorResponse] = SingleFlight()

    async def start(self) -> None:
        async with self._lock:
            if not self._closed:
                logger.warning("try to launch already launched mirror cache, ignored")
                return
            self._closed = False
            await run_sync(self._cache_store.prepare)
            await self._fetcher.start()
            logger.info(f"Cache Folder: {self._cache_store.base_dir}")
            logger.info(f"Upstream Server: {self._fetcher.upstream}")

    async def close(self) -> None:
        async with self._lock:
            if not self._closed:
                self._closed = True
                await self._fetcher.close()

    # handlers

    async def _respond_from_cache(self, local_path: Path) -> MirrorResponse:
        logger.debug(f"Response from Local: {local_path}")
        data = await self._cache_store.read(local_path)
        return MirrorResponse(
            status=HTTPStatus.OK,
            headers=CIMultiDict({HEADER_CONTENT_TYPE: resolve_for_path(local_path.name)}),
            body=data,
        )

    async def _fill_cache(self, request_path: str, local_path: Path) -> MirrorResponse:
        # NOTE: the previous fill for this path might just finish
        #       between our lookup and joining the on-going fills.
        if await self._cache_store.exists(local_path):
            return await self._respond_from_cache(local_path)

        resp = await self._fetcher.fetch(request_path)
        if resp.is_error:
            logger.warning(f"Upstream Server Error: {resp.status} for {resp.url}")
            return relay_upstream_response(resp)
        if not resp.is_cacheable:
            # e.g., redirects, the client follows them through us again
            logger.info(
                f"Upstream Server Responded {resp.status} for {resp.url}, not cached"
            )
            return relay_upstream_response(resp)

        await self._cache_store.write(local_path, resp.body)
        logger.info(f"Saved File: {local_path} ({len(resp.body)} bytes)")
        return relay_upstream_response(resp)

    def _error_response_for(self, exc: Exception, request_path: str) -> MirrorResponse:
        _common_err_msg = f"request for {request_path=} failed"
        try:
            if isinstance(exc, InvalidRequestPath):
                logger.warning(f"{_common_err_msg} due to invalid path: {exc}")
                return text_response(HTTPStatus.BAD_REQUEST)
            elif isinstance(exc, PathOutsideCacheRoot):
                logger.warning(f"{_common_err_msg} due to path traversal: {exc}")
                return text_response(HTTPStatus.FORBIDDEN)
            elif isinstance(exc, (LocalReadFailure, LocalWriteFailure)):
                logger.error(f"{_common_err_msg} due to local I/O failure: {exc}")
                return text_response(HTTPStatus.INTERNAL_SERVER_ERROR)
            elif isinstance(exc, UpstreamTimeout):
                logger.error(f"{_common_err_msg}: {exc}")
                return text_response(HTTPStatus.GATEWAY_TIMEOUT)
            elif isinstance(exc, UpstreamNetworkError):
                logger.error(f"{_common_err_msg}: {exc}")
                return text_response(HTTPStatus.BAD_GATEWAY)
            else:
                logger.exception(f"{_common_err_msg} due to unhandled error: {exc!r}")
                return text_response(HTTPStatus.INTERNAL_SERVER_ERROR)
        finally:
            del exc  # break ref

    # exposed API

    async def handle(self, request_path: str) -> MirrorResponse:
        """Handle the request for <request_path>.

        Args:
            request_path: the decoded URL path of the request.

        Returns:
            A MirrorResponse to send back to the client. Any failure
                is mapped to an error response, this method doesn't raise.
        """
        try:
            normalized_path = normalize_request_path(request_path)
            local_path = await run_sync(self._cache_store.resolve, normalized_path)
            if await self._cache_store.exists(local_path):
                return await self._respond_from_cache(local_path)

            logger.debug(f"File not Existed: {local_path}")
            return await self._on_going_caching.do(
                local_path,
                partial(self._fill_cache, normalized_path, local_path),
            )
        except Exception as e:
            return self._error_response_for(e, request_path)
