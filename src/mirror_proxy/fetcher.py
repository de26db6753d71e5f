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
from dataclasses import dataclass

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy

from ._consts import HEADER_ACCEPT_ENCODING
from .errors import FetcherNotStarted, UpstreamNetworkError, UpstreamTimeout
from .utils import build_upstream_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpstreamResponse:
    """A fully buffered response from upstream."""

    status: int
    headers: CIMultiDictProxy[str]
    body: bytes
    url: str

    @property
    def is_error(self) -> bool:
        return self.status >= 400

    @property
    def is_cacheable(self) -> bool:
        """Only 2xx responses carry the resource itself."""
        return 200 <= self.status < 300


class UpstreamFetcher:
    """Fetch resources from the upstream server.

    Each fetch issues one GET with no retry, and buffers the whole body in memory.
    Redirects are not followed, 3xx responses are returned to the caller as it.
    A single wall-clock timeout covers the whole request, from connecting
    to reading the last byte of the body.

    Attributes:
        upstream: the base URL of the upstream server.
        timeout: timeout of each fetch in seconds.
    """

    def __init__(self, upstream: str, *, timeout: float) -> None:
        self.upstream = upstream
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is not None:
            logger.warning("try to start already started fetcher, ignored")
            return

        # NOTE: we configure aiohttp to not decompress the resp body, and ask upstream
        #       for the identity encoding, so that the bytes we cache are exactly
        #       the representation that will be served from the cache later.
        self._session = aiohttp.ClientSession(
            auto_decompress=False,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={HEADER_ACCEPT_ENCODING: "identity"},
        )

    async def close(self) -> None:
        if self._session is not None:
            _session, self._session = self._session, None
            await _session.close()

    async def fetch(self, request_path: str) -> UpstreamResponse:
        """GET <request_path> from upstream.

        Args:
            request_path: the normalized and decoded request path.

        Returns:
            An UpstreamResponse, response with status >= 400 is also
                returned as it (check with <is_error>).

        Raises:
            UpstreamTimeout if the request doesn't finish in time.
            UpstreamNetworkError on any failure of connection or transfer.
            FetcherNotStarted if the fetcher is not yet started or already closed.
        """
        if self._session is None:
            raise FetcherNotStarted("upstream fetcher is not started")

        url = build_upstream_url(self.upstream, request_path)
        logger.debug(f"Get From Upstream: {url}")
        try:
            async with self._session.get(url, allow_redirects=False) as resp:
                body = await resp.read()
                return UpstreamResponse(
                    status=resp.status,
                    headers=CIMultiDictProxy(CIMultiDict(resp.headers)),
                    body=body,
                    url=url,
                )
        except asyncio.TimeoutError as e:
            raise UpstreamTimeout(
                f"Timeout when Requesting Upstream Server: {url}"
            ) from e
        except aiohttp.ClientError as e:
            raise UpstreamNetworkError(
                f"Fail to Request Upstream Server: {e!r} for {url}"
            ) from e
