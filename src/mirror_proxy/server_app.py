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
from http import HTTPStatus

from multidict import CIMultiDict, CIMultiDictProxy

from ._consts import (
    ALLOWED_METHODS,
    BHEADER_CONTENT_LENGTH,
    HEADER_ALLOW,
    HEADER_CONTENT_LENGTH,
    METHOD_HEAD,
    REQ_TYPE_HTTP,
    REQ_TYPE_LIFESPAN,
    RESP_TYPE_BODY,
    RESP_TYPE_START,
)
from .config import config as cfg
from .mirror_cache import MirrorCache, MirrorResponse, text_response

logger = logging.getLogger(__name__)

# only expose app
__all__ = ("App",)

# helper methods


def encode_headers(
    headers: CIMultiDict[str] | CIMultiDictProxy[str], *, content_length: int
) -> list[tuple[bytes, bytes]]:
    """Encode headers dict to list of bytes tuples for sending back to client.

    Uvicorn requests application to pre-process headers to bytes.
    The content-length header is always generated from <content_length>.

    NOTE: aiohttp decodes the upstream header values as utf-8 with surrogateescape,
        encoding them back the same way restores the original bytes.
    """
    bytes_headers: list[tuple[bytes, bytes]] = []
    for _name, _value in headers.items():
        if _name.lower() == HEADER_CONTENT_LENGTH:
            continue
        bytes_headers.append(
            (
                _name.lower().encode("latin-1"),
                _value.encode("utf-8", "surrogateescape"),
            )
        )
    bytes_headers.append((BHEADER_CONTENT_LENGTH, str(content_length).encode()))
    return bytes_headers


# uvicorn APP


class App:
    """The ASGI application for mirror_proxy server passed to uvicorn.

    It is responsible for accepting the client requests, handing them over
    to the MirrorCache and sending the responses back.

    NOTE:
        a. Only GET and HEAD are supported, HEAD is handled as GET without body.

        b. uvicorn will not interrupt the App running even the client closes
            connection, the cache filling for this request will still finish.

    Attributes:
        mirror_cache: initialized but not yet launched MirrorCache instance.
        max_concurrent_requests: requests exceeding this limit get 429.
        server_url: the listening address, logged on startup.

    Example usage:

        # initialize an instance of the App:

        _mirror_cache = MirrorCache(...)
        app = App(_mirror_cache)

        # load the app with uvicorn, and start uvicorn
        # NOTE: lifespan must be set to "on" for properly launching/closing mirror_cache instance

        uvicorn.run(app, host="0.0.0.0", port=80, log_level="error", lifespan="on")
    """

    def __init__(
        self,
        mirror_cache: MirrorCache,
        *,
        max_concurrent_requests: int = cfg.MAX_CONCURRENT_REQUESTS,
        server_url: str | None = None,
    ):
        self._lock = asyncio.Lock()
        self._server_url = server_url
        self._closed = True
        self._mirror_cache = mirror_cache

        self.max_concurrent_requests = max_concurrent_requests
        self._se = asyncio.Semaphore(max_concurrent_requests)

    async def start(self):
        """Start the mirror_cache instance."""
        async with self._lock:
            if self._closed:
                self._closed = False
                logger.info("========== SERVER STARTED ==========")
                if self._server_url:
                    logger.info(f"Server Started on {self._server_url}")
                await self._mirror_cache.start()

    async def stop(self):
        """Stop the mirror_cache instance."""
        async with self._lock:
            if not self._closed:
                self._closed = True
                logger.info("========== SERVER STOPPED ==========")
                await self._mirror_cache.close()
                logger.info("Server stopped successfully")

    @staticmethod
    async def _send_response(resp: MirrorResponse, send, *, with_body: bool = True):
        """Helper method for sending the whole response back to client."""
        await send(
            {
                "type": RESP_TYPE_START,
                "status": int(resp.status),
                "headers": encode_headers(resp.headers, content_length=len(resp.body)),
            }
        )
        await send({"type": RESP_TYPE_BODY, "body": resp.body if with_body else b""})

    async def http_handler(self, scope, send):
        """The real entry for the mirror_proxy."""
        method = scope["method"]
        if method not in ALLOWED_METHODS:
            _resp = text_response(HTTPStatus.METHOD_NOT_ALLOWED)
            _resp.headers[HEADER_ALLOW] = ", ".join(ALLOWED_METHODS)
            await self._send_response(_resp, send)
            return

        if self._se.locked():
            logger.warning(
                f"exceed max pending requests: {self.max_concurrent_requests}, respond with 429"
            )
            await self._send_response(text_response(HTTPStatus.TOO_MANY_REQUESTS), send)
            return

        async with self._se:
            resp = await self._mirror_cache.handle(scope["path"])
        await self._send_response(resp, send, with_body=method != METHOD_HEAD)

    async def __call__(self, scope, receive, send):
        """The entrance of the ASGI application.

        This method directly handles the income requests.
        It filters requests, hands valid requests over to the app entry,
        and handles lifespan protocol to start/stop server properly.
        """
        if scope["type"] == REQ_TYPE_LIFESPAN:
            # handling lifespan protocol
            while True:
                message = await receive()
                if message["type"] == "lifespan.startup":
                    await self.start()
                    await send({"type": "lifespan.startup.complete"})
                elif message["type"] == "lifespan.shutdown":
                    await self.stop()
                    await send({"type": "lifespan.shutdown.complete"})
                    return
        elif scope["type"] == REQ_TYPE_HTTP:
            await self.http_handler(scope, send)
        # ignore unknown request type
