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
import socket
from dataclasses import dataclass, field

from aiohttp import web


UPSTREAM_ADDR = "127.0.0.1"


def find_free_port() -> int:
    """Return an available TCP port on localhost."""
    with socket.socket() as s:
        s.bind((UPSTREAM_ADDR, 0))
        return s.getsockname()[1]


@dataclass
class DummyUpstream:
    """An in-process upstream server serving files from memory.

    Attributes:
        files: path -> (body, content-type) served with 200.
        delays: path -> seconds to wait before responding.
        redirects: path -> location answered with 301.
        requests: paths of all requests received, in order.
        request_headers: headers of all requests received, in order.
    """

    files: dict[str, tuple[bytes, str]] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    redirects: dict[str, str] = field(default_factory=dict)
    requests: list[str] = field(default_factory=list)
    request_headers: list[dict[str, str]] = field(default_factory=list)
    port: int = 0

    @property
    def url(self) -> str:
        return f"http://{UPSTREAM_ADDR}:{self.port}/"

    def add_file(
        self, path: str, body: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        self.files[path] = (body, content_type)

    def count(self, path: str) -> int:
        return self.requests.count(path)

    async def handler(self, request: web.Request) -> web.StreamResponse:
        path = request.path
        self.requests.append(path)
        self.request_headers.append(dict(request.headers))

        if _delay := self.delays.get(path):
            await asyncio.sleep(_delay)

        if _location := self.redirects.get(path):
            return web.Response(
                status=301, text="upstream: moved", headers={"Location": _location}
            )
        if path not in self.files:
            return web.Response(status=404, text="upstream: not found")
        body, content_type = self.files[path]
        return web.Response(
            body=body,
            content_type=content_type,
            headers={"x-upstream": "dummy"},
        )
