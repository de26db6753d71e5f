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

import socket

from .cache_store import CacheStore
from .config import config
from .errors import ServerBindFailed
from .fetcher import UpstreamFetcher, UpstreamResponse
from .mirror_cache import MirrorCache, MirrorResponse
from .server_app import App
from .settings import MirrorProxySettings, load_settings


__all__ = (
    "App",
    "CacheStore",
    "MirrorCache",
    "MirrorProxySettings",
    "MirrorResponse",
    "UpstreamFetcher",
    "UpstreamResponse",
    "config",
    "load_settings",
    "run_mirror_proxy",
)


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket in advance, so bind failure surfaces to the caller.

    Raises:
        ServerBindFailed if the socket cannot be bound.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        sock.close()
        raise ServerBindFailed(f"failed to bind {host}:{port}: {e!r}") from e
    sock.set_inheritable(True)
    return sock


def build_app(settings: MirrorProxySettings, *, server_url: str | None = None) -> App:
    _mirror_cache = MirrorCache(
        cache_store=CacheStore(settings.CACHE_DIR),
        fetcher=UpstreamFetcher(settings.UPSTREAM, timeout=settings.fetch_timeout),
    )
    return App(
        _mirror_cache,
        max_concurrent_requests=settings.MAX_CONCURRENT_REQUESTS,
        server_url=server_url,
    )


async def run_mirror_proxy(settings: MirrorProxySettings) -> None:
    """Serve mirror_proxy until uvicorn receives SIGINT or SIGTERM.

    Raises:
        ServerBindFailed if the listening socket cannot be bound.
    """
    import uvicorn

    _sock = bind_socket(settings.LISTEN_HOST, settings.LISTEN_PORT)
    _host, _port = _sock.getsockname()[:2]

    _config = uvicorn.Config(
        build_app(settings, server_url=f"http://{_host}:{_port}"),
        log_level="error",
        lifespan="on",
        loop="uvloop",
        http="h11",
        # headers are relayed from upstream as it
        server_header=False,
        date_header=False,
    )
    _server = uvicorn.Server(_config)
    await _server.serve(sockets=[_sock])
