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

import time
from http import HTTPStatus

import pytest

from mirror_proxy.errors import (
    FetcherNotStarted,
    UpstreamNetworkError,
    UpstreamTimeout,
)
from mirror_proxy.fetcher import UpstreamFetcher

from tests.utils import DummyUpstream, find_free_port

FETCH_TIMEOUT = 3

# upstream delays longer than the fetch timeout, the fetch must give up in time
SHORT_TIMEOUT = 0.05
SLOW_UPSTREAM_DELAY = 0.2
GIVE_UP_WITHIN = 0.15


@pytest.fixture
async def fetcher(upstream: DummyUpstream):
    _fetcher = UpstreamFetcher(upstream.url, timeout=FETCH_TIMEOUT)
    await _fetcher.start()
    try:
        yield _fetcher
    finally:
        await _fetcher.close()


async def test_fetch_ok(upstream: DummyUpstream, fetcher: UpstreamFetcher):
    upstream.add_file("/a/b.txt", b"hello world", "text/plain")

    resp = await fetcher.fetch("/a/b.txt")

    assert resp.status == HTTPStatus.OK
    assert not resp.is_error
    assert resp.body == b"hello world"
    assert resp.headers["x-upstream"] == "dummy"
    assert resp.headers["Content-Type"].startswith("text/plain")
    assert resp.url == f"{upstream.url}a/b.txt"
    assert upstream.requests == ["/a/b.txt"]


async def test_fetch_requests_identity_encoding(
    upstream: DummyUpstream, fetcher: UpstreamFetcher
):
    upstream.add_file("/a.bin", b"\x00\x01")

    await fetcher.fetch("/a.bin")

    assert upstream.request_headers[0]["Accept-Encoding"] == "identity"


async def test_fetch_error_status_is_returned(
    upstream: DummyUpstream, fetcher: UpstreamFetcher
):
    resp = await fetcher.fetch("/not_existed")

    assert resp.status == HTTPStatus.NOT_FOUND
    assert resp.is_error
    assert resp.body == b"upstream: not found"


async def test_fetch_quotes_path(upstream: DummyUpstream, fetcher: UpstreamFetcher):
    upstream.add_file("/My Documents/café.txt", b"data")

    resp = await fetcher.fetch("/My Documents/café.txt")

    assert resp.status == HTTPStatus.OK
    assert resp.url == f"{upstream.url}My%20Documents/caf%C3%A9.txt"
    # aiohttp server decodes the path for us
    assert upstream.requests == ["/My Documents/café.txt"]


async def test_fetch_with_upstream_base_path(upstream: DummyUpstream):
    upstream.add_file("/mirror/ubuntu/ls-lR.gz", b"gz")
    _fetcher = UpstreamFetcher(f"{upstream.url}mirror/", timeout=FETCH_TIMEOUT)
    await _fetcher.start()
    try:
        resp = await _fetcher.fetch("/ubuntu/ls-lR.gz")
    finally:
        await _fetcher.close()

    assert resp.status == HTTPStatus.OK
    assert resp.body == b"gz"
    assert upstream.requests == ["/mirror/ubuntu/ls-lR.gz"]


async def test_fetch_timeout(upstream: DummyUpstream):
    upstream.add_file("/slow", b"slow")
    upstream.delays["/slow"] = SLOW_UPSTREAM_DELAY
    _fetcher = UpstreamFetcher(upstream.url, timeout=SHORT_TIMEOUT)
    await _fetcher.start()
    try:
        _start = time.monotonic()
        with pytest.raises(UpstreamTimeout):
            await _fetcher.fetch("/slow")
        assert time.monotonic() - _start < GIVE_UP_WITHIN
    finally:
        await _fetcher.close()


async def test_fetch_redirect_is_not_followed(
    upstream: DummyUpstream, fetcher: UpstreamFetcher
):
    upstream.redirects["/old.txt"] = "/new.txt"
    upstream.add_file("/new.txt", b"new content")

    resp = await fetcher.fetch("/old.txt")

    assert resp.status == HTTPStatus.MOVED_PERMANENTLY
    assert resp.headers["Location"] == "/new.txt"
    assert resp.body == b"upstream: moved"
    assert not resp.is_error
    assert not resp.is_cacheable
    assert upstream.requests == ["/old.txt"]


async def test_fetch_connection_refused():
    _fetcher = UpstreamFetcher(
        f"http://127.0.0.1:{find_free_port()}/", timeout=FETCH_TIMEOUT
    )
    await _fetcher.start()
    try:
        with pytest.raises(UpstreamNetworkError):
            await _fetcher.fetch("/a.txt")
    finally:
        await _fetcher.close()


async def test_fetch_not_started():
    _fetcher = UpstreamFetcher("http://127.0.0.1/", timeout=FETCH_TIMEOUT)
    with pytest.raises(FetcherNotStarted):
        await _fetcher.fetch("/a.txt")


async def test_fetch_after_close(upstream: DummyUpstream, fetcher: UpstreamFetcher):
    await fetcher.close()
    with pytest.raises(FetcherNotStarted):
        await fetcher.fetch("/a.txt")
    # close again is a no-op
    await fetcher.close()
