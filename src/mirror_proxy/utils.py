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

import posixpath
from urllib.parse import SplitResult, quote, urlsplit

from .config import config as cfg
from .errors import InvalidRequestPath


def normalize_request_path(path: str) -> str:
    """Normalize the decoded URL path received from uvicorn.

    `.` and `..` segments and duplicated slashes are collapsed, `..` can never
    climb above `/`. A trailing slash is kept as it marks a directory request.

    Raises:
        InvalidRequestPath if <path> is not an absolute path or contains NUL.
    """
    if not path.startswith("/"):
        raise InvalidRequestPath(f"not an absolute path: {path!r}")
    if "\x00" in path:
        raise InvalidRequestPath(f"NUL in path: {path!r}")

    # NOTE: posixpath.normpath preserves exactly two leading slashes,
    #       collapse them in advance.
    _normalized = posixpath.normpath(f"/{path.lstrip('/')}")
    if path.endswith("/") and _normalized != "/":
        _normalized = f"{_normalized}/"
    return _normalized


def local_relpath(normalized_path: str) -> str:
    """Map a normalized request path to a path relative to the cache root.

    `/` and any other directory request are mapped to the index document
    inside that directory.
    """
    _rel = normalized_path.lstrip("/")
    if not _rel or _rel.endswith("/"):
        _rel = f"{_rel}{cfg.INDEX_DOCUMENT}"
    return _rel


def build_upstream_url(upstream: str, request_path: str) -> str:
    """Join the upstream base URL and the request path.

    The path of the base URL is kept as prefix, its trailing slash dropped.
    <request_path> is decoded by uvicorn, we must quote it again before sending
    it to the upstream. Query and fragment are never sent.
    """
    _base = urlsplit(upstream)
    return SplitResult(
        scheme=_base.scheme,
        netloc=_base.netloc,
        path=f"{_base.path.rstrip('/')}{quote(request_path)}",
        query="",
        fragment="",
    ).geturl()
