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
"""Content-type for files served from the local cache."""


from __future__ import annotations

import posixpath
from types import MappingProxyType

from ._consts import CONTENT_TYPE_DEFAULT

CONTENT_TYPES = MappingProxyType(
    {
        ".html": "text/html",
        ".htm": "text/html",
        ".css": "text/css",
        ".js": "application/javascript",
        ".mjs": "application/javascript",
        ".json": "application/json",
        ".txt": "text/plain",
        ".xml": "application/xml",
        ".png": "image/png",
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".gif": "image/gif",
        ".svg": "image/svg+xml",
        ".ico": "image/x-icon",
        ".webp": "image/webp",
        ".woff": "font/woff",
        ".woff2": "font/woff2",
        ".pdf": "application/pdf",
    }
)


def resolve(extension: str) -> str:
    """Get the MIME type for <extension>, with or without the leading dot."""
    extension = extension.lower()
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    return CONTENT_TYPES.get(extension, CONTENT_TYPE_DEFAULT)


def resolve_for_path(path: str) -> str:
    return resolve(posixpath.splitext(path)[1])
