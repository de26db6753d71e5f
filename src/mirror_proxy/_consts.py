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


from multidict import istr

# uvicorn
REQ_TYPE_LIFESPAN = "lifespan"
REQ_TYPE_HTTP = "http"
RESP_TYPE_BODY = "http.response.body"
RESP_TYPE_START = "http.response.start"

METHOD_GET = "GET"
METHOD_HEAD = "HEAD"
ALLOWED_METHODS = (METHOD_GET, METHOD_HEAD)

# headers
# for implementation convienience, we use lowercase for all headers.
HEADER_CONTENT_TYPE = istr("content-type")
HEADER_CONTENT_LENGTH = istr("content-length")
HEADER_ACCEPT_ENCODING = istr("accept-encoding")
HEADER_ALLOW = istr("allow")
BHEADER_CONTENT_LENGTH = b"content-length"

# headers that only make sense for a single connection, they are never
#   relayed from upstream to the client.
HOP_BY_HOP_HEADERS = frozenset(
    (
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    )
)

CONTENT_TYPE_TEXT_PLAIN = "text/plain"
CONTENT_TYPE_DEFAULT = "application/octet-stream"
