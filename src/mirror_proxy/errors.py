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


class BaseMirrorProxyError(Exception): ...


# ------ request path ------ #


class InvalidRequestPath(BaseMirrorProxyError):
    """Raised when the request path cannot be mapped to a local path."""


class PathOutsideCacheRoot(BaseMirrorProxyError):
    """Raised when the request path resolves outside of the cache root."""


# ------ local cache ------ #


class LocalReadFailure(BaseMirrorProxyError): ...


class LocalWriteFailure(BaseMirrorProxyError): ...


# ------ upstream ------ #


class UpstreamNetworkError(BaseMirrorProxyError):
    """Raised when connecting to or reading from upstream failed."""


class UpstreamTimeout(BaseMirrorProxyError):
    """Raised when upstream didn't finish the response in time."""


class FetcherNotStarted(BaseMirrorProxyError): ...


# ------ process ------ #


class ServerBindFailed(BaseMirrorProxyError): ...
