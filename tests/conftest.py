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

import pytest
from aiohttp import web

from tests.utils import UPSTREAM_ADDR, DummyUpstream


@pytest.fixture
async def upstream():
    """A running DummyUpstream on an ephemeral port."""
    _upstream = DummyUpstream()
    app = web.Application()
    app.router.add_route("GET", "/{tail:.*}", _upstream.handler)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, UPSTREAM_ADDR, 0)
    await site.start()
    _upstream.port = runner.addresses[0][1]

    try:
        yield _upstream
    finally:
        await runner.cleanup()
