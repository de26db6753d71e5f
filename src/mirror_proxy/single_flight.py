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
"""De-duplicate concurrent operations on the same key."""


from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

RT = TypeVar("RT")


class SingleFlight(Generic[RT]):
    """A register of on-going operations keyed by <key>.

    The first caller for a key becomes the leader and runs the operation
    in a dedicated task. The later callers arriving while the operation
    is on-going become followers and await the same result, or get the same
    exception raised.

    The key is released as soon as the operation finishes, a caller arriving
    after that will start a new operation.
    """

    def __init__(self) -> None:
        self._on_going: dict[Hashable, asyncio.Task[RT]] = {}

    def __len__(self) -> int:
        return len(self._on_going)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._on_going

    def _release_cb(self, key: Hashable, task: asyncio.Task[RT]) -> None:
        if self._on_going.get(key) is task:
            del self._on_going[key]

    async def do(self, key: Hashable, func: Callable[[], Awaitable[RT]]) -> RT:
        """Run <func> for <key> once among all concurrent callers.

        NOTE: the operation runs in its own task and each caller awaits it
            shielded, so a cancelled caller doesn't cancel the operation for others.
        """
        task = self._on_going.get(key)
        if task is None:

            async def _run() -> RT:
                return await func()

            task = asyncio.create_task(_run())
            self._on_going[key] = task
            task.add_done_callback(lambda _task: self._release_cb(key, _task))
        else:
            logger.debug(f"join on-going operation for {key}")
        return await asyncio.shield(task)
