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
"""Startup settings for mirror_proxy.

Settings are collected once at startup from (by priority) CLI arguments,
environment variables prefixed with ``MIRROR_PROXY_``, and built-in defaults.
The resulting settings instance is frozen and shared by all components.
"""


from __future__ import annotations

import logging
from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config import config as cfg

logger = logging.getLogger(__name__)

ENV_PREFIX = "MIRROR_PROXY_"
LOG_LEVEL_LITERAL = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class MirrorProxySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    # ------ server ------ #
    LISTEN_HOST: str = cfg.LISTEN_HOST
    LISTEN_PORT: int = Field(default=cfg.LISTEN_PORT, ge=0, le=65535)
    MAX_CONCURRENT_REQUESTS: int = Field(default=cfg.MAX_CONCURRENT_REQUESTS, gt=0)

    # ------ cache ------ #
    CACHE_DIR: str = cfg.CACHE_DIR

    # ------ upstream ------ #
    UPSTREAM: str = cfg.UPSTREAM
    FETCH_TIMEOUT_MS: int = Field(default=cfg.FETCH_TIMEOUT_MS, gt=0)

    # ------ logging ------ #
    LOG_FILE: str = cfg.LOG_FILE
    LOG_LEVEL: LOG_LEVEL_LITERAL = cfg.LOG_LEVEL

    @field_validator("UPSTREAM")
    @classmethod
    def _check_upstream(cls, value: str) -> str:
        _parsed = urlsplit(value)
        if _parsed.scheme not in ("http", "https"):
            raise ValueError(f"upstream must be a http(s) URL, get {value!r}")
        if not _parsed.netloc:
            raise ValueError(f"upstream has no host, get {value!r}")
        if _parsed.query or _parsed.fragment:
            raise ValueError(
                f"upstream must not contain query or fragment, get {value!r}"
            )
        return value

    @property
    def fetch_timeout(self) -> float:
        """Fetch timeout in seconds."""
        return self.FETCH_TIMEOUT_MS / 1000


def load_settings(**overrides: Any) -> MirrorProxySettings:
    """Parse settings from environment, with <overrides> taking priority.

    Overrides with value None are ignored, so that unset CLI arguments
    don't shadow the environment.

    Raises:
        pydantic.ValidationError if any of the settings is invalid.
    """
    _overrides = {k: v for k, v in overrides.items() if v is not None}
    try:

        class _SettingParser(MirrorProxySettings, BaseSettings):
            model_config = SettingsConfigDict(
                validate_default=True,
                env_prefix=ENV_PREFIX,
                frozen=True,
            )

        _parsed_setting = _SettingParser(**_overrides)
        return MirrorProxySettings.model_construct(**_parsed_setting.model_dump())
    except Exception as e:
        logger.error(f"failed to parse mirror_proxy settings: {e!r}")
        raise
