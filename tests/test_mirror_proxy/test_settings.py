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

import os

import pytest
from pydantic import ValidationError

from mirror_proxy.config import config as cfg
from mirror_proxy.settings import ENV_PREFIX, MirrorProxySettings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for _key in list(os.environ):
        if _key.upper().startswith(ENV_PREFIX):
            monkeypatch.delenv(_key)


def test_defaults():
    settings = load_settings()

    assert isinstance(settings, MirrorProxySettings)
    assert settings.LISTEN_HOST == cfg.LISTEN_HOST
    assert settings.LISTEN_PORT == 80
    assert settings.CACHE_DIR == "./www"
    assert settings.UPSTREAM == "https://mirrors.ustc.edu.cn/"
    assert settings.FETCH_TIMEOUT_MS == 10_000
    assert settings.fetch_timeout == 10
    assert settings.LOG_FILE == "./main.log"
    assert settings.LOG_LEVEL == "INFO"


def test_load_from_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(f"{ENV_PREFIX}LISTEN_PORT", "8080")
    monkeypatch.setenv(f"{ENV_PREFIX}UPSTREAM", "http://127.0.0.1:9000/mirror/")
    monkeypatch.setenv(f"{ENV_PREFIX}FETCH_TIMEOUT_MS", "1500")
    monkeypatch.setenv(f"{ENV_PREFIX}CACHE_DIR", "/var/cache/mirror")

    settings = load_settings()

    assert settings.LISTEN_PORT == 8080
    assert settings.UPSTREAM == "http://127.0.0.1:9000/mirror/"
    assert settings.fetch_timeout == 1.5
    assert settings.CACHE_DIR == "/var/cache/mirror"


def test_overrides_take_priority(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(f"{ENV_PREFIX}LISTEN_PORT", "8080")
    monkeypatch.setenv(f"{ENV_PREFIX}LOG_FILE", "/var/log/from_env.log")

    settings = load_settings(LISTEN_PORT=8888, LOG_FILE=None)

    assert settings.LISTEN_PORT == 8888
    # None override doesn't shadow env
    assert settings.LOG_FILE == "/var/log/from_env.log"


@pytest.mark.parametrize(
    "upstream",
    (
        "ftp://mirrors.example.com/",
        "mirrors.example.com",
        "http://",
        "http://mirrors.example.com/?token=abc",
        "http://mirrors.example.com/#frag",
    ),
)
def test_invalid_upstream(upstream: str):
    with pytest.raises(ValidationError):
        load_settings(UPSTREAM=upstream)


@pytest.mark.parametrize(
    "overrides",
    (
        {"LISTEN_PORT": 65536},
        {"LISTEN_PORT": -1},
        {"FETCH_TIMEOUT_MS": 0},
        {"MAX_CONCURRENT_REQUESTS": 0},
        {"LOG_LEVEL": "VERBOSE"},
    ),
)
def test_invalid_settings(overrides: dict):
    with pytest.raises(ValidationError):
        load_settings(**overrides)


def test_invalid_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(f"{ENV_PREFIX}LISTEN_PORT", "not_a_port")
    with pytest.raises(ValidationError):
        load_settings()


def test_settings_is_frozen():
    settings = load_settings()
    with pytest.raises(ValidationError):
        settings.LISTEN_PORT = 8080  # type: ignore[misc]
