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


class Config:
    # ------ defaults of the runtime settings ------ #
    LISTEN_HOST = "0.0.0.0"
    LISTEN_PORT = 80
    CACHE_DIR = "./www"
    UPSTREAM = "https://mirrors.ustc.edu.cn/"
    FETCH_TIMEOUT_MS = 10_000
    LOG_FILE = "./main.log"

    # ------ cache layout ------ #
    INDEX_DOCUMENT = "index.html"
    TMP_FILE_PREFIX = ".tmp_"

    # ------ task management ------ #
    MAX_CONCURRENT_REQUESTS = 1024

    # ------ logging ------ #
    LOG_LEVEL = "INFO"
    LOG_BACKLOG = 4096


config = Config()
