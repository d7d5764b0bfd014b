# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
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

"""Configuration management for stateflow."""

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_ITERATIONS = 100
DEFAULT_NODE_CACHE_MAX_ENTRIES = 1024
DEFAULT_CHECKPOINT_DB_PATH = "~/.stateflow/graph_checkpoints.db"


class GraphSettings(BaseSettings):
    """Engine-wide settings, read from ``STATEFLOW_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STATEFLOW_",
        env_file=".env" if not os.getenv("STATEFLOW_SKIP_ENV_FILE") else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    max_iterations: int = Field(
        DEFAULT_MAX_ITERATIONS, gt=0, description="Node executions allowed per run"
    )
    node_cache_max_entries: int = Field(
        DEFAULT_NODE_CACHE_MAX_ENTRIES, gt=0, description="Capacity of each node cache"
    )
    checkpoint_db_path: str = DEFAULT_CHECKPOINT_DB_PATH
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level


def load_settings() -> GraphSettings:
    """Load engine settings.

    Returns:
        GraphSettings instance
    """
    return GraphSettings()
