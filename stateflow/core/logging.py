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

"""Logging setup for stateflow.

Logging Levels (stateflow convention):
- DEBUG (10): Per-node steps, cache lookups, checkpoint writes
- INFO (20): Interrupts, resumes, graph compilation
- WARNING (30): Iteration-limit aborts
- ERROR (40): Node failures
"""

import logging
from typing import Optional

from stateflow.config.settings import load_settings

PACKAGE_LOGGER = "stateflow"

DEFAULT_FORMAT = "[%(name)s] [%(asctime)s] [%(levelname)s] %(message)s"

# Third-party loggers that are too chatty below WARNING
NOISY_LOGGERS = [
    "asyncio",
]


def configure_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure the stateflow package logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR); defaults to
            the STATEFLOW_LOG_LEVEL setting
        log_file: Optional log file path

    Returns:
        The configured package logger
    """
    if log_level is None:
        log_level = load_settings().log_level
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    return logger


__all__ = ["configure_logging", "PACKAGE_LOGGER"]
