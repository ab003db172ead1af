"""
Logging helpers for rtc-engine.

Sessions log through ``rtcengine.rtc.session.session.<tid>`` child loggers so
one negotiation can be followed by its transaction id.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
ENV_LEVEL_VAR = "RTCENGINE_LOG_LEVEL"


def resolve_level(level: Union[int, str, None]) -> int:
    """
    Accept ``logging`` constants or their names; fall back to the environment
    and then ``INFO``.
    """

    if level is None:
        level = os.environ.get(ENV_LEVEL_VAR, logging.INFO)
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"unknown log level {level!r}")
    return value


def configure_logging(level: Union[int, str, None] = None, format: Optional[str] = None) -> None:
    """
    Configure the root logger once; later calls only adjust the level.
    """

    root = logging.getLogger()
    if root.handlers:
        # Respect any user provided configuration.
        if level is not None:
            root.setLevel(resolve_level(level))
        return

    logging.basicConfig(
        level=resolve_level(level),
        format=format or DEFAULT_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
