# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Action sinks — where cue presses end up.

The factory ``create_action_sink`` reads the ``qlc`` section of config.json
and returns the right sink.

Supported types:
  - ``qlc``  – QLC+ virtual console over its websocket API (default)
  - ``log``  – dry run, logs each press (``qlc.enabled: false``)
"""

import logging

from ..config import cfg
from .base import ACTIVATE, ActionSink, format_action
from .log import LogSink
from .qlc import CONNECT_TIMEOUT, DEFAULT_URL, QlcConnection, QlcSink

logger = logging.getLogger("cue-bridge.sink")

__all__ = [
    "ACTIVATE",
    "ActionSink",
    "LogSink",
    "QlcConnection",
    "QlcSink",
    "create_action_sink",
    "format_action",
]


def create_action_sink() -> ActionSink:
    """Create the configured sink.

    Reads from config.json "qlc" section:
      enabled          – false selects the log-only sink (default true)
      url              – QLC+ websocket endpoint (default ws://127.0.0.1:9999/qlcplusWS)
      connect_timeout  – seconds allowed for connect + handshake (default 2.0)
    """
    if cfg("qlc", "enabled", default=True) is False:
        logger.info("QLC+ output disabled — using log sink")
        return LogSink()

    url = cfg("qlc", "url", default=DEFAULT_URL)
    timeout = float(cfg("qlc", "connect_timeout", default=CONNECT_TIMEOUT))
    logger.info("QLC+ sink -> %s", url)
    return QlcSink(QlcConnection(url, connect_timeout=timeout))
