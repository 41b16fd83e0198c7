# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Dry-run sink: logs the frames a console would receive, sends nothing."""

import logging

from .base import ACTIVATE, ActionSink, format_action

logger = logging.getLogger(__name__)


class LogSink(ActionSink):
    type = "log"

    def __init__(self):
        self.sent = 0

    async def send(self, action_id: int, value: int = ACTIVATE) -> bool:
        self.sent += 1
        logger.info("[dry-run] would send %s", format_action(action_id, value))
        return True

    def status(self) -> dict:
        return {"type": self.type, "sent": self.sent}
