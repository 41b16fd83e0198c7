# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Abstract base class for CueBridge action sinks.

A sink delivers one "press" of a lighting-console widget.  Every sink must
implement send; connect, close and status have defaults for sinks that hold
no connection.
"""

from abc import ABC, abstractmethod

ACTIVATE = 255


def format_action(action_id: int, value: int = ACTIVATE) -> str:
    """Wire form of one action: ``"<id>|<value>"``."""
    return f"{int(action_id)}|{int(value)}"


class ActionSink(ABC):
    """Interface every action destination must implement."""

    type: str = ""

    @abstractmethod
    async def send(self, action_id: int, value: int = ACTIVATE) -> bool: ...

    # -- Optional: override in sinks that hold a connection --

    async def connect(self) -> bool:
        return True  # nothing to open by default

    async def close(self) -> None:
        pass  # nothing to release by default

    def status(self) -> dict:
        return {"type": self.type}
