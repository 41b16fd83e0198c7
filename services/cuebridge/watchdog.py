# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Systemd watchdog heartbeat for the bridge service.

Sends WATCHDOG=1 to the systemd notify socket while the service reports
itself alive, so a wedged event ingest gets restarted.  Silently no-ops when
NOTIFY_SOCKET is unset (macOS / dev mode).

Usage:
    from cuebridge.watchdog import watchdog_loop
    asyncio.create_task(watchdog_loop(alive=lambda: events.running))
"""

import asyncio
import logging
import os
import socket

logger = logging.getLogger(__name__)


def sd_notify(msg: str) -> bool:
    """Send a notification message to the systemd notify socket."""
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return False
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
    except OSError as e:
        logger.warning("sd_notify(%s) failed: %s", msg.split("\n")[0], e)
        return False
    finally:
        sock.close()
    return True


async def watchdog_loop(alive=lambda: True, interval: int = 20):
    """Send READY=1 once, then WATCHDOG=1 every *interval* seconds while alive().

    Once alive() turns false the heartbeat stops and systemd restarts us.
    """
    sd_notify("READY=1")
    logger.info("Watchdog started (interval=%ds)", interval)
    while alive():
        sd_notify("WATCHDOG=1")
        await asyncio.sleep(interval)
    logger.error("Service no longer alive — stopping watchdog heartbeat")
