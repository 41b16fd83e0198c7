#!/usr/bin/env python3
# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
QLC+ stand-in for CueBridge testing

Accepts websocket connections on the QLC+ web API path and logs every
``<widget id>|<value>`` frame it receives, so cue dispatch can be checked
without a lighting console.

Usage:
    python3 tools/qlc-echo.py [--port 9999] [--host 127.0.0.1] [--path /qlcplusWS]
"""

import argparse
import logging
from collections import Counter

from aiohttp import web

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('qlc-echo')

presses = Counter()


async def handle_ws(request: web.Request) -> web.WebSocketResponse:
    ws = web.WebSocketResponse()
    await ws.prepare(request)
    logger.info("Bridge connected from %s", request.remote)

    async for msg in ws:
        if msg.type != web.WSMsgType.TEXT:
            continue
        widget, _, value = msg.data.partition("|")
        if not widget.isdigit() or not value.isdigit():
            logger.warning("Malformed frame: %r", msg.data)
            continue
        presses[int(widget)] += 1
        logger.info("Widget %s ← %s (pressed %d times)", widget, value, presses[int(widget)])

    logger.info("Bridge disconnected")
    return ws


async def handle_stats(request: web.Request) -> web.Response:
    return web.json_response({str(k): v for k, v in sorted(presses.items())})


def main():
    parser = argparse.ArgumentParser(description="Log frames sent to a fake QLC+ web API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=9999)
    parser.add_argument("--path", default="/qlcplusWS")
    args = parser.parse_args()

    app = web.Application()
    app.router.add_get(args.path, handle_ws)
    app.router.add_get("/stats", handle_stats)
    logger.info("Fake QLC+ on ws://%s:%d%s", args.host, args.port, args.path)
    web.run_app(app, host=args.host, port=args.port, print=None)


if __name__ == "__main__":
    main()
