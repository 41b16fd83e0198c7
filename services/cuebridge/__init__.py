# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
CueBridge — fire QLC+ virtual-console buttons from DJ track cues.

  cue_index.py  — QLC:<id>,<id> labels → per-player cue snapshots
  dispatch.py   — fire each beat's cues once per play segment
  events.py     — HTTP / websocket ingest of player events from the DJ host
  sinks/        — where presses go (QLC+ websocket, or log-only dry run)
  config.py     — JSON config loader
  watchdog.py   — systemd heartbeat
"""
