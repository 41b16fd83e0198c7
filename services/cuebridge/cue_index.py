# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Cue index — which lighting actions live at which point of a track.

The host reports a track's cue list (hot cues, memory points, loops) every
time a player loads something new.  Cues whose label contains
``QLC:<id>[,<id>...]`` name virtual-console widgets to press when playback
reaches them.  The index maps each cue time to the set of widget ids found
there, one snapshot per player:

    index = CueIndex()
    index.update(2, [Cue(1000, "QLC:5,7"), Cue(1000, "drop QLC:9")])
    index.actions_near(2, 1020)   # → [5, 7, 9]

A snapshot is rebuilt from scratch on every metadata change and swapped in
with a single assignment, so readers never see a mix of two tracks.
"""

import logging
import re
from types import MappingProxyType

log = logging.getLogger(__name__)

DEFAULT_PREFIX = "QLC"
TOLERANCE_MS = 50

CUE_KINDS = ("hot_cue", "memory", "loop")


def cue_pattern(prefix: str = DEFAULT_PREFIX) -> re.Pattern:
    """Compile ``PREFIX:INT(,INT)*`` for a literal prefix."""
    prefix = (prefix or DEFAULT_PREFIX).strip().rstrip(":") or DEFAULT_PREFIX
    return re.compile(re.escape(prefix) + r":(\d+(?:,\d+)*)")


DEFAULT_PATTERN = cue_pattern()


class Cue:
    """One entry of a track's cue list."""

    __slots__ = ("time_ms", "name", "kind")

    def __init__(self, time_ms: int, name: str | None = "", kind: str = "memory"):
        self.time_ms = int(time_ms)
        self.name = name or ""
        self.kind = kind if kind in CUE_KINDS else "memory"

    def __repr__(self):
        return f"Cue({self.time_ms}, {self.name!r}, {self.kind!r})"


def parse_action_ids(label: str | None, pattern: re.Pattern = DEFAULT_PATTERN) -> set:
    """Return the action ids named by the first pattern match in *label*."""
    if not label:
        return set()
    match = pattern.search(label)
    if not match:
        return set()
    return {int(part) for part in match.group(1).split(",")}


def build_cue_index(cues, pattern: re.Pattern = DEFAULT_PATTERN) -> dict:
    """Map cue time (ms) → frozenset of action ids, ordered by time.

    Cues sharing a time accumulate into one set.  Labels without a match
    contribute nothing; no cue list at all gives an empty index.
    """
    found: dict[int, set] = {}
    for cue in cues or ():
        ids = parse_action_ids(cue.name, pattern)
        if ids:
            found.setdefault(cue.time_ms, set()).update(ids)
    return {t: frozenset(found[t]) for t in sorted(found)}


class TrackCues:
    """Immutable per-player snapshot: indexed cues plus the track's beat grid."""

    __slots__ = ("cues", "beat_grid")

    def __init__(self, cues: dict, beat_grid=None):
        self.cues = MappingProxyType(dict(cues))
        self.beat_grid = tuple(int(t) for t in beat_grid) if beat_grid else ()

    def beat_time(self, beat: int) -> int | None:
        """Start time (ms) of a 1-based beat, or None outside the grid."""
        if beat is None or not 1 <= beat <= len(self.beat_grid):
            return None
        return self.beat_grid[beat - 1]

    def actions_near(self, time_ms: int, tolerance_ms: int = TOLERANCE_MS) -> list:
        """Union of action ids cued strictly within *tolerance_ms* of *time_ms*."""
        actions: list[int] = []
        seen: set[int] = set()
        for cue_time, ids in self.cues.items():
            if abs(time_ms - cue_time) < tolerance_ms:
                for action_id in sorted(ids):
                    if action_id not in seen:
                        seen.add(action_id)
                        actions.append(action_id)
        return actions

    def __len__(self):
        return len(self.cues)


class CueIndex:
    """Per-player cue snapshots, replaced wholesale on every track change."""

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        self.pattern = cue_pattern(prefix)
        self._tracks: dict[int, TrackCues] = {}

    def update(self, device_id: int, cues, beat_grid=None) -> TrackCues | None:
        """Rebuild the snapshot for *device_id*.  ``cues=None`` means no track."""
        if cues is None:
            self.remove(device_id)
            return None
        track = TrackCues(build_cue_index(cues, self.pattern), beat_grid)
        self._tracks[device_id] = track
        log.info("Player %s: indexed %d cue time(s)", device_id, len(track))
        return track

    def remove(self, device_id: int) -> None:
        if self._tracks.pop(device_id, None) is not None:
            log.info("Player %s: no track, cue index cleared", device_id)

    def get(self, device_id: int) -> TrackCues | None:
        return self._tracks.get(device_id)

    def devices(self) -> list:
        return sorted(self._tracks)

    def actions_near(self, device_id: int, time_ms: int,
                     tolerance_ms: int = TOLERANCE_MS) -> list:
        track = self._tracks.get(device_id)
        if track is None:
            return []
        return track.actions_near(time_ms, tolerance_ms)
