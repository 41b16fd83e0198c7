# CueBridge
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Shared configuration loader for CueBridge.

Loads a single JSON config file.  Search order:
  1. $CUEBRIDGE_CONFIG              (explicit override)
  2. /etc/cuebridge/config.json     (deployed install)
  3. config.json                    (CWD — handy for local dev)
  4. ../config/default.json         (repo fallback)

Usage:
    from cuebridge.config import cfg

    qlc_url   = cfg("qlc", "url", default="ws://127.0.0.1:9999/qlcplusWS")
    prefix    = cfg("cues", "prefix", default="QLC")
    port      = cfg("events", "port", default=8780)
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None


def _search_paths() -> list:
    paths = [
        "/etc/cuebridge/config.json",
        "config.json",
        os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
    ]
    override = os.environ.get("CUEBRIDGE_CONFIG")
    if override:
        paths.insert(0, override)
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    qlc = config.get("qlc") or {}
    url = qlc.get("url")
    if url and not str(url).startswith(("ws://", "wss://")):
        logger.warning("Config %s: qlc.url '%s' is not a ws:// or wss:// URL", path, url)
    if qlc.get("enabled") is False:
        logger.warning("Config %s: qlc.enabled is false — cues will only be logged", path)
    cues = config.get("cues") or {}
    if "prefix" in cues and not str(cues["prefix"]).strip():
        logger.warning("Config %s: empty cues.prefix — default 'QLC' will be used", path)
    tolerance = cues.get("tolerance_ms")
    if tolerance is not None:
        try:
            if int(tolerance) <= 0:
                logger.warning("Config %s: cues.tolerance_ms must be positive, got %s", path, tolerance)
        except (TypeError, ValueError):
            logger.warning("Config %s: cues.tolerance_ms is not a number: %r", path, tolerance)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found — using built-in defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("qlc")                       → config["qlc"]
    cfg("qlc", "url")                → config["qlc"]["url"]
    cfg("cues", "tolerance_ms", default=50)  → config["cues"]["tolerance_ms"] or 50
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()
