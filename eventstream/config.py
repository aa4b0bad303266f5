from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_STREAM_CONFIG_PATH = os.getenv(
    "STREAM_CONFIG", str(Path(__file__).with_name("stream.yaml"))
)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@dataclass(frozen=True)
class StreamConfig:
    session_size: int = 5
    interval_s: float = 1.0
    max_pending_writes: int = 64
    drain_timeout_s: float = 5.0
    path: str = ""


def load_stream_config(path: str | None = None) -> StreamConfig:
    """
    Load session pacing from yaml. A missing file means defaults.
    """
    p = path or DEFAULT_STREAM_CONFIG_PATH
    raw: Dict[str, Any] = {}
    if os.path.exists(p):
        with open(p, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    defaults = StreamConfig()
    cfg = StreamConfig(
        session_size=int(raw.get("session_size", defaults.session_size)),
        interval_s=float(raw.get("interval_s", defaults.interval_s)),
        max_pending_writes=int(raw.get("max_pending_writes", defaults.max_pending_writes)),
        drain_timeout_s=float(raw.get("drain_timeout_s", defaults.drain_timeout_s)),
        path=p,
    )

    if cfg.session_size < 1:
        raise ValueError(f"session_size must be >= 1 (got {cfg.session_size}) in {p}")
    if cfg.interval_s < 0:
        raise ValueError(f"interval_s must be >= 0 (got {cfg.interval_s}) in {p}")
    return cfg


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
