"""Basecaller input formatting and console logging setup."""

from __future__ import annotations

import logging
import math
import struct
from datetime import datetime, timezone

_RESET = "\x1b[0m"
_RED = "\x1b[1;31m"
_GREEN = "\x1b[1;32m"
_WHITE = "\x1b[37m"
_ORANGE = "\x1b[1;38;2;255;102;0m"
_APRICOT = "\x1b[1;38;2;255;195;0m"

_STYLES = {
    logging.WARNING: (_ORANGE, _ORANGE),
    logging.INFO: (_GREEN, _WHITE),
    logging.DEBUG: (_APRICOT, _APRICOT),
    logging.ERROR: (_RED, _RED),
    logging.CRITICAL: (_RED, _RED),
}
_LEVEL_NAMES = {logging.WARNING: "WARN"}


def _f32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _fixed(value: float, precision: int) -> str:
    value = _f32(value)
    if math.isnan(value):
        return "NaN"
    return f"{value:.{precision}f}"


def get_basecall_client_input(
    read_id: str,
    raw_data: bytes,
    chunks: int,
    channel: int,
    number: int,
    offset: float,
    pa_range: float,
    digitisation: int,
    sample_rate: int,
) -> str:
    """Format one read's uncalibrated signal as a basecaller client input line.

    ``raw_data`` holds little-endian signed 16-bit samples.
    """
    data = bytes(raw_data)
    if len(data) % 2:
        raise ValueError("raw signal data must hold a whole number of 16-bit samples")
    signal = " ".join(str(sample) for (sample,) in struct.iter_unpack("<h", data))
    return (
        f"{read_id}::{channel}::{number}::{chunks} {channel} {number} {digitisation} "
        f"{_fixed(offset, 1)} {_fixed(pa_range, 11)} {sample_rate} {signal}\n"
    )


class _ColourFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        level_style, message_style = _STYLES.get(record.levelno, (_WHITE, _WHITE))
        level = _LEVEL_NAMES.get(record.levelno, record.levelname)
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return (
            f"{_WHITE}{timestamp}{_RESET} [{level_style}{level}{_RESET}] - "
            f"{message_style}{message}{_RESET}"
        )


class _ColourHandler(logging.StreamHandler):
    pass


def init_logger(level: int = logging.INFO) -> logging.Handler:
    """Install a coloured console handler on the root logger and return it."""
    root = logging.getLogger()
    for handler in [h for h in root.handlers if isinstance(h, _ColourHandler)]:
        root.removeHandler(handler)
    handler = _ColourHandler()
    handler.setFormatter(_ColourFormatter())
    root.addHandler(handler)
    root.setLevel(level)
    return handler