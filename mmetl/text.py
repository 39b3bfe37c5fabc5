"""String helpers for names, timestamps, file names and sizes."""

from __future__ import annotations

import logging
import math
import re
import unicodedata

_log = logging.getLogger(__name__)

_VALID_CHANNEL_NAME = re.compile(r"[a-zA-Z0-9\-_]+")
_SIGNED_DIGITS = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_SPECIAL_REPLACEMENTS = {"ß": "ss"}
_SIZE_UNITS = ("KiB", "MiB", "GiB", "TiB", "PiB")


def truncate_runes(text: str, limit: int) -> str:
    """Cut text down to at most limit code points."""
    return text[:limit] if len(text) > limit else text


def is_valid_channel_name(name: str) -> bool:
    """True if name is made only of ASCII letters, digits, '-' and '_'."""
    return _VALID_CHANNEL_NAME.fullmatch(name) is not None


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def slack_convert_timestamp(ts: str) -> int:
    """Turn a Slack "seconds.micros" timestamp into milliseconds.

    Returns 1 for a timestamp that is not a number. Raises ValueError when
    the fractional part has fewer than four digits.
    """
    parts = ts.split(".")
    tail = "0000"
    if len(parts) > 1:
        if len(parts[1]) < 4:
            raise ValueError(f"timestamp {ts!r} has a fractional part shorter than 4 digits")
        tail = parts[1][:4]
    digits = parts[0] + tail

    if _SIGNED_DIGITS.fullmatch(digits) is None:
        _log.warning("Slack Import: Bad timestamp detected.")
        return 1
    value = int(digits)
    if not _INT64_MIN <= value <= _INT64_MAX:
        _log.warning("Slack Import: Bad timestamp detected.")
        return 1

    return _round_half_away(float(value) / 10)


def slack_convert_channel_name(channel_name: str, channel_id: str) -> str:
    """Make a channel name usable, falling back to the lower-cased id."""
    new_name = channel_name.strip("_-")
    if len(new_name.encode("utf-8")) == 1:
        return "slack-channel-" + new_name
    if is_valid_channel_name(new_name):
        return new_name
    return channel_id.lower()


def make_alpha_num(text: str, *args: str) -> str:
    """Reduce text to ASCII letters and digits.

    Characters given in args are kept as they are, other non-ASCII
    characters are dropped after decomposition, and the remaining ASCII
    characters become '_'.
    """
    allowed = set(args)
    for match, replacement in _SPECIAL_REPLACEMENTS.items():
        text = text.replace(match, replacement)
    text = unicodedata.normalize("NFKD", text)

    def mapped(char: str) -> str:
        if char in allowed:
            return char
        if ord(char) > 127:
            return ""
        if char.isalnum():
            return char
        return "_"

    return "".join(mapped(char) for char in text)


def human_size(size: int) -> str:
    """Format a byte count with binary units."""
    if size < 0:
        return "unknown"
    if size < 1024:
        return f"{size} B"

    limit = 1024 * 1024
    for unit in _SIZE_UNITS:
        if size < limit:
            return f"{size / (limit // 1024):.2f} {unit}"
        limit *= 1024

    return f"{size / 1024 ** len(_SIZE_UNITS):.2f} {_SIZE_UNITS[-1]}"