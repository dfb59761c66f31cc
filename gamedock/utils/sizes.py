"""Size string parsing ("2g", "512m") for engine resource fields."""

from __future__ import annotations

_MULTIPLIERS = {
    "k": 1024,
    "m": 1024 * 1024,
    "g": 1024 * 1024 * 1024,
}


def parse_size(value: str | int) -> int:
    """Parse a size string (e.g. '1g', '512m') to bytes.

    Integers pass through unchanged.
    """
    if isinstance(value, int):
        return value
    text = value.lower().strip()
    if text.endswith("b"):
        text = text[:-1]
    if text and text[-1] in _MULTIPLIERS:
        return int(float(text[:-1]) * _MULTIPLIERS[text[-1]])
    return int(text)
