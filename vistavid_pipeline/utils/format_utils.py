"""
Helpers that turn sizes, durations and score lists into short strings for log lines.
"""
from datetime import timedelta
from typing import Iterable

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def formatted_size(size_bytes: int) -> str:
    """
    Converts a byte count to a human-readable string.

    Examples: 512 -> "512 B", 1536 -> "1.50 KB", 2097152 -> "2 MB".
    """
    size = float(max(size_bytes, 0))
    for unit in _SIZE_UNITS:
        if size < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.2f} {unit}".replace(".00", "")
        size /= 1024
    return f"{size:.2f} {_SIZE_UNITS[-1]}"


def format_timedelta(td_object: timedelta) -> str:
    """Formats an elapsed time as HH:MM:SS."""
    total_seconds = int(td_object.total_seconds())
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"


def format_scores(scores: Iterable[float]) -> str:
    return "[" + ", ".join(f"{s:.4f}" for s in scores) + "]"
