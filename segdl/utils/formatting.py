"""
Human-readable sizes, speeds, durations and byte ranges for log lines and panels.
"""

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(num_bytes: float) -> str:
    """``1536`` -> ``'1.5 KB'``; zero and negative sizes read ``'0 B'``."""
    if num_bytes <= 0:
        return "0 B"
    value = float(num_bytes)
    for unit in SIZE_UNITS[:-1]:
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} {SIZE_UNITS[-1]}"


def format_speed(bytes_per_second: float) -> str:
    return f"{format_size(bytes_per_second)}/s"


def format_duration(seconds: float) -> str:
    """``3725`` -> ``'1h 2m 5s'``; units that are zero are left out."""
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    pieces = [f"{n}{unit}" for n, unit in ((hours, "h"), (minutes, "m")) if n]
    if secs or not pieces:
        pieces.append(f"{secs}s")
    return " ".join(pieces)


def format_byte_range(start: int, end: int) -> str:
    """Inclusive range with its length, e.g. ``'0-1023 (1.0 KB)'``."""
    return f"{start}-{end} ({format_size(end - start + 1)})"
