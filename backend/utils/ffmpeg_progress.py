"""
FFmpeg progress parsing.

ffmpeg started with ``-progress pipe:1 -nostats`` writes ``key=value`` lines
to stdout, one block per update, each block ending with a ``progress=`` line.
The parser turns the output time of each block into a percentage of the
expected output duration.
"""

from typing import Callable, Optional


def parse_progress_line(line: str) -> tuple[str, str] | None:
    """Split one ``key=value`` progress line, or return None."""
    line = line.strip()
    if "=" not in line:
        return None
    key, _, value = line.partition("=")
    return key.strip(), value.strip()


def parse_out_time(value: str) -> Optional[float]:
    """
    Parse an ``out_time_us`` / ``out_time_ms`` value into seconds.

    Both keys carry microseconds (``out_time_ms`` is misnamed in ffmpeg).
    """
    if not value or value == "N/A":
        return None
    try:
        micros = int(value)
    except ValueError:
        return None
    if micros < 0:
        return None
    return micros / 1_000_000


def parse_clock(value: str) -> Optional[float]:
    """Parse an ``HH:MM:SS.micro`` clock into seconds."""
    if not value or value == "N/A":
        return None
    parts = value.split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes, seconds = int(parts[0]), int(parts[1]), float(parts[2])
    except ValueError:
        return None
    total = hours * 3600 + minutes * 60 + seconds
    return total if total >= 0 else None


class FFmpegProgressParser:
    """
    Stateful line consumer for ffmpeg ``-progress`` output.

    Feed it every stdout line; each time a block ends it calls ``on_percent``
    with the output position as a percentage of ``duration_seconds``.
    Nothing is reported when the duration is unknown.
    """

    def __init__(self, duration_seconds: Optional[float], on_percent: Callable[[float], None]):
        self.duration_seconds = duration_seconds
        self.on_percent = on_percent
        self.out_time_seconds: Optional[float] = None
        self.finished = False

    def feed(self, line: str) -> None:
        parsed = parse_progress_line(line)
        if parsed is None:
            return
        key, value = parsed

        if key in ("out_time_us", "out_time_ms"):
            seconds = parse_out_time(value)
            if seconds is not None:
                self.out_time_seconds = seconds
        elif key == "out_time" and self.out_time_seconds is None:
            self.out_time_seconds = parse_clock(value)
        elif key == "progress":
            if value == "end":
                self.finished = True
            self._report()
            self.out_time_seconds = None

    def percent(self) -> Optional[float]:
        if not self.duration_seconds or self.duration_seconds <= 0:
            return None
        if self.out_time_seconds is None:
            return None
        return min(100.0, self.out_time_seconds / self.duration_seconds * 100)

    def _report(self) -> None:
        pct = self.percent()
        if pct is not None:
            self.on_percent(pct)
