"""
Media metadata extraction utilities

Provides a lightweight ffprobe-based duration lookup. Used to turn engine
output positions into percentages when the caller does not know the
asset's duration up front.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from exceptions import ApplicationError

logger = logging.getLogger(__name__)


def parse_probe_duration(probe_output: str) -> Optional[float]:
    """
    Extract ``format.duration`` from ffprobe JSON output.

    Returns:
        Duration in seconds, or None if absent or unparsable
    """
    try:
        data = json.loads(probe_output)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse ffprobe output: {e}")
        return None

    duration_str = data.get('format', {}).get('duration')
    if not duration_str:
        return None
    try:
        return float(duration_str)
    except (TypeError, ValueError):
        return None


async def get_media_duration(executor, ffprobe_path: str, file_path) -> Optional[float]:
    """
    Read a media file's duration with ffprobe.

    This only reads container metadata, not the streams.

    Args:
        executor: CommandExecutor used to run ffprobe
        ffprobe_path: ffprobe binary
        file_path: Local media file

    Returns:
        Duration in seconds, or None if ffprobe is missing or fails
    """
    try:
        result = await executor.run(
            ffprobe_path,
            ['-v', 'quiet', '-print_format', 'json', '-show_format', str(file_path)],
        )
    except ApplicationError as e:
        logger.warning(f"ffprobe failed for {Path(file_path).name}: {e.message}")
        return None

    duration = parse_probe_duration(result.stdout)
    if duration is None:
        logger.warning(f"No duration found in metadata for {file_path}")
    else:
        logger.debug(f"Duration of {Path(file_path).name}: {duration:.2f}s")
    return duration
