"""
External Binary Helper

Resolves paths to the ffmpeg/ffprobe engine and the download tools.
Handles both development checkouts (optional bundled ``ffmpeg_bins/``
directory next to ``backend/``) and binaries installed on PATH.
"""
import shutil
import logging
from pathlib import Path
from typing import Optional

from constants import DownloadConfig

logger = logging.getLogger(__name__)

BUNDLED_BINS_DIR = Path(__file__).parent.parent.parent / 'ffmpeg_bins'


def resolve_binary(binary_name: str, override: Optional[str] = None) -> str:
    """
    Get the path of an external binary.

    Resolution order: explicit override, bundled ``ffmpeg_bins/<name>``,
    PATH lookup. When nothing is found the bare name is returned so that
    spawning it fails with a clear "not available" error at use time.

    Args:
        binary_name: e.g. 'ffmpeg', 'ffprobe', 'yt-dlp'
        override: Configured path that takes precedence

    Returns:
        Path or name of the binary
    """
    if override:
        return override

    bundled = BUNDLED_BINS_DIR / binary_name
    if bundled.exists():
        logger.debug(f"Using bundled {binary_name}: {bundled}")
        return str(bundled)

    found = shutil.which(binary_name)
    if found:
        return found

    logger.debug(f"{binary_name} not found on PATH")
    return binary_name


def is_available(binary: str) -> bool:
    """Check whether a binary name or path can be executed."""
    path = Path(binary)
    if path.is_absolute() or path.parent != Path('.'):
        return path.exists() and path.is_file()
    return shutil.which(binary) is not None


def detect_tools(ffmpeg_path: str, ffprobe_path: str) -> dict:
    """
    Report which external tools this server can use.

    Returns:
        Mapping of tool name to {"available": bool, "path": str}
    """
    tools = {
        'ffmpeg': ffmpeg_path,
        'ffprobe': ffprobe_path,
    }
    for tool in DownloadConfig.TOOL_CHAIN:
        tools[tool] = resolve_binary(tool)

    return {
        name: {'available': is_available(path), 'path': path}
        for name, path in tools.items()
    }
