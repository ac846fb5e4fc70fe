"""
Runtime Configuration

Reads the server settings from environment variables once at startup.
Every value has a default so the server runs with no environment at all.
"""
import os
import logging
from dataclasses import dataclass
from pathlib import Path

from constants import ServerConfig, SessionConfig

logger = logging.getLogger(__name__)

BACKEND_ROOT = Path(__file__).parent.parent
PROJECT_ROOT = BACKEND_ROOT.parent


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('true', '1', 'yes', 'on')


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


@dataclass
class AppConfig:
    upload_dir: Path
    log_dir: Path
    host: str
    port: int
    public_url: str
    ffmpeg_path: str | None
    ffprobe_path: str | None
    degrade_on_normalize_failure: bool
    session_timeout: float
    cleanup_interval: float


def load_config() -> AppConfig:
    """
    Build the application configuration from the environment.

    Returns:
        AppConfig with absolute directories (not yet created)
    """
    port = int(_env_float('INSTANTCUT_PORT', ServerConfig.PORT))
    upload_dir = Path(os.environ.get('INSTANTCUT_UPLOAD_DIR') or PROJECT_ROOT / 'uploads').resolve()
    log_dir = Path(os.environ.get('INSTANTCUT_LOG_DIR') or PROJECT_ROOT / 'logs').resolve()
    public_url = os.environ.get('INSTANTCUT_PUBLIC_URL') or f"http://localhost:{port}"

    return AppConfig(
        upload_dir=upload_dir,
        log_dir=log_dir,
        host=os.environ.get('INSTANTCUT_HOST', ServerConfig.HOST),
        port=port,
        public_url=public_url.rstrip('/'),
        ffmpeg_path=os.environ.get('FFMPEG_PATH') or None,
        ffprobe_path=os.environ.get('FFPROBE_PATH') or None,
        degrade_on_normalize_failure=_env_bool('INSTANTCUT_DEGRADE_ON_NORMALIZE_FAILURE', True),
        session_timeout=_env_float('INSTANTCUT_SESSION_TIMEOUT', SessionConfig.TIMEOUT_SECONDS),
        cleanup_interval=_env_float('INSTANTCUT_CLEANUP_INTERVAL', SessionConfig.SWEEP_INTERVAL_SECONDS),
    )


# Global configuration, read once on import
app_config = load_config()
