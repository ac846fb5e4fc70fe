"""
Application-wide constants.

This module centralizes the magic strings and numbers used throughout the
media server so the services, API routes and tests agree on them.
"""


class ServerConfig:
    """Server configuration constants"""

    HOST = "0.0.0.0"
    PORT = 3001
    API_PREFIX = "/api"
    UPLOADS_PREFIX = "/uploads"


class SessionConfig:
    """Session lifecycle constants"""

    HEADER = "x-session-id"
    DEFAULT_SESSION_ID = "default"
    TIMEOUT_SECONDS = 5 * 60
    SWEEP_INTERVAL_SECONDS = 60

    # Extracted frame sequences live in directories with this name prefix.
    # The registry removes such a directory when it deletes a file inside it.
    FRAMES_DIR_PREFIX = "frames-"


class ProgressConfig:
    """Task progress constants"""

    POLL_INTERVAL_SECONDS = 0.1
    RUNNING_MIN = 0
    RUNNING_MAX = 99
    DONE = 100
    COMPLETED_RETENTION_SECONDS = 10 * 60


class JobKind:
    """Job kinds, embedded in task ids"""

    TRIM = "trim"
    EXTRACT = "extract"
    NORMALIZE = "normalize"


class ExtractMode:
    """Frame extraction sampling modes"""

    INTERVAL = "interval"
    COUNT = "count"

    ALL = (INTERVAL, COUNT)


class TranscodeDefaults:
    """Encoder settings for the browser-compatible output profile"""

    VIDEO_CODEC = "libx264"
    AUDIO_CODEC = "aac"
    FASTSTART = "+faststart"

    TRIM_PRESET = "ultrafast"
    TRIM_CRF = 22

    NORMALIZE_PRESET = "fast"
    NORMALIZE_CRF = 23

    FRAME_WIDTH = 480
    FRAME_PATTERN = "frame-%03d.png"


class DownloadConfig:
    """Remote download constants"""

    MAX_REDIRECTS = 5
    CHUNK_SIZE = 64 * 1024
    CONNECT_TIMEOUT_SECONDS = 30.0

    # Bounded quality, single video only
    QUALITY_SELECTOR = "best[height<=720]"

    PLATFORM_DOMAINS = ("youtube.com", "youtu.be", "youtube-nocookie.com")
    TOOL_CHAIN = ("yt-dlp", "youtube-dl")

    INSTALL_HINT = "Install with: pip install yt-dlp"
    UPDATE_HINT = "Check the URL, or update the downloader with: pip install -U yt-dlp"


class SourceKind:
    """Where a downloaded asset came from"""

    YOUTUBE = "youtube"
    DIRECT = "direct"


class HTTPStatus:
    """HTTP status codes used throughout the application"""

    # Success
    OK = 200

    # Client Errors
    BAD_REQUEST = 400
    NOT_FOUND = 404

    # Server Errors
    INTERNAL_SERVER_ERROR = 500
