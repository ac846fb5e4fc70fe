"""
Dependency injection providers for FastAPI.

This module provides factory functions for the services the API routes use.
Tests replace them through ``app.dependency_overrides``.
"""

from typing import Optional

from fastapi import Depends, Header

from config.app_config import app_config
from constants import SessionConfig
from services.command_executor import CommandExecutor
from services.download_pipeline import DownloadPipeline
from services.session_registry import SessionRegistry, session_registry
from services.task_tracker import TaskProgressTracker, task_tracker
from services.transcode_orchestrator import TranscodeOrchestrator
from utils.ffmpeg_helper import resolve_binary


def get_session_id(x_session_id: Optional[str] = Header(None)) -> str:
    """Client session id from the x-session-id header, or the shared default session."""
    return x_session_id or SessionConfig.DEFAULT_SESSION_ID


def get_upload_dir():
    """Scratch directory holding uploads and job outputs."""
    return app_config.upload_dir


def get_session_registry() -> SessionRegistry:
    """Process-wide session registry."""
    return session_registry


def get_task_tracker() -> TaskProgressTracker:
    """Process-wide task progress store."""
    return task_tracker


def get_command_executor() -> CommandExecutor:
    return CommandExecutor()


def get_transcode_orchestrator(
    executor: CommandExecutor = Depends(get_command_executor),
    tracker: TaskProgressTracker = Depends(get_task_tracker),
    upload_dir=Depends(get_upload_dir),
) -> TranscodeOrchestrator:
    """
    Factory function for creating TranscodeOrchestrator instances.

    Binaries are resolved per request so that an ffmpeg installed while
    the server is running is picked up without a restart.
    """
    return TranscodeOrchestrator(
        executor,
        tracker,
        upload_dir,
        ffmpeg_path=resolve_binary('ffmpeg', app_config.ffmpeg_path),
        ffprobe_path=resolve_binary('ffprobe', app_config.ffprobe_path),
        public_url=app_config.public_url,
        degrade_on_normalize_failure=app_config.degrade_on_normalize_failure,
    )


def get_download_pipeline(
    executor: CommandExecutor = Depends(get_command_executor),
    orchestrator: TranscodeOrchestrator = Depends(get_transcode_orchestrator),
    upload_dir=Depends(get_upload_dir),
) -> DownloadPipeline:
    """Factory function for creating DownloadPipeline instances."""
    return DownloadPipeline(executor, orchestrator, upload_dir)
