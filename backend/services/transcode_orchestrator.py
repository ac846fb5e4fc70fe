"""
Transcode Orchestrator

Translates high-level media jobs (trim, frame extraction, normalize) into
single ffmpeg invocations, owns their output paths, and reports progress
to the task tracker.

Every job registers a task before the engine starts and reports
``complete`` or ``fail`` exactly once. Output paths are handed back to the
caller, which must track them in the session registry before use.
"""
import logging
import math
import shutil
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from constants import ExtractMode, JobKind, ServerConfig, SessionConfig, TranscodeDefaults
from exceptions import ExternalToolError, ToolUnavailableError, TranscodeError, ValidationError
from services.command_executor import CommandExecutor
from services.task_tracker import TaskProgressTracker
from utils.ffmpeg_progress import FFmpegProgressParser
from utils.logging_utils import log_operation
from utils.video_metadata import get_media_duration

logger = logging.getLogger(__name__)

FFMPEG_INSTALL_HINT = "Install ffmpeg and make sure it is on PATH, or set FFMPEG_PATH"

# Containers that take H.264/AAC with a fast-start index as-is
MP4_FAMILY = {'.mp4', '.m4v', '.mov'}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _scratch_stamp() -> str:
    """Epoch milliseconds plus a random suffix; names jobs started in the same millisecond apart."""
    return f"{_now_ms()}-{uuid.uuid4().hex[:6]}"


@dataclass
class TrimResult:
    filename: str
    path: Path
    task_id: str


@dataclass
class FramesResult:
    frames: list[dict]
    output_dir: Path
    task_id: str
    files: list[Path] = field(default_factory=list)


def sampling_rate(mode: str, interval: Optional[float] = None, count: Optional[int] = None,
                  total_duration: Optional[float] = None) -> float:
    """Frames per second sampled from the timeline."""
    if mode == ExtractMode.INTERVAL:
        return 1 / interval
    return count / total_duration


def frame_timestamp(index: int, mode: str, interval: Optional[float] = None,
                    count: Optional[int] = None, total_duration: Optional[float] = None) -> float:
    """
    Approximate timestamp (seconds) of the index-th extracted frame.

    Derived from the sampling formula, not read back from the decoded frame,
    so it drifts on variable frame rate sources.
    """
    if mode == ExtractMode.INTERVAL:
        return index * interval
    return index * total_duration / count


def expected_frame_count(mode: str, interval: Optional[float] = None, count: Optional[int] = None,
                         total_duration: Optional[float] = None) -> Optional[int]:
    """
    Number of frames the sampling should yield, or None when unknown.

    ffmpeg's fps filter can emit one extra trailing frame; records beyond
    this count are dropped.
    """
    if mode == ExtractMode.COUNT:
        return count
    if total_duration:
        # Fractional remainder dropped: 23s at 5s intervals -> 0,5,10,15,20
        return math.floor(total_duration / interval + 1e-9) + 1
    return None


def _format_number(value: float) -> str:
    return f"{value:.6f}".rstrip('0').rstrip('.')


class TranscodeOrchestrator:
    """
    Runs media jobs against the ffmpeg engine.

    Args:
        executor: CommandExecutor used for ffmpeg/ffprobe
        tracker: Task progress store
        upload_dir: Scratch directory for inputs and outputs
        ffmpeg_path / ffprobe_path: Engine binaries
        public_url: Base URL prefixed to frame URLs
        degrade_on_normalize_failure: When normalize fails, keep the raw
            file under the final name instead of failing (best effort)
    """

    def __init__(
        self,
        executor: CommandExecutor,
        tracker: TaskProgressTracker,
        upload_dir: Path,
        ffmpeg_path: str = 'ffmpeg',
        ffprobe_path: str = 'ffprobe',
        public_url: str = '',
        degrade_on_normalize_failure: bool = True,
    ):
        self.executor = executor
        self.tracker = tracker
        self.upload_dir = Path(upload_dir)
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.public_url = public_url.rstrip('/')
        self.degrade_on_normalize_failure = degrade_on_normalize_failure

    def resolve_input(self, filename: Optional[str]) -> Path:
        """
        Map a client-supplied filename to a file in the scratch directory.

        Raises:
            ValidationError: If the name is missing, not a bare filename,
                or no such file exists
        """
        if not filename:
            raise ValidationError("Missing filename", field="filename")
        if Path(filename).name != filename or filename in ('.', '..'):
            raise ValidationError(f"Invalid filename: {filename}", field="filename")
        path = self.upload_dir / filename
        if not path.is_file():
            raise ValidationError(f"File not found: {filename}", field="filename")
        return path

    def public_path(self, path: Path) -> str:
        """URL path of a scratch file, relative to the server root."""
        relative = Path(path).resolve().relative_to(self.upload_dir.resolve())
        return f"{ServerConfig.UPLOADS_PREFIX}/{relative.as_posix()}"

    async def _run_engine(self, job_kind: str, task_id: str, args: list,
                          expected_duration: Optional[float]) -> None:
        parser = FFmpegProgressParser(
            expected_duration,
            lambda pct: self.tracker.update(task_id, pct),
        )
        full_args = ['-hide_banner', '-nostats', '-progress', 'pipe:1', '-y'] + args
        try:
            await self.executor.run(self.ffmpeg_path, full_args, line_callback=parser.feed)
        except ToolUnavailableError as e:
            raise ToolUnavailableError(
                e.program,
                message="ffmpeg is not installed or not executable",
                hint=FFMPEG_INSTALL_HINT,
            ) from e
        except ExternalToolError as e:
            raise TranscodeError(
                job_kind,
                f"ffmpeg {job_kind} failed with exit code {e.exit_code}",
                e.stderr,
            ) from e

    @staticmethod
    def build_trim_args(input_path: Path, output_path: Path, start_time: float,
                        duration: float, is_audio: bool = False) -> list:
        args = ['-ss', _format_number(start_time), '-i', str(input_path), '-t', _format_number(duration)]
        if is_audio:
            # Container default audio encoder, so .mp3/.wav/.m4a inputs all work
            args += ['-vn']
        else:
            args += [
                '-threads', '0',
                '-preset', TranscodeDefaults.TRIM_PRESET,
                '-c:v', TranscodeDefaults.VIDEO_CODEC,
                '-crf', str(TranscodeDefaults.TRIM_CRF),
                '-c:a', TranscodeDefaults.AUDIO_CODEC,
                '-movflags', TranscodeDefaults.FASTSTART,
            ]
        return args + [str(output_path)]

    @staticmethod
    def trim_output_name(input_path: Path, is_audio: bool, stamp) -> str:
        name = Path(input_path).name
        if not is_audio and Path(name).suffix.lower() not in MP4_FAMILY:
            name = f"{Path(name).stem}.mp4"
        return f"trimmed-{stamp}-{name}"

    @log_operation("trim")
    async def trim(self, input_path: Path, start_time: Optional[float], duration: Optional[float],
                   is_audio: bool = False, task_id: Optional[str] = None) -> TrimResult:
        """
        Re-encode a segment of the input to a browser-compatible file.

        Returns:
            TrimResult with the output filename and absolute path

        Raises:
            ValidationError: Bad start/duration
            TranscodeError: ffmpeg failed
            ToolUnavailableError: ffmpeg missing
        """
        start_time = float(start_time or 0)
        if start_time < 0:
            raise ValidationError("startTime must not be negative", field="startTime")
        if duration is None or float(duration) <= 0:
            raise ValidationError("duration must be a positive number of seconds", field="duration")
        duration = float(duration)

        task_id = task_id or self.tracker.new_task_id(JobKind.TRIM)
        self.tracker.start(task_id)

        output_filename = self.trim_output_name(input_path, is_audio, _scratch_stamp())
        output_path = self.upload_dir / output_filename
        args = self.build_trim_args(input_path, output_path, start_time, duration, is_audio)

        try:
            await self._run_engine(JobKind.TRIM, task_id, args, duration)
        except Exception:
            self.tracker.fail(task_id)
            output_path.unlink(missing_ok=True)
            raise

        self.tracker.complete(task_id)
        return TrimResult(filename=output_filename, path=output_path, task_id=task_id)

    @staticmethod
    def validate_extract_params(mode: Optional[str], interval, count, total_duration) -> tuple:
        if mode not in ExtractMode.ALL:
            raise ValidationError(f"mode must be one of: {', '.join(ExtractMode.ALL)}", field="mode")
        total_duration = float(total_duration) if total_duration else None
        if mode == ExtractMode.INTERVAL:
            if interval is None or float(interval) <= 0:
                raise ValidationError("interval must be a positive number of seconds", field="interval")
            return float(interval), None, total_duration
        if count is None or int(count) <= 0:
            raise ValidationError("count must be a positive integer", field="count")
        if not total_duration or total_duration <= 0:
            raise ValidationError("duration is required in count mode", field="duration")
        return None, int(count), total_duration

    @log_operation("extract-frames")
    async def extract_frames(self, input_path: Path, mode: Optional[str], interval: Optional[float] = None,
                             count: Optional[int] = None, total_duration: Optional[float] = None,
                             task_id: Optional[str] = None) -> FramesResult:
        """
        Sample still frames from the input into a fresh ``frames-*`` directory.

        Frames are downscaled to a fixed width for throughput. One record is
        built per file: ``{id, timestamp, url, selected}``, where the
        timestamp comes from the sampling formula (see frame_timestamp).

        Returns:
            FramesResult with the records, the output directory and the frame files
        """
        interval, count, total_duration = self.validate_extract_params(mode, interval, count, total_duration)

        task_id = task_id or self.tracker.new_task_id(JobKind.EXTRACT)
        self.tracker.start(task_id)

        stamp = _scratch_stamp()
        output_dir = self.upload_dir / f"{SessionConfig.FRAMES_DIR_PREFIX}{stamp}"
        try:
            output_dir.mkdir(parents=True, exist_ok=False)

            if mode == ExtractMode.INTERVAL:
                rate_expr = f"1/{_format_number(interval)}"
            else:
                rate_expr = _format_number(sampling_rate(mode, interval, count, total_duration))
            filters = f"fps={rate_expr},scale={TranscodeDefaults.FRAME_WIDTH}:-1"

            progress_duration = total_duration
            if progress_duration is None:
                progress_duration = await get_media_duration(self.executor, self.ffprobe_path, input_path)

            args = [
                '-i', str(input_path),
                '-threads', '0',
                '-vf', filters,
                str(output_dir / TranscodeDefaults.FRAME_PATTERN),
            ]
            await self._run_engine(JobKind.EXTRACT, task_id, args, progress_duration)

            files = sorted(p for p in output_dir.iterdir() if p.is_file())
            limit = expected_frame_count(mode, interval, count, total_duration)
            if limit is not None and len(files) > limit:
                for extra in files[limit:]:
                    extra.unlink(missing_ok=True)
                files = files[:limit]
        except Exception:
            self.tracker.fail(task_id)
            shutil.rmtree(output_dir, ignore_errors=True)
            raise

        if not files:
            logger.warning(f"No frames produced for {input_path.name}")
            shutil.rmtree(output_dir, ignore_errors=True)

        frames = [
            {
                'id': f"f-{stamp}-{index}",
                'timestamp': frame_timestamp(index, mode, interval, count, total_duration),
                'url': f"{self.public_url}{self.public_path(frame_file)}",
                'selected': True,
            }
            for index, frame_file in enumerate(files)
        ]

        self.tracker.complete(task_id)
        return FramesResult(frames=frames, output_dir=output_dir, task_id=task_id, files=files)

    @staticmethod
    def build_normalize_args(raw_path: Path, final_path: Path) -> list:
        return [
            '-i', str(raw_path),
            '-c:v', TranscodeDefaults.VIDEO_CODEC,
            '-c:a', TranscodeDefaults.AUDIO_CODEC,
            '-movflags', TranscodeDefaults.FASTSTART,
            '-preset', TranscodeDefaults.NORMALIZE_PRESET,
            '-crf', str(TranscodeDefaults.NORMALIZE_CRF),
            str(final_path),
        ]

    @log_operation("normalize")
    async def normalize(self, raw_path: Path, final_path: Path, task_id: Optional[str] = None) -> Path:
        """
        Re-encode a downloaded file to the browser-compatible profile.

        When the engine fails and degrade_on_normalize_failure is set, the
        raw file is moved into the final slot instead: a playable but not
        guaranteed compatible file beats no file. The raw file itself is
        left for the caller to remove.

        Returns:
            final_path

        Raises:
            TranscodeError / ToolUnavailableError: Only when degrading is disabled
        """
        raw_path, final_path = Path(raw_path), Path(final_path)
        task_id = task_id or self.tracker.new_task_id(JobKind.NORMALIZE)
        self.tracker.start(task_id)

        duration = await get_media_duration(self.executor, self.ffprobe_path, raw_path)
        try:
            await self._run_engine(
                JobKind.NORMALIZE, task_id, self.build_normalize_args(raw_path, final_path), duration
            )
        except (TranscodeError, ToolUnavailableError) as e:
            self.tracker.fail(task_id)
            final_path.unlink(missing_ok=True)
            if not self.degrade_on_normalize_failure:
                raise
            logger.warning(f"[Download] Normalize failed ({e.message}); keeping raw file as {final_path.name}")
            raw_path.replace(final_path)
            return final_path

        self.tracker.complete(task_id)
        return final_path
