"""
Download Pipeline

Resolves a remote URL into a local media file in the scratch directory.

- Video-platform URLs go through an ordered chain of download tools
  (yt-dlp, then youtube-dl); the first success is normalized to the
  browser-compatible profile and the raw download is removed.
- Any other URL is streamed directly over HTTP, following redirects.

The resulting path is handed to the caller, which must track it in the
session registry before replying.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence
from urllib.parse import urljoin, urlparse

import httpx

from constants import DownloadConfig, JobKind, SourceKind
from exceptions import DownloadError, FallbackExhausted, ToolUnavailableError, TranscodeError, ValidationError
from services.command_executor import CommandExecutor
from services.fallback_chain import FallbackStep, run_fallback_chain
from services.transcode_orchestrator import TranscodeOrchestrator
from utils.ffmpeg_helper import resolve_binary

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = {301, 302, 303, 307, 308}


def _now_ms() -> int:
    return int(time.time() * 1000)


def _scratch_stamp() -> str:
    return f"{_now_ms()}-{uuid.uuid4().hex[:6]}"


@dataclass
class DownloadResult:
    filename: str
    path: Path
    source: str


def classify_source(url: str) -> str:
    """
    Classify a URL by hostname.

    Returns:
        SourceKind.YOUTUBE for known video-platform hosts (and their
        subdomains), SourceKind.DIRECT otherwise

    Raises:
        ValidationError: If the URL is not an http(s) URL with a host
    """
    if not url or not isinstance(url, str):
        raise ValidationError("Missing URL", field="url")
    parsed = urlparse(url.strip())
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        raise ValidationError(f"Invalid URL: {url}", field="url")

    host = parsed.hostname.lower()
    for domain in DownloadConfig.PLATFORM_DOMAINS:
        if host == domain or host.endswith('.' + domain):
            return SourceKind.YOUTUBE
    return SourceKind.DIRECT


def _remove_partial(raw_path: Path) -> None:
    for candidate in (raw_path, raw_path.with_name(raw_path.name + '.part')):
        try:
            candidate.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[Download] Could not remove partial file {candidate}: {e}")


class DownloadPipeline:
    """
    Args:
        executor: CommandExecutor for the download tools
        orchestrator: Used to normalize platform downloads
        upload_dir: Scratch directory receiving the results
        tools: Download tool chain in priority order
        client_factory: Returns an httpx.AsyncClient for direct downloads
        max_redirects: Redirect hops followed before giving up
    """

    def __init__(
        self,
        executor: CommandExecutor,
        orchestrator: TranscodeOrchestrator,
        upload_dir: Path,
        tools: Sequence[str] = DownloadConfig.TOOL_CHAIN,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
        max_redirects: int = DownloadConfig.MAX_REDIRECTS,
    ):
        self.executor = executor
        self.orchestrator = orchestrator
        self.upload_dir = Path(upload_dir)
        self.tools = list(tools)
        self.client_factory = client_factory or self._default_client
        self.max_redirects = max_redirects

    @staticmethod
    def _default_client() -> httpx.AsyncClient:
        timeout = httpx.Timeout(None, connect=DownloadConfig.CONNECT_TIMEOUT_SECONDS)
        return httpx.AsyncClient(follow_redirects=False, timeout=timeout)

    async def download(self, url: str) -> DownloadResult:
        """
        Fetch a URL into the scratch directory.

        Raises:
            ValidationError: Missing or malformed URL
            DownloadError: Direct download failed, or every tool ran and failed
            ToolUnavailableError: No download tool is installed
        """
        source = classify_source(url)
        url = url.strip()
        self.upload_dir.mkdir(parents=True, exist_ok=True)

        if source == SourceKind.YOUTUBE:
            path = await self._download_platform(url)
        else:
            path = await self._download_direct(url)

        logger.info(f"[Download] {source} download ready: {path.name}")
        return DownloadResult(filename=path.name, path=path, source=source)

    async def _download_direct(self, url: str) -> Path:
        output_path = self.upload_dir / f"download-{_scratch_stamp()}.mp4"
        try:
            async with self.client_factory() as client:
                await self._stream_to_file(client, url, output_path)
        except DownloadError:
            output_path.unlink(missing_ok=True)
            raise
        except httpx.HTTPError as e:
            output_path.unlink(missing_ok=True)
            logger.error(f"[Download] Network error for {url}: {e}")
            raise DownloadError("Failed to download from URL", reason=str(e) or type(e).__name__) from e
        return output_path

    async def _stream_to_file(self, client: httpx.AsyncClient, url: str, output_path: Path) -> None:
        current_url = url
        for _ in range(self.max_redirects + 1):
            async with client.stream('GET', current_url) as response:
                location = response.headers.get('location')
                if response.status_code in REDIRECT_STATUSES and location:
                    current_url = urljoin(current_url, location)
                    logger.debug(f"[Download] Redirected to {current_url}")
                    continue

                if not 200 <= response.status_code < 300:
                    raise DownloadError("Failed to download from URL", reason=f"HTTP {response.status_code}")

                with open(output_path, 'wb') as f:
                    async for chunk in response.aiter_bytes(DownloadConfig.CHUNK_SIZE):
                        f.write(chunk)
                return

        raise DownloadError(
            "Failed to download from URL",
            reason=f"Too many redirects (more than {self.max_redirects})",
        )

    def _tool_step(self, tool: str, url: str) -> FallbackStep:
        async def invoke() -> Path:
            stamp = _scratch_stamp()
            raw_path = self.upload_dir / f"yt-raw-{stamp}.mp4"
            final_path = self.upload_dir / f"yt-{stamp}.mp4"

            try:
                await self.executor.run(
                    resolve_binary(tool),
                    ['-f', DownloadConfig.QUALITY_SELECTOR, '-o', str(raw_path), '--no-playlist', url],
                )
            except Exception:
                _remove_partial(raw_path)
                raise

            logger.info(f"[Download] {tool} finished, converting to H.264 for browser compatibility...")
            try:
                await self.orchestrator.normalize(raw_path, final_path)
            except ToolUnavailableError as e:
                # Missing ffmpeg must not move the chain on to the next download tool
                raise TranscodeError(JobKind.NORMALIZE, e.message) from e
            finally:
                try:
                    raw_path.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning(f"[Download] Could not remove raw file: {e}")
            return final_path

        return FallbackStep(name=tool, invoke=invoke)

    async def _download_platform(self, url: str) -> Path:
        steps = [self._tool_step(tool, url) for tool in self.tools]
        try:
            tool, path = await run_fallback_chain(steps)
        except FallbackExhausted as e:
            if e.all_unavailable or not e.attempts:
                raise ToolUnavailableError(
                    ', '.join(self.tools),
                    message="YouTube videos require yt-dlp or youtube-dl to be installed",
                    hint=DownloadConfig.INSTALL_HINT,
                ) from e
            last = e.last_error
            raise DownloadError(
                "Failed to download video",
                reason=getattr(last, 'message', str(last)),
                hint=DownloadConfig.UPDATE_HINT,
            ) from e

        logger.info(f"[Download] Downloaded with {tool}")
        return path
