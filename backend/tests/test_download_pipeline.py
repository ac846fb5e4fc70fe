"""
Tests for remote downloads: URL classification, direct HTTP fetches and
the download-tool fallback chain.
"""
import json
from pathlib import Path

import httpx
import pytest

from constants import DownloadConfig
from exceptions import DownloadError, ExternalToolError, ToolUnavailableError, ValidationError
from fakes import FakeExecutor, ffmpeg_output_path
from services.download_pipeline import DownloadPipeline, classify_source


def make_pipeline(make_orchestrator, upload_dir, executor, transport=None, **kwargs):
    orchestrator = make_orchestrator(executor)
    client_factory = None
    if transport is not None:
        client_factory = lambda: httpx.AsyncClient(transport=transport, follow_redirects=False)
    return DownloadPipeline(executor, orchestrator, upload_dir, client_factory=client_factory, **kwargs)


def tool_handler(behaviours):
    """
    Fake download tools and engine.

    behaviours maps a tool name to 'ok', 'fail' or 'missing'. The engine
    writes the normalized output; ffprobe reports a 30 s duration.
    """
    def handler(program, args, line_callback):
        name = Path(program).name
        if name == 'ffprobe':
            return json.dumps({'format': {'duration': '30.0'}})
        if name == 'ffmpeg':
            ffmpeg_output_path(args).write_bytes(b"h264")
            return None

        raw_path = Path(args[args.index('-o') + 1])
        behaviour = behaviours[name]
        if behaviour == 'missing':
            raise ToolUnavailableError(program)
        if behaviour == 'fail':
            Path(str(raw_path) + '.part').write_bytes(b"half")
            raise ExternalToolError(program, 1, "ERROR: Sign in to confirm you're not a bot")
        raw_path.write_bytes(b"vp9")
        return None
    return handler


# Classification

@pytest.mark.parametrize("url", [
    "https://www.youtube.com/watch?v=abc",
    "https://youtube.com/shorts/abc",
    "https://m.youtube.com/watch?v=abc",
    "https://youtu.be/abc",
    "http://WWW.YOUTUBE.COM/watch?v=abc",
])
def test_classify_platform_urls(url):
    assert classify_source(url) == "youtube"


@pytest.mark.parametrize("url", [
    "https://example.com/video.mp4",
    "https://notyoutube.com/watch?v=abc",
    "https://youtube.com.evil.net/x.mp4",
])
def test_classify_direct_urls(url):
    assert classify_source(url) == "direct"


@pytest.mark.parametrize("url", [None, "", "ftp://example.com/a.mp4", "not a url", "https://"])
def test_classify_rejects_invalid_urls(url):
    with pytest.raises(ValidationError):
        classify_source(url)


# Direct downloads

@pytest.mark.asyncio
async def test_direct_download_follows_redirects(make_orchestrator, upload_dir):
    def respond(request):
        if request.url.path == "/share/abc":
            return httpx.Response(302, headers={"location": "/files/real.mp4"})
        assert request.url.path == "/files/real.mp4"
        return httpx.Response(200, content=b"mp4-bytes")

    executor = FakeExecutor()
    pipeline = make_pipeline(make_orchestrator, upload_dir, executor, httpx.MockTransport(respond))

    result = await pipeline.download("https://cdn.example.com/share/abc")

    assert result.source == "direct"
    assert result.filename.startswith("download-")
    assert result.path.read_bytes() == b"mp4-bytes"
    assert executor.calls == []


@pytest.mark.asyncio
async def test_direct_download_http_error_leaves_nothing(make_orchestrator, upload_dir):
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    pipeline = make_pipeline(make_orchestrator, upload_dir, FakeExecutor(), transport)

    with pytest.raises(DownloadError) as exc_info:
        await pipeline.download("https://example.com/missing.mp4")

    assert exc_info.value.message == "Failed to download from URL"
    assert exc_info.value.details["reason"] == "HTTP 404"
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_direct_download_redirect_limit(make_orchestrator, upload_dir):
    transport = httpx.MockTransport(
        lambda request: httpx.Response(301, headers={"location": "/loop"})
    )
    pipeline = make_pipeline(make_orchestrator, upload_dir, FakeExecutor(), transport, max_redirects=3)

    with pytest.raises(DownloadError) as exc_info:
        await pipeline.download("https://example.com/loop")
    assert "redirects" in exc_info.value.reason


@pytest.mark.asyncio
async def test_direct_download_network_error(make_orchestrator, upload_dir):
    def respond(request):
        raise httpx.ConnectError("Connection refused", request=request)

    pipeline = make_pipeline(make_orchestrator, upload_dir, FakeExecutor(), httpx.MockTransport(respond))

    with pytest.raises(DownloadError):
        await pipeline.download("https://example.com/a.mp4")
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_downloads_in_the_same_millisecond_do_not_collide(make_orchestrator, upload_dir, monkeypatch):
    monkeypatch.setattr("services.download_pipeline._now_ms", lambda: 1700000000000)
    bodies = iter([b"first", b"second"])
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=next(bodies)))
    pipeline = make_pipeline(make_orchestrator, upload_dir, FakeExecutor(), transport)

    first = await pipeline.download("https://example.com/a.mp4")
    second = await pipeline.download("https://example.com/b.mp4")

    assert first.filename != second.filename
    assert first.path.read_bytes() == b"first"
    assert second.path.read_bytes() == b"second"

    executor = FakeExecutor(tool_handler({"yt-dlp": "ok", "youtube-dl": "ok"}))
    platform = make_pipeline(make_orchestrator, upload_dir, executor)
    clip_a = await platform.download("https://www.youtube.com/watch?v=a")
    clip_b = await platform.download("https://www.youtube.com/watch?v=b")
    assert clip_a.filename != clip_b.filename
    assert clip_a.path.exists() and clip_b.path.exists()


# Platform downloads

@pytest.mark.asyncio
async def test_platform_download_normalizes_and_removes_raw(make_orchestrator, upload_dir):
    executor = FakeExecutor(tool_handler({'yt-dlp': 'ok', 'youtube-dl': 'ok'}))
    pipeline = make_pipeline(make_orchestrator, upload_dir, executor)

    result = await pipeline.download("https://www.youtube.com/watch?v=abc")

    assert result.source == "youtube"
    assert result.filename.startswith("yt-") and not result.filename.startswith("yt-raw-")
    assert result.path.read_bytes() == b"h264"
    assert [p.name for p in upload_dir.iterdir()] == [result.filename]

    tool_program, tool_args = executor.calls[0]
    assert Path(tool_program).name == 'yt-dlp'
    assert tool_args[:2] == ['-f', DownloadConfig.QUALITY_SELECTOR]
    assert '--no-playlist' in tool_args
    assert tool_args[-1] == "https://www.youtube.com/watch?v=abc"


@pytest.mark.asyncio
async def test_platform_fallback_to_second_tool(make_orchestrator, upload_dir):
    executor = FakeExecutor(tool_handler({'yt-dlp': 'fail', 'youtube-dl': 'ok'}))
    pipeline = make_pipeline(make_orchestrator, upload_dir, executor)

    result = await pipeline.download("https://youtu.be/abc")

    assert result.source == "youtube"
    tools = [Path(p).name for p in executor.programs() if Path(p).name in DownloadConfig.TOOL_CHAIN]
    assert tools == ['yt-dlp', 'youtube-dl']
    # Neither the failed attempt's partial file nor the raw download survive
    assert [p.name for p in upload_dir.iterdir()] == [result.filename]


@pytest.mark.asyncio
async def test_platform_all_tools_missing(make_orchestrator, upload_dir):
    executor = FakeExecutor(tool_handler({'yt-dlp': 'missing', 'youtube-dl': 'missing'}))
    pipeline = make_pipeline(make_orchestrator, upload_dir, executor)

    with pytest.raises(ToolUnavailableError) as exc_info:
        await pipeline.download("https://www.youtube.com/watch?v=abc")

    assert exc_info.value.hint == DownloadConfig.INSTALL_HINT
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_platform_all_tools_fail(make_orchestrator, upload_dir):
    executor = FakeExecutor(tool_handler({'yt-dlp': 'fail', 'youtube-dl': 'missing'}))
    pipeline = make_pipeline(make_orchestrator, upload_dir, executor)

    with pytest.raises(DownloadError) as exc_info:
        await pipeline.download("https://www.youtube.com/watch?v=abc")

    assert exc_info.value.hint == DownloadConfig.UPDATE_HINT
    assert list(upload_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_platform_download_degrades_when_engine_fails(make_orchestrator, upload_dir):
    behaviours = {'yt-dlp': 'ok', 'youtube-dl': 'ok'}
    base = tool_handler(behaviours)

    def handler(program, args, line_callback):
        if Path(program).name == 'ffmpeg':
            raise ExternalToolError(program, 1, "Unknown encoder 'libx264'")
        return base(program, args, line_callback)

    pipeline = make_pipeline(make_orchestrator, upload_dir, FakeExecutor(handler))

    result = await pipeline.download("https://www.youtube.com/watch?v=abc")

    assert result.path.read_bytes() == b"vp9"
    assert [p.name for p in upload_dir.iterdir()] == [result.filename]
