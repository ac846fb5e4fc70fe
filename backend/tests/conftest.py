import os
import sys
import tempfile
from pathlib import Path

# Add backend directory to Python path FIRST
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Keep the app's log and scratch directories out of the checkout
_test_root = Path(tempfile.mkdtemp(prefix="instantcut-tests-"))
os.environ.setdefault("INSTANTCUT_UPLOAD_DIR", str(_test_root / "uploads"))
os.environ.setdefault("INSTANTCUT_LOG_DIR", str(_test_root / "logs"))

# Now import after path is set
import pytest

from services.session_registry import SessionRegistry
from services.task_tracker import TaskProgressTracker
from services.transcode_orchestrator import TranscodeOrchestrator


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def tracker():
    return TaskProgressTracker(poll_interval=0.01)


@pytest.fixture
def registry():
    return SessionRegistry(timeout=300)


@pytest.fixture
def make_orchestrator(tracker, upload_dir):
    def factory(executor, **kwargs):
        kwargs.setdefault('public_url', 'http://localhost:3001')
        return TranscodeOrchestrator(executor, tracker, upload_dir, **kwargs)
    return factory


@pytest.fixture
def sample_video(upload_dir):
    path = upload_dir / "1700000000000-clip.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return path
