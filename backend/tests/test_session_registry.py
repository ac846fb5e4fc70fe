"""
Tests for the session registry: file ownership, cleanup and expiry.
"""

from services.session_registry import SessionRegistry


def test_track_creates_session_and_dedupes(registry, tmp_path):
    f = tmp_path / "a.mp4"
    f.write_bytes(b"x")

    registry.track("s1", f, now=100)
    registry.track("s1", f, now=101)

    session = registry.get("s1")
    assert session is not None
    assert session.files == [str(f.resolve())]
    assert session.last_activity == 101


def test_get_returns_copy(registry, tmp_path):
    registry.track("s1", tmp_path / "a.mp4")
    copy = registry.get("s1")
    copy.files.append("/elsewhere")
    assert len(registry.files("s1")) == 1


def test_cleanup_deletes_files_and_is_idempotent(registry, tmp_path):
    a = tmp_path / "a.mp4"
    b = tmp_path / "b.mp4"
    a.write_bytes(b"a")
    b.write_bytes(b"b")
    registry.track("s1", a)
    registry.track("s1", b)

    assert registry.cleanup("s1") == 2
    assert not a.exists()
    assert not b.exists()
    assert registry.get("s1") is None

    # Second call finds nothing to do
    assert registry.cleanup("s1") == 0
    assert registry.cleanup("never-seen") == 0


def test_cleanup_tolerates_already_deleted_files(registry, tmp_path):
    gone = tmp_path / "gone.mp4"
    kept = tmp_path / "kept.mp4"
    kept.write_bytes(b"k")
    registry.track("s1", gone)
    registry.track("s1", kept)

    assert registry.cleanup("s1") == 1
    assert not kept.exists()


def test_cleanup_removes_frames_directory(registry, tmp_path):
    frames_dir = tmp_path / "frames-1700000000000"
    frames_dir.mkdir()
    frames = []
    for i in range(1, 4):
        frame = frames_dir / f"frame-{i:03d}.png"
        frame.write_bytes(b"png")
        frames.append(frame)
    registry.track("s1", frames[0])

    registry.cleanup("s1")

    assert not frames_dir.exists()


def test_cleanup_leaves_other_sessions_alone(registry, tmp_path):
    mine = tmp_path / "mine.mp4"
    theirs = tmp_path / "theirs.mp4"
    mine.write_bytes(b"m")
    theirs.write_bytes(b"t")
    registry.track("s1", mine)
    registry.track("s2", theirs)

    registry.cleanup("s1")

    assert theirs.exists()
    assert registry.get("s2") is not None


def test_touch_refreshes_activity(registry):
    registry.touch("s1", now=10)
    registry.touch("s1", now=50)
    assert registry.get("s1").last_activity == 50


def test_sweep_expires_only_idle_sessions(tmp_path):
    registry = SessionRegistry(timeout=300)
    stale = tmp_path / "stale.mp4"
    fresh = tmp_path / "fresh.mp4"
    stale.write_bytes(b"s")
    fresh.write_bytes(b"f")
    registry.track("old", stale, now=1000)
    registry.track("new", fresh, now=1200)

    expired = registry.sweep(now=1000 + 301)

    assert expired == ["old"]
    assert not stale.exists()
    assert fresh.exists()
    assert registry.get("old") is None
    assert registry.get("new") is not None


def test_sweep_boundary_is_exclusive(tmp_path):
    registry = SessionRegistry(timeout=300)
    registry.touch("s1", now=1000)

    # Exactly at the timeout the session survives
    assert registry.sweep(now=1300) == []
    assert registry.sweep(now=1300.001) == ["s1"]


def test_session_count(registry):
    assert registry.session_count == 0
    registry.touch("a")
    registry.touch("b")
    assert registry.session_count == 2
