"""Tests for recording state, the clock and the session store."""

import json
from unittest.mock import MagicMock

from smartrec.models import RecorderStatus, RecordingSession, TranscriptionSegment
from smartrec.state import RecorderState, RecordingClock, SegmentList, SessionStore, replace_by_id
from conftest import FakeClock, make_segment


class TestReplaceById:
    def test_replaces_matching(self):
        """Test only the matching segment is replaced."""
        a, b = make_segment("a"), make_segment("b")
        result, found = replace_by_id([a, b], b.id, text="B")
        assert found
        assert [s.text for s in result] == ["a", "B"]
        assert result[0] is a
        assert b.text == "b"

    def test_missing(self):
        """Test an unknown id leaves the list unchanged."""
        a = make_segment("a")
        result, found = replace_by_id([a], "nope", text="x")
        assert not found
        assert result == [a]


class TestRecordingClock:
    """Elapsed time counts only running intervals."""

    def test_pause_and_resume(self):
        """Test paused time is excluded from elapsed."""
        now = FakeClock()
        clock = RecordingClock(now=now)
        clock.resume()
        now.now = 5.0
        clock.pause()
        now.now = 100.0
        assert clock.elapsed() == 5
        clock.resume()
        now.now = 107.9
        assert clock.elapsed() == 12
        assert clock.running

    def test_reset(self):
        """Test reset stops the clock at zero."""
        now = FakeClock()
        clock = RecordingClock(now=now)
        clock.resume()
        now.now = 3.0
        clock.reset()
        assert clock.elapsed() == 0
        assert not clock.running


class TestSegmentList:
    def test_append_find_update(self):
        """Test segments are appended, found and updated by id."""
        segments = SegmentList()
        seg = make_segment("raw")
        segments.append(seg)
        assert len(segments) == 1
        assert segments.find(seg.id) is seg
        assert segments.update(seg.id, text="polished")
        assert segments.find(seg.id).text == "polished"
        assert not segments.update("missing", text="x")

    def test_snapshot_is_stable(self):
        """Test a snapshot is unaffected by later changes."""
        segments = SegmentList([make_segment("a")])
        snapshot = segments.snapshot()
        segments.append(make_segment("b"))
        assert len(snapshot) == 1
        segments.clear()
        assert len(segments) == 0


class TestSessionStore:
    """In-memory archive with JSON write-through."""

    def _session(self, id, segments=()):
        return RecordingSession(id=id, title=f"Lesson {id}", date="2026-10-17", segments=list(segments), duration=30)

    def test_list_newest_first(self):
        """Test sessions are listed newest first."""
        store = SessionStore()
        store.add(self._session("one"))
        store.add(self._session("two"))
        assert [s.id for s in store.list()] == ["two", "one"]
        assert store.get("one").title == "Lesson one"
        assert store.get("missing") is None

    def test_update_segment(self):
        """Test a segment in an archived session is updated by id."""
        seg = make_segment("raw")
        store = SessionStore()
        store.add(self._session("s", [seg]))
        assert store.update_segment("s", seg.id, translated_text="hi")
        assert store.get("s").segments[0].translated_text == "hi"
        assert not store.update_segment("s", "missing", text="x")
        assert not store.update_segment("missing", seg.id, text="x")

    def test_persists_and_reloads(self, tmp_path):
        """Test sessions written to disk are reloaded."""
        path = tmp_path / "sessions.json"
        seg = TranscriptionSegment(id="seg1", start_time=0, end_time=4, text="你好", translated_text="Hello")
        store = SessionStore(path)
        store.add(self._session("s", [seg]))
        store.update_segment("s", "seg1", text="你好。")

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data[0]["segments"][0]["text"] == "你好。"

        reloaded = SessionStore(path)
        assert reloaded.get("s").segments == [
            TranscriptionSegment(id="seg1", start_time=0, end_time=4, text="你好。", translated_text="Hello")
        ]
        assert reloaded.get("s").duration == 30

    def test_corrupt_file_ignored(self, tmp_path, caplog):
        """Test an unparseable file is logged and ignored."""
        path = tmp_path / "sessions.json"
        path.write_text("{not json", encoding="utf-8")
        store = SessionStore(path)
        assert store.list() == []
        assert "Could not read sessions" in caplog.text

    def test_malformed_sessions_ignored(self, tmp_path, caplog):
        """Test valid JSON with the wrong shape is logged and leaves the store empty."""
        path = tmp_path / "sessions.json"
        for payload in ({"a": 1}, [{"title": "no id"}], [{"id": "s", "segments": [{"id": "x"}]}]):
            path.write_text(json.dumps(payload), encoding="utf-8")
            caplog.clear()
            store = SessionStore(path)
            assert store.list() == []
            assert "Could not read sessions" in caplog.text

    def test_write_failure_keeps_memory(self, tmp_path, caplog):
        """Test a write error keeps the session in memory."""
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = SessionStore(blocker / "sessions.json")
        store.add(self._session("s"))
        assert store.get("s") is not None
        assert "Could not write sessions" in caplog.text


class TestRecorderState:
    """Status transitions and id-based updates."""

    def test_status_drives_clock(self, state, fake_clock):
        """Test status changes start and stop the clock."""
        state.status = RecorderStatus.RECORDING
        fake_clock.now = 4.0
        state.status = RecorderStatus.PAUSED
        fake_clock.now = 50.0
        assert state.elapsed() == 4
        assert state.is_active

    def test_status_callback(self, fake_clock):
        """Test the callback fires only on real status changes."""
        callback = MagicMock()
        state = RecorderState(clock=RecordingClock(now=fake_clock), on_status_change=callback)
        state.status = RecorderStatus.RECORDING
        state.status = RecorderStatus.RECORDING
        state.status = RecorderStatus.ERROR
        assert [c.args for c in callback.call_args_list] == [
            (RecorderStatus.IDLE, RecorderStatus.RECORDING),
            (RecorderStatus.RECORDING, RecorderStatus.ERROR),
        ]
        assert not state.is_active

    def test_active_segments_follow_view(self, state):
        """Test active segments follow the viewed session."""
        live = make_segment("live")
        archived = make_segment("archived")
        state.live.append(live)
        state.store.add(RecordingSession(id="s", title="t", date="d", segments=[archived]))

        assert state.active_segments() == (live,)
        state.viewing_session_id = "s"
        assert state.active_segments() == (archived,)
        assert state.find_segment(live.id) is None
        state.viewing_session_id = "deleted"
        assert state.active_segments() == ()

    def test_apply_update_live(self, state):
        """Test an update applies to the live list."""
        seg = make_segment("raw")
        state.live.append(seg)
        assert state.apply_update(seg.id, text="polished")
        assert state.find_segment(seg.id).text == "polished"

    def test_apply_update_viewed_session(self, state):
        """Test an update applies to the viewed archive."""
        seg = make_segment("raw")
        state.store.add(RecordingSession(id="s", title="t", date="d", segments=[seg]))
        state.viewing_session_id = "s"
        assert state.apply_update(seg.id, translated_text="en")
        assert state.store.get("s").segments[0].translated_text == "en"

    def test_apply_update_missing(self, state):
        """Test an update for an unknown id is rejected."""
        state.live.append(make_segment("a"))
        assert not state.apply_update("missing", text="x")

    def test_preceding_segments(self, state):
        """Test preceding segments are returned oldest first."""
        segments = [make_segment(f"s{i}") for i in range(5)]
        for seg in segments:
            state.live.append(seg)
        assert [s.text for s in state.preceding_segments(segments[4].id, 3)] == ["s1", "s2", "s3"]
        assert [s.text for s in state.preceding_segments(segments[1].id, 3)] == ["s0"]
        assert state.preceding_segments("missing", 3) == []
