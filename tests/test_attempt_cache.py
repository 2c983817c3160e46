from exam_session.services.attempt_cache import AttemptCache

from conftest import FakePracticeApi


def test_save_load_clear(tmp_path):
    cache = AttemptCache(str(tmp_path))
    started = FakePracticeApi().started()
    cache.save("sess-1", started)
    loaded = cache.load("sess-1")
    assert loaded == started
    cache.clear("sess-1")
    assert cache.load("sess-1") is None


def test_missing_scope_loads_nothing(tmp_path):
    assert AttemptCache(str(tmp_path)).load("never-saved") is None


def test_corrupt_file_is_ignored(tmp_path):
    cache = AttemptCache(str(tmp_path))
    (tmp_path / "attempt_sess-1.json").write_bytes(b"{not json")
    assert cache.load("sess-1") is None
    (tmp_path / "attempt_sess-1.json").write_bytes(b'{"session_id": "sess-1"}')
    assert cache.load("sess-1") is None


def test_scope_is_sanitized(tmp_path):
    cache = AttemptCache(str(tmp_path))
    cache.save("../exam/day 1", FakePracticeApi().started())
    assert [p.name for p in tmp_path.iterdir()] == ["attempt_.._exam_day_1.json"]
    assert cache.load("../exam/day 1") is not None
