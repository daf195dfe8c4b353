import json
import threading

from core.cache import MS_PER_HOUR, AnswerCache, cache_key

SOURCES = [{"title": "PCOS Basics", "url": "https://example.org/pcos"}]


def make_cache(tmp_path, clock, ttl_hours=1):
    return AnswerCache.load(tmp_path / "cache" / "chat-cache.json", ttl_hours=ttl_hours, clock=clock)


def test_keys_are_normalized(tmp_path, clock):
    cache = make_cache(tmp_path, clock)
    cache.set("  What IS   PCOS?? ", "An answer.", SOURCES)

    assert cache_key("What is PCOS?") == "what is pcos"
    assert cache.get("what is pcos").answer == "An answer."
    assert "WHAT is pcos!" in cache


def test_entry_is_fresh_until_ttl(tmp_path, clock):
    cache = make_cache(tmp_path, clock, ttl_hours=1)
    cache.set("What is PCOS?", "An answer.", SOURCES)

    clock.advance(MS_PER_HOUR - 1)
    assert cache.get("What is PCOS?") is not None

    clock.advance(2)
    assert cache.get("What is PCOS?") is None


def test_entry_at_exactly_ttl_is_stale(tmp_path, clock):
    cache = make_cache(tmp_path, clock, ttl_hours=1)
    cache.set("What is PCOS?", "An answer.", SOURCES)
    clock.advance(MS_PER_HOUR)
    assert cache.get("What is PCOS?") is None


def test_stale_eviction_is_persisted(tmp_path, clock):
    cache = make_cache(tmp_path, clock, ttl_hours=1)
    cache.set("What is PCOS?", "An answer.", SOURCES)
    cache.set("Is sleep important?", "Yes.", [])

    clock.advance(MS_PER_HOUR + 1)
    assert cache.get("What is PCOS?") is None

    persisted = json.loads(cache.path.read_text(encoding="utf-8"))
    assert "what is pcos" not in persisted
    assert "is sleep important" in persisted


def test_round_trip_through_file(tmp_path, clock):
    cache = make_cache(tmp_path, clock)
    cache.set("What is PCOS?", "An answer.", SOURCES)

    reloaded = make_cache(tmp_path, clock)
    entry = reloaded.get("what is pcos")
    assert entry.answer == "An answer."
    assert entry.sources == SOURCES
    assert entry.timestamp == clock.now
    assert not list(cache.path.parent.glob("*.tmp"))


def test_set_overwrites_and_refreshes_timestamp(tmp_path, clock):
    cache = make_cache(tmp_path, clock)
    cache.set("What is PCOS?", "Old.", [])
    clock.advance(MS_PER_HOUR - 10)
    cache.set("what is pcos", "New.", SOURCES)
    clock.advance(20)

    entry = cache.get("What is PCOS?")
    assert entry.answer == "New."
    assert len(cache) == 1


def test_corrupt_file_starts_empty_and_is_overwritten(tmp_path, clock):
    path = tmp_path / "cache" / "chat-cache.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")

    cache = AnswerCache.load(path, ttl_hours=1, clock=clock)
    assert len(cache) == 0

    cache.set("What is PCOS?", "An answer.", [])
    assert "what is pcos" in json.loads(path.read_text(encoding="utf-8"))


def test_malformed_entry_discards_file(tmp_path, clock):
    path = tmp_path / "chat-cache.json"
    path.write_text(json.dumps({"what is pcos": {"answer": 3, "timestamp": "x"}}), encoding="utf-8")
    assert len(AnswerCache.load(path, ttl_hours=1, clock=clock)) == 0


def test_cache_without_path_stays_in_memory(clock):
    cache = AnswerCache(path=None, ttl_hours=1, clock=clock)
    cache.set("What is PCOS?", "An answer.", [])
    assert cache.get("What is PCOS?").answer == "An answer."


def test_failed_save_is_logged_not_raised(tmp_path, clock, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    cache = AnswerCache(path=blocker / "chat-cache.json", ttl_hours=1, clock=clock)

    cache.set("What is PCOS?", "An answer.", [])

    assert cache.get("What is PCOS?") is not None
    assert "Failed to persist chat cache" in caplog.text


def test_concurrent_writes_never_collide(tmp_path, clock, caplog):
    cache = make_cache(tmp_path, clock)

    def write_many(worker):
        for i in range(20):
            cache.set(f"question {worker} {i}", "An answer.", [])

    threads = [threading.Thread(target=write_many, args=(w,)) for w in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert "Failed to persist chat cache" not in caplog.text
    assert len(cache) == 160
    assert isinstance(json.loads(cache.path.read_text(encoding="utf-8")), dict)
    assert not list(cache.path.parent.glob("*.tmp"))
