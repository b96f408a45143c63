from core.operations import RecordKind
from services.read_cache import ReadCache, cache_key


def test_cache_key_uses_record_namespace():
    assert cache_key(RecordKind.CHILD, "c1") == "children:c1"
    assert cache_key("events", 7) == "events:7"


def test_write_read_and_overwrite(cache):
    cache.write("children:c1", {"id": "c1", "firstName": "Ana"})
    cache.write("children:c1", {"id": "c1", "firstName": "Anna"})
    assert cache.read("children:c1") == {"id": "c1", "firstName": "Anna"}
    assert cache.read("children:missing") is None


def test_expired_entries_read_as_absent(cache, clock):
    cache.write("events:e1", {"id": "e1"}, ttl_sec=60)
    clock.advance(59)
    assert cache.read("events:e1") == {"id": "e1"}
    clock.advance(2)
    assert cache.read("events:e1") is None
    assert cache.stats()["totalItems"] == 0


def test_clean_expired_and_stats(session_factory, clock):
    cache = ReadCache(session_factory, default_ttl_sec=10, clock=clock)
    cache.write("a", 1)
    cache.write("b", 2, ttl_sec=0)
    clock.advance(30)
    cache.write("c", 3)

    assert cache.stats() == {"totalItems": 3, "expiredCount": 1}
    assert cache.clean_expired() == 1
    assert cache.read("b") == 2
    assert cache.read("c") == 3


def test_remove_and_clear(cache):
    cache.write("a", {"x": 1})
    cache.write("b", {"x": 2})
    cache.remove("a")
    cache.remove("a")
    assert cache.read("a") is None
    assert cache.clear() == 1
