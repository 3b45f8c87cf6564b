from __future__ import annotations

from specman.analysis.model import Role
from specman.analysis.parse_cache import ParseCache, cache_key
from tests.corpus_helpers import make_doc


def test_cache_key_depends_on_content_and_role() -> None:
    base = cache_key("spec/a.md", Role.SPECIFICATION, b"x")
    assert base == cache_key("spec/a.md", Role.SPECIFICATION, b"x")
    assert base != cache_key("spec/a.md", Role.SPECIFICATION, b"y")
    assert base != cache_key("spec/a.md", Role.CONSTRAINT, b"x")


def test_cache_evicts_least_recently_used() -> None:
    cache = ParseCache(max_entries=2)
    keys = [cache_key(f"spec/{name}.md", Role.SPECIFICATION, b"") for name in "abc"]
    docs = [make_doc(key.path, Role.SPECIFICATION, "name: n") for key in keys]
    cache.record(keys[0], docs[0], hit=False)
    cache.record(keys[1], docs[1], hit=False)
    cache.record(keys[0], docs[0], hit=True)
    cache.record(keys[2], docs[2], hit=False)
    assert cache.lookup(keys[0]) is docs[0]
    assert cache.lookup(keys[1]) is None
    assert cache.stats() == {"entries": 2, "hits": 1, "misses": 3, "evictions": 1}


def test_cache_skips_failed_loads() -> None:
    cache = ParseCache()
    key = cache_key("spec/a.md", Role.SPECIFICATION, b"bad")
    cache.record(key, None, hit=False)
    assert cache.lookup(key) is None
    assert cache.stats()["misses"] == 1
