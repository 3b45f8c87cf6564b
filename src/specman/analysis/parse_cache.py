# specman:boundary_normalization_module
"""Content-addressed cache of parsed documents.

Entries are keyed by path, role and the SHA-256 of the file bytes, so a hit
can only return what a fresh parse of the same bytes would produce. Workers
only read; the single-writer merge step records hits and stores entries.
"""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from dataclasses import dataclass, field

from specman.analysis.model import Document, Role
from specman.json_types import JSONObject

DEFAULT_CACHE_ENTRIES = 4096


@dataclass(frozen=True, order=True)
class CacheKey:
    path: str
    role: str
    digest: str


def cache_key(path: str, role: Role, content: bytes) -> CacheKey:
    return CacheKey(path=path, role=role.value, digest=hashlib.sha256(content).hexdigest())


@dataclass
class ParseCache:
    max_entries: int = DEFAULT_CACHE_ENTRIES
    _values: OrderedDict[CacheKey, Document] = field(default_factory=OrderedDict)
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    def lookup(self, key: CacheKey) -> Document | None:
        return self._values.get(key)

    def record(self, key: CacheKey, document: Document | None, *, hit: bool) -> None:
        if hit:
            self.hits += 1
            self._values.move_to_end(key)
            return
        self.misses += 1
        if document is None:
            return
        self._values[key] = document
        self._values.move_to_end(key)
        while len(self._values) > self.max_entries:
            self._values.popitem(last=False)
            self.evictions += 1

    def stats(self) -> JSONObject:
        return {
            "entries": len(self._values),
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }
