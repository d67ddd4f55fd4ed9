import re
from types import SimpleNamespace

import pytest

from portfolio_ai.services.db import StoreCapabilities, set_capabilities
from portfolio_ai.utils.config import EMBED_DIMENSIONS


def vec(*hot, dims=EMBED_DIMENSIONS):
    """Embedding with 1.0 at the given positions (and a small bias so it is never all zero)."""
    v = [0.0] * dims
    for i in hot:
        v[i] = 1.0
    if not hot:
        v[-1] = 1.0
    return v


def _get(doc, path):
    cur = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return None
        cur = cur[part]
    return cur


def _matches(doc, flt):
    for key, cond in flt.items():
        value = _get(doc, key)
        if isinstance(cond, dict):
            for op, arg in cond.items():
                if op == "$ne" and value == arg:
                    return False
                if op == "$in" and value not in arg:
                    return False
                if op == "$lt" and (value is None or not value < arg):
                    return False
                if op == "$gt" and (value is None or not value > arg):
                    return False
                if op == "$exists" and (value is not None) != arg:
                    return False
                if op == "$regex":
                    flags = re.I if "i" in cond.get("$options", "") else 0
                    if value is None or not re.search(arg, str(value), flags):
                        return False
        elif value != cond:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, keys, direction=None):
        if isinstance(keys, str):
            keys = [(keys, direction or 1)]
        for key, order in reversed(keys):
            self._docs.sort(key=lambda d: (_get(d, key) is None, _get(d, key) or 0), reverse=order == -1)
        return self

    def limit(self, n):
        if n:
            self._docs = self._docs[:n]
        return self

    async def to_list(self, length=None):
        return list(self._docs)


class FakeCollection:
    """Just enough of a motor collection for chunk-store semantics."""

    def __init__(self, name="chunks"):
        self.name = name
        self.docs = []
        self.fail_insert = False

    async def insert_many(self, docs, ordered=True):
        if self.fail_insert:
            # simulate a partial ordered insert that dies halfway
            self.docs.extend(dict(d) for d in docs[: len(docs) // 2])
            raise RuntimeError("insert failed")
        self.docs.extend(dict(d) for d in docs)
        return SimpleNamespace(inserted_ids=[d["_id"] for d in docs])

    async def insert_one(self, doc):
        if self.fail_insert:
            raise RuntimeError("insert failed")
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=doc["_id"])

    async def delete_many(self, flt):
        keep = [d for d in self.docs if not _matches(d, flt)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return SimpleNamespace(deleted_count=deleted)

    def find(self, flt=None, projection=None):
        out = []
        for d in self.docs:
            if _matches(d, flt or {}):
                doc = dict(d)
                for key, spec in (projection or {}).items():
                    if spec == 0:
                        doc.pop(key, None)
                out.append(doc)
        return FakeCursor(out)

    async def find_one(self, flt=None, projection=None):
        docs = await self.find(flt, projection).to_list()
        return docs[0] if docs else None


@pytest.fixture
def fake_chunks():
    return FakeCollection()


@pytest.fixture(autouse=True)
def local_capabilities():
    set_capabilities(StoreCapabilities(vector_search=False, text_index=False, schema_version=2))
    yield
    set_capabilities(StoreCapabilities())
