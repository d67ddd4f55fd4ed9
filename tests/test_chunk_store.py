import asyncio

import pytest
from unittest.mock import patch

from conftest import FakeCollection, vec
from portfolio_ai.services import chunk_store
from portfolio_ai.utils.exceptions import DatabaseError


def _docs(source_id, generation, n, source_type="project"):
    return [
        chunk_store.build_chunk_doc(
            source_type, source_id, f"{source_id} chunk {i} about retrieval pipelines and fusion",
            vec(i), {"title": source_id, "chunk_index": i}, generation,
        )
        for i in range(n)
    ]


class YieldingCollection(FakeCollection):
    """Hands control back to the event loop around every write."""

    async def insert_many(self, docs, ordered=True):
        await asyncio.sleep(0)
        result = await super().insert_many(docs, ordered)
        await asyncio.sleep(0)
        return result

    async def delete_many(self, flt):
        await asyncio.sleep(0)
        return await super().delete_many(flt)

    async def find_one(self, flt=None, projection=None):
        await asyncio.sleep(0)
        return await super().find_one(flt, projection)


class TestReplaceSourceChunks:
    """Atomic-by-effect per-source replace"""

    @pytest.mark.asyncio
    async def test_replace_leaves_only_new_generation(self, fake_chunks):
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks):
            await chunk_store.replace_source_chunks("project", "p1", _docs("p1", "g1", 3), "g1")
            removed = await chunk_store.replace_source_chunks("project", "p1", _docs("p1", "g2", 2), "g2")

        assert removed == 3
        assert len(fake_chunks.docs) == 2
        assert {d["generation"] for d in fake_chunks.docs} == {"g2"}

    @pytest.mark.asyncio
    async def test_replace_does_not_touch_other_sources(self, fake_chunks):
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks):
            await chunk_store.replace_source_chunks("project", "p1", _docs("p1", "g1", 2), "g1")
            await chunk_store.replace_source_chunks("project", "p2", _docs("p2", "g1", 2), "g1")
            await chunk_store.replace_source_chunks("project", "p1", _docs("p1", "g3", 1), "g3")

        assert sorted(d["source_id"] for d in fake_chunks.docs) == ["p1", "p2", "p2"]

    @pytest.mark.asyncio
    async def test_failed_insert_rolls_back_and_keeps_previous_set(self, fake_chunks):
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks):
            await chunk_store.replace_source_chunks("project", "p1", _docs("p1", "g1", 2), "g1")
            fake_chunks.fail_insert = True
            with pytest.raises(DatabaseError):
                await chunk_store.replace_source_chunks("project", "p1", _docs("p1", "g2", 4), "g2")

        assert len(fake_chunks.docs) == 2
        assert {d["generation"] for d in fake_chunks.docs} == {"g1"}

    @pytest.mark.asyncio
    async def test_empty_replace_clears_source(self, fake_chunks):
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks):
            await chunk_store.replace_source_chunks("project", "p1", _docs("p1", "g1", 2), "g1")
            removed = await chunk_store.replace_source_chunks("project", "p1", [], "g2")

        assert removed == 2
        assert fake_chunks.docs == []


    @pytest.mark.asyncio
    async def test_late_older_run_does_not_replace_newer_set(self, fake_chunks):
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks):
            await chunk_store.replace_source_chunks("project", "p1", _docs("p1", "g2", 3), "g2")
            await chunk_store.replace_source_chunks("project", "p1", _docs("p1", "g1", 2), "g1")

        assert len(fake_chunks.docs) == 3
        assert {d["generation"] for d in fake_chunks.docs} == {"g2"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("newer_first", [False, True])
    async def test_overlapping_replaces_keep_newest_set(self, newer_first):
        """Two interleaved re-indexes of one record leave the newer set, never zero chunks"""
        coll = YieldingCollection()
        older = chunk_store.replace_source_chunks("project", "p1", _docs("p1", "gA", 2), "gA")
        newer = chunk_store.replace_source_chunks("project", "p1", _docs("p1", "gB", 3), "gB")
        runs = [newer, older] if newer_first else [older, newer]

        with patch("portfolio_ai.services.chunk_store.chunks_coll", coll):
            await asyncio.gather(*runs)

        assert len(coll.docs) == 3
        assert {d["generation"] for d in coll.docs} == {"gB"}

    def test_generation_ids_sort_by_creation(self):
        ids = [chunk_store.new_generation() for _ in range(200)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 200


class TestSearch:
    """Local vector scan and term-scan full-text search"""

    @pytest.mark.asyncio
    async def test_local_vector_search_ranks_and_thresholds(self, fake_chunks):
        fake_chunks.docs = [
            {"_id": "a", "owner_id": chunk_store.DEFAULT_OWNER_ID, "source_type": "project", "source_id": "p1",
             "content": "alpha", "embedding": vec(0), "metadata": {}, "generation": "g"},
            {"_id": "b", "owner_id": chunk_store.DEFAULT_OWNER_ID, "source_type": "project", "source_id": "p2",
             "content": "beta", "embedding": vec(0, 1), "metadata": {}, "generation": "g"},
            {"_id": "c", "owner_id": chunk_store.DEFAULT_OWNER_ID, "source_type": "article", "source_id": "a1",
             "content": "gamma", "embedding": vec(5), "metadata": {}, "generation": "g"},
        ]
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks):
            results = await chunk_store.vector_search(vec(0), top_k=5, threshold=0.3)
            widened = await chunk_store.vector_search(vec(0), top_k=5, threshold=-1.0)
            scoped = await chunk_store.vector_search(vec(0), top_k=5, threshold=-1.0, source_types=["article"])

        assert [r["id"] for r in results] == ["a", "b"]
        assert results[0]["similarity"] == pytest.approx(1.0)
        assert "embedding" not in results[0]
        assert [r["id"] for r in widened] == ["a", "b", "c"]
        assert [r["id"] for r in scoped] == ["c"]

    @pytest.mark.asyncio
    async def test_term_scan_orders_by_hits(self, fake_chunks):
        owner = chunk_store.DEFAULT_OWNER_ID
        fake_chunks.docs = [
            {"_id": "x", "owner_id": owner, "source_type": "project", "source_id": "p1",
             "content": "Kafka streaming job", "embedding": vec(), "metadata": {}, "generation": "g"},
            {"_id": "y", "owner_id": owner, "source_type": "project", "source_id": "p2",
             "content": "Kafka and more Kafka with Spark", "embedding": vec(), "metadata": {}, "generation": "g"},
            {"_id": "z", "owner_id": owner, "source_type": "project", "source_id": "p3",
             "content": "unrelated frontend work", "embedding": vec(), "metadata": {}, "generation": "g"},
        ]
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks):
            results = await chunk_store.text_search("tell me about kafka", top_k=5)

        assert [r["id"] for r in results] == ["y", "x"]
        assert results[0]["text_score"] == 2.0

    def test_query_terms_drop_stopwords(self):
        assert chunk_store.query_terms("What did you build with Node.js and C++?") == ["build", "node.js", "c++"]
