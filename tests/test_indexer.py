import pytest
from unittest.mock import AsyncMock, patch

from conftest import vec
from portfolio_ai.models.models import Experience, Project, Skill, Story
from portfolio_ai.services import indexer, retriever
from portfolio_ai.services.db import StoreCapabilities, set_capabilities
from portfolio_ai.utils.exceptions import MalformedInputError, UpstreamUnavailableError


def make_project(**overrides):
    data = {
        "id": "proj-1",
        "slug": "rag-engine",
        "title": "RAG Engine",
        "subtitle": "Hybrid retrieval for a personal portfolio",
        "description": "A retrieval pipeline that fuses vector and keyword search with reciprocal rank fusion.",
        "details": "Deep narrative about chunking, embeddings and evaluation. " * 5,
        "tech_stack": ["Python", "MongoDB"],
        "status": "published",
    }
    data.update(overrides)
    return Project(**data)


def fake_embed(texts, batch_size=None):
    return [vec(0) for _ in texts]


class TestDocumentBuilders:
    """Canonical record documents"""

    def test_project_header_and_narrative(self):
        header, body = indexer.build_project_document(make_project())
        assert header.startswith("Project: RAG Engine")
        assert "Tech: Python, MongoDB" in header
        assert "Overview:" in body and "Deep dive:" in body

        _, without = indexer.build_project_document(make_project(), include_details=False)
        assert "Deep dive:" not in without

    def test_skill_is_single_chunk(self):
        skill = Skill(id="s1", name="Python", category="language", proficiency=5, years_of_experience=4, is_primary=True)
        header, body, meta = indexer.build_document("skill", skill)
        chunks = indexer.split_document(header, body)
        assert len(chunks) == 1
        assert "Proficiency: 5/5" in chunks[0]
        assert meta["title"] == "Python"

    def test_experience_sections_in_order(self):
        exp = Experience(
            id="e1", company="Acme", role="ML Engineer", location="Remote", start_date="2023-01",
            summary="Owned the retrieval stack.", highlights=["Cut latency by 40%", "Shipped evals"],
            details="Long narrative.",
        )
        header, body = indexer.build_experience_document(exp)
        assert header.splitlines()[0] == "Experience: ML Engineer @ Acme"
        assert "Dates: 2023-01 to Present" in header
        assert body.index("Highlights:") < body.index("Detailed narrative:")

    def test_story_publish_rule(self):
        story = Story(id="st1", title="Outage", situation="s", task="t", action="a", result="r", is_public=False)
        assert indexer.is_indexable("story", story) is False
        assert indexer.is_indexable("project", make_project(deleted_at="2024-01-01")) is False
        assert indexer.is_indexable("project", make_project(status="draft")) is False
        assert indexer.is_indexable("skill", Skill(id="s", name="Go")) is True


class TestIndexRecord:
    """Per-record indexing and replace semantics"""

    @pytest.mark.asyncio
    async def test_index_twice_keeps_only_second_run(self, fake_chunks):
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks), \
                patch("portfolio_ai.services.indexer.embed_batched", AsyncMock(side_effect=fake_embed)):
            first = await indexer.index_record("project", make_project())
            first_ids = {d["_id"] for d in fake_chunks.docs}
            second = await indexer.index_record("project", make_project(description="Rewritten overview " * 10))

        ids = {d["_id"] for d in fake_chunks.docs}
        assert first.inserted >= 1
        assert second.removed == first.inserted
        assert len(ids) == second.inserted
        assert ids.isdisjoint(first_ids)
        assert all(d["content"].startswith("Project: RAG Engine") for d in fake_chunks.docs)
        assert all(d["metadata"]["slug"] == "rag-engine" for d in fake_chunks.docs)

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_previous_set(self, fake_chunks):
        failing = AsyncMock(side_effect=UpstreamUnavailableError("down", service_name="embeddings"))
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks):
            with patch("portfolio_ai.services.indexer.embed_batched", AsyncMock(side_effect=fake_embed)):
                await indexer.index_record("project", make_project())
            before = list(fake_chunks.docs)
            with patch("portfolio_ai.services.indexer.embed_batched", failing):
                with pytest.raises(UpstreamUnavailableError):
                    await indexer.index_record("project", make_project(description="changed " * 20))

        assert fake_chunks.docs == before

    @pytest.mark.asyncio
    async def test_narrative_skipped_on_old_schema(self, fake_chunks):
        set_capabilities(StoreCapabilities(schema_version=1))
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks), \
                patch("portfolio_ai.services.indexer.embed_batched", AsyncMock(side_effect=fake_embed)):
            await indexer.index_project(make_project())

        assert not any("Deep dive:" in d["content"] for d in fake_chunks.docs)

    @pytest.mark.asyncio
    async def test_unpublish_removes_project_from_retrieval(self, fake_chunks):
        project = make_project()
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks), \
                patch("portfolio_ai.services.indexer.embed_batched", AsyncMock(side_effect=fake_embed)), \
                patch("portfolio_ai.services.retriever.embed", AsyncMock(return_value=vec(0))):
            with patch("portfolio_ai.services.indexer.get_record", AsyncMock(return_value=project)):
                await indexer.sync_record("project", project.id)
            hits = await retriever.retrieve("retrieval pipeline", top_k=5, source_types=["project"])
            assert {h.source_id for h in hits} == {project.id}

            unpublished = make_project(status="draft")
            with patch("portfolio_ai.services.indexer.get_record", AsyncMock(return_value=unpublished)):
                result = await indexer.sync_record("project", project.id)
            hits = await retriever.retrieve("retrieval pipeline", top_k=5, source_types=["project"])

        assert result.removed >= 1
        assert all(h.source_id != project.id for h in hits)

    @pytest.mark.asyncio
    async def test_missing_record_is_removed(self, fake_chunks):
        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks), \
                patch("portfolio_ai.services.indexer.get_record", AsyncMock(return_value=None)), \
                patch("portfolio_ai.services.indexer.embed_batched", AsyncMock(side_effect=fake_embed)) as embed_mock:
            result = await indexer.sync_record("article", "gone")

        assert result.removed == 0
        embed_mock.assert_not_called()


class TestRebuild:
    """Full rebuild walk"""

    @pytest.mark.asyncio
    async def test_rebuild_counts_per_type(self, fake_chunks):
        records = {
            "project": [make_project(), make_project(id="proj-2", slug="old", status="archived")],
            "skill": [Skill(id="s1", name="Python", category="language", proficiency=4)],
        }

        async def fake_list(source_type):
            return records.get(source_type, [])

        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks), \
                patch("portfolio_ai.services.indexer.list_records", AsyncMock(side_effect=fake_list)), \
                patch("portfolio_ai.services.indexer.embed_batched", AsyncMock(side_effect=fake_embed)):
            counts = await indexer.rebuild_all()

        assert counts["projects_indexed"] == 1
        assert counts["projects_removed"] == 1
        assert counts["skills_indexed"] == 1
        assert counts["articles_indexed"] == 0
        assert {d["source_id"] for d in fake_chunks.docs} == {"proj-1", "s1"}


class TestIngestText:
    """Free-form knowledge ingestion with partial-failure accounting"""

    @pytest.mark.asyncio
    async def test_partial_failure_reports_counts(self, fake_chunks):
        content = "\n\n".join(f"Section {i}: " + "knowledge " * 60 for i in range(3))
        calls = []

        async def flaky(texts):
            calls.append(len(texts))
            if len(texts) > 1:
                raise UpstreamUnavailableError("batch failed", service_name="embeddings")
            if "Section 1" in texts[0]:
                raise UpstreamUnavailableError("chunk failed", service_name="embeddings")
            return [vec(0)]

        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks), \
                patch("portfolio_ai.services.indexer.embed_batch", AsyncMock(side_effect=flaky)):
            result = await indexer.ingest_text("Notes", content, "article")

        assert result.total_chunks == 3
        assert result.inserted == 2
        assert result.failed == 1
        assert result.failed_chunks == [1]
        assert len(fake_chunks.docs) == 2

    @pytest.mark.asyncio
    async def test_reingest_replaces_previous_chunks(self, fake_chunks):
        async def ok(texts):
            return [vec(0) for _ in texts]

        with patch("portfolio_ai.services.chunk_store.chunks_coll", fake_chunks), \
                patch("portfolio_ai.services.indexer.embed_batch", AsyncMock(side_effect=ok)):
            await indexer.ingest_text("Notes", "first version " * 20, "article")
            result = await indexer.ingest_text("Notes", "second version " * 20, "article")

        assert result.removed == 1
        assert len(fake_chunks.docs) == 1
        assert fake_chunks.docs[0]["content"].startswith("second version")

    @pytest.mark.asyncio
    async def test_short_content_rejected(self):
        with pytest.raises(MalformedInputError):
            await indexer.ingest_text("Notes", "too short", "article")
