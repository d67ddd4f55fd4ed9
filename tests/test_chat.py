import pytest
from unittest.mock import AsyncMock, patch

from portfolio_ai.helpers.prompts import CATALOG_CAVEAT, NO_EVIDENCE_NOTE, SPONSORSHIP_GUARDRAIL
from portfolio_ai.models.models import ChunkReference
from portfolio_ai.services import chat
from portfolio_ai.utils.exceptions import UpstreamUnavailableError


def ref(chunk_id, source_type="project", slug=None, score=0.03):
    return ChunkReference(
        chunk_id=chunk_id, source_type=source_type, source_id=chunk_id, source_title=chunk_id,
        source_slug=slug, relevance_score=score, content_preview=f"preview {chunk_id}",
    )


class TestPromptAssembly:
    """Retrieval query, retrieval config and system prompt"""

    def test_query_includes_recent_user_turns_and_skills(self):
        history = [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "ignored"},
            {"role": "user", "content": "second about Kafka"},
            {"role": "user", "content": "third"},
        ]
        query = chat.build_retrieval_query("Have you used Docker?", history)

        assert query.startswith("Q: Have you used Docker?")
        assert "first" not in query
        assert "second about Kafka\nthird" in query
        assert query.endswith("Key skills/keywords: Docker, Kafka")

    def test_retrieval_config_by_mode(self):
        assert chat.build_retrieval_config("behavior")["source_types"] == ["story", "experience", "resume"]
        assert chat.build_retrieval_config("tech")["top_k"] == 12
        assert chat.build_retrieval_config("auto", has_session_context=True) == {"top_k": 14, "source_types": None}

    def test_system_prompt_notes(self):
        assert NO_EVIDENCE_NOTE in chat.build_system_prompt("auto", False, False, False, "hi")
        assert CATALOG_CAVEAT in chat.build_system_prompt("auto", True, True, False, "hi")
        assert SPONSORSHIP_GUARDRAIL in chat.build_system_prompt("auto", True, False, False, "Do you need visa sponsorship?")
        assert SPONSORSHIP_GUARDRAIL not in chat.build_system_prompt("auto", True, False, False, "What is your stack?")


class TestGatherSources:
    """Retrieval with catalog fallback"""

    @pytest.mark.asyncio
    @patch("portfolio_ai.services.chat.build_portfolio_index_text", new_callable=AsyncMock)
    @patch("portfolio_ai.services.chat.catalog_fallback", new_callable=AsyncMock)
    @patch("portfolio_ai.services.chat.retrieve", new_callable=AsyncMock)
    async def test_empty_retrieval_uses_catalog(self, mock_retrieve, mock_catalog, mock_index):
        mock_retrieve.return_value = []
        mock_catalog.return_value = [ref("catalog:project:p1", score=0.02)]
        mock_index.return_value = ""

        gathered = await chat.gather_sources("Tell me about testing", mode="tech")

        assert gathered["used_catalog"] is True
        assert gathered["context"].startswith("SOURCE 1")
        mock_catalog.assert_awaited_once_with(["project", "experience", "article", "resume", "skill"])

    @pytest.mark.asyncio
    @patch("portfolio_ai.services.chat.build_portfolio_index_text", new_callable=AsyncMock)
    @patch("portfolio_ai.services.chat.catalog_fallback", new_callable=AsyncMock)
    @patch("portfolio_ai.services.chat.retrieve", new_callable=AsyncMock)
    async def test_sources_sorted_and_index_appended(self, mock_retrieve, mock_catalog, mock_index):
        mock_retrieve.return_value = [ref("a1", "article"), ref("r1", "resume")]
        mock_index.return_value = "PORTFOLIO INDEX (navigation only, not evidence)"

        gathered = await chat.gather_sources("How do you approach code review?")

        assert [s.chunk_id for s in gathered["sources"]] == ["r1", "a1"]
        assert gathered["context"].endswith("PORTFOLIO INDEX (navigation only, not evidence)")
        assert gathered["used_catalog"] is False
        mock_catalog.assert_not_called()


class TestAnswerQuestion:
    """Completion call"""

    @pytest.mark.asyncio
    @patch("portfolio_ai.services.chat.ollama_generate")
    @patch("portfolio_ai.services.chat.gather_sources", new_callable=AsyncMock)
    async def test_answer_dedupes_sources(self, mock_gather, mock_generate):
        mock_gather.return_value = {
            "sources": [ref("c1", slug="rag"), ref("c2", slug="rag")],
            "context": "SOURCE 1",
            "used_catalog": False,
        }
        mock_generate.return_value = "  I built a RAG engine.  "

        result = await chat.answer_question("What have you built?")

        assert result["answer"] == "I built a RAG engine."
        assert [s.chunk_id for s in result["sources"]] == ["c1"]

    @pytest.mark.asyncio
    @patch("portfolio_ai.services.chat.ollama_generate")
    @patch("portfolio_ai.services.chat.gather_sources", new_callable=AsyncMock)
    async def test_completion_failure_raises_upstream_error(self, mock_gather, mock_generate):
        mock_gather.return_value = {"sources": [], "context": "", "used_catalog": False}
        mock_generate.side_effect = ConnectionError("refused")

        with pytest.raises(UpstreamUnavailableError):
            await chat.answer_question("hello")
