import pytest
from unittest.mock import AsyncMock, patch

from portfolio_ai.services import db
from portfolio_ai.utils.exceptions import ConfigurationError, SchemaDriftError


class TestCapabilities:
    """Chunk store capability resolution"""

    @pytest.mark.asyncio
    @patch("portfolio_ai.services.db._has_text_index", new_callable=AsyncMock)
    @patch("portfolio_ai.services.db._has_vector_index", new_callable=AsyncMock)
    async def test_forced_atlas_without_index_is_drift(self, mock_vector, mock_text):
        mock_vector.return_value = False
        mock_text.return_value = True

        with patch("portfolio_ai.services.db.VECTOR_SEARCH_MODE", "atlas"):
            with pytest.raises(SchemaDriftError) as exc:
                await db.resolve_capabilities()

        assert exc.value.details["capability"] == "vector_search"

    @pytest.mark.asyncio
    @patch("portfolio_ai.services.db._has_text_index", new_callable=AsyncMock)
    @patch("portfolio_ai.services.db._has_vector_index", new_callable=AsyncMock)
    async def test_startup_drift_keeps_text_index(self, mock_vector, mock_text):
        """Vector drift falls back to the local scan without dropping the $text index"""
        from portfolio_ai.main import pin_capabilities

        mock_vector.return_value = False
        mock_text.return_value = True

        with patch("portfolio_ai.services.db.VECTOR_SEARCH_MODE", "atlas"):
            await pin_capabilities()

        caps = db.get_capabilities()
        assert caps.vector_search is False
        assert caps.text_index is True
        mock_vector.assert_awaited_once()

    @pytest.mark.asyncio
    @patch("portfolio_ai.services.db._has_text_index", new_callable=AsyncMock)
    async def test_store_outage_uses_conservative_defaults(self, mock_text):
        from portfolio_ai.main import pin_capabilities

        mock_text.side_effect = RuntimeError("connection refused")

        with patch("portfolio_ai.services.db.VECTOR_SEARCH_MODE", "local"):
            await pin_capabilities()

        caps = db.get_capabilities()
        assert caps.vector_search is False
        assert caps.text_index is False

    @pytest.mark.asyncio
    async def test_unknown_mode_rejected(self):
        with patch("portfolio_ai.services.db.VECTOR_SEARCH_MODE", "hnsw"):
            with pytest.raises(ConfigurationError):
                await db.resolve_capabilities()
