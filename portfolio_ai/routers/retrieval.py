from fastapi import APIRouter

from portfolio_ai.helpers.citations import format_context
from portfolio_ai.models.schemas import RetrieveRequest, RetrieveResponse
from portfolio_ai.services.catalog import catalog_fallback
from portfolio_ai.services.retriever import retrieve
from portfolio_ai.utils.logging_config import get_logger, log_api_call

logger = get_logger(__name__)

router = APIRouter()


@router.post("/retrieve", response_model=RetrieveResponse)
@log_api_call("retrieve")
async def retrieve_chunks(body: RetrieveRequest):
    """Hybrid retrieval over the chunk index, optionally backed by the content catalog"""
    chunks = await retrieve(body.query, body.top_k, body.source_types)
    used_catalog = False
    if not chunks and body.catalog_fallback:
        chunks = await catalog_fallback(body.source_types)
        used_catalog = bool(chunks)
    return RetrieveResponse(chunks=chunks, context=format_context(chunks), used_catalog=used_catalog)
