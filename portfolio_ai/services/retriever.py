"""
Hybrid retrieval: vector search and full-text search run concurrently over the
same owner/source-type scope and are merged with Reciprocal Rank Fusion.
"""
import asyncio
from typing import Any, Dict, List, Optional

from portfolio_ai.helpers.citations import build_context_snippet, format_context, resolve_public_url
from portfolio_ai.models.models import ChunkReference, RetrievalResult
from portfolio_ai.services.chunk_store import text_search, vector_search
from portfolio_ai.services.embeddings import embed
from portfolio_ai.utils.config import RRF_K, SIMILARITY_THRESHOLD
from portfolio_ai.utils.exceptions import UpstreamUnavailableError
from portfolio_ai.utils.logging_config import get_logger, PerformanceMonitor

logger = get_logger(__name__)


def fuse_results(
    vector_results: List[Dict[str, Any]],
    fts_results: List[Dict[str, Any]],
    top_k: int,
    k: int = RRF_K,
) -> List[Dict[str, Any]]:
    """
    Reciprocal Rank Fusion of two ranked lists.

    Each list contributes 1 / (k + rank + 1) per chunk; a chunk present in
    both gets the sum. Full-text fields overlay vector fields on merge.
    Ties break on chunk id so the order is stable across calls.
    """
    scores: Dict[str, float] = {}
    merged: Dict[str, Dict[str, Any]] = {}

    for rank, item in enumerate(vector_results):
        cid = item["id"]
        scores[cid] = scores.get(cid, 0.0) + 1.0 / (k + rank + 1)
        merged[cid] = dict(item)

    for rank, item in enumerate(fts_results):
        cid = item["id"]
        scores[cid] = scores.get(cid, 0.0) + 1.0 / (k + rank + 1)
        prev = merged.get(cid, {})
        merged[cid] = {
            **prev,
            **item,
            "metadata": {**(prev.get("metadata") or {}), **(item.get("metadata") or {})},
        }

    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))[:top_k]
    return [{**merged[cid], "rrf_score": score} for cid, score in ranked]


def to_chunk_reference(item: Dict[str, Any]) -> ChunkReference:
    metadata = item.get("metadata") or {}
    source_type = item.get("source_type", "")
    slug = metadata.get("slug")
    return ChunkReference(
        chunk_id=item["id"],
        source_type=source_type,
        source_title=metadata.get("title") or item.get("source_id") or "Unknown Source",
        source_id=item.get("source_id"),
        source_slug=slug,
        relevance_score=float(item.get("rrf_score", 0.0)),
        content_preview=build_context_snippet(item.get("content", "")),
        url=resolve_public_url(source_type, slug),
    )


async def _embed_query(query: str) -> Optional[List[float]]:
    try:
        return await embed(query)
    except UpstreamUnavailableError as e:
        logger.warning(f"Query embedding unavailable, continuing with full-text only: {e.message}")
        return None


async def _vector_leg(embedding_task, top_k: int, threshold: float, source_types) -> List[Dict[str, Any]]:
    embedding = await embedding_task
    if embedding is None:
        return []
    return await vector_search(embedding, top_k, threshold, source_types)


def _settle(result, leg: str) -> List[Dict[str, Any]]:
    if isinstance(result, BaseException):
        logger.error(f"{leg} search failed: {result}")
        return []
    return result


async def retrieve(
    query: str,
    top_k: int = 5,
    source_types: Optional[List[str]] = None,
    threshold: float = SIMILARITY_THRESHOLD,
) -> List[ChunkReference]:
    """
    Ranked chunk references for `query`.

    Store or embedding failures degrade to whichever leg still answers. When
    both legs come back empty, the vector leg is retried once with the
    similarity threshold relaxed to zero.
    """
    query = str(query or "").strip()
    if not query or top_k <= 0:
        return []

    with PerformanceMonitor("hybrid_retrieval", logger):
        embedding_task = asyncio.ensure_future(_embed_query(query))
        vector_raw, fts_raw = await asyncio.gather(
            _vector_leg(embedding_task, top_k, threshold, source_types),
            text_search(query, top_k, source_types),
            return_exceptions=True,
        )
        vector_results = _settle(vector_raw, "Vector")
        fts_results = _settle(fts_raw, "Full-text")

        if not vector_results and not fts_results:
            embedding = None
            if embedding_task.done() and not embedding_task.cancelled() and embedding_task.exception() is None:
                embedding = embedding_task.result()
            if embedding is not None:
                logger.info(f"No hits for query, retrying vector search with threshold 0.0 (was {threshold})")
                try:
                    vector_results = await vector_search(embedding, top_k, 0.0, source_types)
                except Exception as e:
                    logger.error(f"Widened vector search failed: {e}")
                    vector_results = []

        fused = fuse_results(vector_results, fts_results, top_k)

    logger.debug(
        f"Retrieved {len(fused)} chunks (vector={len(vector_results)}, fts={len(fts_results)}, types={source_types})"
    )
    return [to_chunk_reference(item) for item in fused]


async def retrieve_context(
    query: str,
    top_k: int = 5,
    source_types: Optional[List[str]] = None,
) -> RetrievalResult:
    chunks = await retrieve(query, top_k, source_types)
    return RetrievalResult(chunks=chunks, context=format_context(chunks))


async def match_jd_to_skills(keywords: List[str]) -> List[ChunkReference]:
    query = " ".join(k for k in keywords if str(k or "").strip())
    return await retrieve(query, top_k=10)
