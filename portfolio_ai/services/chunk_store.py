"""
Chunk store operations over the `chunks` collection.

Rows follow the Chunk model: `_id` (chunk id), owner_id, source_type,
source_id, content, embedding, metadata and `generation`. A generation tags
one indexing run of one source so a replace can insert the new set first and
drop older generations afterwards. Generation ids sort by creation time.
"""
import re
import time
import uuid
from typing import Any, Dict, List, Optional

import numpy as np
from pymongo import ASCENDING

from portfolio_ai.services.db import chunks_coll, get_capabilities
from portfolio_ai.utils.config import DEFAULT_OWNER_ID, VECTOR_INDEX_NAME, EMBED_DIMENSIONS
from portfolio_ai.utils.exceptions import DatabaseError
from portfolio_ai.utils.logging_config import get_logger
from portfolio_ai.utils.utils import cosine_similarity

logger = get_logger(__name__)

RESULT_PROJECTION = {"embedding": 0, "generation": 0}

STOPWORDS = {
    "the", "and", "for", "with", "that", "this", "you", "your", "are", "was", "were", "have",
    "has", "what", "which", "who", "how", "why", "when", "about", "from", "into", "any", "can",
    "did", "does", "tell", "me", "our", "their", "they", "them", "been", "will", "would",
}


_last_generation_ns = 0


def new_generation() -> str:
    """Generation id that sorts after every id issued before it."""
    global _last_generation_ns
    _last_generation_ns = max(time.time_ns(), _last_generation_ns + 1)
    return f"{_last_generation_ns:020d}-{uuid.uuid4().hex[:8]}"


def source_filter(source_type: str, source_id: str, owner_id: str = DEFAULT_OWNER_ID) -> Dict[str, Any]:
    return {"owner_id": owner_id, "source_type": source_type, "source_id": source_id}


def scope_filter(source_types: Optional[List[str]] = None, owner_id: str = DEFAULT_OWNER_ID) -> Dict[str, Any]:
    flt: Dict[str, Any] = {"owner_id": owner_id}
    if source_types:
        flt["source_type"] = {"$in": list(source_types)}
    return flt


def build_chunk_doc(
    source_type: str,
    source_id: str,
    content: str,
    embedding: List[float],
    metadata: Dict[str, Any],
    generation: str,
    owner_id: str = DEFAULT_OWNER_ID,
) -> Dict[str, Any]:
    return {
        "_id": uuid.uuid4().hex,
        "owner_id": owner_id,
        "source_type": source_type,
        "source_id": source_id,
        "content": content,
        "embedding": embedding,
        "metadata": metadata,
        "generation": generation,
    }


def _to_chunk(doc: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    out.pop("embedding", None)
    out.pop("generation", None)
    out.setdefault("metadata", {})
    return out


async def insert_chunk(doc: Dict[str, Any]) -> None:
    await chunks_coll.insert_one(doc)


async def retire_generations(source_type: str, source_id: str, generation: str) -> int:
    """
    Drop generations older than `generation` once it has landed.

    When a newer run already stored its set, `generation` itself is dropped
    instead, so overlapping re-indexes of one source leave the newest set.
    Returns the number of older chunks removed.
    """
    flt = source_filter(source_type, source_id)
    result = await chunks_coll.delete_many({**flt, "generation": {"$lt": generation}})
    newer = await chunks_coll.find_one({**flt, "generation": {"$gt": generation}}, {"_id": 1})
    if newer is not None:
        logger.info(f"Generation {generation} of {source_type}:{source_id} superseded by a newer run, dropping it")
        await chunks_coll.delete_many({**flt, "generation": generation})
    return result.deleted_count


async def replace_source_chunks(source_type: str, source_id: str, docs: List[Dict[str, Any]], generation: str) -> int:
    """
    Make `docs` the complete chunk set of one source.

    New rows are inserted before older generations are deleted, so readers never
    see a window with zero chunks. Generations are ordered by start time and
    the newest one wins when runs overlap. If the insert fails, rows of the new
    generation are removed again and the previous set stays intact.
    Returns the number of stale chunks removed.
    """
    if docs:
        try:
            await chunks_coll.insert_many(docs, ordered=True)
        except Exception as e:
            logger.error(f"Chunk insert failed for {source_type}:{source_id}, rolling back generation {generation}: {e}")
            try:
                await chunks_coll.delete_many({**source_filter(source_type, source_id), "generation": generation})
            except Exception as cleanup_error:
                logger.error(f"Rollback of generation {generation} failed: {cleanup_error}")
            raise DatabaseError(
                f"Failed to store chunks for {source_type}:{source_id}",
                operation="insert_many",
                collection="chunks",
                cause=e,
            ) from e

    removed = await retire_generations(source_type, source_id, generation)
    logger.debug(f"Replaced chunks for {source_type}:{source_id} - inserted={len(docs)}, removed={removed}")
    return removed


async def delete_source_chunks(source_type: str, source_id: str) -> int:
    try:
        result = await chunks_coll.delete_many(source_filter(source_type, source_id))
    except Exception as e:
        raise DatabaseError(
            f"Failed to delete chunks for {source_type}:{source_id}",
            operation="delete_many",
            collection="chunks",
            cause=e,
        ) from e
    return result.deleted_count


async def find_source_chunks(source_type: str, source_id: str) -> List[Dict[str, Any]]:
    cursor = chunks_coll.find(source_filter(source_type, source_id), RESULT_PROJECTION).sort(
        [("metadata.chunk_index", ASCENDING), ("_id", ASCENDING)]
    )
    docs = await cursor.to_list(length=None)
    return [_to_chunk(d) for d in docs]


# ----------------------
# Vector search
# ----------------------

async def _atlas_vector_search(query_embedding, top_k, threshold, source_types) -> List[Dict[str, Any]]:
    pipeline = [
        {
            "$vectorSearch": {
                "index": VECTOR_INDEX_NAME,
                "path": "embedding",
                "queryVector": list(query_embedding),
                "numCandidates": max(top_k * 10, 100),
                "limit": top_k,
                "filter": scope_filter(source_types),
            }
        },
        # Atlas reports cosine as (1 + cos) / 2; bring it back to cosine
        {"$addFields": {"similarity": {"$subtract": [{"$multiply": [2, {"$meta": "vectorSearchScore"}]}, 1]}}},
        {"$match": {"similarity": {"$gt": threshold}}},
        {"$project": RESULT_PROJECTION},
    ]
    docs = await chunks_coll.aggregate(pipeline).to_list(length=None)
    return [_to_chunk(d) for d in docs]


async def _local_vector_search(query_embedding, top_k, threshold, source_types) -> List[Dict[str, Any]]:
    flt = {**scope_filter(source_types), "embedding": {"$exists": True, "$ne": None}}
    docs = await chunks_coll.find(flt, {"generation": 0}).to_list(length=None)
    docs = [d for d in docs if d.get("embedding") and len(d["embedding"]) == EMBED_DIMENSIONS]
    if not docs:
        return []

    matrix = np.array([d["embedding"] for d in docs], dtype=np.float32)
    query = np.asarray(query_embedding, dtype=np.float32)
    sims = cosine_similarity(matrix, query)

    order = sorted(range(len(docs)), key=lambda i: (-float(sims[i]), str(docs[i]["_id"])))
    out = []
    for i in order:
        if float(sims[i]) <= threshold:
            break
        chunk = _to_chunk(docs[i])
        chunk["similarity"] = float(sims[i])
        out.append(chunk)
        if len(out) >= top_k:
            break
    return out


async def vector_search(
    query_embedding: List[float],
    top_k: int,
    threshold: float,
    source_types: Optional[List[str]] = None,
) -> List[Dict[str, Any]]:
    """Chunks ranked by descending cosine similarity, strictly above `threshold`."""
    if get_capabilities().vector_search:
        return await _atlas_vector_search(query_embedding, top_k, threshold, source_types)
    return await _local_vector_search(query_embedding, top_k, threshold, source_types)


# ----------------------
# Full-text search
# ----------------------

def query_terms(query: str, limit: int = 16) -> List[str]:
    seen = []
    for tok in re.findall(r"[a-z0-9][a-z0-9+#.\-]*", str(query or "").lower()):
        tok = tok.strip(".-")
        if len(tok) < 2 or tok in STOPWORDS or tok in seen:
            continue
        seen.append(tok)
        if len(seen) >= limit:
            break
    return seen


async def _term_scan_search(query, top_k, source_types) -> List[Dict[str, Any]]:
    terms = query_terms(query)
    if not terms:
        return []
    pattern = "|".join(re.escape(t) for t in terms)
    flt = {**scope_filter(source_types), "content": {"$regex": pattern, "$options": "i"}}
    docs = await chunks_coll.find(flt, RESULT_PROJECTION).to_list(length=None)

    scored = []
    for d in docs:
        text = str(d.get("content", "")).lower()
        hits = sum(text.count(t) for t in terms)
        if hits:
            scored.append((hits, str(d["_id"]), d))
    scored.sort(key=lambda x: (-x[0], x[1]))

    out = []
    for hits, _, d in scored[:top_k]:
        chunk = _to_chunk(d)
        chunk["text_score"] = float(hits)
        out.append(chunk)
    return out


async def text_search(query: str, top_k: int, source_types: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    """Lexical search over chunk content, best match first."""
    if not str(query or "").strip():
        return []
    if not get_capabilities().text_index:
        return await _term_scan_search(query, top_k, source_types)

    flt = {**scope_filter(source_types), "$text": {"$search": query}}
    projection = {**RESULT_PROJECTION, "text_score": {"$meta": "textScore"}}
    cursor = (
        chunks_coll.find(flt, projection)
        .sort([("text_score", {"$meta": "textScore"}), ("_id", ASCENDING)])
        .limit(top_k)
    )
    docs = await cursor.to_list(length=None)
    return [_to_chunk(d) for d in docs]
