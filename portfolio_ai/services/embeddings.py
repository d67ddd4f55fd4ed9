"""
Async facade over the Ollama embedding endpoint.

The HTTP call is blocking (`requests`), so it runs in the default executor
under an `asyncio.wait_for` deadline. Any failure surfaces as
UpstreamUnavailableError.
"""
import asyncio
from typing import List

from portfolio_ai.utils.config import EMBED_BATCH_SIZE, EMBED_DIMENSIONS, EMBED_TIMEOUT
from portfolio_ai.utils.exceptions import UpstreamUnavailableError, retry_with_logging
from portfolio_ai.utils.logging_config import get_logger
from portfolio_ai.utils.utils import ollama_embed

logger = get_logger(__name__)


def _check_dimensions(vectors: List[List[float]]) -> None:
    for v in vectors:
        if len(v) != EMBED_DIMENSIONS:
            raise UpstreamUnavailableError(
                f"Embedding has {len(v)} dimensions, expected {EMBED_DIMENSIONS}",
                service_name="embeddings",
            )


@retry_with_logging(max_attempts=2, backoff_factor=0.5, exceptions=(UpstreamUnavailableError,), logger=logger)
async def embed_batch(texts: List[str]) -> List[List[float]]:
    """Embed `texts` in one round trip, preserving input order."""
    if not texts:
        return []
    loop = asyncio.get_running_loop()
    try:
        vectors = await asyncio.wait_for(
            loop.run_in_executor(None, ollama_embed, list(texts)),
            timeout=EMBED_TIMEOUT,
        )
    except asyncio.TimeoutError as e:
        raise UpstreamUnavailableError(
            f"Embedding call timed out after {EMBED_TIMEOUT}s", service_name="embeddings", cause=e
        ) from e
    except Exception as e:
        raise UpstreamUnavailableError(f"Embedding call failed: {e}", service_name="embeddings", cause=e) from e

    out = [list(map(float, v)) for v in vectors]
    if len(out) != len(texts):
        raise UpstreamUnavailableError(
            f"Embedding service returned {len(out)} vectors for {len(texts)} inputs",
            service_name="embeddings",
        )
    _check_dimensions(out)
    return out


async def embed(text: str) -> List[float]:
    vectors = await embed_batch([text])
    return vectors[0]


async def embed_batched(texts: List[str], batch_size: int = EMBED_BATCH_SIZE) -> List[List[float]]:
    """Embed any number of texts; batches go out sequentially to bound request size."""
    if not texts:
        return []
    safe_batch = max(1, min(batch_size, 128))
    out: List[List[float]] = []
    for i in range(0, len(texts), safe_batch):
        out.extend(await embed_batch(texts[i:i + safe_batch]))
    return out
