import json
import re
from typing import Any, Dict, List, Union

import numpy as np
import requests

from portfolio_ai.utils.config import OLLAMA, LLM_MODEL, EMBED_MODEL, EMBED_TIMEOUT, LLM_TIMEOUT


def _ollama_post(path: str, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    resp = requests.post(f"{OLLAMA}{path}", json=payload, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


def ollama_generate(prompt: str, system: str = None, model: str = None, temperature: float = 0.2) -> str:
    """Single non-streaming completion."""
    payload = {
        "model": model or LLM_MODEL,
        "prompt": prompt,
        "options": {"temperature": temperature},
        "stream": False,
    }
    if system:
        payload["system"] = system
    return _ollama_post("/api/generate", payload, LLM_TIMEOUT).get("response") or ""


def ollama_embed(texts: Union[str, List[str]]) -> np.ndarray:
    data = _ollama_post("/api/embed", {"model": EMBED_MODEL, "input": texts}, EMBED_TIMEOUT)
    # /api/embed always answers with a list, in input order
    vectors = np.array(data["embeddings"], dtype=np.float32)
    if isinstance(texts, str):
        return vectors[0]
    return vectors


def cosine_similarity(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Row-wise cosine similarity of `matrix` against a single `query` vector."""
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1) * (np.linalg.norm(query) or 1e-8)
    norms[norms == 0] = 1e-8
    return (matrix @ query) / norms


def safe_json(s: str, fallback: dict):
    """First {...} object in a model reply (code fences and chatter tolerated), else `fallback`."""
    text = str(s or "")
    start, end = text.find("{"), text.rfind("}")
    if start < 0 or end <= start:
        return fallback
    try:
        data = json.loads(text[start:end + 1])
    except ValueError:
        return fallback
    return data if isinstance(data, dict) else fallback


def clamp_text(value: str, max_chars: int) -> str:
    """Keep the head of `value`, appending an ellipsis when the tail was cut."""
    v = str(value or "").strip()
    if len(v) <= max_chars:
        return v
    return f"{v[:max_chars]}…"


def normalize_skill_key(value: str) -> str:
    v = str(value or "").strip().lower()
    v = v.replace("c++", "cplusplus").replace("c#", "csharp").replace(".js", "js")
    return re.sub(r"[^a-z0-9]+", "", v)
