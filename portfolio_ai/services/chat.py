"""
Grounded chat: retrieval (with catalog fallback), context assembly and one
completion call.
"""
import asyncio
import re
from typing import Any, Dict, List, Optional

from portfolio_ai.helpers.citations import format_context
from portfolio_ai.helpers.prompts import (
    BEHAVIOR_MODE_NOTE,
    CATALOG_CAVEAT,
    CHAT_SYSTEM_PROMPT,
    NO_EVIDENCE_NOTE,
    SESSION_CONTEXT_NOTE,
    SPONSORSHIP_GUARDRAIL,
    TECH_MODE_NOTE,
)
from portfolio_ai.models.models import ChunkReference
from portfolio_ai.services.catalog import (
    build_portfolio_index_text,
    catalog_fallback,
    dedupe_sources_for_ui,
    sort_sources,
    supplement_with_catalog,
)
from portfolio_ai.services.retriever import retrieve
from portfolio_ai.services.skill_taxonomy import extract_skills_from_text
from portfolio_ai.utils.config import (
    LLM_TIMEOUT,
    MAX_RETRIEVAL_QUERY_CHARS,
    MAX_SESSION_CONTEXT_CHARS,
    PORTFOLIO_OWNER_NAME,
)
from portfolio_ai.utils.exceptions import UpstreamUnavailableError
from portfolio_ai.utils.logging_config import get_logger
from portfolio_ai.utils.utils import clamp_text, ollama_generate

logger = get_logger(__name__)

SESSION_QUERY_CHARS = 1400
HISTORY_TURNS = 4
SPONSORSHIP_PATTERN = re.compile(
    r"\bvisa\b|\bsponsor(ship)?\b|\bwork authori[sz]ation\b|\bwork permit\b|\bh-?1b\b|\bopt\b|\bcpt\b", re.I
)


def build_retrieval_query(
    message: str,
    history: Optional[List[Dict[str, str]]] = None,
    session_context: str = "",
) -> str:
    recent = [
        str(m.get("content", "")).strip()
        for m in (history or [])
        if m.get("role") == "user" and str(m.get("content", "")).strip()
    ][-2:]

    parts = [f"Q: {message}"]
    if recent:
        parts.append("Recent user context:\n" + "\n".join(recent))
    if session_context:
        parts.append(f"Session context:\n{clamp_text(session_context, SESSION_QUERY_CHARS)}")
    base = "\n\n".join(parts).strip()

    skills = extract_skills_from_text(base)[:10]
    if skills:
        base = f"{base}\n\nKey skills/keywords: {', '.join(skills)}"
    return clamp_text(base, MAX_RETRIEVAL_QUERY_CHARS)


def build_retrieval_config(mode: str = "auto", has_session_context: bool = False) -> Dict[str, Any]:
    if mode == "behavior":
        return {"top_k": 12, "source_types": ["story", "experience", "resume"]}
    if mode == "tech":
        return {"top_k": 12, "source_types": ["project", "experience", "article", "resume", "skill"]}
    return {"top_k": 14 if has_session_context else 12, "source_types": None}


def build_system_prompt(mode: str, has_evidence: bool, used_catalog: bool, has_session: bool, message: str) -> str:
    prompt = CHAT_SYSTEM_PROMPT.format(owner=PORTFOLIO_OWNER_NAME)
    if not has_evidence:
        prompt += NO_EVIDENCE_NOTE
    elif used_catalog:
        prompt += CATALOG_CAVEAT
    if mode == "behavior":
        prompt += BEHAVIOR_MODE_NOTE
    elif mode == "tech":
        prompt += TECH_MODE_NOTE
    if has_session:
        prompt += SESSION_CONTEXT_NOTE
    if SPONSORSHIP_PATTERN.search(message or ""):
        prompt += SPONSORSHIP_GUARDRAIL
    return prompt


def build_user_prompt(message: str, history: Optional[List[Dict[str, str]]], session_context: str, context: str) -> str:
    parts = []
    turns = [f"{m.get('role')}: {m.get('content')}" for m in (history or [])][-HISTORY_TURNS:]
    if turns:
        parts.append("\n".join(turns))
    if session_context:
        parts.append(f"Session context (user-provided):\n{session_context}")
    parts.append(f"SOURCES:\n{context}" if context else "SOURCES: (none)")
    parts.append(f"User: {message}")
    return "\n\n".join(parts)


async def gather_sources(
    message: str,
    history: Optional[List[Dict[str, str]]] = None,
    mode: str = "auto",
    session_context: str = "",
) -> Dict[str, Any]:
    """Retrieved (or catalog) sources plus the formatted context block."""
    config = build_retrieval_config(mode, bool(session_context))
    query = build_retrieval_query(message, history, session_context)

    sources: List[ChunkReference] = await retrieve(query, config["top_k"], config["source_types"])
    used_catalog = False
    if not sources:
        sources = await catalog_fallback(config["source_types"])
        used_catalog = bool(sources)
    else:
        supplemented = await supplement_with_catalog(sources, message)
        used_catalog = len(supplemented) > len(sources)
        sources = supplemented

    sources = sort_sources(sources)
    context = format_context(sources)
    index_text = await build_portfolio_index_text()
    if index_text:
        context = f"{context}\n\n{index_text}" if context else index_text

    return {"sources": sources, "context": context, "used_catalog": used_catalog}


async def answer_question(
    message: str,
    history: Optional[List[Dict[str, str]]] = None,
    mode: str = "auto",
    session_context: str = "",
) -> Dict[str, Any]:
    session_context = str(session_context or "").strip()[:MAX_SESSION_CONTEXT_CHARS]
    gathered = await gather_sources(message, history, mode, session_context)
    sources = gathered["sources"]

    system = build_system_prompt(mode, bool(sources), gathered["used_catalog"], bool(session_context), message)
    prompt = build_user_prompt(message, history, session_context, gathered["context"])

    loop = asyncio.get_running_loop()
    try:
        answer = await asyncio.wait_for(
            loop.run_in_executor(None, lambda: ollama_generate(prompt, system=system)),
            timeout=LLM_TIMEOUT,
        )
    except asyncio.TimeoutError as e:
        raise UpstreamUnavailableError(
            f"Completion timed out after {LLM_TIMEOUT}s", service_name="completion", cause=e
        ) from e
    except Exception as e:
        raise UpstreamUnavailableError(f"Completion failed: {e}", service_name="completion", cause=e) from e

    return {
        "answer": (answer or "").strip(),
        "sources": dedupe_sources_for_ui(sources),
        "used_catalog": gathered["used_catalog"],
    }
