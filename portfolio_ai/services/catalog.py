"""
Catalog fallback: synthetic references drawn straight from the content
collections when retrieval has nothing (or too little) to offer.

Catalog references carry a fixed low relevance score and a `catalog:` chunk id
so downstream code can tell them apart from retrieved evidence.
"""
import asyncio
import re
from typing import Dict, List, Optional

from portfolio_ai.helpers.citations import build_context_snippet, resolve_public_url
from portfolio_ai.models.models import ChunkReference
from portfolio_ai.services import content
from portfolio_ai.utils.config import CATALOG_CAPS, CATALOG_MAX_SOURCES, CATALOG_SCORE, SOURCE_TYPE_ORDER
from portfolio_ai.utils.exceptions import DatabaseError
from portfolio_ai.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CATALOG_TYPES = ["project", "article", "skill", "resume", "experience"]
PROJECT_LIST_MIN = 3

_PROJECT_LIST_PATTERNS = [
    re.compile(r"\bwhat (have|did) you (build|built|make|made|ship|shipped|work on)\b", re.I),
    re.compile(r"\b(list|show|tell me about|walk me through) (your|all|some)?\s*projects?\b", re.I),
    re.compile(r"\b(your|all|any) projects?\b", re.I),
    re.compile(r"\bportfolio\b", re.I),
]


def _ref(source_type: str, source_id: Optional[str], title: str, preview: str, slug: Optional[str] = None) -> ChunkReference:
    chunk_id = f"catalog:{source_type}:{source_id}" if source_id else f"catalog:{source_type}"
    return ChunkReference(
        chunk_id=chunk_id,
        source_type=source_type,
        source_title=title,
        source_id=source_id,
        source_slug=slug,
        relevance_score=CATALOG_SCORE,
        content_preview=build_context_snippet(preview),
        url=resolve_public_url(source_type, slug),
    )


async def _project_refs(cap: int) -> List[ChunkReference]:
    projects = await content.get_published_projects(limit=cap)
    out = []
    for p in projects:
        lines = [f"Project: {p.title}"]
        if p.subtitle:
            lines.append(p.subtitle)
        if p.tech_stack:
            lines.append(f"Tech: {', '.join(p.tech_stack)}")
        if p.description:
            lines.append(p.description)
        out.append(_ref("project", p.id, p.title, "\n".join(lines), slug=p.slug))
    return out


async def _article_refs(cap: int) -> List[ChunkReference]:
    articles = await content.get_published_articles(limit=cap)
    return [
        _ref("article", a.id, a.title, f"Article: {a.title}\n{a.summary or a.content[:400]}", slug=a.slug)
        for a in articles
    ]


async def _skill_refs(cap: int) -> List[ChunkReference]:
    skills = await content.get_skills(limit=cap)
    out = []
    for s in skills:
        bits = [s.category]
        if s.proficiency:
            bits.append(f"proficiency {s.proficiency}/5")
        if s.years_of_experience:
            bits.append(f"{s.years_of_experience:g} years")
        out.append(_ref("skill", s.id, s.name, f"Skill: {s.name} ({', '.join(bits)})"))
    return out


async def _experience_refs(cap: int) -> List[ChunkReference]:
    experiences = await content.get_published_experiences(limit=cap)
    out = []
    for e in experiences:
        title = f"{e.role} @ {e.company}"
        out.append(_ref("experience", e.id, title, f"Experience: {title}\n{e.summary or ''}"))
    return out


async def _story_refs(cap: int) -> List[ChunkReference]:
    stories = await content.get_public_stories(limit=cap)
    return [
        _ref("story", s.id, s.title, f"Story: {s.title}\nSituation: {s.situation}\nResult: {s.result}")
        for s in stories
    ]


async def _resume_refs(cap: int) -> List[ChunkReference]:
    resume = await content.get_latest_resume()
    if resume is None or cap <= 0:
        return []
    # a single pseudo-entry, regardless of the stored resume id
    return [_ref("resume", None, resume.title, f"Resume: {resume.title}\n{resume.content}")]


_LOADERS = {
    "project": _project_refs,
    "article": _article_refs,
    "skill": _skill_refs,
    "experience": _experience_refs,
    "story": _story_refs,
    "resume": _resume_refs,
}


async def _load(source_type: str) -> List[ChunkReference]:
    cap = CATALOG_CAPS.get(source_type, 0)
    try:
        return await _LOADERS[source_type](cap)
    except DatabaseError as e:
        logger.error(f"Catalog read failed for {source_type}: {e.message}")
        return []


async def catalog_fallback(source_types: Optional[List[str]] = None) -> List[ChunkReference]:
    """
    Round-robin over the requested types (in display order), honouring the
    per-type caps and an overall cap.
    """
    requested = set(source_types or DEFAULT_CATALOG_TYPES)
    ordered = [t for t in SOURCE_TYPE_ORDER if t in requested and t in _LOADERS]
    lists = await asyncio.gather(*[_load(t) for t in ordered])
    per_type: Dict[str, List[ChunkReference]] = dict(zip(ordered, lists))

    out: List[ChunkReference] = []
    depth = max((len(v) for v in lists), default=0)
    for i in range(depth):
        for t in ordered:
            if len(out) >= CATALOG_MAX_SOURCES:
                break
            items = per_type[t]
            if i < len(items):
                out.append(items[i])

    logger.info(f"Catalog fallback produced {len(out)} references for types={ordered}")
    return out


def is_catalog_reference(ref: ChunkReference) -> bool:
    return ref.chunk_id.startswith("catalog:")


def wants_project_list(question: str) -> bool:
    q = str(question or "")
    return any(p.search(q) for p in _PROJECT_LIST_PATTERNS)


async def supplement_with_catalog(sources: List[ChunkReference], question: str) -> List[ChunkReference]:
    """Top up project coverage for "what have you built" questions."""
    if not wants_project_list(question):
        return sources
    project_ids = {s.source_id for s in sources if s.source_type == "project"}
    if len(project_ids) >= PROJECT_LIST_MIN:
        return sources
    extra = [r for r in await catalog_fallback(["project"]) if r.source_id not in project_ids]
    return sources + extra


def sort_sources(sources: List[ChunkReference]) -> List[ChunkReference]:
    rank = {t: i for i, t in enumerate(SOURCE_TYPE_ORDER)}
    return sorted(sources, key=lambda s: (rank.get(s.source_type, len(rank)), -s.relevance_score))


def dedupe_sources_for_ui(sources: List[ChunkReference]) -> List[ChunkReference]:
    seen = set()
    out = []
    for s in sources:
        key = (s.source_type, s.source_slug or s.source_title)
        if key in seen:
            continue
        seen.add(key)
        out.append(s)
    return out


async def build_portfolio_index_text(limit: int = 12) -> str:
    """Titles and links of published projects and articles, for navigation only."""
    try:
        projects, articles = await asyncio.gather(
            content.get_published_projects(limit=limit),
            content.get_published_articles(limit=limit),
        )
    except DatabaseError as e:
        logger.warning(f"Portfolio index unavailable: {e.message}")
        return ""

    lines = ["PORTFOLIO INDEX (navigation only, not evidence)"]
    if projects:
        lines.append("Projects:")
        lines.extend(f"- {p.title}: {resolve_public_url('project', p.slug)}" for p in projects)
    if articles:
        lines.append("Articles:")
        lines.extend(f"- {a.title}: {resolve_public_url('article', a.slug)}" for a in articles)
    return "\n".join(lines) if len(lines) > 1 else ""
