"""
Indexing pipeline: content record -> canonical text -> chunks -> embeddings -> chunk store.

Every record variant gets a header (title plus key structured fields) that is
prepended to each of its chunks so a chunk reads sensibly out of context.
A record's chunk set is always replaced as a whole.
"""
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from portfolio_ai.helpers.chunking import chunk_text
from portfolio_ai.helpers.parsing import extract_upload_text, content_hash
from portfolio_ai.models.models import (
    Project, Article, Story, Skill, Experience, Resume, IndexResult, CONTENT_SOURCE_TYPES,
)
from portfolio_ai.services import chunk_store
from portfolio_ai.services.content import get_record, list_records
from portfolio_ai.services.db import get_capabilities
from portfolio_ai.services.embeddings import embed_batch, embed_batched
from portfolio_ai.utils.config import CHUNK_MAX_SIZE, MIN_CHUNK_LENGTH, EMBED_BATCH_SIZE
from portfolio_ai.utils.exceptions import MalformedInputError, PortfolioAIBaseException, UpstreamUnavailableError
from portfolio_ai.utils.logging_config import get_logger, log_function_call

logger = get_logger(__name__)

KNOWLEDGE_SOURCE_TYPES = {"article", "resume", "story", "project", "skill"}
REBUILD_CONCURRENCY = 4


# ----------------------
# Canonical documents
# ----------------------

def _lines(*parts: Optional[str]) -> str:
    return "\n".join(p for p in parts if p)


def build_project_document(project: Project, include_details: bool = True) -> Tuple[str, str]:
    header = _lines(
        f"Project: {project.title}",
        f"Subtitle: {project.subtitle}" if project.subtitle else None,
        f"Tech: {', '.join(project.tech_stack)}" if project.tech_stack else None,
    )
    body = "\n\n".join(p for p in [
        f"Overview:\n{project.description}" if project.description else None,
        f"Deep dive:\n{project.details}" if include_details and project.details else None,
    ] if p)
    return header, body


def build_article_document(article: Article) -> Tuple[str, str]:
    header = _lines(
        f"Article: {article.title}",
        f"Tags: {', '.join(article.tags)}" if article.tags else None,
    )
    body = "\n\n".join(p for p in [
        f"Summary: {article.summary}" if article.summary else None,
        article.content,
    ] if p)
    return header, body


def build_story_document(story: Story) -> Tuple[str, str]:
    header = f"Story: {story.title}"
    body = _lines(
        f"Situation: {story.situation}",
        f"Task: {story.task}",
        f"Action: {story.action}",
        f"Result: {story.result}",
        f"Skills: {', '.join(story.skills_demonstrated)}" if story.skills_demonstrated else None,
    )
    return header, body


def build_skill_document(skill: Skill) -> Tuple[str, str]:
    header = f"Skill: {skill.name}"
    body = _lines(
        f"Category: {skill.category}" if skill.category else None,
        f"Proficiency: {skill.proficiency}/5" if isinstance(skill.proficiency, int) else None,
        f"Years: {skill.years_of_experience:g}" if skill.years_of_experience is not None else None,
        "Primary: yes" if skill.is_primary else "Primary: no",
    )
    return header, body


def experience_title(experience: Experience) -> str:
    return f"{experience.role} @ {experience.company}"


def build_experience_document(experience: Experience, include_details: bool = True) -> Tuple[str, str]:
    dates = None
    if experience.start_date or experience.end_date:
        dates = f"Dates: {experience.start_date or 'n/a'} to {experience.end_date or 'Present'}"
    header = _lines(
        f"Experience: {experience_title(experience)}",
        f"Location: {experience.location}" if experience.location else None,
        f"Type: {experience.employment_type}" if experience.employment_type else None,
        dates,
        f"Tech: {', '.join(experience.tech_stack)}" if experience.tech_stack else None,
    )
    highlights = [h.strip() for h in experience.highlights if str(h or "").strip()]
    body = "\n\n".join(p for p in [
        f"Summary: {experience.summary}" if experience.summary else None,
        "Highlights:\n- " + "\n- ".join(highlights) if highlights else None,
        f"Detailed narrative:\n{experience.details}" if include_details and experience.details else None,
    ] if p)
    return header, body


def build_resume_document(resume: Resume) -> Tuple[str, str]:
    return f"Resume: {resume.title}", resume.content


def build_document(source_type: str, record: BaseModel) -> Tuple[str, str, Dict[str, Any]]:
    """Header, body and base metadata for any record variant."""
    narrative = get_capabilities().narrative_details
    if source_type == "project":
        header, body = build_project_document(record, include_details=narrative)
        return header, body, {"title": record.title, "slug": record.slug}
    if source_type == "article":
        header, body = build_article_document(record)
        return header, body, {"title": record.title, "slug": record.slug}
    if source_type == "story":
        header, body = build_story_document(record)
        return header, body, {"title": record.title}
    if source_type == "skill":
        header, body = build_skill_document(record)
        return header, body, {"title": record.name, "category": record.category}
    if source_type == "experience":
        header, body = build_experience_document(record, include_details=narrative)
        return header, body, {"title": experience_title(record)}
    if source_type == "resume":
        header, body = build_resume_document(record)
        return header, body, {"title": record.title}
    raise MalformedInputError(f"Unknown source type: {source_type}", field="source_type", value=source_type)


def split_document(header: str, body: str) -> List[str]:
    parts = chunk_text(body, CHUNK_MAX_SIZE)
    if not parts and body.strip():
        # a short record is still a whole record, not a fragment
        parts = [body.strip()]
    contents = [f"{header}\n\n{part}" if header else part for part in parts]
    return [c for c in contents if len(c) >= MIN_CHUNK_LENGTH]


def _plural(source_type: str) -> str:
    return "stories" if source_type == "story" else f"{source_type}s"


def is_indexable(source_type: str, record: BaseModel) -> bool:
    if source_type == "project":
        return record.status == "published" and record.deleted_at is None
    if source_type == "story":
        return bool(record.is_public)
    if source_type == "skill":
        return True
    return getattr(record, "status", "published") == "published"


# ----------------------
# Record indexing
# ----------------------

@log_function_call
async def index_record(source_type: str, record: BaseModel) -> IndexResult:
    """
    Rebuild the chunk set of one record.

    All chunks are embedded before anything is written; an embedding failure
    leaves the previous chunk set untouched.
    """
    header, body, base_meta = build_document(source_type, record)
    contents = split_document(header, body)
    source_id = record.id

    embeddings = await embed_batched(contents, EMBED_BATCH_SIZE)

    generation = chunk_store.new_generation()
    docs = [
        chunk_store.build_chunk_doc(
            source_type,
            source_id,
            content,
            embeddings[i],
            {**base_meta, "chunk_index": i, "total_chunks": len(contents)},
            generation,
        )
        for i, content in enumerate(contents)
    ]
    removed = await chunk_store.replace_source_chunks(source_type, source_id, docs, generation)

    logger.info(f"Indexed {source_type}:{source_id} - {len(docs)} chunks ({removed} stale removed)")
    return IndexResult(
        source_type=source_type,
        source_id=source_id,
        total_chunks=len(contents),
        inserted=len(docs),
        removed=removed,
    )


async def index_project(project: Project) -> IndexResult:
    return await index_record("project", project)


async def index_article(article: Article) -> IndexResult:
    return await index_record("article", article)


async def index_story(story: Story) -> IndexResult:
    return await index_record("story", story)


async def index_skill(skill: Skill) -> IndexResult:
    return await index_record("skill", skill)


async def index_experience(experience: Experience) -> IndexResult:
    return await index_record("experience", experience)


async def index_resume(resume: Resume) -> IndexResult:
    return await index_record("resume", resume)


@log_function_call
async def remove_index(source_type: str, source_id: str) -> IndexResult:
    removed = await chunk_store.delete_source_chunks(source_type, source_id)
    logger.info(f"Removed {removed} chunks for {source_type}:{source_id}")
    return IndexResult(source_type=source_type, source_id=source_id, removed=removed)


async def sync_record(source_type: str, source_id: str) -> IndexResult:
    """Publish lifecycle hook: index a published record, drop chunks of anything else."""
    record = await get_record(source_type, source_id)
    if record is None or not is_indexable(source_type, record):
        return await remove_index(source_type, source_id)
    return await index_record(source_type, record)


async def rebuild_all() -> Dict[str, int]:
    """Re-index every published record and clear chunks of unpublished ones."""
    counts: Dict[str, int] = {}
    semaphore = asyncio.Semaphore(REBUILD_CONCURRENCY)

    async def _one(source_type: str, record: BaseModel) -> str:
        async with semaphore:
            try:
                if is_indexable(source_type, record):
                    await index_record(source_type, record)
                    return "indexed"
                await remove_index(source_type, record.id)
                return "removed"
            except PortfolioAIBaseException as e:
                logger.error(f"Rebuild failed for {source_type}:{record.id}: {e.message}")
                return "failed"

    for source_type in CONTENT_SOURCE_TYPES:
        records = await list_records(source_type)
        outcomes = await asyncio.gather(*[_one(source_type, r) for r in records])
        for outcome in ("indexed", "removed", "failed"):
            counts[f"{_plural(source_type)}_{outcome}"] = sum(1 for o in outcomes if o == outcome)

    logger.info(f"Rebuild completed: {counts}")
    return counts


# ----------------------
# Free-form knowledge
# ----------------------

async def _embed_with_fallback(batch: List[str]) -> List[Optional[List[float]]]:
    """Embed a batch; if the batch call fails, retry each text alone."""
    try:
        return await embed_batch(batch)
    except UpstreamUnavailableError as e:
        logger.warning(f"Batch embedding failed, retrying {len(batch)} chunks individually: {e.message}")

    out: List[Optional[List[float]]] = []
    for text in batch:
        try:
            out.append((await embed_batch([text]))[0])
        except UpstreamUnavailableError:
            out.append(None)
    return out


@log_function_call
async def ingest_text(
    title: str,
    content: str,
    source_type: str = "article",
    source_id: Optional[str] = None,
    extra_metadata: Optional[Dict[str, Any]] = None,
) -> IndexResult:
    """
    Chunk and store free-form text under (source_type, source_id).

    Chunks are embedded and inserted individually where needed, so a partial
    failure is reported as counts plus the failed chunk indices. The previous
    chunk set of the source is dropped once at least one new chunk landed.
    """
    title = (title or "").strip()
    content = (content or "").strip()
    if not title:
        raise MalformedInputError("title is required", field="title")
    if len(content) < MIN_CHUNK_LENGTH:
        raise MalformedInputError("content is too short", field="content", value=len(content))
    if source_type not in KNOWLEDGE_SOURCE_TYPES:
        source_type = "article"
    source_id = source_id or title

    parts = chunk_text(content, CHUNK_MAX_SIZE)
    generation = chunk_store.new_generation()
    result = IndexResult(source_type=source_type, source_id=source_id, total_chunks=len(parts))

    for start in range(0, len(parts), EMBED_BATCH_SIZE):
        batch = parts[start:start + EMBED_BATCH_SIZE]
        vectors = await _embed_with_fallback(batch)
        for offset, (text, vector) in enumerate(zip(batch, vectors)):
            index = start + offset
            if vector is None:
                result.failed += 1
                result.failed_chunks.append(index)
                continue
            doc = chunk_store.build_chunk_doc(
                source_type,
                source_id,
                text,
                vector,
                {"title": title, "chunk_index": index, "total_chunks": len(parts), **(extra_metadata or {})},
                generation,
            )
            try:
                await chunk_store.insert_chunk(doc)
                result.inserted += 1
            except Exception as e:
                logger.error(f"Chunk {index} insert failed for {source_type}:{source_id}: {e}")
                result.failed += 1
                result.failed_chunks.append(index)

    if result.inserted:
        result.removed = await chunk_store.retire_generations(source_type, source_id, generation)

    logger.info(
        f"Ingested {source_type}:{source_id} - {result.inserted}/{result.total_chunks} chunks, {result.failed} failed"
    )
    return result


async def ingest_file(filename: str, data: bytes, source_type: str = "article") -> IndexResult:
    text = extract_upload_text(filename, data)
    title = Path(filename).stem or filename
    return await ingest_text(
        title,
        text,
        source_type=source_type,
        source_id=content_hash(data),
        extra_metadata={"original_filename": filename, "input_method": "upload"},
    )
