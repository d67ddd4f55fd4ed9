"""
Readers for the live content collections (one per record variant).
"""
from typing import Dict, List, Optional, Type

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING

from portfolio_ai.models.models import Project, Article, Story, Skill, Experience, Resume
from portfolio_ai.services.db import (
    projects_coll,
    articles_coll,
    stories_coll,
    skills_coll,
    experiences_coll,
    resumes_coll,
    get_capabilities,
)
from portfolio_ai.utils.config import DEFAULT_OWNER_ID
from portfolio_ai.utils.exceptions import DatabaseError, MalformedInputError
from portfolio_ai.utils.logging_config import get_logger

logger = get_logger(__name__)

RECORD_MODELS: Dict[str, Type[BaseModel]] = {
    "project": Project,
    "article": Article,
    "story": Story,
    "skill": Skill,
    "experience": Experience,
    "resume": Resume,
}


def _collection(source_type: str):
    return {
        "project": projects_coll,
        "article": articles_coll,
        "story": stories_coll,
        "skill": skills_coll,
        "experience": experiences_coll,
        "resume": resumes_coll,
    }[source_type]


def _projection(source_type: str) -> Optional[dict]:
    # stores below schema v2 have no narrative column
    if source_type in ("project", "experience") and not get_capabilities().narrative_details:
        return {"details": 0}
    return None


def _to_models(source_type: str, docs: List[dict]) -> List[BaseModel]:
    model = RECORD_MODELS[source_type]
    out = []
    for doc in docs:
        doc.pop("_id", None)
        try:
            out.append(model(**doc))
        except Exception as e:
            logger.warning(f"Skipping malformed {source_type} record {doc.get('id')}: {e}")
    return out


async def _find(source_type: str, flt: dict, sort: list = None, limit: int = 0) -> List[BaseModel]:
    coll = _collection(source_type)
    try:
        cursor = coll.find({"owner_id": DEFAULT_OWNER_ID, **flt}, _projection(source_type))
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        docs = await cursor.to_list(length=None)
    except Exception as e:
        raise DatabaseError(f"Failed to read {source_type} records", operation="find", collection=coll.name, cause=e) from e
    return _to_models(source_type, docs)


async def get_published_projects(limit: int = 0) -> List[Project]:
    return await _find(
        "project",
        {"status": "published", "deleted_at": None},
        sort=[("is_featured", DESCENDING), ("display_order", ASCENDING)],
        limit=limit,
    )


async def get_published_articles(limit: int = 0) -> List[Article]:
    return await _find("article", {"status": "published"}, sort=[("published_at", DESCENDING)], limit=limit)


async def get_public_stories(limit: int = 0) -> List[Story]:
    return await _find("story", {"is_public": True}, sort=[("updated_at", DESCENDING)], limit=limit)


async def get_skills(limit: int = 0) -> List[Skill]:
    return await _find("skill", {}, sort=[("is_primary", DESCENDING), ("proficiency", DESCENDING)], limit=limit)


async def get_published_experiences(limit: int = 0) -> List[Experience]:
    return await _find("experience", {"status": "published"}, sort=[("start_date", DESCENDING)], limit=limit)


async def get_latest_resume() -> Optional[Resume]:
    rows = await _find("resume", {"status": "published"}, sort=[("updated_at", DESCENDING)], limit=1)
    return rows[0] if rows else None


async def list_records(source_type: str) -> List[BaseModel]:
    """Every record of one variant regardless of status or soft-delete marker."""
    return await _find(source_type, {})


async def get_record(source_type: str, source_id: str) -> Optional[BaseModel]:
    if source_type not in RECORD_MODELS:
        raise MalformedInputError(f"Unknown source type: {source_type}", field="source_type", value=source_type)
    rows = await _find(source_type, {"id": source_id}, limit=1)
    return rows[0] if rows else None
