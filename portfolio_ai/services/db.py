import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING, TEXT
from pymongo.operations import SearchIndexModel

from portfolio_ai.utils.config import (
    MONGO_DETAILS,
    DB_NAME,
    VECTOR_SEARCH_MODE,
    VECTOR_INDEX_NAME,
    EMBED_DIMENSIONS,
    STORE_SCHEMA_VERSION,
)
from portfolio_ai.utils.exceptions import ConfigurationError, SchemaDriftError
from portfolio_ai.utils.logging_config import get_logger

logger = get_logger(__name__)

logger.info(f"Initializing MongoDB connection to database: {DB_NAME}")

try:
    client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_DETAILS)
    db = client[DB_NAME]
    logger.info("MongoDB client initialized successfully")
except Exception as e:
    logger.error(f"Failed to initialize MongoDB client: {e}")
    raise

# Collections
chunks_coll = db["chunks"]
projects_coll = db["projects"]
articles_coll = db["articles"]
stories_coll = db["stories"]
skills_coll = db["skills"]
experiences_coll = db["experiences"]
resumes_coll = db["resumes"]

CONTENT_COLLECTIONS = {
    "project": projects_coll,
    "article": articles_coll,
    "story": stories_coll,
    "skill": skills_coll,
    "experience": experiences_coll,
    "resume": resumes_coll,
}

TEXT_INDEX_NAME = "chunks_content_text"
VECTOR_SEARCH_MODES = ("auto", "atlas", "local")


class StoreCapabilities:
    """What the chunk store supports, resolved once at startup."""

    def __init__(self, vector_search: bool = False, text_index: bool = False, schema_version: int = STORE_SCHEMA_VERSION):
        self.vector_search = vector_search
        self.text_index = text_index
        self.schema_version = schema_version

    @property
    def narrative_details(self) -> bool:
        return self.schema_version >= 2

    def to_dict(self):
        return {
            "vector_search": self.vector_search,
            "text_index": self.text_index,
            "schema_version": self.schema_version,
            "narrative_details": self.narrative_details,
        }


_capabilities = StoreCapabilities()


def get_capabilities() -> StoreCapabilities:
    return _capabilities


def set_capabilities(caps: StoreCapabilities) -> None:
    global _capabilities
    _capabilities = caps


async def _has_vector_index() -> bool:
    try:
        cursor = chunks_coll.list_search_indexes(VECTOR_INDEX_NAME)
        indexes = await cursor.to_list(length=None)
    except Exception as e:
        logger.debug(f"Search index listing unavailable: {e}")
        return False
    return any(idx.get("name") == VECTOR_INDEX_NAME for idx in indexes)


async def _has_text_index() -> bool:
    info = await chunks_coll.index_information()
    for spec in info.values():
        if any(kind == TEXT or kind == "text" for _, kind in spec.get("key", [])):
            return True
    return False


async def resolve_capabilities(force_local: bool = False) -> StoreCapabilities:
    """
    Inspect the chunk store once and pin the capability flags.

    `force_local` skips the vector index probe; the text index is still detected.
    """
    if VECTOR_SEARCH_MODE not in VECTOR_SEARCH_MODES:
        raise ConfigurationError(
            f"Unknown VECTOR_SEARCH_MODE '{VECTOR_SEARCH_MODE}'", config_key="VECTOR_SEARCH_MODE"
        )

    vector = False
    if VECTOR_SEARCH_MODE != "local" and not force_local:
        vector = await _has_vector_index()
        if VECTOR_SEARCH_MODE == "atlas" and not vector:
            raise SchemaDriftError(
                f"VECTOR_SEARCH_MODE=atlas but search index '{VECTOR_INDEX_NAME}' is missing",
                capability="vector_search",
            )

    caps = StoreCapabilities(
        vector_search=vector,
        text_index=await _has_text_index(),
        schema_version=STORE_SCHEMA_VERSION,
    )
    set_capabilities(caps)
    logger.info(f"Store capabilities resolved: {caps.to_dict()}")
    return caps


async def init_indexes():
    """Index initialization for collections."""
    logger.info("Starting database index initialization")

    try:
        await chunks_coll.create_index(
            [("owner_id", ASCENDING), ("source_type", ASCENDING), ("source_id", ASCENDING)]
        )
        await chunks_coll.create_index([("content", TEXT)], name=TEXT_INDEX_NAME, default_language="english")
        logger.debug("Created source and text indexes on chunks")
    except Exception as e:
        logger.warning(f"Could not create chunk indexes: {e}")

    if VECTOR_SEARCH_MODE != "local" and not await _has_vector_index():
        try:
            model = SearchIndexModel(
                definition={
                    "fields": [
                        {"type": "vector", "path": "embedding", "numDimensions": EMBED_DIMENSIONS, "similarity": "cosine"},
                        {"type": "filter", "path": "owner_id"},
                        {"type": "filter", "path": "source_type"},
                    ]
                },
                name=VECTOR_INDEX_NAME,
                type="vectorSearch",
            )
            await chunks_coll.create_search_index(model)
            logger.info(f"Requested vector search index {VECTOR_INDEX_NAME}")
        except Exception as e:
            logger.warning(f"Vector search index unavailable, local cosine scan will be used: {e}")

    for source_type, coll in CONTENT_COLLECTIONS.items():
        try:
            await coll.create_index([("owner_id", ASCENDING), ("status", ASCENDING)])
            await coll.create_index([("id", ASCENDING)], unique=True)
        except Exception as e:
            logger.warning(f"Could not create indexes on {source_type} collection: {e}")

    try:
        await projects_coll.create_index([("is_featured", DESCENDING), ("display_order", ASCENDING)])
    except Exception as e:
        logger.warning(f"Could not create ordering index on projects: {e}")

    logger.info("Database index initialization completed")


def to_dict(doc):
    if not doc:
        return None
    doc["_id"] = str(doc["_id"])
    return doc
