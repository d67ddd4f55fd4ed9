import os
from dotenv import load_dotenv

load_dotenv()

# ========================
# Store
# ========================
MONGO_DETAILS = os.getenv("MONGO_DETAILS", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "portfolio_ai_db")
DEFAULT_OWNER_ID = os.getenv("DEFAULT_OWNER_ID", "00000000-0000-0000-0000-000000000001")

# auto: use Atlas $vectorSearch when the index exists, otherwise exact cosine scan
VECTOR_SEARCH_MODE = os.getenv("VECTOR_SEARCH_MODE", "auto").lower()
VECTOR_INDEX_NAME = os.getenv("VECTOR_INDEX_NAME", "chunks_embedding_index")
# 2 = projects/experiences carry the long-form `details` narrative
STORE_SCHEMA_VERSION = int(os.getenv("STORE_SCHEMA_VERSION", "2"))

# ========================
# Models (Ollama)
# ========================
OLLAMA = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
LLM_MODEL = os.getenv("LLM_MODEL", "llama3.1:8b")
EMBED_MODEL = os.getenv("EMBED_MODEL", "nomic-embed-text")
EMBED_DIMENSIONS = int(os.getenv("EMBED_DIMENSIONS", "768"))
EMBED_BATCH_SIZE = max(1, min(int(os.getenv("EMBED_BATCH_SIZE", "32")), 128))
EMBED_TIMEOUT = float(os.getenv("EMBED_TIMEOUT", "30"))
LLM_TIMEOUT = float(os.getenv("LLM_TIMEOUT", "120"))
REPORT_TIMEOUT = float(os.getenv("REPORT_TIMEOUT", "25"))

# ========================
# Chunking / retrieval
# ========================
CHUNK_MAX_SIZE = int(os.getenv("CHUNK_MAX_SIZE", "1000"))
MIN_CHUNK_LENGTH = int(os.getenv("MIN_CHUNK_LENGTH", "50"))
RRF_K = int(os.getenv("RRF_K", "60"))
SIMILARITY_THRESHOLD = float(os.getenv("SIMILARITY_THRESHOLD", "0.3"))
MAX_SOURCE_CONTEXT_CHARS = int(os.getenv("MAX_SOURCE_CONTEXT_CHARS", "1800"))
MAX_RETRIEVAL_QUERY_CHARS = int(os.getenv("MAX_RETRIEVAL_QUERY_CHARS", "2600"))
MAX_SESSION_CONTEXT_CHARS = 12000

# ========================
# Catalog fallback
# ========================
CATALOG_SCORE = float(os.getenv("CATALOG_SCORE", "0.02"))
CATALOG_MAX_SOURCES = int(os.getenv("CATALOG_MAX_SOURCES", "8"))
CATALOG_CAPS = {
    "resume": 1,
    "project": 5,
    "experience": 2,
    "skill": 4,
    "article": 2,
    "story": 2,
}
SOURCE_TYPE_ORDER = ["resume", "project", "experience", "skill", "article", "story"]

PUBLIC_SITE_URL = os.getenv("PUBLIC_SITE_URL", "http://localhost:8000").rstrip("/")

# ========================
# JD matching
# ========================
JD_MIN_CHARS = int(os.getenv("JD_MIN_CHARS", "50"))
JD_MAX_CHARS = int(os.getenv("JD_MAX_CHARS", "10000"))
ENABLE_LLM_JD_PARSE = os.getenv("ENABLE_LLM_JD_PARSE", "false").lower() == "true"

# ========================
# Chat
# ========================
PORTFOLIO_OWNER_NAME = os.getenv("PORTFOLIO_OWNER_NAME", "the portfolio owner")
