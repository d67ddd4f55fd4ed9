from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional

from portfolio_ai.models.models import ChunkReference, IndexResult

# -------- Retrieval --------
class RetrieveRequest(BaseModel):
    query: str = Field(..., min_length=1)
    top_k: int = Field(5, ge=1, le=50)
    source_types: Optional[List[str]] = None
    catalog_fallback: bool = False

class RetrieveResponse(BaseModel):
    chunks: List[ChunkReference] = []
    context: str = ""
    used_catalog: bool = False

# -------- Chat --------
class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    conversation_history: List[ChatTurn] = []
    mode: Literal["auto", "tech", "behavior"] = "auto"
    session_context: Optional[str] = None

class ChatResponse(BaseModel):
    answer: str
    sources: List[ChunkReference] = []
    used_catalog: bool = False

# -------- JD match --------
class JDMatchRequest(BaseModel):
    jd: str
    use_llm_parse: Optional[bool] = None

class JDMatchResponse(BaseModel):
    match_score: int
    matched_skills: List[Dict[str, Any]] = []
    gaps: List[str] = []
    breakdown: Dict[str, Any]
    requirements: List[Dict[str, Any]] = []
    summary: str = ""
    report_markdown: str = ""
    report_source: str = "local"
    parsed_jd: Dict[str, Any]
    relevant_projects: List[Dict[str, Any]] = []
    suggested_stories: List[Dict[str, Any]] = []
    sources: List[Dict[str, Any]] = []

# -------- Admin / knowledge --------
class KnowledgeTextRequest(BaseModel):
    title: str = Field(..., min_length=1)
    content: str
    source_type: str = "article"
    source_id: Optional[str] = None

class RebuildResponse(BaseModel):
    success: bool = True
    counts: Dict[str, int] = {}

class IndexResponse(BaseModel):
    success: bool = True
    result: IndexResult
