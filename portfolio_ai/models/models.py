from pydantic import BaseModel, Field
from typing import List, Dict, Optional, Any, Literal

SourceType = Literal["project", "article", "story", "skill", "experience", "resume", "catalog"]
RecordStatus = Literal["draft", "published", "archived"]

CONTENT_SOURCE_TYPES = ("project", "article", "story", "skill", "experience", "resume")


# -------- Content records --------
class Project(BaseModel):
    id: str
    owner_id: Optional[str] = None
    slug: str
    title: str
    subtitle: Optional[str] = None
    description: str = ""
    details: Optional[str] = None
    tech_stack: List[str] = Field(default_factory=list)
    repo_url: Optional[str] = None
    demo_url: Optional[str] = None
    article_url: Optional[str] = None
    is_featured: bool = False
    display_order: int = 0
    status: RecordStatus = "draft"
    deleted_at: Optional[Any] = None


class Article(BaseModel):
    id: str
    owner_id: Optional[str] = None
    slug: str
    title: str
    summary: Optional[str] = None
    content: str = ""
    tags: List[str] = Field(default_factory=list)
    status: RecordStatus = "draft"
    published_at: Optional[Any] = None


class Story(BaseModel):
    id: str
    owner_id: Optional[str] = None
    title: str
    situation: str = ""
    task: str = ""
    action: str = ""
    result: str = ""
    skills_demonstrated: List[str] = Field(default_factory=list)
    is_public: bool = True
    status: RecordStatus = "published"


class Skill(BaseModel):
    id: str
    owner_id: Optional[str] = None
    name: str
    category: str = "other"  # language, framework, tool, platform, methodology, other
    proficiency: Optional[int] = None  # 1-5
    years_of_experience: Optional[float] = None
    is_primary: bool = False


class Experience(BaseModel):
    id: str
    owner_id: Optional[str] = None
    company: str
    role: str
    location: Optional[str] = None
    employment_type: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    summary: Optional[str] = None
    details: Optional[str] = None
    highlights: List[str] = Field(default_factory=list)
    tech_stack: List[str] = Field(default_factory=list)
    status: RecordStatus = "published"


class Resume(BaseModel):
    id: str = "resume"
    owner_id: Optional[str] = None
    title: str = "Resume"
    content: str = ""
    status: RecordStatus = "published"


# -------- Chunks --------
class Chunk(BaseModel):
    id: str
    owner_id: str
    source_type: str
    source_id: str
    content: str
    embedding: List[float] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    generation: Optional[str] = None


class ChunkReference(BaseModel):
    chunk_id: str
    source_type: str
    source_title: str
    source_id: Optional[str] = None
    source_slug: Optional[str] = None
    relevance_score: float
    content_preview: str
    url: Optional[str] = None


class RetrievalResult(BaseModel):
    chunks: List[ChunkReference] = Field(default_factory=list)
    context: str = ""


class IndexResult(BaseModel):
    source_type: str
    source_id: str
    total_chunks: int = 0
    inserted: int = 0
    failed: int = 0
    failed_chunks: List[int] = Field(default_factory=list)
    removed: int = 0


# -------- JD scoring --------
class JDParseResult(BaseModel):
    required_skills: List[str] = Field(default_factory=list)
    preferred_skills: List[str] = Field(default_factory=list)
    responsibilities: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    soft_skills: List[str] = Field(default_factory=list)
    years_experience: Optional[float] = None
    entry_level: bool = False


class RequirementMatch(BaseModel):
    term: str
    bucket: Literal["required", "preferred"]
    satisfied: bool = False
    via: Optional[Literal["skill", "evidence", "expansion"]] = None
    matched_on: Optional[str] = None


class BucketScore(BaseModel):
    matched: int = 0
    total: int = 0
    weight: float = 0.0


class ScoreBreakdown(BaseModel):
    raw_coverage: float  # percent
    adjusted_coverage: float  # percent
    curve: float
    entry_level: bool = False
    required: BucketScore = Field(default_factory=BucketScore)
    preferred: BucketScore = Field(default_factory=BucketScore)
    core_fit_categories: List[str] = Field(default_factory=list)
    floor: Optional[int] = None
    floor_applied: bool = False
    cap: Optional[int] = None
    cap_applied: bool = False
    evidence_available: bool = True
    rules_fired: List[str] = Field(default_factory=list)
    explanation: str = ""


class MatchScore(BaseModel):
    score: int
    breakdown: ScoreBreakdown
    gaps: List[str] = Field(default_factory=list)
    requirements: List[RequirementMatch] = Field(default_factory=list)
