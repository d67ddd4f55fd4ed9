"""
Declarative skill tables used by JD parsing and coverage scoring.

SKILL_CATALOG lists canonical skills with their aliases; REQUIREMENT_CATEGORIES
maps each requirement category to the expansion terms that count as evidence
for it. Both are compiled once at import and queried by normalized key.
"""
import re
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from portfolio_ai.utils.utils import normalize_skill_key

# (canonical name, requirement category, aliases)
SKILL_CATALOG: List[Tuple[str, str, List[str]]] = [
    # Languages
    ("Python", "languages", ["python", "py"]),
    ("JavaScript", "languages", ["javascript", "js"]),
    ("TypeScript", "languages", ["typescript", "ts"]),
    ("Java", "languages", ["java"]),
    ("Go", "languages", ["golang", "go lang"]),
    ("Rust", "languages", ["rust"]),
    ("C++", "languages", ["c++", "cpp", "c plus plus"]),
    ("C#", "languages", ["c#", "csharp", "c sharp"]),
    ("Kotlin", "languages", ["kotlin"]),
    ("Swift", "languages", ["swift"]),
    ("Ruby", "languages", ["ruby"]),
    ("Scala", "languages", ["scala"]),
    ("SQL", "databases", ["sql"]),
    # AI systems
    ("RAG", "rag", ["rag", "retrieval augmented generation", "retrieval-augmented generation"]),
    ("Vector Databases", "rag", ["vector database", "vector databases", "vector db", "vector store"]),
    ("Embeddings", "rag", ["embeddings", "embedding models"]),
    ("pgvector", "rag", ["pgvector"]),
    ("Pinecone", "rag", ["pinecone"]),
    ("LangChain", "agents", ["langchain"]),
    ("LangGraph", "agents", ["langgraph"]),
    ("LlamaIndex", "agents", ["llamaindex", "llama index"]),
    ("AI Agents", "agents", ["ai agents", "agentic", "multi-agent", "agent frameworks"]),
    ("LLMs", "llm", ["llm", "llms", "large language models", "large language model"]),
    ("Prompt Engineering", "llm", ["prompt engineering"]),
    ("OpenAI API", "llm", ["openai", "openai api", "gpt-4", "gpt"]),
    ("Hugging Face", "ml", ["hugging face", "huggingface", "transformers"]),
    ("PyTorch", "ml", ["pytorch", "torch"]),
    ("TensorFlow", "ml", ["tensorflow", "keras"]),
    ("scikit-learn", "ml", ["scikit-learn", "sklearn"]),
    ("Machine Learning", "ml", ["machine learning", "ml"]),
    ("NLP", "ml", ["nlp", "natural language processing"]),
    # Cloud
    ("AWS", "cloud", ["aws", "amazon web services"]),
    ("GCP", "cloud", ["gcp", "google cloud", "google cloud platform"]),
    ("Azure", "cloud", ["azure", "microsoft azure"]),
    ("Vercel", "cloud", ["vercel"]),
    ("Serverless", "cloud", ["serverless", "lambda", "cloud functions"]),
    # Shipping
    ("Docker", "containers", ["docker", "containers", "containerization"]),
    ("Kubernetes", "containers", ["kubernetes", "k8s"]),
    ("Terraform", "ci_cd", ["terraform", "infrastructure as code"]),
    ("CI/CD", "ci_cd", ["ci/cd", "ci cd", "continuous integration", "continuous delivery"]),
    ("GitHub Actions", "ci_cd", ["github actions", "gh actions"]),
    ("Jenkins", "ci_cd", ["jenkins"]),
    ("Git", "ci_cd", ["git"]),
    # Databases
    ("PostgreSQL", "databases", ["postgresql", "postgres", "psql"]),
    ("MySQL", "databases", ["mysql"]),
    ("MongoDB", "databases", ["mongodb", "mongo"]),
    ("Redis", "databases", ["redis"]),
    ("Elasticsearch", "databases", ["elasticsearch", "opensearch"]),
    # Web
    ("FastAPI", "web_backend", ["fastapi"]),
    ("Django", "web_backend", ["django"]),
    ("Flask", "web_backend", ["flask"]),
    ("Node.js", "web_backend", ["node.js", "nodejs"]),
    ("REST APIs", "web_backend", ["rest api", "rest apis", "restful"]),
    ("GraphQL", "web_backend", ["graphql"]),
    ("React", "web_frontend", ["react", "react.js", "reactjs"]),
    ("Next.js", "web_frontend", ["next.js", "nextjs"]),
    ("Vue", "web_frontend", ["vue", "vue.js"]),
    ("Tailwind CSS", "web_frontend", ["tailwind", "tailwind css"]),
    # Streaming
    ("Kafka", "streaming", ["kafka", "apache kafka"]),
    ("Spark", "streaming", ["spark", "pyspark", "apache spark"]),
    ("Airflow", "streaming", ["airflow"]),
]

# Evidence terms per requirement category: a hit on any of them satisfies a
# requirement of that category (near-synonyms and substitutable tools).
REQUIREMENT_CATEGORIES: Dict[str, List[str]] = {
    "rag": ["rag", "retrieval", "retrieval augmented", "embedding", "embeddings", "vector", "pgvector",
            "pinecone", "chroma", "weaviate", "qdrant", "faiss", "semantic search", "hybrid search", "rerank"],
    "agents": ["langchain", "langgraph", "llamaindex", "crewai", "autogen", "agent", "agents", "agentic",
               "tool calling", "function calling", "multi-agent"],
    "llm": ["llm", "llms", "openai", "anthropic", "gpt", "claude", "llama", "ollama", "prompt", "prompting",
            "fine-tuning", "fine tuning"],
    "ml": ["machine learning", "pytorch", "tensorflow", "scikit-learn", "sklearn", "hugging face", "transformers",
           "model training", "nlp"],
    "cloud": ["aws", "amazon web services", "gcp", "google cloud", "azure", "ec2", "s3", "lambda", "cloud run",
              "vercel", "cloudflare", "serverless"],
    "containers": ["docker", "kubernetes", "k8s", "container", "containers", "helm", "ecs", "eks"],
    "ci_cd": ["ci/cd", "github actions", "gitlab ci", "jenkins", "circleci", "terraform", "continuous integration",
              "continuous deployment", "deployment pipeline"],
    "databases": ["sql", "postgresql", "postgres", "mysql", "mongodb", "redis", "sqlite", "supabase", "dynamodb"],
    "web_backend": ["fastapi", "django", "flask", "express", "node.js", "rest", "graphql", "api"],
    "web_frontend": ["react", "next.js", "vue", "svelte", "tailwind", "frontend"],
    "streaming": ["kafka", "spark", "airflow", "flink", "kinesis", "pub/sub"],
}

# Candidate coverage of these groups drives the entry-level floor.
CORE_FIT: Dict[str, List[str]] = {
    "languages": ["languages"],
    "ai_systems": ["rag", "agents", "llm", "ml"],
    "cloud": ["cloud"],
    "shipping": ["ci_cd", "containers"],
}

GENERIC_PHRASES = [
    "problem solving", "problem-solving", "communication", "team player", "teamwork", "collaboration",
    "fast learner", "quick learner", "self-starter", "self starter", "attention to detail", "strong fundamentals",
    "passion", "passionate", "work independently", "growth mindset", "ownership", "detail oriented",
    "detail-oriented", "written and verbal", "interpersonal",
]

SOFT_SKILL_TERMS = [
    "communication", "collaboration", "teamwork", "leadership", "mentoring", "ownership",
    "problem solving", "adaptability", "stakeholder management",
]


def term_pattern(term: str) -> Pattern:
    """Case-insensitive whole-term match that tolerates symbols like '+', '#', '.', '/'."""
    return re.compile(r"(?<![a-z0-9])" + re.escape(term.lower()) + r"(?![a-z0-9])", re.IGNORECASE)


_ALIAS_PATTERNS: List[Tuple[Pattern, str]] = []
_BY_KEY: Dict[str, Tuple[str, str]] = {}

for _name, _category, _aliases in SKILL_CATALOG:
    _BY_KEY[normalize_skill_key(_name)] = (_name, _category)
    for _alias in _aliases:
        _BY_KEY.setdefault(normalize_skill_key(_alias), (_name, _category))
        _ALIAS_PATTERNS.append((term_pattern(_alias), _name))

# Aliases that are ordinary words in lowercase ("go") only count in their cased form.
CASED_ALIASES: List[Tuple[str, str]] = [
    ("Go", r"(?<![A-Za-z0-9])Go(?![A-Za-z0-9]|-to\b)"),
]
for _name, _pattern in CASED_ALIASES:
    _ALIAS_PATTERNS.append((re.compile(_pattern), _name))

_CATEGORY_PATTERNS: Dict[str, List[Tuple[str, Pattern]]] = {
    cat: [(t, term_pattern(t)) for t in terms] for cat, terms in REQUIREMENT_CATEGORIES.items()
}
_CATEGORY_KEYS: Dict[str, set] = {
    cat: {normalize_skill_key(t) for t in terms} for cat, terms in REQUIREMENT_CATEGORIES.items()
}


def lookup_skill(term: str) -> Optional[Tuple[str, str]]:
    """(canonical name, category) for a known skill or alias."""
    return _BY_KEY.get(normalize_skill_key(term))


def canonical_name(term: str) -> str:
    hit = lookup_skill(term)
    return hit[0] if hit else str(term or "").strip()


def requirement_category(term: str) -> Optional[str]:
    hit = lookup_skill(term)
    if hit:
        return hit[1]
    key = normalize_skill_key(term)
    for cat, keys in _CATEGORY_KEYS.items():
        if key in keys:
            return cat
    return None


def is_language(term: str) -> bool:
    return requirement_category(term) == "languages"


def extract_skills_from_text(text: str) -> List[str]:
    """Canonical skill names mentioned in `text`, in order of first appearance."""
    text = str(text or "")
    found: List[Tuple[int, str]] = []
    seen = set()
    for pattern, name in _ALIAS_PATTERNS:
        m = pattern.search(text)
        if m and name not in seen:
            seen.add(name)
            found.append((m.start(), name))
    found.sort(key=lambda x: x[0])
    return [name for _, name in found]


def category_hit(category: str, evidence_text: str, skill_keys: Iterable[str]) -> Optional[str]:
    """First expansion term of `category` present in the evidence or the skill list."""
    keys = set(skill_keys)
    for term, pattern in _CATEGORY_PATTERNS.get(category, []):
        if normalize_skill_key(term) in keys or (evidence_text and pattern.search(evidence_text)):
            return term
    if category == "languages":
        for key in keys:
            hit = _BY_KEY.get(key)
            if hit and hit[1] == "languages":
                return hit[0]
        for pattern, name in _ALIAS_PATTERNS:
            if lookup_skill(name)[1] == "languages" and evidence_text and pattern.search(evidence_text):
                return name
    return None


def is_generic(term: str) -> bool:
    t = str(term or "").lower()
    return any(p in t for p in GENERIC_PHRASES)
