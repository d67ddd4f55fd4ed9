import re
from typing import List, Optional

from portfolio_ai.models.models import ChunkReference
from portfolio_ai.utils.config import PUBLIC_SITE_URL, MAX_SOURCE_CONTEXT_CHARS
from portfolio_ai.utils.utils import clamp_text

# source types without a slug resolve to a fixed page
FIXED_PATHS = {
    "experience": "/experience",
    "resume": "/api/resume",
    "story": "/stories",
    "skill": "/skills",
}

SLUG_PATHS = {
    "article": "/articles/{slug}",
    "project": "/projects/{slug}",
}


def to_public_url(path: str, base: str = PUBLIC_SITE_URL) -> str:
    if not path:
        return path
    if re.match(r"^https?://", path, re.IGNORECASE):
        return path
    return f"{base}{'' if path.startswith('/') else '/'}{path}"


def resolve_public_url(source_type: str, source_slug: Optional[str] = None) -> Optional[str]:
    template = SLUG_PATHS.get(source_type)
    if template:
        return to_public_url(template.format(slug=source_slug)) if source_slug else None
    path = FIXED_PATHS.get(source_type)
    return to_public_url(path) if path else None


def build_context_snippet(content: str, max_chars: int = MAX_SOURCE_CONTEXT_CHARS) -> str:
    return clamp_text(content, max_chars)


def format_context(sources: List[ChunkReference]) -> str:
    blocks = []
    for idx, ref in enumerate(sources or [], start=1):
        slug_part = f" (slug: {ref.source_slug})" if ref.source_slug else ""
        url = ref.url or resolve_public_url(ref.source_type, ref.source_slug)
        url_line = f"\nURL: {url}" if url else ""
        blocks.append(
            f"SOURCE {idx}\nType: {ref.source_type}\nTitle: {ref.source_title}{slug_part}{url_line}\nSnippet: {ref.content_preview}"
        )
    return "\n\n".join(blocks)
