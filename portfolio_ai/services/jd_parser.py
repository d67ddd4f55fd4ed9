"""
Job description parsing.

The pattern parser needs no external call: it walks the JD line by line,
tracks which section it is in (requirements, nice-to-have, responsibilities)
and picks up skills from the declarative catalog. An optional LLM pass can
refine the result; its output is sanitized and merged, never trusted alone.
"""
import asyncio
import re
from typing import List, Optional

from portfolio_ai.helpers.prompts import JD_PARSE_PROMPT
from portfolio_ai.models.models import JDParseResult
from portfolio_ai.services.skill_taxonomy import (
    SOFT_SKILL_TERMS,
    canonical_name,
    extract_skills_from_text,
    is_generic,
)
from portfolio_ai.utils.config import JD_MAX_CHARS, JD_MIN_CHARS, LLM_TIMEOUT
from portfolio_ai.utils.exceptions import MalformedInputError
from portfolio_ai.utils.logging_config import get_logger
from portfolio_ai.utils.utils import normalize_skill_key, ollama_generate, safe_json

logger = get_logger(__name__)

MAX_REQUIREMENT_WORDS = 6

PREFERRED_MARKERS = re.compile(
    r"\b(nice[\s-]to[\s-]have|preferred|bonus|a plus|is a plus|desirable|good to have)\b", re.I
)
REQUIRED_MARKERS = re.compile(r"\b(must|required|requirements?|qualifications?|you have|you bring)\b", re.I)
RESPONSIBILITY_MARKERS = re.compile(
    r"^(responsibilities|what you('|’)ll do|what you will do|the role|your impact|day to day)\b", re.I
)
ENTRY_LEVEL_PATTERNS = re.compile(
    r"\b(new[\s-]grad(uate)?s?|entry[\s-]level|junior|early[\s-]career|recent graduates?|"
    r"0\s*(-|to|–)\s*2\s*years?|graduate (program|role))\b",
    re.I,
)
# "mentor junior engineers" describes the team, not the role
JUNIOR_AS_REPORTS = re.compile(
    r"\b(mentor(s|ing)?|coach(es|ing)?|lead(s|ing)?|guid(e|es|ing)|manag(e|es|ing)|support(s|ing)?)"
    r"\s+(our\s+|other\s+|a team of\s+)?junior\b",
    re.I,
)
SENIOR_YEARS = 3
YEARS_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*\+?\s*(?:(?:-|to|–)\s*\d+\s*)?(?:years?|yrs?)\b", re.I)
BULLET_PREFIX = re.compile(r"^\s*(?:[-*•·]+|\d+[.)])\s*")
SEGMENT_SPLIT = re.compile(r";|\.\s+|\.$")


def validate_jd_text(jd_text: str) -> str:
    text = str(jd_text or "").strip()
    if len(text) < JD_MIN_CHARS:
        raise MalformedInputError(
            f"Please provide a valid job description (at least {JD_MIN_CHARS} characters)",
            field="jd",
            value=len(text),
        )
    if len(text) > JD_MAX_CHARS:
        raise MalformedInputError(
            f"Job description is too long (max {JD_MAX_CHARS} characters)",
            field="jd",
            value=len(text),
        )
    return text


def is_entry_level(jd_text: str, years_experience: Optional[float] = None) -> bool:
    if years_experience is not None and years_experience >= SENIOR_YEARS:
        return False
    if ENTRY_LEVEL_PATTERNS.search(JUNIOR_AS_REPORTS.sub(" ", jd_text or "")):
        return True
    return years_experience is not None and years_experience <= 1


def extract_years_experience(jd_text: str) -> Optional[float]:
    m = YEARS_PATTERN.search(jd_text or "")
    return float(m.group(1)) if m else None


def sanitize_requirements(terms: List[str]) -> List[str]:
    """Canonical, deduped requirement terms without generic or sentence-length entries."""
    out: List[str] = []
    seen = set()
    for raw in terms or []:
        term = re.sub(r"\s+", " ", str(raw or "")).strip(" -*•.,;:")
        if not term or len(term.split()) > MAX_REQUIREMENT_WORDS or is_generic(term):
            continue
        term = canonical_name(term)
        key = normalize_skill_key(term)
        if not key or key in seen:
            continue
        seen.add(key)
        out.append(term)
    return out


def _heading(line: str) -> Optional[str]:
    """Section name when `line` is a heading, else None."""
    head = line.split(":", 1)[0].strip()
    if len(head) > 40:
        return None
    if ":" not in line and extract_skills_from_text(line):
        # "Python required" is a requirement, not a heading
        return None
    if RESPONSIBILITY_MARKERS.match(head):
        return "responsibilities"
    if PREFERRED_MARKERS.search(head):
        return "preferred"
    if REQUIRED_MARKERS.search(head):
        return "required"
    return None


def parse_jd(jd_text: str) -> JDParseResult:
    """Pattern-based parse; deterministic for a given text."""
    required: List[str] = []
    preferred: List[str] = []
    neutral: List[str] = []
    responsibilities: List[str] = []
    section = None

    for raw_line in str(jd_text or "").splitlines():
        line = BULLET_PREFIX.sub("", raw_line).strip()
        if not line:
            continue

        heading = _heading(line)
        if heading:
            section = heading
            line = line.split(":", 1)[1].strip() if ":" in line else ""
            if not line:
                continue

        for segment in SEGMENT_SPLIT.split(line):
            segment = segment.strip()
            if not segment:
                continue
            skills = extract_skills_from_text(segment)
            if PREFERRED_MARKERS.search(segment):
                preferred.extend(skills)
            elif REQUIRED_MARKERS.search(segment):
                required.extend(skills)
            elif section == "preferred":
                preferred.extend(skills)
            elif section == "required":
                required.extend(skills)
            else:
                if section == "responsibilities":
                    responsibilities.append(segment)
                neutral.extend(skills)

    # untagged mentions count as requirements only when nothing was tagged
    if not required:
        required = list(neutral)

    required = sanitize_requirements(required)
    required_keys = {normalize_skill_key(r) for r in required}
    preferred = [p for p in sanitize_requirements(preferred) if normalize_skill_key(p) not in required_keys]

    keywords = sanitize_requirements(required + preferred + neutral)
    years = extract_years_experience(jd_text)
    lower = str(jd_text or "").lower()

    return JDParseResult(
        required_skills=required,
        preferred_skills=preferred,
        responsibilities=responsibilities[:12],
        keywords=keywords,
        soft_skills=[s for s in SOFT_SKILL_TERMS if s in lower],
        years_experience=years,
        entry_level=is_entry_level(jd_text, years),
    )


def _as_list(x) -> List[str]:
    if x is None:
        return []
    if isinstance(x, str):
        return [p.strip() for p in x.replace(";", ",").split(",") if p.strip()]
    if isinstance(x, list):
        return [str(t).strip() for t in x if str(t).strip()]
    return []


def merge_parse_results(base: JDParseResult, data: dict) -> JDParseResult:
    required = sanitize_requirements(base.required_skills + _as_list(data.get("required_skills")))
    required_keys = {normalize_skill_key(r) for r in required}
    preferred = [
        p for p in sanitize_requirements(base.preferred_skills + _as_list(data.get("preferred_skills")))
        if normalize_skill_key(p) not in required_keys
    ]

    years = base.years_experience
    if years is None:
        try:
            raw = data.get("years_experience")
            years = float(raw) if raw not in (None, "") else None
        except (TypeError, ValueError):
            years = None

    return JDParseResult(
        required_skills=required,
        preferred_skills=preferred,
        responsibilities=base.responsibilities or _as_list(data.get("responsibilities"))[:12],
        keywords=sanitize_requirements(base.keywords + _as_list(data.get("keywords"))),
        soft_skills=base.soft_skills or _as_list(data.get("soft_skills")),
        years_experience=years,
        entry_level=base.entry_level and not (years is not None and years >= SENIOR_YEARS),
    )


async def refine_with_llm(jd_text: str, base: JDParseResult) -> JDParseResult:
    """Merge an LLM parse into `base`; any failure keeps the pattern result."""
    loop = asyncio.get_running_loop()
    try:
        raw = await asyncio.wait_for(
            loop.run_in_executor(None, ollama_generate, JD_PARSE_PROMPT.format(jd=jd_text)),
            timeout=LLM_TIMEOUT,
        )
    except Exception as e:
        logger.warning(f"LLM JD parse unavailable, using pattern parse only: {e}")
        return base

    data = safe_json(raw, fallback={})
    if not data:
        logger.warning("LLM JD parse returned no JSON, using pattern parse only")
        return base
    return merge_parse_results(base, data)
