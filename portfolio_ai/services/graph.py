import asyncio
from typing import Any, Dict, List, Optional, TypedDict

from langgraph.graph import StateGraph, END

from portfolio_ai.helpers.prompts import JD_REPORT_PROMPT, JD_REPORT_SYSTEM
from portfolio_ai.models.models import ChunkReference, JDParseResult, MatchScore, Project, Skill, Story
from portfolio_ai.services import content
from portfolio_ai.services.jd_parser import parse_jd, refine_with_llm, validate_jd_text
from portfolio_ai.services.matching import matched_skill_names, score_parsed
from portfolio_ai.services.retriever import match_jd_to_skills
from portfolio_ai.utils.config import ENABLE_LLM_JD_PARSE, REPORT_TIMEOUT
from portfolio_ai.utils.exceptions import PortfolioAIBaseException
from portfolio_ai.utils.logging_config import get_logger, PerformanceMonitor
from portfolio_ai.utils.utils import ollama_generate

logger = get_logger(__name__)

TOP_PROJECTS = 5
TOP_STORIES = 3


class JDMatchState(TypedDict, total=False):
    jd_text: str
    use_llm_parse: bool
    parsed: JDParseResult
    sources: List[ChunkReference]
    skills: List[Skill]
    projects: List[Project]
    stories: List[Story]
    match: MatchScore
    summary: str
    report_markdown: str
    report_source: str


def _haystack_score(haystack: str, keywords: List[str]) -> int:
    text = haystack.lower()
    return sum(1 for kw in keywords if kw.strip() and kw.lower().strip() in text)


def score_story(story: Story, keywords: List[str]) -> int:
    return _haystack_score(
        f"{story.title}\n{story.situation}\n{story.task}\n{story.action}\n{story.result}", keywords
    )


def score_project(project: Project, keywords: List[str]) -> int:
    return _haystack_score(
        f"{project.title}\n{project.subtitle or ''}\n{project.description}\n{' '.join(project.tech_stack)}", keywords
    )


def all_keywords(parsed: JDParseResult) -> List[str]:
    return parsed.required_skills + parsed.preferred_skills + parsed.keywords


def build_local_report(parsed: JDParseResult, match: MatchScore, matched: List[str]) -> str:
    """Markdown report from already-computed scores; needs no external call."""
    b = match.breakdown
    lines = [
        "# JD Match Report",
        f"**Match score**: {match.score}%",
        "",
        f"- Required coverage: {b.required.matched}/{b.required.total}",
        f"- Preferred coverage: {b.preferred.matched}/{b.preferred.total}",
        f"- Raw coverage: {b.raw_coverage:.1f}% -> curved {b.adjusted_coverage:.1f}%",
    ]
    if b.entry_level:
        lines.append("- Entry-level role detected")
    if b.core_fit_categories:
        lines.append(f"- Core fit: {', '.join(b.core_fit_categories)}")
    if b.rules_fired:
        lines.append(f"- Rules: {', '.join(b.rules_fired)}")

    lines += ["", "## Matched"]
    lines += [f"- {m}" for m in matched] or ["- (none)"]
    lines += ["", "## Gaps"]
    lines += [f"- {g}" for g in match.gaps] or ["- None"]
    if not b.evidence_available:
        lines += ["", "> Scored on skill names only; no portfolio evidence was retrieved."]
    return "\n".join(lines)


def _satisfied_terms(match: MatchScore) -> List[str]:
    return [r.term for r in match.requirements if r.satisfied]


# LangGraph nodes

async def node_parse(state: JDMatchState) -> Dict[str, Any]:
    jd_text = validate_jd_text(state.get("jd_text", ""))
    parsed = parse_jd(jd_text)
    use_llm = state.get("use_llm_parse")
    if use_llm is None:
        use_llm = ENABLE_LLM_JD_PARSE
    if use_llm:
        parsed = await refine_with_llm(jd_text, parsed)
    logger.info(
        f"JD parsed: {len(parsed.required_skills)} required, {len(parsed.preferred_skills)} preferred, "
        f"entry_level={parsed.entry_level}"
    )
    return {"jd_text": jd_text, "parsed": parsed}


async def _safe(coro, what: str, default):
    try:
        return await coro
    except PortfolioAIBaseException as e:
        logger.warning(f"JD evidence: {what} unavailable: {e.message}")
        return default


async def node_evidence(state: JDMatchState) -> Dict[str, Any]:
    parsed = state["parsed"]
    keywords = all_keywords(parsed)
    sources, skills, projects, stories = await asyncio.gather(
        _safe(match_jd_to_skills(keywords), "retrieval", []),
        _safe(content.get_skills(), "skills", []),
        _safe(content.get_published_projects(), "projects", []),
        _safe(content.get_public_stories(), "stories", []),
    )
    projects = sorted(projects, key=lambda p: -score_project(p, keywords))[:TOP_PROJECTS]
    stories = sorted(stories, key=lambda s: -score_story(s, keywords))[:TOP_STORIES]
    return {"sources": sources, "skills": skills, "projects": projects, "stories": stories}


async def node_score(state: JDMatchState) -> Dict[str, Any]:
    evidence = [s.content_preview for s in state.get("sources", [])]
    skill_names = [s.name for s in state.get("skills", [])]
    match = score_parsed(state["parsed"], skill_names, evidence)
    logger.info(f"JD match score {match.score} ({', '.join(match.breakdown.rules_fired) or 'no rules'})")
    return {"match": match}


async def node_report(state: JDMatchState) -> Dict[str, Any]:
    parsed = state["parsed"]
    match = state["match"]
    matched = _satisfied_terms(match)
    local = build_local_report(parsed, match, matched)

    prompt = JD_REPORT_PROMPT.format(
        required=", ".join(parsed.required_skills) or "n/a",
        preferred=", ".join(parsed.preferred_skills) or "n/a",
        matched=", ".join(matched) or "none",
        score=match.score,
        gaps=", ".join(match.gaps) or "None",
    )
    loop = asyncio.get_running_loop()
    try:
        summary = await asyncio.wait_for(
            loop.run_in_executor(None, lambda: ollama_generate(prompt, system=JD_REPORT_SYSTEM)),
            timeout=REPORT_TIMEOUT,
        )
        summary = (summary or "").strip()
    except asyncio.TimeoutError:
        logger.warning(f"JD report generation timed out after {REPORT_TIMEOUT}s, using local report")
        summary = ""
    except Exception as e:
        logger.warning(f"JD report generation failed, using local report: {e}")
        summary = ""

    if not summary:
        return {"summary": match.breakdown.explanation, "report_markdown": local, "report_source": "local"}
    return {"summary": summary, "report_markdown": f"{local}\n\n## Summary\n{summary}", "report_source": "llm"}


def build_graph():
    g = StateGraph(JDMatchState)
    g.add_node("parse", node_parse)
    g.add_node("evidence", node_evidence)
    g.add_node("score", node_score)
    g.add_node("report", node_report)
    g.set_entry_point("parse")
    g.add_edge("parse", "evidence")
    g.add_edge("evidence", "score")
    g.add_edge("score", "report")
    g.add_edge("report", END)
    return g.compile()


_graph = None


def get_graph():
    global _graph
    if _graph is None:
        _graph = build_graph()
    return _graph


async def run_jd_match(jd_text: str, use_llm_parse: Optional[bool] = None) -> Dict[str, Any]:
    """Run the JD pipeline and shape the response payload."""
    with PerformanceMonitor("jd_match", logger, threshold_ms=5000):
        state = await get_graph().ainvoke({"jd_text": jd_text, "use_llm_parse": use_llm_parse})

    parsed: JDParseResult = state["parsed"]
    match: MatchScore = state["match"]
    sources: List[ChunkReference] = state.get("sources", [])
    skills: List[Skill] = state.get("skills", [])

    overlaps = matched_skill_names(parsed, [s.name for s in skills])
    matched_skills = []
    for skill in skills:
        if skill.name not in overlaps:
            continue
        needle = skill.name.lower()
        matched_skills.append({
            "skill": skill.model_dump(),
            "jd_requirement": overlaps[skill.name],
            "evidence_count": sum(1 for c in sources if needle in c.content_preview.lower()),
        })

    return {
        "match_score": match.score,
        "matched_skills": matched_skills,
        "gaps": match.gaps,
        "breakdown": match.breakdown.model_dump(),
        "requirements": [r.model_dump() for r in match.requirements],
        "summary": state.get("summary", ""),
        "report_markdown": state.get("report_markdown", ""),
        "report_source": state.get("report_source", "local"),
        "parsed_jd": parsed.model_dump(),
        "relevant_projects": [p.model_dump() for p in state.get("projects", [])],
        "suggested_stories": [s.model_dump() for s in state.get("stories", [])],
        "sources": [c.model_dump() for c in sources],
    }
