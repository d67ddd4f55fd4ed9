import json

import pytest
from unittest.mock import patch

from portfolio_ai.models.models import JDParseResult
from portfolio_ai.services import jd_parser
from portfolio_ai.utils.exceptions import MalformedInputError

SCENARIO_JD = "Entry-level AI Engineer, must know Python, RAG, AWS; nice-to-have LangChain"

SECTIONED_JD = """Senior Backend Engineer
Requirements:
- 5+ years with Python and PostgreSQL
- Experience with Docker
Nice to have:
- Kafka
- Strong communication skills
Responsibilities:
- Build REST APIs in FastAPI
"""

SENIOR_MENTOR_JD = """Senior Platform Engineer
Requirements:
- 8+ years building distributed systems
- Must know Kubernetes, Kafka, Spark and Terraform
You will mentor junior engineers and review designs.
"""


class TestValidation:
    """JD length bounds"""

    def test_too_short(self):
        with pytest.raises(MalformedInputError) as exc:
            jd_parser.validate_jd_text("Python dev")
        assert exc.value.details["field"] == "jd"

    def test_too_long(self):
        with pytest.raises(MalformedInputError):
            jd_parser.validate_jd_text("python " * 2000)

    def test_strips_whitespace(self):
        assert jd_parser.validate_jd_text(f"  {SCENARIO_JD}\n") == SCENARIO_JD


class TestPatternParse:
    """Section and marker driven parse"""

    def test_inline_markers(self):
        parsed = jd_parser.parse_jd(SCENARIO_JD)
        assert parsed.required_skills == ["Python", "RAG", "AWS"]
        assert parsed.preferred_skills == ["LangChain"]
        assert parsed.entry_level is True

    def test_sections(self):
        parsed = jd_parser.parse_jd(SECTIONED_JD)
        assert parsed.required_skills == ["Python", "PostgreSQL", "Docker"]
        assert parsed.preferred_skills == ["Kafka"]
        assert parsed.responsibilities == ["Build REST APIs in FastAPI"]
        assert "FastAPI" in parsed.keywords
        assert parsed.years_experience == 5.0
        assert parsed.entry_level is False
        assert "communication" in parsed.soft_skills

    def test_untagged_mentions_become_required(self):
        parsed = jd_parser.parse_jd("We work with TypeScript, React and GraphQL every day.")
        assert parsed.required_skills == ["TypeScript", "React", "GraphQL"]
        assert parsed.preferred_skills == []

    def test_go_only_counts_when_cased(self):
        parsed = jd_parser.parse_jd("Backend Engineer. You must know Go and PostgreSQL; we go fast and ship weekly.")
        assert parsed.required_skills == ["Go", "PostgreSQL"]
        assert jd_parser.parse_jd("Let us go build a Go-to checklist for the team").required_skills == []

    def test_parse_is_deterministic(self):
        assert jd_parser.parse_jd(SECTIONED_JD) == jd_parser.parse_jd(SECTIONED_JD)

    def test_entry_level_from_years(self):
        assert jd_parser.is_entry_level("Looking for 0-2 years of experience")
        assert jd_parser.is_entry_level("Backend role", years_experience=1)
        assert not jd_parser.is_entry_level("Staff engineer, 8+ years", years_experience=8)
        assert not jd_parser.is_entry_level("Junior or mid-level backend role", years_experience=4)

    def test_junior_as_title_is_entry_level(self):
        assert jd_parser.is_entry_level("Junior Python Developer building internal tools")

    def test_senior_role_mentoring_juniors(self):
        parsed = jd_parser.parse_jd(SENIOR_MENTOR_JD)
        assert parsed.years_experience == 8.0
        assert parsed.entry_level is False
        assert not jd_parser.is_entry_level("You will mentor junior engineers and coach junior analysts")


class TestSanitize:
    """Requirement cleanup"""

    def test_drops_generic_and_long_terms(self):
        terms = ["python", "Problem solving", "a very long requirement that keeps going on", "Python", "k8s"]
        assert jd_parser.sanitize_requirements(terms) == ["Python", "Kubernetes"]

    def test_merge_keeps_buckets_disjoint(self):
        base = JDParseResult(required_skills=["Python"], keywords=["Python"])
        merged = jd_parser.merge_parse_results(
            base,
            {"required_skills": "python, aws", "preferred_skills": ["AWS", "Kafka"], "years_experience": "3"},
        )
        assert merged.required_skills == ["Python", "AWS"]
        assert merged.preferred_skills == ["Kafka"]
        assert merged.years_experience == 3.0

    def test_merged_senior_years_clear_entry_level(self):
        base = jd_parser.parse_jd(SCENARIO_JD)
        assert base.entry_level is True
        merged = jd_parser.merge_parse_results(base, {"years_experience": 6})
        assert merged.entry_level is False


class TestLLMRefinement:
    """Optional LLM pass"""

    @pytest.mark.asyncio
    @patch("portfolio_ai.services.jd_parser.ollama_generate")
    async def test_failure_keeps_pattern_result(self, mock_generate):
        mock_generate.side_effect = RuntimeError("ollama down")
        base = jd_parser.parse_jd(SCENARIO_JD)
        assert await jd_parser.refine_with_llm(SCENARIO_JD, base) == base

    @pytest.mark.asyncio
    @patch("portfolio_ai.services.jd_parser.ollama_generate")
    async def test_merges_llm_terms(self, mock_generate):
        mock_generate.return_value = "Here you go:\n" + json.dumps({"required_skills": ["Terraform"]})
        base = jd_parser.parse_jd(SCENARIO_JD)

        refined = await jd_parser.refine_with_llm(SCENARIO_JD, base)

        assert refined.required_skills == ["Python", "RAG", "AWS", "Terraform"]
        assert refined.preferred_skills == ["LangChain"]
