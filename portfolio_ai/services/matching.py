from typing import Dict, Iterable, List, Optional, Tuple

from portfolio_ai.models.models import (
    BucketScore,
    JDParseResult,
    MatchScore,
    RequirementMatch,
    ScoreBreakdown,
)
from portfolio_ai.services.jd_parser import parse_jd, sanitize_requirements
from portfolio_ai.services.skill_taxonomy import (
    CORE_FIT,
    category_hit,
    is_language,
    lookup_skill,
    requirement_category,
    term_pattern,
)
from portfolio_ai.utils.utils import normalize_skill_key

REQUIRED_WEIGHT = 2.0
PREFERRED_WEIGHT = 1.0
ENTRY_PREFERRED_WEIGHT = 0.5
EMPTY_COVERAGE = 0.5
CURVE_DEFAULT = 2.0
CURVE_ENTRY = 3.0
# core-fit hits -> floor, entry-level JDs only
ENTRY_FLOORS = {2: 78, 3: 84, 4: 90}
CAP_REQUIRED_GAP = 90
CAP_PREFERRED_GAP = 96
PREFERRED_GAP_LIMIT = 5
PREFERRED_GAP_LIMIT_NO_EVIDENCE = 10


def skill_overlap(term: str, candidate_skills: Iterable[str]) -> Optional[str]:
    """
    Candidate skill naming the same thing as `term`.

    Known skills match on their canonical name; anything else matches when one
    side appears as a whole word of the other ("React" in "React Native",
    never "SQL" in "NoSQL").
    """
    key = normalize_skill_key(term)
    if not key:
        return None
    known_term = lookup_skill(term)
    term_re = term_pattern(term)
    for skill in candidate_skills:
        name = str(skill or "").strip()
        if not name:
            continue
        if normalize_skill_key(name) == key:
            return name
        known_skill = lookup_skill(name)
        if known_term and known_skill:
            if known_term[0] == known_skill[0]:
                return name
            continue
        if term_re.search(name) or term_pattern(name).search(term):
            return name
    return None


def satisfy(term: str, candidate_skills: List[str], evidence_text: str) -> Tuple[bool, Optional[str], Optional[str]]:
    """(satisfied, via, matched_on) for one requirement term."""
    hit = skill_overlap(term, candidate_skills)
    if hit:
        return True, "skill", hit
    if evidence_text and term_pattern(term).search(evidence_text):
        return True, "evidence", term
    category = requirement_category(term)
    if category and category != "languages":
        skill_keys = [normalize_skill_key(s) for s in candidate_skills]
        expansion = category_hit(category, evidence_text, skill_keys)
        if expansion:
            return True, "expansion", expansion
    return False, None, None


def _bucket_requirements(terms: List[str], bucket: str, skills: List[str], evidence_text: str) -> List[RequirementMatch]:
    out: List[RequirementMatch] = []
    languages = [t for t in terms if is_language(t)]
    others = [t for t in terms if not is_language(t)]

    if languages:
        # one languages dimension: any listed language satisfies it
        req = RequirementMatch(term=" / ".join(languages), bucket=bucket)
        for lang in languages:
            ok, via, matched_on = satisfy(lang, skills, evidence_text)
            if ok:
                req.satisfied, req.via, req.matched_on = True, via, matched_on
                break
        out.append(req)

    for term in others:
        ok, via, matched_on = satisfy(term, skills, evidence_text)
        out.append(RequirementMatch(term=term, bucket=bucket, satisfied=ok, via=via, matched_on=matched_on))
    return out


def core_fit_categories(skill_keys: List[str], evidence_text: str) -> List[str]:
    hits = []
    for group, categories in CORE_FIT.items():
        if any(category_hit(c, evidence_text, skill_keys) for c in categories):
            hits.append(group)
    return hits


def coverage_curve(raw: float, entry_level: bool) -> Tuple[float, float]:
    curve = CURVE_ENTRY if entry_level else CURVE_DEFAULT
    return 1.0 - (1.0 - raw) ** curve, curve


def score_parsed(parsed: JDParseResult, candidate_skills: List[str], evidence: List[str]) -> MatchScore:
    """
    Coverage score of a parsed JD against candidate skills and evidence text.

    Pure function of its inputs. Rules applied in order: weighted coverage,
    concave curve, entry-level floor, gap cap, clamp to 0..100.
    """
    skills = [s for s in candidate_skills if normalize_skill_key(s)]
    skill_keys = [normalize_skill_key(s) for s in skills]
    evidence_text = "\n".join(e for e in evidence if e).strip()
    evidence_available = bool(evidence_text)
    entry = parsed.entry_level
    rules: List[str] = []

    required_terms = sanitize_requirements(parsed.required_skills)
    required_keys = {normalize_skill_key(t) for t in required_terms}
    preferred_terms = [
        t for t in sanitize_requirements(parsed.preferred_skills) if normalize_skill_key(t) not in required_keys
    ]

    required = _bucket_requirements(required_terms, "required", skills, evidence_text)
    preferred = _bucket_requirements(preferred_terms, "preferred", skills, evidence_text)

    pref_weight = ENTRY_PREFERRED_WEIGHT if entry else PREFERRED_WEIGHT
    req_bucket = BucketScore(matched=sum(r.satisfied for r in required), total=len(required), weight=REQUIRED_WEIGHT)
    pref_bucket = BucketScore(matched=sum(r.satisfied for r in preferred), total=len(preferred), weight=pref_weight)

    weighted_total = req_bucket.total * req_bucket.weight + pref_bucket.total * pref_bucket.weight
    if weighted_total > 0:
        raw = (req_bucket.matched * req_bucket.weight + pref_bucket.matched * pref_bucket.weight) / weighted_total
    else:
        raw = EMPTY_COVERAGE
        rules.append("no_requirements_default")

    adjusted, curve = coverage_curve(raw, entry)
    score = int(round(adjusted * 100))

    fit = core_fit_categories(skill_keys, evidence_text)
    floor = None
    floor_applied = False
    if entry and len(fit) >= 2:
        floor = ENTRY_FLOORS[min(len(fit), max(ENTRY_FLOORS))]
        if score < floor:
            score = floor
            floor_applied = True
            rules.append(f"entry_level_floor_{floor}")

    required_gaps = [r.term for r in required if not r.satisfied]
    preferred_gaps = [r.term for r in preferred if not r.satisfied]
    cap = None
    cap_applied = False
    if required_gaps:
        cap = CAP_REQUIRED_GAP
    elif preferred_gaps:
        cap = CAP_PREFERRED_GAP
    if cap is not None and score > cap:
        score = cap
        cap_applied = True
        rules.append(f"gap_cap_{cap}")

    score = max(0, min(100, score))

    limit = PREFERRED_GAP_LIMIT if evidence_available else PREFERRED_GAP_LIMIT_NO_EVIDENCE
    gaps = required_gaps + preferred_gaps[:limit]
    if not evidence_available:
        rules.append("skills_only")

    explanation = (
        f"Raw coverage {raw * 100:.1f}% (required {req_bucket.matched}/{req_bucket.total}, "
        f"preferred {pref_bucket.matched}/{pref_bucket.total}), curved to {adjusted * 100:.1f}% "
        f"with exponent {curve:g}."
    )
    if floor_applied:
        explanation += f" Entry-level floor {floor}% applied for core fit in {', '.join(fit)}."
    if cap_applied:
        explanation += f" Capped at {cap}% because gaps remain."

    breakdown = ScoreBreakdown(
        raw_coverage=round(raw * 100, 1),
        adjusted_coverage=round(adjusted * 100, 1),
        curve=curve,
        entry_level=entry,
        required=req_bucket,
        preferred=pref_bucket,
        core_fit_categories=fit,
        floor=floor,
        floor_applied=floor_applied,
        cap=cap,
        cap_applied=cap_applied,
        evidence_available=evidence_available,
        rules_fired=rules,
        explanation=explanation,
    )
    return MatchScore(score=score, breakdown=breakdown, gaps=gaps, requirements=required + preferred)


def score_match(jd_text: str, candidate_skills: List[str], evidence: List[str]) -> MatchScore:
    return score_parsed(parse_jd(jd_text), candidate_skills, evidence)


def matched_skill_names(parsed: JDParseResult, candidate_skills: List[str]) -> Dict[str, str]:
    """Candidate skill -> the JD term it overlaps with."""
    terms = parsed.required_skills + parsed.preferred_skills + parsed.keywords
    out: Dict[str, str] = {}
    for skill in candidate_skills:
        for term in terms:
            if skill_overlap(term, [skill]):
                out[skill] = term
                break
    return out
