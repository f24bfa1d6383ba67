from __future__ import annotations

import asyncio
import logging
import math
from typing import Protocol, cast

from pydantic import ValidationError as PydanticValidationError

from resumematch.llm.prompts import ANALYSIS_PROMPTS
from resumematch.llm.providers import parse_json_response
from resumematch.types import (
    AnalysisCategory,
    AnalysisResult,
    ConditionsAnalysis,
    ExperienceAnalysis,
    HeadlineAnalysis,
    SkillsAnalysis,
    SubAnalysis,
)

logger = logging.getLogger(__name__)

CATEGORIES: tuple[AnalysisCategory, ...] = ("headlines", "skills", "experience", "conditions")

CATEGORY_MODELS: dict[str, type[SubAnalysis]] = {
    "headlines": HeadlineAnalysis,
    "skills": SkillsAnalysis,
    "experience": ExperienceAnalysis,
    "conditions": ConditionsAnalysis,
}

# field carrying each category's 0-100 score
CATEGORY_SCORE_FIELDS: dict[str, str] = {
    "headlines": "match_score",
    "skills": "match_score",
    "experience": "experience_match",
    "conditions": "overall_score",
}

SUMMARY_TOP_ITEMS = 3


class CompletionBackend(Protocol):
    def complete(self, prompt: str, *, category: str) -> str: ...


class AnalysisOrchestrator:
    """Runs the four category analyses side by side and folds them into one result.

    Either all four parse or the whole analysis is None.
    """

    def __init__(self, completion: CompletionBackend, *, max_input_chars: int = 20000):
        self.completion = completion
        self.max_input_chars = max_input_chars

    def analyze(self, resume_text: str, job_post_text: str) -> AnalysisResult | None:
        return asyncio.run(self.analyze_async(resume_text, job_post_text))

    async def analyze_async(self, resume_text: str, job_post_text: str) -> AnalysisResult | None:
        logger.info("Starting analysis resume_chars=%s job_chars=%s", len(resume_text), len(job_post_text))
        outcomes = await asyncio.gather(
            *(
                asyncio.to_thread(self.run_category, category, resume_text, job_post_text)
                for category in CATEGORIES
            ),
            return_exceptions=True,
        )

        results: dict[str, SubAnalysis] = {}
        for category, outcome in zip(CATEGORIES, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Analysis call failed category=%s error=%s", category, outcome)
                continue
            if outcome is not None:
                results[category] = outcome

        missing = [category for category in CATEGORIES if category not in results]
        if missing:
            logger.error("Analysis incomplete missing=%s", ",".join(missing))
            return None

        headlines = cast(HeadlineAnalysis, results["headlines"])
        skills = cast(SkillsAnalysis, results["skills"])
        experience = cast(ExperienceAnalysis, results["experience"])
        conditions = cast(ConditionsAnalysis, results["conditions"])

        overall = overall_score(list(category_scores(results).values()))
        return AnalysisResult(
            overall_score=overall,
            headlines=headlines,
            skills=skills,
            experience=experience,
            conditions=conditions,
            summary=build_summary(overall, headlines, skills, experience, conditions),
        )

    def run_category(self, category: str, resume_text: str, job_post_text: str) -> SubAnalysis | None:
        prompt = ANALYSIS_PROMPTS[category].format(
            resume_text=truncate_text(resume_text, self.max_input_chars),
            job_text=truncate_text(job_post_text, self.max_input_chars),
        )
        raw = self.completion.complete(prompt, category=category)

        data = parse_json_response(raw)
        if data is None:
            logger.error("Unparsable analysis reply category=%s", category)
            return None

        try:
            return CATEGORY_MODELS[category].model_validate(data)
        except PydanticValidationError as exc:
            logger.error("Analysis reply has wrong shape category=%s error=%s", category, exc)
            return None


def truncate_text(text: str, limit: int) -> str:
    if not text:
        return ""
    return text[:limit]


def category_scores(results: dict[str, SubAnalysis]) -> dict[str, int]:
    return {category: getattr(results[category], CATEGORY_SCORE_FIELDS[category]) for category in CATEGORIES}


def overall_score(scores: list[int]) -> int:
    # half-up, so 72.5 -> 73 rather than banker's rounding
    return int(math.floor(sum(scores) / len(scores) + 0.5))


def score_band(score: int) -> str:
    if score >= 85:
        return "EXCELLENT MATCH! The candidate fits this position very well."
    if score >= 70:
        return "STRONG MATCH! The candidate fits the role well."
    if score >= 55:
        return "MODERATE MATCH. There is room for improvement, but potential is clear."
    if score >= 40:
        return "WEAK MATCH. Significant adjustments are needed."
    return "LOW MATCH. The candidate does not fit this position."


def build_summary(
    overall: int,
    headlines: HeadlineAnalysis,
    skills: SkillsAnalysis,
    experience: ExperienceAnalysis,
    conditions: ConditionsAnalysis,
) -> str:
    lines = [
        score_band(overall),
        "",
        "DETAILED BREAKDOWN:",
        f"- Titles: {headlines.match_score}/100 - {headlines.explanation}",
        f"- Skills: {skills.match_score}/100 - missing skills: {len(skills.missing_skills)}",
        f"- Experience: {experience.experience_match}/100 - {experience.seniority_match or 'n/a'}",
        f"- Conditions: {conditions.overall_score}/100 - location, salary, schedule, format",
    ]

    sections = (headlines, skills, experience, conditions)
    problems = [item for section in sections for item in section.problems][:SUMMARY_TOP_ITEMS]
    recommendations = [item for section in sections for item in section.recommendations][:SUMMARY_TOP_ITEMS]

    if problems:
        lines += ["", "KEY PROBLEMS:", *(f"- {item}" for item in problems)]
    if recommendations:
        lines += ["", "RECOMMENDATIONS:", *(f"- {item}" for item in recommendations)]
    return "\n".join(lines)
