"""
Scoring function for seeker/job pairs.

Responsibilities:
- Compute skill, location and trend sub-scores and the weighted final score.

Non-Responsibilities:
- No filtering, thresholds or ordering (see ranking.py).
- No storage access.

Invariant:
Given identical inputs, this module must always return the same scores.
"""

import math
from typing import Dict, Iterable

from .constants import DEFAULT_TREND_SCORE, TREND_INDEX, WEIGHTS
from .models import Job, UserProfile
from .normalize import same_place


def round_score(value: float) -> float:
    """Round half up to 2 decimal places."""
    return math.floor(value * 100 + 0.5) / 100


def skill_score(seeker_skills: Iterable[str], job_skills: Iterable[str]) -> float:
    """Binary cosine similarity between two skill sets."""
    s_set = set(seeker_skills)
    j_set = set(job_skills)
    if not s_set or not j_set:
        return 0.0
    matches = len(s_set & j_set)
    return matches / (math.sqrt(len(s_set)) * math.sqrt(len(j_set)))


def calculate_skill_score(seeker: UserProfile, job: Job) -> float:
    # Fast path: declared primary skill is required by the job
    if seeker.primary_skill and seeker.primary_skill in job.required_skills:
        return 1.0
    return skill_score(seeker.skills, job.required_skills)


def calculate_location_score(seeker: UserProfile, job: Job) -> float:
    if job.is_remote:
        return 1.0

    s_loc = seeker.location
    j_loc = job.location
    same_state = same_place(s_loc.state, j_loc.state)

    if same_state and same_place(s_loc.city, j_loc.city):
        return 1.0
    if same_state:
        return 0.7 if seeker.relocate_preference else 0.4
    return 0.2 if seeker.relocate_preference else 0.05


def calculate_trend_score(industry: str) -> float:
    return TREND_INDEX.get(industry, DEFAULT_TREND_SCORE)


def final_score(score_skill: float, score_location: float, score_trend: float) -> float:
    raw = (
        WEIGHTS["skill"] * score_skill
        + WEIGHTS["location"] * score_location
        + WEIGHTS["trend"] * score_trend
    )
    return round_score(raw)


def score_pair(seeker: UserProfile, job: Job) -> Dict[str, float]:
    """Return all four scores for one seeker/job pair."""
    s = calculate_skill_score(seeker, job)
    loc = calculate_location_score(seeker, job)
    trend = calculate_trend_score(job.industry)
    return {
        "score_skill": s,
        "score_location": loc,
        "score_trend": trend,
        "score_final": final_score(s, loc, trend),
    }
