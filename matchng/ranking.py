"""
Ranking engine: prune a job pool for one seeker, score survivors, order them.

Results are recomputed on every call and never cached.
"""

from datetime import datetime
from typing import Iterable, List

from .constants import CROSS_INDUSTRY_SKILL_THRESHOLD, MIN_FINAL_SCORE
from .logger import get_logger
from .models import CandidateResult, Job, JobStatus, MatchResult, UserProfile, UserRole
from .normalize import same_place
from .scoring import calculate_skill_score, score_pair

logger = get_logger()


def is_profile_complete(seeker: UserProfile) -> bool:
    return bool(seeker.primary_industry and seeker.primary_skill and seeker.location.city)


def _created_ts(job: Job) -> float:
    if not job.created_at:
        return 0.0
    try:
        return datetime.fromisoformat(job.created_at.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def _passes_filters(seeker: UserProfile, job: Job) -> bool:
    """Cheapest checks first; skill overlap only computed for cross-industry jobs."""
    if job.status != JobStatus.OPEN:
        return False

    if not job.is_remote and not seeker.relocate_preference:
        if not same_place(job.location.state, seeker.location.state):
            return False

    if job.industry != seeker.primary_industry:
        return calculate_skill_score(seeker, job) >= CROSS_INDUSTRY_SKILL_THRESHOLD

    return True


def compute_match(seeker: UserProfile, job: Job) -> MatchResult:
    """Score a single pair with no filtering."""
    return MatchResult(job=job, **score_pair(seeker, job))


def compute_candidate_match(job: Job, seeker: UserProfile) -> CandidateResult:
    """Employer-side view of the same pair score."""
    return CandidateResult(seeker=seeker, **score_pair(seeker, job))


def get_recommendations(seeker: UserProfile, all_jobs: Iterable[Job]) -> List[MatchResult]:
    """
    Rank open jobs for a seeker.

    Incomplete profiles (no primary industry, primary skill or city) get an
    empty list. Results under MIN_FINAL_SCORE are dropped. Order is final
    score descending, then most recent job, then job id.
    """
    if not is_profile_complete(seeker):
        logger.debug("Skipping recommendations for incomplete profile", user_id=seeker.id)
        return []

    results = [
        compute_match(seeker, job)
        for job in all_jobs
        if _passes_filters(seeker, job)
    ]
    results = [r for r in results if r.score_final >= MIN_FINAL_SCORE]
    results.sort(key=lambda r: (-r.score_final, -_created_ts(r.job), r.job.id))
    return results


def rank_candidates(job: Job, seekers: Iterable[UserProfile]) -> List[CandidateResult]:
    """Rank seekers for an employer's job, best first."""
    results = [
        compute_candidate_match(job, seeker)
        for seeker in seekers
        if seeker.role == UserRole.SEEKER
    ]
    results = [r for r in results if r.score_final >= MIN_FINAL_SCORE]
    results.sort(key=lambda r: (-r.score_final, r.seeker.id))
    return results
