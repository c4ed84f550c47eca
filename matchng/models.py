"""
Domain models for seekers, jobs, match results and queued actions.

Persisted shapes use the camelCase field names of the stored JSON;
``to_dict``/``from_dict`` translate between the two.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class UserRole(str, Enum):
    SEEKER = "SEEKER"
    EMPLOYER = "EMPLOYER"
    ADMIN = "ADMIN"


class JobStatus(str, Enum):
    OPEN = "OPEN"
    DRAFT = "DRAFT"
    CLOSED = "CLOSED"


class ActionType(str, Enum):
    APPLY = "APPLY"
    SAVE_JOB = "SAVE_JOB"


@dataclass
class Location:
    state: str = ""
    city: str = ""
    lga: str = ""
    lat: float = 0.0
    lon: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "city": self.city,
            "lga": self.lga,
            "lat": self.lat,
            "lon": self.lon,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Location":
        data = data or {}
        return cls(
            state=data.get("state") or "",
            city=data.get("city") or "",
            lga=data.get("lga") or "",
            lat=float(data.get("lat") or 0.0),
            lon=float(data.get("lon") or 0.0),
        )


@dataclass
class UserProfile:
    """A seeker or employer account.

    ``skills``, ``saved_job_ids`` and ``applied_job_ids`` are lists with set
    semantics: every mutation goes through ``normalize.add_unique`` or
    ``normalize.toggle`` so they never hold duplicates.
    """

    id: str
    full_name: str = ""
    role: UserRole = UserRole.SEEKER
    email: str = ""
    skills: List[str] = field(default_factory=list)
    location: Location = field(default_factory=Location)
    primary_industry: Optional[str] = None
    primary_skill: Optional[str] = None
    relocate_preference: bool = False
    remote_preference: bool = False
    saved_job_ids: List[str] = field(default_factory=list)
    applied_job_ids: List[str] = field(default_factory=list)
    company_name: Optional[str] = None
    company_bio: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "fullName": self.full_name,
            "role": self.role.value,
            "email": self.email,
            "skills": list(self.skills),
            "location": self.location.to_dict(),
            "primaryIndustry": self.primary_industry,
            "primarySkill": self.primary_skill,
            "relocatePreference": self.relocate_preference,
            "remotePreference": self.remote_preference,
            "savedJobIds": list(self.saved_job_ids),
            "appliedJobIds": list(self.applied_job_ids),
        }
        if self.company_name is not None:
            data["companyName"] = self.company_name
        if self.company_bio is not None:
            data["companyBio"] = self.company_bio
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=str(data["id"]),
            full_name=data.get("fullName") or "",
            role=UserRole(data.get("role") or UserRole.SEEKER.value),
            email=data.get("email") or "",
            skills=list(data.get("skills") or []),
            location=Location.from_dict(data.get("location")),
            primary_industry=data.get("primaryIndustry") or None,
            primary_skill=data.get("primarySkill") or None,
            relocate_preference=bool(data.get("relocatePreference", False)),
            remote_preference=bool(data.get("remotePreference", False)),
            saved_job_ids=list(data.get("savedJobIds") or []),
            applied_job_ids=list(data.get("appliedJobIds") or []),
            company_name=data.get("companyName"),
            company_bio=data.get("companyBio"),
        )


@dataclass
class Job:
    id: str
    employer_id: str
    title: str
    industry: str
    required_skills: List[str] = field(default_factory=list)
    location: Location = field(default_factory=Location)
    is_remote: bool = False
    status: JobStatus = JobStatus.DRAFT
    created_at: str = ""
    employer_name: str = ""
    description: str = ""
    salary_range: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "employerId": self.employer_id,
            "employerName": self.employer_name,
            "title": self.title,
            "industry": self.industry,
            "description": self.description,
            "requiredSkills": list(self.required_skills),
            "location": self.location.to_dict(),
            "isRemote": self.is_remote,
            "status": self.status.value,
            "createdAt": self.created_at,
        }
        if self.salary_range is not None:
            data["salaryRange"] = self.salary_range
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        return cls(
            id=str(data["id"]),
            employer_id=str(data.get("employerId") or ""),
            title=data.get("title") or "",
            industry=data.get("industry") or "",
            required_skills=list(data.get("requiredSkills") or []),
            location=Location.from_dict(data.get("location")),
            is_remote=bool(data.get("isRemote", False)),
            status=JobStatus(data.get("status") or JobStatus.DRAFT.value),
            created_at=data.get("createdAt") or "",
            employer_name=data.get("employerName") or "",
            description=data.get("description") or "",
            salary_range=data.get("salaryRange"),
        )


@dataclass
class MatchResult:
    job: Job
    score_skill: float
    score_location: float
    score_trend: float
    score_final: float


@dataclass
class CandidateResult:
    seeker: UserProfile
    score_skill: float
    score_location: float
    score_trend: float
    score_final: float


@dataclass
class PendingAction:
    """A mutation recorded while offline, replayed on reconnect."""

    id: str
    type: ActionType
    payload: Dict[str, Any]
    timestamp: int
    retry_count: int = 0
    next_attempt_at: Optional[int] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.type.value,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
            "retryCount": self.retry_count,
        }
        if self.next_attempt_at is not None:
            data["nextAttemptAt"] = self.next_attempt_at
        if self.last_error is not None:
            data["lastError"] = self.last_error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingAction":
        return cls(
            id=str(data["id"]),
            type=ActionType(data["type"]),
            payload=dict(data.get("payload") or {}),
            timestamp=int(data.get("timestamp") or 0),
            retry_count=int(data.get("retryCount") or 0),
            next_attempt_at=data.get("nextAttemptAt"),
            last_error=data.get("lastError"),
        )
