"""
Pytest configuration and shared fixtures.
"""

import os

os.environ.setdefault("MATCHNG_LOG_FILE", "0")

import pytest
from pathlib import Path
from typing import Dict, Any

from matchng.models import Job, UserProfile
from matchng.storage import PersistentStore
from matchng.sync import SyncNotifier


class FakeClock:
    """Controllable epoch-ms clock."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def seeker_data() -> Dict[str, Any]:
    """Complete seeker profile in stored (camelCase) form."""
    return {
        "id": "u-ada",
        "fullName": "Ada Obi",
        "role": "SEEKER",
        "email": "ada@example.com",
        "skills": ["Frontend Development", "React.js"],
        "location": {"state": "Lagos", "city": "Ikeja", "lga": "Ikeja", "lat": 6.6, "lon": 3.35},
        "primaryIndustry": "Technology",
        "primarySkill": "Frontend Development",
        "relocatePreference": False,
        "remotePreference": True,
        "savedJobIds": [],
        "appliedJobIds": [],
    }


@pytest.fixture
def job_data() -> Dict[str, Any]:
    """Open Technology job in the seeker's city."""
    return {
        "id": "job-1",
        "employerId": "e-1",
        "employerName": "Paystack",
        "title": "Frontend Engineer",
        "industry": "Technology",
        "description": "Build dashboards.",
        "requiredSkills": ["Frontend Development"],
        "location": {"state": "Lagos", "city": "ikeja", "lga": "Ikeja", "lat": 6.6, "lon": 3.35},
        "isRemote": False,
        "status": "OPEN",
        "createdAt": "2024-05-01T09:00:00Z",
    }


@pytest.fixture
def seeker(seeker_data) -> UserProfile:
    return UserProfile.from_dict(seeker_data)


@pytest.fixture
def job(job_data) -> Job:
    return Job.from_dict(job_data)


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "matchng.db"


@pytest.fixture
def notifier() -> SyncNotifier:
    return SyncNotifier()


@pytest.fixture
def store(db_path, notifier, clock) -> PersistentStore:
    """Store on a temporary database with an in-process notifier."""
    return PersistentStore(db_path, notifier=notifier, clock=clock)
