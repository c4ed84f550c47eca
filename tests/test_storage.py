"""
Tests for storage.py - envelope persistence and entity helpers.
"""

import json

import pytest

from matchng.constants import JOBS_KEY, USERS_KEY
from matchng.database import Entry, get_session
from matchng import storage as storage_module
from matchng.models import Job, JobStatus, UserProfile
from matchng.storage import (
    PersistentStore,
    QuotaExceededError,
    get_job,
    get_user,
    get_users,
    namespaced_key,
    save_job,
    save_user,
    set_job_status,
)
from matchng.sync import Topic


def write_raw(db_path, key, raw):
    session = get_session(db_path)
    session.merge(Entry(key=key, value=raw))
    session.commit()
    session.close()


def read_raw(db_path, key):
    session = get_session(db_path)
    row = session.get(Entry, key)
    session.close()
    return row.value if row is not None else None


class TestNamespace:
    """Test key namespacing."""

    def test_key_format(self, store):
        assert namespaced_key("users") == "matchNG:v1:users"
        assert store.full_key("queue") == "matchNG:v1:queue"
        assert store.drafts_namespace == "matchNG:v1:drafts:"

    def test_keys_lists_logical_names(self, store):
        store.set_item("users", [])
        store.set_item("drafts:onboarding", {"step": 2})
        assert store.keys() == ["drafts:onboarding", "users"]


class TestRoundTrip:
    """Values read back equal what was written."""

    @pytest.mark.parametrize("value", [
        {"fullName": "Ada Obi", "email": "ada@example.com", "nested": [{"bio": "Hi"}]},
        [1, 2, 3],
        "plain text",
        0,
        False,
        {"skills": [], "location": {"city": "Ikeja"}},
    ])
    def test_get_returns_set_value(self, store, value):
        assert store.set_item("k", value) is True
        assert store.get_item("k") == value

    def test_envelope_format(self, store, db_path, clock):
        store.set_item("users", [{"id": "u1", "fullName": "Ada Obi"}])
        envelope = json.loads(read_raw(db_path, "matchNG:v1:users"))
        assert envelope["version"] == 1
        assert envelope["timestamp"] == clock.now
        # Sensitive field is not stored as plain text
        assert envelope["data"][0]["fullName"] != "Ada Obi"
        assert envelope["data"][0]["id"] == "u1"

    def test_missing_key_returns_default(self, store):
        assert store.get_item("nope") is None
        assert store.get_item("nope", []) == []


class TestCorruption:
    """Unreadable envelopes are treated as absent."""

    def test_invalid_json(self, store, db_path):
        before = storage_module.logger.metrics["corrupt_reads"]
        write_raw(db_path, "matchNG:v1:users", "{not json")
        assert store.get_item("users", "fallback") == "fallback"
        assert storage_module.logger.metrics["corrupt_reads"] == before + 1

    def test_missing_envelope_fields(self, store, db_path):
        write_raw(db_path, "matchNG:v1:users", json.dumps({"data": []}))
        assert store.get_item("users") is None

    def test_version_mismatch(self, store, db_path):
        write_raw(db_path, "matchNG:v1:users", json.dumps({"version": 2, "timestamp": 0, "data": [1]}))
        assert store.get_item("users") is None

    def test_undecodable_sensitive_field(self, store, db_path):
        raw = json.dumps({"version": 1, "timestamp": 0, "data": {"email": "%%%"}})
        write_raw(db_path, "matchNG:v1:profile", raw)
        assert store.get_item("profile") is None


class TestQuota:
    """Capacity failures purge drafts and re-raise."""

    def test_quota_exceeded_purges_drafts_and_raises(self, db_path, notifier):
        store = PersistentStore(db_path, notifier=notifier, quota_bytes=1000)
        store.set_item("users", ["u1"])
        store.set_item("drafts:onboarding", {"step": 1})
        store.set_item("drafts:job-form", {"title": "x"})

        with pytest.raises(QuotaExceededError):
            store.set_item("big", "x" * 1000)

        assert store.get_item("drafts:onboarding") is None
        assert store.get_item("drafts:job-form") is None
        assert store.get_item("users") == ["u1"]
        # The failed write was not retried
        assert store.get_item("big") is None

    def test_overwrite_does_not_count_old_value(self, db_path):
        store = PersistentStore(db_path, quota_bytes=1000)
        for _ in range(10):
            store.set_item("counter", "y" * 100)
        assert store.get_item("counter") == "y" * 100


class TestUsage:
    """Usage estimate as a percentage of the budget."""

    def test_empty_store(self, store):
        assert store.get_usage() == 0.0

    def test_usage_formula(self, store, db_path):
        store.set_item("users", [])
        raw = read_raw(db_path, "matchNG:v1:users")
        expected = (len(raw) + len("matchNG:v1:users")) * 2 / store.quota_bytes * 100
        assert store.get_usage() == pytest.approx(expected, abs=0.01)

    def test_usage_capped_at_100(self, db_path):
        PersistentStore(db_path).set_item("blob", "z" * 5000)
        assert PersistentStore(db_path, quota_bytes=100).get_usage() == 100.0


class TestNotification:
    """Every successful write fires the change signal."""

    def test_signal_per_write(self, store, notifier):
        calls = []
        notifier.subscribe(Topic.STORAGE_SYNC, lambda: calls.append(1))
        store.set_item("a", 1)
        store.set_item("b", 2)
        assert len(calls) == 2

    def test_no_signal_on_failed_write(self, db_path, notifier):
        store = PersistentStore(db_path, notifier=notifier, quota_bytes=200)
        calls = []
        notifier.subscribe(Topic.STORAGE_SYNC, lambda: calls.append(1))
        with pytest.raises(QuotaExceededError):
            store.set_item("big", "x" * 500)
        assert calls == []

    def test_remove_and_clear(self, store):
        store.set_item("a", 1)
        store.set_item("b", 2)
        assert store.remove_item("a") is True
        assert store.remove_item("a") is False
        assert store.clear() == 1
        assert store.keys() == []


class TestUsers:
    """Test user CRUD helpers."""

    def test_save_new_then_update(self, store, seeker):
        assert save_user(store, seeker)["status"] == "new"
        assert save_user(store, seeker)["status"] == "no-change"

        seeker.relocate_preference = True
        result = save_user(store, seeker)
        assert result["status"] == "updated"
        assert "relocatePreference" in result["changed"]
        assert get_user(store, "u-ada").relocate_preference is True

    def test_sets_are_deduplicated(self, store, seeker):
        seeker.skills = ["JS", "React.js", "Python", "Python"]
        seeker.applied_job_ids = ["j1", "j1", "j2"]
        save_user(store, seeker)
        saved = get_user(store, seeker.id)
        assert saved.skills == ["React.js", "Python"]
        assert saved.applied_job_ids == ["j1", "j2"]

    def test_blank_primary_skill_cleared(self, store):
        """A whitespace-only primary skill is stored as unset."""
        assert save_user(store, UserProfile(id="u-x", primary_skill="   "))["status"] == "new"
        assert get_user(store, "u-x").primary_skill is None

    def test_primary_skill_alias_normalized(self, store, seeker):
        seeker.primary_skill = "JS"
        save_user(store, seeker)
        assert get_user(store, seeker.id).primary_skill == "React.js"

    def test_sensitive_fields_round_trip(self, store, seeker):
        save_user(store, seeker)
        saved = get_user(store, seeker.id)
        assert saved.full_name == "Ada Obi"
        assert saved.email == "ada@example.com"

    def test_invalid_profile_rejected(self, store):
        with pytest.raises(ValueError):
            save_user(store, UserProfile(id=""))
        assert get_users(store) == []

    def test_malformed_records_skipped(self, store, seeker_data):
        store.set_item(USERS_KEY, [seeker_data, {"fullName": "no id"}])
        assert [u.id for u in get_users(store)] == ["u-ada"]


class TestJobs:
    """Test job CRUD helpers."""

    def test_save_and_get(self, store, job):
        assert save_job(store, job)["status"] == "new"
        assert get_job(store, "job-1").title == "Frontend Engineer"
        assert get_job(store, "missing") is None

    def test_status_transitions(self, store, job):
        save_job(store, job)
        assert set_job_status(store, "job-1", JobStatus.CLOSED).status == JobStatus.CLOSED
        assert set_job_status(store, "job-1", JobStatus.DRAFT).status == JobStatus.DRAFT
        assert set_job_status(store, "job-1", JobStatus.OPEN).status == JobStatus.OPEN
        assert get_job(store, "job-1").status == JobStatus.OPEN
        assert set_job_status(store, "nope", JobStatus.OPEN) is None

    def test_invalid_job_rejected(self, store):
        with pytest.raises(ValueError):
            save_job(store, Job(id="j", employer_id="", title="", industry=""))
        assert store.get_item(JOBS_KEY) is None
