"""
Versioned key/value store over the shared SQLite medium.

Every value is wrapped in an envelope ``{version, timestamp, data}``,
sensitive string fields are obfuscated, and the JSON text is saved under
``<prefix>:v<version>:<logicalKey>``. Reads return the default instead of
raising when the envelope is corrupt or from another storage version.
The only error that reaches callers is QuotaExceededError, raised after
the drafts namespace has been purged; the write itself is not retried.

Writes are whole-value and last-writer-wins across instances: there is no
locking or merge between processes sharing the file.
"""

import json
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Collection, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .codec import ObfuscationError, deobfuscate, obfuscate
from .constants import (
    DRAFTS_NAMESPACE,
    JOBS_KEY,
    SENSITIVE_FIELDS,
    STORAGE_PREFIX,
    STORAGE_QUOTA_BYTES,
    STORAGE_VERSION,
    USERS_KEY,
)
from .database import Entry, init_database
from .logger import get_logger
from .models import Job, JobStatus, UserProfile
from .normalize import dedupe, normalize_skills
from .retry import RetryError, exponential_backoff
from .schema import validate_job, validate_profile
from .sync import CrossInstanceChannel, SyncNotifier

logger = get_logger()


class StorageCorruptionError(Exception):
    """Raised when a stored envelope cannot be parsed or decoded."""
    pass


class QuotaExceededError(Exception):
    """Raised when a write would exceed the storage budget."""
    pass


class DatabaseBusyError(Exception):
    """The database file is locked by another instance."""
    pass


def _now_ms() -> int:
    return int(time.time() * 1000)


def namespaced_key(key: str, prefix: str = STORAGE_PREFIX, version: int = STORAGE_VERSION) -> str:
    return f"{prefix}:v{version}:{key}"


def _translate_operational_error(e: OperationalError) -> Exception:
    message = str(e.orig if e.orig is not None else e).lower()
    if "locked" in message or "busy" in message:
        return DatabaseBusyError(message)
    if "full" in message:
        return QuotaExceededError(message)
    return e


class PersistentStore:
    """Envelope-based key/value persistence with change notification."""

    def __init__(
        self,
        db_path: Path,
        notifier: Optional[SyncNotifier] = None,
        prefix: str = STORAGE_PREFIX,
        version: int = STORAGE_VERSION,
        quota_bytes: int = STORAGE_QUOTA_BYTES,
        sensitive_fields: Collection[str] = SENSITIVE_FIELDS,
        clock: Callable[[], int] = _now_ms,
    ):
        self.db_path = Path(db_path)
        self.notifier = notifier
        self.prefix = prefix
        self.version = version
        self.quota_bytes = quota_bytes
        self.sensitive_fields = sensitive_fields
        self.clock = clock
        self._Session = sessionmaker(bind=init_database(self.db_path))

    @property
    def namespace(self) -> str:
        return namespaced_key("", self.prefix, self.version)

    @property
    def drafts_namespace(self) -> str:
        return namespaced_key(f"{DRAFTS_NAMESPACE}:", self.prefix, self.version)

    def full_key(self, key: str) -> str:
        return namespaced_key(key, self.prefix, self.version)

    # Writes

    def set_item(self, key: str, value: Any) -> bool:
        """
        Persist value under key and fire the change signal.

        Returns False if the write failed for a transient database reason.

        Raises:
            QuotaExceededError: the write did not happen; drafts were purged
        """
        full = self.full_key(key)
        envelope = {
            "version": self.version,
            "timestamp": self.clock(),
            "data": obfuscate(value, self.sensitive_fields),
        }
        raw = json.dumps(envelope, ensure_ascii=False)

        try:
            self._check_quota(full, raw)
            self._write(full, raw)
        except QuotaExceededError as e:
            purged = self.purge_drafts()
            logger.record_quota_failure(purged)
            logger.error("Storage quota exceeded, drafts purged", key=key, purged=purged, error=str(e))
            raise
        except RetryError as e:
            logger.error("Storage write failed, database busy", key=key, error=str(e))
            return False
        except SQLAlchemyError as e:
            logger.error("Storage write failed", key=key, error=str(e))
            return False

        logger.record_write()
        logger.debug("Stored value", key=key, size=len(raw))
        self._notify()
        return True

    def _check_quota(self, full_key: str, raw: str) -> None:
        used = self._usage_bytes(exclude=full_key)
        needed = (len(raw) + len(full_key)) * 2
        if used + needed > self.quota_bytes:
            raise QuotaExceededError(
                f"Writing {full_key} needs {needed} bytes, {self.quota_bytes - used} available"
            )

    @exponential_backoff(max_retries=3, base_delay=0.05, max_delay=1.0, exceptions=(DatabaseBusyError,))
    def _write(self, full_key: str, raw: str) -> None:
        try:
            with self._Session() as session:
                session.merge(Entry(key=full_key, value=raw, updated_at=datetime.now()))
                session.commit()
        except OperationalError as e:
            translated = _translate_operational_error(e)
            if translated is e:
                raise
            raise translated from e

    def remove_item(self, key: str) -> bool:
        removed = self._delete_where(Entry.key == self.full_key(key))
        if removed:
            self._notify()
        return removed > 0

    def purge_drafts(self) -> int:
        """Delete every key in the drafts namespace. Returns how many were removed."""
        removed = self._delete_where(Entry.key.startswith(self.drafts_namespace, autoescape=True))
        if removed:
            logger.info("Purged draft entries", count=removed)
            self._notify()
        return removed

    def clear(self) -> int:
        """Delete every key of this store's namespace."""
        removed = self._delete_where(Entry.key.startswith(self.namespace, autoescape=True))
        logger.warning("Storage namespace cleared", namespace=self.namespace, count=removed)
        self._notify()
        return removed

    def _delete_where(self, condition) -> int:
        try:
            with self._Session() as session:
                result = session.execute(delete(Entry).where(condition))
                session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error("Storage delete failed", error=str(e))
            return 0

    def _notify(self) -> None:
        if self.notifier is not None:
            self.notifier.notify()

    # Reads

    def get_item(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or default when absent, corrupt or from another version."""
        envelope = self.read_envelope(key)
        if envelope is None:
            return default
        try:
            return deobfuscate(envelope["data"], self.sensitive_fields)
        except ObfuscationError as e:
            logger.record_corrupt_read(type(e).__name__)
            logger.error("Storage corrupted for key", key=key, error=str(e))
            return default

    def read_envelope(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the raw envelope for key if it is readable and current."""
        full = self.full_key(key)
        try:
            with self._Session() as session:
                row = session.get(Entry, full)
                raw = row.value if row is not None else None
        except SQLAlchemyError as e:
            logger.error("Storage read failed", key=key, error=str(e))
            return None
        if raw is None:
            return None

        logger.record_read()
        try:
            envelope = _parse_envelope(raw)
        except StorageCorruptionError as e:
            logger.record_corrupt_read(type(e).__name__)
            logger.error("Storage corrupted for key", key=key, error=str(e))
            return None

        if envelope["version"] != self.version:
            logger.record_version_mismatch()
            logger.warning(
                "Ignoring envelope from another storage version",
                key=key,
                found=envelope["version"],
                expected=self.version,
            )
            return None
        return envelope

    def keys(self) -> List[str]:
        """Logical keys currently stored in this namespace."""
        ns = self.namespace
        with self._Session() as session:
            rows = session.execute(
                select(Entry.key).where(Entry.key.startswith(ns, autoescape=True)).order_by(Entry.key)
            ).scalars().all()
        return [k[len(ns):] for k in rows]

    def _usage_bytes(self, exclude: Optional[str] = None) -> int:
        query = select(func.sum((func.length(Entry.value) + func.length(Entry.key)) * 2)).where(
            Entry.key.startswith(f"{self.prefix}:", autoescape=True)
        )
        if exclude is not None:
            query = query.where(Entry.key != exclude)
        with self._Session() as session:
            return int(session.execute(query).scalar() or 0)

    def get_usage(self) -> float:
        """Estimated share of the storage budget in use, as a percentage capped at 100."""
        try:
            used = self._usage_bytes()
        except SQLAlchemyError as e:
            logger.error("Storage usage query failed", error=str(e))
            return 0.0
        return min(100.0, round(used / self.quota_bytes * 100, 2))


def _parse_envelope(raw: str) -> Dict[str, Any]:
    try:
        envelope = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StorageCorruptionError(f"Invalid JSON: {e}") from e
    if not isinstance(envelope, dict) or "version" not in envelope or "data" not in envelope:
        raise StorageCorruptionError("Envelope missing version or data")
    return envelope


def open_store(db_path: Path, instance_id: Optional[str] = None, **kwargs) -> PersistentStore:
    """Create a store whose writes are signalled in-process and cross-instance."""
    notifier = SyncNotifier(channel=CrossInstanceChannel(db_path, instance_id=instance_id))
    return PersistentStore(db_path, notifier=notifier, **kwargs)


# Entity helpers


def diff_dict(old: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    changed = {}
    keys = set(old.keys()) | set(new.keys())
    for k in keys:
        ov = old.get(k)
        nv = new.get(k)
        if ov != nv:
            changed[k] = {"old": ov, "new": nv}
    return changed


def _upsert(records: List[Dict[str, Any]], record: Dict[str, Any]) -> Dict[str, Any]:
    for idx, existing in enumerate(records):
        if existing.get("id") == record["id"]:
            if existing == record:
                return {"status": "no-change", "changed": {}}
            records[idx] = record
            return {"status": "updated", "changed": diff_dict(existing, record)}
    records.append(record)
    return {"status": "new", "changed": {}}


def _load_records(store: PersistentStore, key: str) -> List[Dict[str, Any]]:
    records = store.get_item(key, [])
    if not isinstance(records, list):
        logger.error("Expected a list of records", key=key, found=type(records).__name__)
        return []
    return records


def get_users(store: PersistentStore) -> List[UserProfile]:
    users = []
    for data in _load_records(store, USERS_KEY):
        try:
            users.append(UserProfile.from_dict(data))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Skipping malformed user record", error=str(e))
    return users


def get_user(store: PersistentStore, user_id: str) -> Optional[UserProfile]:
    for user in get_users(store):
        if user.id == user_id:
            return user
    return None


def save_user(store: PersistentStore, user: UserProfile) -> Dict[str, Any]:
    """
    Insert or replace a profile by id.

    Skills are alias-normalized and id lists de-duplicated before writing.

    Returns:
        {"status": "new" | "updated" | "no-change" | "failed", "changed": {...}}

    Raises:
        ValueError: profile fails validation
        QuotaExceededError: propagated from the store
    """
    user.skills = normalize_skills(user.skills)
    if user.primary_skill:
        normalized = normalize_skills([user.primary_skill])
        user.primary_skill = normalized[0] if normalized else None
    user.saved_job_ids = dedupe(user.saved_job_ids)
    user.applied_job_ids = dedupe(user.applied_job_ids)

    record = user.to_dict()
    errors = validate_profile(record)
    if errors:
        raise ValueError("; ".join(errors))

    records = _load_records(store, USERS_KEY)
    result = _upsert(records, record)
    if result["status"] != "no-change":
        if not store.set_item(USERS_KEY, records):
            return {"status": "failed", "changed": result["changed"]}
        logger.debug("Saved user", user_id=user.id, status=result["status"], fields=sorted(result["changed"]))
    return result


def get_jobs(store: PersistentStore) -> List[Job]:
    jobs = []
    for data in _load_records(store, JOBS_KEY):
        try:
            jobs.append(Job.from_dict(data))
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Skipping malformed job record", error=str(e))
    return jobs


def get_job(store: PersistentStore, job_id: str) -> Optional[Job]:
    for job in get_jobs(store):
        if job.id == job_id:
            return job
    return None


def save_job(store: PersistentStore, job: Job) -> Dict[str, Any]:
    """Insert or replace a job posting by id. Same contract as save_user."""
    job.required_skills = normalize_skills(job.required_skills)

    record = job.to_dict()
    errors = validate_job(record)
    if errors:
        raise ValueError("; ".join(errors))

    records = _load_records(store, JOBS_KEY)
    result = _upsert(records, record)
    if result["status"] != "no-change":
        if not store.set_item(JOBS_KEY, records):
            return {"status": "failed", "changed": result["changed"]}
        logger.debug("Saved job", job_id=job.id, status=result["status"])
    return result


def set_job_status(store: PersistentStore, job_id: str, status: JobStatus) -> Optional[Job]:
    """Move a job between OPEN, DRAFT and CLOSED. Returns None if the job is unknown."""
    job = get_job(store, job_id)
    if job is None:
        return None
    job.status = JobStatus(status)
    save_job(store, job)
    return job
