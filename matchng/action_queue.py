"""
Durable FIFO of mutations captured while offline.

Each entry is taken off the queue before it is applied and put back at its
original position with an incremented retry count and a backoff deadline if
applying it fails. An entry that cannot be taken off the queue is never
applied, so a non-idempotent action such as SAVE_JOB runs at most once per
successful dequeue. Once an entry has failed max_attempts times it is moved
to the dead-letter list instead of being retried again.
"""

import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from .connectivity import ConnectivityMonitor
from .constants import DEAD_LETTER_KEY, QUEUE_KEY
from .logger import get_logger
from .models import ActionType, PendingAction, UserProfile
from .normalize import add_unique, toggle
from .retry import backoff_delay
from .session import SessionContext
from .storage import PersistentStore, save_user

logger = get_logger()


class ActionReplayError(Exception):
    """Raised when a queued action cannot be applied or persisted."""
    pass


def _now_ms() -> int:
    return int(time.time() * 1000)


def apply_action(user: UserProfile, action_type: ActionType, payload: Dict[str, Any]) -> bool:
    """
    Mutate the profile in place for one action. Returns True if it changed.

    APPLY is a union insert; SAVE_JOB toggles membership.
    """
    job_id = payload.get("jobId")
    if not job_id:
        raise ActionReplayError(f"{action_type.value} payload has no jobId")

    if action_type == ActionType.APPLY:
        return add_unique(user.applied_job_ids, job_id)
    if action_type == ActionType.SAVE_JOB:
        toggle(user.saved_job_ids, job_id)
        return True
    raise ActionReplayError(f"Unsupported action type: {action_type}")


class ActionQueue:
    def __init__(
        self,
        store: PersistentStore,
        replay_delay: float = 0.8,
        max_attempts: int = 5,
        backoff_base_ms: int = 1000,
        backoff_max_ms: int = 60000,
        clock: Callable[[], int] = _now_ms,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.replay_delay = replay_delay
        self.max_attempts = max_attempts
        self.backoff_base_ms = backoff_base_ms
        self.backoff_max_ms = backoff_max_ms
        self.clock = clock
        self.sleep = sleep
        self._replaying = False

    # Persistence

    def _load(self, key: str) -> List[PendingAction]:
        actions = []
        for data in self.store.get_item(key, []) or []:
            try:
                actions.append(PendingAction.from_dict(data))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Dropping malformed queued action", key=key, error=str(e))
        return actions

    def _save(self, key: str, actions: List[PendingAction]) -> bool:
        return self.store.set_item(key, [a.to_dict() for a in actions])

    def list_pending(self) -> List[PendingAction]:
        return self._load(QUEUE_KEY)

    def list_dead(self) -> List[PendingAction]:
        return self._load(DEAD_LETTER_KEY)

    def __len__(self) -> int:
        return len(self.list_pending())

    # Mutations

    def enqueue(self, action_type: ActionType, payload: Dict[str, Any]) -> PendingAction:
        """Append a new action with a fresh id, the current time and zero retries."""
        action = PendingAction(
            id=uuid.uuid4().hex,
            type=ActionType(action_type),
            payload=dict(payload),
            timestamp=self.clock(),
            retry_count=0,
        )
        actions = self.list_pending()
        actions.append(action)
        if not self._save(QUEUE_KEY, actions):
            logger.error("Could not persist queued action", action=action.to_dict())
        logger.info("Action queued", action_id=action.id, type=action.type.value, payload=action.payload)
        return action

    def remove(self, action_id: str) -> bool:
        """Drop an action from the pending queue. False if absent or the write failed."""
        actions = self.list_pending()
        remaining = [a for a in actions if a.id != action_id]
        if len(remaining) == len(actions):
            return False
        return self._save(QUEUE_KEY, remaining)

    def _put_back(self, action: PendingAction, position: int) -> None:
        actions = self.list_pending()
        actions.insert(min(position, len(actions)), action)
        if not self._save(QUEUE_KEY, actions):
            logger.error("Could not return failed action to the queue", action=action.to_dict())

    def _dead_letter(self, action: PendingAction) -> None:
        dead = self.list_dead()
        dead.append(action)
        if not self._save(DEAD_LETTER_KEY, dead):
            logger.error("Could not persist dead-lettered action", action=action.to_dict())
        logger.record_dead_letter()
        logger.error(
            "Action moved to dead-letter list",
            action_id=action.id,
            type=action.type.value,
            attempts=action.retry_count,
            last_error=action.last_error,
        )

    def requeue_dead(self) -> int:
        """Move every dead-lettered action back to the pending queue with a fresh retry budget."""
        dead = self.list_dead()
        if not dead:
            return 0
        actions = self.list_pending()
        for action in dead:
            action.retry_count = 0
            action.next_attempt_at = None
            action.last_error = None
            actions.append(action)
        if not self._save(QUEUE_KEY, actions):
            logger.error("Could not requeue dead-lettered actions", count=len(dead))
            return 0
        self.store.remove_item(DEAD_LETTER_KEY)
        logger.info("Dead-lettered actions requeued", count=len(dead))
        return len(dead)

    # Dispatch and replay

    def dispatch(
        self,
        action_type: ActionType,
        payload: Dict[str, Any],
        session: SessionContext,
        online: bool,
    ) -> Optional[PendingAction]:
        """
        Apply a mutation now when online, or queue it when offline.

        Returns the queued action, or None when it was applied directly.
        """
        if not online:
            return self.enqueue(action_type, payload)

        user = session.current_user()
        if user is None:
            raise ValueError("No active session")
        apply_action(user, ActionType(action_type), payload)
        result = save_user(self.store, user)
        if result["status"] == "failed":
            logger.warning("Direct write failed, queueing action", type=ActionType(action_type).value)
            return self.enqueue(action_type, payload)
        return None

    def _replay_one(self, action: PendingAction, user: UserProfile) -> None:
        try:
            apply_action(user, action.type, action.payload)
            result = save_user(self.store, user)
        except ActionReplayError:
            raise
        except Exception as e:
            raise ActionReplayError(f"{type(e).__name__}: {e}") from e
        if result["status"] == "failed":
            raise ActionReplayError("profile write failed")

    def replay_all(self, session: SessionContext) -> Dict[str, int]:
        """
        Replay queued actions in insertion order against the active user.

        Actions still inside their backoff window are skipped. Without an
        active user replay stops and every remaining action stays queued.
        Returns counts of succeeded, failed, skipped and dead_lettered actions.
        """
        summary = {"succeeded": 0, "failed": 0, "skipped": 0, "dead_lettered": 0}
        if self._replaying:
            logger.debug("Replay already running")
            return summary

        self._replaying = True
        try:
            pending = self.list_pending()
            # Position in the live queue of the next action, for putting failures back
            kept = 0
            for idx, action in enumerate(pending):
                now = self.clock()
                if action.next_attempt_at is not None and action.next_attempt_at > now:
                    summary["skipped"] += 1
                    kept += 1
                    continue

                # Re-read the session for every action, never a snapshot
                user = session.current_user()
                if user is None:
                    remaining = len(pending) - idx
                    logger.warning("No active user, replay postponed", pending=remaining)
                    summary["skipped"] += remaining
                    break

                # Stands in for network latency
                if self.replay_delay:
                    self.sleep(self.replay_delay)

                logger.record_replay_attempt()
                if not self.remove(action.id):
                    logger.error("Could not dequeue action, replay stopped", action_id=action.id)
                    summary["failed"] += 1
                    break

                try:
                    self._replay_one(action, user)
                except ActionReplayError as e:
                    self._record_failure(action, e)
                    if action.retry_count >= self.max_attempts:
                        self._dead_letter(action)
                        summary["dead_lettered"] += 1
                    else:
                        self._put_back(action, kept)
                        kept += 1
                        summary["failed"] += 1
                    continue

                logger.record_replay_success()
                summary["succeeded"] += 1
                logger.info("Action replayed", action_id=action.id, type=action.type.value)
        finally:
            self._replaying = False

        logger.info("Replay finished", **summary)
        return summary

    def _record_failure(self, action: PendingAction, error: Exception) -> None:
        action.retry_count += 1
        action.last_error = str(error)
        delay = backoff_delay(action.retry_count, self.backoff_base_ms, self.backoff_max_ms)
        action.next_attempt_at = self.clock() + int(delay)
        logger.record_replay_failure(type(error.__cause__ or error).__name__)
        logger.error(
            "Action replay failed",
            action_id=action.id,
            type=action.type.value,
            retry_count=action.retry_count,
            next_attempt_at=action.next_attempt_at,
            error=str(error),
        )

    def attach(self, monitor: ConnectivityMonitor, session: SessionContext) -> None:
        """Replay automatically whenever connectivity comes back and work is queued."""
        def on_online():
            if self.list_pending():
                self.replay_all(session)

        monitor.on_online(on_online)
