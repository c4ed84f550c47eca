"""
Tests for the offline action queue and replay.
"""

import pytest

from matchng import action_queue as action_queue_module
from matchng.action_queue import ActionQueue, ActionReplayError, apply_action
from matchng.connectivity import ConnectivityMonitor
from matchng.constants import QUEUE_KEY
from matchng.models import ActionType, UserProfile
from matchng.session import SessionContext
from matchng.storage import get_user, save_user


@pytest.fixture
def session(store, seeker):
    save_user(store, seeker)
    ctx = SessionContext(store)
    ctx.login(seeker.id)
    return ctx


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def queue(store, clock, sleeps):
    return ActionQueue(
        store,
        replay_delay=0.8,
        max_attempts=3,
        backoff_base_ms=1000,
        backoff_max_ms=60000,
        clock=clock,
        sleep=sleeps.append,
    )


class TestApplyAction:
    """Test single action semantics."""

    def test_apply_is_union_insert(self):
        user = UserProfile(id="u")
        assert apply_action(user, ActionType.APPLY, {"jobId": "j1"}) is True
        assert apply_action(user, ActionType.APPLY, {"jobId": "j1"}) is False
        assert user.applied_job_ids == ["j1"]

    def test_save_job_toggles(self):
        user = UserProfile(id="u")
        apply_action(user, ActionType.SAVE_JOB, {"jobId": "j1"})
        assert user.saved_job_ids == ["j1"]
        apply_action(user, ActionType.SAVE_JOB, {"jobId": "j1"})
        assert user.saved_job_ids == []

    def test_missing_job_id(self):
        with pytest.raises(ActionReplayError):
            apply_action(UserProfile(id="u"), ActionType.APPLY, {})


class TestEnqueue:
    """Test queue persistence."""

    def test_enqueue_assigns_metadata(self, queue, clock):
        action = queue.enqueue(ActionType.APPLY, {"jobId": "job-1"})
        assert action.id
        assert action.timestamp == clock.now
        assert action.retry_count == 0

        pending = queue.list_pending()
        assert [a.id for a in pending] == [action.id]
        assert pending[0].to_dict() == {
            "id": action.id,
            "type": "APPLY",
            "payload": {"jobId": "job-1"},
            "timestamp": clock.now,
            "retryCount": 0,
        }

    def test_ids_are_unique(self, queue):
        a = queue.enqueue(ActionType.APPLY, {"jobId": "j1"})
        b = queue.enqueue(ActionType.APPLY, {"jobId": "j1"})
        assert a.id != b.id
        assert len(queue) == 2

    def test_queue_survives_new_instance(self, store, queue):
        queue.enqueue(ActionType.SAVE_JOB, {"jobId": "j1"})
        assert len(ActionQueue(store)) == 1


class TestReplay:
    """Test replay against the active session."""

    def test_offline_apply_then_replay(self, queue, session, store, sleeps):
        queue.enqueue(ActionType.APPLY, {"jobId": "job-1"})
        summary = queue.replay_all(session)

        assert summary["succeeded"] == 1
        assert queue.list_pending() == []
        assert get_user(store, "u-ada").applied_job_ids == ["job-1"]
        assert sleeps == [0.8]

    def test_duplicate_apply_is_idempotent(self, queue, session, store):
        queue.enqueue(ActionType.APPLY, {"jobId": "job-1"})
        queue.enqueue(ActionType.APPLY, {"jobId": "job-1"})
        queue.replay_all(session)
        assert get_user(store, "u-ada").applied_job_ids == ["job-1"]

    def test_insertion_order(self, queue, session, store):
        """Save then unsave leaves the job unsaved; order matters."""
        queue.enqueue(ActionType.SAVE_JOB, {"jobId": "j1"})
        queue.enqueue(ActionType.SAVE_JOB, {"jobId": "j2"})
        queue.enqueue(ActionType.SAVE_JOB, {"jobId": "j1"})
        summary = queue.replay_all(session)
        assert summary["succeeded"] == 3
        assert get_user(store, "u-ada").saved_job_ids == ["j2"]

    def test_reads_current_session_per_action(self, queue, session, store, seeker):
        """Profile edits made before replay are not overwritten by a stale copy."""
        queue.enqueue(ActionType.APPLY, {"jobId": "job-1"})
        seeker.relocate_preference = True
        save_user(store, seeker)
        queue.replay_all(session)
        user = get_user(store, "u-ada")
        assert user.relocate_preference is True
        assert user.applied_job_ids == ["job-1"]

    def test_no_active_user_keeps_queue(self, queue, store, seeker, sleeps):
        """Logging out while offline does not lose queued actions."""
        save_user(store, seeker)
        ctx = SessionContext(store)
        queue.enqueue(ActionType.APPLY, {"jobId": "job-1"})
        queue.enqueue(ActionType.SAVE_JOB, {"jobId": "job-2"})

        summary = queue.replay_all(ctx)
        assert summary["skipped"] == 2
        assert summary["succeeded"] == 0
        assert len(queue) == 2
        assert queue.list_pending()[0].retry_count == 0
        assert sleeps == []

        ctx.login(seeker.id)
        assert queue.replay_all(ctx)["succeeded"] == 2
        user = get_user(store, seeker.id)
        assert user.applied_job_ids == ["job-1"]
        assert user.saved_job_ids == ["job-2"]

    def test_failed_dequeue_does_not_apply(self, queue, session, store, monkeypatch):
        """A toggle is not applied when it cannot be taken off the queue."""
        queue.enqueue(ActionType.SAVE_JOB, {"jobId": "job-1"})
        original = store.set_item

        def failing_set(key, value):
            if key == QUEUE_KEY:
                return False
            return original(key, value)

        monkeypatch.setattr(store, "set_item", failing_set)
        summary = queue.replay_all(session)

        assert summary["succeeded"] == 0
        assert summary["failed"] == 1
        assert len(queue) == 1
        assert get_user(store, "u-ada").saved_job_ids == []

        monkeypatch.setattr(store, "set_item", original)
        assert queue.replay_all(session)["succeeded"] == 1
        assert get_user(store, "u-ada").saved_job_ids == ["job-1"]

    def test_failed_action_keeps_its_position(self, queue, session):
        first = queue.enqueue(ActionType.APPLY, {})
        second = queue.enqueue(ActionType.APPLY, {})
        queue.replay_all(session)
        assert [a.id for a in queue.list_pending()] == [first.id, second.id]


class TestFailures:
    """Failed actions stay queued with backoff, then dead-letter."""

    def test_failure_keeps_action_with_backoff(self, queue, session, clock):
        action = queue.enqueue(ActionType.APPLY, {})
        summary = queue.replay_all(session)

        assert summary["failed"] == 1
        [pending] = queue.list_pending()
        assert pending.id == action.id
        assert pending.retry_count == 1
        assert pending.next_attempt_at == clock.now + 1000
        assert pending.last_error

    def test_backoff_window_skips_action(self, queue, session, clock):
        queue.enqueue(ActionType.APPLY, {})
        queue.replay_all(session)

        assert queue.replay_all(session)["skipped"] == 1
        assert queue.list_pending()[0].retry_count == 1

        clock.advance(1000)
        queue.replay_all(session)
        pending = queue.list_pending()[0]
        assert pending.retry_count == 2
        assert pending.next_attempt_at == clock.now + 2000

    def test_dead_letter_after_max_attempts(self, queue, session, clock):
        queue.enqueue(ActionType.APPLY, {})
        results = []
        for _ in range(3):
            results.append(queue.replay_all(session))
            clock.advance(60000)

        assert results[-1]["dead_lettered"] == 1
        assert queue.list_pending() == []
        [dead] = queue.list_dead()
        assert dead.retry_count == 3

    def test_requeue_dead(self, queue, session, clock):
        queue.enqueue(ActionType.APPLY, {})
        for _ in range(3):
            queue.replay_all(session)
            clock.advance(60000)

        assert queue.requeue_dead() == 1
        assert queue.list_dead() == []
        [pending] = queue.list_pending()
        assert pending.retry_count == 0
        assert pending.next_attempt_at is None

    def test_persist_error_is_retained(self, queue, session, monkeypatch):
        def broken_save(store, user):
            raise RuntimeError("disk went away")

        monkeypatch.setattr(action_queue_module, "save_user", broken_save)
        queue.enqueue(ActionType.APPLY, {"jobId": "job-1"})
        summary = queue.replay_all(session)

        assert summary["failed"] == 1
        assert "RuntimeError" in queue.list_pending()[0].last_error

    def test_failure_does_not_block_later_actions(self, queue, session, store):
        queue.enqueue(ActionType.APPLY, {})
        queue.enqueue(ActionType.APPLY, {"jobId": "job-2"})
        summary = queue.replay_all(session)
        assert summary["failed"] == 1
        assert summary["succeeded"] == 1
        assert get_user(store, "u-ada").applied_job_ids == ["job-2"]


class TestDispatch:
    """Online writes go straight to the store; offline ones are queued."""

    def test_online_applies_directly(self, queue, session, store):
        assert queue.dispatch(ActionType.APPLY, {"jobId": "job-1"}, session, online=True) is None
        assert queue.list_pending() == []
        assert get_user(store, "u-ada").applied_job_ids == ["job-1"]

    def test_offline_enqueues(self, queue, session, store):
        action = queue.dispatch(ActionType.SAVE_JOB, {"jobId": "job-1"}, session, online=False)
        assert action is not None
        assert len(queue) == 1
        assert get_user(store, "u-ada").saved_job_ids == []

    def test_online_without_session(self, queue, store):
        with pytest.raises(ValueError):
            queue.dispatch(ActionType.APPLY, {"jobId": "job-1"}, SessionContext(store), online=True)


class TestAutoReplay:
    """Replay is triggered by the online transition."""

    def test_reconnect_replays(self, queue, session, store):
        monitor = ConnectivityMonitor(initially_online=False)
        queue.attach(monitor, session)
        queue.enqueue(ActionType.APPLY, {"jobId": "job-1"})

        monitor.set_online(True)

        assert queue.list_pending() == []
        assert get_user(store, "u-ada").applied_job_ids == ["job-1"]

    def test_empty_queue_skips_replay(self, queue, session, sleeps):
        monitor = ConnectivityMonitor(initially_online=False)
        queue.attach(monitor, session)
        monitor.set_online(True)
        assert sleeps == []
