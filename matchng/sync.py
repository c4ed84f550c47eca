"""
Change notification for storage writes.

A SyncNotifier delivers payload-less signals on typed topics to in-process
subscribers. With a CrossInstanceChannel attached it also bumps a shared
revision counter in the database so other processes using the same file
can notice the write by polling. Subscribers are expected to re-read state;
no diff is delivered.
"""

import threading
import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .database import SyncState, init_database
from .logger import get_logger

logger = get_logger()

Callback = Callable[[], None]


class Topic(str, Enum):
    STORAGE_SYNC = "storage-sync"
    CONNECTIVITY = "connectivity"


class CrossInstanceChannel:
    """Shared revision counter stored in the sync_state table."""

    ROW_ID = 1

    def __init__(self, db_path: Path, instance_id: Optional[str] = None):
        self.instance_id = instance_id or uuid.uuid4().hex
        self._Session = sessionmaker(bind=init_database(db_path))
        self._lock = threading.Lock()
        self._remote_pending = False
        self.last_seen = self._read_revision()

    def _read_revision(self) -> int:
        with self._Session() as session:
            row = session.get(SyncState, self.ROW_ID)
            if row is None:
                session.add(SyncState(id=self.ROW_ID, revision=0, writer=None))
                session.commit()
                return 0
            return row.revision

    def announce(self) -> int:
        """Bump the shared revision after a local write. Returns the new revision."""
        with self._lock, self._Session() as session:
            before = session.get(SyncState, self.ROW_ID)
            if before is None:
                session.add(SyncState(id=self.ROW_ID, revision=0, writer=None))
                session.flush()
                previous = 0
            else:
                previous = before.revision
            session.execute(
                update(SyncState)
                .where(SyncState.id == self.ROW_ID)
                .values(
                    revision=SyncState.revision + 1,
                    writer=self.instance_id,
                    updated_at=datetime.now(),
                )
            )
            session.commit()
            revision = session.get(SyncState, self.ROW_ID).revision
            # Another instance wrote since we last looked
            if previous != self.last_seen:
                self._remote_pending = True
            self.last_seen = revision
            return revision

    def poll(self) -> bool:
        """Return True if another instance has written since the last poll."""
        with self._lock:
            current = self._read_revision()
            changed = self._remote_pending or current != self.last_seen
            self._remote_pending = False
            self.last_seen = current
            return changed


class SyncNotifier:
    """Publish/subscribe hub for storage change signals."""

    def __init__(self, channel: Optional[CrossInstanceChannel] = None):
        self.channel = channel
        self._subscribers: Dict[Topic, List[Callback]] = {}
        self._watcher: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def subscribe(self, topic: Topic, callback: Callback) -> Callable[[], None]:
        """Register callback for topic. Returns a function that unsubscribes it."""
        self._subscribers.setdefault(topic, []).append(callback)

        def unsubscribe():
            callbacks = self._subscribers.get(topic, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def publish(self, topic: Topic) -> None:
        """Deliver a signal to in-process subscribers, in subscription order."""
        for callback in list(self._subscribers.get(topic, [])):
            try:
                callback()
            except Exception as e:
                logger.error(
                    "Sync subscriber failed",
                    topic=topic.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def notify(self) -> None:
        """Signal a local storage write on both channels."""
        self.publish(Topic.STORAGE_SYNC)
        if self.channel is not None:
            try:
                self.channel.announce()
            except SQLAlchemyError as e:
                logger.warning("Cross-instance announce failed", error=str(e))

    def poll(self) -> bool:
        """Check the cross-instance channel and re-publish remote writes locally."""
        if self.channel is None:
            return False
        try:
            changed = self.channel.poll()
        except SQLAlchemyError as e:
            logger.warning("Cross-instance poll failed", error=str(e))
            return False
        if changed:
            logger.debug("Remote storage change detected", instance=self.channel.instance_id)
            self.publish(Topic.STORAGE_SYNC)
        return changed

    def start_watching(self, interval: float = 1.0) -> None:
        """Poll the cross-instance channel on a background thread."""
        if self._watcher is not None and self._watcher.is_alive():
            return
        self._stop.clear()

        def run():
            while not self._stop.wait(interval):
                self.poll()

        self._watcher = threading.Thread(target=run, name="matchng-sync-watch", daemon=True)
        self._watcher.start()

    def stop_watching(self) -> None:
        self._stop.set()
        if self._watcher is not None:
            self._watcher.join()
            self._watcher = None
