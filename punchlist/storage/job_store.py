import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List

from punchlist.core.events import Subscription
from punchlist.core.snapshot import LiveSnapshot
from punchlist.errors import NotFound, PersistenceError, StorageCleanupError, ValidationError
from punchlist.models import Job
from punchlist.storage.document_store import DocumentStore
from punchlist.storage.object_store import ObjectStore
from punchlist.storage.photos import delete_photo

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobStore:
    """
    Jobs per user, newest first.

    Each user's list is a LiveSnapshot fed by a watch on the backing store, so
    writes from any collaborator sharing the store replace the whole list.
    One watch is kept per user listed until close().
    """

    def __init__(self, documents: DocumentStore, objects: ObjectStore):
        self.documents = documents
        self.objects = objects
        self._snapshots: Dict[str, LiveSnapshot[List[Job]]] = {}
        self._watches: Dict[str, Subscription] = {}

    def _snapshot(self, user_id: str) -> LiveSnapshot[List[Job]]:
        snapshot = self._snapshots.get(user_id)
        if snapshot is None:
            snapshot = LiveSnapshot()
            self._snapshots[user_id] = snapshot
            self._watches[user_id] = self.documents.watch(
                "user_id",
                user_id,
                lambda docs: snapshot.publish([Job.from_document(d) for d in docs]),
                order_by="created_at",
                descending=True,
            )
        return snapshot

    def watch(self, user_id: str, listener: Callable[[List[Job]], None]) -> Subscription:
        return self._snapshot(user_id).subscribe(listener)

    def list(self, user_id: str) -> List[Job]:
        return list(self._snapshot(user_id).current or [])

    async def confirm(self, user_id: str, predicate: Callable[[List[Job]], bool]) -> None:
        """Wait for the live list of user_id to reflect a mutation, if it is watched."""
        snapshot = self._snapshots.get(user_id)
        if snapshot is not None:
            await snapshot.wait_for(predicate)

    async def get(self, job_id: str) -> Job:
        doc = await self.documents.get(job_id)
        if doc is None:
            raise NotFound(f"Job {job_id} not found")
        return Job.from_document(doc)

    async def add(self, name: str, user_id: str) -> Job:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Job name is required.", ["name"])
        if not user_id:
            raise ValidationError("A job needs an owner.", ["user_id"])

        created_at = utc_now_iso()
        try:
            job_id = await self.documents.add(
                {"name": name, "user_id": user_id, "created_at": created_at, "items": []}
            )
        except Exception as e:
            logger.error("Failed to create job %r: %s", name, e)
            raise PersistenceError("Failed to create job.") from e

        await self.confirm(user_id, lambda jobs: any(j.id == job_id for j in jobs))
        logger.info("Created job %s for user %s", job_id, user_id)
        return Job(id=job_id, name=name, user_id=user_id, created_at=created_at)

    async def remove(self, job_id: str) -> List[StorageCleanupError]:
        """
        Delete a job, then try to delete every stored photo of its items.

        Photo failures are logged and returned; they never fail the removal.
        """
        job = await self.get(job_id)

        try:
            await self.documents.delete(job_id)
        except Exception as e:
            logger.error("Failed to delete job %s: %s", job_id, e)
            raise PersistenceError("Failed to delete job.") from e

        await self.confirm(job.user_id, lambda jobs: all(j.id != job_id for j in jobs))

        cleanup_errors = []
        for item in job.items:
            error = await delete_photo(self.objects, item.photo)
            if error is not None:
                cleanup_errors.append(error)

        logger.info(
            "Deleted job %s (%d items, %d photo cleanup errors)",
            job_id,
            job.item_count,
            len(cleanup_errors),
        )
        return cleanup_errors

    def close(self) -> None:
        for subscription in self._watches.values():
            subscription.cancel()
        self._watches.clear()
        self._snapshots.clear()
