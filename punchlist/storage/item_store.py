import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List

from punchlist.errors import NotFound, PersistenceError, ValidationError
from punchlist.models import ItemFields, Job, PhotoBlob, PunchlistItem
from punchlist.storage.job_store import JobStore, utc_now_iso
from punchlist.storage.photos import build_photo_path, delete_photo

logger = logging.getLogger(__name__)


def _item_settled(jobs: List[Job], job_id: str, item_id: str, present: bool) -> bool:
    for job in jobs:
        if job.id == job_id:
            return (job.find_item(item_id) is not None) == present
    # job gone from the live list, nothing left to wait for
    return True


class ItemStore:
    """
    Punchlist items embedded in their job document, newest first.

    Every change rewrites the job's whole item sequence in one document
    update. Changes to the same job are serialized within this process only.
    """

    def __init__(self, jobs: JobStore):
        self.jobs = jobs
        self.documents = jobs.documents
        self.objects = jobs.objects
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _job_lock(self, job_id: str) -> AsyncIterator[None]:
        # the entry lives only while a change to job_id is pending
        lock = self._locks.setdefault(job_id, asyncio.Lock())
        self._lock_users[job_id] = self._lock_users.get(job_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[job_id] -= 1
            if not self._lock_users[job_id]:
                del self._lock_users[job_id]
                del self._locks[job_id]

    async def list(self, job_id: str) -> List[PunchlistItem]:
        job = await self.jobs.get(job_id)
        return job.items

    async def add(self, job_id: str, fields: ItemFields, photo: PhotoBlob) -> PunchlistItem:
        missing = [
            name
            for name, value in (("room", fields.room), ("description", fields.description))
            if not value.strip()
        ]
        if not photo or not photo.content:
            missing.insert(0, "photo")
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing)

        async with self._job_lock(job_id):
            job = await self.jobs.get(job_id)

            path = build_photo_path(job.user_id, job_id, photo.filename)
            try:
                photo_url = await self.objects.put(photo.content, path, photo.content_type)
            except Exception as e:
                logger.error("Photo upload failed for job %s: %s", job_id, e)
                raise PersistenceError("Photo upload failed.") from e

            item = PunchlistItem(
                id=uuid.uuid4().hex,
                room=fields.room.strip(),
                description=fields.description.strip(),
                category=fields.category,
                photo=photo_url,
                created_at=utc_now_iso(),
            )
            items = [item] + job.items

            try:
                await self.documents.update(job_id, {"items": [i.to_dict() for i in items]})
            except Exception as e:
                logger.error(
                    "Saving item to job %s failed, uploaded photo left at %s: %s",
                    job_id,
                    photo_url,
                    e,
                )
                raise PersistenceError(
                    "Failed to save item.", orphaned_photo_url=photo_url
                ) from e

        await self.jobs.confirm(
            job.user_id, lambda jobs: _item_settled(jobs, job_id, item.id, present=True)
        )
        logger.info("Added item %s to job %s", item.id, job_id)
        return item

    async def remove(self, job_id: str, item_id: str) -> None:
        async with self._job_lock(job_id):
            job = await self.jobs.get(job_id)
            item = job.find_item(item_id)
            if item is None:
                raise NotFound(f"Item {item_id} not found in job {job_id}")

            await delete_photo(self.objects, item.photo)

            remaining = [i for i in job.items if i.id != item_id]
            try:
                await self.documents.update(job_id, {"items": [i.to_dict() for i in remaining]})
            except Exception as e:
                logger.error("Failed to remove item %s from job %s: %s", item_id, job_id, e)
                raise PersistenceError("Failed to delete item.") from e

        await self.jobs.confirm(
            job.user_id, lambda jobs: _item_settled(jobs, job_id, item_id, present=False)
        )
        logger.info("Removed item %s from job %s", item_id, job_id)
