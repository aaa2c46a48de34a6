import base64
import logging
import re
import time
import uuid
from pathlib import PurePath
from typing import Dict, Iterable, Optional

from punchlist.errors import StorageCleanupError
from punchlist.models import PunchlistItem
from punchlist.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: Optional[str]) -> str:
    base = PurePath(name or "").name
    base = _UNSAFE_CHARS.sub("_", base).strip("._")
    return base or "photo.jpg"


def build_photo_path(user_id: str, job_id: str, filename: str) -> str:
    """images/<user>/<job>/<ms timestamp>-<random>-<name>"""
    timestamp = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:10]
    return f"images/{user_id}/{job_id}/{timestamp}-{suffix}-{safe_filename(filename)}"


def is_inline_photo(ref: str) -> bool:
    return ref.startswith("data:")


def decode_inline_photo(ref: str) -> bytes:
    header, _, payload = ref.partition(",")
    if ";base64" not in header:
        raise ValueError("inline photo is not base64 encoded")
    return base64.b64decode(payload, validate=True)


async def load_photo(ref: str, objects: ObjectStore) -> bytes:
    if is_inline_photo(ref):
        return decode_inline_photo(ref)
    return await objects.read(ref)


async def load_photos(items: Iterable[PunchlistItem], objects: ObjectStore) -> Dict[str, bytes]:
    """Photo bytes by item id. Unresolvable photos are logged and left out."""
    photos: Dict[str, bytes] = {}
    for item in items:
        if not item.photo:
            continue
        try:
            photos[item.id] = await load_photo(item.photo, objects)
        except Exception as e:
            logger.warning("Photo for item %s is not resolvable: %s", item.id, e)
    return photos


async def delete_photo(objects: ObjectStore, ref: str) -> Optional[StorageCleanupError]:
    if not ref or is_inline_photo(ref):
        return None

    try:
        await objects.delete(ref)
    except Exception as e:
        error = StorageCleanupError(ref, str(e))
        logger.warning("Error deleting image from storage: %s", error)
        return error

    return None
