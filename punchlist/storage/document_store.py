import json
import logging
import os
import uuid
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

from punchlist.core.events import Subscription

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
SnapshotListener = Callable[[List[Document]], None]


class DocumentStore(Protocol):
    async def get(self, doc_id: str) -> Optional[Document]: ...

    async def add(self, data: Document) -> str: ...

    async def update(self, doc_id: str, fields: Document) -> None: ...

    async def delete(self, doc_id: str) -> None: ...

    def watch(
        self,
        field: str,
        value: Any,
        listener: SnapshotListener,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> Subscription: ...


@dataclass
class _Watch:
    field: str
    value: Any
    listener: SnapshotListener
    order_by: str
    descending: bool


class InMemoryDocumentStore:
    """
    One collection of documents keyed by id.

    Watchers get the complete filtered result set after every write, in the
    order the write happened. A write that cannot be persisted changes
    nothing. Documents handed out are copies.
    """

    def __init__(self, collection: str = "jobs"):
        self.collection = collection
        self._docs: Dict[str, Document] = {}
        self._watches: List[_Watch] = []

    async def get(self, doc_id: str) -> Optional[Document]:
        doc = self._docs.get(doc_id)
        return deepcopy(doc) if doc is not None else None

    async def add(self, data: Document) -> str:
        doc_id = uuid.uuid4().hex
        doc = deepcopy(data)
        doc["id"] = doc_id
        self._commit({**self._docs, doc_id: doc})
        return doc_id

    async def update(self, doc_id: str, fields: Document) -> None:
        if doc_id not in self._docs:
            raise KeyError(doc_id)
        doc = deepcopy(self._docs[doc_id])
        doc.update(deepcopy(fields))
        self._commit({**self._docs, doc_id: doc})

    async def delete(self, doc_id: str) -> None:
        if doc_id in self._docs:
            self._commit({k: v for k, v in self._docs.items() if k != doc_id})

    def watch(
        self,
        field: str,
        value: Any,
        listener: SnapshotListener,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> Subscription:
        watch = _Watch(field, value, listener, order_by, descending)
        self._watches.append(watch)
        listener(self._query(watch))

        def _remove():
            if watch in self._watches:
                self._watches.remove(watch)

        return Subscription(_remove)

    def _query(self, watch: _Watch) -> List[Document]:
        docs = [
            deepcopy(d)
            for d in self._docs.values()
            if d.get(watch.field) == watch.value
        ]
        docs.sort(key=lambda d: d.get(watch.order_by) or "", reverse=watch.descending)
        return docs

    def _commit(self, docs: Dict[str, Document]) -> None:
        # nothing becomes visible until the new map is persisted
        self._persist(docs)
        self._docs = docs
        for watch in list(self._watches):
            try:
                watch.listener(self._query(watch))
            except Exception:
                logger.exception("Watcher on %s=%r failed", watch.field, watch.value)

    def _persist(self, docs: Dict[str, Document]) -> None:
        pass


class JsonFileDocumentStore(InMemoryDocumentStore):
    """In-memory collection mirrored to data/store/<collection>.json."""

    def __init__(self, base_dir: str, collection: str = "jobs"):
        super().__init__(collection)
        self.path = Path(base_dir) / "store" / f"{collection}.json"
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if self.path.exists():
            docs = json.loads(self.path.read_text(encoding="utf-8"))
            self._docs = {d["id"]: d for d in docs}
            logger.info("Loaded %d %s from %s", len(self._docs), collection, self.path)

    def _persist(self, docs: Dict[str, Document]) -> None:
        tmp_path = self.path.with_suffix(".json.tmp")
        tmp_path.write_text(
            json.dumps(list(docs.values()), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        os.replace(tmp_path, self.path)
