from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

CSI_DIVISIONS: List[str] = [
    "Division 01 - General Requirements",
    "Division 02 - Existing Conditions",
    "Division 03 - Concrete",
    "Division 04 - Masonry",
    "Division 05 - Metals",
    "Division 06 - Wood, Plastics, and Composites",
    "Division 07 - Thermal and Moisture Protection",
    "Division 08 - Openings",
    "Division 09 - Finishes",
    "Division 10 - Specialties",
    "Division 11 - Equipment",
    "Division 12 - Furnishings",
    "Division 21 - Fire Suppression",
    "Division 22 - Plumbing",
    "Division 23 - HVAC",
    "Division 26 - Electrical",
    "Division 27 - Communications",
    "Division 28 - Electronic Safety and Security",
]

ALL_CATEGORIES = "All"


@dataclass(frozen=True)
class PhotoBlob:
    """A locally held image that has not been uploaded yet."""

    filename: str
    content: bytes
    content_type: str = "image/jpeg"

    def describe(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "size": len(self.content),
        }


@dataclass(frozen=True)
class ItemFields:
    room: str
    description: str
    category: str


@dataclass
class PunchlistItem:
    id: str
    room: str
    description: str
    category: str
    photo: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PunchlistItem":
        return cls(
            id=data["id"],
            room=data.get("room", ""),
            description=data.get("description", ""),
            category=data.get("category", ""),
            photo=data.get("photo", ""),
            created_at=data.get("created_at", ""),
        )


@dataclass
class Job:
    id: str
    name: str
    user_id: str
    created_at: str
    items: List[PunchlistItem] = field(default_factory=list)

    @property
    def item_count(self) -> int:
        return len(self.items)

    def find_item(self, item_id: str) -> Optional[PunchlistItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "user_id": self.user_id,
            "created_at": self.created_at,
            "items": [i.to_dict() for i in self.items],
        }

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "user_id": self.user_id,
            "created_at": self.created_at,
            "item_count": self.item_count,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Job":
        return cls(
            id=doc["id"],
            name=doc.get("name", ""),
            user_id=doc.get("user_id", ""),
            created_at=doc.get("created_at", ""),
            items=[PunchlistItem.from_dict(i) for i in doc.get("items", [])],
        )


@dataclass(frozen=True)
class ExtractedFields:
    room: str
    description: str
    category: str
    category_unexpected: bool = False


@dataclass(frozen=True)
class ExtractionFailure:
    reason: str
    details: Optional[str] = None
    raw_text: Optional[str] = None


@dataclass
class DraftRecord:
    category: str
    room: str = ""
    description: str = ""
    photo: Optional[PhotoBlob] = None

    is_listening: bool = False
    is_extracting: bool = False
    live_transcript: str = ""
    last_error: Optional[str] = None

    def fields(self) -> ItemFields:
        return ItemFields(
            room=self.room.strip(),
            description=self.description.strip(),
            category=self.category,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "room": self.room,
            "description": self.description,
            "category": self.category,
            "photo": self.photo.describe() if self.photo else None,
            "is_listening": self.is_listening,
            "is_extracting": self.is_extracting,
            "live_transcript": self.live_transcript,
            "last_error": self.last_error,
        }
