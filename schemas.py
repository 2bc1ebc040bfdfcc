"""
Database Schemas

MongoDB collection schemas for the course organizer, as Pydantic models.
Model name is converted to lowercase for the collection name:
- User -> "user" collection
- Subject -> "subject" collection

Documents are stored with camelCase keys (``courseMaterials``,
``isFavorite``, ``dueDate`` ...); the models use snake_case attributes with
camelCase aliases. Every nested entity (unit, chapter, subtopic, lecture,
reading, assignment, attachment, note) is keyed by an app-generated UUID
``id``. Validating a document through :class:`Subject` fills in any missing
``id`` and re-issues duplicates, so ``Subject.model_validate(doc)`` is the
pre-save step for every write path.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    return str(uuid.uuid4())


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def strip_text(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def unique_ids(items: List["Identified"]) -> List["Identified"]:
    """Re-issue ids that repeat within one array"""
    seen = set()
    for item in items:
        if item.id in seen:
            item.id = new_id()
        seen.add(item.id)
    return items


class DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Identified(DocumentModel):
    """Sub-document keyed by an app-generated UUID"""

    id: str = Field(default_factory=new_id, description="App-generated UUID")

    @model_validator(mode="before")
    @classmethod
    def adopt_legacy_object_id(cls, data: Any) -> Any:
        # Entries written by the old ODM only carry a driver ``_id``
        if isinstance(data, dict) and not data.get("id") and data.get("_id") is not None:
            data = {**data, "id": str(data["_id"])}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def fill_missing_id(cls, value: Any) -> str:
        return str(value) if value else new_id()


# ---------------------------
# Syllabus tree
# ---------------------------

class Subtopic(Identified):
    title: str = ""

    @model_validator(mode="before")
    @classmethod
    def from_bare_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"title": data}
        return data


class Chapter(Identified):
    title: str = ""
    subtopics: List[Subtopic] = Field(default_factory=list)

    @field_validator("subtopics")
    @classmethod
    def dedupe_subtopic_ids(cls, value):
        return unique_ids(value)


class Unit(Identified):
    title: str = ""
    weeks: Optional[Union[int, str]] = None
    chapters: List[Chapter] = Field(default_factory=list)

    @field_validator("chapters")
    @classmethod
    def dedupe_chapter_ids(cls, value):
        return unique_ids(value)


class Syllabus(DocumentModel):
    title: str = ""
    content: str = ""
    units: List[Unit] = Field(default_factory=list)

    @field_validator("units")
    @classmethod
    def dedupe_unit_ids(cls, value):
        return unique_ids(value)


# ---------------------------
# Course materials
# ---------------------------

class Attachment(Identified):
    """Metadata of an externally hosted file; only the URL is stored"""

    name: str = ""
    type: str = ""
    size: int = 0
    url: str = ""


class Lecture(Identified):
    title: str = ""
    date: datetime = Field(default_factory=now_utc)
    content: str = ""
    is_favorite: bool = False
    attachments: List[Attachment] = Field(default_factory=list)

    @field_validator("attachments")
    @classmethod
    def dedupe_attachment_ids(cls, value):
        return unique_ids(value)


class Reading(Identified):
    title: str = ""
    type: str = Field("", description="TEXTBOOK, ARTICLE, VIDEO, ...")
    type_field_one: str = ""
    type_field_two: str = ""
    is_favorite: bool = False
    attachments: List[Attachment] = Field(default_factory=list)

    @field_validator("attachments")
    @classmethod
    def dedupe_attachment_ids(cls, value):
        return unique_ids(value)


class Assignment(Identified):
    title: str = ""
    due_date: Optional[datetime] = None
    points: Optional[float] = None
    instructions: str = ""
    is_completed: bool = False
    is_favorite: bool = False
    attachments: List[Attachment] = Field(default_factory=list)

    @field_validator("attachments")
    @classmethod
    def dedupe_attachment_ids(cls, value):
        return unique_ids(value)


class Note(Identified):
    title: str = ""
    date: datetime = Field(default_factory=now_utc)
    content: str = ""
    tags: List[str] = Field(default_factory=list)
    is_favorite: bool = False


class CourseMaterials(DocumentModel):
    syllabus: Syllabus = Field(default_factory=Syllabus)
    lectures: List[Lecture] = Field(default_factory=list)
    readings: List[Reading] = Field(default_factory=list)
    assignments: List[Assignment] = Field(default_factory=list)

    @field_validator("lectures", "readings", "assignments")
    @classmethod
    def dedupe_item_ids(cls, value):
        return unique_ids(value)


# ---------------------------
# Collections
# ---------------------------

class Subject(DocumentModel):
    """
    Subjects collection schema
    Collection name: "subject"

    Ownership (``user``), ``revision`` and timestamps live beside these
    fields in the stored document and are managed by the services.
    """

    name: str = Field(..., min_length=1, description="Subject name")
    icon: str = Field("📚", description="Emoji icon")
    color: str = Field("#FFFFFF", description="Hex color")
    course_materials: CourseMaterials = Field(default_factory=CourseMaterials)
    notes: List[Note] = Field(default_factory=list)

    @field_validator("notes")
    @classmethod
    def dedupe_note_ids(cls, value):
        return unique_ids(value)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: Any) -> Any:
        return strip_text(value)


class SubjectUpdate(DocumentModel):
    """Top-level fields a client may overwrite on a subject"""

    name: Optional[str] = Field(None, min_length=1)
    icon: Optional[str] = None
    color: Optional[str] = None
    course_materials: Optional[CourseMaterials] = None
    notes: Optional[List[Note]] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value: Any) -> Any:
        return strip_text(value)


class User(DocumentModel):
    """
    Users collection schema
    Collection name: "user"
    """

    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Unique, lower-cased email address")
    password: str = Field(..., description="bcrypt hash")
    google_id: Optional[str] = Field(None, description="Google account subject id")
    profile_picture: Optional[str] = Field(None, description="Profile picture URL")
    password_reset_token: Optional[str] = Field(None, description="SHA-256 of the reset token")
    password_reset_expires: Optional[datetime] = Field(None, description="Reset token expiry (UTC)")


# ---------------------------
# Serialization helpers
# ---------------------------

def dump(model: BaseModel) -> Dict[str, Any]:
    """Document shape (camelCase keys) of a model"""
    return model.model_dump(by_alias=True)


def set_fields(model: BaseModel) -> Dict[str, Any]:
    """
    camelCase dict of the fields the client actually sent, with nested
    values dumped in full so generated child ids are kept.
    """
    full = dump(model)
    fields = type(model).model_fields
    aliases = [fields[name].alias or name for name in model.model_fields_set if name != "id"]
    return {alias: full[alias] for alias in aliases}


def serialize_subject(doc: Dict[str, Any]) -> Dict[str, Any]:
    """API view of a stored subject: ``_id`` exposed as ``id``"""
    out = dump(Subject.model_validate(doc))
    out["id"] = str(doc["_id"])
    out["user"] = str(doc["user"])
    out["revision"] = doc.get("revision", 0)
    out["createdAt"] = doc.get("createdAt")
    out["updatedAt"] = doc.get("updatedAt")
    return out


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "profilePicture": doc.get("profilePicture"),
    }
