"""
Subject store, read-modify-write flavour.

Every nested mutation loads the caller's subject, edits it in memory through
the :mod:`schemas` models and writes the whole document back. The write is a
compare-and-swap on ``revision``: if another writer saved in between, the
cycle is replayed on the fresh document (up to ``MAX_SAVE_ATTEMPTS`` times)
instead of overwriting the other change.
"""

from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from pymongo.database import Database

from database import create_document, get_documents, to_object_id
from exceptions import ConflictError, EntityNotFoundError, SubjectNotFoundError, ValidationError
from logging_config import get_logger
from schemas import (
    Assignment,
    Attachment,
    Chapter,
    Identified,
    Lecture,
    Note,
    Reading,
    Subject,
    SubjectUpdate,
    Unit,
    dump,
    new_id,
    now_utc,
    serialize_subject,
    set_fields,
)

logger = get_logger(__name__)

COLLECTION = "subject"
MAX_SAVE_ATTEMPTS = 3

# kind -> (label, model) for the flat entity arrays
ITEM_KINDS: Dict[str, Tuple[str, Type[Identified]]] = {
    "lectures": ("Lecture", Lecture),
    "readings": ("Reading", Reading),
    "assignments": ("Assignment", Assignment),
    "notes": ("Note", Note),
}
ATTACHMENT_KINDS = ("lectures", "readings", "assignments")

T = TypeVar("T")
M = TypeVar("M", bound=Identified)


# ---------------------------
# Helpers
# ---------------------------

def owner_filter(subject_id: str, user_id: str) -> Dict[str, Any]:
    """Query predicate that scopes a subject to its owner"""
    subject_oid = to_object_id(subject_id)
    if subject_oid is None:
        raise SubjectNotFoundError(subject_id)
    return {"_id": subject_oid, "user": to_object_id(user_id)}


def item_label(kind: str) -> str:
    if kind not in ITEM_KINDS:
        raise ValidationError(f"Unknown material type: {kind}")
    return ITEM_KINDS[kind][0]


def items_of(subject: Subject, kind: str) -> List[Any]:
    item_label(kind)
    if kind == "notes":
        return subject.notes
    return getattr(subject.course_materials, kind)


def find_by_id(items: List[M], item_id: str, label: str) -> M:
    for item in items:
        if item.id == item_id:
            return item
    raise EntityNotFoundError(label, item_id)


def remove_by_id(items: List[M], item_id: str, label: str) -> None:
    items.remove(find_by_id(items, item_id, label))


def with_new_id(payload: M) -> M:
    """Fresh server-assigned id for a newly added entity"""
    return payload.model_copy(update={"id": new_id()})


def merge(existing: M, changes: BaseModel) -> M:
    """Apply the fields the client sent; the original ``id`` always wins"""
    data = {**dump(existing), **set_fields(changes), "id": existing.id}
    return type(existing).model_validate(data)


def replace_in(items: List[M], existing: M, updated: M) -> None:
    items[items.index(existing)] = updated


def _save(db: Database, doc: Dict[str, Any], subject: Subject) -> Optional[Dict[str, Any]]:
    revision = doc.get("revision", 0)
    guard: Dict[str, Any] = {"_id": doc["_id"], "user": doc["user"]}
    guard["revision"] = revision if "revision" in doc else {"$exists": False}

    replacement = {
        **dump(Subject.model_validate(dump(subject))),
        "user": doc["user"],
        "revision": revision + 1,
        "createdAt": doc.get("createdAt") or now_utc(),
        "updatedAt": now_utc(),
    }
    result = db[COLLECTION].replace_one(guard, replacement)
    if result.matched_count != 1:
        return None
    replacement["_id"] = doc["_id"]
    return replacement


def mutate(db: Database, subject_id: str, user_id: str,
           mutation: Callable[[Subject], T]) -> Tuple[T, Dict[str, Any]]:
    """
    Load the caller's subject, run ``mutation`` on it and save it back.
    Returns the mutation's result and the saved document.
    """
    scope = owner_filter(subject_id, user_id)
    for attempt in range(1, MAX_SAVE_ATTEMPTS + 1):
        doc = db[COLLECTION].find_one(scope)
        if doc is None:
            raise SubjectNotFoundError(subject_id)
        subject = Subject.model_validate(doc)
        result = mutation(subject)
        saved = _save(db, doc, subject)
        if saved is not None:
            return result, saved
        logger.warning(f"Subject {subject_id} changed during update (attempt {attempt}), retrying")
    raise ConflictError()


def _entries_lack_ids(entries: Any) -> bool:
    for entry in entries or ():
        # bare-string subtopics count too
        if not isinstance(entry, dict) or not entry.get("id"):
            return True
        if any(_entries_lack_ids(entry.get(key)) for key in ("chapters", "subtopics", "attachments")):
            return True
    return False


def lacks_entity_ids(doc: Dict[str, Any]) -> bool:
    """True when some nested entry is stored without an ``id``"""
    materials = doc.get("courseMaterials") or {}
    arrays = [
        (materials.get("syllabus") or {}).get("units"),
        materials.get("lectures"),
        materials.get("readings"),
        materials.get("assignments"),
        doc.get("notes"),
    ]
    return any(_entries_lack_ids(entries) for entries in arrays)


def adopt_legacy_ids(db: Database, doc: Dict[str, Any]) -> bool:
    """
    Persist the ids that validation gives legacy entries (``str(_id)``, or a
    fresh UUID) so id-based queries can match them. Returns True when the
    document was rewritten.
    """
    if not lacks_entity_ids(doc):
        return False
    saved = _save(db, doc, Subject.model_validate(doc))
    if saved is None:
        return False
    logger.info(f"Stored ids for legacy entries of subject {doc['_id']}")
    return True


def backfill_entity_ids(db: Database) -> int:
    """Run :func:`adopt_legacy_ids` over every subject; returns how many changed"""
    return sum(1 for doc in db[COLLECTION].find() if adopt_legacy_ids(db, doc))


def load(db: Database, subject_id: str, user_id: str) -> Subject:
    doc = db[COLLECTION].find_one(owner_filter(subject_id, user_id))
    if doc is None:
        raise SubjectNotFoundError(subject_id)
    return Subject.model_validate(doc)


def dump_all(items: List[BaseModel]) -> List[Dict[str, Any]]:
    return [dump(item) for item in items]


# ---------------------------
# Subjects
# ---------------------------

def create_subject(db: Database, user_id: str, payload: Subject) -> Dict[str, Any]:
    data = {**dump(payload), "user": to_object_id(user_id), "revision": 0}
    subject_id = create_document(db, COLLECTION, data)
    logger.info(f"Created subject {subject_id}")
    return get_subject_by_id(db, subject_id, user_id)


def get_all_subjects(db: Database, user_id: str) -> List[Dict[str, Any]]:
    """The caller's subjects, newest first"""
    docs = get_documents(db, COLLECTION, {"user": to_object_id(user_id)})
    return [serialize_subject(doc) for doc in docs]


def get_subject_by_id(db: Database, subject_id: str, user_id: str) -> Dict[str, Any]:
    doc = db[COLLECTION].find_one(owner_filter(subject_id, user_id))
    if doc is None:
        raise SubjectNotFoundError(subject_id)
    return serialize_subject(doc)


def update_subject(db: Database, subject_id: str, user_id: str, payload: SubjectUpdate) -> Dict[str, Any]:
    def apply(subject: Subject) -> None:
        for name in payload.model_fields_set:
            value = getattr(payload, name)
            if value is not None:
                setattr(subject, name, value)

    _, saved = mutate(db, subject_id, user_id, apply)
    return serialize_subject(saved)


def delete_subject(db: Database, subject_id: str, user_id: str) -> None:
    result = db[COLLECTION].delete_one(owner_filter(subject_id, user_id))
    if result.deleted_count == 0:
        raise SubjectNotFoundError(subject_id)
    logger.info(f"Deleted subject {subject_id}")


# ---------------------------
# Syllabus units
# ---------------------------

def add_unit(db: Database, subject_id: str, user_id: str, payload: Unit) -> Dict[str, Any]:
    def apply(subject: Subject) -> Unit:
        unit = with_new_id(payload)
        subject.course_materials.syllabus.units.append(unit)
        return unit

    unit, _ = mutate(db, subject_id, user_id, apply)
    return dump(unit)


def get_units(db: Database, subject_id: str, user_id: str) -> List[Dict[str, Any]]:
    return dump_all(load(db, subject_id, user_id).course_materials.syllabus.units)


def update_unit(db: Database, subject_id: str, user_id: str, unit_id: str, payload: Unit) -> Dict[str, Any]:
    def apply(subject: Subject) -> Unit:
        units = subject.course_materials.syllabus.units
        existing = find_by_id(units, unit_id, "Unit")
        updated = merge(existing, payload)
        replace_in(units, existing, updated)
        return updated

    unit, _ = mutate(db, subject_id, user_id, apply)
    return dump(unit)


def delete_unit(db: Database, subject_id: str, user_id: str, unit_id: str) -> None:
    mutate(db, subject_id, user_id,
           lambda subject: remove_by_id(subject.course_materials.syllabus.units, unit_id, "Unit"))


# ---------------------------
# Chapters
# ---------------------------

def _unit(subject: Subject, unit_id: str) -> Unit:
    return find_by_id(subject.course_materials.syllabus.units, unit_id, "Unit")


def add_chapter(db: Database, subject_id: str, user_id: str, unit_id: str, payload: Chapter) -> Dict[str, Any]:
    def apply(subject: Subject) -> Chapter:
        chapter = with_new_id(payload)
        _unit(subject, unit_id).chapters.append(chapter)
        return chapter

    chapter, _ = mutate(db, subject_id, user_id, apply)
    return dump(chapter)


def get_chapters(db: Database, subject_id: str, user_id: str, unit_id: str) -> List[Dict[str, Any]]:
    return dump_all(_unit(load(db, subject_id, user_id), unit_id).chapters)


def update_chapter(db: Database, subject_id: str, user_id: str, unit_id: str,
                   chapter_id: str, payload: Chapter) -> Dict[str, Any]:
    def apply(subject: Subject) -> Chapter:
        chapters = _unit(subject, unit_id).chapters
        existing = find_by_id(chapters, chapter_id, "Chapter")
        updated = merge(existing, payload)
        replace_in(chapters, existing, updated)
        return updated

    chapter, _ = mutate(db, subject_id, user_id, apply)
    return dump(chapter)


def delete_chapter(db: Database, subject_id: str, user_id: str, unit_id: str, chapter_id: str) -> None:
    mutate(db, subject_id, user_id,
           lambda subject: remove_by_id(_unit(subject, unit_id).chapters, chapter_id, "Chapter"))


# ---------------------------
# Lectures, readings, assignments, notes
# ---------------------------

def add_item(db: Database, subject_id: str, user_id: str, payload: Identified, *, kind: str) -> Dict[str, Any]:
    def apply(subject: Subject) -> Identified:
        item = with_new_id(payload)
        items_of(subject, kind).append(item)
        return item

    item, _ = mutate(db, subject_id, user_id, apply)
    return dump(item)


def get_items(db: Database, subject_id: str, user_id: str, *, kind: str) -> List[Dict[str, Any]]:
    return dump_all(items_of(load(db, subject_id, user_id), kind))


def update_item(db: Database, subject_id: str, user_id: str, item_id: str,
                payload: Identified, *, kind: str) -> Dict[str, Any]:
    label = item_label(kind)

    def apply(subject: Subject) -> Identified:
        items = items_of(subject, kind)
        existing = find_by_id(items, item_id, label)
        updated = merge(existing, payload)
        replace_in(items, existing, updated)
        return updated

    item, _ = mutate(db, subject_id, user_id, apply)
    return dump(item)


def delete_item(db: Database, subject_id: str, user_id: str, item_id: str, *, kind: str) -> None:
    label = item_label(kind)
    mutate(db, subject_id, user_id,
           lambda subject: remove_by_id(items_of(subject, kind), item_id, label))


add_lecture = partial(add_item, kind="lectures")
get_lectures = partial(get_items, kind="lectures")
update_lecture = partial(update_item, kind="lectures")
delete_lecture = partial(delete_item, kind="lectures")

add_reading = partial(add_item, kind="readings")
get_readings = partial(get_items, kind="readings")
update_reading = partial(update_item, kind="readings")
delete_reading = partial(delete_item, kind="readings")

add_assignment = partial(add_item, kind="assignments")
get_assignments = partial(get_items, kind="assignments")
update_assignment = partial(update_item, kind="assignments")
delete_assignment = partial(delete_item, kind="assignments")

add_note = partial(add_item, kind="notes")
get_notes = partial(get_items, kind="notes")
update_note = partial(update_item, kind="notes")
delete_note = partial(delete_item, kind="notes")


# ---------------------------
# Attachments
# ---------------------------

def _attachable(subject: Subject, kind: str, item_id: str):
    if kind not in ATTACHMENT_KINDS:
        raise ValidationError(f"{item_label(kind)}s do not carry attachments")
    return find_by_id(items_of(subject, kind), item_id, item_label(kind))


def add_attachment(db: Database, subject_id: str, user_id: str, kind: str,
                   item_id: str, payload: Attachment) -> Dict[str, Any]:
    def apply(subject: Subject) -> Attachment:
        attachment = with_new_id(payload)
        _attachable(subject, kind, item_id).attachments.append(attachment)
        return attachment

    attachment, _ = mutate(db, subject_id, user_id, apply)
    return dump(attachment)


def delete_attachment(db: Database, subject_id: str, user_id: str, kind: str,
                      item_id: str, attachment_id: str) -> None:
    mutate(db, subject_id, user_id,
           lambda subject: remove_by_id(_attachable(subject, kind, item_id).attachments,
                                        attachment_id, "Attachment"))
