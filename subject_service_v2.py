"""
Subject store, atomic flavour.

Each operation is a single ``find_one_and_update`` built from positional
(``$``) and filtered (``$[unit]``) array operators, so concurrent writers
touching different entities never overwrite each other. Every write also
bumps ``revision`` and ``updatedAt`` so the read-modify-write endpoints see
the change. All operations return the full updated subject.
"""

from functools import partial
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from exceptions import ConflictError, EntityNotFoundError, SubjectNotFoundError, ValidationError
from logging_config import get_logger
from schemas import Chapter, Identified, Syllabus, Unit, dump, new_id, now_utc, serialize_subject, set_fields
from subject_service import (
    COLLECTION,
    MAX_SAVE_ATTEMPTS,
    adopt_legacy_ids,
    create_subject,
    delete_subject,
    get_all_subjects,
    owner_filter,
)

logger = get_logger(__name__)

UNITS = "courseMaterials.syllabus.units"

# singular resource name -> (label, array path)
ITEM_PATHS = {
    "lecture": ("Lecture", "courseMaterials.lectures"),
    "reading": ("Reading", "courseMaterials.readings"),
    "assignment": ("Assignment", "courseMaterials.assignments"),
    "note": ("Note", "notes"),
}


def item_path(kind: str):
    if kind not in ITEM_PATHS:
        raise ValidationError(f"Unknown material type: {kind}")
    return ITEM_PATHS[kind]


def _touch(update: Dict[str, Any]) -> Dict[str, Any]:
    """Add the revision bump and ``updatedAt`` to an update document"""
    update = dict(update)
    update["$set"] = {**update.get("$set", {}), "updatedAt": now_utc()}
    update["$inc"] = {**update.get("$inc", {}), "revision": 1}
    return update


def _ids_adopted(db: Database, scope: Dict[str, Any], subject_id: str) -> bool:
    """
    Called after a write matched nothing. Raises when the subject itself is
    missing; otherwise gives legacy entries stored ids and reports whether
    that happened, in which case the write is worth one more try.
    """
    doc = db[COLLECTION].find_one(scope)
    if doc is None:
        raise SubjectNotFoundError(subject_id)
    return adopt_legacy_ids(db, doc)


def _apply(db: Database, subject_id: str, user_id: str, match: Dict[str, Any], update: Dict[str, Any],
           array_filters: Optional[List[Dict[str, Any]]] = None,
           missing: Optional[tuple] = None) -> Dict[str, Any]:
    """
    Run one atomic update against the caller's subject. ``match`` narrows the
    filter to documents that contain the target entity; ``missing`` is the
    ``(label, entity_id)`` reported when the subject exists but the entity
    does not.
    """
    scope = owner_filter(subject_id, user_id)
    query = {**scope, **match}
    update = _touch(update)
    kwargs: Dict[str, Any] = {"return_document": ReturnDocument.AFTER}
    if array_filters:
        kwargs["array_filters"] = array_filters

    doc = db[COLLECTION].find_one_and_update(query, update, **kwargs)
    if doc is None and missing is not None and _ids_adopted(db, scope, subject_id):
        doc = db[COLLECTION].find_one_and_update(query, update, **kwargs)
    if doc is None:
        if missing is None:
            raise SubjectNotFoundError(subject_id)
        raise EntityNotFoundError(*missing)
    return serialize_subject(doc)


def _prefixed(prefix: str, fields: Dict[str, Any]) -> Dict[str, Any]:
    return {f"{prefix}.{key}": value for key, value in fields.items()}


def _created(payload: Identified) -> Dict[str, Any]:
    return {**dump(payload), "id": new_id()}


# ---------------------------
# Syllabus
# ---------------------------

def update_syllabus(db: Database, subject_id: str, user_id: str, payload: Syllabus) -> Dict[str, Any]:
    """Overwrite the syllabus fields the client sent (title, content, units)"""
    changes = _prefixed("courseMaterials.syllabus", set_fields(payload))
    return _apply(db, subject_id, user_id, {}, {"$set": changes})


# ---------------------------
# Units & chapters
# ---------------------------

def add_unit(db: Database, subject_id: str, user_id: str, payload: Unit) -> Dict[str, Any]:
    return _apply(db, subject_id, user_id, {}, {"$push": {UNITS: _created(payload)}})


def edit_unit(db: Database, subject_id: str, user_id: str, unit_id: str, payload: Unit) -> Dict[str, Any]:
    return _apply(
        db, subject_id, user_id,
        {f"{UNITS}.id": unit_id},
        {"$set": _prefixed(f"{UNITS}.$", set_fields(payload))},
        missing=("Unit", unit_id),
    )


def delete_unit(db: Database, subject_id: str, user_id: str, unit_id: str) -> Dict[str, Any]:
    return _apply(
        db, subject_id, user_id,
        {f"{UNITS}.id": unit_id},
        {"$pull": {UNITS: {"id": unit_id}}},
        missing=("Unit", unit_id),
    )


def add_chapter(db: Database, subject_id: str, user_id: str, unit_id: str, payload: Chapter) -> Dict[str, Any]:
    return _apply(
        db, subject_id, user_id,
        {f"{UNITS}.id": unit_id},
        {"$push": {f"{UNITS}.$.chapters": _created(payload)}},
        missing=("Unit", unit_id),
    )


def _chapter_match(unit_id: str, chapter_id: str) -> Dict[str, Any]:
    return {UNITS: {"$elemMatch": {"id": unit_id, "chapters.id": chapter_id}}}


def edit_chapter(db: Database, subject_id: str, user_id: str, unit_id: str,
                 chapter_id: str, payload: Chapter) -> Dict[str, Any]:
    return _apply(
        db, subject_id, user_id,
        _chapter_match(unit_id, chapter_id),
        {"$set": _prefixed(f"{UNITS}.$[unit].chapters.$[chapter]", set_fields(payload))},
        array_filters=[{"unit.id": unit_id}, {"chapter.id": chapter_id}],
        missing=("Chapter", chapter_id),
    )


def delete_chapter(db: Database, subject_id: str, user_id: str, unit_id: str, chapter_id: str) -> Dict[str, Any]:
    return _apply(
        db, subject_id, user_id,
        _chapter_match(unit_id, chapter_id),
        {"$pull": {f"{UNITS}.$[unit].chapters": {"id": chapter_id}}},
        array_filters=[{"unit.id": unit_id}],
        missing=("Chapter", chapter_id),
    )


# ---------------------------
# Lectures, readings, assignments, notes
# ---------------------------

def add_item(db: Database, subject_id: str, user_id: str, payload: Identified, *, kind: str) -> Dict[str, Any]:
    _, path = item_path(kind)
    return _apply(db, subject_id, user_id, {}, {"$push": {path: _created(payload)}})


def edit_item(db: Database, subject_id: str, user_id: str, item_id: str,
              payload: Identified, *, kind: str) -> Dict[str, Any]:
    """Set only the fields present in the payload; the item keeps its id"""
    label, path = item_path(kind)
    return _apply(
        db, subject_id, user_id,
        {f"{path}.id": item_id},
        {"$set": _prefixed(f"{path}.$", set_fields(payload))},
        missing=(label, item_id),
    )


def delete_item(db: Database, subject_id: str, user_id: str, item_id: str, *, kind: str) -> Dict[str, Any]:
    label, path = item_path(kind)
    return _apply(
        db, subject_id, user_id,
        {f"{path}.id": item_id},
        {"$pull": {path: {"id": item_id}}},
        missing=(label, item_id),
    )


add_lecture = partial(add_item, kind="lecture")
edit_lecture = partial(edit_item, kind="lecture")
delete_lecture = partial(delete_item, kind="lecture")

add_reading = partial(add_item, kind="reading")
edit_reading = partial(edit_item, kind="reading")
delete_reading = partial(delete_item, kind="reading")

add_assignment = partial(add_item, kind="assignment")
edit_assignment = partial(edit_item, kind="assignment")
delete_assignment = partial(delete_item, kind="assignment")

add_note = partial(add_item, kind="note")
edit_note = partial(edit_item, kind="note")
delete_note = partial(delete_item, kind="note")


# ---------------------------
# Toggles
# ---------------------------

def _lookup(doc: Dict[str, Any], path: str) -> Any:
    for key in path.split("."):
        doc = (doc or {}).get(key)
    return doc


def _toggle(db: Database, subject_id: str, user_id: str, kind: str, item_id: str, field: str) -> Dict[str, Any]:
    """
    Flip a boolean flag with compare-and-set: the update only applies while
    the flag still holds the value that was read, so two concurrent toggles
    always alternate instead of collapsing into one.
    """
    label, path = item_path(kind)
    scope = owner_filter(subject_id, user_id)

    for attempt in range(1, MAX_SAVE_ATTEMPTS + 1):
        doc = db[COLLECTION].find_one({**scope, f"{path}.id": item_id}, {path: 1})
        if doc is None:
            if _ids_adopted(db, scope, subject_id):
                continue
            raise EntityNotFoundError(label, item_id)

        item = next(entry for entry in _lookup(doc, path) if entry.get("id") == item_id)
        current = bool(item.get(field, False))
        # Legacy entries may not carry the flag at all
        expected = True if current else {"$ne": True}

        updated = db[COLLECTION].find_one_and_update(
            {**scope, path: {"$elemMatch": {"id": item_id, field: expected}}},
            _touch({"$set": {f"{path}.$.{field}": not current}}),
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            return serialize_subject(updated)
        logger.warning(f"{label} {item_id} {field} changed during toggle (attempt {attempt}), retrying")

    raise ConflictError()


def toggle_favorite(db: Database, subject_id: str, user_id: str, kind: str, item_id: str) -> Dict[str, Any]:
    return _toggle(db, subject_id, user_id, kind, item_id, "isFavorite")


def toggle_assignment_completed(db: Database, subject_id: str, user_id: str, item_id: str) -> Dict[str, Any]:
    return _toggle(db, subject_id, user_id, "assignment", item_id, "isCompleted")
