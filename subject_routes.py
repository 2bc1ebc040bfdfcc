from typing import Type

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo.database import Database

import subject_service as service
from database import get_db
from schemas import Attachment, Chapter, Subject, SubjectUpdate, Unit
from security import get_current_user

router = APIRouter(prefix="/api/subjects", tags=["subjects"])


def deleted(label: str) -> dict:
    return {"message": f"{label} deleted successfully"}


# ---------------------------
# Subjects
# ---------------------------

@router.post("", status_code=201)
def create_subject(payload: Subject, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.create_subject(db, user["id"], payload)


@router.get("")
def list_subjects(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.get_all_subjects(db, user["id"])


@router.get("/{subject_id}")
def get_subject(subject_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.get_subject_by_id(db, subject_id, user["id"])


@router.put("/{subject_id}")
def update_subject(subject_id: str, payload: SubjectUpdate,
                   user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.update_subject(db, subject_id, user["id"], payload)


@router.delete("/{subject_id}")
def delete_subject(subject_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    service.delete_subject(db, subject_id, user["id"])
    return deleted("Subject")


# ---------------------------
# Syllabus units & chapters
# ---------------------------

@router.post("/{subject_id}/units", status_code=201)
def add_unit(subject_id: str, payload: Unit,
             user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.add_unit(db, subject_id, user["id"], payload)


@router.get("/{subject_id}/units")
def get_units(subject_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.get_units(db, subject_id, user["id"])


@router.put("/{subject_id}/units/{unit_id}")
def update_unit(subject_id: str, unit_id: str, payload: Unit,
                user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.update_unit(db, subject_id, user["id"], unit_id, payload)


@router.delete("/{subject_id}/units/{unit_id}")
def delete_unit(subject_id: str, unit_id: str,
                user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    service.delete_unit(db, subject_id, user["id"], unit_id)
    return deleted("Unit")


@router.post("/{subject_id}/units/{unit_id}/chapters", status_code=201)
def add_chapter(subject_id: str, unit_id: str, payload: Chapter,
                user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.add_chapter(db, subject_id, user["id"], unit_id, payload)


@router.get("/{subject_id}/units/{unit_id}/chapters")
def get_chapters(subject_id: str, unit_id: str,
                 user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.get_chapters(db, subject_id, user["id"], unit_id)


@router.put("/{subject_id}/units/{unit_id}/chapters/{chapter_id}")
def update_chapter(subject_id: str, unit_id: str, chapter_id: str, payload: Chapter,
                   user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.update_chapter(db, subject_id, user["id"], unit_id, chapter_id, payload)


@router.delete("/{subject_id}/units/{unit_id}/chapters/{chapter_id}")
def delete_chapter(subject_id: str, unit_id: str, chapter_id: str,
                   user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    service.delete_chapter(db, subject_id, user["id"], unit_id, chapter_id)
    return deleted("Chapter")


# ---------------------------
# Lectures, readings, assignments, notes
# ---------------------------

def register_item_routes(kind: str, model: Type[BaseModel]) -> None:
    """CRUD routes for one flat material array, e.g. ``/{subject_id}/lectures``"""
    label = service.item_label(kind)

    @router.post(f"/{{subject_id}}/{kind}", status_code=201, name=f"add_{kind}")
    def add(subject_id: str, payload: model,
            user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        return service.add_item(db, subject_id, user["id"], payload, kind=kind)

    @router.get(f"/{{subject_id}}/{kind}", name=f"get_{kind}")
    def get_all(subject_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        return service.get_items(db, subject_id, user["id"], kind=kind)

    @router.put(f"/{{subject_id}}/{kind}/{{item_id}}", name=f"update_{kind}")
    def update(subject_id: str, item_id: str, payload: model,
               user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        return service.update_item(db, subject_id, user["id"], item_id, payload, kind=kind)

    @router.delete(f"/{{subject_id}}/{kind}/{{item_id}}", name=f"delete_{kind}")
    def delete(subject_id: str, item_id: str,
               user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        service.delete_item(db, subject_id, user["id"], item_id, kind=kind)
        return deleted(label)


def register_attachment_routes(kind: str) -> None:
    @router.post(f"/{{subject_id}}/{kind}/{{item_id}}/attachments", status_code=201,
                 name=f"add_{kind}_attachment")
    def add(subject_id: str, item_id: str, payload: Attachment,
            user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        return service.add_attachment(db, subject_id, user["id"], kind, item_id, payload)

    @router.delete(f"/{{subject_id}}/{kind}/{{item_id}}/attachments/{{attachment_id}}",
                   name=f"delete_{kind}_attachment")
    def delete(subject_id: str, item_id: str, attachment_id: str,
               user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        service.delete_attachment(db, subject_id, user["id"], kind, item_id, attachment_id)
        return deleted("Attachment")


for _kind, (_label, _model) in service.ITEM_KINDS.items():
    register_item_routes(_kind, _model)

for _kind in service.ATTACHMENT_KINDS:
    register_attachment_routes(_kind)
