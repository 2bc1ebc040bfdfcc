from typing import Type

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo.database import Database

import subject_service_v2 as service
from database import get_db
from schemas import Assignment, Chapter, Lecture, Note, Reading, Subject, Syllabus, Unit
from security import get_current_user

router = APIRouter(prefix="/api/subjectsV2", tags=["subjects-v2"])

ITEM_MODELS = {
    "lecture": Lecture,
    "reading": Reading,
    "assignment": Assignment,
    "note": Note,
}


# ---------------------------
# Subjects & syllabus
# ---------------------------

@router.get("")
def list_subjects(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.get_all_subjects(db, user["id"])


@router.post("", status_code=201)
def create_subject(payload: Subject, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.create_subject(db, user["id"], payload)


@router.delete("/{subject_id}")
def delete_subject(subject_id: str, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    service.delete_subject(db, subject_id, user["id"])
    return {"message": "Subject deleted successfully"}


@router.put("/{subject_id}/syllabus")
def update_syllabus(subject_id: str, payload: Syllabus,
                    user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.update_syllabus(db, subject_id, user["id"], payload)


# ---------------------------
# Units & chapters
# ---------------------------

@router.post("/{subject_id}/unit", status_code=201)
def add_unit(subject_id: str, payload: Unit,
             user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.add_unit(db, subject_id, user["id"], payload)


@router.put("/{subject_id}/unit/{unit_id}")
def edit_unit(subject_id: str, unit_id: str, payload: Unit,
              user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.edit_unit(db, subject_id, user["id"], unit_id, payload)


@router.delete("/{subject_id}/unit/{unit_id}")
def delete_unit(subject_id: str, unit_id: str,
                user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.delete_unit(db, subject_id, user["id"], unit_id)


@router.post("/{subject_id}/unit/{unit_id}/chapter", status_code=201)
def add_chapter(subject_id: str, unit_id: str, payload: Chapter,
                user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.add_chapter(db, subject_id, user["id"], unit_id, payload)


@router.put("/{subject_id}/unit/{unit_id}/chapter/{chapter_id}")
def edit_chapter(subject_id: str, unit_id: str, chapter_id: str, payload: Chapter,
                 user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.edit_chapter(db, subject_id, user["id"], unit_id, chapter_id, payload)


@router.delete("/{subject_id}/unit/{unit_id}/chapter/{chapter_id}")
def delete_chapter(subject_id: str, unit_id: str, chapter_id: str,
                   user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.delete_chapter(db, subject_id, user["id"], unit_id, chapter_id)


# ---------------------------
# Lectures, readings, assignments, notes
# ---------------------------

def register_item_routes(kind: str, model: Type[BaseModel]) -> None:
    @router.post(f"/{{subject_id}}/{kind}", status_code=201, name=f"add_{kind}_v2")
    def add(subject_id: str, payload: model,
            user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        return service.add_item(db, subject_id, user["id"], payload, kind=kind)

    @router.put(f"/{{subject_id}}/{kind}/{{item_id}}", name=f"edit_{kind}_v2")
    def edit(subject_id: str, item_id: str, payload: model,
             user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        return service.edit_item(db, subject_id, user["id"], item_id, payload, kind=kind)

    @router.delete(f"/{{subject_id}}/{kind}/{{item_id}}", name=f"delete_{kind}_v2")
    def delete(subject_id: str, item_id: str,
               user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        return service.delete_item(db, subject_id, user["id"], item_id, kind=kind)

    @router.patch(f"/{{subject_id}}/{kind}/{{item_id}}/favorite", name=f"toggle_{kind}_favorite")
    def toggle_favorite(subject_id: str, item_id: str,
                        user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
        return service.toggle_favorite(db, subject_id, user["id"], kind, item_id)


for _kind, _model in ITEM_MODELS.items():
    register_item_routes(_kind, _model)


@router.patch("/{subject_id}/assignment/{item_id}/complete")
def toggle_assignment_completed(subject_id: str, item_id: str,
                                user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return service.toggle_assignment_completed(db, subject_id, user["id"], item_id)
