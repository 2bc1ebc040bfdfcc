"""
Unit Tests for the document models
Tests for: id assignment, legacy document shapes, partial payloads
"""
import uuid

import pytest
from bson import ObjectId
from pydantic import ValidationError

from schemas import Chapter, Lecture, Subject, Unit, dump, public_user, serialize_subject, set_fields


def is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class TestIdentifiers:
    """Every nested entity ends up with a unique string id"""

    def test_missing_ids_are_generated(self):
        subject = Subject.model_validate({
            'name': 'Physics',
            'courseMaterials': {
                'syllabus': {'units': [{'title': 'Mechanics', 'chapters': [{'title': 'Kinematics'}]}]},
                'lectures': [{'title': 'Intro'}],
            },
            'notes': [{'title': 'Formulae'}],
        })

        unit = subject.course_materials.syllabus.units[0]
        assert is_uuid(unit.id)
        assert is_uuid(unit.chapters[0].id)
        assert is_uuid(subject.course_materials.lectures[0].id)
        assert is_uuid(subject.notes[0].id)

    def test_existing_ids_are_kept(self):
        lecture = Lecture.model_validate({'id': 'lecture-1', 'title': 'Intro'})
        assert lecture.id == 'lecture-1'

    def test_legacy_object_id_is_adopted(self):
        legacy = ObjectId()
        unit = Unit.model_validate({'_id': legacy, 'title': 'Legacy unit'})
        assert unit.id == str(legacy)
        assert '_id' not in dump(unit)

    def test_duplicate_ids_are_reissued(self):
        subject = Subject.model_validate({
            'name': 'Chemistry',
            'courseMaterials': {'readings': [{'id': 'r1', 'title': 'A'}, {'id': 'r1', 'title': 'B'}]},
        })
        first, second = subject.course_materials.readings
        assert first.id == 'r1'
        assert second.id != 'r1'

    def test_bare_string_subtopics(self):
        chapter = Chapter.model_validate({'title': 'Sorting', 'subtopics': ['Quicksort', {'title': 'Mergesort'}]})
        titles = [subtopic.title for subtopic in chapter.subtopics]
        assert titles == ['Quicksort', 'Mergesort']
        assert all(is_uuid(subtopic.id) for subtopic in chapter.subtopics)


class TestSubjectModel:
    def test_defaults(self):
        subject = Subject(name='History')
        data = dump(subject)
        assert data['icon'] == '📚'
        assert data['color'] == '#FFFFFF'
        assert data['courseMaterials'] == {
            'syllabus': {'title': '', 'content': '', 'units': []},
            'lectures': [],
            'readings': [],
            'assignments': [],
        }
        assert data['notes'] == []

    def test_name_is_required(self):
        with pytest.raises(ValidationError):
            Subject.model_validate({'icon': '🧪'})

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValidationError):
            Subject(name='   ')

    def test_camel_case_keys(self):
        lecture = Lecture(title='Intro', is_favorite=True)
        data = dump(lecture)
        assert data['isFavorite'] is True
        assert 'is_favorite' not in data

    def test_serialize_subject(self):
        oid, owner = ObjectId(), ObjectId()
        doc = {'_id': oid, 'user': owner, 'name': 'Biology', 'revision': 4}
        out = serialize_subject(doc)
        assert out['id'] == str(oid)
        assert out['user'] == str(owner)
        assert out['revision'] == 4
        assert '_id' not in out


class TestPartialPayloads:
    def test_only_sent_fields(self):
        payload = Lecture.model_validate({'title': 'Renamed'})
        assert set_fields(payload) == {'title': 'Renamed'}

    def test_id_is_never_included(self):
        payload = Lecture.model_validate({'id': 'hijack', 'isFavorite': True})
        assert set_fields(payload) == {'isFavorite': True}

    def test_nested_children_keep_generated_ids(self):
        payload = Unit.model_validate({'chapters': [{'title': 'One'}]})
        fields = set_fields(payload)
        assert list(fields) == ['chapters']
        assert is_uuid(fields['chapters'][0]['id'])


def test_public_user_hides_secrets():
    doc = {'_id': ObjectId(), 'name': 'Ada', 'email': 'ada@example.com', 'password': '$2b$...', 'googleId': 'g1'}
    assert set(public_user(doc)) == {'id', 'name', 'email', 'profilePicture'}
