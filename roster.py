"""Read access to batches, semesters, subjects and students.

Queries return plain dataclasses instead of ORM rows so the report code works
on fixed shapes and can be tested without a database.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from app_logging import DBTimer
from models import Batch, Semester, Student, Subject, User, db


@dataclass(frozen=True)
class RosterEntry:
    """A student joined with the name and email of their user account."""

    id: int
    roll_no: str
    name: str
    email: str
    batch_id: Optional[int] = None
    semester_id: Optional[int] = None


@dataclass(frozen=True)
class SubjectRef:
    id: int
    name: str
    code: str
    semester_id: Optional[int] = None


def _roster_query():
    # Outer join so students without a linked account still appear.
    return (
        db.session.query(Student, User)
        .outerjoin(User, Student.user_id == User.id)
        .order_by(Student.roll_no, Student.id)
    )


def _to_entry(student: Student, user: Optional[User]) -> RosterEntry:
    return RosterEntry(
        id=student.id,
        roll_no=student.roll_no,
        name=user.name if user else "",
        email=user.email if user else "",
        batch_id=student.batch_id,
        semester_id=student.semester_id,
    )


def _to_subject(subject: Subject) -> SubjectRef:
    return SubjectRef(id=subject.id, name=subject.name, code=subject.code,
                      semester_id=subject.semester_id)


class RosterStore:
    """Roster lookups over the SQLAlchemy session."""

    def find_students_by_batch(self, batch_id: int) -> List[RosterEntry]:
        with DBTimer():
            rows = _roster_query().filter(Student.batch_id == batch_id).all()
        return [_to_entry(student, user) for student, user in rows]

    def find_students_by_batch_and_semester(self, batch_id: int, semester_id: int) -> List[RosterEntry]:
        with DBTimer():
            rows = (
                _roster_query()
                .filter(Student.batch_id == batch_id, Student.semester_id == semester_id)
                .all()
            )
        return [_to_entry(student, user) for student, user in rows]

    def find_roster(self, batch_id: int, semester_id: Optional[int] = None) -> List[RosterEntry]:
        """Students of a batch, narrowed to one semester when given."""
        if semester_id is None:
            return self.find_students_by_batch(batch_id)
        return self.find_students_by_batch_and_semester(batch_id, semester_id)

    def get_student(self, student_id: int) -> Optional[RosterEntry]:
        with DBTimer():
            row = _roster_query().filter(Student.id == student_id).first()
        return _to_entry(*row) if row else None

    def get_subject(self, subject_id: int) -> Optional[SubjectRef]:
        with DBTimer():
            subject = db.session.get(Subject, subject_id)
        return _to_subject(subject) if subject else None

    def find_subjects(self, semester_id: Optional[int] = None) -> List[SubjectRef]:
        query = Subject.query
        if semester_id is not None:
            query = query.filter_by(semester_id=semester_id)
        with DBTimer():
            subjects = query.order_by(Subject.code).all()
        return [_to_subject(s) for s in subjects]

    def find_subjects_by_ids(self, subject_ids) -> List[SubjectRef]:
        ids = list(subject_ids)
        if not ids:
            return []
        with DBTimer():
            subjects = Subject.query.filter(Subject.id.in_(ids)).order_by(Subject.code).all()
        return [_to_subject(s) for s in subjects]

    def all_batches(self) -> List[Batch]:
        with DBTimer():
            return Batch.query.order_by(Batch.year).all()

    def all_semesters(self) -> List[Semester]:
        with DBTimer():
            return Semester.query.order_by(Semester.number).all()


__all__ = ["RosterEntry", "RosterStore", "SubjectRef"]
