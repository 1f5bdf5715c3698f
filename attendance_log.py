"""Storage of attendance marks.

The log is append-only from the report code's point of view: marks are
inserted singly or in bulk and read back by subject/date or by date range.
All reads return records ordered by ``(created_at, id)`` so that, among
duplicate marks for one student, subject and day, the most recent one is
always encountered last.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy.orm import joinedload

from app_logging import DBTimer, get_logger
from dates import parse_date
from errors import ValidationFailed
from models import STATUSES, Attendance, Student, Subject, Teacher, db

_logger = get_logger("attendance.log")


@dataclass(frozen=True)
class MarkedRecord:
    id: int
    student_id: int
    subject_id: int
    date: date
    status: str
    teacher_id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class NewMark:
    """A validated mark waiting to be written."""

    student_id: int
    subject_id: int
    date: date
    status: str


def _to_record(row: Attendance) -> MarkedRecord:
    return MarkedRecord(
        id=row.id,
        student_id=row.student_id,
        subject_id=row.subject_id,
        teacher_id=row.teacher_id,
        date=row.date,
        status=row.status,
        created_at=row.created_at,
    )


def _int_field(data: Mapping[str, Any], *names: str) -> Optional[int]:
    for name in names:
        value = data.get(name)
        if value is None or value == '':
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationFailed(f"{names[0]} must be an integer", {names[0]: 'not an integer'})
    return None


def parse_mark(data: Mapping[str, Any]) -> NewMark:
    """Validate one mark payload (camelCase or snake_case keys)."""
    if not isinstance(data, Mapping):
        raise ValidationFailed("Attendance record must be an object")

    errors = {}
    student_id = _int_field(data, 'studentId', 'student_id')
    subject_id = _int_field(data, 'subjectId', 'subject_id')
    mark_date = parse_date(data.get('date'), 'date')
    status = data.get('status')
    if student_id is None:
        errors['studentId'] = 'required'
    if subject_id is None:
        errors['subjectId'] = 'required'
    if mark_date is None:
        errors['date'] = 'required'
    if status not in STATUSES:
        errors['status'] = f"must be one of {', '.join(STATUSES)}"
    if errors:
        raise ValidationFailed("Invalid attendance data", errors)
    return NewMark(student_id=student_id, subject_id=subject_id, date=mark_date, status=status)


class AttendanceLog:
    """Inserts and queries over the ``attendance`` table."""

    def _check_references(self, marks: List[NewMark], teacher_id: Optional[int]) -> None:
        student_ids = {m.student_id for m in marks}
        subject_ids = {m.subject_id for m in marks}
        with DBTimer():
            known_students = {
                sid for (sid,) in db.session.query(Student.id).filter(Student.id.in_(student_ids))
            }
            known_subjects = {
                sid for (sid,) in db.session.query(Subject.id).filter(Subject.id.in_(subject_ids))
            }
        errors = {}
        missing_students = sorted(student_ids - known_students)
        missing_subjects = sorted(subject_ids - known_subjects)
        if missing_students:
            errors['studentId'] = f"unknown: {missing_students}"
        if missing_subjects:
            errors['subjectId'] = f"unknown: {missing_subjects}"
        if teacher_id is not None and db.session.get(Teacher, teacher_id) is None:
            errors['teacherId'] = 'unknown'
        if errors:
            raise ValidationFailed("Invalid attendance data", errors)

    def insert(self, mark: NewMark, teacher_id: Optional[int]) -> MarkedRecord:
        return self.bulk_insert([mark], teacher_id)[0]

    def bulk_insert(self, marks: Iterable[NewMark], teacher_id: Optional[int]) -> List[MarkedRecord]:
        """Write all ``marks`` in one commit, or none of them.

        Every referenced student and subject must exist; the check runs before
        anything is added to the session.
        """
        marks = list(marks)
        if not marks:
            return []
        self._check_references(marks, teacher_id)
        rows = [
            Attendance(
                student_id=m.student_id,
                subject_id=m.subject_id,
                teacher_id=teacher_id,
                date=m.date,
                status=m.status,
            )
            for m in marks
        ]
        with DBTimer():
            db.session.add_all(rows)
            db.session.commit()
        _logger.info("attendance marked", extra={"count": len(rows), "teacher_id": teacher_id})
        return [_to_record(row) for row in rows]

    def find_records(self, subject_id: int, on_date: date) -> List[MarkedRecord]:
        """Marks of every student for one subject on one day."""
        with DBTimer():
            rows = (
                Attendance.query
                .filter(Attendance.subject_id == subject_id, Attendance.date == on_date)
                .order_by(Attendance.created_at, Attendance.id)
                .all()
            )
        return [_to_record(row) for row in rows]

    def find_records_in_range(
        self,
        start: Optional[date],
        end: Optional[date],
        subject_id: Optional[int] = None,
        student_ids: Optional[Iterable[int]] = None,
    ) -> List[MarkedRecord]:
        """Marks between ``start`` and ``end`` inclusive; open bounds allowed."""
        query = Attendance.query
        if start is not None:
            query = query.filter(Attendance.date >= start)
        if end is not None:
            query = query.filter(Attendance.date <= end)
        if subject_id is not None:
            query = query.filter(Attendance.subject_id == subject_id)
        if student_ids is not None:
            ids = list(student_ids)
            if not ids:
                return []
            query = query.filter(Attendance.student_id.in_(ids))
        with DBTimer():
            rows = query.order_by(Attendance.created_at, Attendance.id).all()
        return [_to_record(row) for row in rows]

    def marked_with_students(self, subject_id: int, on_date: date) -> List[Attendance]:
        """Marks for one subject and day with student and user loaded."""
        with DBTimer():
            return (
                Attendance.query
                .options(joinedload(Attendance.student).joinedload(Student.user))
                .filter(Attendance.subject_id == subject_id, Attendance.date == on_date)
                .order_by(Attendance.created_at, Attendance.id)
                .all()
            )

    def student_history(
        self,
        student_id: int,
        subject_id: Optional[int] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[Attendance]:
        """A student's marks with subject and teacher loaded, newest first."""
        query = (
            Attendance.query
            .options(
                joinedload(Attendance.subject),
                joinedload(Attendance.teacher).joinedload(Teacher.user),
            )
            .filter(Attendance.student_id == student_id)
        )
        if subject_id is not None:
            query = query.filter(Attendance.subject_id == subject_id)
        if from_date is not None:
            query = query.filter(Attendance.date >= from_date)
        if to_date is not None:
            query = query.filter(Attendance.date <= to_date)
        with DBTimer():
            return query.order_by(Attendance.date.desc(), Attendance.created_at.desc(),
                                  Attendance.id.desc()).all()


__all__ = ["AttendanceLog", "MarkedRecord", "NewMark", "parse_mark"]
