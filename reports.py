"""Attendance aggregation: day reports and date-range reports.

The ``build_*`` functions are pure. They take roster entries and marked
records (as returned by :class:`roster.RosterStore` and
:class:`attendance_log.AttendanceLog`) and produce typed report objects whose
``to_dict`` gives the JSON shape served by the API. The ``compute_*``
functions validate their arguments, run the two queries a report needs and
hand the results to the matching ``build_*`` function.

Rules shared by every report:

* The roster, not the attendance log, decides which rows appear. A student
  without a mark for a day is ``not_marked``.
* When a student has several marks for the same subject and day, the last one
  in the order received wins. The log returns marks oldest first, so this is
  the most recently created mark.
* Percentages only count days marked present or absent, are rounded half up
  to a whole number, and are 0 when nothing was marked.
* Unknown batch, semester, subject or student ids give empty reports, never
  errors.

Reports hold no state between calls. The roster and the marks are read in two
separate queries without a shared transaction, so a write landing between
them can be half-visible in one report.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from app_logging import get_logger
from attendance_log import AttendanceLog, MarkedRecord
from dates import as_date, check_span, date_sequence, format_date
from errors import InvalidRange, MissingParameter
from models import STATUS_ABSENT, STATUS_PRESENT
from roster import RosterEntry, RosterStore, SubjectRef

NOT_MARKED = 'not_marked'

_logger = get_logger("attendance.reports")


def percent(present: int, counted: int) -> int:
    """``present / counted`` as a whole percentage, rounded half up.

    Integer arithmetic avoids float error at the .5 boundary.
    """
    if counted <= 0:
        return 0
    return (200 * present + counted) // (2 * counted)


def latest_status(records: Iterable[MarkedRecord]) -> Dict[Tuple[int, date], str]:
    """Map ``(student_id, date)`` to the status of the last record seen."""
    statuses: Dict[Tuple[int, date], str] = {}
    for record in records:
        statuses[(record.student_id, as_date(record.date))] = record.status
    return statuses


def _require(**params) -> None:
    for name, value in params.items():
        if value is None or value == '':
            raise MissingParameter(name)


# ---------------------------------------------------------------------------
# Day report
# ---------------------------------------------------------------------------

@dataclass
class DayReportRow:
    id: int
    roll_no: str
    name: str
    email: str
    status: str

    def to_dict(self) -> dict:
        return {'id': self.id, 'rollNo': self.roll_no, 'name': self.name,
                'email': self.email, 'status': self.status}


@dataclass
class DayReport:
    date: date
    subject_id: int
    batch_id: int
    semester_id: Optional[int] = None
    students: List[DayReportRow] = field(default_factory=list)

    @property
    def total_students(self) -> int:
        return len(self.students)

    def count(self, status: str) -> int:
        return sum(1 for row in self.students if row.status == status)

    def to_dict(self) -> dict:
        data = {
            'date': format_date(self.date),
            'subjectId': self.subject_id,
            'batchId': self.batch_id,
        }
        if self.semester_id is not None:
            data['semesterId'] = self.semester_id
        data.update({
            'totalStudents': self.total_students,
            'presentCount': self.count(STATUS_PRESENT),
            'absentCount': self.count(STATUS_ABSENT),
            'notMarkedCount': self.count(NOT_MARKED),
            'students': [row.to_dict() for row in self.students],
        })
        return data


def build_day_report(
    on_date: date,
    subject_id: int,
    batch_id: int,
    roster: Iterable[RosterEntry],
    records: Iterable[MarkedRecord],
    semester_id: Optional[int] = None,
) -> DayReport:
    """Join ``roster`` against the day's ``records`` for one subject.

    ``records`` are filtered again on subject and date here, so callers may
    pass a wider set.
    """
    on_date = as_date(on_date)
    statuses = latest_status(
        r for r in records if r.subject_id == subject_id and as_date(r.date) == on_date
    )
    rows = [
        DayReportRow(
            id=entry.id,
            roll_no=entry.roll_no,
            name=entry.name,
            email=entry.email,
            status=statuses.get((entry.id, on_date), NOT_MARKED),
        )
        for entry in roster
    ]
    return DayReport(date=on_date, subject_id=subject_id, batch_id=batch_id,
                     semester_id=semester_id, students=rows)


def compute_day_report(
    roster_store: RosterStore,
    log: AttendanceLog,
    on_date: Optional[date],
    subject_id: Optional[int],
    batch_id: Optional[int],
    semester_id: Optional[int] = None,
) -> DayReport:
    """Day report for a batch (optionally one semester of it)."""
    _require(date=on_date, subjectId=subject_id, batchId=batch_id)
    on_date = as_date(on_date)
    roster = roster_store.find_roster(batch_id, semester_id)
    records = log.find_records(subject_id, on_date)
    report = build_day_report(on_date, subject_id, batch_id, roster, records, semester_id)
    _logger.info(
        "day report computed",
        extra={"report": "day", "subject_id": subject_id, "batch_id": batch_id,
               "rows": report.total_students, "records": len(records)},
    )
    return report


# ---------------------------------------------------------------------------
# Range reports
# ---------------------------------------------------------------------------

@dataclass
class StatusTally:
    """Per-date statuses for one row of a range report."""

    status_by_date: Dict[date, str]

    @property
    def present(self) -> int:
        return sum(1 for s in self.status_by_date.values() if s == STATUS_PRESENT)

    @property
    def total(self) -> int:
        return sum(1 for s in self.status_by_date.values() if s != NOT_MARKED)

    @property
    def percent(self) -> int:
        return percent(self.present, self.total)

    def statuses_json(self) -> Dict[str, str]:
        return {format_date(d): s for d, s in self.status_by_date.items()}


def _tally(student_id: int, dates: List[date], statuses: Dict[Tuple[int, date], str]) -> StatusTally:
    return StatusTally({d: statuses.get((student_id, d), NOT_MARKED) for d in dates})


@dataclass
class RangeReportRow:
    id: int
    roll_no: str
    name: str
    email: str
    tally: StatusTally

    @property
    def percent(self) -> int:
        return self.tally.percent

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'rollNo': self.roll_no,
            'name': self.name,
            'email': self.email,
            'statusByDate': self.tally.statuses_json(),
            'percent': self.percent,
        }


@dataclass
class BatchRangeReport:
    dates: List[date]
    students: List[RangeReportRow] = field(default_factory=list)
    batch_id: Optional[int] = None
    semester_id: Optional[int] = None
    subject_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'dates': [format_date(d) for d in self.dates],
            'students': [row.to_dict() for row in self.students],
        }


def build_batch_range_report(
    start_date: date,
    end_date: date,
    roster: Iterable[RosterEntry],
    records: Iterable[MarkedRecord],
    max_days: Optional[int] = None,
) -> BatchRangeReport:
    """Attendance matrix of ``roster`` over every day in the range.

    ``records`` must already be limited to one subject.
    """
    dates = date_sequence(as_date(start_date), as_date(end_date), max_days)
    statuses = latest_status(records)
    rows = [
        RangeReportRow(id=entry.id, roll_no=entry.roll_no, name=entry.name,
                       email=entry.email, tally=_tally(entry.id, dates, statuses))
        for entry in roster
    ]
    return BatchRangeReport(dates=dates, students=rows)


def compute_batch_range_report(
    roster_store: RosterStore,
    log: AttendanceLog,
    batch_id: Optional[int],
    semester_id: Optional[int],
    subject_id: Optional[int],
    start_date: Optional[date],
    end_date: Optional[date],
    max_days: Optional[int] = None,
) -> BatchRangeReport:
    _require(batchId=batch_id, semesterId=semester_id, subjectId=subject_id,
             startDate=start_date, endDate=end_date)
    start_date, end_date = as_date(start_date), as_date(end_date)
    check_span(start_date, end_date, max_days)

    roster = roster_store.find_students_by_batch_and_semester(batch_id, semester_id)
    records = log.find_records_in_range(
        start_date, end_date, subject_id=subject_id, student_ids=[entry.id for entry in roster]
    )
    report = build_batch_range_report(start_date, end_date, roster, records, max_days)
    report.batch_id, report.semester_id, report.subject_id = batch_id, semester_id, subject_id
    _logger.info(
        "range report computed",
        extra={"report": "batch_range", "subject_id": subject_id, "batch_id": batch_id,
               "rows": len(report.students), "days": len(report.dates), "records": len(records)},
    )
    return report


@dataclass
class SubjectRangeRow:
    subject: SubjectRef
    tally: StatusTally

    def to_dict(self) -> dict:
        return {
            'subjectId': self.subject.id,
            'subjectName': self.subject.name,
            'subjectCode': self.subject.code,
            'statusByDate': self.tally.statuses_json(),
            'present': self.tally.present,
            'total': self.tally.total,
            'percent': self.tally.percent,
        }


@dataclass
class StudentRangeReport:
    """Range report for one student.

    With a subject, ``tally`` holds that subject's statuses. Without one,
    ``subjects`` holds one row per subject and ``tally`` is ``None``; the
    overall counts are summed over the subject rows.
    """

    student_id: int
    dates: List[date]
    subject: Optional[SubjectRef] = None
    tally: Optional[StatusTally] = None
    subjects: List[SubjectRangeRow] = field(default_factory=list)

    @property
    def present(self) -> int:
        if self.tally is not None:
            return self.tally.present
        return sum(row.tally.present for row in self.subjects)

    @property
    def total(self) -> int:
        if self.tally is not None:
            return self.tally.total
        return sum(row.tally.total for row in self.subjects)

    @property
    def percent(self) -> int:
        return percent(self.present, self.total)

    def to_dict(self) -> dict:
        data = {
            'studentId': self.student_id,
            'dates': [format_date(d) for d in self.dates],
        }
        if self.tally is not None:
            data['statusByDate'] = self.tally.statuses_json()
        else:
            data['subjects'] = [row.to_dict() for row in self.subjects]
        data.update({
            'present': self.present,
            'total': self.total,
            'percent': self.percent,
            'subjectName': self.subject.name if self.subject else None,
        })
        return data


def _record_span(records: List[MarkedRecord]) -> Optional[Tuple[date, date]]:
    if not records:
        return None
    days = [as_date(r.date) for r in records]
    return min(days), max(days)


def build_student_range_report(
    student_id: int,
    start_date: Optional[date],
    end_date: Optional[date],
    records: Iterable[MarkedRecord],
    subject: Optional[SubjectRef] = None,
    subjects: Iterable[SubjectRef] = (),
    max_days: Optional[int] = None,
) -> StudentRangeReport:
    """Range report for one student.

    ``records`` are the student's marks. An open bound is replaced by the
    earliest/latest marked day; with no marks and an open bound the report
    has no dates. ``subjects`` lists the rows wanted in all-subjects mode;
    any subject that appears in ``records`` but not in ``subjects`` is
    reported too, under its id.
    """
    records = [r for r in records if r.student_id == student_id]
    if subject is not None:
        records = [r for r in records if r.subject_id == subject.id]

    start = as_date(start_date) if start_date is not None else None
    end = as_date(end_date) if end_date is not None else None
    if start is not None and end is not None and start > end:
        raise InvalidRange(start, end)
    if start is not None:
        records = [r for r in records if as_date(r.date) >= start]
    if end is not None:
        records = [r for r in records if as_date(r.date) <= end]

    if start is None or end is None:
        span = _record_span(records)
        if span is None:
            dates: List[date] = []
        else:
            dates = date_sequence(start or span[0], end or span[1], max_days)
    else:
        dates = date_sequence(start, end, max_days)

    if subject is not None:
        statuses = latest_status(records)
        return StudentRangeReport(student_id=student_id, dates=dates, subject=subject,
                                  tally=_tally(student_id, dates, statuses))

    by_subject: Dict[int, List[MarkedRecord]] = {}
    for record in records:
        by_subject.setdefault(record.subject_id, []).append(record)

    refs = {ref.id: ref for ref in subjects}
    for subject_id in by_subject:
        refs.setdefault(subject_id, SubjectRef(id=subject_id, name=str(subject_id), code=''))

    rows = [
        SubjectRangeRow(subject=ref,
                        tally=_tally(student_id, dates, latest_status(by_subject.get(ref.id, []))))
        for ref in sorted(refs.values(), key=lambda s: (s.code, s.id))
    ]
    return StudentRangeReport(student_id=student_id, dates=dates, subjects=rows)


def compute_student_range_report(
    roster_store: RosterStore,
    log: AttendanceLog,
    student_id: Optional[int],
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    subject_id: Optional[int] = None,
    max_days: Optional[int] = None,
) -> StudentRangeReport:
    """Range report for one student, for one subject or for all of them."""
    _require(studentId=student_id)
    if from_date is not None and to_date is not None:
        check_span(as_date(from_date), as_date(to_date), max_days)

    student = roster_store.get_student(student_id)
    subject = None
    if subject_id is not None:
        subject = roster_store.get_subject(subject_id)
        if subject is None:
            # Unknown subject: nothing can match, but the shape stays single-subject.
            subject = SubjectRef(id=subject_id, name='', code='')
    records = log.find_records_in_range(from_date, to_date, subject_id=subject_id,
                                        student_ids=[student_id])

    subjects: List[SubjectRef] = []
    if subject is None and student is not None:
        subjects = roster_store.find_subjects(student.semester_id) if student.semester_id else []
        known = {s.id for s in subjects}
        extra_ids = {r.subject_id for r in records} - known
        subjects += roster_store.find_subjects_by_ids(extra_ids)

    report = build_student_range_report(student_id, from_date, to_date, records,
                                        subject=subject, subjects=subjects, max_days=max_days)
    _logger.info(
        "student range report computed",
        extra={"report": "student_range", "student_id": student_id, "subject_id": subject_id,
               "days": len(report.dates), "records": len(records)},
    )
    return report


__all__ = [
    "NOT_MARKED",
    "BatchRangeReport",
    "DayReport",
    "StudentRangeReport",
    "build_batch_range_report",
    "build_day_report",
    "build_student_range_report",
    "compute_batch_range_report",
    "compute_day_report",
    "compute_student_range_report",
    "latest_status",
    "percent",
]
