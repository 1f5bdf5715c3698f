from datetime import date, datetime

import pytest

from attendance_log import MarkedRecord
from errors import InvalidRange, MissingParameter, ValidationFailed
from reports import (NOT_MARKED, build_batch_range_report, build_day_report,
                     build_student_range_report, compute_batch_range_report, compute_day_report,
                     compute_student_range_report, percent)
from roster import RosterEntry, SubjectRef

MATHS = SubjectRef(id=10, name='Mathematics I', code='MATH101', semester_id=1)
PHYSICS = SubjectRef(id=11, name='Physics I', code='PHY101', semester_id=1)

S1 = RosterEntry(id=1, roll_no='2024011', name='Ananya Chopra', email='s1@u.edu', batch_id=7, semester_id=1)
S2 = RosterEntry(id=2, roll_no='2024021', name='Vihaan Das', email='s2@u.edu', batch_id=7, semester_id=1)
S3 = RosterEntry(id=3, roll_no='2024031', name='Ira Iyer', email='s3@u.edu', batch_id=7, semester_id=1)
ROSTER = [S1, S2, S3]

_ids = iter(range(1, 10_000))


def rec(student, subject, day, status):
    return MarkedRecord(id=next(_ids), student_id=student.id, subject_id=subject.id,
                        date=day, status=status)


class FakeRoster:
    def __init__(self, entries, subjects=()):
        self.entries = list(entries)
        self.subjects = list(subjects)
        self.calls = []

    def find_roster(self, batch_id, semester_id=None):
        self.calls.append(('find_roster', batch_id, semester_id))
        return [e for e in self.entries
                if e.batch_id == batch_id and (semester_id is None or e.semester_id == semester_id)]

    def find_students_by_batch_and_semester(self, batch_id, semester_id):
        return self.find_roster(batch_id, semester_id)

    def get_student(self, student_id):
        return next((e for e in self.entries if e.id == student_id), None)

    def get_subject(self, subject_id):
        return next((s for s in self.subjects if s.id == subject_id), None)

    def find_subjects(self, semester_id=None):
        return [s for s in self.subjects if semester_id is None or s.semester_id == semester_id]

    def find_subjects_by_ids(self, ids):
        return [s for s in self.subjects if s.id in set(ids)]


class FakeLog:
    def __init__(self, records):
        self.records = list(records)

    def find_records(self, subject_id, on_date):
        return [r for r in self.records if r.subject_id == subject_id and r.date == on_date]

    def find_records_in_range(self, start, end, subject_id=None, student_ids=None):
        ids = None if student_ids is None else set(student_ids)
        return [
            r for r in self.records
            if (start is None or r.date >= start) and (end is None or r.date <= end)
            and (subject_id is None or r.subject_id == subject_id)
            and (ids is None or r.student_id in ids)
        ]


@pytest.mark.parametrize('present, counted, expected', [
    (1, 2, 50),
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (3, 3, 100),
    (0, 4, 0),
    (0, 0, 0),
])
def test_percent_rounds_half_up(present, counted, expected):
    assert percent(present, counted) == expected


# -- day report --------------------------------------------------------------

def test_day_report_fills_unmarked_students():
    day = date(2024, 1, 10)
    report = build_day_report(day, MATHS.id, 7, ROSTER, [rec(S1, MATHS, day, 'present')])
    data = report.to_dict()

    assert data['totalStudents'] == 3
    assert data['presentCount'] == 1
    assert data['absentCount'] == 0
    assert data['notMarkedCount'] == 2
    assert [s['status'] for s in data['students']] == ['present', NOT_MARKED, NOT_MARKED]
    assert 'semesterId' not in data
    assert data['date'] == '2024-01-10'


def test_day_report_counts_partition_total():
    day = date(2024, 1, 10)
    records = [rec(S1, MATHS, day, 'present'), rec(S2, MATHS, day, 'absent')]
    data = build_day_report(day, MATHS.id, 7, ROSTER, records, semester_id=1).to_dict()

    assert data['presentCount'] + data['absentCount'] + data['notMarkedCount'] == data['totalStudents']
    assert data['semesterId'] == 1


def test_day_report_last_duplicate_wins():
    day = date(2024, 1, 10)
    records = [rec(S1, MATHS, day, 'absent'), rec(S1, MATHS, day, 'present')]
    data = build_day_report(day, MATHS.id, 7, [S1], records).to_dict()
    assert data['students'][0]['status'] == 'present'
    assert data['totalStudents'] == 1

    flipped = build_day_report(day, MATHS.id, 7, [S1], list(reversed(records))).to_dict()
    assert flipped['students'][0]['status'] == 'absent'


def test_day_report_ignores_other_subjects_days_and_non_roster_students():
    day = date(2024, 1, 10)
    outsider = RosterEntry(id=99, roll_no='X', name='X', email='x@u.edu')
    records = [
        rec(S1, PHYSICS, day, 'present'),
        rec(S2, MATHS, date(2024, 1, 11), 'present'),
        rec(outsider, MATHS, day, 'present'),
    ]
    data = build_day_report(day, MATHS.id, 7, ROSTER, records).to_dict()
    assert data['notMarkedCount'] == 3
    assert len(data['students']) == 3


def test_day_report_matches_datetime_by_calendar_day():
    records = [rec(S1, MATHS, datetime(2024, 1, 10, 16, 45), 'absent')]
    data = build_day_report(datetime(2024, 1, 10, 8, 0), MATHS.id, 7, [S1], records).to_dict()
    assert data['students'][0]['status'] == 'absent'


def test_day_report_empty_roster_is_not_an_error():
    data = build_day_report(date(2024, 1, 10), MATHS.id, 7, [], []).to_dict()
    assert data['totalStudents'] == 0
    assert data['students'] == []
    assert data['presentCount'] == data['absentCount'] == data['notMarkedCount'] == 0


@pytest.mark.parametrize('missing', ['on_date', 'subject_id', 'batch_id'])
def test_compute_day_report_requires_parameters(missing):
    params = {'on_date': date(2024, 1, 10), 'subject_id': MATHS.id, 'batch_id': 7}
    params[missing] = None
    with pytest.raises(MissingParameter):
        compute_day_report(FakeRoster(ROSTER), FakeLog([]), **params)


def test_compute_day_report_without_semester_uses_whole_batch():
    other_sem = RosterEntry(id=4, roll_no='2024042', name='Rohan', email='s4@u.edu', batch_id=7, semester_id=2)
    roster = FakeRoster(ROSTER + [other_sem])
    day = date(2024, 1, 10)

    whole = compute_day_report(roster, FakeLog([]), day, MATHS.id, 7)
    narrowed = compute_day_report(roster, FakeLog([]), day, MATHS.id, 7, semester_id=1)

    assert whole.total_students == 4
    assert narrowed.total_students == 3


def test_compute_day_report_unknown_batch_gives_empty_report():
    report = compute_day_report(FakeRoster(ROSTER), FakeLog([]), date(2024, 1, 10), MATHS.id, 999)
    assert report.to_dict()['totalStudents'] == 0


# -- batch range report ------------------------------------------------------

def test_range_report_gap_fill_and_percent():
    records = [
        rec(S1, MATHS, date(2024, 1, 1), 'present'),
        rec(S1, MATHS, date(2024, 1, 3), 'absent'),
    ]
    data = build_batch_range_report(date(2024, 1, 1), date(2024, 1, 3), [S1], records).to_dict()

    assert data['dates'] == ['2024-01-01', '2024-01-02', '2024-01-03']
    row = data['students'][0]
    assert row['statusByDate'] == {
        '2024-01-01': 'present',
        '2024-01-02': NOT_MARKED,
        '2024-01-03': 'absent',
    }
    assert row['percent'] == 50


def test_range_report_every_row_covers_every_date():
    start, end = date(2024, 1, 28), date(2024, 2, 3)
    data = build_batch_range_report(start, end, ROSTER, []).to_dict()
    assert len(data['dates']) == (end - start).days + 1
    for row in data['students']:
        assert len(row['statusByDate']) == len(data['dates'])
        assert row['percent'] == 0


def test_range_report_single_day():
    day = date(2024, 3, 4)
    data = build_batch_range_report(day, day, [S1], [rec(S1, MATHS, day, 'present')]).to_dict()
    assert data['dates'] == ['2024-03-04']
    assert data['students'][0]['percent'] == 100


def test_range_report_thirds_rounding():
    days = [date(2024, 1, d) for d in (1, 2, 3)]
    records = [rec(S1, MATHS, days[0], 'present'), rec(S1, MATHS, days[1], 'absent'),
               rec(S1, MATHS, days[2], 'absent'),
               rec(S2, MATHS, days[0], 'present'), rec(S2, MATHS, days[1], 'present'),
               rec(S2, MATHS, days[2], 'absent')]
    data = build_batch_range_report(days[0], days[-1], [S1, S2], records).to_dict()
    assert [row['percent'] for row in data['students']] == [33, 67]


def test_range_report_duplicate_last_write_wins_per_day():
    day = date(2024, 1, 1)
    records = [rec(S1, MATHS, day, 'present'), rec(S1, MATHS, day, 'absent')]
    data = build_batch_range_report(day, day, [S1], records).to_dict()
    assert data['students'][0]['statusByDate'] == {'2024-01-01': 'absent'}
    assert data['students'][0]['percent'] == 0


def test_range_report_rejects_inverted_range():
    with pytest.raises(InvalidRange):
        build_batch_range_report(date(2024, 2, 5), date(2024, 2, 1), ROSTER, [])


def test_compute_range_report_validates_before_querying():
    roster = FakeRoster(ROSTER)
    with pytest.raises(InvalidRange):
        compute_batch_range_report(roster, FakeLog([]), 7, 1, MATHS.id,
                                   date(2024, 2, 5), date(2024, 2, 1))
    with pytest.raises(MissingParameter):
        compute_batch_range_report(roster, FakeLog([]), 7, None, MATHS.id,
                                   date(2024, 2, 1), date(2024, 2, 5))
    assert roster.calls == []


def test_compute_range_report_filters_subject():
    day = date(2024, 1, 1)
    log = FakeLog([rec(S1, MATHS, day, 'present'), rec(S1, PHYSICS, day, 'absent')])
    report = compute_batch_range_report(FakeRoster(ROSTER), log, 7, 1, MATHS.id, day, day)
    assert report.to_dict()['students'][0]['statusByDate'] == {'2024-01-01': 'present'}


def test_range_report_is_idempotent():
    day = date(2024, 1, 1)
    roster, log = FakeRoster(ROSTER), FakeLog([rec(S2, MATHS, day, 'present')])
    first = compute_batch_range_report(roster, log, 7, 1, MATHS.id, day, date(2024, 1, 5)).to_dict()
    second = compute_batch_range_report(roster, log, 7, 1, MATHS.id, day, date(2024, 1, 5)).to_dict()
    assert first == second


# -- student range report ----------------------------------------------------

def test_student_report_single_subject():
    records = [
        rec(S1, MATHS, date(2024, 1, 1), 'present'),
        rec(S1, MATHS, date(2024, 1, 3), 'absent'),
        rec(S1, PHYSICS, date(2024, 1, 2), 'present'),
    ]
    data = build_student_range_report(S1.id, date(2024, 1, 1), date(2024, 1, 3), records,
                                      subject=MATHS).to_dict()
    assert data['statusByDate'] == {'2024-01-01': 'present', '2024-01-02': NOT_MARKED,
                                    '2024-01-03': 'absent'}
    assert (data['present'], data['total'], data['percent']) == (1, 2, 50)
    assert data['subjectName'] == 'Mathematics I'
    assert 'subjects' not in data


def test_student_report_all_subjects_gives_one_row_per_subject():
    records = [
        rec(S1, MATHS, date(2024, 1, 1), 'present'),
        rec(S1, PHYSICS, date(2024, 1, 1), 'absent'),
        rec(S1, PHYSICS, date(2024, 1, 2), 'present'),
    ]
    data = build_student_range_report(S1.id, date(2024, 1, 1), date(2024, 1, 2), records,
                                      subjects=[PHYSICS, MATHS]).to_dict()
    rows = {row['subjectCode']: row for row in data['subjects']}

    assert [row['subjectCode'] for row in data['subjects']] == ['MATH101', 'PHY101']
    assert rows['MATH101']['statusByDate'] == {'2024-01-01': 'present', '2024-01-02': NOT_MARKED}
    assert rows['MATH101']['percent'] == 100
    assert rows['PHY101']['percent'] == 50
    assert (data['present'], data['total'], data['percent']) == (2, 3, 67)
    assert data['subjectName'] is None


def test_student_report_lists_subjects_without_marks():
    data = build_student_range_report(S1.id, date(2024, 1, 1), date(2024, 1, 1), [],
                                      subjects=[MATHS]).to_dict()
    assert data['subjects'][0]['statusByDate'] == {'2024-01-01': NOT_MARKED}
    assert data['percent'] == 0


def test_student_report_open_range_uses_record_span():
    records = [rec(S1, MATHS, date(2024, 1, 5), 'present'), rec(S1, MATHS, date(2024, 1, 2), 'absent')]
    data = build_student_range_report(S1.id, None, None, records, subject=MATHS).to_dict()
    assert data['dates'] == ['2024-01-02', '2024-01-03', '2024-01-04', '2024-01-05']

    empty = build_student_range_report(S1.id, None, None, [], subject=MATHS).to_dict()
    assert empty['dates'] == []
    assert empty['percent'] == 0


def test_student_report_rejects_inverted_range():
    with pytest.raises(InvalidRange):
        compute_student_range_report(FakeRoster(ROSTER), FakeLog([]), S1.id,
                                     date(2024, 2, 5), date(2024, 2, 1))


def test_student_report_requires_student():
    with pytest.raises(MissingParameter):
        compute_student_range_report(FakeRoster(ROSTER), FakeLog([]), None)


def test_compute_student_report_adds_subjects_outside_semester():
    elective = SubjectRef(id=12, name='Basic Electronics', code='ECE101', semester_id=2)
    roster = FakeRoster(ROSTER, subjects=[MATHS, PHYSICS, elective])
    log = FakeLog([rec(S1, elective, date(2024, 1, 1), 'present'),
                   rec(S2, MATHS, date(2024, 1, 1), 'absent')])
    report = compute_student_range_report(roster, log, S1.id, date(2024, 1, 1), date(2024, 1, 1))
    codes = [row['subjectCode'] for row in report.to_dict()['subjects']]
    assert codes == ['ECE101', 'MATH101', 'PHY101']
    assert report.present == 1
    assert report.total == 1


def test_compute_student_report_unknown_student_is_empty():
    report = compute_student_range_report(FakeRoster(ROSTER), FakeLog([]), 404,
                                          date(2024, 1, 1), date(2024, 1, 2)).to_dict()
    assert report['subjects'] == []
    assert report['total'] == 0
    assert report['percent'] == 0


def test_range_reports_respect_day_limit():
    roster = FakeRoster(ROSTER)
    with pytest.raises(ValidationFailed):
        compute_batch_range_report(roster, FakeLog([]), 7, 1, MATHS.id,
                                   date(2024, 1, 1), date(2024, 1, 31), max_days=30)
    assert roster.calls == []

    with pytest.raises(ValidationFailed):
        build_batch_range_report(date(1, 1, 1), date(9999, 12, 31), ROSTER, [], max_days=731)

    records = [rec(S1, MATHS, date(2024, 1, 1), 'present'), rec(S1, MATHS, date(2024, 3, 1), 'absent')]
    with pytest.raises(ValidationFailed):
        build_student_range_report(S1.id, None, None, records, subject=MATHS, max_days=30)
    report = build_student_range_report(S1.id, None, None, records, subject=MATHS, max_days=61)
    assert len(report.dates) == 61
