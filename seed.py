"""Seed the database with demo data.

Creates the sessions 2022-2025, eight semesters with five subjects each, a
handful of teachers, students for each session in the two semesters that
session is currently taking, and marks for the last two weeks of weekdays.
Existing tables are dropped first.

Usage:
    python seed.py
    flask --app app seed

Default passwords: ``teacher123`` for teachers and ``student123`` for
students.
"""

import random
from datetime import date, timedelta
from typing import Dict, List, Optional

from werkzeug.security import generate_password_hash

from app_logging import get_logger
from models import (STATUS_ABSENT, STATUS_PRESENT, Attendance, Batch, Semester, Student, Subject,
                    Teacher, User, db)

_logger = get_logger("attendance.seed")

SEMESTER_NAMES = ['First', 'Second', 'Third', 'Fourth', 'Fifth', 'Sixth', 'Seventh', 'Eighth']

SUBJECTS = {
    1: [('Mathematics I', 'MATH101'), ('Physics I', 'PHY101'), ('Chemistry', 'CHEM101'),
        ('English Communication', 'ENG101'), ('Computer Fundamentals', 'CS101')],
    2: [('Mathematics II', 'MATH102'), ('Physics II', 'PHY102'), ('Basic Electronics', 'ECE101'),
        ('Engineering Drawing', 'ME101'), ('Programming in C', 'CS102')],
    3: [('Data Structures', 'CS201'), ('Digital Logic Design', 'CS202'),
        ('Discrete Mathematics', 'MATH201'), ('Object Oriented Programming', 'CS203'),
        ('Computer Organization', 'CS204')],
    4: [('Algorithms', 'CS301'), ('Database Management Systems', 'CS302'),
        ('Computer Networks', 'CS303'), ('Software Engineering', 'CS304'),
        ('Operating Systems', 'CS305')],
    5: [('Web Technologies', 'CS401'), ('Computer Graphics', 'CS402'), ('Microprocessors', 'CS403'),
        ('Theory of Computation', 'CS404'), ('Artificial Intelligence', 'CS405')],
    6: [('Compiler Design', 'CS501'), ('Distributed Systems', 'CS502'),
        ('Information Security', 'CS503'), ('Mobile Computing', 'CS504'), ('Data Mining', 'CS505')],
    7: [('Machine Learning', 'CS601'), ('Cloud Computing', 'CS602'), ('Big Data Analytics', 'CS603'),
        ('Project Management', 'CS604'), ('Ethics in Computing', 'CS605')],
    8: [('Final Year Project', 'CS701'), ('Advanced Algorithms', 'CS702'),
        ('Natural Language Processing', 'CS703'), ('Computer Vision', 'CS704'),
        ('Blockchain Technology', 'CS705')],
}

# Session year -> semesters its students are enrolled in.
SESSION_SEMESTERS = {2022: (7, 8), 2023: (5, 6), 2024: (3, 4), 2025: (1, 2)}

TEACHER_NAMES = ['Dr. Sarah Johnson', 'Prof. Michael Chen', 'Dr. Emily Rodriguez', 'Prof. David Kim']

FIRST_NAMES = ['Ananya', 'Vihaan', 'Ira', 'Reyansh', 'Saanvi', 'Aditya', 'Diya', 'Aarav', 'Myra', 'Rohan']
LAST_NAMES = ['Chopra', 'Menon', 'Das', 'Iyer', 'Banerjee', 'Singh', 'Mishra', 'Rao']

STUDENTS_PER_CLASS = 5
DAYS_OF_ATTENDANCE = 14


def seed_data(today: Optional[date] = None, rng: Optional[random.Random] = None) -> Dict[str, int]:
    """Insert the demo data set and return how many rows of each kind were made."""
    today = today or date.today()
    rng = rng or random.Random(2024)

    db.drop_all()
    db.create_all()

    batches = [Batch(year=year, name=f"Session {year}") for year in sorted(SESSION_SEMESTERS)]
    semesters = {n: Semester(number=n, name=f"{SEMESTER_NAMES[n - 1]} Semester") for n in SUBJECTS}
    db.session.add_all(batches + list(semesters.values()))
    db.session.flush()

    subjects: Dict[int, List[Subject]] = {}
    for number, entries in SUBJECTS.items():
        subjects[number] = [Subject(name=name, code=code, semester_id=semesters[number].id)
                            for name, code in entries]
        db.session.add_all(subjects[number])

    teachers = []
    for i, name in enumerate(TEACHER_NAMES, 1):
        user = User(email=f"teacher{i}@university.edu", role='teacher', name=name)
        user.set_password('teacher123')
        teacher = Teacher(user=user, employee_id=f"T{i:03d}")
        db.session.add_all([user, teacher])
        teachers.append(teacher)

    # Hashing is slow; every demo student shares one hash.
    student_hash = generate_password_hash('student123')
    students: List[Student] = []
    counter = 0
    for batch in batches:
        for number in SESSION_SEMESTERS[batch.year]:
            for i in range(1, STUDENTS_PER_CLASS + 1):
                name = f"{FIRST_NAMES[counter % len(FIRST_NAMES)]} {LAST_NAMES[counter % len(LAST_NAMES)]}"
                counter += 1
                user = User(email=f"student{counter}@university.edu", role='student', name=name,
                            password_hash=student_hash)
                student = Student(user=user, roll_no=f"{batch.year}{i:02d}{number}",
                                  batch_id=batch.id, semester_id=semesters[number].id)
                db.session.add_all([user, student])
                students.append(student)
    db.session.flush()

    marks = []
    for offset in range(DAYS_OF_ATTENDANCE):
        day = today - timedelta(days=offset)
        if day.weekday() >= 5:
            continue
        for student in students:
            number = next(n for n, s in semesters.items() if s.id == student.semester_id)
            subject = subjects[number][offset % len(subjects[number])]
            status = STATUS_PRESENT if rng.random() < 0.8 else STATUS_ABSENT
            marks.append(Attendance(student_id=student.id, subject_id=subject.id,
                                    teacher_id=rng.choice(teachers).id, date=day, status=status))
    db.session.add_all(marks)
    db.session.commit()

    counts = {
        'batches': len(batches),
        'semesters': len(semesters),
        'subjects': sum(len(s) for s in subjects.values()),
        'teachers': len(teachers),
        'students': len(students),
        'attendance': len(marks),
    }
    _logger.info("database seeded", extra=counts)
    return counts


def main() -> None:
    from app import create_app

    app = create_app()
    with app.app_context():
        seed_data()


if __name__ == '__main__':
    main()
