import sys
from pathlib import Path
from typing import Generator

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app import create_app
from config import TestingConfig
from models import Attendance, Batch, Semester, Student, Subject, Teacher, User, db


@pytest.fixture
def app(monkeypatch: pytest.MonkeyPatch) -> Generator:
    monkeypatch.setenv('REQUEST_LOG_SAMPLE_RATE', '1')
    application = create_app(TestingConfig)
    with application.app_context():
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(email, role, name, password='secret123'):
    user = User(email=email, role=role, name=name)
    user.set_password(password)
    return user


@pytest.fixture
def school(app):
    """A small school: one batch, two semesters, three students in semester 1.

    A fourth student sits in the same batch but in semester 2.
    """
    batch = Batch(year=2024, name='Session 2024')
    other_batch = Batch(year=2025, name='Session 2025')
    sem1 = Semester(number=1, name='First Semester')
    sem2 = Semester(number=2, name='Second Semester')
    db.session.add_all([batch, other_batch, sem1, sem2])
    db.session.flush()

    maths = Subject(name='Mathematics I', code='MATH101', semester_id=sem1.id)
    physics = Subject(name='Physics I', code='PHY101', semester_id=sem1.id)
    circuits = Subject(name='Basic Electronics', code='ECE101', semester_id=sem2.id)
    db.session.add_all([maths, physics, circuits])

    teacher_user = _user('teacher@university.edu', 'teacher', 'Dr. Sarah Johnson')
    teacher = Teacher(user=teacher_user, employee_id='T001')
    db.session.add_all([teacher_user, teacher])

    students = []
    for roll_no, name, semester in (('2024011', 'Ananya Chopra', sem1),
                                    ('2024021', 'Vihaan Das', sem1),
                                    ('2024031', 'Ira Iyer', sem1),
                                    ('2024042', 'Rohan Mehta', sem2)):
        user = _user(f"{roll_no}@university.edu", 'student', name)
        student = Student(user=user, roll_no=roll_no, batch_id=batch.id, semester_id=semester.id)
        db.session.add_all([user, student])
        students.append(student)
    db.session.commit()

    return {
        'batch': batch,
        'other_batch': other_batch,
        'sem1': sem1,
        'sem2': sem2,
        'maths': maths,
        'physics': physics,
        'circuits': circuits,
        'teacher': teacher,
        'students': students,
    }


@pytest.fixture
def mark(school):
    """Insert one attendance row directly."""

    def _mark(student, subject, day, status, created_at=None):
        row = Attendance(student_id=student.id, subject_id=subject.id,
                         teacher_id=school['teacher'].id, date=day, status=status)
        if created_at is not None:
            row.created_at = created_at
        db.session.add(row)
        db.session.commit()
        return row

    return _mark


def login(client, email, role, password='secret123'):
    return client.post('/api/login', json={'email': email, 'password': password, 'role': role})


@pytest.fixture
def teacher_client(client, school):
    response = login(client, 'teacher@university.edu', 'teacher')
    assert response.status_code == 200
    return client


@pytest.fixture
def student_client(client, school):
    response = login(client, '2024011@university.edu', 'student')
    assert response.status_code == 200
    return client
