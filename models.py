"""Database models for the attendance management service.

SQLAlchemy (through Flask-SQLAlchemy) is the ORM layer. The models are:

* :class:`User` – a login account, either a teacher or a student.
* :class:`Batch` – an enrollment cohort identified by its year.
* :class:`Semester` – an academic term.
* :class:`Subject` – a course taught in exactly one semester.
* :class:`Student` – the student profile of a user, placed in a batch and a
  semester.
* :class:`Teacher` – the teacher profile of a user.
* :class:`Attendance` – one mark of a student for a subject on a date.

There is deliberately no unique constraint across ``student_id``,
``subject_id`` and ``date`` on :class:`Attendance`: a student can be marked
twice for the same lesson and the report code resolves such duplicates.
"""

from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import check_password_hash, generate_password_hash


# Bound to the Flask application in ``app.py`` via ``db.init_app(app)``.
db = SQLAlchemy()

ROLE_TEACHER = 'teacher'
ROLE_STUDENT = 'student'
ROLES = (ROLE_TEACHER, ROLE_STUDENT)

STATUS_PRESENT = 'present'
STATUS_ABSENT = 'absent'
STATUSES = (STATUS_PRESENT, STATUS_ABSENT)


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(db.Model):
    """A login account.

    A user owns at most one :class:`Student` or one :class:`Teacher` profile,
    matching its ``role``.
    """

    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(512), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now)

    student = db.relationship('Student', back_populates='user', uselist=False)
    teacher = db.relationship('Teacher', back_populates='user', uselist=False)

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"


class Batch(db.Model):
    """An enrollment cohort, e.g. ``Session 2024``."""

    __tablename__ = 'batches'

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)

    students = db.relationship('Student', back_populates='batch', lazy=True)

    def __repr__(self) -> str:
        return f"<Batch {self.year}>"


class Semester(db.Model):
    __tablename__ = 'semesters'

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(100), nullable=False)

    students = db.relationship('Student', back_populates='semester', lazy=True)
    subjects = db.relationship('Subject', back_populates='semester', lazy=True)

    def __repr__(self) -> str:
        return f"<Semester {self.number}>"


class Subject(db.Model):
    __tablename__ = 'subjects'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(20), unique=True, nullable=False)
    semester_id = db.Column(db.Integer, db.ForeignKey('semesters.id'), nullable=True)

    semester = db.relationship('Semester', back_populates='subjects')

    def __repr__(self) -> str:
        return f"<Subject {self.code}>"


class Student(db.Model):
    """Student profile. ``roll_no`` is unique across the whole institution."""

    __tablename__ = 'students'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=True)
    roll_no = db.Column(db.String(50), unique=True, nullable=False)
    batch_id = db.Column(db.Integer, db.ForeignKey('batches.id'), nullable=True)
    semester_id = db.Column(db.Integer, db.ForeignKey('semesters.id'), nullable=True)

    user = db.relationship('User', back_populates='student')
    batch = db.relationship('Batch', back_populates='students')
    semester = db.relationship('Semester', back_populates='students')
    attendance_records = db.relationship('Attendance', back_populates='student', lazy=True)

    def __repr__(self) -> str:
        return f"<Student {self.roll_no}>"


class Teacher(db.Model):
    __tablename__ = 'teachers'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=True)
    employee_id = db.Column(db.String(50), unique=True, nullable=False)

    user = db.relationship('User', back_populates='teacher')
    attendance_records = db.relationship('Attendance', back_populates='teacher', lazy=True)

    def __repr__(self) -> str:
        return f"<Teacher {self.employee_id}>"


class Attendance(db.Model):
    """A single attendance mark.

    ``status`` is either ``present`` or ``absent``; a lesson without a row is
    reported as ``not_marked`` and never stored. ``created_at`` orders
    duplicate marks for the same student, subject and date.
    """

    __tablename__ = 'attendance'

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=False, index=True)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id'), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('teachers.id'), nullable=True)
    date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    student = db.relationship('Student', back_populates='attendance_records')
    subject = db.relationship('Subject')
    teacher = db.relationship('Teacher', back_populates='attendance_records')

    def __repr__(self) -> str:
        return (f"<Attendance student={self.student_id} subject={self.subject_id} "
                f"date={self.date} status={self.status}>")
