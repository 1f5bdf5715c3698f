"""Signup, login and the per-request session context.

The logged-in user id lives in Flask's signed session cookie. Nothing about
the current user is kept at module level: each request rebuilds a
:class:`SessionContext` and :func:`login_required` passes it to the view.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from functools import wraps
from typing import Any, Mapping, Optional

from flask import current_app, session
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import Conflict, Forbidden, Unauthorized

from app_logging import get_logger, merge_request_context
from errors import ValidationFailed
from models import ROLE_STUDENT, ROLE_TEACHER, ROLES, Batch, Semester, Student, Teacher, User, db

_logger = get_logger("attendance.auth")

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
_SESSION_KEY = 'user_id'


@dataclass(frozen=True)
class SessionContext:
    user_id: int
    role: str
    name: str
    email: str
    student_id: Optional[int] = None
    teacher_id: Optional[int] = None
    batch_id: Optional[int] = None
    semester_id: Optional[int] = None

    @property
    def is_teacher(self) -> bool:
        return self.role == ROLE_TEACHER

    def to_dict(self) -> dict:
        return asdict(self)


def _context_for(user: User) -> SessionContext:
    student, teacher = user.student, user.teacher
    return SessionContext(
        user_id=user.id,
        role=user.role,
        name=user.name,
        email=user.email,
        student_id=student.id if student else None,
        teacher_id=teacher.id if teacher else None,
        batch_id=student.batch_id if student else None,
        semester_id=student.semester_id if student else None,
    )


def user_payload(user: User) -> dict:
    """Login/signup response body: the user plus their role profile."""
    body: dict = {'user': {'id': user.id, 'email': user.email, 'name': user.name, 'role': user.role}}
    if user.student is not None:
        s = user.student
        body['student'] = {'id': s.id, 'rollNo': s.roll_no, 'batchId': s.batch_id,
                           'semesterId': s.semester_id}
    if user.teacher is not None:
        body['teacher'] = {'id': user.teacher.id, 'employeeId': user.teacher.employee_id}
    return body


def _clean(data: Mapping[str, Any], *names: str) -> str:
    for name in names:
        value = data.get(name)
        if value is not None:
            return str(value).strip()
    return ''


def signup(data: Mapping[str, Any]) -> User:
    """Create a user and the student or teacher profile that goes with it."""
    if not isinstance(data, Mapping):
        raise ValidationFailed('Invalid signup data')
    name = _clean(data, 'name')
    email = _clean(data, 'email').lower()
    password = data.get('password') or ''
    role = _clean(data, 'role')

    errors = {}
    if not name:
        errors['name'] = 'Name is required'
    if not _EMAIL_RE.match(email):
        errors['email'] = 'Invalid email format'
    min_length = current_app.config.get('MIN_PASSWORD_LENGTH', 6)
    if len(password) < min_length:
        errors['password'] = f'Password must be at least {min_length} characters'
    if role not in ROLES:
        errors['role'] = f"must be one of {', '.join(ROLES)}"

    roll_no = _clean(data, 'rollNo', 'roll_no')
    employee_id = _clean(data, 'employeeId', 'employee_id')
    batch_id = _clean(data, 'batchId', 'batch_id')
    semester_id = _clean(data, 'semesterId', 'semester_id')
    if role == ROLE_STUDENT and not (roll_no and batch_id and semester_id):
        errors['profile'] = 'Student must provide roll number, batch, and semester'
    if role == ROLE_TEACHER and not employee_id:
        errors['profile'] = 'Teacher must provide employee ID'
    if errors:
        raise ValidationFailed('Invalid signup data', errors)

    if User.query.filter_by(email=email).first() is not None:
        raise Conflict('Email already registered')

    user = User(name=name, email=email, role=role)
    user.set_password(password)
    db.session.add(user)

    if role == ROLE_STUDENT:
        try:
            batch = db.session.get(Batch, int(batch_id))
            semester = db.session.get(Semester, int(semester_id))
        except ValueError:
            batch = semester = None
        if batch is None or semester is None:
            db.session.rollback()
            raise ValidationFailed('Invalid signup data', {'profile': 'Unknown batch or semester'})
        if Student.query.filter_by(roll_no=roll_no).first() is not None:
            db.session.rollback()
            raise Conflict('Roll number already registered')
        db.session.add(Student(user=user, roll_no=roll_no, batch_id=batch.id, semester_id=semester.id))
    else:
        if Teacher.query.filter_by(employee_id=employee_id).first() is not None:
            db.session.rollback()
            raise Conflict('Employee ID already registered')
        db.session.add(Teacher(user=user, employee_id=employee_id))

    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email/roll/employee id.
        db.session.rollback()
        raise Conflict('Account already exists')
    _logger.info("user signed up", extra={"user_id": user.id, "role": role})
    return user


def login(data: Mapping[str, Any]) -> User:
    """Check credentials and store the user id in the session cookie."""
    if not isinstance(data, Mapping):
        raise ValidationFailed('Invalid request data')
    email = _clean(data, 'email').lower()
    password = data.get('password') or ''
    role = _clean(data, 'role')
    if not email or not password or role not in ROLES:
        raise ValidationFailed('Invalid request data')

    user = User.query.filter_by(email=email).first()
    if user is None or user.role != role or not user.check_password(password):
        _logger.warning("login rejected", extra={"role": role})
        raise Unauthorized('Invalid credentials')

    session.clear()
    session[_SESSION_KEY] = user.id
    _logger.info("user logged in", extra={"user_id": user.id})
    return user


def logout() -> None:
    session.clear()


def load_session_context() -> Optional[SessionContext]:
    """Build the context for the current request from the session cookie.

    Returns ``None`` when nobody is logged in or the account no longer exists.
    """
    user_id = session.get(_SESSION_KEY)
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None:
        session.clear()
        return None
    ctx = _context_for(user)
    merge_request_context(user_id=ctx.user_id)
    return ctx


def login_required(*roles: str):
    """Require a logged-in user (optionally with one of ``roles``).

    The view receives the :class:`SessionContext` as the ``ctx`` keyword.
    Usage: ``@login_required("teacher")``
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            ctx = load_session_context()
            if ctx is None:
                raise Unauthorized('Login required')
            if roles and ctx.role not in roles:
                raise Forbidden('Access forbidden: insufficient permissions')
            return fn(*args, ctx=ctx, **kwargs)
        return wrapper
    return decorator


__all__ = [
    "SessionContext",
    "load_session_context",
    "login",
    "login_required",
    "logout",
    "signup",
    "user_payload",
]
