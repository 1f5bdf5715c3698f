"""Flask application providing the attendance management JSON API.

This module wires together configuration, database models, logging
middleware and route definitions.

Endpoints:

* ``POST /api/signup`` / ``POST /api/login`` / ``POST /api/logout`` /
  ``GET /api/me`` – account handling; the session cookie identifies the user.
* ``GET /api/batches``, ``GET /api/semesters``, ``GET /api/subjects`` and
  ``GET /api/subjects/<semester_id>`` – reference data for the forms.
* ``GET /api/students/<batch_id>/<semester_id>`` – the roster of a batch in a
  semester.
* ``GET /api/attendance/<date>/<subject_id>`` – marks already recorded for a
  subject on a day.
* ``POST /api/attendance`` and ``POST /api/attendance/bulk`` – record marks.
  A bulk request is validated as a whole and written in one commit.
* ``GET /api/student-attendance/<student_id>`` – a student's mark history.
* ``GET /api/reports/attendance`` – day report.
* ``GET /api/reports/attendance-range`` (and ``/export`` for ``.xlsx``) –
  batch range report.
* ``GET /api/reports/student-range`` – range report for one student.

Errors are returned as problem-details JSON (``type``, ``title``, ``status``,
``detail``, ``request_id``).
"""

from __future__ import annotations

import os
from typing import Optional

from flask import Flask, current_app, g, jsonify, request, send_file
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import Forbidden, HTTPException

import auth
from app_logging import configure_logging, get_logger
from attendance_log import AttendanceLog, parse_mark
from config import Config
from correlation_id_middleware import init_correlation_id
from dates import format_date, parse_date
from db_utils import retry_with_backoff
from errors import AttendanceError, ValidationFailed
from export import batch_range_report_to_xlsx
from models import ROLE_STUDENT, ROLE_TEACHER, db
from reports import compute_batch_range_report, compute_day_report, compute_student_range_report
from request_logging_middleware import init_request_logging
from roster import RosterStore

PROBLEM_MIMETYPE = 'application/problem+json'

_logger = get_logger("attendance.api")


def _arg(*names: str) -> Optional[str]:
    """First non-empty query parameter among ``names``."""
    for name in names:
        value = request.args.get(name)
        if value not in (None, ''):
            return value
    return None


def _int_arg(*names: str) -> Optional[int]:
    value = _arg(*names)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationFailed(f"{names[0]} must be an integer", {names[0]: 'not an integer'})


def _date_arg(*names: str):
    return parse_date(_arg(*names), names[0])


def _problem(status: int, title: str, detail: str, **extra):
    body = {
        'type': 'about:blank',
        'title': title,
        'status': status,
        'detail': detail,
        'request_id': getattr(g, 'request_id', None),
    }
    body.update(extra)
    response = jsonify(body)
    response.status_code = status
    response.mimetype = PROBLEM_MIMETYPE
    return response


def _mark_to_dict(record) -> dict:
    return {
        'id': record.id,
        'studentId': record.student_id,
        'subjectId': record.subject_id,
        'teacherId': record.teacher_id,
        'date': format_date(record.date),
        'status': record.status,
        'createdAt': record.created_at.isoformat() if record.created_at else None,
    }


def create_app(config_object=Config) -> Flask:
    """Application factory used by both the server and the tests."""
    configure_logging()
    app = Flask(__name__)
    app.config.from_object(config_object)
    db.init_app(app)
    init_correlation_id(app)
    init_request_logging(app)

    roster_store = RosterStore()
    attendance_log = AttendanceLog()

    if app.config.get('CREATE_TABLES_ON_STARTUP', True):
        with app.app_context():
            try:
                retry_with_backoff(db.create_all)
            except SQLAlchemyError as exc:
                # Keep starting; /health stays up and queries report 503.
                _logger.warning("database unavailable during table creation", extra={"error": str(exc)})

    @app.route('/health')
    def healthcheck():
        return jsonify({'status': 'ok'}), 200

    # -- accounts -----------------------------------------------------------

    @app.route('/api/signup', methods=['POST'])
    def api_signup():
        user = auth.signup(request.get_json(silent=True) or {})
        return jsonify(auth.user_payload(user)), 201

    @app.route('/api/login', methods=['POST'])
    def api_login():
        user = auth.login(request.get_json(silent=True) or {})
        return jsonify(auth.user_payload(user))

    @app.route('/api/logout', methods=['POST'])
    def api_logout():
        auth.logout()
        return jsonify({'message': 'Logged out'})

    @app.route('/api/me')
    @auth.login_required()
    def api_me(ctx):
        return jsonify(ctx.to_dict())

    # -- reference data -----------------------------------------------------

    @app.route('/api/batches')
    def api_batches():
        return jsonify([{'id': b.id, 'year': b.year, 'name': b.name}
                        for b in roster_store.all_batches()])

    @app.route('/api/semesters')
    def api_semesters():
        return jsonify([{'id': s.id, 'number': s.number, 'name': s.name}
                        for s in roster_store.all_semesters()])

    @app.route('/api/subjects')
    @app.route('/api/subjects/<int:semester_id>')
    def api_subjects(semester_id=None):
        if semester_id is None:
            semester_id = _int_arg('semesterId', 'semester_id')
        return jsonify([
            {'id': s.id, 'name': s.name, 'code': s.code, 'semesterId': s.semester_id}
            for s in roster_store.find_subjects(semester_id)
        ])

    @app.route('/api/students/<int:batch_id>/<int:semester_id>')
    @auth.login_required(ROLE_TEACHER)
    def api_students(batch_id, semester_id, ctx):
        roster = roster_store.find_students_by_batch_and_semester(batch_id, semester_id)
        return jsonify([
            {'id': s.id, 'rollNo': s.roll_no, 'batchId': s.batch_id, 'semesterId': s.semester_id,
             'user': {'name': s.name, 'email': s.email}}
            for s in roster
        ])

    # -- attendance marks ---------------------------------------------------

    @app.route('/api/attendance/<day>/<int:subject_id>')
    @auth.login_required(ROLE_TEACHER)
    def api_attendance_for_day(day, subject_id, ctx):
        on_date = parse_date(day, 'date')
        rows = attendance_log.marked_with_students(subject_id, on_date)
        result = []
        for row in rows:
            item = _mark_to_dict(row)
            student = row.student
            item['student'] = {
                'id': student.id,
                'rollNo': student.roll_no,
                'user': {'name': student.user.name, 'email': student.user.email} if student.user else None,
            }
            result.append(item)
        return jsonify(result)

    @app.route('/api/attendance', methods=['POST'])
    @auth.login_required(ROLE_TEACHER)
    def api_mark_attendance(ctx):
        mark = parse_mark(request.get_json(silent=True) or {})
        record = attendance_log.insert(mark, ctx.teacher_id)
        return jsonify(_mark_to_dict(record)), 201

    @app.route('/api/attendance/bulk', methods=['POST'])
    @auth.login_required(ROLE_TEACHER)
    def api_mark_attendance_bulk(ctx):
        data = request.get_json(silent=True)
        raw = data.get('attendanceRecords', data.get('records')) if isinstance(data, dict) else data
        if not isinstance(raw, list) or not raw:
            raise ValidationFailed('attendanceRecords must be a non-empty list')
        marks = [parse_mark(item) for item in raw]
        records = attendance_log.bulk_insert(marks, ctx.teacher_id)
        return jsonify([_mark_to_dict(r) for r in records]), 201

    @app.route('/api/student-attendance/<int:student_id>')
    @auth.login_required()
    def api_student_attendance(student_id, ctx):
        if not ctx.is_teacher and ctx.student_id != student_id:
            raise Forbidden('Students may only view their own attendance')
        rows = attendance_log.student_history(
            student_id,
            subject_id=_int_arg('subjectId', 'subject_id'),
            from_date=_date_arg('fromDate', 'from_date'),
            to_date=_date_arg('toDate', 'to_date'),
        )
        result = []
        for row in rows:
            item = _mark_to_dict(row)
            item['subject'] = {'id': row.subject.id, 'name': row.subject.name, 'code': row.subject.code}
            teacher = row.teacher
            item['teacher'] = None if teacher is None else {
                'id': teacher.id,
                'employeeId': teacher.employee_id,
                'user': {'name': teacher.user.name} if teacher.user else None,
            }
            result.append(item)
        return jsonify(result)

    # -- reports ------------------------------------------------------------

    @app.route('/api/reports/attendance')
    @auth.login_required(ROLE_TEACHER)
    def api_day_report(ctx):
        report = compute_day_report(
            roster_store,
            attendance_log,
            on_date=_date_arg('date'),
            subject_id=_int_arg('subjectId', 'subject_id'),
            batch_id=_int_arg('batchId', 'batch_id'),
            semester_id=_int_arg('semesterId', 'semester_id'),
        )
        return jsonify(report.to_dict())

    def _batch_range_report():
        return compute_batch_range_report(
            roster_store,
            attendance_log,
            batch_id=_int_arg('batchId', 'batch_id'),
            semester_id=_int_arg('semesterId', 'semester_id'),
            subject_id=_int_arg('subjectId', 'subject_id'),
            start_date=_date_arg('startDate', 'start_date'),
            end_date=_date_arg('endDate', 'end_date'),
            max_days=current_app.config.get('MAX_REPORT_DAYS'),
        )

    @app.route('/api/reports/attendance-range')
    @auth.login_required(ROLE_TEACHER)
    def api_range_report(ctx):
        return jsonify(_batch_range_report().to_dict())

    @app.route('/api/reports/attendance-range/export')
    @auth.login_required(ROLE_TEACHER)
    def api_range_report_export(ctx):
        report = _batch_range_report()
        subject = roster_store.get_subject(report.subject_id)
        title = f"{subject.name if subject else 'Subject'} attendance " \
                f"{format_date(report.dates[0])} to {format_date(report.dates[-1])}"
        output = batch_range_report_to_xlsx(report, title=title)
        filename = f"attendance_{format_date(report.dates[0])}_{format_date(report.dates[-1])}.xlsx"
        return send_file(
            output,
            mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            as_attachment=True,
            download_name=filename,
        )

    @app.route('/api/reports/student-range')
    @auth.login_required(ROLE_TEACHER, ROLE_STUDENT)
    def api_student_range_report(ctx):
        student_id = _int_arg('studentId', 'student_id')
        if not ctx.is_teacher:
            if student_id is None:
                student_id = ctx.student_id
            elif student_id != ctx.student_id:
                raise Forbidden('Students may only view their own attendance')
        report = compute_student_range_report(
            roster_store,
            attendance_log,
            student_id=student_id,
            from_date=_date_arg('fromDate', 'from_date'),
            to_date=_date_arg('toDate', 'to_date'),
            subject_id=_int_arg('subjectId', 'subject_id'),
            max_days=current_app.config.get('MAX_REPORT_DAYS'),
        )
        return jsonify(report.to_dict())

    # -- errors -------------------------------------------------------------

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        extra = {}
        if isinstance(error, ValidationFailed) and error.errors:
            extra['errors'] = error.errors
        title = error.title if isinstance(error, AttendanceError) else error.name
        return _problem(error.code or 500, title, error.description or error.name, **extra)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(error: SQLAlchemyError):
        db.session.rollback()
        _logger.error("database operation failed", exc_info=error)
        return _problem(503, 'Service Unavailable', 'Database temporarily unavailable')

    @app.cli.command('seed')
    def seed_command():
        """Drop all tables and load demo data."""
        from seed import seed_data
        seed_data()

    return app


if __name__ == '__main__':
    application = create_app()
    port = int(os.environ.get('PORT', 8000))
    application.run(host='0.0.0.0', port=port, debug=True)
